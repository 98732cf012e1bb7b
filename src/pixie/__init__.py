"""Pixie - Python client for the Pixie image generation service."""

__version__ = "0.1.0"

from pixie.core.config import PixieConfig, config
from pixie.core.errors import PixieError

__all__ = [
    "PixieConfig",
    "PixieError",
    "config",
]
