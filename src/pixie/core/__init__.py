"""Client-side state for Pixie: generation sessions, galleries and credits.

- **GenerationSession**: Observable lifecycle of one generation or edit
- **SessionRegistry**: Sessions owned by one bridge instance
- **GalleryCache**: Per-type paginated image feed with dedup
- **CreditPurchaseFlow**: In-app purchase receipt validation
- **PixieConfig**: Configuration management using Pydantic Settings
- **config**: Global configuration instance (loads from environment variables)

Configuration is read from ``PIXIE_``-prefixed environment variables or a
``.env`` file.
"""

from pixie.core.config import PixieConfig, config
from pixie.core.gallery import GalleryCache, GallerySeries
from pixie.core.generation import GenerationSession, SessionRegistry
from pixie.core.purchases import CreditPurchaseFlow

__all__ = [
    "CreditPurchaseFlow",
    "GalleryCache",
    "GallerySeries",
    "GenerationSession",
    "PixieConfig",
    "SessionRegistry",
    "config",
]
