"""Configuration management for the Pixie client.

This module provides centralized configuration management using Pydantic Settings.
All configuration is loaded from environment variables with the PIXIE_ prefix,
allowing easy customization without code changes.

Environment Variable Loading
-----------------------------
Configuration values are loaded in the following priority order:
1. Environment variables (PIXIE_* prefix)
2. .env file in the project root
3. Default values defined in PixieConfig

Example .env file:
    PIXIE_API_URL=https://openai-image-proxy.guitaripod.workers.dev
    PIXIE_API_KEY=sk-...
    PIXIE_USER_ID=user-123
    PIXIE_GALLERY_PAGE_SIZE=20

Global Configuration Instance
------------------------------
A global `config` instance is created at module import time.  It is only
used as the default by the bridge entry point; components receive their
configuration explicitly through their constructors.

Usage Example
-------------
    from pixie.core.config import PixieConfig

    cfg = PixieConfig(api_key="sk-test", user_id="user-123")
    client = PixieClient(cfg)

Gallery Paging Settings
-----------------------
- gallery_page_size: records requested per page (20, as the mobile clients)
- public_page_limit: pages of the public feed a session may browse before the
  "viewing limit reached" affordance is shown (5)
- load_more_threshold: lookahead window, in items, that triggers the next
  page load while scrolling (5)
"""

from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_API_URL = "https://openai-image-proxy.guitaripod.workers.dev"


class PixieConfig(BaseSettings):
    """Main configuration for the Pixie client.

    Values are loaded from environment variables with the PIXIE_ prefix,
    with fallback to defaults defined here.

    Attributes
    ----------
    API Settings:
        api_url : str
            Base URL of the Pixie API
        api_key : str | None
            Bearer token sent with every request
        user_id : str | None
            Authenticated user, required for the personal gallery
        request_timeout : float
            Per-request timeout in seconds (generation can take minutes)

    Gallery Settings:
        gallery_page_size : int
            Records requested per gallery page
        public_page_limit : int
            Maximum pages of the public feed per session
        load_more_threshold : int
            Scroll lookahead window in items

    Generation Settings:
        progress_interval : float
            Seconds between synthetic progress ticks

    Billing Settings:
        purchase_platform : Literal["ios", "android"]
            Platform reported when forwarding purchase receipts

    Bridge Settings:
        server_host : str
            Bridge bind address
        server_port : int
            Bridge port (1024-65535)
        cors_origins : list[str]
            Browser origins allowed to call the bridge; empty by default

    Examples
    --------
        >>> custom_config = PixieConfig(
        ...     api_key="sk-test",
        ...     user_id="user-123",
        ...     public_page_limit=3,
        ... )
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="PIXIE_",
        case_sensitive=False,
    )

    # API settings
    api_url: str = Field(
        default=DEFAULT_API_URL,
        description="Base URL of the Pixie API",
    )
    api_key: str | None = Field(
        default=None,
        description="API key sent as a bearer token",
    )
    user_id: str | None = Field(
        default=None,
        description="Authenticated user id (needed for the personal gallery)",
    )
    request_timeout: float = Field(
        default=300.0,
        description="Per-request timeout in seconds",
        gt=0,
    )

    # Gallery settings
    gallery_page_size: int = Field(default=20, ge=1, le=100)
    public_page_limit: int = Field(
        default=5,
        description="Pages of the public feed a session may browse",
        ge=1,
    )
    load_more_threshold: int = Field(
        default=5,
        description="Items from the end of the list that trigger the next page",
        ge=0,
    )

    # Generation settings
    progress_interval: float = Field(
        default=2.0,
        description="Seconds between synthetic progress ticks",
        gt=0,
    )

    # Billing settings
    purchase_platform: Literal["ios", "android"] = Field(
        default="ios",
        description="Platform reported when forwarding purchase receipts",
    )

    # Bridge settings
    server_host: str = Field(
        default="127.0.0.1",
        description="Bridge bind address",
    )
    server_port: int = Field(
        default=7860,
        description="Bridge port",
        ge=1024,
        le=65535,
    )
    cors_origins: list[str] = Field(
        default_factory=list,
        description="Browser origins allowed to call the bridge (JSON list)",
    )

    @property
    def is_authenticated(self) -> bool:
        """Whether both an API key and a user id are configured."""
        return bool(self.api_key and self.user_id)


# Global configuration instance
# Loaded from environment variables (PIXIE_* prefix) and .env file.  Only the
# bridge entry point reads it; everything else takes a PixieConfig argument.
config = PixieConfig()
