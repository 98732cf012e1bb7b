"""Tests for pixie.core.config: configuration management.

Tests cover:
- Default values for all configuration fields.
- Environment variable overrides via the PIXIE_ prefix.
- Pydantic validation constraints (page size, port range, platform literal).
"""

from __future__ import annotations

import os

import pytest
from pydantic import ValidationError

from pixie.core.config import DEFAULT_API_URL, PixieConfig


@pytest.fixture
def clean_env(monkeypatch):
    """Remove any PIXIE_ variables inherited from the developer's shell."""
    for key in list(os.environ):
        if key.startswith("PIXIE_"):
            monkeypatch.delenv(key)


class TestConfigDefaults:
    """Verify that PixieConfig provides sensible defaults."""

    def test_default_api_url(self, clean_env):
        cfg = PixieConfig(_env_file=None)
        assert cfg.api_url == DEFAULT_API_URL

    def test_default_is_anonymous(self, clean_env):
        cfg = PixieConfig(_env_file=None)
        assert cfg.api_key is None
        assert cfg.user_id is None
        assert cfg.is_authenticated is False

    def test_default_timeout_matches_long_generations(self, clean_env):
        """High quality generations can take minutes; default is 300s."""
        cfg = PixieConfig(_env_file=None)
        assert cfg.request_timeout == 300.0

    def test_default_gallery_paging(self, clean_env):
        cfg = PixieConfig(_env_file=None)
        assert cfg.gallery_page_size == 20
        assert cfg.public_page_limit == 5
        assert cfg.load_more_threshold == 5

    def test_default_server(self, clean_env):
        cfg = PixieConfig(_env_file=None)
        assert cfg.server_host == "127.0.0.1"
        assert cfg.server_port == 7860

    def test_default_platform(self, clean_env):
        cfg = PixieConfig(_env_file=None)
        assert cfg.purchase_platform == "ios"

    def test_default_allows_no_browser_origins(self, clean_env):
        cfg = PixieConfig(_env_file=None)
        assert cfg.cors_origins == []


class TestConfigEnvOverrides:
    """Verify that PIXIE_ environment variables override defaults."""

    def test_api_key_from_env(self, clean_env, monkeypatch):
        monkeypatch.setenv("PIXIE_API_KEY", "sk-env")
        monkeypatch.setenv("PIXIE_USER_ID", "user-env")
        cfg = PixieConfig(_env_file=None)
        assert cfg.api_key == "sk-env"
        assert cfg.user_id == "user-env"
        assert cfg.is_authenticated is True

    def test_page_size_from_env(self, clean_env, monkeypatch):
        monkeypatch.setenv("PIXIE_GALLERY_PAGE_SIZE", "50")
        cfg = PixieConfig(_env_file=None)
        assert cfg.gallery_page_size == 50

    def test_cors_origins_from_env(self, clean_env, monkeypatch):
        monkeypatch.setenv("PIXIE_CORS_ORIGINS", '["http://localhost:3000"]')
        cfg = PixieConfig(_env_file=None)
        assert cfg.cors_origins == ["http://localhost:3000"]

    def test_env_is_case_insensitive(self, clean_env, monkeypatch):
        monkeypatch.setenv("pixie_public_page_limit", "3")
        cfg = PixieConfig(_env_file=None)
        assert cfg.public_page_limit == 3

    def test_env_file_is_read(self, clean_env, tmp_path):
        env_file = tmp_path / ".env"
        env_file.write_text("PIXIE_API_URL=https://staging.test\nPIXIE_SERVER_PORT=9000\n")
        cfg = PixieConfig(_env_file=str(env_file))
        assert cfg.api_url == "https://staging.test"
        assert cfg.server_port == 9000


class TestConfigValidation:
    """Verify Pydantic constraints on configuration fields."""

    def test_page_size_must_be_positive(self, clean_env):
        with pytest.raises(ValidationError):
            PixieConfig(_env_file=None, gallery_page_size=0)

    def test_page_size_upper_bound(self, clean_env):
        with pytest.raises(ValidationError):
            PixieConfig(_env_file=None, gallery_page_size=101)

    def test_public_page_limit_at_least_one(self, clean_env):
        with pytest.raises(ValidationError):
            PixieConfig(_env_file=None, public_page_limit=0)

    def test_timeout_must_be_positive(self, clean_env):
        with pytest.raises(ValidationError):
            PixieConfig(_env_file=None, request_timeout=0)

    def test_port_range(self, clean_env):
        with pytest.raises(ValidationError):
            PixieConfig(_env_file=None, server_port=80)

    def test_unknown_platform_rejected(self, clean_env):
        with pytest.raises(ValidationError):
            PixieConfig(_env_file=None, purchase_platform="windows")

    def test_empty_api_key_is_not_authenticated(self, clean_env):
        cfg = PixieConfig(_env_file=None, api_key="")
        assert cfg.is_authenticated is False
