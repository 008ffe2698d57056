"""Tests for environment-driven settings and backend selection."""

import os
from unittest.mock import patch

import pytest
from pydantic import ValidationError

from ..config.settings import Settings, get_settings
from ..src.index import create_backend
from ..src.index.local import LocalBackend
from ..src.index.weaviate import WeaviateBackend


class TestSettings:
    def test_defaults(self):
        with patch.dict(os.environ, {}, clear=True):
            settings = Settings(_env_file=None)
        assert settings.index_backend == "weaviate"
        assert settings.hybrid_alpha == 0.65
        assert settings.page_window == 1
        assert settings.max_chunk_chars == 1200
        assert settings.enable_pdf_fallback is True
        assert not settings.is_weaviate_configured()
        assert not settings.is_grobid_configured()

    def test_environment_overrides(self):
        env = {
            "WEAVIATE_URL": "http://localhost:8080",
            "HYBRID_ALPHA": "0.3",
            "PAGE_WINDOW": "2",
            "INGEST_FETCH_TIMEOUT_MS": "5000",
            "ENABLE_PDF_FALLBACK": "false",
        }
        with patch.dict(os.environ, env, clear=True):
            settings = Settings(_env_file=None)
        assert settings.is_weaviate_configured()
        assert settings.hybrid_alpha == 0.3
        assert settings.page_window == 2
        assert settings.timeout_seconds(settings.fetch_timeout_ms) == 5.0
        assert settings.enable_pdf_fallback is False

    def test_out_of_range_alpha(self):
        with patch.dict(os.environ, {"HYBRID_ALPHA": "1.5"}, clear=True):
            with pytest.raises(ValidationError):
                Settings(_env_file=None)

    def test_target_must_not_exceed_max(self):
        with pytest.raises(ValidationError):
            Settings(_env_file=None, max_chunk_chars=500, target_chunk_chars=800)

    def test_get_settings_is_cached(self):
        get_settings.cache_clear()
        try:
            with patch.dict(os.environ, {"LOG_LEVEL": "DEBUG"}, clear=True):
                assert get_settings() is get_settings()
                assert get_settings().log_level == "DEBUG"
        finally:
            get_settings.cache_clear()


class TestCreateBackend:
    def test_local_backend(self, embedder, tmp_path):
        settings = Settings(_env_file=None, index_backend="local", local_index_dir=str(tmp_path))
        backend = create_backend(settings, embedder=embedder)
        assert isinstance(backend, LocalBackend)
        assert backend.persist_dir == tmp_path

    def test_weaviate_backend(self):
        settings = Settings(_env_file=None, weaviate_url="http://localhost:8080", weaviate_api_key="k")
        backend = create_backend(settings)
        assert isinstance(backend, WeaviateBackend)
        assert backend.url == "http://localhost:8080"

    def test_weaviate_without_url(self):
        with patch.dict(os.environ, {}, clear=True):
            settings = Settings(_env_file=None)
        with pytest.raises(ValueError):
            create_backend(settings)
