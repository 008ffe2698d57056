"""
Application settings with environment variable support.

Configuration is loaded from environment variables with optional .env file.
Timeouts are expressed in milliseconds to match the ingest service
configuration and converted to seconds at the httpx boundary.
"""

from functools import lru_cache
from typing import Literal, Optional

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    # Index backend
    index_backend: Literal["weaviate", "local"] = Field(
        default="weaviate", alias="INDEX_BACKEND"
    )
    weaviate_url: Optional[str] = Field(default=None, alias="WEAVIATE_URL")
    weaviate_api_key: Optional[str] = Field(default=None, alias="WEAVIATE_API_KEY")
    openai_api_key: Optional[str] = Field(default=None, alias="OPENAI_API_KEY")
    index_timeout_ms: int = Field(default=20000, ge=1, alias="WEAVIATE_TIMEOUT_MS")
    local_index_dir: str = Field(default="data/index", alias="LOCAL_INDEX_DIR")
    embedding_model: str = Field(default="all-MiniLM-L6-v2", alias="EMBEDDING_MODEL")

    # Sources
    arxiv_api_base_url: str = Field(
        default="https://export.arxiv.org/api/query", alias="ARXIV_API_BASE_URL"
    )
    ar5iv_base_url: str = Field(default="https://ar5iv.org/html", alias="AR5IV_BASE_URL")
    grobid_url: Optional[str] = Field(default=None, alias="GROBID_URL")
    arxiv_contact_email: Optional[str] = Field(default=None, alias="ARXIV_CONTACT_EMAIL")
    enable_pdf_fallback: bool = Field(default=True, alias="ENABLE_PDF_FALLBACK")

    # Ingest timeouts (ms)
    fetch_timeout_ms: int = Field(default=20000, ge=1, alias="INGEST_FETCH_TIMEOUT_MS")
    pdf_fetch_timeout_ms: int = Field(default=20000, ge=1, alias="INGEST_PDF_TIMEOUT_MS")
    grobid_timeout_ms: int = Field(default=60000, ge=1, alias="INGEST_GROBID_TIMEOUT_MS")
    ocr_timeout_ms: int = Field(default=90000, ge=1, alias="INGEST_OCR_TIMEOUT_MS")

    # Chunking
    max_chunk_chars: int = Field(default=1200, ge=50, alias="MAX_CHUNK_CHARS")
    target_chunk_chars: int = Field(default=800, ge=1, alias="TARGET_CHUNK_CHARS")

    # Retrieval
    hybrid_alpha: float = Field(default=0.65, ge=0.0, le=1.0, alias="HYBRID_ALPHA")
    hybrid_limit: int = Field(default=8, ge=1, le=100, alias="HYBRID_LIMIT")
    page_window: int = Field(default=1, ge=0, le=10, alias="PAGE_WINDOW")
    max_evidence_figures: int = Field(default=6, ge=0, alias="MAX_EVIDENCE_FIGURES")
    max_enriched_citations: int = Field(default=4, ge=0, alias="MAX_ENRICHED_CITATIONS")

    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    @model_validator(mode="after")
    def _check_chunk_sizes(self) -> "Settings":
        if self.target_chunk_chars > self.max_chunk_chars:
            raise ValueError(
                f"TARGET_CHUNK_CHARS ({self.target_chunk_chars}) must not exceed "
                f"MAX_CHUNK_CHARS ({self.max_chunk_chars})"
            )
        return self

    def is_weaviate_configured(self) -> bool:
        """Check if a Weaviate endpoint is set."""
        return bool(self.weaviate_url)

    def is_grobid_configured(self) -> bool:
        """Check if a GROBID service is set."""
        return bool(self.grobid_url)

    @staticmethod
    def timeout_seconds(ms: int) -> float:
        return ms / 1000.0


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
