"""Typed settings configuration - single source of truth."""

from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # Database
    database_url: str | None = None
    create_schema_on_startup: bool = False

    # Cache
    redis_url: str | None = None

    # Upstream provider (comma-separated key pool)
    llm_api_keys: str = ""
    llm_base_url: str | None = None
    embedding_model: str = "text-embedding-3-small"
    generation_model: str = "gpt-4o-mini"
    generation_temperature: float = 0.7
    generation_max_tokens: int = 1000

    # Retrieval
    question_similarity_threshold: float = 0.85
    chunk_similarity_threshold: float = 0.3
    chunk_top_k: int = 5

    # Chunking
    chunk_max_size: int = 800
    chunk_overlap: int = 100
    chunk_min_size: int = 50
    chunk_method: str = "sentence"

    # Uploads
    upload_dir: str = "uploads"
    max_upload_bytes: int = 10 * 1024 * 1024
    allowed_extensions: tuple[str, ...] = (".txt", ".md", ".pdf")

    # Cache TTLs (seconds)
    question_cache_ttl_seconds: int = 12 * 3600
    chunk_cache_ttl_seconds: int = 5 * 60

    # Logging
    log_level: str = "INFO"

    @property
    def api_keys(self) -> list[str]:
        """Key pool parsed from LLM_API_KEYS, blanks dropped."""
        return [key.strip() for key in self.llm_api_keys.split(",") if key.strip()]


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
