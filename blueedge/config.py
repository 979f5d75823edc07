from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Annotated, Any, Optional

from dotenv import load_dotenv
from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict


_BASE_DIR = Path(__file__).resolve().parent.parent
_ROOT_ENV = _BASE_DIR.parent / ".env"
_APP_ENV = _BASE_DIR / ".env"

PLACEHOLDER_OPENAI_KEY = "your_openai_api_key_here"
PLACEHOLDER_GEMINI_KEY = "your_gemini_api_key_here"


# exported so the OpenAI and Gemini SDKs also see keys from .env files
for _env_file in (_APP_ENV, _ROOT_ENV):
    load_dotenv(_env_file, override=False)


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=tuple(str(path) for path in (_APP_ENV, _ROOT_ENV)),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    environment: str = Field(default="development", alias="APP_ENV")
    database_url: str = Field(default=f"sqlite:///{_BASE_DIR / 'blueedge.db'}", alias="DATABASE_URL")
    allow_origins: Annotated[list[str], NoDecode] = Field(default_factory=lambda: ["http://localhost:3000", "http://127.0.0.1:3000"], alias="CORS_ALLOW_ORIGINS")

    openai_api_key: Optional[str] = Field(default=None, alias="OPENAI_API_KEY")
    openai_chat_model: str = Field(default="gpt-4o", alias="OPENAI_CHAT_MODEL")
    openai_metadata_model: str = Field(default="gpt-4o-mini", alias="OPENAI_METADATA_MODEL")
    openai_embedding_model: str = Field(default="text-embedding-ada-002", alias="OPENAI_EMBEDDING_MODEL")
    gemini_api_key: Optional[str] = Field(default=None, alias="GEMINI_API_KEY")
    gemini_model: str = Field(default="gemini-1.5-pro", alias="GEMINI_MODEL")

    chunk_size: int = Field(default=1000, alias="CHUNK_SIZE")
    chunk_overlap: int = Field(default=200, alias="CHUNK_OVERLAP")
    max_upload_bytes: int = Field(default=20 * 1024 * 1024, alias="MAX_UPLOAD_BYTES")

    sentry_dsn: Optional[str] = Field(default=None, alias="SENTRY_DSN")
    sentry_traces_sample_rate: float = Field(default=0.0, alias="SENTRY_TRACES_SAMPLE_RATE")
    sentry_profiles_sample_rate: float = Field(default=0.0, alias="SENTRY_PROFILES_SAMPLE_RATE")
    metrics_enabled: bool = Field(default=True, alias="METRICS_ENABLED")

    embedding_worker_interval_minutes: int = Field(default=15, alias="EMBEDDING_WORKER_INTERVAL_MINUTES")

    @field_validator("allow_origins", mode="before")
    @classmethod
    def split_origins(cls, value: Any) -> Any:
        """Accept ``CORS_ALLOW_ORIGINS`` as a comma list."""
        if isinstance(value, str):
            return [origin.strip() for origin in value.split(",") if origin.strip()]
        return value

    @model_validator(mode="after")
    def normalize_values(self) -> "Settings":
        """Blank keys parsed from environment files count as unset."""
        if self.openai_api_key is not None and not self.openai_api_key.strip():
            self.openai_api_key = None
        if self.gemini_api_key is not None and not self.gemini_api_key.strip():
            self.gemini_api_key = None

        return self

    @property
    def openai_configured(self) -> bool:
        return bool(self.openai_api_key) and self.openai_api_key != PLACEHOLDER_OPENAI_KEY

    @property
    def gemini_configured(self) -> bool:
        return bool(self.gemini_api_key) and self.gemini_api_key != PLACEHOLDER_GEMINI_KEY


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()  # type: ignore[arg-type]


settings = get_settings()
