"""Application configuration."""

import os

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

_ENVIRONMENT = os.getenv("ENVIRONMENT", "local")

STORE_BACKENDS = ("sqlite", "memory", "supabase")


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    store_backend: str = "sqlite"
    sqlite_path: str = "medication_tracker.db"
    supabase_url: str | None = None
    supabase_service_key: str | None = None
    repository_workers: int = Field(default=2, ge=1)
    log_level: str = "INFO"
    environment: str = _ENVIRONMENT

    model_config = SettingsConfigDict(
        env_file=(f".env.{_ENVIRONMENT}", ".env"),
        extra="ignore",
    )

    @model_validator(mode="after")
    def _check_backend(self) -> "Settings":
        self.store_backend = self.store_backend.strip().lower()
        if self.store_backend not in STORE_BACKENDS:
            raise ValueError(
                f"store_backend must be one of {', '.join(STORE_BACKENDS)}"
            )
        if self.store_backend == "supabase" and not (
            self.supabase_url and self.supabase_service_key
        ):
            raise ValueError(
                "supabase_url and supabase_service_key are required for supabase"
            )
        return self
