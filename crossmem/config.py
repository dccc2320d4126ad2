"""Application settings loaded from environment variables."""

import os
from pathlib import Path

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


def _env_file() -> str | None:
    if os.getenv("PYTEST_CURRENT_TEST"):
        return None
    return ".env"


class MemoryConfig(BaseModel):
    """Budget for cross-session context assembly."""

    max_background_messages: int = Field(default=50, ge=0)
    background_ratio: float = Field(default=0.5, gt=0.0, le=1.0)
    max_total_messages: int = Field(default=100, ge=0)


class Settings(BaseSettings):
    """crossmem configuration. All values come from environment variables."""

    # Storage: "auto" picks cloud when a Firestore project is configured
    storage_backend: str = Field(default="auto")

    # Embedded (libSQL / SQLite)
    database_path: Path = Field(default=Path("data/crossmem.db"))

    # Cloud (Firestore)
    firestore_project: str = Field(default="")
    firestore_database: str = Field(default="(default)")
    content_encryption_key: str = Field(default="")
    background_fetch_concurrency: int = Field(default=4, ge=1)

    # Cross-session memory budget
    memory_max_background_messages: int = Field(default=50, ge=0)
    memory_background_ratio: float = Field(default=0.5, gt=0.0, le=1.0)
    memory_max_total_messages: int = Field(default=100, ge=0)

    # Logging
    log_level: str = Field(default="INFO")

    model_config = SettingsConfigDict(env_file=_env_file(), env_file_encoding="utf-8")

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings,
        env_settings,
        dotenv_settings,
        file_secret_settings,
    ):
        if os.getenv("PYTEST_CURRENT_TEST"):
            return (init_settings,)
        return (init_settings, env_settings, dotenv_settings, file_secret_settings)

    def resolved_backend(self) -> str:
        """Return ``"cloud"`` or ``"embedded"`` after applying the ``auto`` rule."""
        backend = self.storage_backend.strip().lower()
        if backend == "auto":
            return "cloud" if self.firestore_project else "embedded"
        if backend not in ("cloud", "embedded"):
            raise ValueError(f"Unknown storage backend: {self.storage_backend!r}")
        return backend

    def memory_config(self) -> MemoryConfig:
        """Build the assembler budget from the MEMORY_* settings."""
        return MemoryConfig(
            max_background_messages=self.memory_max_background_messages,
            background_ratio=self.memory_background_ratio,
            max_total_messages=self.memory_max_total_messages,
        )


settings = Settings()
