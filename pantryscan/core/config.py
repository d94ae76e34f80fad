from __future__ import annotations

from functools import lru_cache
from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class AppSettings(BaseSettings):
    """Environment-driven application configuration."""

    model_config = SettingsConfigDict(
        env_file=(".env", ".env.local"),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    APP_NAME: str = "Pantry Scan"
    BASE_DIR: Path = Field(default_factory=lambda: Path(__file__).resolve().parents[2])
    DATA_DIR: Path = Field(default_factory=lambda: Path(__file__).resolve().parents[2] / "data")

    DB_URL: str | None = Field(default=None, validation_alias="DATABASE_URL")
    DB_ECHO: bool = False

    CATALOG_BASE_URL: str = "https://world.openfoodfacts.org/api/v0/product"
    CATALOG_TIMEOUT_SECONDS: float = 5.0
    CATALOG_USER_AGENT: str = "PantryScan/1.0 (scanner ingestion)"

    DEFAULT_PRODUCT_NAME: str = "new product"
    MAX_CATEGORY_TAGS: int = Field(default=10, ge=0)

    ALLOWED_ORIGINS: str = "*"
    LOG_LEVEL: str = "INFO"

    HOST: str = "0.0.0.0"
    PORT: int = 8089

    @property
    def allowed_origins(self) -> list[str]:
        origins = [item.strip() for item in self.ALLOWED_ORIGINS.split(",") if item.strip()]
        return origins or ["*"]

    @property
    def database_url(self) -> str:
        return self.DB_URL or f"sqlite+aiosqlite:///{self.DATA_DIR / 'pantry.db'}"

    @field_validator("CATALOG_BASE_URL")
    @classmethod
    def strip_trailing_slash(cls, value: str) -> str:
        return value.rstrip("/")


@lru_cache(maxsize=1)
def get_settings() -> AppSettings:
    settings = AppSettings()
    if settings.DB_URL is None:
        settings.DATA_DIR.mkdir(parents=True, exist_ok=True)
    return settings
