"""Application configuration models."""

from __future__ import annotations

from functools import lru_cache
from typing import Annotated, Iterable, Literal

from pydantic import Field, HttpUrl, field_validator, model_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict


KNOWN_SOURCES: tuple[str, ...] = ("otakudesu", "kuramanime")

# Jikan publishes a ceiling of roughly three requests per second.
MIN_QUEUE_DELAY_SECONDS = 0.4


class Settings(BaseSettings):
    """Settings loaded from environment variables or a .env file."""

    app_name: str = Field(default="AnimeBridge", alias="APP_NAME")
    server_host: str = Field(default="0.0.0.0", alias="HOST")
    server_port: int = Field(default=3000, alias="PORT")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    aggregator_api_url: HttpUrl = Field(
        default="https://web-anime-api.vercel.app", alias="AGGREGATOR_API_URL"
    )
    jikan_api_url: HttpUrl = Field(
        default="https://api.jikan.moe/v4", alias="JIKAN_API_URL"
    )

    anime_sources: Annotated[tuple[str, ...], NoDecode] = Field(
        default=KNOWN_SOURCES, alias="ANIME_SOURCES"
    )
    default_source: str = Field(default="otakudesu", alias="DEFAULT_SOURCE")

    enrichment_queue_delay: float = Field(
        default=MIN_QUEUE_DELAY_SECONDS,
        alias="ENRICHMENT_QUEUE_DELAY",
        ge=MIN_QUEUE_DELAY_SECONDS,
    )
    detail_enrichment_delay: float = Field(
        default=0.3, alias="DETAIL_ENRICHMENT_DELAY", ge=0.0, le=5.0
    )
    top_anime_limit: int = Field(default=10, alias="TOP_ANIME_LIMIT", ge=1, le=25)

    http_timeout: float = Field(default=20.0, alias="HTTP_TIMEOUT", gt=0)
    http_connect_timeout: float = Field(
        default=10.0, alias="HTTP_CONNECT_TIMEOUT", gt=0
    )

    environment: Literal["development", "production"] = Field(
        default="development", alias="ENVIRONMENT"
    )

    @field_validator("anime_sources", mode="before")
    @classmethod
    def _parse_sources(cls, value: object) -> tuple[str, ...]:
        """Normalise provider key selections from environment values."""

        if value is None:
            return KNOWN_SOURCES
        if isinstance(value, str):
            raw_values = [part.strip() for part in value.split(",")]
        elif isinstance(value, Iterable):
            raw_values = [str(part).strip() for part in value]
        else:
            raise TypeError("ANIME_SOURCES must be a string or iterable of strings")

        cleaned: list[str] = []
        for entry in raw_values:
            key = entry.lower()
            if not key:
                continue
            if key not in KNOWN_SOURCES:
                raise ValueError(f"Unknown anime source configured: {entry}")
            if key not in cleaned:
                cleaned.append(key)
        if not cleaned:
            return KNOWN_SOURCES
        return tuple(cleaned)

    @model_validator(mode="after")
    def _check_default_source(self) -> "Settings":
        """Ensure the default provider is one of the enabled ones."""

        self.default_source = self.default_source.strip().lower()
        if self.default_source not in self.anime_sources:
            raise ValueError("DEFAULT_SOURCE must be one of the configured ANIME_SOURCES")
        return self

    def is_known_source(self, source: str) -> bool:
        return source in self.anime_sources

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")


@lru_cache
def get_settings() -> Settings:
    """Return a cached settings instance."""

    return Settings()  # type: ignore[call-arg]


settings = get_settings()
