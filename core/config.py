from pathlib import Path
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field, SecretStr
from functools import lru_cache


class DatabaseSettings(BaseSettings):
    """Connection settings for the FAQ store (PostgreSQL)."""

    HOST: str
    PORT: int = 5432
    USER: str
    PASSWORD: SecretStr
    NAME: str

    # Async connection pool
    POOL_MIN_SIZE: int = Field(default=1, ge=0)
    POOL_MAX_SIZE: int = Field(default=10, ge=1)
    POOL_TIMEOUT: float = Field(default=30.0, gt=0)

    model_config = SettingsConfigDict(
        env_prefix="DB_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )


class RetrievalSettings(BaseSettings):
    """Tunables for query-variant generation and candidate ranking."""

    MAX_QUERY_VARIANTS: int = Field(default=4, ge=1)
    MAX_CANDIDATES_PER_VARIANT: int = Field(default=12, ge=1)
    TOP_K_RESULTS: int = Field(default=3, ge=1)
    MIN_SCORE: float = Field(default=0.35, ge=0)
    CACHE_TTL_SECONDS: float = Field(default=240.0, gt=0)
    RECENCY_BOOST_DAYS: int = Field(default=30, ge=0)
    RUBRIQUE_BOOST: float = Field(default=0.15, ge=0)
    PRODUCT_BOOST: float = Field(default=0.2, ge=0)
    VARIANT_DECAY: float = Field(default=0.15, ge=0, le=1)
    FALLBACK_LIMIT: int = Field(default=5, ge=1)

    model_config = SettingsConfigDict(
        env_prefix="RAG_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )


class CacheSettings(BaseSettings):
    MAX_ENTRIES: int = Field(default=1000, ge=1)
    TTL_SECONDS: float = Field(default=300.0, gt=0)
    CHECK_PERIOD_SECONDS: float = Field(default=60.0, gt=0)

    model_config = SettingsConfigDict(
        env_prefix="CACHE_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )


class MatcherSettings(BaseSettings):
    """Answer matcher thresholds and lexicon location."""

    THRESHOLD: float = Field(default=0.3, ge=0)
    CONTACT_SUPPORT_THRESHOLD: float = Field(default=0.2, ge=0)
    DEFAULT_LANGUAGE: str = "fr"
    LEXICON_PATH: Optional[Path] = None

    model_config = SettingsConfigDict(
        env_prefix="MATCH_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )


class LoggingSettings(BaseSettings):
    LEVEL: str = "INFO"
    TO_FILE: bool = True
    DIR: Optional[Path] = None

    model_config = SettingsConfigDict(
        env_prefix="LOG_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )


@lru_cache()
def get_database_settings() -> DatabaseSettings:
    return DatabaseSettings()  # type: ignore


@lru_cache()
def get_retrieval_settings() -> RetrievalSettings:
    return RetrievalSettings()


@lru_cache()
def get_cache_settings() -> CacheSettings:
    return CacheSettings()


@lru_cache()
def get_matcher_settings() -> MatcherSettings:
    return MatcherSettings()


@lru_cache()
def get_logging_settings() -> LoggingSettings:
    return LoggingSettings()
