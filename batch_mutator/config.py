"""
Configuration settings for the batch mutator.

Uses Pydantic Settings to load environment variables for database connections,
logging, the HTTP trigger, and the chunking defaults used by the population
loader and the chunked update processor.
"""
from __future__ import annotations

from functools import lru_cache
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # Database
    db_host: str = Field("localhost", alias="DB_HOST")
    db_port: int = Field(5432, alias="DB_PORT")
    db_user: str = Field("postgres", alias="DB_USER")
    db_password: str = Field("postgres", alias="DB_PASSWORD")
    db_name: str = Field("batch_mutator", alias="DB_NAME")
    db_pool_min_size: int = Field(1, alias="DB_POOL_MIN_SIZE")
    db_pool_max_size: int = Field(4, alias="DB_POOL_MAX_SIZE")

    # Application
    app_env: str = Field("development", alias="APP_ENV")
    log_level: str = Field("INFO", alias="LOG_LEVEL")
    log_json: bool = Field(False, alias="LOG_JSON")

    # Chunking defaults
    batch_size: int = Field(100, alias="BATCH_SIZE")
    fetch_size: int = Field(20, alias="FETCH_SIZE")
    population_count: int = Field(50_000, alias="POPULATION_COUNT")
    audit_actor: str = Field("SYSTEM", alias="AUDIT_ACTOR")

    # HTTP trigger
    api_host: str = Field("0.0.0.0", alias="API_HOST")
    api_port: int = Field(8000, alias="API_PORT")
    populate_on_startup: bool = Field(False, alias="POPULATE_ON_STARTUP")

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    @property
    def dsn(self) -> str:
        return (
            f"postgresql://{self.db_user}:{self.db_password}"
            f"@{self.db_host}:{self.db_port}/{self.db_name}"
        )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """
    Retrieve a cached instance of Settings to avoid repeated env parsing.
    """
    return Settings()


__all__ = ["Settings", "get_settings"]
