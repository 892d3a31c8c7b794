"""
Runtime settings for the RareMD API.

Values come from environment variables or a local .env file. Secrets are
redacted before the settings are logged at startup.
"""

from functools import lru_cache
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    RareMD settings. Field names map to upper-case environment variables.

    Defaults target a local in-memory deployment; production sets the
    Orphadata key and the ArangoDB credentials.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        env_ignore_empty=True,
    )

    # Service
    app_name: str = Field(default="RareMD Assist", description="Application name")
    app_version: str = Field(default="1.0.0", description="Release version")
    environment: Literal["development", "staging", "production"] = Field(
        default="development",
        description="Deployment environment"
    )
    debug: bool = Field(default=False, description="Debug mode")

    # Server
    host: str = Field(default="0.0.0.0", description="Bind address")
    port: int = Field(default=8000, description="Bind port")

    # CORS
    cors_origins: list[str] = Field(
        default=["http://localhost:3000", "http://localhost:5173"],
        description="Origins allowed by CORS"
    )

    # Orphadata (disease knowledge base source)
    orphadata_api_key: str = Field(
        default="",
        description="Orphadata API key; the bundled sample catalog is used when empty",
    )
    orphadata_base_url: str = Field(
        default="https://api.orphacode.org/EN",
        description="Orphadata API base URL",
    )

    # HPO (phenotype catalog source)
    hpo_api_url: str = Field(default="https://hpo.jax.org/api/hpo", description="HPO API base URL")
    hpo_remote_enabled: bool = Field(
        default=True,
        description="Fetch HPO terms remotely at startup before falling back to bundled terms",
    )

    http_timeout_seconds: float = Field(default=10.0, gt=0, description="Outbound HTTP timeout")
    seed_knowledge_base: bool = Field(
        default=True,
        description="Run an Orphadata sync at startup so the knowledge base is never empty",
    )

    # Storage
    storage_backend: Literal["memory", "arango"] = Field(
        default="memory",
        description="Repository adapter for cases, diseases and physician profiles",
    )
    arango_host: str = Field(default="http://localhost:8529", description="ArangoDB host URL")
    arango_username: str = Field(default="root", description="ArangoDB username")
    arango_password: str = Field(default="", description="ArangoDB password")
    arango_database: str = Field(default="raremd", description="ArangoDB database name")

    # Referral documents
    default_referring_physician: str = Field(
        default="Referring physician",
        description="Name printed on referrals when no physician profile is given",
    )

    # Logging
    log_level: str = Field(default="INFO", description="Root log level")
    log_format: Literal["json", "console"] = Field(
        default="console",
        description="json or console rendering"
    )

    @property
    def is_production(self) -> bool:
        """True when environment is production."""
        return self.environment == "production"

    def get_safe_config_dict(self) -> dict:
        """Dump the settings with the Orphadata key and database password masked."""
        config = self.model_dump()
        if config.get("orphadata_api_key"):
            config["orphadata_api_key"] = "***REDACTED***"
        if config.get("arango_password"):
            config["arango_password"] = "***REDACTED***"
        return config


@lru_cache
def get_settings() -> Settings:
    """
    Load settings once per process.

    Tests pass their own Settings to create_app() instead.
    """
    return Settings()
