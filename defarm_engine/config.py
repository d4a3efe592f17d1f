"""
Configuration management for the DeFarm engine.
"""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings."""

    model_config = SettingsConfigDict(
        env_prefix="DEFARM_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Application
    app_name: str = Field(default="DeFarm Engine")
    environment: str = Field(default="development")

    # Database
    database_url: str = Field(default="sqlite:///./defarm.db")

    # Logging
    log_level: str = Field(default="INFO")
    log_format: str = Field(default="json", description="json or console")

    # Identity
    dfid_instance_id: str = Field(
        default="",
        max_length=4,
        pattern=r"^[0-9A-Z]*$",
        description="Uppercase alphanumeric prefix for the DFID sequence segment. "
        "Empty string = single deployed instance.",
    )
    default_namespace: str = Field(default="generic")

    # Concurrency
    lock_shards: int = Field(default=64, ge=1)

    # Adapters
    adapter_timeout_seconds: float = Field(default=30.0, gt=0)

    # Events
    default_event_visibility: str = Field(default="public")


# Global settings instance
settings = Settings()


def get_settings() -> Settings:
    """Get application settings."""
    return settings
