"""Configuration management."""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings."""

    model_config = SettingsConfigDict(env_prefix="REALM_", env_file=".env", extra="ignore")

    # Database
    database_url: str = Field(
        default="sqlite:///py_realm.db", description="SQLAlchemy database URL"
    )

    # API
    api_host: str = Field(default="0.0.0.0", description="API host")
    api_port: int = Field(default=8000, description="API port")
    debug: bool = Field(default=False, description="Enable debug mode")

    # Generation
    default_map_width: int = Field(default=30, ge=1, description="Default map width in tiles")
    default_map_height: int = Field(default=20, ge=1, description="Default map height in tiles")
    min_map_size: int = Field(default=8, ge=1, description="Minimum map width/height")
    max_map_size: int = Field(default=200, ge=8, description="Maximum map width/height")

    # Logging
    log_level: str = Field(default="INFO", description="Log level")
    log_format: str = Field(default="json", description="'json' or 'plain'")


settings = Settings()
