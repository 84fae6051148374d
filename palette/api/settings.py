"""
API Configuration

Pydantic settings for the HTTP server. Engine behaviour lives in
PaletteConfig; these cover the server and its persistence backend.
"""

from functools import lru_cache
from typing import List

from pydantic import Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Server settings, read from the environment and .env."""

    # Server
    host: str = Field(default="0.0.0.0")
    port: int = Field(default=8000)
    debug: bool = Field(default=False)

    # CORS
    cors_origins: List[str] = Field(
        default=["http://localhost:3000", "http://127.0.0.1:3000"]
    )

    # Engine configuration file
    palette_config_path: str = Field(default="config/palette_config.json")

    # Supabase (persistence and credits are disabled when unset)
    supabase_url: str = Field(default="")
    supabase_service_key: str = Field(default="")
    credits_user_id: str = Field(default="")

    # Rate limit for starting runs
    run_rate_limit: str = Field(default="10/minute")

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
