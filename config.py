"""
Runtime settings for the Delish ordering service.

Values come from environment variables prefixed with DELISH_ or from a .env
file next to the working directory.
"""

from functools import lru_cache
from typing import List

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    data_dir: str = "data"
    uploads_dir: str = "public/uploads"
    images_dir: str = "public/images"

    # Scanned in this order when looking up an item id
    menu_categories: List[str] = ["home", "value-pack", "yummy", "special", "promo"]

    max_cart_quantity: int = 50
    total_tolerance: float = 0.01

    cors_origins: List[str] = ["*"]
    user_cookie_max_age: int = 60 * 60 * 24 * 30
    port: int = 3000

    model_config = SettingsConfigDict(
        env_prefix="DELISH_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )


@lru_cache()
def get_settings() -> Settings:
    return Settings()
