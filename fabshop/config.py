"""Application settings and logging setup."""

from __future__ import annotations

import logging
import os
from functools import lru_cache

from dotenv import load_dotenv
from pydantic import BaseModel, Field

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def _env_flag(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in {"1", "true", "yes", "on"}


class Settings(BaseModel):
    app_name: str = Field(
        default_factory=lambda: os.getenv("FABSHOP_APP_NAME", "CNC Fabrication Shop")
    )
    database_path: str = Field(
        default_factory=lambda: os.getenv("FABSHOP_DATABASE_PATH", "fabshop.sqlite3")
    )
    log_level: str = Field(
        default_factory=lambda: os.getenv("FABSHOP_LOG_LEVEL", "INFO").upper()
    )
    seed_demo_data: bool = Field(
        default_factory=lambda: _env_flag("FABSHOP_SEED_DEMO_DATA", "1")
    )
    currency: str = Field(default_factory=lambda: os.getenv("FABSHOP_CURRENCY", "₹"))


@lru_cache
def get_settings() -> Settings:
    load_dotenv()
    return Settings()


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(level=level, format=LOG_FORMAT)
    logging.getLogger("fabshop").setLevel(level)


__all__ = ["Settings", "get_settings", "configure_logging"]
