# src/moodify/config.py

import logging
import os
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field

# ---- Load .env BEFORE reading any env vars ----
ENV_PATH = Path(__file__).resolve().parents[2] / ".env"
load_dotenv(ENV_PATH)

SPOTIFY_API = "https://api.spotify.com/v1"

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


class Settings(BaseModel):
    api_base: str = SPOTIFY_API
    http_timeout: float = Field(20.0, gt=0)
    enqueue_spacing: float = Field(0.5, ge=0)
    album_art_size: int = Field(200, gt=0)
    fetch_attempts: int = Field(1, ge=1)
    supersede_batches: bool = False
    poll_interval: float = Field(1.0, gt=0)
    log_level: str = "INFO"
    access_token: Optional[str] = None


def load_settings() -> Settings:
    """
    Build Settings from the environment (.env already loaded above).
    Unset variables fall back to the model defaults.
    """
    values = {
        "api_base": os.getenv("SPOTIFY_API_BASE"),
        "http_timeout": os.getenv("MOODIFY_HTTP_TIMEOUT"),
        "enqueue_spacing": os.getenv("MOODIFY_ENQUEUE_SPACING"),
        "album_art_size": os.getenv("MOODIFY_ALBUM_ART_SIZE"),
        "fetch_attempts": os.getenv("MOODIFY_FETCH_ATTEMPTS"),
        "supersede_batches": os.getenv("MOODIFY_SUPERSEDE_BATCHES"),
        "poll_interval": os.getenv("MOODIFY_POLL_INTERVAL"),
        "log_level": os.getenv("LOG_LEVEL"),
        "access_token": os.getenv("SPOTIFY_ACCESS_TOKEN") or None,
    }
    return Settings(**{k: v for k, v in values.items() if v is not None})


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(level=level.upper(), format=LOG_FORMAT)
