import os
from functools import lru_cache
from typing import List

from dotenv import load_dotenv
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # Vision providers
    GEMINI_API_KEY: str = ""
    GEMINI_MODEL: str = "gemini-2.5-flash"
    GEMINI_BASE_URL: str = "https://generativelanguage.googleapis.com/v1beta"
    GROQ_API_KEY: str = ""
    GROQ_MODEL: str = "meta-llama/llama-4-scout-17b-16e-instruct"
    GROQ_BASE_URL: str = "https://api.groq.com/openai/v1"
    INFERENCE_TIMEOUT_SEC: float = 60.0

    # Media decoding
    FFMPEG_BINARY: str = "ffmpeg"
    TMP_DIR: str = "./.tmp"
    SAMPLE_FPS: int = 1
    EXTRACT_CONCURRENCY: int = 2
    DECODE_CONCURRENCY: int = 8

    # Collage
    MAX_FRAMES: int = 20
    TILE_WIDTH: int = 320
    MIN_CANVAS_HEIGHT: int = 200
    JPEG_QUALITY: int = 85

    # Upload handling
    MAX_UPLOAD_BYTES: int = 100 * 1024 * 1024
    PIPELINE_TIMEOUT_SEC: float = 180.0
    # Send photos as-is instead of through the single-tile collage
    DIRECT_IMAGE_UPLOADS: bool = False

    # Housekeeping
    STALE_TMP_MAX_AGE_SEC: float = 6 * 3600
    JANITOR_INTERVAL_SEC: float = 3600

    # General
    LOG_LEVEL: str = "INFO"
    CORS_ORIGINS: List[str] = ["http://localhost:3000"]
    ENV: str = os.getenv("ENV", "development")

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=True,
        extra="ignore",
    )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    # Ensure .env is loaded once
    load_dotenv(override=False)
    return Settings()
