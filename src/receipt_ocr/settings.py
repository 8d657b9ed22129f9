"""Runtime configuration loaded from environment variables (and `.env`)."""

from __future__ import annotations

import os

from dotenv import load_dotenv
from pydantic import Field

from receipt_ocr.models.common import StrictModel

DEFAULT_VISION_ENDPOINT = "https://vision.googleapis.com/v1/images:annotate"


class Settings(StrictModel):
    """Pipeline settings; every field has a working default."""

    vision_api_key: str = ""
    vision_endpoint: str = DEFAULT_VISION_ENDPOINT
    ocr_timeout_sec: float = Field(default=30.0, gt=0)
    ocr_min_token_confidence: float = Field(default=0.5, ge=0.0, le=1.0)
    max_line_items: int = Field(default=50, ge=1)
    skip_ocr_on_retake: bool = True
    preprocess_max_side: int = Field(default=2000, ge=200)
    preprocess_clahe: bool = False
    max_workers: int = Field(default=4, ge=1)
    trace_memory: bool = True
    log_level: str = "INFO"
    host: str = "127.0.0.1"
    port: int = 8000


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


def load_settings() -> Settings:
    """Build settings from the process environment after reading `.env`."""

    load_dotenv()
    return Settings(
        vision_api_key=os.getenv("GOOGLE_VISION_API_KEY", ""),
        vision_endpoint=os.getenv("GOOGLE_VISION_ENDPOINT", DEFAULT_VISION_ENDPOINT),
        ocr_timeout_sec=float(os.getenv("OCR_TIMEOUT_SEC", "30")),
        ocr_min_token_confidence=float(os.getenv("OCR_MIN_TOKEN_CONFIDENCE", "0.5")),
        max_line_items=int(os.getenv("MAX_LINE_ITEMS", "50")),
        skip_ocr_on_retake=_env_bool("SKIP_OCR_ON_RETAKE", True),
        preprocess_max_side=int(os.getenv("PREPROCESS_MAX_SIDE", "2000")),
        preprocess_clahe=_env_bool("PREPROCESS_CLAHE", False),
        max_workers=int(os.getenv("OCR_MAX_WORKERS", "4")),
        trace_memory=_env_bool("TRACE_MEMORY", True),
        log_level=os.getenv("LOG_LEVEL", "INFO"),
        host=os.getenv("HOST", "127.0.0.1"),
        port=int(os.getenv("PORT", "8000")),
    )
