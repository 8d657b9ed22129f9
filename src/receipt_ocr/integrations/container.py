from __future__ import annotations

from dataclasses import dataclass

from receipt_ocr.integrations.google_vision import GoogleVisionRecognizer
from receipt_ocr.integrations.in_memory import UnconfiguredRecognizer
from receipt_ocr.monitoring import GlobalPerformanceStats
from receipt_ocr.services.ports import TextRecognizer
from receipt_ocr.services.receipt_service import ReceiptService
from receipt_ocr.settings import Settings, load_settings


@dataclass
class AppContainer:
    """Runtime dependency container for API/CLI wiring."""

    settings: Settings
    recognizer: TextRecognizer
    stats: GlobalPerformanceStats
    service: ReceiptService


def build_recognizer(settings: Settings) -> TextRecognizer:
    """Google Vision when an API key is set, otherwise a recognizer that always fails."""

    if settings.vision_api_key:
        return GoogleVisionRecognizer(
            settings.vision_api_key,
            endpoint=settings.vision_endpoint,
            timeout=settings.ocr_timeout_sec,
        )
    return UnconfiguredRecognizer()


def build_container(
    settings: Settings | None = None,
    *,
    recognizer: TextRecognizer | None = None,
) -> AppContainer:
    """Create the default runtime container; one stats aggregate per process."""

    settings = settings or load_settings()
    recognizer = recognizer or build_recognizer(settings)
    stats = GlobalPerformanceStats()
    service = ReceiptService(recognizer, settings=settings, stats=stats)
    return AppContainer(
        settings=settings,
        recognizer=recognizer,
        stats=stats,
        service=service,
    )
