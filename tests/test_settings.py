from __future__ import annotations

import pytest

from receipt_ocr.integrations.container import build_container, build_recognizer
from receipt_ocr.integrations.google_vision import GoogleVisionRecognizer
from receipt_ocr.integrations.in_memory import UnconfiguredRecognizer
from receipt_ocr.settings import Settings, load_settings


def test_load_settings_reads_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("GOOGLE_VISION_API_KEY", "k-123")
    monkeypatch.setenv("OCR_TIMEOUT_SEC", "12.5")
    monkeypatch.setenv("SKIP_OCR_ON_RETAKE", "false")
    monkeypatch.setenv("MAX_LINE_ITEMS", "10")
    monkeypatch.setenv("TRACE_MEMORY", "0")

    settings = load_settings()

    assert settings.vision_api_key == "k-123"
    assert settings.ocr_timeout_sec == 12.5
    assert settings.skip_ocr_on_retake is False
    assert settings.max_line_items == 10
    assert settings.trace_memory is False
    assert Settings().trace_memory is True


def test_recognizer_depends_on_api_key() -> None:
    assert isinstance(build_recognizer(Settings()), UnconfiguredRecognizer)
    configured = build_recognizer(Settings(vision_api_key="k", ocr_timeout_sec=7))
    assert isinstance(configured, GoogleVisionRecognizer)
    assert configured.timeout == 7


def test_container_shares_stats_with_service() -> None:
    container = build_container(Settings())
    try:
        assert container.service.stats is container.stats
        assert container.service.recognizer is container.recognizer
        assert not container.recognizer.configured
    finally:
        container.service.close()
