from __future__ import annotations

from collections.abc import AsyncIterator

from fastapi import FastAPI, File, Form, HTTPException, UploadFile

from receipt_ocr.confidence import tier_for
from receipt_ocr.integrations.container import AppContainer, build_container
from receipt_ocr.models.api_requests import ValidateFieldRequest
from receipt_ocr.models.api_responses import HealthResponse, ValidateFieldResponse
from receipt_ocr.models.performance import GlobalPerformanceReport
from receipt_ocr.models.pipeline import ReceiptProcessingResult
from receipt_ocr.models.quality import ImageQualityResult
from receipt_ocr.quality import analyze_image_quality
from receipt_ocr.validation import (
    get_field_suggestions,
    get_format_examples,
    should_highlight_field,
    validate_field,
)

MAX_UPLOAD_BYTES = 25 * 1024 * 1024

container: AppContainer = build_container()


async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Release OCR worker threads on shutdown."""

    try:
        yield
    finally:
        container.service.close()


app = FastAPI(title="receipt_ocr", version="0.1.0", lifespan=lifespan)


async def _read_image_upload(file: UploadFile) -> tuple[bytes, str | None]:
    """Read one uploaded image; empty or oversized uploads are rejected with 400/413."""

    content = await file.read()
    await file.close()
    if not content:
        raise HTTPException(status_code=400, detail="file must not be empty")
    if len(content) > MAX_UPLOAD_BYTES:
        raise HTTPException(status_code=413, detail="file is too large")
    return content, file.content_type


@app.get("/healthz", response_model=HealthResponse)
async def healthz() -> HealthResponse:
    """Liveness probe."""

    return HealthResponse(ocr_configured=container.recognizer.configured)


@app.post("/v1/quality", response_model=ImageQualityResult)
async def analyze_quality(file: UploadFile = File(...)) -> ImageQualityResult:
    """Score an image for OCR fitness without running OCR."""

    content, mime_type = await _read_image_upload(file)
    return analyze_image_quality(content, mime_type)


@app.post("/v1/receipts", response_model=ReceiptProcessingResult)
async def process_receipt(
    file: UploadFile = File(...),
    document_type: str = Form("receipt"),
    force_ocr: bool = Form(False),
) -> ReceiptProcessingResult:
    """Run the full pipeline on one receipt image and return fields for review."""

    content, mime_type = await _read_image_upload(file)
    return await container.service.process_async(
        content,
        mime_type,
        document_type=document_type.strip() or "receipt",
        force_ocr=force_ocr,
    )


@app.post("/v1/validate", response_model=ValidateFieldResponse)
async def validate(payload: ValidateFieldRequest) -> ValidateFieldResponse:
    """Validate one user-edited field value."""

    value = "" if payload.value is None else payload.value
    result = validate_field(payload.field_type, value, payload.confidence)
    current = value if isinstance(value, str) else None
    return ValidateFieldResponse(
        field_type=payload.field_type,
        result=result,
        highlight=should_highlight_field(payload.confidence),
        confidence_tier=tier_for(payload.confidence) if payload.confidence is not None else None,
        format_examples=get_format_examples(payload.field_type),
        suggestions=get_field_suggestions(payload.field_type, current),
    )


@app.get("/v1/stats", response_model=GlobalPerformanceReport)
async def stats() -> GlobalPerformanceReport:
    """Process-wide performance report."""

    return container.stats.report()
