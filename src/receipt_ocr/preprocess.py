"""Preprocessing of receipt photos before they are sent for text recognition."""

from __future__ import annotations

import io
import logging
from dataclasses import dataclass

import cv2
import numpy as np
from PIL import Image, ImageFilter, ImageOps

from receipt_ocr.quality import decode_image

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PreprocessedImage:
    """Encoded image ready for upload plus the size it was encoded at."""

    content: bytes
    mime_type: str
    width: int
    height: int
    scale: float = 1.0


def preprocess_image_bytes(
    image_bytes: bytes,
    *,
    max_side: int | None = 2000,
    clahe: bool = False,
    clahe_clip_limit: float = 2.0,
    clahe_tile_grid_size: tuple[int, int] = (8, 8),
    autocontrast: bool = True,
    denoise: bool = False,
    sharpen: bool = False,
    sharpen_amount: float = 0.5,
) -> PreprocessedImage:
    """
    Normalize a receipt photo for OCR.

    Steps: grayscale -> optional resize -> optional CLAHE -> optional denoise
    -> autocontrast -> optional sharpen. The result is PNG encoded.

    Raises ImageDecodeError when the bytes are not a decodable image.

    Params:
    - max_side: longest side after downscaling; smaller images are kept as is.
    - clahe: apply OpenCV CLAHE local contrast enhancement.
    - autocontrast: stretch the histogram to the full range.
    - denoise: 3x3 median filter.
    - sharpen: light unsharp mask, strength `sharpen_amount` in 0..1.
    """

    decoded = decode_image(image_bytes)
    work = decoded.rgb.convert("L")
    work, scale = _apply_resize(work, max_side=max_side)
    if clahe:
        work = _apply_clahe(work, clip_limit=clahe_clip_limit, tile_grid_size=clahe_tile_grid_size)
    if denoise:
        work = work.filter(ImageFilter.MedianFilter(size=3))
    if autocontrast:
        work = ImageOps.autocontrast(work)
    if sharpen:
        amount = max(0.0, min(1.0, float(sharpen_amount)))
        percent = max(1, int(200 * amount))
        work = work.filter(ImageFilter.UnsharpMask(radius=1, percent=percent, threshold=3))

    buffer = io.BytesIO()
    work.save(buffer, format="PNG")
    logger.debug(
        "Preprocessed %dx%d -> %dx%d (scale %.3f)",
        decoded.width,
        decoded.height,
        work.width,
        work.height,
        scale,
    )
    return PreprocessedImage(
        content=buffer.getvalue(),
        mime_type="image/png",
        width=work.width,
        height=work.height,
        scale=scale,
    )


def _apply_resize(work: Image.Image, max_side: int | None = None) -> tuple[Image.Image, float]:
    if not max_side:
        return work, 1.0
    max_dim = max(work.width, work.height)
    if max_dim <= max_side:
        return work, 1.0
    scale = max_side / max_dim
    new_size = (
        max(1, int(work.width * scale)),
        max(1, int(work.height * scale)),
    )
    return work.resize(new_size, resample=Image.Resampling.LANCZOS), scale


def _apply_clahe(
    work: Image.Image,
    *,
    clip_limit: float,
    tile_grid_size: tuple[int, int],
) -> Image.Image:
    arr = np.array(work)
    clahe_op = cv2.createCLAHE(clipLimit=clip_limit, tileGridSize=tile_grid_size)
    return Image.fromarray(clahe_op.apply(arr))
