from __future__ import annotations

import io

import numpy as np
import pytest
from PIL import Image

from receipt_ocr.errors import ImageDecodeError
from receipt_ocr.preprocess import preprocess_image_bytes


def _make_jpeg(width: int, height: int) -> bytes:
    rng = np.random.default_rng(5)
    pixels = rng.integers(60, 200, size=(height, width, 3), dtype=np.uint8)
    buf = io.BytesIO()
    Image.fromarray(pixels).save(buf, format="JPEG")
    return buf.getvalue()


def test_large_image_is_downscaled_to_png() -> None:
    prepared = preprocess_image_bytes(_make_jpeg(2000, 1000), max_side=1000)

    assert prepared.mime_type == "image/png"
    assert (prepared.width, prepared.height) == (1000, 500)
    assert prepared.scale == 0.5
    with Image.open(io.BytesIO(prepared.content)) as img:
        assert img.format == "PNG"
        assert img.mode == "L"


def test_small_image_keeps_size_with_every_filter() -> None:
    prepared = preprocess_image_bytes(
        _make_jpeg(400, 300),
        clahe=True,
        denoise=True,
        sharpen=True,
    )

    assert (prepared.width, prepared.height) == (400, 300)
    assert prepared.scale == 1.0


def test_undecodable_bytes_raise() -> None:
    with pytest.raises(ImageDecodeError):
        preprocess_image_bytes(b"\x00\x01garbage")
