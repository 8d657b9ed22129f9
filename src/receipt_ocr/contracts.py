"""Schema definitions for OCR tokens and extracted receipt fields."""

from __future__ import annotations

from typing import Dict, List, Optional

from pydantic import BaseModel, Field

from receipt_ocr.models.enums import ConfidenceTier


class BoundingBox(BaseModel):
    """Axis-aligned bounding box in pixel space."""

    x: float
    y: float
    width: float
    height: float

    @property
    def right(self) -> float:
        return self.x + self.width

    @property
    def bottom(self) -> float:
        return self.y + self.height

    @property
    def center_x(self) -> float:
        return self.x + self.width / 2

    @property
    def center_y(self) -> float:
        return self.y + self.height / 2

    def distance_to(self, other: "BoundingBox") -> float:
        """Euclidean distance between box centres."""

        dx = other.center_x - self.center_x
        dy = other.center_y - self.center_y
        return (dx * dx + dy * dy) ** 0.5

    @classmethod
    def enclosing(cls, boxes: List["BoundingBox"]) -> "BoundingBox":
        """Smallest box containing every box in `boxes`."""

        x0 = min(b.x for b in boxes)
        y0 = min(b.y for b in boxes)
        x1 = max(b.right for b in boxes)
        y1 = max(b.bottom for b in boxes)
        return cls(x=x0, y=y0, width=x1 - x0, height=y1 - y0)


class Token(BaseModel):
    """Token with text, bbox, and confidence."""

    text: str
    confidence: float = Field(default=1.0, ge=0.0, le=1.0)
    page_no: int = Field(default=1, ge=1)
    bbox: BoundingBox


class RecognitionResult(BaseModel):
    """Raw output of one call to the external text recognition service."""

    text: str = ""
    tokens: List[Token] = Field(default_factory=list)
    page_width: Optional[float] = None
    page_height: Optional[float] = None
    confidence: Optional[float] = Field(default=None, ge=0.0, le=1.0)
    engine: str = ""

    @property
    def has_spatial_data(self) -> bool:
        return bool(self.tokens)


class FieldCandidate(BaseModel):
    """Single extracted field with confidence and evidence."""

    name: str
    value: Optional[str] = None
    confidence: float = Field(default=0.0, ge=0.0, le=1.0)
    ocr_confidence: float = Field(default=0.0, ge=0.0, le=1.0)
    certainty: float = Field(default=0.0, ge=0.0, le=1.0)
    tier: ConfidenceTier = ConfidenceTier.POOR
    method: str = ""
    raw: Optional[str] = None
    bbox: Optional[BoundingBox] = None
    candidates: List[str] = Field(
        default_factory=list,
        description="Alternative values ordered by score.",
    )

    @property
    def found(self) -> bool:
        return self.value is not None

    @property
    def amount(self) -> Optional[float]:
        """Numeric view of money fields; None for missing or non-numeric values."""

        if self.value is None:
            return None
        try:
            return float(self.value)
        except ValueError:
            return None


class LineItem(BaseModel):
    """One purchased item parsed from the items section."""

    description: str
    quantity: Optional[int] = None
    unit_price: Optional[float] = None
    total_price: float
    confidence: float = Field(default=0.0, ge=0.0, le=1.0)
    bbox: Optional[BoundingBox] = None


class ExtractedFields(BaseModel):
    """Structured receipt fields produced by spatial extraction."""

    vendor: FieldCandidate = Field(default_factory=lambda: FieldCandidate(name="vendor"))
    date: FieldCandidate = Field(default_factory=lambda: FieldCandidate(name="date"))
    subtotal: FieldCandidate = Field(default_factory=lambda: FieldCandidate(name="subtotal"))
    tax: FieldCandidate = Field(default_factory=lambda: FieldCandidate(name="tax"))
    total: FieldCandidate = Field(default_factory=lambda: FieldCandidate(name="total"))
    line_items: List[LineItem] = Field(default_factory=list)
    line_items_confidence: float = Field(default=0.0, ge=0.0, le=1.0)
    raw_text: str = ""
    spatial: bool = True
    meta: Dict[str, str] = Field(
        default_factory=dict,
        description="Extraction metadata such as engine and token counts.",
    )

    def scalar_fields(self) -> List[FieldCandidate]:
        return [self.vendor, self.date, self.subtotal, self.tax, self.total]
