from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict


class StrictModel(BaseModel):
    """Base model that rejects unknown fields to keep schema strict."""

    model_config = ConfigDict(extra="forbid")


class FrozenModel(BaseModel):
    """Strict model that cannot be mutated once built."""

    model_config = ConfigDict(extra="forbid", frozen=True)


class ErrorInfo(StrictModel):
    """Normalized error payload for a failed pipeline stage."""

    code: str
    message: str
    details: dict[str, Any] | None = None
