from __future__ import annotations

from typing import Literal

SCHEMA_VERSION: Literal["v1"] = "v1"
