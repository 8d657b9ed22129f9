from __future__ import annotations
"""Export the OpenAPI v1 contract of the receipt API for client review."""

import json
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
DEFAULT_OUT = ROOT / "openapi_v1.json"


def openapi_contract_subset(spec: dict) -> dict:
    """Keep the /v1 routes, the health probe and the schema components."""

    paths = {
        path: methods
        for path, methods in spec.get("paths", {}).items()
        if path.startswith("/v1/") or path == "/healthz"
    }
    components = spec.get("components", {}).get("schemas", {})
    return {"paths": paths, "schemas": components}


def main(out_path: Path = DEFAULT_OUT) -> Path:
    """Write the current OpenAPI subset as sorted JSON."""

    sys.path.insert(0, str(ROOT / "src"))
    from receipt_ocr.api.main import app

    out = openapi_contract_subset(app.openapi())
    out_path.write_text(
        json.dumps(out, ensure_ascii=False, indent=2, sort_keys=True),
        encoding="utf-8",
    )
    print(f"[openapi] written: {out_path}")
    return out_path


if __name__ == "__main__":
    main(Path(sys.argv[1]) if len(sys.argv) > 1 else DEFAULT_OUT)
