from __future__ import annotations

from pathlib import Path
from typing import Any

import orjson

from domain.models import CanvasDocument


def load_json(path: Path) -> dict[str, Any]:
    data = orjson.loads(path.read_bytes())
    return data if isinstance(data, dict) else {}


def dump_json_bytes(payload: Any) -> bytes:
    return orjson.dumps(payload, option=orjson.OPT_INDENT_2)


def write_json_atomic(path: Path, payload: Any) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = path.with_suffix(f"{path.suffix}.tmp")
    tmp_path.write_bytes(dump_json_bytes(payload))
    tmp_path.replace(path)


def load_snapshot(path: Path) -> CanvasDocument:
    """Read a ``{"canvas_id", "nodes"}`` snapshot file."""
    return CanvasDocument.model_validate(load_json(path))


def save_snapshot(document: CanvasDocument, path: Path) -> None:
    write_json_atomic(path, document.model_dump(mode="json"))
