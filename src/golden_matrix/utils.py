from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Dict, List

import orjson
from blake3 import blake3
from pydantic import BaseModel


def _encode_extra(value: Any) -> Any:
    if isinstance(value, Path):
        return str(value)
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json")
    raise TypeError(f"cannot encode {type(value).__name__}")


def canonical_dumps(data: Any) -> bytes:
    return orjson.dumps(data, default=_encode_extra, option=orjson.OPT_SORT_KEYS)


def stable_hash(data: Any) -> str:
    return blake3(canonical_dumps(data)).hexdigest()


def content_hash(text: str) -> str:
    return blake3(text.encode("utf-8")).hexdigest()


def ensure_dir(path: Path) -> None:
    path.mkdir(parents=True, exist_ok=True)


def read_json(path: Path) -> Any:
    return orjson.loads(path.read_bytes())


def write_json(path: Path, data: Any) -> None:
    ensure_dir(path.parent)
    path.write_bytes(canonical_dumps(data))


def write_text_atomic(path: Path, text: str) -> None:
    # Same final name on every call, so a repeated write replaces instead of duplicating.
    ensure_dir(path.parent)
    tmp_path = path.with_name(f".{path.name}.{os.getpid()}.tmp")
    try:
        tmp_path.write_bytes(text.encode("utf-8"))
        os.replace(tmp_path, path)
    finally:
        tmp_path.unlink(missing_ok=True)


def append_jsonl(path: Path, record: Dict[str, Any]) -> None:
    ensure_dir(path.parent)
    with path.open("ab") as handle:
        handle.write(canonical_dumps(record) + b"\n")


def read_jsonl(path: Path) -> List[Dict[str, Any]]:
    if not path.exists():
        return []
    with path.open("rb") as handle:
        return [orjson.loads(line) for line in handle if line.strip()]
