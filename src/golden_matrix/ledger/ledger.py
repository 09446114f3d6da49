from __future__ import annotations

import threading
import time
from collections import Counter
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from ..utils import append_jsonl, read_jsonl, stable_hash

RUN_START = "RUN_START"
RUN_END = "RUN_END"
CASE_START = "CASE_START"
CASE_END = "CASE_END"
BASELINE_WRITTEN = "BASELINE_WRITTEN"
BASELINE_WRITE_FAILED = "BASELINE_WRITE_FAILED"


class Ledger:
    # Appends come from worker threads; chain order is append order, not plan order.

    def __init__(self, path: Path) -> None:
        self.path = path
        self._last_hash = ""
        self._lock = threading.Lock()
        if path.exists():
            entries = read_jsonl(path)
            if entries:
                self._last_hash = entries[-1].get("hash", "")

    def append(self, event_type: str, payload: Dict[str, Any]) -> str:
        with self._lock:
            event = {
                "ts": time.time_ns(),
                "type": event_type,
                "payload": payload,
                "prev_hash": self._last_hash,
            }
            event_hash = stable_hash(event)
            event["hash"] = event_hash
            append_jsonl(self.path, event)
            self._last_hash = event_hash
        return event_hash

    def events(self, event_type: Optional[str] = None) -> List[Dict[str, Any]]:
        entries = read_jsonl(self.path)
        if event_type is None:
            return entries
        return [entry for entry in entries if entry.get("type") == event_type]

    def event_counts(self) -> Dict[str, int]:
        return dict(Counter(entry.get("type", "") for entry in read_jsonl(self.path)))

    @staticmethod
    def verify_chain(path: Path) -> Tuple[bool, str]:
        entries = read_jsonl(path)
        prev_hash = ""
        for idx, entry in enumerate(entries):
            expected_hash = entry.get("hash", "")
            recomputed = stable_hash(
                {
                    "ts": entry.get("ts"),
                    "type": entry.get("type"),
                    "payload": entry.get("payload"),
                    "prev_hash": entry.get("prev_hash"),
                }
            )
            if entry.get("prev_hash") != prev_hash:
                return False, f"prev_hash mismatch at {idx}"
            if recomputed != expected_hash:
                return False, f"hash mismatch at {idx}"
            prev_hash = expected_hash
        return True, f"ok ({len(entries)} events)"
