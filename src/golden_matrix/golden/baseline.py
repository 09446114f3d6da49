from __future__ import annotations

from pathlib import Path
from typing import Optional

from ..config import Settings
from ..ledger.ledger import BASELINE_WRITE_FAILED, BASELINE_WRITTEN, Ledger
from ..schemas import InvocationDescriptor, InvocationResult, MatchOutcome
from ..utils import content_hash, write_text_atomic


class BaselineCaptureFallback:
    # write_baseline is fixed for the whole run.

    def __init__(
        self,
        baseline_root: Path,
        write_baseline: bool,
        suffix: str = ".out.txt",
        ledger: Optional[Ledger] = None,
    ) -> None:
        self.baseline_root = Path(baseline_root)
        self.write_baseline = write_baseline
        self.suffix = suffix
        self.ledger = ledger

    @classmethod
    def from_settings(
        cls, settings: Settings, ledger: Optional[Ledger] = None
    ) -> "BaselineCaptureFallback":
        return cls(
            settings.baseline_root,
            settings.write_baseline,
            suffix=settings.golden_suffix,
            ledger=ledger,
        )

    def baseline_path(self, descriptor: InvocationDescriptor) -> Path:
        # One directory per scenario group, shared by every case of that group.
        group_dir = descriptor.group_path.replace("/", "-") or "default"
        return self.baseline_root / group_dir / f"{descriptor.file_stem}{self.suffix}"

    def resolve(
        self, descriptor: InvocationDescriptor, result: InvocationResult
    ) -> MatchOutcome:
        key = descriptor.resource_key
        if not self.write_baseline:
            return MatchOutcome.mismatched(
                "GOLDEN_MISSING", f"could not locate golden resource `{key}`"
            )
        path = self.baseline_path(descriptor)
        try:
            write_text_atomic(path, result.stdout)
        except OSError as exc:
            self._record(
                BASELINE_WRITE_FAILED,
                {"resource_key": key, "path": path, "error": f"{exc.__class__.__name__}: {exc}"},
            )
            return MatchOutcome.inconclusive(
                "BASELINE_WRITE_FAILED",
                f"golden resource `{key}` not found; writing baseline to {path} failed: {exc}",
            )
        self._record(
            BASELINE_WRITTEN,
            {
                "resource_key": key,
                "path": path,
                "content_hash": content_hash(result.stdout),
            },
        )
        return MatchOutcome.inconclusive(
            "BASELINE_CAPTURED",
            f"golden resource `{key}` not found\nwrote captured stdout to: {path}",
            baseline_path=str(path),
        )

    def _record(self, event_type: str, payload: dict) -> None:
        if self.ledger is not None:
            self.ledger.append(event_type, payload)
