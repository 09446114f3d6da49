from __future__ import annotations

import threading
import time
from pathlib import Path
from typing import Optional

from ..config import Settings
from ..errors import CaseCancelled, InvocationError
from ..golden.baseline import BaselineCaptureFallback
from ..golden.locator import GoldenLocator
from ..invoke.adapter import InvocationAdapter
from ..ledger.ledger import CASE_END, CASE_START, Ledger
from ..matching.lines import match_lines, parse_golden, split_lines
from ..schemas import CaseReport, InvocationDescriptor, MatchOutcome


class CaseRunner:
    def __init__(
        self,
        adapter: InvocationAdapter,
        locator: GoldenLocator,
        fallback: BaselineCaptureFallback,
        settings: Optional[Settings] = None,
        ledger: Optional[Ledger] = None,
        cwd: Optional[Path] = None,
    ) -> None:
        self.adapter = adapter
        self.locator = locator
        self.fallback = fallback
        self.settings = settings or Settings()
        self.ledger = ledger
        self.cwd = cwd

    def run_case(
        self,
        descriptor: InvocationDescriptor,
        cancel_event: Optional[threading.Event] = None,
    ) -> CaseReport:
        start = time.time_ns()
        self._record(CASE_START, {"resource_key": descriptor.resource_key})
        report = self._run(descriptor, cancel_event)
        report.duration_ns = time.time_ns() - start
        self._record(
            CASE_END,
            {
                "resource_key": report.resource_key,
                "status": report.status,
                "reason": report.reason,
                "exit_status": report.exit_status,
            },
        )
        return report

    def _run(
        self,
        descriptor: InvocationDescriptor,
        cancel_event: Optional[threading.Event],
    ) -> CaseReport:
        key = descriptor.resource_key
        try:
            result = self.adapter.invoke(descriptor.argv, cwd=self.cwd, cancel_event=cancel_event)
        except CaseCancelled as exc:
            return CaseReport.for_descriptor(descriptor, "CANCELLED", "CANCELLED", exc.message)
        except InvocationError as exc:
            return CaseReport.for_descriptor(
                descriptor, "ERROR", exc.failure_atom, f"[{key}] {exc.message}"
            )

        try:
            golden = self.locator.locate(key)
        except OSError as exc:
            return CaseReport.for_descriptor(
                descriptor,
                "ERROR",
                "GOLDEN_UNREADABLE",
                f"[{key}] golden resource exists but cannot be read: {exc}",
                exit_status=result.exit_status,
            )

        if golden is None:
            outcome = self.fallback.resolve(descriptor, result)
        else:
            expected = parse_golden(golden.decode("utf-8", errors="replace"), self.settings)
            outcome = match_lines(expected, split_lines(result.stdout))
        return self._report(descriptor, outcome, result.exit_status)

    @staticmethod
    def _report(
        descriptor: InvocationDescriptor, outcome: MatchOutcome, exit_status: int
    ) -> CaseReport:
        message = "" if outcome.ok else outcome.describe(descriptor.resource_key)
        return CaseReport.for_descriptor(
            descriptor,
            outcome.status,
            outcome.reason,
            message,
            exit_status=exit_status,
            baseline_path=outcome.baseline_path,
            detail=None if outcome.ok else outcome,
        )

    def _record(self, event_type: str, payload: dict) -> None:
        if self.ledger is not None:
            self.ledger.append(event_type, payload)
