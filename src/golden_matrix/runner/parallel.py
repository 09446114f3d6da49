from __future__ import annotations

import threading
import time
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from typing import Dict, Iterable, List, Optional

from ..ledger.ledger import RUN_END, RUN_START, Ledger
from ..matrix.builder import MatrixPlan
from ..schemas import CaseReport, InvocationDescriptor, RunReport
from .case_runner import CaseRunner


def _normalize_concurrency(total: int, limit: Optional[int]) -> int:
    if limit is None or limit <= 0:
        return 1
    return max(min(limit, total), 1)


def _guarded(
    case_runner: CaseRunner,
    cell: InvocationDescriptor,
    cancel_event: threading.Event,
) -> CaseReport:
    try:
        return case_runner.run_case(cell, cancel_event)
    except Exception as exc:  # noqa: BLE001
        return CaseReport.for_descriptor(
            cell,
            "ERROR",
            f"EXCEPTION:{exc.__class__.__name__}",
            f"[{cell.resource_key}] {exc}",
        )


def _cancelled_report(cell: InvocationDescriptor) -> CaseReport:
    return CaseReport.for_descriptor(
        cell, "CANCELLED", "CANCELLED", "run cancelled before the case started"
    )


def run_matrix(
    plan: MatrixPlan,
    case_runner: CaseRunner,
    max_workers: Optional[int] = 2,
    run_timeout_s: Optional[float] = None,
    ledger: Optional[Ledger] = None,
    run_id: Optional[str] = None,
    cancel_event: Optional[threading.Event] = None,
) -> RunReport:
    cells: List[InvocationDescriptor] = list(plan)
    run_id = run_id or f"run_{time.time_ns()}"
    cancel_event = cancel_event or threading.Event()
    workers = _normalize_concurrency(len(cells), max_workers)
    if ledger is not None:
        ledger.append(
            RUN_START,
            {"run_id": run_id, "cases": len(cells), "max_workers": workers},
        )
    reports: List[Optional[CaseReport]] = [None] * len(cells)
    interrupted = False
    if cells:
        executor = ThreadPoolExecutor(max_workers=workers, thread_name_prefix="golden-case")
        future_map: Dict[Future[CaseReport], int] = {
            executor.submit(_guarded, case_runner, cell, cancel_event): idx
            for idx, cell in enumerate(cells)
        }
        try:
            _collect(future_map, reports, cancel_event, run_timeout_s)
        except KeyboardInterrupt:
            interrupted = True
            cancel_event.set()
            _drain(future_map, reports)
        finally:
            executor.shutdown(wait=True, cancel_futures=True)
    for idx, cell in enumerate(cells):
        if reports[idx] is None:
            reports[idx] = _cancelled_report(cell)
    report = RunReport(run_id=run_id, cases=[case for case in reports if case is not None])
    if ledger is not None:
        ledger.append(
            RUN_END,
            {
                "run_id": run_id,
                "ok": report.ok,
                "counts": report.counts,
                "cancelled": cancel_event.is_set(),
                "interrupted": interrupted,
            },
        )
    return report


def _collect(
    future_map: Dict[Future[CaseReport], int],
    reports: List[Optional[CaseReport]],
    cancel_event: threading.Event,
    run_timeout_s: Optional[float],
) -> None:
    deadline = None if run_timeout_s is None else time.monotonic() + run_timeout_s
    pending = set(future_map)
    while pending:
        timeout = None if deadline is None else max(0.0, deadline - time.monotonic())
        done, pending = wait(pending, timeout=timeout, return_when=FIRST_COMPLETED)
        _store(done, future_map, reports)
        if pending and deadline is not None and time.monotonic() >= deadline:
            cancel_event.set()
            _drain(future_map, reports)
            return


def _drain(
    future_map: Dict[Future[CaseReport], int],
    reports: List[Optional[CaseReport]],
) -> None:
    # Not-yet-started cases are dropped from the pool; in-flight ones see the
    # cancel event, kill their process and report CANCELLED themselves.
    remaining = [future for future in future_map if not future.done()]
    for future in remaining:
        future.cancel()
    wait(remaining)
    _store(remaining, future_map, reports)


def _store(
    futures: Iterable[Future[CaseReport]],
    future_map: Dict[Future[CaseReport], int],
    reports: List[Optional[CaseReport]],
) -> None:
    for future in futures:
        if future.cancelled():
            continue
        reports[future_map[future]] = future.result()
