from __future__ import annotations

from pathlib import Path
from typing import Optional

from ..config import Settings
from ..golden.baseline import BaselineCaptureFallback
from ..golden.locator import DirectoryGoldenStore
from ..invoke.adapter import SubprocessInvocationAdapter
from ..ledger.ledger import Ledger
from ..matrix.definition import MatrixDefinition
from ..schemas import RunReport
from ..utils import ensure_dir, stable_hash, write_json
from .case_runner import CaseRunner
from .parallel import run_matrix


def run_definition(
    definition: MatrixDefinition,
    base_dir: Path,
    golden_root: Path,
    out_dir: Path,
    settings: Optional[Settings] = None,
) -> RunReport:
    settings = settings or Settings()
    # The plan is built, and any configuration error raised, before a single process starts.
    plan = definition.build_plan()
    ensure_dir(out_dir)
    ledger = Ledger(out_dir / "ledger.jsonl")
    adapter = SubprocessInvocationAdapter(
        definition.resolved_command(base_dir),
        cwd=definition.resolved_cwd(base_dir),
        timeout_s=settings.invocation_timeout_s,
    )
    runner = CaseRunner(
        adapter,
        DirectoryGoldenStore(golden_root, suffix=settings.golden_suffix),
        BaselineCaptureFallback.from_settings(settings, ledger=ledger),
        settings=settings,
        ledger=ledger,
    )
    run_id = "run_" + stable_hash(
        {"definition": definition.definition_hash(), "golden_root": str(golden_root)}
    )[:16]
    report = run_matrix(
        plan,
        runner,
        max_workers=settings.max_workers,
        run_timeout_s=settings.run_timeout_s,
        ledger=ledger,
        run_id=run_id,
    )
    write_json(out_dir / "report.json", report.to_payload())
    return report
