from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, Optional

import typer
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from .config import Settings, load_settings
from .errors import ConfigurationError
from .golden.baseline import BaselineCaptureFallback
from .golden.locator import DirectoryGoldenStore
from .golden.promote import promote_baselines
from .ledger.ledger import Ledger
from .matching.lines import match_text
from .matrix.builder import MatrixPlan
from .matrix.definition import MatrixDefinition, load_matrix
from .runner.session import run_definition
from .schemas import RunReport
from .utils import canonical_dumps

app = typer.Typer(help="Golden-output matrix verification for CLI programs")
console = Console()

MATRIX_FILE_OPTION = typer.Option(..., "--matrix-file", exists=True, dir_okay=False)
GOLDEN_ROOT_OPTION = typer.Option(..., "--golden-root", file_okay=False)
OUT_DIR_OPTION = typer.Option(..., "--out-dir", file_okay=False)
CONFIG_OPTION = typer.Option(None, "--config", exists=True, dir_okay=False)
WRITE_BASELINE_OPTION = typer.Option(
    False,
    "--write-baseline",
    help="Capture output of cases without a golden file and skip them instead of failing.",
)
BASELINE_ROOT_OPTION = typer.Option(None, "--baseline-root", file_okay=False)
WORKERS_OPTION = typer.Option(None, "--workers", min=1)
TIMEOUT_OPTION = typer.Option(None, "--timeout", help="Per-invocation timeout in seconds.")
RUN_TIMEOUT_OPTION = typer.Option(None, "--run-timeout", help="Whole-run timeout in seconds.")
JSON_OPTION = typer.Option(False, "--json")
EXPECTED_OPTION = typer.Option(..., "--expected", exists=True, dir_okay=False)
ACTUAL_OPTION = typer.Option(..., "--actual", exists=True, dir_okay=False)
REGEX_MODE_OPTION = typer.Option(None, "--regex-mode", help="implicit or explicit")
OVERWRITE_OPTION = typer.Option(False, "--overwrite")
RUN_DIR_REQUIRED_OPTION = typer.Option(..., "--run-dir", exists=True, file_okay=False)

baseline_app = typer.Typer(help="Captured baseline commands")
ledger_app = typer.Typer(help="Run ledger commands")


@app.callback()
def main() -> None:
    pass


def _load_definition(matrix_file: Path) -> MatrixDefinition:
    try:
        return load_matrix(matrix_file)
    except ConfigurationError as exc:
        console.print(f"[red]configuration error[/red] {exc.failure_atom}: {escape(exc.message)}")
        raise typer.Exit(code=2) from exc


def _build_plan(definition: MatrixDefinition) -> MatrixPlan:
    try:
        return definition.build_plan()
    except ConfigurationError as exc:
        console.print(f"[red]configuration error[/red] {exc.failure_atom}: {escape(exc.message)}")
        raise typer.Exit(code=2) from exc


def _apply_overrides(settings: Settings, updates: Dict[str, Any]) -> Settings:
    updates = {key: value for key, value in updates.items() if value is not None}
    if not updates:
        return settings
    return settings.model_copy(update=updates)


def _print_report(report: RunReport) -> None:
    table = Table(title=f"Golden matrix {report.run_id}")
    table.add_column("Group")
    table.add_column("Case")
    table.add_column("Resource")
    table.add_column("Status")
    table.add_column("Reason")
    styles = {
        "MATCHED": "green",
        "MISMATCHED": "red",
        "INCONCLUSIVE": "yellow",
        "ERROR": "red",
        "CANCELLED": "magenta",
    }
    for case in report.cases:
        style = styles.get(case.status, "")
        table.add_row(
            escape(case.primary_value),
            escape(case.label),
            escape(case.resource_key),
            f"[{style}]{case.status}[/{style}]" if style else case.status,
            escape(case.reason),
        )
    console.print(table)
    for case in report.cases:
        if case.status != "MATCHED" and case.message:
            console.print(escape(case.message))
    console.print(report.counts)


@app.command("plan")
def plan_cmd(matrix_file: Path = MATRIX_FILE_OPTION, as_json: bool = JSON_OPTION) -> None:
    definition = _load_definition(matrix_file)
    plan = _build_plan(definition)
    if as_json:
        payload = [
            {
                "resource_key": cell.resource_key,
                "label": cell.label,
                "primary_value": cell.primary_value,
                "argv": list(cell.argv),
            }
            for cell in plan
        ]
        typer.echo(canonical_dumps(payload).decode("utf-8"))
        return
    for primary, cells in plan.groups():
        table = Table(title=primary or "cases")
        table.add_column("Case")
        table.add_column("Resource")
        table.add_column("Arguments")
        for cell in cells:
            table.add_row(
                escape(cell.label), escape(cell.resource_key), escape(" ".join(cell.argv))
            )
        console.print(table)


@app.command("run")
def run_cmd(
    matrix_file: Path = MATRIX_FILE_OPTION,
    golden_root: Path = GOLDEN_ROOT_OPTION,
    out_dir: Path = OUT_DIR_OPTION,
    config: Optional[Path] = CONFIG_OPTION,
    write_baseline: bool = WRITE_BASELINE_OPTION,
    baseline_root: Optional[Path] = BASELINE_ROOT_OPTION,
    workers: Optional[int] = WORKERS_OPTION,
    timeout: Optional[float] = TIMEOUT_OPTION,
    run_timeout: Optional[float] = RUN_TIMEOUT_OPTION,
) -> None:
    settings = _apply_overrides(
        load_settings(config),
        {
            "write_baseline": True if write_baseline else None,
            "baseline_root": baseline_root,
            "max_workers": workers,
            "invocation_timeout_s": timeout,
            "run_timeout_s": run_timeout,
        },
    )
    definition = _load_definition(matrix_file)
    try:
        report = run_definition(
            definition, matrix_file.resolve().parent, golden_root, out_dir, settings
        )
    except ConfigurationError as exc:
        console.print(f"[red]configuration error[/red] {exc.failure_atom}: {escape(exc.message)}")
        raise typer.Exit(code=2) from exc
    _print_report(report)
    if not report.ok:
        raise typer.Exit(code=1)


@app.command("match")
def match_cmd(
    expected: Path = EXPECTED_OPTION,
    actual: Path = ACTUAL_OPTION,
    regex_mode: Optional[str] = REGEX_MODE_OPTION,
    config: Optional[Path] = CONFIG_OPTION,
) -> None:
    if regex_mode is not None and regex_mode not in {"implicit", "explicit"}:
        raise typer.BadParameter(f"unknown regex mode: {regex_mode}")
    settings = _apply_overrides(load_settings(config), {"regex_mode": regex_mode})
    outcome = match_text(
        expected.read_text(encoding="utf-8", errors="replace"),
        actual.read_text(encoding="utf-8", errors="replace"),
        settings,
    )
    if outcome.ok:
        console.print({"status": outcome.status})
        return
    console.print(escape(outcome.describe(str(expected))))
    raise typer.Exit(code=1)


@baseline_app.command("promote")
def baseline_promote_cmd(
    matrix_file: Path = MATRIX_FILE_OPTION,
    golden_root: Path = GOLDEN_ROOT_OPTION,
    baseline_root: Optional[Path] = BASELINE_ROOT_OPTION,
    config: Optional[Path] = CONFIG_OPTION,
    overwrite: bool = OVERWRITE_OPTION,
) -> None:
    settings = _apply_overrides(load_settings(config), {"baseline_root": baseline_root})
    plan = _build_plan(_load_definition(matrix_file))
    records = promote_baselines(
        plan,
        BaselineCaptureFallback.from_settings(settings),
        DirectoryGoldenStore(golden_root, suffix=settings.golden_suffix),
        overwrite=overwrite,
    )
    table = Table(title="Baseline promotion")
    table.add_column("Resource")
    table.add_column("Action")
    table.add_column("Target")
    for record in records:
        table.add_row(escape(record.resource_key), record.action, escape(str(record.target)))
    console.print(table)
    console.print({"promoted": sum(1 for record in records if record.action == "promoted")})


@ledger_app.command("verify")
def ledger_verify_cmd(run_dir: Path = RUN_DIR_REQUIRED_OPTION) -> None:
    ok, message = Ledger.verify_chain(run_dir / "ledger.jsonl")
    console.print({"ok": ok, "message": message})
    if not ok:
        raise typer.Exit(code=1)


app.add_typer(baseline_app, name="baseline")
app.add_typer(ledger_app, name="ledger")

if __name__ == "__main__":
    app()
