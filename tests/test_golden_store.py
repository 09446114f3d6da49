from pathlib import Path

import pytest

from golden_matrix.config import Settings
from golden_matrix.golden.baseline import BaselineCaptureFallback
from golden_matrix.golden.locator import (
    DirectoryGoldenStore,
    MappingGoldenStore,
    PackageGoldenStore,
)
from golden_matrix.golden.promote import promote_baselines
from golden_matrix.ledger.ledger import BASELINE_WRITE_FAILED, BASELINE_WRITTEN, Ledger
from golden_matrix.matrix.builder import ArgumentTemplate, build_matrix
from golden_matrix.schemas import (
    ConfigurationDimension,
    DimensionValue,
    InvocationResult,
    ScenarioDescriptor,
)


def _plan():
    return build_matrix(
        [
            ScenarioDescriptor(qualified_name="Basic.empty", reference="Basic#empty()"),
            ScenarioDescriptor(qualified_name="Skip.skipped", reference="Skip#skipped()"),
        ],
        [
            ConfigurationDimension(
                name="theme", values=(DimensionValue(name="ASCII"), DimensionValue(name="UNICODE"))
            )
        ],
        ArgumentTemplate(key_prefix="console/details"),
    )


def test_directory_store_found_and_absent(tmp_path: Path) -> None:
    store = DirectoryGoldenStore(tmp_path)
    target = tmp_path / "console" / "basic" / "empty-ascii.out.txt"
    target.parent.mkdir(parents=True)
    target.write_bytes(b"line\n")
    assert store.locate("console/basic/empty-ascii") == b"line\n"
    assert store.locate("console/basic/empty-unicode") is None
    assert store.locate("console/missing-dir/x") is None


def test_directory_store_treats_escaping_keys_as_absent(tmp_path: Path) -> None:
    (tmp_path / "secret.out.txt").write_text("x", encoding="utf-8")
    store = DirectoryGoldenStore(tmp_path / "goldens")
    assert store.locate("../secret") is None
    assert store.locate("/etc/passwd") is None
    assert store.locate("") is None


def test_mapping_store() -> None:
    store = MappingGoldenStore({"a/b": b"x"})
    assert store.locate("a/b") == b"x"
    assert store.locate("a/c") is None


def test_package_store(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    package = tmp_path / "golden_fixture_pkg"
    (package / "console").mkdir(parents=True)
    (package / "__init__.py").write_text("", encoding="utf-8")
    (package / "console" / "empty-ascii.out.txt").write_bytes(b"from package\n")
    monkeypatch.syspath_prepend(str(tmp_path))
    store = PackageGoldenStore("golden_fixture_pkg")
    assert store.locate("console/empty-ascii") == b"from package\n"
    assert store.locate("console/empty-unicode") is None
    assert PackageGoldenStore("no_such_golden_pkg").locate("console/empty-ascii") is None


def test_missing_golden_without_capture_fails_hard(tmp_path: Path) -> None:
    cell = _plan().cells[0]
    fallback = BaselineCaptureFallback(tmp_path / "baselines", write_baseline=False)
    outcome = fallback.resolve(cell, InvocationResult(stdout="out\n"))
    assert outcome.status == "MISMATCHED"
    assert outcome.reason == "GOLDEN_MISSING"
    assert "console/details/basic/empty-ascii" in outcome.message
    assert not (tmp_path / "baselines").exists()


def test_missing_golden_with_capture_writes_one_file_per_key(tmp_path: Path) -> None:
    ledger = Ledger(tmp_path / "ledger.jsonl")
    fallback = BaselineCaptureFallback(tmp_path / "baselines", write_baseline=True, ledger=ledger)
    plan = _plan()
    for cell in plan:
        outcome = fallback.resolve(cell, InvocationResult(stdout=f"{cell.resource_key}\n"))
        assert outcome.status == "INCONCLUSIVE"
        assert outcome.reason == "BASELINE_CAPTURED"
        assert cell.resource_key in outcome.message
    # Retrying a case replaces its baseline instead of adding another file.
    fallback.resolve(plan.cells[0], InvocationResult(stdout="again\n"))

    basic_dir = tmp_path / "baselines" / "console-details-basic"
    skip_dir = tmp_path / "baselines" / "console-details-skip"
    assert sorted(path.name for path in basic_dir.iterdir()) == [
        "empty-ascii.out.txt",
        "empty-unicode.out.txt",
    ]
    assert sorted(path.name for path in skip_dir.iterdir()) == [
        "skipped-ascii.out.txt",
        "skipped-unicode.out.txt",
    ]
    assert (basic_dir / "empty-ascii.out.txt").read_text(encoding="utf-8") == "again\n"
    assert len(ledger.events(BASELINE_WRITTEN)) == 5
    ok, _ = Ledger.verify_chain(ledger.path)
    assert ok


def test_baseline_write_failure_still_resolves(tmp_path: Path) -> None:
    blocker = tmp_path / "baselines"
    blocker.write_text("not a directory", encoding="utf-8")
    ledger = Ledger(tmp_path / "ledger.jsonl")
    fallback = BaselineCaptureFallback(blocker, write_baseline=True, ledger=ledger)
    outcome = fallback.resolve(_plan().cells[0], InvocationResult(stdout="x\n"))
    assert outcome.status == "INCONCLUSIVE"
    assert outcome.reason == "BASELINE_WRITE_FAILED"
    assert outcome.baseline_path is None
    assert len(ledger.events(BASELINE_WRITE_FAILED)) == 1


def test_fallback_from_settings(tmp_path: Path) -> None:
    settings = Settings(write_baseline=True, baseline_root=tmp_path, golden_suffix=".txt")
    fallback = BaselineCaptureFallback.from_settings(settings)
    cell = _plan().cells[1]
    assert fallback.write_baseline
    assert fallback.baseline_path(cell) == tmp_path / "console-details-basic" / "empty-unicode.txt"


def test_promote_copies_captured_baselines(tmp_path: Path) -> None:
    plan = _plan()
    fallback = BaselineCaptureFallback(tmp_path / "baselines", write_baseline=True)
    fallback.resolve(plan.cells[0], InvocationResult(stdout="captured\n"))
    fallback.resolve(plan.cells[1], InvocationResult(stdout="captured too\n"))
    store = DirectoryGoldenStore(tmp_path / "goldens")
    existing = store.path_for(plan.cells[1].resource_key)
    existing.parent.mkdir(parents=True)
    existing.write_text("reviewed\n", encoding="utf-8")

    records = promote_baselines(plan, fallback, store)
    assert [(record.resource_key, record.action) for record in records] == [
        ("console/details/basic/empty-ascii", "promoted"),
        ("console/details/basic/empty-unicode", "kept"),
    ]
    assert store.locate("console/details/basic/empty-ascii") == b"captured\n"
    assert store.locate("console/details/basic/empty-unicode") == b"reviewed\n"

    promote_baselines(plan, fallback, store, overwrite=True)
    assert store.locate("console/details/basic/empty-unicode") == b"captured too\n"


def test_capture_flag_from_environment(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.setenv("GOLDEN_MATRIX_WRITE_BASELINE", "true")
    monkeypatch.setenv("GOLDEN_MATRIX_BASELINE_ROOT", str(tmp_path))
    settings = Settings()
    assert settings.write_baseline is True
    assert settings.baseline_root == tmp_path
    assert BaselineCaptureFallback.from_settings(settings).write_baseline


def test_failed_baseline_replace_leaves_no_temp_file(tmp_path: Path) -> None:
    cell = _plan().cells[0]
    fallback = BaselineCaptureFallback(tmp_path, write_baseline=True)
    target = fallback.baseline_path(cell)
    # A non-empty directory at the target path makes the final rename fail.
    (target / "occupied").mkdir(parents=True)
    outcome = fallback.resolve(cell, InvocationResult(stdout="x\n"))
    assert outcome.reason == "BASELINE_WRITE_FAILED"
    assert [path.name for path in target.parent.iterdir()] == [target.name]
