import sys
from pathlib import Path
from typing import Any, Dict, List

import pytest

from golden_matrix.utils import write_json

FIXTURES = Path(__file__).resolve().parent / "fixtures"


@pytest.fixture(autouse=True)
def _isolated_settings(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in (
        "GOLDEN_MATRIX_WRITE_BASELINE",
        "GOLDEN_MATRIX_BASELINE_ROOT",
        "GOLDEN_MATRIX_MAX_WORKERS",
        "GOLDEN_MATRIX_REGEX_MODE",
    ):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def fake_cli_command() -> List[str]:
    return [sys.executable, str(FIXTURES / "fake_cli.py")]


def matrix_payload(**overrides: Any) -> Dict[str, Any]:
    payload: Dict[str, Any] = {
        "command": ["{python}", str(FIXTURES / "fake_cli.py")],
        "constant_args": ["--disable-ansi-colors"],
        "selector_args": ["--select", "{reference}"],
        "key_prefix": "console/details",
        "primary_dimension": "details",
        "dimensions": [
            {
                "name": "details",
                "values": [
                    {"name": "TREE", "args": ["--details", "tree"]},
                    {"name": "VERBOSE", "args": ["--details", "verbose"]},
                ],
            },
            {
                "name": "theme",
                "values": [
                    {"name": "ASCII", "args": ["--theme", "ascii"]},
                    {"name": "UNICODE", "args": ["--theme", "unicode"]},
                ],
            },
        ],
        "scenarios": [
            {
                "qualified_name": "Basic.empty",
                "display_label": "empty()",
                "reference": "Basic#empty()",
            },
            {
                "qualified_name": "Fail.fail",
                "display_label": "fail()",
                "reference": "Fail#fail()",
            },
        ],
    }
    payload.update(overrides)
    return payload


@pytest.fixture
def matrix_file(tmp_path: Path) -> Path:
    path = tmp_path / "matrix.json"
    write_json(path, matrix_payload())
    return path
