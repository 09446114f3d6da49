import threading
from pathlib import Path

import orjson

from golden_matrix.ledger.ledger import CASE_END, CASE_START, RUN_END, RUN_START, Ledger
from golden_matrix.utils import canonical_dumps, stable_hash


def test_ledger_chain_verification(tmp_path: Path) -> None:
    ledger_path = tmp_path / "ledger.jsonl"
    ledger = Ledger(ledger_path)
    ledger.append(RUN_START, {"run_id": "r1", "cases": 1})
    ledger.append(RUN_END, {"run_id": "r1", "ok": True})
    ok, message = Ledger.verify_chain(ledger_path)
    assert ok
    assert message == "ok (2 events)"

    lines = ledger_path.read_text(encoding="utf-8").splitlines()
    entry = orjson.loads(lines[0])
    entry["payload"]["cases"] = 2
    lines[0] = orjson.dumps(entry, option=orjson.OPT_SORT_KEYS).decode("utf-8")
    ledger_path.write_text("\n".join(lines) + "\n", encoding="utf-8")
    ok, _ = Ledger.verify_chain(ledger_path)
    assert not ok


def test_reopened_ledger_continues_the_chain(tmp_path: Path) -> None:
    ledger_path = tmp_path / "ledger.jsonl"
    Ledger(ledger_path).append(RUN_START, {"run_id": "r1"})
    Ledger(ledger_path).append(RUN_END, {"run_id": "r1"})
    ok, _ = Ledger.verify_chain(ledger_path)
    assert ok
    assert Ledger(ledger_path).event_counts() == {RUN_START: 1, RUN_END: 1}


def test_concurrent_appends_keep_the_chain_intact(tmp_path: Path) -> None:
    ledger = Ledger(tmp_path / "ledger.jsonl")

    def record(idx: int) -> None:
        ledger.append(CASE_START, {"resource_key": f"group/case-{idx}"})
        ledger.append(CASE_END, {"resource_key": f"group/case-{idx}", "status": "MATCHED"})

    threads = [threading.Thread(target=record, args=(idx,)) for idx in range(8)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    ok, message = Ledger.verify_chain(ledger.path)
    assert ok, message
    assert ledger.event_counts() == {CASE_START: 8, CASE_END: 8}
    assert len(ledger.events(CASE_END)) == 8


def test_canonical_hash_stability() -> None:
    assert stable_hash({"b": [2, 3], "a": 1}) == stable_hash({"a": 1, "b": [2, 3]})
    assert canonical_dumps({"b": 1, "a": 2}) == b'{"a":2,"b":1}'
