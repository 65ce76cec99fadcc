from __future__ import annotations

from pathlib import Path

import pytest

from userdb.engine import SQLiteEngine


@pytest.fixture()
def engine(tmp_path: Path):
    opened = SQLiteEngine(tmp_path / "nested" / "kv.sqlite3")
    yield opened
    opened.close()


def test_point_operations(engine: SQLiteEngine) -> None:
    assert engine.get("missing") is None

    engine.put("alice@example.com", b"first")
    engine.put("alice@example.com", b"second")
    assert engine.get("alice@example.com") == b"second"

    engine.delete("alice@example.com")
    assert engine.get("alice@example.com") is None
    engine.delete("alice@example.com")


def test_iterate_pages_in_byte_order(engine: SQLiteEngine) -> None:
    keys = ["b@example.com", "A@example.com", "a@example.com", "0@example.com", "é@example.com"]
    for key in keys:
        engine.put(key, key.encode("utf-8"))

    expected = sorted(keys, key=lambda value: value.encode("utf-8"))

    seen = []
    start_after = None
    while True:
        page = engine.iterate(start_after, limit=2)
        seen.extend(key for key, _ in page)
        if len(page) < 2:
            break
        start_after = page[-1][0]

    assert seen == expected
    assert engine.count() == len(keys)


def test_batch_is_applied_atomically(engine: SQLiteEngine) -> None:
    engine.put("old@example.com", b"record")

    engine.batch([("put", "new@example.com", b"record"), ("del", "old@example.com")])
    assert engine.get("old@example.com") is None
    assert engine.get("new@example.com") == b"record"

    with pytest.raises(ValueError):
        engine.batch([("del", "new@example.com"), ("bogus", "new@example.com")])
    assert engine.get("new@example.com") == b"record"


def test_data_survives_reopen(tmp_path: Path) -> None:
    path = tmp_path / "kv.sqlite3"
    first = SQLiteEngine(path)
    first.put("durable@example.com", b"value")
    first.close()

    second = SQLiteEngine(path)
    try:
        assert second.get("durable@example.com") == b"value"
    finally:
        second.close()


def test_closed_engine_rejects_calls(tmp_path: Path) -> None:
    engine = SQLiteEngine(tmp_path / "kv.sqlite3")
    engine.close()
    engine.close()
    with pytest.raises(RuntimeError):
        engine.get("anything")
