from __future__ import annotations

import json
import sqlite3

import pytest

from shared.state.snapshot_store import (
    JsonSnapshotStore,
    MemorySnapshotStore,
    SqliteSnapshotStore,
    build_snapshot_store,
)


def test_memory_store_copies_payloads():
    store = MemorySnapshotStore()
    payload = {"a": [1, 2]}
    store.save("codes", payload)
    payload["a"].append(3)
    assert store.load("codes") == {"a": [1, 2]}
    assert store.load("missing") is None


def test_json_store_round_trip_by_section(tmp_path):
    path = tmp_path / "state" / "watch.json"
    store = JsonSnapshotStore(path)
    store.save("codes", ["sh600519"])
    store.save("ledger", {"cash": 1.0})
    again = JsonSnapshotStore(path)
    assert again.load("codes") == ["sh600519"]
    assert again.load("ledger") == {"cash": 1.0}


def test_json_store_corrupt_file_loads_empty(tmp_path):
    path = tmp_path / "watch.json"
    path.write_text("{not json", encoding="utf-8")
    store = JsonSnapshotStore(path)
    assert store.load("codes") is None
    store.save("codes", ["hk00700"])
    assert store.load("codes") == ["hk00700"]


def test_sqlite_store_upserts_and_keeps_history(tmp_path):
    path = tmp_path / "state.sqlite"
    store = SqliteSnapshotStore(path)
    try:
        store.save("ledger", {"cash": 1})
        store.save("ledger", {"cash": 2})
        assert store.load("ledger") == {"cash": 2}
        assert store.load("codes") is None
    finally:
        store.close()

    conn = sqlite3.connect(path)
    try:
        rows = conn.execute(
            "SELECT payload_json FROM snapshot_history WHERE key = ? ORDER BY id;", ("ledger",)
        ).fetchall()
    finally:
        conn.close()
    assert [json.loads(r[0]) for r in rows] == [{"cash": 1}, {"cash": 2}]


def test_build_snapshot_store(tmp_path):
    assert isinstance(build_snapshot_store("memory", ""), MemorySnapshotStore)
    assert isinstance(build_snapshot_store("JSON", str(tmp_path / "s.json")), JsonSnapshotStore)
    with pytest.raises(ValueError):
        build_snapshot_store("redis", "x")
