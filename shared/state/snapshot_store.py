"""会话状态持久化端口。

核心逻辑只接收/返回纯 dict 状态；真正的读写由这里的 store 完成，
启动时 `load`，每次状态变更后由会话回调 `save`。

- MemorySnapshotStore：测试/临时运行
- JsonSnapshotStore：单文件 JSON，按 key 分节
- SqliteSnapshotStore：SQLite，每个 key 一行（upsert），另保留 append-only 历史
"""

from __future__ import annotations

import copy
import json
import sqlite3
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Protocol

from shared.utils.logging import setup_logger

_LOGGER = setup_logger("snapshot-store")


def _utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


def _json_dumps(obj: Any) -> str:
    return json.dumps(obj, ensure_ascii=False, default=str, allow_nan=False)


class SnapshotStore(Protocol):
    """持久化协议：按 key 存取纯 JSON 兼容的状态。"""

    def load(self, key: str) -> Any | None:
        ...

    def save(self, key: str, payload: Any) -> None:
        ...


class MemorySnapshotStore:
    def __init__(self, initial: dict[str, Any] | None = None):
        self._data: dict[str, Any] = copy.deepcopy(initial or {})

    def load(self, key: str) -> Any | None:
        if key not in self._data:
            return None
        return copy.deepcopy(self._data[key])

    def save(self, key: str, payload: Any) -> None:
        self._data[key] = copy.deepcopy(payload)


class JsonSnapshotStore:
    """单文件 JSON store；文件损坏时视为空状态。"""

    def __init__(self, path: str | Path):
        self.path = Path(path)

    def _read_all(self) -> dict[str, Any]:
        if not self.path.exists():
            return {}
        try:
            payload = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            _LOGGER.warning("Failed reading state %s: %s", self.path, exc)
            return {}
        return payload if isinstance(payload, dict) else {}

    def load(self, key: str) -> Any | None:
        return self._read_all().get(key)

    def save(self, key: str, payload: Any) -> None:
        data = self._read_all()
        data[key] = payload
        data["updated_at"] = _utc_now_iso()
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_suffix(self.path.suffix + ".tmp")
        tmp.write_text(_json_dumps(data), encoding="utf-8")
        tmp.replace(self.path)


class SqliteSnapshotStore:
    def __init__(self, path: str | Path):
        self.path = Path(path)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._conn = sqlite3.connect(self.path, isolation_level=None)
        self._conn.execute("PRAGMA journal_mode=WAL;")
        self._ensure_schema()

    def close(self) -> None:
        self._conn.close()

    def _ensure_schema(self) -> None:
        self._conn.execute(
            """
            CREATE TABLE IF NOT EXISTS snapshots (
              key TEXT PRIMARY KEY,
              payload_json TEXT NOT NULL,
              updated_at TEXT NOT NULL
            );
            """
        )
        self._conn.execute(
            """
            CREATE TABLE IF NOT EXISTS snapshot_history (
              id INTEGER PRIMARY KEY AUTOINCREMENT,
              key TEXT NOT NULL,
              payload_json TEXT NOT NULL,
              saved_at TEXT NOT NULL
            );
            """
        )
        self._conn.execute("CREATE INDEX IF NOT EXISTS idx_history_key ON snapshot_history(key);")

    def load(self, key: str) -> Any | None:
        row = self._conn.execute(
            "SELECT payload_json FROM snapshots WHERE key = ? LIMIT 1;",
            (key,),
        ).fetchone()
        if row is None:
            return None
        try:
            return json.loads(row[0])
        except ValueError as exc:
            _LOGGER.warning("Corrupt snapshot for key=%s: %s", key, exc)
            return None

    def save(self, key: str, payload: Any) -> None:
        ts = _utc_now_iso()
        body = _json_dumps(payload)
        self._conn.execute(
            """
            INSERT INTO snapshots (key, payload_json, updated_at) VALUES (?, ?, ?)
            ON CONFLICT(key) DO UPDATE SET payload_json = excluded.payload_json, updated_at = excluded.updated_at;
            """,
            (key, body, ts),
        )
        self._conn.execute(
            "INSERT INTO snapshot_history (key, payload_json, saved_at) VALUES (?, ?, ?);",
            (key, body, ts),
        )


def build_snapshot_store(backend: str, path: str) -> SnapshotStore:
    """根据配置选择 store 实现。"""
    name = backend.strip().lower()
    if name == "memory":
        return MemorySnapshotStore()
    if name == "json":
        return JsonSnapshotStore(path)
    if name == "sqlite":
        return SqliteSnapshotStore(path)
    raise ValueError(f"Unknown state backend: {backend}")
