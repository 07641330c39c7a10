from __future__ import annotations
from typing import Iterator, List, Optional
import sqlite3, os
from omni_core.storage.models import BatchEntry, Direction, ensure_sorted_unique
from omni_core.storage.provider import StorageBackend


class SQLiteStorage(StorageBackend):
    name = "sqlite"

    def __init__(self, path="db/omni_state.db"):
        super().__init__()
        # If no directory, default to current working directory
        dir_path = os.path.dirname(path) or "."
        os.makedirs(dir_path, exist_ok=True)
        self.db = sqlite3.connect(path, check_same_thread=False)
        self._init()

    def _init(self) -> None:
        self.db.execute("""CREATE TABLE IF NOT EXISTS kv(
            key BLOB PRIMARY KEY,
            value BLOB NOT NULL
        )""")
        self.db.commit()

    def _read(self, key: bytes) -> Optional[bytes]:
        row = self.db.execute("SELECT value FROM kv WHERE key=?", (key,)).fetchone()
        return bytes(row[0]) if row else None

    def _apply_batch(self, batch: List[BatchEntry]) -> None:
        ensure_sorted_unique(batch)
        # One transaction: all or nothing
        with self.db:
            self.db.executemany(
                "INSERT INTO kv(key,value) VALUES(?,?) "
                "ON CONFLICT(key) DO UPDATE SET value=excluded.value",
                batch,
            )

    def _iter_committed(self, start, end, direction) -> Iterator[BatchEntry]:
        clauses, params = [], []
        if start is not None:
            clauses.append("key >= ?")
            params.append(start)
        if end is not None:
            clauses.append("key < ?")
            params.append(end)
        where = f" WHERE {' AND '.join(clauses)}" if clauses else ""
        order = "DESC" if direction == Direction.BACKWARD else "ASC"
        cur = self.db.execute(f"SELECT key, value FROM kv{where} ORDER BY key {order}", params)
        for key, value in cur.fetchall():
            yield bytes(key), bytes(value)

    def close(self):
        self.db.close()
