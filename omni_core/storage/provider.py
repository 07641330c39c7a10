# omni_core/storage/provider.py
"""
Storage backend interface for ledger state.

Writes go to an in-memory stage owned by a single writer. ``get`` reads
committed state only; ``get_staged`` checks the stage first. ``commit``
hands the stage, sorted and de-duplicated, to ``_apply_batch`` and then
clears it.
"""

from __future__ import annotations
from typing import Dict, Iterator, List, Optional
from omni_core.logger import get_logger
from omni_core.storage.models import BatchEntry, Direction, ensure_sorted_unique, merkle_root

log = get_logger("omni.storage")


class StorageBackend:
    name: str = "base"

    def __init__(self):
        self._stage: Dict[bytes, bytes] = {}

    # Provider hooks
    def _read(self, key: bytes) -> Optional[bytes]:
        raise NotImplementedError

    def _apply_batch(self, batch: List[BatchEntry]) -> None:
        """Persist ``batch`` atomically. Keys are sorted and unique."""
        raise NotImplementedError

    def _iter_committed(self, start: Optional[bytes], end: Optional[bytes],
                        direction: Direction) -> Iterator[BatchEntry]:
        raise NotImplementedError

    # Interface
    def get(self, key: bytes) -> Optional[bytes]:
        return self._read(bytes(key))

    def get_staged(self, key: bytes) -> Optional[bytes]:
        key = bytes(key)
        if key in self._stage:
            return self._stage[key]
        return self._read(key)

    def put(self, key: bytes, value: bytes) -> None:
        self._stage[bytes(key)] = bytes(value)

    def staged(self) -> int:
        return len(self._stage)

    def commit(self) -> None:
        batch = sorted(self._stage.items())
        ensure_sorted_unique(batch)
        self._apply_batch(batch)
        self._stage = {}
        log.debug(f"[{self.name}] committed {len(batch)} entries")

    def hash(self) -> bytes:
        return merkle_root(self._iter_committed(None, None, Direction.FORWARD))

    def range_iter(self, start: Optional[bytes] = None, end: Optional[bytes] = None,
                   direction: Direction = Direction.FORWARD) -> Iterator[BatchEntry]:
        """Committed entries with ``start <= key < end``; ``None`` is unbounded."""
        return self._iter_committed(start, end, direction)

    def close(self) -> None:
        return
