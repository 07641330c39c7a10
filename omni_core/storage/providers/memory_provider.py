from typing import Dict, Iterator, List, Optional
from omni_core.storage.models import BatchEntry, Direction, ensure_sorted_unique
from omni_core.storage.provider import StorageBackend


class InMemoryStorage(StorageBackend):
    name = "memory"

    def __init__(self):
        super().__init__()
        self.committed: Dict[bytes, bytes] = {}

    def _read(self, key: bytes) -> Optional[bytes]:
        return self.committed.get(key)

    def _apply_batch(self, batch: List[BatchEntry]) -> None:
        ensure_sorted_unique(batch)
        self.committed.update(batch)

    def _iter_committed(self, start, end, direction) -> Iterator[BatchEntry]:
        keys = sorted(self.committed, reverse=direction == Direction.BACKWARD)
        for k in keys:
            if start is not None and k < start:
                continue
            if end is not None and k >= end:
                continue
            yield k, self.committed[k]
