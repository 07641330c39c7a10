# omni_core/storage/models.py
from __future__ import annotations
import enum
from typing import Iterable, List, Tuple
from omni_core.utils import sha3_256

BatchEntry = Tuple[bytes, bytes]

EMPTY_ROOT = bytes(32)


class Direction(enum.Enum):
    FORWARD = "forward"
    BACKWARD = "backward"


def ensure_sorted_unique(batch: List[BatchEntry]) -> None:
    """Raise ValueError unless batch keys are strictly increasing."""
    for (prev, _), (key, _) in zip(batch, batch[1:]):
        if not prev < key:
            raise ValueError(f"batch keys must be sorted and unique: {prev!r} !< {key!r}")


def merkle_root(entries: Iterable[BatchEntry]) -> bytes:
    """
    Root hash over key-ordered entries.

    Leaves are sha3-256(0x00 || len(key) || key || value); inner nodes are
    sha3-256(0x01 || left || right). An odd node is promoted unchanged.
    """
    level = [
        sha3_256(b"\x00" + len(k).to_bytes(4, "big") + k + v)
        for k, v in entries
    ]
    if not level:
        return EMPTY_ROOT
    while len(level) > 1:
        nxt = [sha3_256(b"\x01" + level[i] + level[i + 1]) for i in range(0, len(level) - 1, 2)]
        if len(level) % 2:
            nxt.append(level[-1])
        level = nxt
    return level[0]
