"""
omni_core.utils
---------------
Small helpers for hashing, timestamps, nonces and msgpack serialization.
Every encoder in the package goes through ``packb``/``unpackb`` so the wire
options stay identical across messages, errors and envelopes.
"""

from __future__ import annotations
import hashlib, os, time
from typing import Any

import msgpack


def now_ts() -> int:
    # Unix seconds, UTC
    return int(time.time())

def new_nonce(size: int = 16) -> bytes:
    return os.urandom(size)

def sha3_224(data: bytes) -> bytes:
    return hashlib.sha3_224(data).digest()

def sha3_256(data: bytes) -> bytes:
    return hashlib.sha3_256(data).digest()

def packb(obj: Any) -> bytes:
    return msgpack.packb(obj, use_bin_type=True)

def unpackb(data: bytes) -> Any:
    # strict_map_key=False: message maps use integer keys
    return msgpack.unpackb(data, raw=False, strict_map_key=False)
