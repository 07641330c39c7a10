"""
omni_core.message
-----------------
Request and response messages and their binary (MessagePack) encoding.

Both messages encode as a map keyed by small integers. Optional fields are
omitted rather than written as sentinels, and unknown keys are skipped on
decode so newer peers can add fields without breaking older ones.

    key  request      response
    0    version      version
    1    from         from
    2    to           to
    3    method       -
    4    data         data (bin = result, array = error)
    5    timestamp    timestamp
    6    nonce        nonce
    7    attributes   attributes
"""

from __future__ import annotations
from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional

from .errors import DecodeError, OmniError
from .identity import Identity, MalformedIdentity
from .utils import now_ts, packb, unpackb

KEY_VERSION = 0
KEY_FROM = 1
KEY_TO = 2
KEY_METHOD = 3
KEY_DATA = 4
KEY_TIMESTAMP = 5
KEY_NONCE = 6
KEY_ATTRIBUTES = 7


def _identity_field(raw: Dict[Any, Any], key: int) -> Identity:
    value = raw.get(key)
    if value is None:
        return Identity.anonymous()
    if not isinstance(value, bytes):
        raise DecodeError(f"field {key} must be identity bytes")
    try:
        return Identity.from_bytes(value)
    except MalformedIdentity as e:
        raise DecodeError(f"field {key}: {e}") from e


def _typed_field(raw: Dict[Any, Any], key: int, types: tuple, name: str) -> Any:
    value = raw.get(key)
    if value is None:
        return None
    if not isinstance(value, types) or isinstance(value, bool):
        raise DecodeError(f"{name} has the wrong type: {type(value).__name__}")
    return value


def _load_map(data: bytes) -> Dict[Any, Any]:
    try:
        raw = unpackb(data)
    except Exception as e:
        raise DecodeError(f"could not decode message: {e}") from e
    if not isinstance(raw, dict):
        raise DecodeError("message must be a map")
    return raw


def _decode_common(raw: Dict[Any, Any]) -> Dict[str, Any]:
    attributes = raw.get(KEY_ATTRIBUTES) or {}
    if not isinstance(attributes, dict):
        raise DecodeError("attributes must be a map")
    timestamp = _typed_field(raw, KEY_TIMESTAMP, (int,), "timestamp")
    if timestamp is not None and timestamp < 0:
        raise DecodeError("timestamp must be unsigned")
    return {
        "version": _typed_field(raw, KEY_VERSION, (int,), "version"),
        "sender": _identity_field(raw, KEY_FROM),
        "to": _identity_field(raw, KEY_TO),
        "timestamp": timestamp,
        "nonce": _typed_field(raw, KEY_NONCE, (bytes,), "nonce"),
        "attributes": attributes,
    }


def _encode_common(msg: Any) -> Dict[int, Any]:
    out: Dict[int, Any] = {}
    if msg.version is not None:
        out[KEY_VERSION] = msg.version
    if not msg.sender.is_anonymous():
        out[KEY_FROM] = msg.sender.to_bytes()
    if not msg.to.is_anonymous():
        out[KEY_TO] = msg.to.to_bytes()
    if msg.timestamp is not None:
        out[KEY_TIMESTAMP] = msg.timestamp
    if msg.nonce is not None:
        out[KEY_NONCE] = msg.nonce
    if msg.attributes:
        out[KEY_ATTRIBUTES] = dict(msg.attributes)
    return out


@dataclass(frozen=True)
class RequestMessage:
    method: str
    sender: Identity = field(default_factory=Identity.anonymous)
    to: Identity = field(default_factory=Identity.anonymous)
    payload: Optional[bytes] = None
    version: Optional[int] = None
    timestamp: Optional[int] = field(default_factory=now_ts)
    nonce: Optional[bytes] = None
    attributes: Mapping[Any, Any] = field(default_factory=dict)

    def to_bytes(self) -> bytes:
        out = _encode_common(self)
        out[KEY_METHOD] = self.method
        if self.payload is not None:
            out[KEY_DATA] = self.payload
        return packb(dict(sorted(out.items())))

    @classmethod
    def from_bytes(cls, data: bytes) -> "RequestMessage":
        raw = _load_map(data)
        method = raw.get(KEY_METHOD)
        if not isinstance(method, str):
            raise DecodeError("request is missing its method name")
        return cls(
            method=method,
            payload=_typed_field(raw, KEY_DATA, (bytes,), "data"),
            **_decode_common(raw),
        )


@dataclass(frozen=True)
class ResponseMessage:
    sender: Identity = field(default_factory=Identity.anonymous)
    to: Identity = field(default_factory=Identity.anonymous)
    payload: Optional[bytes] = None
    error: Optional[OmniError] = None
    version: Optional[int] = None
    timestamp: Optional[int] = field(default_factory=now_ts)
    nonce: Optional[bytes] = None
    attributes: Mapping[Any, Any] = field(default_factory=dict)

    def __post_init__(self):
        if self.payload is not None and self.error is not None:
            raise ValueError("a response carries either a payload or an error")

    @classmethod
    def from_request(cls, request: RequestMessage, sender: Identity,
                     payload: Optional[bytes] = None,
                     error: Optional[OmniError] = None) -> "ResponseMessage":
        """Reply to ``request``: addressed back to its sender, echoing its nonce."""
        return cls(
            sender=sender,
            to=request.sender,
            payload=payload,
            error=error,
            version=request.version,
            nonce=request.nonce,
        )

    def is_error(self) -> bool:
        return self.error is not None

    def result(self) -> bytes:
        """Return the payload, or raise the error this response carries."""
        if self.error is not None:
            raise self.error
        return self.payload if self.payload is not None else b""

    def to_bytes(self) -> bytes:
        out = _encode_common(self)
        if self.error is not None:
            out[KEY_DATA] = self.error.to_wire()
        elif self.payload is not None:
            out[KEY_DATA] = self.payload
        return packb(dict(sorted(out.items())))

    @classmethod
    def from_bytes(cls, data: bytes) -> "ResponseMessage":
        raw = _load_map(data)
        payload: Optional[bytes] = None
        error: Optional[OmniError] = None
        value = raw.get(KEY_DATA)
        if isinstance(value, bytes):
            payload = value
        elif isinstance(value, (list, tuple)):
            error = OmniError.from_wire(value)
        elif value is not None:
            raise DecodeError(f"response data has the wrong type: {type(value).__name__}")
        return cls(payload=payload, error=error, **_decode_common(raw))
