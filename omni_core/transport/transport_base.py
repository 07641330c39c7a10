from __future__ import annotations
from typing import Any, Dict, Optional

Headers = Dict[str, str]


class TransportError(Exception):
    pass


class TransportTransientError(TransportError):
    pass


class TransportPermanentError(TransportError):
    pass


class BaseTransport:
    """
    Request/response transport contract.

    Payloads at the transport boundary are raw envelope bytes; the transport
    never looks inside them. Timeouts and retries belong here, not in the
    envelope layer.
    """
    name: str = "base"

    def send(self, data: bytes, headers: Optional[Headers] = None) -> bytes:
        raise NotImplementedError

    def healthz(self) -> dict:
        return {"status": "ok", "transport": self.name}

    def close(self) -> None:
        return

    # ---------------------------
    # Helpers
    # ---------------------------
    @staticmethod
    def to_bytes(payload: Any) -> bytes:
        if isinstance(payload, (bytes, bytearray)):
            return bytes(payload)
        raise TypeError(f"transport payloads must be bytes, got {type(payload).__name__}")
