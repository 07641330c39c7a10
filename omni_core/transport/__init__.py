# omni_core/transport/__init__.py
import os
from omni_core.transport.transport_base import (
    BaseTransport, TransportError, TransportPermanentError, TransportTransientError,
)
from omni_core.transport.transport_local import LocalTransport
from omni_core.transport.transport_http import HTTPTransport


def transport_factory(mode: str = None):
    """
    Select the transport used to reach an OMNI node.

    mode (or OMNI_TRANSPORT):
      - "local" → in-process loopback (default)
      - "http"  → POST to OMNI_URL
    """
    mode = (mode or os.getenv("OMNI_TRANSPORT", "local")).lower()

    if mode == "http":
        return HTTPTransport(
            os.getenv("OMNI_URL", "http://localhost:8000"),
            timeout=float(os.getenv("OMNI_HTTP_TIMEOUT", "5")),
        )

    if mode == "local":
        return LocalTransport()

    raise ValueError(f"Unknown transport: {mode}")


__all__ = [
    "BaseTransport",
    "HTTPTransport",
    "LocalTransport",
    "TransportError",
    "TransportPermanentError",
    "TransportTransientError",
    "transport_factory",
]
