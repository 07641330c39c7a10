# omni_core/transport/transport_local.py
from typing import Callable, Optional
from omni_core.logger import get_logger
from omni_core.transport.transport_base import BaseTransport, Headers, TransportPermanentError

log = get_logger("omni.transport.local")


class LocalTransport(BaseTransport):
    """
    In-process loopback: hands envelope bytes straight to a handler,
    typically ``OmniServer.handle_bytes``. Used by tests and single-process
    deployments.
    """
    name = "local"

    def __init__(self, handler: Optional[Callable[[bytes], bytes]] = None):
        self.handler = handler

    def bind(self, handler: Callable[[bytes], bytes]) -> None:
        self.handler = handler

    def send(self, data: bytes, headers: Optional[Headers] = None) -> bytes:
        if self.handler is None:
            raise TransportPermanentError("local transport has no bound handler")
        data = self.to_bytes(data)
        log.debug(f"[LOCAL SEND] {len(data)} bytes")
        return self.to_bytes(self.handler(data))
