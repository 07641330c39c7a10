"""
omni_core.server
----------------
Request dispatch for an OMNI node.

``OmniServer.handle_bytes`` is the single entry point a transport calls with
raw envelope bytes. It authenticates the request, routes it by method name
and always answers with a response envelope signed by the node, carrying
either the handler's result or an ``OmniError``.
"""

from __future__ import annotations
from typing import Callable, Dict, Optional

from .constants import DEFAULT_MAX_MESSAGE_SIZE, PROTOCOL_VERSION
from .crypto import KeyIdentity
from .envelope import Envelope, seal, verify_request
from .errors import DecodeError, OmniError
from .identity import Identity
from .logger import get_logger
from .message import RequestMessage, ResponseMessage
from .utils import packb

log = get_logger("omni.server")

Handler = Callable[[RequestMessage], Optional[bytes]]


class OmniServer:
    def __init__(self, name: str, key_identity: KeyIdentity,
                 max_message_size: int = DEFAULT_MAX_MESSAGE_SIZE,
                 accept_any_recipient: bool = False):
        self.name = name
        self.key_identity = key_identity
        self.max_message_size = max_message_size
        self.accept_any_recipient = accept_any_recipient
        self._methods: Dict[str, Handler] = {}
        self.register("status", self._status)

    @property
    def identity(self) -> Identity:
        return self.key_identity.identity

    def register(self, method: str, handler: Handler) -> None:
        if not method:
            raise ValueError("method name must not be empty")
        self._methods[method] = handler

    def methods(self):
        return sorted(self._methods)

    def _status(self, request: RequestMessage) -> bytes:
        return packb({
            "name": self.name,
            "identity": str(self.identity),
            "version": PROTOCOL_VERSION,
            "methods": self.methods(),
        })

    def handle(self, request: RequestMessage) -> ResponseMessage:
        handler = self._methods.get(request.method)
        if handler is None:
            return self._reply(request, error=OmniError.invalid_method_name(request.method))
        try:
            result = handler(request)
        except OmniError as e:
            return self._reply(request, error=e)
        except Exception:
            log.exception(f"[{self.name}] handler for {request.method!r} failed")
            return self._reply(request, error=OmniError.internal_server_error())
        if not isinstance(result, (bytes, type(None))):
            log.error(f"[{self.name}] handler for {request.method!r} returned "
                      f"{type(result).__name__}, expected bytes")
            return self._reply(request, error=OmniError.internal_server_error())
        return self._reply(request, payload=result)

    def _reply(self, request: RequestMessage, payload: Optional[bytes] = None,
               error: Optional[OmniError] = None) -> ResponseMessage:
        return ResponseMessage.from_request(request, self.identity, payload=payload, error=error)

    def handle_bytes(self, data: bytes) -> bytes:
        if len(data) > self.max_message_size:
            log.info(f"[{self.name}] rejected {len(data)}-byte message")
            return self._error_bytes(OmniError.message_too_long(self.max_message_size))

        try:
            envelope = Envelope.from_bytes(data)
            to = None if self.accept_any_recipient else self.identity
            request = verify_request(envelope, to)
        except DecodeError as e:
            log.debug(f"[{self.name}] malformed envelope: {e}")
            return self._error_bytes(OmniError.unknown())
        except OmniError as e:
            log.debug(f"[{self.name}] request rejected: code={e.code}")
            return self._error_bytes(e)

        response = self.handle(request)
        return seal(response, self.key_identity).to_bytes()

    def _error_bytes(self, error: OmniError) -> bytes:
        # Sender is not authenticated: reply unaddressed.
        response = ResponseMessage(sender=self.identity, error=error)
        return seal(response, self.key_identity).to_bytes()
