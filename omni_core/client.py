"""
omni_core.client
----------------
Client side of the request/response protocol: sign a request, send it over a
transport and authenticate the node's answer.
"""

from __future__ import annotations
from typing import Any, Dict, Optional

from .crypto import KeyIdentity
from .envelope import Envelope, seal, verify_response
from .errors import OmniError
from .identity import Identity
from .logger import get_logger
from .message import RequestMessage, ResponseMessage
from .transport import BaseTransport
from .utils import new_nonce, unpackb

log = get_logger("omni.client")


class OmniClient:
    def __init__(self, transport: BaseTransport, key_identity: Optional[KeyIdentity] = None,
                 to: Optional[Identity] = None):
        self.transport = transport
        self.key_identity = key_identity or KeyIdentity.anonymous()
        self.to = to or Identity.anonymous()

    @property
    def identity(self) -> Identity:
        return self.key_identity.identity

    def request(self, method: str, payload: Optional[bytes] = None) -> RequestMessage:
        return RequestMessage(
            method=method,
            sender=self.identity,
            to=self.to,
            payload=payload,
            nonce=new_nonce(),
        )

    def send(self, request: RequestMessage) -> ResponseMessage:
        """Send ``request`` and return the node's authenticated response.

        When ``to`` names a node, the response must be signed by that node.
        It must be addressed to this client and echo the request nonce. The
        one exception is an error the node returns unaddressed because it
        could not authenticate the request.
        """
        raw = self.transport.send(seal(request, self.key_identity).to_bytes())
        response = verify_response(Envelope.from_bytes(raw))
        if not self.to.is_anonymous() and response.sender != self.to:
            log.warning(f"response signed by {response.sender}, expected {self.to}")
            raise OmniError.invalid_from_identity()
        if response.to == self.identity and response.nonce == request.nonce:
            return response
        if response.to.is_anonymous() and response.is_error() and not self.to.is_anonymous():
            return response
        if response.to != self.identity:
            raise OmniError.unknown_destination(str(response.to), str(self.identity))
        log.warning(f"response from {response.sender} does not echo the request nonce")
        raise OmniError.invalid_from_identity()

    def call(self, method: str, payload: Optional[bytes] = None) -> bytes:
        """Send ``method`` and return the result payload; raises the node's OmniError."""
        return self.send(self.request(method, payload)).result()

    def status(self) -> Dict[str, Any]:
        return unpackb(self.call("status"))
