"""
OMNI Core Package
=================
Envelope trust protocol shared by every OMNI node component.

Provides:
- Identity values (anonymous, public key, addressable)
- The OMNI error taxonomy and message templating
- MessagePack request/response codec
- Ed25519-signed envelopes with self-certifying key sets
"""

from .crypto import Ed25519Key, KeyIdentity
from .envelope import (
    Envelope, IdentityKeyMismatch, KeySet, ProtectedHeaders,
    seal, sign_message, verify_envelope, verify_envelope_bytes,
    verify_identity, verify_request, verify_response,
)
from .errors import (
    DecodeError, ErrorCategory, ErrorCode, InvalidKeyId, MissingKeyId, OmniError,
    define_application_error, error_category, render_template,
)
from .identity import Identity, IdentityKind, MalformedIdentity
from .message import RequestMessage, ResponseMessage

__all__ = [
    "DecodeError",
    "Ed25519Key",
    "Envelope",
    "ErrorCategory",
    "ErrorCode",
    "Identity",
    "IdentityKeyMismatch",
    "IdentityKind",
    "InvalidKeyId",
    "KeyIdentity",
    "KeySet",
    "MalformedIdentity",
    "MissingKeyId",
    "OmniError",
    "ProtectedHeaders",
    "RequestMessage",
    "ResponseMessage",
    "define_application_error",
    "error_category",
    "render_template",
    "seal",
    "sign_message",
    "verify_envelope",
    "verify_envelope_bytes",
    "verify_identity",
    "verify_request",
    "verify_response",
]
