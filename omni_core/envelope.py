"""
omni_core.envelope
------------------
Defines the signed Envelope that carries every OMNI message on the wire,
and the signing / verification protocol around it.

Wire form (MessagePack array):

    [protected_bytes, unprotected_map, payload | nil, signature | nil]

``protected_bytes`` is the encoded header map (alg, kid, content_type and the
optional ``keyset``). The Ed25519 signature covers
``protected_bytes || payload``. Envelopes whose ``kid`` is the anonymous
identity are accepted without a signature; every other sender must embed its
public key in ``keyset`` so the verifier needs no prior knowledge of it.

Key-not-found and bad-signature both surface as CouldNotVerifySignature so a
caller cannot probe which identities a node knows.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional, Type, TypeVar, Union

from .constants import ALG_EDDSA, CONTENT_TYPE, KEYSET_HEADER
from .crypto import Ed25519Key, KeyIdentity, ed25519_public, ed25519_verify
from .errors import DecodeError, InvalidKeyId, MissingKeyId, OmniError
from .identity import Identity, MalformedIdentity
from .logger import get_logger
from .message import RequestMessage, ResponseMessage
from .utils import packb, unpackb

log = get_logger("omni.envelope")

Message = Union[RequestMessage, ResponseMessage]
M = TypeVar("M", RequestMessage, ResponseMessage)


class IdentityKeyMismatch(ValueError):
    """The signing key does not belong to the claimed identity."""


# ----------------------------------------------------------------------
# Key set
# ----------------------------------------------------------------------
class KeySet:
    """Public keys embedded in an envelope, keyed by identity bytes."""

    def __init__(self, keys: Optional[Mapping[bytes, bytes]] = None):
        self._keys: Dict[bytes, bytes] = dict(keys or {})

    def insert(self, kid: bytes, public_key: bytes) -> None:
        self._keys[bytes(kid)] = bytes(public_key)

    def get_kid(self, kid: bytes) -> Optional[bytes]:
        return self._keys.get(bytes(kid))

    def __len__(self) -> int:
        return len(self._keys)

    def to_bytes(self) -> bytes:
        return packb([
            {"kty": "OKP", "crv": "Ed25519", "kid": kid, "x": x}
            for kid, x in sorted(self._keys.items())
        ])

    @classmethod
    def from_bytes(cls, data: bytes) -> "KeySet":
        try:
            entries = unpackb(data)
        except Exception as e:
            raise DecodeError(f"could not decode key set: {e}") from e
        if not isinstance(entries, list):
            raise DecodeError("key set must be an array")
        keys = cls()
        for entry in entries:
            if not isinstance(entry, dict):
                raise DecodeError("key set entries must be maps")
            kid, x = entry.get("kid"), entry.get("x")
            # Only Ed25519 keys are understood; skip the rest.
            if entry.get("kty") != "OKP" or entry.get("crv") != "Ed25519":
                continue
            if not isinstance(kid, bytes) or not isinstance(x, bytes):
                raise DecodeError("key set entry needs kid and x bytes")
            keys.insert(kid, x)
        return keys


# ----------------------------------------------------------------------
# Protected headers
# ----------------------------------------------------------------------
@dataclass(frozen=True)
class ProtectedHeaders:
    alg: Optional[str] = None
    kid: Optional[bytes] = None
    content_type: Optional[str] = None
    keyset: Optional[bytes] = None
    custom: Mapping[str, Any] = field(default_factory=dict)

    def to_bytes(self) -> bytes:
        out: Dict[str, Any] = dict(self.custom)
        if self.alg is not None:
            out["alg"] = self.alg
        if self.kid is not None:
            out["kid"] = self.kid
        if self.content_type is not None:
            out["content_type"] = self.content_type
        if self.keyset is not None:
            out[KEYSET_HEADER] = self.keyset
        return packb(dict(sorted(out.items(), key=lambda kv: str(kv[0]))))

    @classmethod
    def from_bytes(cls, data: bytes) -> "ProtectedHeaders":
        try:
            raw = unpackb(data) if data else {}
        except Exception as e:
            raise DecodeError(f"could not decode protected headers: {e}") from e
        if not isinstance(raw, dict):
            raise DecodeError("protected headers must be a map")
        raw = dict(raw)
        alg = raw.pop("alg", None)
        kid = raw.pop("kid", None)
        content_type = raw.pop("content_type", None)
        keyset = raw.pop(KEYSET_HEADER, None)
        if alg is not None and not isinstance(alg, str):
            raise DecodeError("alg header must be a string")
        if kid is not None and not isinstance(kid, bytes):
            raise DecodeError("kid header must be bytes")
        if content_type is not None and not isinstance(content_type, str):
            raise DecodeError("content_type header must be a string")
        return cls(alg=alg, kid=kid, content_type=content_type, keyset=keyset, custom=raw)


# ----------------------------------------------------------------------
# Envelope
# ----------------------------------------------------------------------
@dataclass(frozen=True)
class Envelope:
    protected: ProtectedHeaders
    protected_bytes: bytes
    payload: Optional[bytes] = None
    signature: Optional[bytes] = None
    unprotected: Mapping[Any, Any] = field(default_factory=dict)

    @classmethod
    def build(cls, protected: ProtectedHeaders, payload: Optional[bytes]) -> "Envelope":
        return cls(protected=protected, protected_bytes=protected.to_bytes(), payload=payload)

    def to_signing_bytes(self) -> bytes:
        return self.protected_bytes + (self.payload or b"")

    def get_keyset(self) -> Optional[KeySet]:
        if not isinstance(self.protected.keyset, bytes):
            return None
        try:
            return KeySet.from_bytes(self.protected.keyset)
        except DecodeError:
            return None

    def to_bytes(self) -> bytes:
        return packb([self.protected_bytes, dict(self.unprotected), self.payload, self.signature])

    @classmethod
    def from_bytes(cls, data: bytes) -> "Envelope":
        try:
            raw = unpackb(data)
        except Exception as e:
            raise DecodeError(f"could not decode envelope: {e}") from e
        if not isinstance(raw, list) or len(raw) != 4:
            raise DecodeError("envelope must be an array of 4 elements")
        protected_bytes, unprotected, payload, signature = raw
        if not isinstance(protected_bytes, bytes):
            raise DecodeError("protected headers must be bytes")
        if not isinstance(unprotected, dict):
            raise DecodeError("unprotected headers must be a map")
        if payload is not None and not isinstance(payload, bytes):
            raise DecodeError("payload must be bytes")
        if signature is not None and not isinstance(signature, bytes):
            raise DecodeError("signature must be bytes")
        return cls(
            protected=ProtectedHeaders.from_bytes(protected_bytes),
            protected_bytes=protected_bytes,
            payload=payload,
            signature=signature,
            unprotected=unprotected,
        )


# ----------------------------------------------------------------------
# Signing
# ----------------------------------------------------------------------
def _seal(payload: bytes, identity: Identity, public_key: Optional[bytes], sign) -> Envelope:
    if not identity.matches_key(public_key):
        raise IdentityKeyMismatch(f"identity {identity} does not match the signing key")

    keyset = None
    if public_key is not None:
        ks = KeySet()
        ks.insert(identity.to_bytes(), public_key)
        keyset = ks.to_bytes()

    protected = ProtectedHeaders(
        alg=ALG_EDDSA,
        kid=identity.to_bytes(),
        content_type=CONTENT_TYPE,
        keyset=keyset,
    )
    envelope = Envelope.build(protected, payload)
    if sign is None:
        return envelope
    return Envelope(
        protected=envelope.protected,
        protected_bytes=envelope.protected_bytes,
        payload=envelope.payload,
        signature=sign(envelope.to_signing_bytes()),
    )


def sign_message(message: Message, identity: Identity,
                 key: Optional[Ed25519Key] = None) -> Envelope:
    """Wrap ``message`` in an envelope signed by ``key`` as ``identity``.

    Without a key the envelope is unsigned, which is only valid for the
    anonymous identity.
    """
    if key is None:
        return _seal(message.to_bytes(), identity, None, None)
    if not key.has_private():
        raise ValueError("signing requires a private key")
    public_key = ed25519_public(key.private_key)
    return _seal(message.to_bytes(), identity, public_key, key.sign)


def seal(message: Message, key_identity: KeyIdentity) -> Envelope:
    """Like ``sign_message`` but signs through the shared ``KeyIdentity`` handle."""
    if key_identity.key is None:
        return _seal(message.to_bytes(), key_identity.identity, None, None)
    return _seal(message.to_bytes(), key_identity.identity,
                 key_identity.key.public_key, key_identity.sign)


# ----------------------------------------------------------------------
# Verification
# ----------------------------------------------------------------------
def _public_key_for(envelope: Envelope, identity: Identity) -> Optional[bytes]:
    keyset = envelope.get_keyset()
    if keyset is None:
        return None
    candidate = keyset.get_kid(identity.to_bytes())
    if candidate is None or not identity.matches_key(candidate):
        return None
    return candidate


def verify_identity(envelope: Envelope) -> Identity:
    """Return the sender identity proven by ``envelope``'s signature."""
    kid = envelope.protected.kid
    if kid is None:
        log.debug("envelope rejected: missing kid")
        raise MissingKeyId()
    try:
        identity = Identity.from_bytes(kid)
    except MalformedIdentity:
        log.debug("envelope rejected: kid is not an identity")
        raise InvalidKeyId() from None

    if identity.is_anonymous():
        return identity

    public_key = _public_key_for(envelope, identity)
    if public_key is None:
        log.debug(f"envelope rejected: no key for {identity}")
        raise OmniError.could_not_verify_signature()
    if envelope.protected.alg != ALG_EDDSA or not envelope.signature:
        log.debug(f"envelope rejected: alg={envelope.protected.alg!r} signed={bool(envelope.signature)}")
        raise OmniError.could_not_verify_signature()
    if not ed25519_verify(public_key, envelope.signature, envelope.to_signing_bytes()):
        log.debug(f"envelope rejected: bad signature for {identity}")
        raise OmniError.could_not_verify_signature()
    return identity


def verify_envelope(envelope: Envelope, to: Optional[Identity] = None,
                    message_type: Type[M] = RequestMessage) -> M:
    """Authenticate ``envelope`` and return the message inside it.

    ``to`` is the identity the message must be addressed to; ``None`` accepts
    any recipient.
    """
    sender = verify_identity(envelope)

    if envelope.payload is None:
        raise OmniError.empty_envelope()
    try:
        message = message_type.from_bytes(envelope.payload)
    except DecodeError as e:
        log.error(f"authentic envelope from {sender} carries an undecodable {message_type.__name__}: {e}")
        raise OmniError.internal_server_error() from e

    if message.sender != sender:
        raise OmniError.invalid_from_identity()
    if to is not None and message.to != to:
        raise OmniError.unknown_destination(str(message.to), str(to))
    return message


def verify_request(envelope: Envelope, to: Optional[Identity] = None) -> RequestMessage:
    return verify_envelope(envelope, to, RequestMessage)


def verify_response(envelope: Envelope, to: Optional[Identity] = None) -> ResponseMessage:
    return verify_envelope(envelope, to, ResponseMessage)


def verify_envelope_bytes(data: bytes, to: Optional[Identity] = None,
                          message_type: Type[M] = RequestMessage) -> M:
    return verify_envelope(Envelope.from_bytes(data), to, message_type)
