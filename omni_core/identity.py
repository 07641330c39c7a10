"""
omni_core.identity
------------------
Defines the Identity value type: who sent or should receive a message.

Three variants exist:

- Anonymous: no key, unauthenticated sender
- PublicKey: the raw 32-byte Ed25519 public key
- Addressable: a 28-byte SHA3-224 address derived from a public key

The binary form (tag byte + fixed-width payload) is used as the envelope
``kid`` header and as the key of embedded key sets. The textual form is used
in logs and error fields.
"""

from __future__ import annotations
import base64, binascii, enum
from dataclasses import dataclass
from typing import Any, Optional

from .constants import ADDRESS_SIZE, ED25519_KEY_SIZE
from .utils import sha3_224


class MalformedIdentity(ValueError):
    """Identity bytes or text could not be decoded."""


class IdentityKind(enum.IntEnum):
    ANONYMOUS = 0x00
    PUBLIC_KEY = 0x01
    ADDRESSABLE = 0x02


_PAYLOAD_SIZE = {
    IdentityKind.ANONYMOUS: 0,
    IdentityKind.PUBLIC_KEY: ED25519_KEY_SIZE,
    IdentityKind.ADDRESSABLE: ADDRESS_SIZE,
}


def _key_bytes(candidate: Any) -> bytes:
    # Accept a key object exposing ``public_key`` or the raw bytes themselves.
    return bytes(getattr(candidate, "public_key", candidate))


@dataclass(frozen=True)
class Identity:
    kind: IdentityKind = IdentityKind.ANONYMOUS
    data: bytes = b""

    def __post_init__(self):
        try:
            object.__setattr__(self, "kind", IdentityKind(self.kind))
        except ValueError:
            raise MalformedIdentity(f"unknown identity kind: {self.kind!r}") from None
        expected = _PAYLOAD_SIZE[self.kind]
        if len(self.data) != expected:
            raise MalformedIdentity(
                f"{self.kind.name} identity needs {expected} bytes, got {len(self.data)}"
            )

    # ------------------------------------------------------------------
    # Constructors
    # ------------------------------------------------------------------
    @classmethod
    def anonymous(cls) -> "Identity":
        return cls(IdentityKind.ANONYMOUS, b"")

    @classmethod
    def from_public_key(cls, public_key: bytes) -> "Identity":
        """Identity holding the raw public key itself.

        Only Ed25519 is supported, so the key must be exactly 32 bytes; this
        keeps the tagged binary form fixed-width. Any other length raises
        MalformedIdentity.
        """
        if not public_key:
            raise MalformedIdentity("public key must not be empty")
        return cls(IdentityKind.PUBLIC_KEY, bytes(public_key))

    @classmethod
    def from_public_key_hash(cls, public_key: bytes) -> "Identity":
        if not public_key:
            raise MalformedIdentity("public key must not be empty")
        return cls(IdentityKind.ADDRESSABLE, sha3_224(bytes(public_key)))

    # ------------------------------------------------------------------
    # Predicates
    # ------------------------------------------------------------------
    def is_anonymous(self) -> bool:
        return self.kind == IdentityKind.ANONYMOUS

    def is_public_key(self) -> bool:
        return self.kind == IdentityKind.PUBLIC_KEY

    def is_addressable(self) -> bool:
        return self.kind == IdentityKind.ADDRESSABLE

    def matches_key(self, candidate: Optional[Any]) -> bool:
        """True when ``candidate`` is the key material behind this identity.

        Anonymous only matches the absence of a key.
        """
        if self.is_anonymous():
            return candidate is None
        if candidate is None:
            return False
        raw = _key_bytes(candidate)
        if self.is_public_key():
            return raw == self.data
        return sha3_224(raw) == self.data

    # ------------------------------------------------------------------
    # Binary form
    # ------------------------------------------------------------------
    def to_bytes(self) -> bytes:
        return bytes([self.kind]) + self.data

    @classmethod
    def from_bytes(cls, raw: bytes) -> "Identity":
        if not isinstance(raw, (bytes, bytearray)) or not raw:
            raise MalformedIdentity("identity bytes are empty")
        try:
            kind = IdentityKind(raw[0])
        except ValueError:
            raise MalformedIdentity(f"unknown identity tag: 0x{raw[0]:02x}") from None
        return cls(kind, bytes(raw[1:]))

    # ------------------------------------------------------------------
    # Text form: "o" + base32(bytes + crc16)
    # ------------------------------------------------------------------
    def __str__(self) -> str:
        raw = self.to_bytes()
        crc = binascii.crc_hqx(raw, 0).to_bytes(2, "big")
        return "o" + base64.b32encode(raw + crc).decode("ascii").rstrip("=").lower()

    @classmethod
    def from_string(cls, text: str) -> "Identity":
        if not text.startswith("o") or len(text) < 2:
            raise MalformedIdentity(f"not an identity string: {text!r}")
        body = text[1:].upper()
        body += "=" * (-len(body) % 8)
        try:
            decoded = base64.b32decode(body)
        except binascii.Error as e:
            raise MalformedIdentity(f"invalid base32 in identity: {e}") from None
        if len(decoded) < 3:
            raise MalformedIdentity("identity string is too short")
        raw, crc = decoded[:-2], decoded[-2:]
        if binascii.crc_hqx(raw, 0).to_bytes(2, "big") != crc:
            raise MalformedIdentity("identity checksum mismatch")
        return cls.from_bytes(raw)

    def __repr__(self) -> str:
        return f"Identity({self.kind.name}, {self})"
