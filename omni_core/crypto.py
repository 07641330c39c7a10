"""
omni_core.crypto
----------------
Ed25519 key material for envelope signing:

- ``Ed25519Key``: a public key with optional private half
- ``KeyIdentity``: an Identity bound to the key that proves it, with
  lock-guarded signing so one handle can serve concurrent outbound requests
"""

from __future__ import annotations
from dataclasses import dataclass, field
from typing import Optional, Tuple
import threading
from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ed25519
from .identity import Identity

# --------- Ed25519 (sign/verify) ----------
def ed25519_generate() -> Tuple[bytes, bytes]:
    sk = ed25519.Ed25519PrivateKey.generate()
    pk = sk.public_key()
    return sk.private_bytes_raw(), pk.public_bytes_raw()

def ed25519_public(priv_raw: bytes) -> bytes:
    return ed25519.Ed25519PrivateKey.from_private_bytes(priv_raw).public_key().public_bytes_raw()

def ed25519_sign(priv_raw: bytes, data: bytes) -> bytes:
    sk = ed25519.Ed25519PrivateKey.from_private_bytes(priv_raw)
    return sk.sign(data)

def ed25519_verify(pub_raw: bytes, sig: bytes, data: bytes) -> bool:
    try:
        ed25519.Ed25519PublicKey.from_public_bytes(pub_raw).verify(sig, data)
        return True
    except (InvalidSignature, ValueError, TypeError):
        return False


@dataclass(frozen=True)
class Ed25519Key:
    public_key: bytes
    private_key: Optional[bytes] = field(default=None, repr=False)

    @classmethod
    def generate(cls) -> "Ed25519Key":
        priv, pub = ed25519_generate()
        return cls(public_key=pub, private_key=priv)

    @classmethod
    def from_private_bytes(cls, priv_raw: bytes) -> "Ed25519Key":
        return cls(public_key=ed25519_public(priv_raw), private_key=bytes(priv_raw))

    @classmethod
    def from_pem(cls, pem: str | bytes) -> "Ed25519Key":
        """Load an Ed25519 private key from a PKCS#8 PEM document."""
        data = pem.encode("ascii") if isinstance(pem, str) else pem
        sk = serialization.load_pem_private_key(data, password=None)
        if not isinstance(sk, ed25519.Ed25519PrivateKey):
            raise ValueError("PEM does not contain an Ed25519 private key")
        return cls.from_private_bytes(sk.private_bytes_raw())

    def to_pem(self) -> bytes:
        if self.private_key is None:
            raise ValueError("no private key to export")
        sk = ed25519.Ed25519PrivateKey.from_private_bytes(self.private_key)
        return sk.private_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PrivateFormat.PKCS8,
            encryption_algorithm=serialization.NoEncryption(),
        )

    def has_private(self) -> bool:
        return self.private_key is not None

    def public(self) -> "Ed25519Key":
        return Ed25519Key(public_key=self.public_key)

    def sign(self, data: bytes) -> bytes:
        if self.private_key is None:
            raise ValueError("cannot sign with a public-only key")
        return ed25519_sign(self.private_key, data)

    def verify(self, data: bytes, sig: bytes) -> bool:
        return ed25519_verify(self.public_key, sig, data)


class KeyIdentity:
    """An Identity together with the (optional) key material that proves it."""

    def __init__(self, identity: Identity, key: Optional[Ed25519Key] = None):
        self.identity = identity
        self.key = key
        self._lock = threading.Lock()

    @classmethod
    def anonymous(cls) -> "KeyIdentity":
        return cls(Identity.anonymous())

    @classmethod
    def from_key(cls, key: Ed25519Key, addressable: bool = False) -> "KeyIdentity":
        if addressable:
            return cls(Identity.from_public_key_hash(key.public_key), key)
        return cls(Identity.from_public_key(key.public_key), key)

    @classmethod
    def generate(cls, addressable: bool = False) -> "KeyIdentity":
        return cls.from_key(Ed25519Key.generate(), addressable=addressable)

    @classmethod
    def from_pem(cls, pem: str | bytes, addressable: bool = False) -> "KeyIdentity":
        return cls.from_key(Ed25519Key.from_pem(pem), addressable=addressable)

    def sign(self, data: bytes) -> bytes:
        if self.key is None:
            raise ValueError("anonymous identities cannot sign")
        with self._lock:
            return self.key.sign(data)

    def __repr__(self) -> str:
        return f"KeyIdentity({self.identity})"
