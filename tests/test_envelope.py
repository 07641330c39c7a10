import dataclasses
from concurrent.futures import ThreadPoolExecutor

import pytest
from omni_core.constants import ALG_EDDSA, CONTENT_TYPE
from omni_core.crypto import Ed25519Key, KeyIdentity
from omni_core.envelope import (
    Envelope, IdentityKeyMismatch, KeySet, ProtectedHeaders,
    seal, sign_message, verify_envelope_bytes, verify_identity, verify_request,
)
from omni_core.errors import DecodeError, ErrorCode, InvalidKeyId, MissingKeyId, OmniError
from omni_core.identity import Identity
from omni_core.message import RequestMessage, ResponseMessage
from omni_core.utils import packb


@pytest.fixture
def key():
    return Ed25519Key.generate()


@pytest.fixture
def identity(key):
    return Identity.from_public_key(key.public_key)


@pytest.fixture
def server_id():
    return Identity.from_public_key_hash(Ed25519Key.generate().public_key)


def _request(sender, to, payload=b"payload"):
    return RequestMessage(method="ledger.send", sender=sender, to=to, payload=payload, nonce=b"n1")


def _signed(headers: ProtectedHeaders, payload: bytes, key: Ed25519Key) -> Envelope:
    env = Envelope.build(headers, payload)
    return dataclasses.replace(env, signature=key.sign(env.to_signing_bytes()))


def _assert_code(exc_info, code):
    assert exc_info.value.code == code


def test_sign_verify(key, identity, server_id):
    req = _request(identity, server_id)
    env = Envelope.from_bytes(sign_message(req, identity, key).to_bytes())

    assert env.protected.alg == ALG_EDDSA
    assert env.protected.content_type == CONTENT_TYPE
    assert Identity.from_bytes(env.protected.kid) == identity
    assert verify_identity(env) == identity
    assert verify_request(env, server_id) == req


def test_addressable_sign_verify(key, server_id):
    identity = Identity.from_public_key_hash(key.public_key)
    req = _request(identity, server_id)
    env = sign_message(req, identity, key)
    assert verify_envelope_bytes(env.to_bytes(), server_id) == req


def test_envelope_is_self_certifying(key, identity, server_id):
    env = sign_message(_request(identity, server_id), identity, key)
    keyset = env.get_keyset()
    assert len(keyset) == 1
    assert keyset.get_kid(identity.to_bytes()) == key.public_key


def test_flipped_signature_byte_fails(key, identity, server_id):
    env = sign_message(_request(identity, server_id), identity, key)
    for i in range(len(env.signature)):
        sig = bytearray(env.signature)
        sig[i] ^= 0x01
        with pytest.raises(OmniError) as exc:
            verify_request(dataclasses.replace(env, signature=bytes(sig)))
        _assert_code(exc, ErrorCode.COULD_NOT_VERIFY_SIGNATURE)


def test_flipped_payload_byte_fails(key, identity, server_id):
    env = sign_message(_request(identity, server_id), identity, key)
    for i in range(len(env.payload)):
        payload = bytearray(env.payload)
        payload[i] ^= 0x01
        with pytest.raises(OmniError) as exc:
            verify_request(dataclasses.replace(env, payload=bytes(payload)))
        _assert_code(exc, ErrorCode.COULD_NOT_VERIFY_SIGNATURE)


def test_flipped_protected_byte_fails(key, identity, server_id):
    env = sign_message(_request(identity, server_id), identity, key)
    protected = bytearray(env.protected_bytes)
    protected[-1] ^= 0x01
    with pytest.raises(OmniError) as exc:
        verify_request(dataclasses.replace(env, protected_bytes=bytes(protected)))
    _assert_code(exc, ErrorCode.COULD_NOT_VERIFY_SIGNATURE)


def test_anonymous_envelope_verifies_without_signature(server_id):
    anon = Identity.anonymous()
    req = _request(anon, server_id)
    env = sign_message(req, anon)
    assert env.signature is None
    assert env.get_keyset() is None
    assert verify_identity(env).is_anonymous()
    assert verify_envelope_bytes(env.to_bytes(), server_id) == req


def test_missing_kid(identity):
    env = Envelope.build(ProtectedHeaders(alg=ALG_EDDSA), _request(identity, identity).to_bytes())
    with pytest.raises(MissingKeyId) as exc:
        verify_request(env)
    _assert_code(exc, ErrorCode.COULD_NOT_VERIFY_SIGNATURE)


def test_invalid_kid(identity):
    env = Envelope.build(ProtectedHeaders(alg=ALG_EDDSA, kid=b"\x09\x09"), b"")
    with pytest.raises(InvalidKeyId):
        verify_request(env)


def test_missing_keyset_cannot_verify(key, identity):
    headers = ProtectedHeaders(alg=ALG_EDDSA, kid=identity.to_bytes(), content_type=CONTENT_TYPE)
    env = _signed(headers, _request(identity, identity).to_bytes(), key)
    with pytest.raises(OmniError) as exc:
        verify_request(env)
    _assert_code(exc, ErrorCode.COULD_NOT_VERIFY_SIGNATURE)


def test_keyset_with_wrong_key_cannot_verify(identity):
    # Attacker signs with their own key but claims someone else's identity.
    attacker = Ed25519Key.generate()
    ks = KeySet()
    ks.insert(identity.to_bytes(), attacker.public_key)
    headers = ProtectedHeaders(alg=ALG_EDDSA, kid=identity.to_bytes(), keyset=ks.to_bytes())
    env = _signed(headers, _request(identity, identity).to_bytes(), attacker)
    with pytest.raises(OmniError) as exc:
        verify_request(env)
    _assert_code(exc, ErrorCode.COULD_NOT_VERIFY_SIGNATURE)


def test_algorithm_mismatch(key, identity):
    ks = KeySet()
    ks.insert(identity.to_bytes(), key.public_key)
    headers = ProtectedHeaders(alg="ES256", kid=identity.to_bytes(), keyset=ks.to_bytes())
    env = _signed(headers, _request(identity, identity).to_bytes(), key)
    with pytest.raises(OmniError) as exc:
        verify_request(env)
    _assert_code(exc, ErrorCode.COULD_NOT_VERIFY_SIGNATURE)


def test_from_mismatch_with_valid_signature(key, identity, server_id):
    someone_else = Identity.from_public_key(Ed25519Key.generate().public_key)
    env = sign_message(_request(someone_else, server_id), identity, key)
    assert verify_identity(env) == identity
    with pytest.raises(OmniError) as exc:
        verify_request(env, server_id)
    _assert_code(exc, ErrorCode.INVALID_FROM_IDENTITY)


def test_unknown_destination(key, identity, server_id):
    req = _request(identity, server_id)
    env = sign_message(req, identity, key)
    this = Identity.from_public_key(Ed25519Key.generate().public_key)
    with pytest.raises(OmniError) as exc:
        verify_request(env, this)
    _assert_code(exc, ErrorCode.UNKNOWN_DESTINATION)
    assert dict(exc.value.fields) == {"to": str(server_id), "this": str(this)}
    # No expected recipient: anyone is accepted
    assert verify_request(env) == req


def test_empty_envelope(identity):
    env = Envelope.build(ProtectedHeaders(kid=Identity.anonymous().to_bytes()), None)
    with pytest.raises(OmniError) as exc:
        verify_request(env)
    _assert_code(exc, ErrorCode.EMPTY_ENVELOPE)


def test_authentic_but_undecodable_payload(key, identity, caplog):
    # A response is not a request: signature is fine, decoding is not.
    env = sign_message(ResponseMessage(sender=identity, payload=b"x"), identity, key)
    with pytest.raises(OmniError) as exc:
        verify_request(env)
    _assert_code(exc, ErrorCode.INTERNAL_SERVER_ERROR)
    assert "undecodable" in caplog.text


def test_signing_key_must_match_identity(key, identity, server_id):
    other = Identity.from_public_key(Ed25519Key.generate().public_key)
    with pytest.raises(IdentityKeyMismatch):
        sign_message(_request(other, server_id), other, key)
    with pytest.raises(IdentityKeyMismatch):
        sign_message(_request(identity, server_id), identity)
    with pytest.raises(IdentityKeyMismatch):
        sign_message(_request(Identity.anonymous(), server_id), Identity.anonymous(), key)


def test_public_only_key_cannot_sign(key, identity, server_id):
    with pytest.raises(ValueError):
        sign_message(_request(identity, server_id), identity, key.public())


@pytest.mark.parametrize("raw", [b"\xc1", packb([1, 2]), packb([b"", {}, "text", None]), packb([b"\x01", {}, None, None])])
def test_malformed_envelope_bytes(raw):
    with pytest.raises(DecodeError):
        Envelope.from_bytes(raw)


def test_envelope_bytes_roundtrip(key, identity, server_id):
    env = sign_message(_request(identity, server_id), identity, key)
    again = Envelope.from_bytes(env.to_bytes())
    assert again.protected_bytes == env.protected_bytes
    assert again.payload == env.payload
    assert again.signature == env.signature
    assert again.protected == env.protected


def test_concurrent_sealing_with_shared_key(server_id):
    signer = KeyIdentity.generate(addressable=True)

    def roundtrip(i):
        req = RequestMessage(method="echo", sender=signer.identity, to=server_id, payload=str(i).encode())
        return verify_envelope_bytes(seal(req, signer).to_bytes(), server_id).payload

    with ThreadPoolExecutor(max_workers=8) as pool:
        results = list(pool.map(roundtrip, range(32)))
    assert results == [str(i).encode() for i in range(32)]
