import pytest
from omni_core.crypto import Ed25519Key
from omni_core.errors import DecodeError, OmniError
from omni_core.identity import Identity
from omni_core.message import RequestMessage, ResponseMessage
from omni_core.utils import packb


@pytest.fixture
def ids():
    a, b = Ed25519Key.generate(), Ed25519Key.generate()
    return Identity.from_public_key(a.public_key), Identity.from_public_key_hash(b.public_key)


def test_request_roundtrip(ids):
    sender, to = ids
    req = RequestMessage(
        method="ledger.balance",
        sender=sender,
        to=to,
        payload=b"\x01\x02",
        version=1,
        timestamp=1_650_000_000,
        nonce=b"nonce-123",
        attributes={0: "base", 2: [1, 2]},
    )
    assert RequestMessage.from_bytes(req.to_bytes()) == req


def test_request_optional_fields_are_omitted():
    req = RequestMessage(method="status", timestamp=None)
    restored = RequestMessage.from_bytes(req.to_bytes())
    assert restored.sender.is_anonymous()
    assert restored.to.is_anonymous()
    assert restored.payload is None
    assert restored.timestamp is None
    assert restored.nonce is None
    assert restored.attributes == {}


def test_unknown_keys_are_ignored():
    raw = packb({3: "status", 7: {99: "future-attribute"}, 42: "future-field"})
    req = RequestMessage.from_bytes(raw)
    assert req.method == "status"
    assert req.attributes == {99: "future-attribute"}


@pytest.mark.parametrize("raw", [
    b"",
    b"\x85\x00",
    packb([3, "status"]),
    packb({3: 5}),
    packb({0: "one", 3: "status"}),
    packb({1: b"\x07", 3: "status"}),
    packb({3: "status", 4: "not-bytes"}),
    packb({3: "status", 5: -1}),
    packb({3: "status", 7: [1]}),
])
def test_request_decode_errors(raw):
    with pytest.raises(DecodeError):
        RequestMessage.from_bytes(raw)


def test_truncated_request(ids):
    sender, to = ids
    data = RequestMessage(method="echo", sender=sender, to=to, payload=b"x" * 10).to_bytes()
    with pytest.raises(DecodeError):
        RequestMessage.from_bytes(data[:-3])


def test_response_roundtrip(ids):
    sender, to = ids
    ok = ResponseMessage(sender=sender, to=to, payload=b"result", nonce=b"n")
    assert ResponseMessage.from_bytes(ok.to_bytes()) == ok
    assert ok.result() == b"result"

    err = ResponseMessage(sender=sender, to=to, error=OmniError.invalid_method_name("nope"))
    restored = ResponseMessage.from_bytes(err.to_bytes())
    assert restored.is_error()
    assert restored.error == err.error
    with pytest.raises(OmniError) as exc:
        restored.result()
    assert exc.value.fields["method"] == "nope"


def test_response_rejects_payload_and_error():
    with pytest.raises(ValueError):
        ResponseMessage(payload=b"x", error=OmniError.unknown())


def test_response_data_type_checked():
    with pytest.raises(DecodeError):
        ResponseMessage.from_bytes(packb({4: "text"}))


def test_response_from_request(ids):
    client, server = ids
    req = RequestMessage(method="echo", sender=client, to=server, nonce=b"abc", version=1)
    res = ResponseMessage.from_request(req, server, payload=b"hi")
    assert res.sender == server
    assert res.to == client
    assert res.nonce == b"abc"
    assert res.version == 1
