import uuid

import pytest

from dslabkit.wire import (
    AliveInfo,
    AliveRequest,
    DecodeError,
    HeartbeatRequest,
    HeartbeatResponse,
    decode,
    encode,
)

IDENT_A = uuid.UUID(int=13)
IDENT_B = uuid.UUID(int=789)


def test_alive_request_takes_four_bytes():
    data = encode(AliveRequest())
    assert len(data) == 4
    assert data == b"\x02\x00\x00\x00"


def test_heartbeat_request_wire_bytes():
    assert encode(HeartbeatRequest()) == b"\x00\x00\x00\x00"


def test_heartbeat_response_holds_uuid_bytes():
    data = encode(HeartbeatResponse(IDENT_A))
    assert data.endswith(IDENT_A.bytes)
    assert len(data) == 4 + 8 + 16


@pytest.mark.parametrize(
    "operation",
    [
        HeartbeatRequest(),
        HeartbeatResponse(IDENT_A),
        AliveRequest(),
        AliveInfo(frozenset()),
        AliveInfo(frozenset({IDENT_A})),
        AliveInfo(frozenset({IDENT_A, IDENT_B})),
    ],
)
def test_round_trip(operation):
    assert decode(encode(operation)) == operation


def test_alive_info_accepts_any_iterable():
    info = AliveInfo({IDENT_A, IDENT_B})
    assert info.alive == frozenset({IDENT_A, IDENT_B})
    assert decode(encode(info)).alive == {IDENT_A, IDENT_B}


def test_trailing_bytes_are_ignored():
    assert decode(encode(AliveRequest()) + b"\x00" * 12) == AliveRequest()


def test_empty_data_is_rejected():
    with pytest.raises(DecodeError):
        decode(b"")


def test_unknown_variant_is_rejected():
    with pytest.raises(DecodeError):
        decode(b"\x07\x00\x00\x00")


def test_truncated_uuid_is_rejected():
    data = encode(HeartbeatResponse(IDENT_A))
    with pytest.raises(DecodeError):
        decode(data[:-1])


def test_wrong_uuid_length_is_rejected():
    data = bytearray(encode(HeartbeatResponse(IDENT_A)))
    data[4] = 15
    with pytest.raises(DecodeError):
        decode(bytes(data))


def test_truncated_alive_info_is_rejected():
    data = encode(AliveInfo({IDENT_A, IDENT_B}))
    with pytest.raises(DecodeError):
        decode(data[:-20])


def test_encode_rejects_other_objects():
    with pytest.raises(TypeError):
        encode("AliveRequest")