import pytest

from faceauth.protocol import (
    PROTOCOL_VERSION,
    AuthOutcome,
    AuthRequest,
    AuthResultMessage,
    CancelRequest,
    FeedbackMessage,
    FeedbackState,
    ProtocolError,
    UiFeedback,
    UiSessionEnded,
    UiSessionStarted,
    decode_daemon_message,
    decode_pam_request,
    decode_ui_message,
    encode,
)


def test_auth_result_wire_bytes():
    data = encode(AuthResultMessage(session_id=42, outcome=AuthOutcome.SUCCESS))
    assert data == b"\x01\x00\x00\x00" + b"\x2a" + b"\x00" * 7 + b"\x00\x00\x00\x00"


def test_ui_session_started_wire_bytes():
    data = encode(UiSessionStarted(username="ab"))
    assert data == b"\x00\x00\x00\x00" + b"\x02" + b"\x00" * 7 + b"ab"


@pytest.mark.parametrize(
    "msg",
    [
        AuthRequest(username="alice", session_id=1),
        AuthRequest(username="bøb", session_id=2**64 - 1, version=PROTOCOL_VERSION),
        CancelRequest(session_id=99),
    ],
)
def test_pam_request_roundtrip(msg):
    assert decode_pam_request(encode(msg)) == msg


@pytest.mark.parametrize("state", list(FeedbackState))
def test_feedback_roundtrip_every_state(state):
    msg = FeedbackMessage(session_id=7, state=state)
    assert decode_daemon_message(encode(msg)) == msg
    ui = UiFeedback(state=state)
    assert decode_ui_message(encode(ui)) == ui


@pytest.mark.parametrize("outcome", list(AuthOutcome))
def test_outcome_roundtrip_every_variant(outcome):
    msg = AuthResultMessage(session_id=3, outcome=outcome)
    assert decode_daemon_message(encode(msg)) == msg
    ui = UiSessionEnded(outcome=outcome)
    assert decode_ui_message(encode(ui)) == ui


def test_auth_request_default_version():
    decoded = decode_pam_request(encode(AuthRequest(username="u", session_id=5)))
    assert decoded.version == PROTOCOL_VERSION


def test_decode_empty_raises():
    with pytest.raises(ProtocolError):
        decode_pam_request(b"")


def test_decode_truncated_raises():
    data = encode(AuthRequest(username="alice", session_id=1))
    with pytest.raises(ProtocolError):
        decode_pam_request(data[:-1])


def test_decode_unknown_variant_raises():
    data = encode(UiSessionEnded(outcome=AuthOutcome.FAILED))
    bad = (9).to_bytes(4, "little") + data[4:]
    with pytest.raises(ProtocolError):
        decode_ui_message(bad)


def test_decode_invalid_state_index_raises():
    data = encode(UiFeedback(state=FeedbackState.SCANNING))
    bad = data[:4] + (200).to_bytes(4, "little")
    with pytest.raises(ProtocolError):
        decode_ui_message(bad)


def test_decode_invalid_utf8_raises():
    data = encode(UiSessionStarted(username="ab"))
    bad = data[:-2] + b"\xff\xfe"
    with pytest.raises(ProtocolError):
        decode_ui_message(bad)


def test_encode_out_of_range_raises():
    with pytest.raises(ProtocolError):
        encode(CancelRequest(session_id=-1))


def test_encode_unknown_type_raises():
    with pytest.raises(TypeError):
        encode("not a message")