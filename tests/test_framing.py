import io

import pytest

from faceauth.framing import read_message, write_message
from faceauth.protocol import (
    AuthOutcome,
    AuthRequest,
    AuthResultMessage,
    FeedbackMessage,
    FeedbackState,
    ProtocolError,
    decode_daemon_message,
    decode_pam_request,
)


class OneByteReader:
    def __init__(self, data):
        self._buf = io.BytesIO(data)

    def read(self, n):
        return self._buf.read(min(n, 1))


def test_roundtrip_daemon_message():
    msg = AuthResultMessage(session_id=42, outcome=AuthOutcome.SUCCESS)
    buf = io.BytesIO()
    write_message(buf, msg)
    buf.seek(0)
    decoded = read_message(buf, decode_daemon_message)
    assert decoded == AuthResultMessage(session_id=42, outcome=AuthOutcome.SUCCESS)


def test_length_prefix_matches_payload():
    buf = io.BytesIO()
    write_message(buf, AuthRequest(username="alice", session_id=9))
    data = buf.getvalue()
    assert int.from_bytes(data[:4], "little") == len(data) - 4


def test_multiple_messages_in_sequence():
    first = FeedbackMessage(session_id=1, state=FeedbackState.TOO_FAR)
    second = AuthResultMessage(session_id=1, outcome=AuthOutcome.TIMEOUT)
    buf = io.BytesIO()
    write_message(buf, first)
    write_message(buf, second)
    buf.seek(0)
    assert read_message(buf, decode_daemon_message) == first
    assert read_message(buf, decode_daemon_message) == second


def test_partial_reads_are_reassembled():
    msg = AuthRequest(username="bob", session_id=77)
    buf = io.BytesIO()
    write_message(buf, msg)
    assert read_message(OneByteReader(buf.getvalue()), decode_pam_request) == msg


def test_truncated_stream_raises_eof():
    buf = io.BytesIO()
    write_message(buf, AuthRequest(username="alice", session_id=9))
    truncated = io.BytesIO(buf.getvalue()[:-2])
    with pytest.raises(EOFError):
        read_message(truncated, decode_pam_request)


def test_empty_stream_raises_eof():
    with pytest.raises(EOFError):
        read_message(io.BytesIO(b""), decode_pam_request)


def test_corrupt_payload_raises_protocol_error():
    payload = (7).to_bytes(4, "little")
    frame = len(payload).to_bytes(4, "little") + payload
    with pytest.raises(ProtocolError):
        read_message(io.BytesIO(frame), decode_daemon_message)