"""Messages exchanged between the PAM module, the daemon and UI clients.

Messages are encoded in a compact little-endian binary layout: every enum
carries its variant index as a u32, integers are fixed width and strings are
a u64 byte length followed by UTF-8 bytes.
"""

import struct
from dataclasses import dataclass
from enum import Enum

PROTOCOL_VERSION = 1


class ProtocolError(ValueError):
    """A message could not be encoded or decoded."""


class FeedbackState(Enum):
    """Guidance shown to the user while a session runs."""

    SCANNING = 0
    TOO_FAR = 1
    TOO_CLOSE = 2
    TURN_LEFT = 3
    TURN_RIGHT = 4
    TILT_UP = 5
    TILT_DOWN = 6
    IR_SATURATED = 7
    EYES_NOT_VISIBLE = 8
    LOOK_AT_CAMERA = 9
    AUTHENTICATING = 10


class AuthOutcome(Enum):
    """Final result of an authentication session."""

    SUCCESS = 0
    FAILED = 1
    TIMEOUT = 2
    DAEMON_UNAVAILABLE = 3
    CANCELLED = 4


# Requests sent by the PAM module.


@dataclass(frozen=True)
class AuthRequest:
    username: str
    session_id: int
    version: int = PROTOCOL_VERSION


@dataclass(frozen=True)
class CancelRequest:
    session_id: int


# Messages sent by the daemon to the PAM module.


@dataclass(frozen=True)
class FeedbackMessage:
    session_id: int
    state: FeedbackState


@dataclass(frozen=True)
class AuthResultMessage:
    session_id: int
    outcome: AuthOutcome


# Messages sent by the daemon to UI clients.


@dataclass(frozen=True)
class UiSessionStarted:
    username: str


@dataclass(frozen=True)
class UiFeedback:
    state: FeedbackState


@dataclass(frozen=True)
class UiSessionEnded:
    outcome: AuthOutcome


PamRequest = AuthRequest | CancelRequest
DaemonMessage = FeedbackMessage | AuthResultMessage
UiMessage = UiSessionStarted | UiFeedback | UiSessionEnded


def _pack(fmt: str, value: int) -> bytes:
    try:
        return struct.pack(fmt, value)
    except struct.error as exc:
        raise ProtocolError(f"value out of range: {value!r}") from exc


def _u32(value: int) -> bytes:
    return _pack("<I", value)


def _u64(value: int) -> bytes:
    return _pack("<Q", value)


def _string(value: str) -> bytes:
    raw = value.encode("utf-8")
    return _u64(len(raw)) + raw


def encode(msg) -> bytes:
    """Serialize any protocol message to bytes."""
    match msg:
        case AuthRequest(username=username, session_id=session_id, version=version):
            return _u32(0) + _u32(version) + _string(username) + _u64(session_id)
        case CancelRequest(session_id=session_id):
            return _u32(1) + _u64(session_id)
        case FeedbackMessage(session_id=session_id, state=state):
            return _u32(0) + _u64(session_id) + _u32(FeedbackState(state).value)
        case AuthResultMessage(session_id=session_id, outcome=outcome):
            return _u32(1) + _u64(session_id) + _u32(AuthOutcome(outcome).value)
        case UiSessionStarted(username=username):
            return _u32(0) + _string(username)
        case UiFeedback(state=state):
            return _u32(1) + _u32(FeedbackState(state).value)
        case UiSessionEnded(outcome=outcome):
            return _u32(2) + _u32(AuthOutcome(outcome).value)
    raise TypeError(f"not a protocol message: {type(msg).__name__}")


class _Reader:
    def __init__(self, data: bytes):
        self._data = bytes(data)
        self._pos = 0

    def _take(self, n: int) -> bytes:
        end = self._pos + n
        if end > len(self._data):
            raise ProtocolError("unexpected end of message")
        chunk = self._data[self._pos:end]
        self._pos = end
        return chunk

    def u32(self) -> int:
        return struct.unpack("<I", self._take(4))[0]

    def u64(self) -> int:
        return struct.unpack("<Q", self._take(8))[0]

    def string(self) -> str:
        raw = self._take(self.u64())
        try:
            return raw.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise ProtocolError("invalid UTF-8 in string") from exc

    def enum(self, cls):
        index = self.u32()
        try:
            return cls(index)
        except ValueError:
            raise ProtocolError(f"invalid {cls.__name__} variant {index}") from None


def decode_pam_request(data: bytes) -> PamRequest:
    """Decode a request sent by the PAM module."""
    reader = _Reader(data)
    tag = reader.u32()
    if tag == 0:
        version = reader.u32()
        username = reader.string()
        session_id = reader.u64()
        return AuthRequest(username=username, session_id=session_id, version=version)
    if tag == 1:
        return CancelRequest(session_id=reader.u64())
    raise ProtocolError(f"invalid PamRequest variant {tag}")


def decode_daemon_message(data: bytes) -> DaemonMessage:
    """Decode a message sent by the daemon to the PAM module."""
    reader = _Reader(data)
    tag = reader.u32()
    if tag == 0:
        session_id = reader.u64()
        return FeedbackMessage(session_id=session_id, state=reader.enum(FeedbackState))
    if tag == 1:
        session_id = reader.u64()
        return AuthResultMessage(session_id=session_id, outcome=reader.enum(AuthOutcome))
    raise ProtocolError(f"invalid DaemonMessage variant {tag}")


def decode_ui_message(data: bytes) -> UiMessage:
    """Decode a message sent by the daemon to a UI client."""
    reader = _Reader(data)
    tag = reader.u32()
    if tag == 0:
        return UiSessionStarted(username=reader.string())
    if tag == 1:
        return UiFeedback(state=reader.enum(FeedbackState))
    if tag == 2:
        return UiSessionEnded(outcome=reader.enum(AuthOutcome))
    raise ProtocolError(f"invalid UiMessage variant {tag}")