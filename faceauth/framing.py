"""Length-prefixed message framing over byte streams."""

import struct

from .protocol import encode

_LENGTH = struct.Struct("<I")


def write_message(writer, msg) -> None:
    """Write a message preceded by its 4-byte little-endian length."""
    payload = encode(msg)
    writer.write(_LENGTH.pack(len(payload)) + payload)


def read_message(reader, decoder):
    """Read one length-prefixed message and decode it with ``decoder``.

    Raises EOFError when the stream ends before the frame is complete.
    """
    (length,) = _LENGTH.unpack(_read_exact(reader, _LENGTH.size))
    return decoder(_read_exact(reader, length))


def _read_exact(reader, size: int) -> bytes:
    chunks = []
    remaining = size
    while remaining:
        chunk = reader.read(remaining)
        if not chunk:
            raise EOFError(f"expected {size} bytes, got {size - remaining}")
        chunks.append(chunk)
        remaining -= len(chunk)
    return b"".join(chunks)