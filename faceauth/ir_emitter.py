"""IR emitter activation through a UVC extension-unit control.

A previously discovered unit/selector and byte sequence is replayed with
UVC_SET_CUR to switch the camera's IR emitter on, and optionally to restore
the original value afterwards.
"""

import array
import re
import struct
from dataclasses import dataclass

DEFAULT_CONFIG_PATH = "/etc/face-auth/ir-emitter.toml"

UVCIOC_CTRL_QUERY = 0xC0107521
UVC_SET_CUR = 0x01

# struct uvc_xu_control_query { u8 unit; u8 selector; u8 query; u16 size; u8 *data; }
_QUERY = struct.Struct("@BBBBHHP")

_HEX = re.compile(r"\+?[0-9a-fA-F]+")
_DEC = re.compile(r"\+?[0-9]+")
_U64_MAX = 2**64 - 1


class IrEmitterError(Exception):
    """Loading, parsing or applying the IR emitter configuration failed."""


def _uvc_set_cur(fd: int, unit: int, selector: int, data: bytes) -> None:
    import fcntl

    buf = array.array("B", data)
    address, length = buf.buffer_info()
    query = bytearray(
        _QUERY.pack(unit, selector, UVC_SET_CUR, 0, length & 0xFFFF, 0, address)
    )
    try:
        fcntl.ioctl(fd, UVCIOC_CTRL_QUERY, query, True)
    except OSError as exc:
        raise IrEmitterError(f"ioctl failed: {exc}") from exc


def parse_int(s: str) -> int | None:
    """Parse ``= N`` or ``= 0xNN`` into an unsigned integer, or None."""
    s = s.strip().lstrip("=").strip()
    if s.startswith(("0x", "0X")):
        digits, base, pattern = s[2:], 16, _HEX
    else:
        digits, base, pattern = s, 10, _DEC
    if not pattern.fullmatch(digits):
        return None
    value = int(digits, base)
    return value if value <= _U64_MAX else None


def parse_byte_array(s: str) -> bytes | None:
    """Parse ``= [0x01, 0x02, ...]`` into bytes, or None on a bad element."""
    s = s.strip().lstrip("=").strip()
    s = s.lstrip("[").rstrip("]")
    values = []
    for token in s.split(","):
        token = token.strip()
        if not token:
            continue
        value = parse_int(token)
        if value is None:
            return None
        values.append(value & 0xFF)
    return bytes(values)


@dataclass(frozen=True)
class IrEmitterConfig:
    unit: int
    selector: int
    enable_data: bytes
    # Original value captured during discovery, restored after a session.
    disable_data: bytes | None = None

    @classmethod
    def load(cls, path) -> "IrEmitterConfig":
        """Read and parse the configuration file at ``path``."""
        try:
            with open(path, encoding="utf-8") as fh:
                text = fh.read()
        except (OSError, UnicodeDecodeError):
            raise IrEmitterError(f"config file not found at {path}") from None
        return cls.parse(text)

    @classmethod
    def parse(cls, text: str) -> "IrEmitterConfig":
        """Parse the minimal key = value format of the emitter config."""
        unit = selector = enable_data = disable_data = None
        for raw_line in text.splitlines():
            line = raw_line.strip()
            if not line or line.startswith("#"):
                continue
            if line.startswith("unit"):
                unit = cls._int_value(line, "unit") & 0xFF
            elif line.startswith("selector"):
                selector = cls._int_value(line, "selector") & 0xFF
            elif line.startswith("enable_data"):
                enable_data = cls._bytes_value(line, "enable_data")
            elif line.startswith("disable_data"):
                disable_data = cls._bytes_value(line, "disable_data")

        if unit is None:
            raise IrEmitterError("config parse error: missing 'unit'")
        if selector is None:
            raise IrEmitterError("config parse error: missing 'selector'")
        if enable_data is None:
            raise IrEmitterError("config parse error: missing 'enable_data'")
        return cls(unit, selector, enable_data, disable_data)

    @staticmethod
    def _int_value(line: str, key: str) -> int:
        value = parse_int(line[len(key):])
        if value is None:
            raise IrEmitterError(f"config parse error: {line}")
        return value

    @staticmethod
    def _bytes_value(line: str, key: str) -> bytes:
        value = parse_byte_array(line[len(key):])
        if value is None:
            raise IrEmitterError(f"config parse error: {line}")
        return value

    def activate(self, fd: int) -> None:
        """Switch the emitter on for the camera open at ``fd``."""
        _uvc_set_cur(fd, self.unit, self.selector, self.enable_data)

    def deactivate(self, fd: int) -> None:
        """Restore the original value; does nothing without ``disable_data``."""
        if self.disable_data is not None:
            _uvc_set_cur(fd, self.unit, self.selector, self.disable_data)