"""Daemon configuration loaded from TOML with defaults for missing fields."""

import tomllib
from dataclasses import dataclass, field, fields
from pathlib import Path

SYSTEM_CONFIG_PATH = "/etc/face-auth/config.toml"

_U32 = {"range": (0, 2**32 - 1)}
_U64 = {"range": (0, 2**64 - 1)}
_I32 = {"range": (-(2**31), 2**31 - 1)}


class ConfigError(Exception):
    """The configuration file could not be read or parsed."""

    def __init__(self, detail: str):
        super().__init__(f"failed to parse config: {detail}")
        self.detail = detail


@dataclass
class PlatformConfig:
    display_manager: str = "sddm"
    init_system: str = "systemd"
    selinux: bool = True


@dataclass
class DaemonConfig:
    socket_path: str = "/run/face-auth/pam.sock"
    ui_socket_path: str = "/run/face-auth/ui.sock"
    session_timeout_s: int = field(default=7, metadata=_U64)
    idle_unload_s: int = field(default=0, metadata=_U64)
    max_concurrent: int = field(default=1, metadata=_U32)
    # ONNX Runtime execution provider: "cpu", "rocm", "cuda", "xdna".
    execution_provider: str = "cpu"


@dataclass
class CameraConfig:
    device_path: str = ""
    flush_frames: int = field(default=0, metadata=_U32)


@dataclass
class RecognitionConfig:
    model: str = "arcface_r50"
    threshold: float = 0.70
    frames_required: int = field(default=2, metadata=_U32)
    max_enrollment: int = field(default=20, metadata=_U32)


@dataclass
class LivenessConfig:
    enabled: bool = True
    # Minimum LBP entropy of the IR face texture.
    lbp_entropy_min: float = 5.5
    # Accepted range of the local contrast coefficient of variation.
    local_contrast_cv_min: float = 0.20
    local_contrast_cv_max: float = 0.80
    # ML anti-spoof model, only useful with RGB cameras.
    model_enabled: bool = False
    model: str = "minifasnet_v2"
    model_threshold: float = 0.5


@dataclass
class GeometryConfig:
    distance_min: float = 0.06
    distance_max: float = 0.55
    yaw_max_deg: float = 45.0
    pitch_max_deg: float = 45.0
    roll_max_deg: float = 35.0
    guidance_debounce_ms: int = field(default=100, metadata=_U64)


@dataclass
class LoggingConfig:
    level: str = "info"


@dataclass
class NotifyConfig:
    # Desktop notification on successful auth (opt-in).
    enabled: bool = False
    # Notification timeout in milliseconds (0 = server default).
    timeout_ms: int = field(default=3000, metadata=_I32)


def _coerce(value, f, section: str):
    where = f"{section}.{f.name}"
    kind = f.type
    is_number = isinstance(value, (int, float)) and not isinstance(value, bool)
    if kind is bool and isinstance(value, bool):
        return value
    if kind is int and isinstance(value, int) and not isinstance(value, bool):
        low, high = f.metadata["range"]
        if not low <= value <= high:
            raise ConfigError(f"{where}: {value} out of range")
        return value
    if kind is float and is_number:
        return float(value)
    if kind is str and isinstance(value, str):
        return value
    raise ConfigError(
        f"{where}: expected {kind.__name__}, got {type(value).__name__}"
    )


def _build_section(cls, table, section: str):
    if not isinstance(table, dict):
        raise ConfigError(f"{section}: expected a table")
    values = {
        f.name: _coerce(table[f.name], f, section)
        for f in fields(cls)
        if f.name in table
    }
    return cls(**values)


@dataclass
class Config:
    platform: PlatformConfig = field(default_factory=PlatformConfig)
    daemon: DaemonConfig = field(default_factory=DaemonConfig)
    camera: CameraConfig = field(default_factory=CameraConfig)
    recognition: RecognitionConfig = field(default_factory=RecognitionConfig)
    liveness: LivenessConfig = field(default_factory=LivenessConfig)
    geometry: GeometryConfig = field(default_factory=GeometryConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    notify: NotifyConfig = field(default_factory=NotifyConfig)

    @classmethod
    def load(cls, path) -> "Config":
        """Load from a TOML file; a missing file yields the defaults."""
        path = Path(path)
        if not path.exists():
            return cls()
        try:
            with path.open("rb") as fh:
                document = tomllib.load(fh)
        except tomllib.TOMLDecodeError as exc:
            raise ConfigError(str(exc)) from exc
        except OSError as exc:
            raise ConfigError(str(exc)) from exc
        sections = {
            f.name: _build_section(f.type, document[f.name], f.name)
            for f in fields(cls)
            if f.name in document
        }
        return cls(**sections)

    @classmethod
    def load_system(cls) -> "Config":
        """Load from the system-wide configuration path."""
        return cls.load(SYSTEM_CONFIG_PATH)