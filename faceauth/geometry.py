"""Face pose metrics and the guidance state machine for an auth session."""

import math
from dataclasses import dataclass, replace
from enum import Enum

from .config import GeometryConfig
from .protocol import FeedbackState

Point = tuple[float, float]


@dataclass
class Landmarks:
    """Five facial landmarks in pixel coordinates."""

    left_eye: Point
    right_eye: Point
    nose: Point
    left_mouth: Point
    right_mouth: Point
    left_eye_conf: float
    right_eye_conf: float


@dataclass
class BBox:
    """Axis-aligned face bounding box in pixel coordinates."""

    x1: float
    y1: float
    x2: float
    y2: float

    def width(self) -> float:
        return self.x2 - self.x1


@dataclass
class FaceMetrics:
    """Geometry metrics computed for one detected face."""

    face_width_ratio: float
    yaw_deg: float
    pitch_deg: float
    roll_deg: float
    ir_saturated: bool = False
    eyes_visible: bool = True
    blur_score: float = 100.0


class AuthState(Enum):
    """Phase of the authentication state machine."""

    IDLE = "idle"
    GUIDANCE = "guidance"
    AUTHENTICATING = "authenticating"
    DONE = "done"


class StateMachine:
    """Turns per-frame face metrics into debounced user guidance.

    ``now`` values passed to :meth:`transition` are monotonic times in seconds.
    While in the guidance phase, ``guidance`` holds the feedback being shown.
    """

    def __init__(self, geo_config: GeometryConfig):
        self.state = AuthState.IDLE
        self.guidance: FeedbackState | None = None
        self._last_guidance_change: float | None = None
        self._debounce = geo_config.guidance_debounce_ms / 1000.0
        self._geo_config = replace(geo_config)

    def transition(self, metrics: FaceMetrics | None, now: float) -> FeedbackState | None:
        """Advance with the latest metrics; return feedback to emit, if any."""
        if self.state is AuthState.DONE:
            return None

        desired = (
            FeedbackState.SCANNING
            if metrics is None
            else classify(metrics, self._geo_config)
        )

        if desired is FeedbackState.AUTHENTICATING:
            self.state = AuthState.AUTHENTICATING
            self.guidance = None
            return FeedbackState.AUTHENTICATING

        if self.state is AuthState.GUIDANCE and self.guidance is desired:
            return None

        if self._last_guidance_change is not None:
            if now - self._last_guidance_change < self._debounce:
                return None

        self.state = AuthState.GUIDANCE
        self.guidance = desired
        self._last_guidance_change = now
        return desired

    def finish(self) -> None:
        """Enter the terminal state; no further feedback is emitted."""
        self.state = AuthState.DONE
        self.guidance = None


def classify(m: FaceMetrics, cfg: GeometryConfig) -> FeedbackState:
    """Pick the feedback for the metrics, checked in priority order."""
    if m.ir_saturated:
        return FeedbackState.IR_SATURATED
    if not m.eyes_visible:
        return FeedbackState.EYES_NOT_VISIBLE
    if m.face_width_ratio < cfg.distance_min:
        return FeedbackState.TOO_FAR
    if m.face_width_ratio > cfg.distance_max:
        return FeedbackState.TOO_CLOSE
    if abs(m.roll_deg) > cfg.roll_max_deg:
        return FeedbackState.LOOK_AT_CAMERA
    # Turned right -> ask to turn left, and vice versa.
    if m.yaw_deg > cfg.yaw_max_deg:
        return FeedbackState.TURN_LEFT
    if m.yaw_deg < -cfg.yaw_max_deg:
        return FeedbackState.TURN_RIGHT
    # Looking down -> ask to tilt up, and vice versa.
    if m.pitch_deg > cfg.pitch_max_deg:
        return FeedbackState.TILT_UP
    if m.pitch_deg < -cfg.pitch_max_deg:
        return FeedbackState.TILT_DOWN
    return FeedbackState.AUTHENTICATING


def analyze_geometry(
    landmarks: Landmarks, bbox: BBox, frame_width: int, frame_height: int
) -> FaceMetrics:
    """Estimate distance, yaw, pitch and roll from landmarks and a bbox."""
    face_width_ratio = bbox.width() / frame_width

    left_offset = landmarks.nose[0] - landmarks.left_eye[0]
    right_offset = landmarks.right_eye[0] - landmarks.nose[0]
    span = left_offset + right_offset
    yaw_deg = (left_offset - right_offset) / span * 45.0 if span > 0.0 else 0.0

    eye_mid_y = (landmarks.left_eye[1] + landmarks.right_eye[1]) / 2.0
    mouth_mid_y = (landmarks.left_mouth[1] + landmarks.right_mouth[1]) / 2.0
    face_height = mouth_mid_y - eye_mid_y
    if face_height > 0.0:
        pitch_deg = ((landmarks.nose[1] - eye_mid_y) / face_height - 0.40) * 100.0
    else:
        pitch_deg = 0.0

    dx = landmarks.right_eye[0] - landmarks.left_eye[0]
    dy = landmarks.right_eye[1] - landmarks.left_eye[1]
    roll_deg = math.degrees(math.atan2(dy, dx))

    eyes_visible = landmarks.left_eye_conf > 0.5 and landmarks.right_eye_conf > 0.5

    return FaceMetrics(
        face_width_ratio=face_width_ratio,
        yaw_deg=yaw_deg,
        pitch_deg=pitch_deg,
        roll_deg=roll_deg,
        ir_saturated=False,
        eyes_visible=eyes_visible,
        blur_score=100.0,
    )