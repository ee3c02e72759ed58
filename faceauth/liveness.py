"""Pre- and post-processing for the anti-spoof liveness model."""

import math
from collections.abc import Sequence
from dataclasses import dataclass

import numpy as np

from .geometry import BBox

LIVENESS_INPUT_SIZE = 128
_U32_MAX = 2**32 - 1


class LivenessError(Exception):
    """The liveness model's input or output could not be processed."""


@dataclass
class LivenessResult:
    """Softmax probabilities that a face is real or a spoof."""

    real_score: float
    spoof_score: float

    def is_real(self, threshold: float) -> bool:
        return self.real_score >= threshold


def softmax2(a: float, b: float) -> tuple[float, float]:
    """Numerically stable softmax over two logits."""
    top = max(a, b)
    ea = math.exp(a - top)
    eb = math.exp(b - top)
    total = ea + eb
    return ea / total, eb / total


def result_from_output(raw: Sequence[float]) -> LivenessResult:
    """Build a result from the model's raw logits ``[spoof, real, ...]``."""
    values = np.asarray(raw, dtype=np.float64).ravel()
    if values.size < 2:
        raise LivenessError(f"expected 2 outputs, got {values.size}")
    spoof, real = softmax2(float(values[0]), float(values[1]))
    return LivenessResult(real_score=real, spoof_score=spoof)


def _as_u32(value: float) -> int:
    if math.isnan(value) or value <= 0.0:
        return 0
    if value >= _U32_MAX:
        return _U32_MAX
    return int(value)


def _frame(data, width: int, height: int) -> np.ndarray:
    if isinstance(data, np.ndarray):
        flat = data.astype(np.uint8, copy=False).ravel()
    else:
        flat = np.frombuffer(bytes(data), dtype=np.uint8)
    if width <= 0 or height <= 0 or flat.size < width * height:
        raise LivenessError(
            f"frame has {flat.size} pixels, expected {width * height}"
        )
    return flat[: width * height].reshape(height, width).astype(np.float64)


def _bilinear(img: np.ndarray, x: np.ndarray, y: np.ndarray) -> np.ndarray:
    """Bilinear sampling with coordinates clamped to the image."""
    height, width = img.shape
    x0 = np.clip(np.floor(x), 0, width - 1).astype(np.int64)
    y0 = np.clip(np.floor(y), 0, height - 1).astype(np.int64)
    x1 = np.minimum(x0 + 1, width - 1)
    y1 = np.minimum(y0 + 1, height - 1)
    fx = x - x0
    fy = y - y0
    return (
        img[y0, x0] * (1.0 - fx) * (1.0 - fy)
        + img[y0, x1] * fx * (1.0 - fy)
        + img[y1, x0] * (1.0 - fx) * fy
        + img[y1, x1] * fx * fy
    )


def bilinear_sample(data, width: int, height: int, x: float, y: float) -> float:
    """Sample a grayscale frame at (x, y), clamping neighbours to the edges."""
    img = _frame(data, width, height)
    value = _bilinear(img, np.array([float(x)]), np.array([float(y)]))
    return float(value[0])


def preprocess(frame_data, frame_width: int, frame_height: int, bbox: BBox) -> np.ndarray:
    """Crop a square around the face (20% larger), resize to 128x128, normalize.

    Returns a float32 array of shape (1, 3, 128, 128); all zeros when the
    crop is too small.
    """
    tensor = np.zeros((1, 3, LIVENESS_INPUT_SIZE, LIVENESS_INPUT_SIZE), dtype=np.float32)

    side = max(bbox.x2 - bbox.x1, bbox.y2 - bbox.y1) * 1.2
    half = side / 2.0
    cx = (bbox.x1 + bbox.x2) / 2.0
    cy = (bbox.y1 + bbox.y2) / 2.0

    x1 = _as_u32(max(cx - half, 0.0))
    y1 = _as_u32(max(cy - half, 0.0))
    x2 = _as_u32(min(cx + half, float(frame_width)))
    y2 = _as_u32(min(cy + half, float(frame_height)))
    crop_w = x2 - x1
    crop_h = y2 - y1
    if crop_w < 2 or crop_h < 2:
        return tensor

    img = _frame(frame_data, frame_width, frame_height)
    steps = np.arange(LIVENESS_INPUT_SIZE, dtype=np.float64)
    src_x = x1 + steps * (crop_w / LIVENESS_INPUT_SIZE)
    src_y = y1 + steps * (crop_h / LIVENESS_INPUT_SIZE)
    grid_y, grid_x = np.meshgrid(src_y, src_x, indexing="ij")

    pixels = _bilinear(img, grid_x, grid_y)
    tensor[0, :] = ((pixels - 127.5) / 128.0).astype(np.float32)
    return tensor