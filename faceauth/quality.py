"""Image quality and IR texture liveness measures for a face region."""

import math
from dataclasses import dataclass

import numpy as np

from .geometry import BBox

_U32_MAX = 2**32 - 1
_PATCH_SIZE = 16


def _as_u32(value: float) -> int:
    """Saturating float-to-unsigned conversion (NaN and negatives give 0)."""
    if math.isnan(value) or value <= 0.0:
        return 0
    if math.isinf(value) or value >= _U32_MAX:
        return _U32_MAX
    return int(value)


def _as_pixels(data) -> np.ndarray:
    if isinstance(data, np.ndarray):
        return data.astype(np.uint8, copy=False).ravel()
    return np.frombuffer(bytes(data), dtype=np.uint8)


def _region(
    frame: np.ndarray, frame_width: int, x1: int, y1: int, x2: int, y2: int
) -> np.ndarray:
    if x2 <= x1 or y2 <= y1:
        return np.zeros((0, 0), dtype=np.uint8)
    rows = frame.size // frame_width
    img = frame[: rows * frame_width].reshape(rows, frame_width)
    if y2 > rows:
        raise ValueError("bounding box extends past the end of the frame data")
    return img[y1:y2, x1:x2]


def ir_saturated(frame_data, bbox: BBox, frame_width: int) -> bool:
    """True when more than 30% of the face region is above 250."""
    frame = _as_pixels(frame_data)
    frame_height = frame.size // frame_width
    x1 = _as_u32(max(bbox.x1, 0.0))
    y1 = _as_u32(max(bbox.y1, 0.0))
    x2 = min(_as_u32(bbox.x2), frame_width)
    y2 = min(_as_u32(max(bbox.y2, 0.0)), frame_height)
    roi = _region(frame, frame_width, x1, y1, x2, y2)
    if roi.size == 0:
        return False
    saturated = int(np.count_nonzero(roi > 250))
    return saturated / roi.size > 0.30


def blur_score(frame_data, bbox: BBox, frame_width: int, frame_height: int) -> float:
    """Variance of the Laplacian over the face region; higher is sharper."""
    frame = _as_pixels(frame_data)
    x1 = min(_as_u32(bbox.x1), max(frame_width - 1, 0))
    y1 = min(_as_u32(bbox.y1), max(frame_height - 1, 0))
    x2 = min(_as_u32(bbox.x2), frame_width)
    y2 = min(_as_u32(bbox.y2), frame_height)
    if x2 - x1 < 3 or y2 - y1 < 3:
        return 0.0

    roi = _region(frame, frame_width, x1, y1, x2, y2).astype(np.float64)
    laplacian = (
        roi[:-2, 1:-1]
        + roi[2:, 1:-1]
        + roi[1:-1, :-2]
        + roi[1:-1, 2:]
        - 4.0 * roi[1:-1, 1:-1]
    )
    if laplacian.size == 0:
        return 0.0
    return float(np.var(laplacian))


@dataclass
class IrLivenessScores:
    """Texture measures separating real skin from photos and screens under IR."""

    # Entropy of the local binary pattern histogram; real skin is high.
    lbp_entropy: float
    # Coefficient of variation of per-patch standard deviations.
    local_contrast_cv: float

    def is_live(
        self,
        lbp_entropy_min: float,
        local_contrast_cv_min: float,
        local_contrast_cv_max: float,
    ) -> bool:
        return (
            self.lbp_entropy >= lbp_entropy_min
            and local_contrast_cv_min <= self.local_contrast_cv <= local_contrast_cv_max
        )


def extract_roi(
    frame_data, bbox: BBox, frame_width: int, frame_height: int
) -> tuple[bytes, int, int]:
    """Copy the face region out of the frame as ``(pixels, width, height)``."""
    frame = _as_pixels(frame_data)
    x1 = min(_as_u32(max(bbox.x1, 0.0)), max(frame_width - 1, 0))
    y1 = min(_as_u32(max(bbox.y1, 0.0)), max(frame_height - 1, 0))
    x2 = min(_as_u32(bbox.x2), frame_width)
    y2 = min(_as_u32(bbox.y2), frame_height)
    roi_w = max(x2 - x1, 0)
    roi_h = max(y2 - y1, 0)
    if roi_w == 0 or roi_h == 0:
        return b"", roi_w, roi_h
    roi = _region(frame, frame_width, x1, y1, x2, y2)
    return roi.tobytes(), roi_w, roi_h


def compute_lbp_entropy(pixels, width: int, height: int) -> float:
    """Shannon entropy (bits) of the 8-neighbour local binary pattern histogram."""
    if width < 3 or height < 3:
        return 0.0
    img = _as_pixels(pixels)[: width * height].reshape(height, width)
    center = img[1:-1, 1:-1]
    # Neighbours clockwise starting from the right, one bit each.
    neighbours = (
        img[1:-1, 2:],
        img[2:, 2:],
        img[2:, 1:-1],
        img[2:, :-2],
        img[1:-1, :-2],
        img[:-2, :-2],
        img[:-2, 1:-1],
        img[:-2, 2:],
    )
    pattern = np.zeros(center.shape, dtype=np.int64)
    for bit, neighbour in enumerate(neighbours):
        pattern |= (neighbour >= center).astype(np.int64) << bit

    histogram = np.bincount(pattern.ravel(), minlength=256)
    total = int(histogram.sum())
    if total == 0:
        return 0.0
    p = histogram[histogram > 0] / total
    return float(-np.sum(p * np.log2(p)))


def compute_local_contrast_cv(pixels, width: int, height: int) -> float:
    """Coefficient of variation of the standard deviations of 16x16 patches."""
    if width < _PATCH_SIZE or height < _PATCH_SIZE:
        return 0.0
    patches_x = width // _PATCH_SIZE
    patches_y = height // _PATCH_SIZE
    if patches_x * patches_y < 2:
        return 0.0

    img = _as_pixels(pixels)[: width * height].reshape(height, width).astype(np.float64)
    tiles = img[: patches_y * _PATCH_SIZE, : patches_x * _PATCH_SIZE].reshape(
        patches_y, _PATCH_SIZE, patches_x, _PATCH_SIZE
    )
    means = tiles.mean(axis=(1, 3))
    mean_sq = (tiles * tiles).mean(axis=(1, 3))
    stddevs = np.sqrt(np.maximum(mean_sq - means * means, 0.0)).ravel()

    mean = float(stddevs.mean())
    if mean < 1.0:
        return 0.0  # nearly uniform image
    return float(stddevs.std()) / mean


def ir_liveness_check(
    frame_data, bbox: BBox, frame_width: int, frame_height: int
) -> IrLivenessScores:
    """Compute the IR texture liveness scores of the face region."""
    pixels, roi_w, roi_h = extract_roi(frame_data, bbox, frame_width, frame_height)
    return IrLivenessScores(
        lbp_entropy=compute_lbp_entropy(pixels, roi_w, roi_h),
        local_contrast_cv=compute_local_contrast_cv(pixels, roi_w, roi_h),
    )