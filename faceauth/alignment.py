"""Similarity-transform alignment of a face to the 112x112 recognition crop."""

from collections.abc import Sequence
from dataclasses import dataclass

import numpy as np

from .geometry import Landmarks

ALIGNED_SIZE = 112

# Canonical landmark positions in the 112x112 recognition crop:
# left eye, right eye, nose tip, left mouth corner, right mouth corner.
ARCFACE_TARGETS: tuple[tuple[float, float], ...] = (
    (38.2946, 51.6963),
    (73.5318, 51.5014),
    (56.0252, 71.7366),
    (41.5493, 92.3655),
    (70.7299, 92.2041),
)


@dataclass
class AlignedFace:
    """A grayscale face crop, row-major, one byte per pixel."""

    data: bytes
    width: int
    height: int


def _frame_array(frame_data, width: int, height: int) -> np.ndarray:
    if isinstance(frame_data, np.ndarray):
        flat = frame_data.astype(np.uint8, copy=False).ravel()
    else:
        flat = np.frombuffer(bytes(frame_data), dtype=np.uint8)
    needed = width * height
    if flat.size < needed:
        raise ValueError(
            f"frame has {flat.size} pixels, expected at least {needed}"
        )
    return flat[:needed].reshape(height, width)


def _bilinear(img: np.ndarray, x: np.ndarray, y: np.ndarray) -> np.ndarray:
    """Bilinear interpolation where samples outside the image count as 0."""
    height, width = img.shape
    x0 = np.floor(x).astype(np.int64)
    y0 = np.floor(y).astype(np.int64)
    x1 = x0 + 1
    y1 = y0 + 1
    fx = x - x0
    fy = y - y0

    def get(px: np.ndarray, py: np.ndarray) -> np.ndarray:
        valid = (px >= 0) & (py >= 0) & (px < width) & (py < height)
        out = np.zeros(px.shape, dtype=np.float64)
        out[valid] = img[py[valid], px[valid]]
        return out

    return (
        get(x0, y0) * (1.0 - fx) * (1.0 - fy)
        + get(x1, y0) * fx * (1.0 - fy)
        + get(x0, y1) * (1.0 - fx) * fy
        + get(x1, y1) * fx * fy
    )


def _to_pixels(values: np.ndarray) -> np.ndarray:
    # Values are non-negative, so floor(v + 0.5) rounds half away from zero.
    return np.clip(np.floor(values + 0.5), 0.0, 255.0).astype(np.uint8)


def bilinear_sample(data, width: int, height: int, x: float, y: float) -> int:
    """Sample a grayscale frame at (x, y); out-of-frame neighbours count as 0."""
    img = _frame_array(data, width, height)
    value = _bilinear(img, np.array([x], dtype=np.float64), np.array([y], dtype=np.float64))
    return int(_to_pixels(value)[0])


def compute_similarity_transform(
    src: Sequence[tuple[float, float]], dst: Sequence[tuple[float, float]]
) -> tuple[np.ndarray, float, float, float]:
    """Fit scale, rotation and translation mapping ``src`` points onto ``dst``.

    Returns ``(rotation, scale, tx, ty)`` with ``rotation`` a 2x2 matrix.
    """
    src_pts = np.asarray(src, dtype=np.float64)
    dst_pts = np.asarray(dst, dtype=np.float64)
    if src_pts.shape != dst_pts.shape or src_pts.ndim != 2 or src_pts.shape[1] != 2:
        raise ValueError("src and dst must be matching sequences of (x, y) points")

    src_c = src_pts.mean(axis=0)
    dst_c = dst_pts.mean(axis=0)
    src_centered = src_pts - src_c
    dst_centered = dst_pts - dst_c

    src_rms = float(np.sqrt(np.mean(np.sum(src_centered**2, axis=1))))
    dst_rms = float(np.sqrt(np.mean(np.sum(dst_centered**2, axis=1))))
    scale = dst_rms / src_rms if src_rms > 1e-6 else 1.0

    sx, sy = src_centered[:, 0], src_centered[:, 1]
    dx, dy = dst_centered[:, 0], dst_centered[:, 1]
    cos_part = float(np.sum(sx * dx + sy * dy))
    sin_part = float(np.sum(sx * dy - sy * dx))
    angle = np.arctan2(sin_part, cos_part)

    cos_a = float(np.cos(angle))
    sin_a = float(np.sin(angle))
    rotation = np.array([[cos_a, -sin_a], [sin_a, cos_a]])

    tx = float(dst_c[0] - scale * (cos_a * src_c[0] - sin_a * src_c[1]))
    ty = float(dst_c[1] - scale * (sin_a * src_c[0] + cos_a * src_c[1]))
    return rotation, scale, tx, ty


def align_face(
    frame_data, frame_width: int, frame_height: int, landmarks: Landmarks
) -> AlignedFace:
    """Warp a grayscale frame so the landmarks land on the canonical positions."""
    img = _frame_array(frame_data, frame_width, frame_height)
    src = [
        landmarks.left_eye,
        landmarks.right_eye,
        landmarks.nose,
        landmarks.left_mouth,
        landmarks.right_mouth,
    ]
    rotation, scale, tx, ty = compute_similarity_transform(src, ARCFACE_TARGETS)

    # Inverse of p' = s * R p + t is p = R^T p' / s - R^T t / s.
    inv_scale = 1.0 / scale
    inv_rot = rotation.T
    inv_t = -(inv_rot @ np.array([tx, ty])) * inv_scale

    ys, xs = np.mgrid[0:ALIGNED_SIZE, 0:ALIGNED_SIZE].astype(np.float64)
    src_x = (inv_rot[0, 0] * xs + inv_rot[0, 1] * ys) * inv_scale + inv_t[0]
    src_y = (inv_rot[1, 0] * xs + inv_rot[1, 1] * ys) * inv_scale + inv_t[1]

    pixels = _to_pixels(_bilinear(img, src_x, src_y))
    return AlignedFace(
        data=pixels.tobytes(), width=ALIGNED_SIZE, height=ALIGNED_SIZE
    )