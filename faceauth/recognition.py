"""Pre- and post-processing for the face recognition embedding model."""

import math
from collections.abc import Sequence

import numpy as np

from .alignment import AlignedFace

EMBEDDING_DIM = 512
CLAHE_TILE_SIZE = 14
CLAHE_CLIP_LIMIT = 2.0


class RecognitionError(Exception):
    """The recognition model's input or output could not be processed."""


def _pixels(data, width: int, height: int) -> np.ndarray:
    if isinstance(data, np.ndarray):
        flat = data.astype(np.uint8, copy=False).ravel()
    else:
        flat = np.frombuffer(bytes(data), dtype=np.uint8)
    needed = width * height
    if flat.size < needed:
        raise ValueError(f"image has {flat.size} pixels, expected {needed}")
    return flat[:needed].reshape(height, width)


def _tile_map(tile: np.ndarray, clip_limit: float) -> np.ndarray:
    """Clipped-histogram equalization lookup table for one tile."""
    hist = np.bincount(tile.ravel(), minlength=256).astype(np.int64)
    count = int(tile.size)

    clip_value = max(clip_limit * count / 256.0, 1.0)
    clip = int(clip_value) if math.isfinite(clip_value) else count
    excess = int(np.sum(np.maximum(hist - clip, 0)))
    hist = np.minimum(hist, clip)

    # Spread the clipped excess evenly, the remainder over the lowest bins.
    bonus, remainder = divmod(excess, 256)
    hist += bonus
    hist[:remainder] += 1

    cdf = np.cumsum(hist)
    positive = cdf[cdf > 0]
    cdf_min = float(positive[0]) if positive.size else 0.0
    total = float(cdf[255])
    scale = 255.0 / max(total - cdf_min, 1.0)

    mapped = np.floor((cdf - cdf_min) * scale + 0.5)
    return np.clip(mapped, 0.0, 255.0).astype(np.uint8)


def clahe(data, width: int, height: int, tile_size: int, clip_limit: float) -> bytes:
    """Contrast-limited adaptive histogram equalization of a grayscale image.

    Each ``tile_size`` square tile gets its own clipped equalization map and
    the maps of neighbouring tiles are blended bilinearly.
    """
    if tile_size <= 0:
        raise ValueError("tile_size must be positive")
    if width <= 0 or height <= 0:
        return b""
    img = _pixels(data, width, height)

    tiles_x = -(-width // tile_size)
    tiles_y = -(-height // tile_size)
    maps = np.empty((tiles_y, tiles_x, 256), dtype=np.float64)
    for ty in range(tiles_y):
        for tx in range(tiles_x):
            tile = img[
                ty * tile_size:(ty + 1) * tile_size,
                tx * tile_size:(tx + 1) * tile_size,
            ]
            maps[ty, tx] = _tile_map(tile, clip_limit)

    half = tile_size / 2.0

    def axis(n: int, tiles: int):
        f = (np.arange(n, dtype=np.float64) - half) / tile_size
        t0 = np.clip(np.floor(f), 0, tiles - 1).astype(np.int64)
        t1 = np.minimum(t0 + 1, tiles - 1)
        a = np.clip(f - t0, 0.0, 1.0)
        return t0, t1, a

    tx0, tx1, ax = axis(width, tiles_x)
    ty0, ty1, ay = axis(height, tiles_y)

    pix = img.astype(np.int64)
    r0 = ty0[:, None]
    r1 = ty1[:, None]
    c0 = tx0[None, :]
    c1 = tx1[None, :]
    v00 = maps[r0, c0, pix]
    v10 = maps[r0, c1, pix]
    v01 = maps[r1, c0, pix]
    v11 = maps[r1, c1, pix]

    wx = ax[None, :]
    wy = ay[:, None]
    val = (
        v00 * (1.0 - wx) * (1.0 - wy)
        + v10 * wx * (1.0 - wy)
        + v01 * (1.0 - wx) * wy
        + v11 * wx * wy
    )
    return np.clip(np.floor(val + 0.5), 0.0, 255.0).astype(np.uint8).tobytes()


def preprocess(face: AlignedFace) -> np.ndarray:
    """Equalize an aligned grayscale face and build the model input tensor.

    Returns a float32 array of shape (1, 3, height, width) scaled to [-1, 1],
    with the grayscale replicated to all three channels.
    """
    equalized = clahe(
        face.data, face.width, face.height, CLAHE_TILE_SIZE, CLAHE_CLIP_LIMIT
    )
    img = np.frombuffer(equalized, dtype=np.uint8).reshape(face.height, face.width)
    normalized = (img.astype(np.float32) - 127.5) / 127.5
    tensor = np.empty((1, 3, face.height, face.width), dtype=np.float32)
    tensor[0, :] = normalized
    return tensor


def l2_normalize(v) -> np.ndarray:
    """Return ``v`` scaled to unit length; a near-zero vector is returned as is."""
    arr = np.array(v, dtype=np.float32).ravel()
    norm = float(np.sqrt(np.sum(arr.astype(np.float64) ** 2)))
    if norm > 1e-10:
        arr = (arr / norm).astype(np.float32)
    return arr


def cosine_similarity(a, b) -> float:
    """Cosine similarity of two unit-length embeddings (their dot product)."""
    va = np.asarray(a, dtype=np.float64).ravel()
    vb = np.asarray(b, dtype=np.float64).ravel()
    if va.size != vb.size:
        raise ValueError(f"embedding sizes differ: {va.size} and {vb.size}")
    return float(np.dot(va, vb))


def embedding_from_output(raw: Sequence[float]) -> np.ndarray:
    """Turn the model's raw output into a unit-length 512-dim embedding."""
    values = np.asarray(raw, dtype=np.float32).ravel()
    if values.size != EMBEDDING_DIM:
        raise RecognitionError(
            f"expected {EMBEDDING_DIM}-dim embedding, got {values.size}"
        )
    return l2_normalize(values)