"""Decoding of SCRFD face detector outputs into boxes and landmarks."""

import math
from collections.abc import Sequence
from dataclasses import dataclass

import numpy as np

from .geometry import BBox, Landmarks

STRIDES = (8, 16, 32)
ANCHORS_PER_CELL = 2
CONF_THRESHOLD = 0.5
NMS_THRESHOLD = 0.4
MODEL_INPUT_SIZE = 640


class DetectionError(Exception):
    """The detector's input or output could not be processed."""


@dataclass
class Detection:
    """One detected face."""

    bbox: BBox
    landmarks: Landmarks
    confidence: float


def sigmoid(x: float) -> float:
    """Logistic function, stable for large magnitudes."""
    if x >= 0.0:
        return 1.0 / (1.0 + math.exp(-x))
    e = math.exp(x)
    return e / (1.0 + e)


def iou(a: BBox, b: BBox) -> float:
    """Intersection over union of two boxes; 0 when the union is empty."""
    inter_w = max(min(a.x2, b.x2) - max(a.x1, b.x1), 0.0)
    inter_h = max(min(a.y2, b.y2) - max(a.y1, b.y1), 0.0)
    inter_area = inter_w * inter_h
    area_a = (a.x2 - a.x1) * (a.y2 - a.y1)
    area_b = (b.x2 - b.x1) * (b.y2 - b.y1)
    union_area = area_a + area_b - inter_area
    return inter_area / union_area if union_area > 0.0 else 0.0


def nms(detections: Sequence[Detection], threshold: float) -> list[Detection]:
    """Greedy non-maximum suppression; returns survivors, most confident first."""
    ordered = sorted(detections, key=lambda d: d.confidence, reverse=True)
    kept: list[Detection] = []
    for candidate in ordered:
        if all(iou(k.bbox, candidate.bbox) <= threshold for k in kept):
            kept.append(candidate)
    return kept


def preprocess(frame_data, width: int, height: int) -> np.ndarray:
    """Pad a grayscale frame to 640x640, replicate to 3 channels, normalize.

    Returns a float32 array of shape (1, 3, 640, 640); the padding stays 0.
    """
    if isinstance(frame_data, np.ndarray):
        flat = frame_data.astype(np.uint8, copy=False).ravel()
    else:
        flat = np.frombuffer(bytes(frame_data), dtype=np.uint8)
    rows = min(height, MODEL_INPUT_SIZE)
    cols = min(width, MODEL_INPUT_SIZE)
    if flat.size < rows * width if rows else False:
        raise DetectionError(
            f"frame has {flat.size} pixels, expected {width * height}"
        )
    tensor = np.zeros((1, 3, MODEL_INPUT_SIZE, MODEL_INPUT_SIZE), dtype=np.float32)
    if rows == 0 or cols == 0:
        return tensor
    img = flat[: rows * width].reshape(rows, width)[:, :cols].astype(np.float32)
    tensor[0, :, :rows, :cols] = (img - 127.5) / 128.0
    return tensor


def _flat(output) -> np.ndarray:
    return np.asarray(output, dtype=np.float64).ravel()


def decode_outputs(outputs, frame_width: int, frame_height: int) -> list[Detection]:
    """Turn the nine SCRFD output tensors into detections.

    Expected order: scores for strides 8/16/32, then bbox distances, then
    keypoint offsets. The result is suppressed with NMS and sorted by
    confidence, highest first.
    """
    outputs = list(outputs)
    if len(outputs) != 9:
        raise DetectionError(f"expected 9 outputs, got {len(outputs)}")

    fw = float(frame_width)
    fh = float(frame_height)
    detections: list[Detection] = []

    for stride_idx, stride in enumerate(STRIDES):
        grid = MODEL_INPUT_SIZE // stride
        scores = _flat(outputs[stride_idx])
        bboxes = _flat(outputs[stride_idx + 3])
        kps = _flat(outputs[stride_idx + 6])
        num_anchors = min(scores.size, grid * grid * ANCHORS_PER_CELL)

        for anchor_idx in range(num_anchors):
            score = sigmoid(float(scores[anchor_idx]))
            if score < CONF_THRESHOLD:
                continue

            bi = anchor_idx * 4
            ki = anchor_idx * 10
            if bi + 4 > bboxes.size or ki + 10 > kps.size:
                raise DetectionError(
                    f"stride {stride} outputs too short for anchor {anchor_idx}"
                )

            row, col = divmod(anchor_idx // ANCHORS_PER_CELL, grid)
            cx = (col + 0.5) * stride
            cy = (row + 0.5) * stride

            left, top, right, bottom = (float(v) * stride for v in bboxes[bi:bi + 4])
            x1 = min(max(cx - left, 0.0), fw)
            y1 = min(max(cy - top, 0.0), fh)
            x2 = min(max(cx + right, 0.0), fw)
            y2 = min(max(cy + bottom, 0.0), fh)
            if x2 - x1 < 1.0 or y2 - y1 < 1.0:
                continue

            points = [
                (cx + float(kps[ki + 2 * p]) * stride, cy + float(kps[ki + 2 * p + 1]) * stride)
                for p in range(5)
            ]
            detections.append(
                Detection(
                    bbox=BBox(x1, y1, x2, y2),
                    landmarks=Landmarks(
                        left_eye=points[0],
                        right_eye=points[1],
                        nose=points[2],
                        left_mouth=points[3],
                        right_mouth=points[4],
                        left_eye_conf=score,
                        right_eye_conf=score,
                    ),
                    confidence=score,
                )
            )

    return nms(detections, NMS_THRESHOLD)