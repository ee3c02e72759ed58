import numpy as np
import pytest

from faceauth.detection import (
    CONF_THRESHOLD,
    MODEL_INPUT_SIZE,
    Detection,
    DetectionError,
    decode_outputs,
    iou,
    nms,
    preprocess,
    sigmoid,
)
from faceauth.geometry import BBox, Landmarks


def _landmarks(conf=0.9):
    return Landmarks((0, 0), (0, 0), (0, 0), (0, 0), (0, 0), conf, conf)


def _det(x1, y1, x2, y2, conf):
    return Detection(bbox=BBox(x1, y1, x2, y2), landmarks=_landmarks(conf), confidence=conf)


def _empty_outputs():
    scores, boxes, kps = [], [], []
    for stride in (8, 16, 32):
        n = (MODEL_INPUT_SIZE // stride) ** 2 * 2
        scores.append(np.full(n, -10.0, dtype=np.float32))
        boxes.append(np.zeros(n * 4, dtype=np.float32))
        kps.append(np.zeros(n * 10, dtype=np.float32))
    return scores + boxes + kps


def test_sigmoid_midpoint_and_extremes():
    assert sigmoid(0.0) == pytest.approx(0.5)
    assert sigmoid(1000.0) == pytest.approx(1.0)
    assert sigmoid(-1000.0) == pytest.approx(0.0)


def test_sigmoid_symmetry():
    for x in (0.3, 2.0, 7.5):
        assert sigmoid(x) + sigmoid(-x) == pytest.approx(1.0)


def test_iou_identical_and_disjoint():
    a = BBox(10, 10, 50, 50)
    assert iou(a, a) == pytest.approx(1.0)
    assert iou(a, BBox(100, 100, 150, 150)) == 0.0


def test_iou_degenerate_union_is_zero():
    empty = BBox(5, 5, 5, 5)
    assert iou(empty, empty) == 0.0


def test_iou_is_symmetric():
    a = BBox(0, 0, 40, 40)
    b = BBox(20, 10, 70, 60)
    assert iou(a, b) == pytest.approx(iou(b, a))
    assert 0.0 < iou(a, b) < 1.0


def test_nms_suppresses_overlap_and_sorts():
    low = _det(0, 0, 100, 100, 0.6)
    high = _det(2, 2, 102, 102, 0.9)
    far = _det(300, 300, 400, 400, 0.7)
    kept = nms([low, far, high], 0.4)
    assert kept == [high, far]


def test_nms_keeps_all_below_threshold():
    a = _det(0, 0, 10, 10, 0.8)
    b = _det(20, 20, 30, 30, 0.9)
    assert nms([a, b], 0.4) == [b, a]


def test_preprocess_shape_channels_and_padding():
    width, height = 320, 200
    frame = (np.arange(width * height) % 256).astype(np.uint8)
    tensor = preprocess(frame.tobytes(), width, height)
    assert tensor.shape == (1, 3, MODEL_INPUT_SIZE, MODEL_INPUT_SIZE)
    assert np.array_equal(tensor[0, 0], tensor[0, 1])
    assert np.array_equal(tensor[0, 0], tensor[0, 2])
    assert np.all(tensor[0, :, height:, :] == 0.0)
    assert np.all(tensor[0, :, :, width:] == 0.0)


def test_preprocess_preserves_brightness_order():
    frame = bytes([0, 100, 200, 255])
    tensor = preprocess(frame, 4, 1)
    row = tensor[0, 0, 0, :4]
    assert list(row) == sorted(row)
    assert row[0] < 0.0 < row[3]


def test_decode_rejects_wrong_output_count():
    with pytest.raises(DetectionError):
        decode_outputs(_empty_outputs()[:8], 640, 480)


def test_decode_no_faces_when_scores_low():
    assert decode_outputs(_empty_outputs(), 640, 480) == []


def test_decode_single_anchor():
    outputs = _empty_outputs()
    anchor = 2 * (10 * 80 + 10)
    outputs[0][anchor] = 10.0
    outputs[3][anchor * 4: anchor * 4 + 4] = 1.0
    dets = decode_outputs(outputs, 640, 480)
    assert len(dets) == 1
    det = dets[0]
    assert det.confidence == pytest.approx(sigmoid(10.0))
    assert det.confidence > CONF_THRESHOLD
    assert det.landmarks.left_eye_conf == det.confidence
    centre_x = (det.bbox.x1 + det.bbox.x2) / 2
    centre_y = (det.bbox.y1 + det.bbox.y2) / 2
    assert det.landmarks.nose == pytest.approx((centre_x, centre_y))
    assert det.bbox.width() == pytest.approx(det.bbox.y2 - det.bbox.y1)


def test_decode_clamps_to_frame():
    outputs = _empty_outputs()
    outputs[0][0] = 10.0
    outputs[3][0:4] = 3.0
    dets = decode_outputs(outputs, 640, 480)
    assert len(dets) == 1
    assert dets[0].bbox.x1 == 0.0
    assert dets[0].bbox.y1 == 0.0


def test_decode_overlapping_anchors_merged():
    outputs = _empty_outputs()
    anchor = 2 * (20 * 80 + 20)
    outputs[0][anchor] = 5.0
    outputs[0][anchor + 1] = 8.0
    outputs[3][anchor * 4: anchor * 4 + 8] = 2.0
    dets = decode_outputs(outputs, 640, 480)
    assert len(dets) == 1
    assert dets[0].confidence == pytest.approx(sigmoid(8.0))


def test_decode_short_bbox_output_raises():
    outputs = _empty_outputs()
    outputs[0][10] = 10.0
    outputs[3] = np.zeros(8, dtype=np.float32)
    with pytest.raises(DetectionError):
        decode_outputs(outputs, 640, 480)