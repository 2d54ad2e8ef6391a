import base64
import random

import cv2
import numpy as np
import pytest

import camrelay.core.detectors.yolo as yolo_mod
from camrelay.core.detectors.mock import MOCK_DETECTIONS, MockDetector


class _FakeResult:
    def __init__(self, boxes=None, names=None):
        self.boxes = boxes
        self.names = names


class _FakeBoxes:
    def __init__(self, data):
        self.data = data

    def __len__(self):
        return int(self.data.shape[0])


class _FakeTensor:
    def __init__(self, arr):
        self._arr = arr
        self.cpu_called = False

    @property
    def shape(self):
        return self._arr.shape

    def cpu(self):
        self.cpu_called = True
        return self

    def numpy(self):
        return self._arr


class _FakeYOLO:
    results = []

    def __init__(self, model_name):
        self.model_name = model_name
        self.to_calls = []
        self.predict_calls = []

    def to(self, device):
        self.to_calls.append(device)
        return self

    def predict(self, frame, **kwargs):
        self.predict_calls.append((frame.shape, kwargs))
        return list(self.results)


@pytest.fixture
def fake_yolo(monkeypatch):
    monkeypatch.setattr(yolo_mod, "YOLO", _FakeYOLO)
    monkeypatch.setattr(_FakeYOLO, "results", [])
    return _FakeYOLO


def test_mock_detector_keep_all_and_none():
    assert MockDetector(keep=1.0).detect("frame") == list(MOCK_DETECTIONS)
    assert MockDetector(keep=0.0).detect("frame") == []


def test_mock_detector_is_reproducible_with_seeded_rng():
    a = MockDetector(rng=random.Random(7)).detect()
    b = MockDetector(rng=random.Random(7)).detect()
    assert a == b
    assert all(d in MOCK_DETECTIONS for d in a)


def test_decode_image_rejects_garbage():
    assert yolo_mod.decode_image(None) is None
    assert yolo_mod.decode_image(b"") is None
    assert yolo_mod.decode_image("%%%not-base64%%%") is None
    assert yolo_mod.decode_image(b"definitely not a jpeg") is None


def test_decode_image_roundtrip_through_data_url():
    img = np.zeros((8, 16, 3), dtype=np.uint8)
    ok, buf = cv2.imencode(".png", img)
    assert ok
    encoded = base64.b64encode(buf.tobytes()).decode("ascii")

    decoded = yolo_mod.decode_image(f"data:image/png;base64,{encoded}")
    assert decoded is not None
    assert decoded.shape == (8, 16, 3)
    assert yolo_mod.decode_image(buf.tobytes()).shape == (8, 16, 3)
    assert yolo_mod.decode_image(img) is img


def test_yolo_detector_normalizes_boxes(fake_yolo):
    data = _FakeTensor(np.array([[20.0, 10.0, 100.0, 50.0, 0.9, 0.0]], dtype=np.float32))
    fake_yolo.results = [_FakeResult(boxes=_FakeBoxes(data), names={0: "person"})]

    det = yolo_mod.YoloDetector(model_name="yolo11n.pt", conf=0.5)
    out = det.detect(np.zeros((100, 200, 3), dtype=np.uint8))

    assert det.model.to_calls == ["cpu"]
    assert det.model.predict_calls[0][1] == {"conf": 0.5, "verbose": False, "device": "cpu"}
    assert data.cpu_called
    assert len(out) == 1
    d = out[0]
    assert d.label == "person"
    assert d.score == pytest.approx(0.9)
    assert (d.xmin, d.ymin, d.xmax, d.ymax) == pytest.approx((0.1, 0.1, 0.5, 0.5))


def test_yolo_detector_clips_and_falls_back_to_class_id(fake_yolo):
    data = _FakeTensor(np.array([[-5.0, 0.0, 250.0, 120.0, 0.6, 3.0]], dtype=np.float32))
    fake_yolo.results = [_FakeResult(boxes=_FakeBoxes(data), names=None)]

    out = yolo_mod.YoloDetector().detect(np.zeros((100, 200, 3), dtype=np.uint8))
    assert out[0].label == "3"
    assert (out[0].xmin, out[0].xmax, out[0].ymax) == (0.0, 1.0, 1.0)


def test_yolo_detector_empty_results(fake_yolo):
    det = yolo_mod.YoloDetector()
    frame = np.zeros((10, 10, 3), dtype=np.uint8)
    assert det.detect(frame) == []

    fake_yolo.results = [_FakeResult(boxes=None)]
    assert det.detect(frame) == []


def test_yolo_detector_skips_to_for_onnx(fake_yolo):
    det = yolo_mod.YoloDetector(model_name="model.onnx")
    assert det.is_onnx
    assert det.model.to_calls == []


def test_yolo_detector_rejects_undecodable_payload(fake_yolo):
    with pytest.raises(ValueError):
        yolo_mod.YoloDetector().detect("not an image")
