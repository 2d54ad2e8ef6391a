"""Ultralytics YOLO detector integration for "server" mode.

Frames arrive as base64 encoded images (optionally as `data:` URLs), are
decoded with OpenCV and scored on CPU. Boxes are returned normalized to the
frame size so the browser overlay can draw them at any resolution.
"""

from __future__ import annotations

import base64
import binascii
import logging
from typing import Any

import cv2
import numpy as np
from ultralytics import YOLO

from camrelay.core.types import Detection

logger = logging.getLogger(__name__)


def decode_image(payload: Any) -> np.ndarray | None:
    """Decode a base64 / data-URL image (or pass through an ndarray).

    Returns `None` when the payload cannot be decoded.
    """

    if isinstance(payload, np.ndarray):
        return payload
    if isinstance(payload, str):
        _, sep, tail = payload.partition("base64,")
        encoded = tail if sep else payload
        try:
            raw = base64.b64decode(encoded, validate=False)
        except (binascii.Error, ValueError):
            return None
    elif isinstance(payload, (bytes, bytearray)):
        raw = bytes(payload)
    else:
        return None
    if not raw:
        return None
    buf = np.frombuffer(raw, dtype=np.uint8)
    return cv2.imdecode(buf, cv2.IMREAD_COLOR)


def _clip01(v: float) -> float:
    return float(min(1.0, max(0.0, v)))


class YoloDetector:
    """Object detector wrapper around Ultralytics YOLO.

    Supports both Torch `.pt` models and ONNX exports; always runs on CPU.
    """

    def __init__(self, model_name: str = "yolo11n.pt", conf: float = 0.35) -> None:
        self.model_name = model_name
        self.is_onnx = model_name.lower().endswith(".onnx")
        self.device = "cpu"
        self.conf = conf
        self.model = YOLO(model_name)
        # Avoid .to(device) on ONNX exports; Ultralytics raises TypeError.
        if not self.is_onnx:
            try:
                self.model.to(self.device)
            except Exception:
                # predict(device='cpu') still enforces CPU.
                pass
        self._predict_kwargs = {"conf": self.conf, "verbose": False, "device": self.device}

    def detect(self, payload: Any) -> list[Detection]:
        """Run inference on one encoded frame.

        Raises:
            ValueError: If the payload is not a decodable image.
        """

        frame = decode_image(payload)
        if frame is None:
            raise ValueError("payload is not a decodable image")
        h, w = frame.shape[:2]
        if h == 0 or w == 0:
            return []

        results = self.model.predict(frame, **self._predict_kwargs)
        if not results:
            return []

        # Single-frame inference => first result.
        result = results[0]
        boxes = getattr(result, "boxes", None)
        if boxes is None or len(boxes) == 0:
            return []

        data = boxes.data
        if hasattr(data, "cpu"):
            data = data.cpu()
        data_np = data.numpy() if hasattr(data, "numpy") else np.asarray(data)
        # Ultralytics Boxes.data = (x1,y1,x2,y2,conf,cls)
        if data_np.ndim != 2 or data_np.shape[1] < 6:
            return []

        names = getattr(result, "names", None) or {}
        out: list[Detection] = []
        for x1, y1, x2, y2, score, cls in data_np[:, :6]:
            out.append(
                Detection(
                    label=str(names.get(int(cls), int(cls))),
                    score=_clip01(score),
                    xmin=_clip01(x1 / w),
                    ymin=_clip01(y1 / h),
                    xmax=_clip01(x2 / w),
                    ymax=_clip01(y2 / h),
                )
            )
        return out
