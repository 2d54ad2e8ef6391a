"""Stand-in detector used when detection runs in the browser ("wasm" mode)."""

from __future__ import annotations

import random
from typing import Any

from camrelay.core.types import Detection

MOCK_DETECTIONS = (
    Detection(label="person", score=0.85, xmin=0.2, ymin=0.1, xmax=0.6, ymax=0.8),
    Detection(label="phone", score=0.72, xmin=0.3, ymin=0.4, xmax=0.5, ymax=0.7),
)


class MockDetector:
    """Returns a fixed set of detections, each kept with probability `keep`."""

    def __init__(self, keep: float = 0.7, rng: random.Random | None = None) -> None:
        self.keep = keep
        self._rng = rng or random.Random()

    def detect(self, payload: Any = None) -> list[Detection]:
        return [d for d in MOCK_DETECTIONS if self._rng.random() < self.keep]
