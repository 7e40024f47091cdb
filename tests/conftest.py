"""Shared fixtures and fake model collaborators."""

from typing import Any

import cv2
import numpy as np
import pytest

from meterread.errors import NotReadyError
from meterread.inference import DigitDetector, ImageClassifier
from meterread.models import Detection
from meterread.reader import MeterReader


def make_detection(
    center_x: float,
    center_y: float,
    tag: str = "0",
    confidence: float = 0.5,
    width: float = 10.0,
    height: float = 20.0,
) -> Detection:
    """Build a detection around a center point."""
    return Detection(
        box=(
            center_x - width / 2,
            center_y - height / 2,
            center_x + width / 2,
            center_y + height / 2,
        ),
        tag=tag,
        confidence=confidence,
    )


class FakeClassifier(ImageClassifier):
    def __init__(self, label: str = "Meter", ready: bool = True):
        self.label = label
        self.ready = ready
        self.calls = 0

    @property
    def is_ready(self) -> bool:
        return self.ready

    def classify(self, image: np.ndarray) -> str:
        if not self.ready:
            raise NotReadyError("Classifier not ready")
        self.calls += 1
        return self.label


class FakeDetector(DigitDetector):
    def __init__(self, records: list[dict[str, Any]] | None = None, ready: bool = True):
        self.records = records or []
        self.ready = ready
        self.calls = 0

    @property
    def is_ready(self) -> bool:
        return self.ready

    def detect(self, image: np.ndarray) -> list[dict[str, Any]]:
        if not self.ready:
            raise NotReadyError("Detector not ready")
        self.calls += 1
        return list(self.records)


# Digits "1", "0", "2" on one row plus a duplicate and an off-row false positive
METER_RECORDS = [
    {"box": [55, 150, 65, 170, 0.9], "tag": "2"},
    {"box": [5, 150, 15, 170, 0.8], "tag": "1"},
    {"box": [35, 150, 45, 170, 0.7], "tag": "0"},
    {"box": [35.2, 151, 44.9, 169, 0.3], "tag": "8"},
    {"box": [200, 180, 210, 200, 0.95], "tag": "7"},
]


@pytest.fixture
def png_bytes() -> bytes:
    """A 480x320 gray PNG image."""
    image = np.full((320, 480, 3), 100, dtype=np.uint8)
    success, encoded = cv2.imencode(".png", image)
    assert success
    return encoded.tobytes()


@pytest.fixture
def classifier() -> FakeClassifier:
    return FakeClassifier()


@pytest.fixture
def detector() -> FakeDetector:
    return FakeDetector(METER_RECORDS)


@pytest.fixture
def reader(classifier: FakeClassifier, detector: FakeDetector) -> MeterReader:
    return MeterReader(classifier, detector)
