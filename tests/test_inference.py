"""Tests for the YOLO classifier and detector adapters."""

import numpy as np
import pytest

from meterread.errors import NotReadyError
from meterread.inference import YoloDigitDetector, YoloImageClassifier, load_models
from meterread.models import ModelConfig


class FakeBoxes:
    def __init__(self, xyxy, conf, cls):
        self.xyxy = np.array(xyxy, dtype=np.float32)
        self.conf = np.array(conf, dtype=np.float32)
        self.cls = np.array(cls, dtype=np.float32)


class FakeProbs:
    def __init__(self, top1):
        self.top1 = top1


class FakeResult:
    def __init__(self, names, boxes=None, probs=None):
        self.names = names
        self.boxes = boxes
        self.probs = probs


class FakeModel:
    """Callable standing in for an ultralytics model."""

    def __init__(self, results):
        self.results = results
        self.kwargs = None

    def __call__(self, image, **kwargs):
        self.kwargs = kwargs
        return self.results


IMAGE = np.zeros((320, 480, 3), dtype=np.uint8)


class TestYoloImageClassifier:
    def test_classify(self):
        model = FakeModel([FakeResult({0: "Meter", 1: "Other"}, probs=FakeProbs(0))])
        classifier = YoloImageClassifier(model=model)

        assert classifier.is_ready
        assert classifier.classify(IMAGE) == "Meter"

    def test_not_ready(self):
        classifier = YoloImageClassifier()

        assert not classifier.is_ready
        with pytest.raises(NotReadyError):
            classifier.classify(IMAGE)

    def test_load_without_weights(self):
        with pytest.raises(NotReadyError):
            YoloImageClassifier().load()


class TestYoloDigitDetector:
    def test_detect_returns_raw_records(self):
        boxes = FakeBoxes([[10, 20, 30, 40], [50, 20, 70, 40]], [0.5, 0.75], [1, 8])
        model = FakeModel([FakeResult({i: str(i) for i in range(10)}, boxes=boxes)])
        detector = YoloDigitDetector(model=model, confidence_threshold=0.25, iou_threshold=0.4)

        records = detector.detect(IMAGE)

        assert records == [
            {"box": [10.0, 20.0, 30.0, 40.0, 0.5], "tag": "1"},
            {"box": [50.0, 20.0, 70.0, 40.0, 0.75], "tag": "8"},
        ]
        assert model.kwargs["conf"] == 0.25
        assert model.kwargs["iou"] == 0.4

    def test_no_boxes(self):
        boxes = FakeBoxes(np.zeros((0, 4)), [], [])
        detector = YoloDigitDetector(model=FakeModel([FakeResult({}, boxes=boxes)]))

        assert detector.detect(IMAGE) == []

    def test_not_ready(self):
        with pytest.raises(NotReadyError):
            YoloDigitDetector().detect(IMAGE)


def test_load_models_without_weights():
    classifier, detector = load_models(ModelConfig(confidence_threshold=0.3))

    assert not classifier.is_ready
    assert not detector.is_ready
    assert detector.confidence_threshold == 0.3
