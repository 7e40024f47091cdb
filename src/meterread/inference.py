"""Classifier and digit detector adapters."""

import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any

import numpy as np

from meterread.errors import NotReadyError
from meterread.models import ModelConfig

logger = logging.getLogger(__name__)


def _load_yolo(weights: str | Path) -> Any:
    from ultralytics import YOLO

    return YOLO(str(weights))


class ImageClassifier(ABC):
    """Decides what a whole image shows."""

    @property
    @abstractmethod
    def is_ready(self) -> bool:
        """Check if the classifier can be used."""
        pass

    @abstractmethod
    def classify(self, image: np.ndarray) -> str:
        """Return the top-1 label for a BGR image.

        Raises:
            NotReadyError: If the classifier is not loaded
        """
        pass


class DigitDetector(ABC):
    """Locates digit glyphs in an image."""

    @property
    @abstractmethod
    def is_ready(self) -> bool:
        """Check if the detector can be used."""
        pass

    @abstractmethod
    def detect(self, image: np.ndarray) -> list[dict[str, Any]]:
        """Return raw records ``{"box": [x0, y0, x1, y1, conf], "tag": str}``.

        Raises:
            NotReadyError: If the detector is not loaded
        """
        pass


class YoloImageClassifier(ImageClassifier):
    """Ultralytics YOLO classification model."""

    def __init__(self, weights: str | Path | None = None, model: Any = None):
        """Initialize classifier.

        Args:
            weights: Path to classification weights, loaded by load()
            model: Already constructed model (takes precedence over weights)
        """
        self.weights = weights
        self._model = model

    @property
    def is_ready(self) -> bool:
        return self._model is not None

    def load(self) -> None:
        """Load weights if no model is set yet."""
        if self._model is not None:
            return
        if not self.weights:
            raise NotReadyError("No classifier weights configured")
        self._model = _load_yolo(self.weights)
        logger.info(f"Classifier model loaded: {self.weights}")

    def classify(self, image: np.ndarray) -> str:
        if self._model is None:
            raise NotReadyError("Classifier not ready")

        results = self._model(image, verbose=False)
        if not results:
            return ""
        result = results[0]
        top1 = int(result.probs.top1)
        label = result.names.get(top1, "") if isinstance(result.names, dict) else ""
        logger.debug(f"Predicted: {label}")
        return label


class YoloDigitDetector(DigitDetector):
    """Ultralytics YOLO detection model trained on digit classes."""

    def __init__(
        self,
        weights: str | Path | None = None,
        model: Any = None,
        confidence_threshold: float = 0.2,
        iou_threshold: float = 0.5,
    ):
        """Initialize detector.

        Args:
            weights: Path to detection weights, loaded by load()
            model: Already constructed model (takes precedence over weights)
            confidence_threshold: Minimum box confidence kept by the model
            iou_threshold: NMS IoU threshold
        """
        self.weights = weights
        self.confidence_threshold = confidence_threshold
        self.iou_threshold = iou_threshold
        self._model = model

    @property
    def is_ready(self) -> bool:
        return self._model is not None

    def load(self) -> None:
        """Load weights if no model is set yet."""
        if self._model is not None:
            return
        if not self.weights:
            raise NotReadyError("No detector weights configured")
        self._model = _load_yolo(self.weights)
        logger.info(f"Detector model loaded: {self.weights}")

    def detect(self, image: np.ndarray) -> list[dict[str, Any]]:
        if self._model is None:
            raise NotReadyError("Detector not ready")

        results = self._model(
            image,
            conf=self.confidence_threshold,
            iou=self.iou_threshold,
            verbose=False,
        )

        records = []
        for result in results:
            boxes = result.boxes
            for xyxy, conf, cls in zip(
                boxes.xyxy.tolist(), boxes.conf.tolist(), boxes.cls.tolist()
            ):
                records.append({
                    "box": [*xyxy, conf],
                    "tag": result.names.get(int(cls), str(int(cls))),
                })
        return records


def load_models(config: ModelConfig) -> tuple[YoloImageClassifier, YoloDigitDetector]:
    """Create and load both adapters from configuration.

    An adapter whose weights are missing or fail to load is returned
    unloaded; callers see NotReadyError when they use it.
    """
    classifier = YoloImageClassifier(config.classifier_path or None)
    detector = YoloDigitDetector(
        config.detector_path or None,
        confidence_threshold=config.confidence_threshold,
        iou_threshold=config.iou_threshold,
    )

    for name, adapter in (("classifier", classifier), ("detector", detector)):
        if not adapter.weights:
            logger.warning(f"No {name} weights configured")
            continue
        try:
            adapter.load()
        except Exception as e:
            logger.error(f"Failed to load {name} from {adapter.weights}: {e}")

    return classifier, detector
