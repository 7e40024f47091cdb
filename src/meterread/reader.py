"""Classify-then-detect meter reader and per-client request session."""

import logging
import threading
from collections.abc import Sequence
from pathlib import Path
from typing import Any

import numpy as np

from meterread.assembly import assemble_reading
from meterread.errors import DecodeFailureError, NotReadyError
from meterread.imaging import decode_image, load_image
from meterread.inference import DigitDetector, ImageClassifier
from meterread.ingest import ingest_detections
from meterread.models import (
    AppConfig,
    IngestResult,
    ReadingOutcome,
    ReadingResult,
    ReadingStatus,
)

logger = logging.getLogger(__name__)


class MeterReader:
    """Reads a meter value from one image.

    The classifier gates the detector: only images labelled as a meter
    are passed on to digit detection and reading assembly. Every call
    returns a fresh ReadingOutcome; nothing from a previous image is kept.
    """

    def __init__(
        self,
        classifier: ImageClassifier,
        detector: DigitDetector,
        config: AppConfig | None = None,
    ):
        """Initialize reader.

        Args:
            classifier: Whole-image classifier
            detector: Digit detector
            config: Application configuration
        """
        self.classifier = classifier
        self.detector = detector
        self.config = config or AppConfig()

    @property
    def is_ready(self) -> bool:
        return self.classifier.is_ready and self.detector.is_ready

    def assemble(
        self,
        records: Sequence[Any],
        width: int,
        height: int,
    ) -> tuple[IngestResult, ReadingResult]:
        """Assemble a reading from detector output the caller already holds."""
        ingested = ingest_detections(records, width, height)
        result = assemble_reading(ingested.detection_set, self.config.assembly)
        return ingested, result

    def read_image(self, image: np.ndarray) -> ReadingOutcome:
        """Classify, detect and assemble a reading for a decoded BGR image."""
        try:
            label = self.classifier.classify(image).strip()
            if label != self.config.models.meter_label:
                logger.info(f"Image classified as '{label}', not a meter")
                return ReadingOutcome(status=ReadingStatus.NOT_METER, label=label)

            records = self.detector.detect(image)
        except NotReadyError as e:
            logger.warning(f"Reader not ready: {e}")
            return ReadingOutcome(status=ReadingStatus.NOT_READY, error=str(e))
        except Exception as e:
            logger.error(f"Model inference failed: {e}")
            return ReadingOutcome(status=ReadingStatus.MODEL_FAILURE, error=str(e))

        height, width = image.shape[:2]
        ingested, result = self.assemble(records, width, height)

        logger.info(
            f"Detected: '{result.reading}' (img {width}x{height}, "
            f"boxes {len(result.detections)}, dropped {ingested.dropped})"
        )
        return ReadingOutcome(
            status=ReadingStatus.OK,
            result=result,
            label=label,
            dropped=ingested.dropped,
        )

    def read_bytes(self, data: bytes) -> ReadingOutcome:
        """Decode encoded image bytes and read them."""
        try:
            image = decode_image(data)
        except DecodeFailureError as e:
            logger.warning(f"Decode failure: {e}")
            return ReadingOutcome(status=ReadingStatus.DECODE_FAILURE, error=str(e))
        return self.read_image(image)

    def read_path(self, path: Path | str) -> ReadingOutcome:
        """Load an image file and read it."""
        try:
            image = load_image(path)
        except DecodeFailureError as e:
            logger.warning(f"Decode failure: {e}")
            return ReadingOutcome(status=ReadingStatus.DECODE_FAILURE, error=str(e))
        return self.read_image(image)


class ReadingSession:
    """Tracks request ids so late results never replace newer ones.

    Call begin() when a new image is submitted and complete() when its
    outcome arrives. Only the most recently issued request may update
    the session; anything older comes back marked STALE.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._issued = 0
        self._latest: ReadingOutcome | None = None
        self._last_outcome: ReadingOutcome | None = None

    @property
    def current_request_id(self) -> int:
        with self._lock:
            return self._issued

    @property
    def latest(self) -> ReadingOutcome | None:
        """Last accepted successful outcome."""
        with self._lock:
            return self._latest

    @property
    def last_outcome(self) -> ReadingOutcome | None:
        """Last accepted outcome of any status."""
        with self._lock:
            return self._last_outcome

    def begin(self) -> int:
        """Issue the next request id."""
        with self._lock:
            self._issued += 1
            return self._issued

    def complete(self, request_id: int, outcome: ReadingOutcome) -> ReadingOutcome:
        """Record an outcome if its request is still the newest.

        Returns:
            The outcome tagged with its request id, or a STALE copy if a
            newer request was issued in the meantime
        """
        outcome = outcome.with_request(request_id)
        with self._lock:
            if request_id != self._issued:
                logger.info(
                    f"Discarding stale result for request {request_id} "
                    f"(current {self._issued})"
                )
                return outcome.as_stale()

            self._last_outcome = outcome
            if outcome.ok:
                self._latest = outcome
            return outcome

    def clear(self) -> None:
        """Forget cached outcomes, e.g. when a new image is selected."""
        with self._lock:
            self._latest = None
            self._last_outcome = None
