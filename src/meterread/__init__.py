"""meterread - Utility meter reading from digit detections."""

from meterread.assembly import assemble_reading
from meterread.ingest import ingest_detections
from meterread.models import Detection, RawDetectionSet, ReadingOutcome, ReadingResult
from meterread.reader import MeterReader, ReadingSession

__version__ = "1.0.0"

__all__ = [
    "assemble_reading",
    "ingest_detections",
    "Detection",
    "RawDetectionSet",
    "ReadingOutcome",
    "ReadingResult",
    "MeterReader",
    "ReadingSession",
]
