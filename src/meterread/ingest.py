"""Normalize raw detector output into typed detections."""

import logging
import math
from collections.abc import Mapping, Sequence
from typing import Any

from meterread.errors import MalformedDetectionError
from meterread.models import Detection, IngestResult, RawDetectionSet

logger = logging.getLogger(__name__)


def _to_float(value: Any, name: str) -> float:
    if isinstance(value, (str, bytes, bool)):
        raise MalformedDetectionError(f"{name} is not numeric: {value!r}")
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise MalformedDetectionError(f"{name} is not numeric: {value!r}")
    if not math.isfinite(number):
        raise MalformedDetectionError(f"{name} is not finite: {number}")
    return number


def _clip(value: float, upper: int) -> float:
    return min(max(value, 0.0), float(upper))


def parse_detection(record: Any, width: int, height: int) -> Detection:
    """Validate one raw detector record and build a Detection.

    A record is a mapping with a ``box`` of ``[x0, y0, x1, y1]`` or
    ``[x0, y0, x1, y1, confidence]`` and a ``tag``. An explicit
    ``confidence`` key takes precedence over the fifth box value.
    Coordinates are clipped to the image rectangle.

    Raises:
        MalformedDetectionError: If the record fails validation
    """
    if not isinstance(record, Mapping):
        raise MalformedDetectionError(f"Record is not a mapping: {type(record).__name__}")

    box = record.get("box")
    if not isinstance(box, Sequence) or isinstance(box, (str, bytes)) or len(box) < 4:
        raise MalformedDetectionError(f"Box must have at least 4 values: {box!r}")

    x0, y0, x1, y1 = (_to_float(v, f"box[{i}]") for i, v in enumerate(box[:4]))
    if x0 >= x1 or y0 >= y1:
        raise MalformedDetectionError(f"Degenerate box: {(x0, y0, x1, y1)}")

    x0, x1 = _clip(x0, width), _clip(x1, width)
    y0, y1 = _clip(y0, height), _clip(y1, height)
    if x0 >= x1 or y0 >= y1:
        raise MalformedDetectionError(f"Box lies outside the {width}x{height} image")

    if record.get("confidence") is not None:
        confidence = _to_float(record["confidence"], "confidence")
    elif len(box) > 4:
        confidence = _to_float(box[4], "confidence")
    else:
        confidence = 0.0
    if not 0.0 <= confidence <= 1.0:
        raise MalformedDetectionError(f"Confidence out of range: {confidence}")

    raw_tag = record.get("tag")
    tag = "" if raw_tag is None else str(raw_tag)
    if not tag.strip():
        raise MalformedDetectionError("Tag is empty")

    return Detection(box=(x0, y0, x1, y1), tag=tag, confidence=confidence)


def ingest_detections(
    records: Sequence[Any] | None,
    width: int,
    height: int,
) -> IngestResult:
    """Build a RawDetectionSet from raw detector output.

    Malformed records are dropped and counted rather than aborting the
    whole set. Empty output gives an empty set.

    Args:
        records: Raw detector records
        width: Native image width in pixels
        height: Native image height in pixels

    Returns:
        IngestResult with the detection set and the dropped count

    Raises:
        ValueError: If width or height is not a positive integer
    """
    for name, value in (("width", width), ("height", height)):
        if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
            raise ValueError(f"Image {name} must be a positive integer, got {value!r}")

    detections: list[Detection] = []
    errors: list[str] = []

    for index, record in enumerate(records or ()):
        try:
            detections.append(parse_detection(record, width, height))
        except MalformedDetectionError as e:
            logger.debug(f"Dropping detection #{index}: {e}")
            errors.append(f"#{index}: {e}")

    if errors:
        logger.warning(f"Dropped {len(errors)} malformed detection(s) of {len(errors) + len(detections)}")

    return IngestResult(
        detection_set=RawDetectionSet(
            detections=tuple(detections),
            width=width,
            height=height,
        ),
        dropped=len(errors),
        errors=tuple(errors),
    )
