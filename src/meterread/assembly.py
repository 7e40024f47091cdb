"""Reading assembly: row selection, column deduplication, ordering."""

import logging
import math
from collections.abc import Sequence

from meterread.models import AssemblyConfig, Detection, RawDetectionSet, ReadingResult

logger = logging.getLogger(__name__)


def row_tolerance(
    image_height: int,
    min_tolerance: float = 12.0,
    tolerance_ratio: float = 0.03,
) -> float:
    """Vertical distance from the row center a digit may have, in pixels."""
    return max(min_tolerance, tolerance_ratio * image_height)


def select_row(
    detections: Sequence[Detection],
    image_height: int,
    min_tolerance: float = 12.0,
    tolerance_ratio: float = 0.03,
) -> list[Detection]:
    """Keep detections whose vertical center lies near the mean center.

    The row is estimated as the mean center_y of all detections, which
    assumes the digit row dominates the output. Off-row detections can
    still pull the mean, and separate rows are never clustered apart.

    Args:
        detections: Candidate detections
        image_height: Source image height in pixels
        min_tolerance: Lower bound of the tolerance band
        tolerance_ratio: Tolerance as a fraction of image height

    Returns:
        Detections inside the band, in input order
    """
    if not detections:
        return []

    row_y = sum(d.center_y for d in detections) / len(detections)
    tolerance = row_tolerance(image_height, min_tolerance, tolerance_ratio)

    kept = [d for d in detections if abs(d.center_y - row_y) <= tolerance]
    logger.debug(
        f"Row y={row_y:.2f} tol={tolerance:.2f}: kept {len(kept)}/{len(detections)}"
    )
    return kept


def column_key(detection: Detection) -> int:
    """Horizontal center rounded to the nearest pixel (halves round up)."""
    return int(math.floor(detection.center_x + 0.5))


def dedupe_columns(detections: Sequence[Detection]) -> list[Detection]:
    """Keep the most confident detection per column key.

    Ties keep the first detection seen. Centers a fraction of a pixel
    apart can land in different keys, and distinct digits that round to
    the same pixel are merged.
    """
    best: dict[int, Detection] = {}
    for detection in detections:
        key = column_key(detection)
        current = best.get(key)
        if current is None or detection.confidence > current.confidence:
            best[key] = detection

    if len(best) < len(detections):
        logger.debug(f"Merged {len(detections) - len(best)} duplicate column detection(s)")
    return list(best.values())


def assemble_sequence(
    detections: Sequence[Detection],
    image_width: int,
    image_height: int,
) -> ReadingResult:
    """Order detections left to right and join their tags."""
    ordered = tuple(sorted(detections, key=lambda d: d.center_x))
    return ReadingResult(
        detections=ordered,
        reading="".join(d.tag for d in ordered),
        image_width=image_width,
        image_height=image_height,
    )


def assemble_reading(
    detection_set: RawDetectionSet,
    config: AssemblyConfig | None = None,
) -> ReadingResult:
    """Run row selection, deduplication and ordering on one detection set.

    Pure function of its inputs: identical sets give identical results.
    An empty set, or one emptied by row selection, gives an empty reading.
    """
    config = config or AssemblyConfig()

    row = select_row(
        detection_set.detections,
        detection_set.height,
        min_tolerance=config.row_min_tolerance,
        tolerance_ratio=config.row_tolerance_ratio,
    )
    columns = dedupe_columns(row)
    result = assemble_sequence(columns, detection_set.width, detection_set.height)

    logger.debug(
        f"Assembled '{result.reading}' from {len(detection_set)} detection(s) "
        f"(img {detection_set.width}x{detection_set.height})"
    )
    return result
