"""Data models for meterread."""

from dataclasses import dataclass, field, replace
from enum import Enum


@dataclass(frozen=True)
class Detection:
    """One candidate digit glyph (immutable)."""

    box: tuple[float, float, float, float]  # x0, y0, x1, y1 in source pixels
    tag: str
    confidence: float = 0.0

    @property
    def center_x(self) -> float:
        return (self.box[0] + self.box[2]) / 2.0

    @property
    def center_y(self) -> float:
        return (self.box[1] + self.box[3]) / 2.0

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            "box": list(self.box),
            "tag": self.tag,
            "confidence": self.confidence,
        }


@dataclass(frozen=True)
class RawDetectionSet:
    """All detections from one detector invocation on one image."""

    detections: tuple[Detection, ...]
    width: int
    height: int

    def __len__(self) -> int:
        return len(self.detections)


@dataclass(frozen=True)
class IngestResult:
    """Outcome of ingesting raw detector output."""

    detection_set: RawDetectionSet
    dropped: int = 0
    errors: tuple[str, ...] = ()


@dataclass(frozen=True)
class ReadingResult:
    """Ordered digit detections and the reading they spell."""

    detections: tuple[Detection, ...]
    reading: str
    image_width: int
    image_height: int

    @property
    def is_empty(self) -> bool:
        return not self.detections

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            "reading": self.reading,
            "detections": [d.to_dict() for d in self.detections],
            "image_width": self.image_width,
            "image_height": self.image_height,
        }


@dataclass(frozen=True)
class OverlayBox:
    """A detection box mapped onto a destination surface."""

    box: tuple[float, float, float, float]
    tag: str
    confidence: float
    label_x: float
    label_y: float

    def to_dict(self) -> dict:
        return {
            "box": list(self.box),
            "tag": self.tag,
            "confidence": self.confidence,
            "label_x": self.label_x,
            "label_y": self.label_y,
        }


class ReadingStatus(Enum):
    """Outcome kind of a read request."""

    OK = "ok"
    NOT_METER = "not_meter"
    NOT_READY = "not_ready"
    DECODE_FAILURE = "decode_failure"
    MODEL_FAILURE = "model_failure"
    STALE = "stale"


@dataclass(frozen=True)
class ReadingOutcome:
    """Result variant returned for every read request."""

    status: ReadingStatus
    result: ReadingResult | None = None
    label: str = ""
    dropped: int = 0
    error: str = ""
    request_id: int | None = None

    @property
    def ok(self) -> bool:
        return self.status is ReadingStatus.OK

    @property
    def reading(self) -> str:
        return self.result.reading if self.result else ""

    def with_request(self, request_id: int) -> "ReadingOutcome":
        return replace(self, request_id=request_id)

    def as_stale(self) -> "ReadingOutcome":
        return replace(self, status=ReadingStatus.STALE)

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        result = self.result
        return {
            "status": self.status.value,
            "request_id": self.request_id,
            "label": self.label,
            "reading": self.reading,
            "detections": [d.to_dict() for d in result.detections] if result else [],
            "image_width": result.image_width if result else None,
            "image_height": result.image_height if result else None,
            "dropped": self.dropped,
            "error": self.error,
        }


# Configuration models (immutable)


@dataclass(frozen=True)
class ModelConfig:
    """Classifier and detector settings."""

    classifier_path: str = ""
    detector_path: str = ""
    meter_label: str = "Meter"
    confidence_threshold: float = 0.2
    iou_threshold: float = 0.5


@dataclass(frozen=True)
class AssemblyConfig:
    """Row selection parameters."""

    row_min_tolerance: float = 12.0  # pixels
    row_tolerance_ratio: float = 0.03  # of image height


@dataclass(frozen=True)
class OverlayConfig:
    """Overlay drawing style."""

    color: tuple[int, int, int] = (0, 0, 255)  # BGR
    thickness: int = 2
    font_scale: float = 0.5
    label_gap: int = 2
    jpeg_quality: int = 85


@dataclass(frozen=True)
class ServerConfig:
    """API server configuration."""

    host: str = "0.0.0.0"
    port: int = 8000


@dataclass(frozen=True)
class AppConfig:
    """Top-level application configuration (immutable)."""

    models: ModelConfig = field(default_factory=ModelConfig)
    assembly: AssemblyConfig = field(default_factory=AssemblyConfig)
    overlay: OverlayConfig = field(default_factory=OverlayConfig)
    server: ServerConfig = field(default_factory=ServerConfig)
