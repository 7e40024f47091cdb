"""FastAPI server for the meterread REST API."""

import logging
import threading
from collections.abc import Callable
from datetime import datetime
from typing import Any

import numpy as np
from fastapi import FastAPI, HTTPException, Query, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse, Response
from pydantic import BaseModel, Field, model_validator

from meterread.config_yaml import ConfigError, YAMLConfig
from meterread.errors import DecodeFailureError
from meterread.imaging import decode_image, encode_jpeg
from meterread.models import Detection, ReadingOutcome, ReadingResult, ReadingStatus
from meterread.overlay import map_reading, render_overlay
from meterread.reader import MeterReader, ReadingSession

logger = logging.getLogger(__name__)

# HTTP status per outcome; everything else answers 200
STATUS_CODES = {
    ReadingStatus.NOT_READY: 503,
    ReadingStatus.DECODE_FAILURE: 400,
    ReadingStatus.MODEL_FAILURE: 500,
}


# Pydantic models for API requests/responses


class DetectionModel(BaseModel):
    """A detection in source image pixels."""

    box: list[float] = Field(..., min_length=4, max_length=4, description="[x0, y0, x1, y1]")
    tag: str = Field(..., min_length=1)
    confidence: float = Field(0.0, ge=0.0, le=1.0)

    @model_validator(mode="after")
    def check_box(self) -> "DetectionModel":
        x0, y0, x1, y1 = self.box
        if x0 < 0 or y0 < 0 or x0 >= x1 or y0 >= y1:
            raise ValueError(f"Box must satisfy 0 <= x0 < x1 and 0 <= y0 < y1: {self.box}")
        if not self.tag.strip():
            raise ValueError("Tag is empty")
        return self


class ReadingResponse(BaseModel):
    """Outcome of a read request."""

    status: str
    request_id: int | None = None
    label: str = ""
    reading: str = ""
    detections: list[DetectionModel] = []
    image_width: int | None = None
    image_height: int | None = None
    dropped: int = 0
    error: str = ""


class AssembleRequest(BaseModel):
    """Raw detector output to assemble."""

    detections: list[dict[str, Any]] = Field(
        default_factory=list, description="Records with 'box' (4 or 5 numbers) and 'tag'"
    )
    width: int = Field(..., description="Image width in pixels")
    height: int = Field(..., description="Image height in pixels")


class AssembleResponse(BaseModel):
    """Assembled reading."""

    reading: str
    detections: list[DetectionModel]
    image_width: int
    image_height: int
    dropped: int = 0
    errors: list[str] = []


class ReadingResultModel(BaseModel):
    """A previously assembled reading."""

    detections: list[DetectionModel]
    image_width: int = Field(..., gt=0)
    image_height: int = Field(..., gt=0)

    @model_validator(mode="after")
    def check_boxes_inside(self) -> "ReadingResultModel":
        for d in self.detections:
            if d.box[2] > self.image_width or d.box[3] > self.image_height:
                raise ValueError(
                    f"Box {d.box} exceeds the {self.image_width}x{self.image_height} image"
                )
        return self


class OverlayBoxesRequest(BaseModel):
    """Request to map a reading onto a display surface."""

    result: ReadingResultModel
    width: float = Field(..., gt=0, description="Surface width in pixels")
    height: float = Field(..., gt=0, description="Surface height in pixels")
    label_height: float = Field(12.0, ge=0)
    label_gap: float = Field(2.0, ge=0)


class OverlayBoxResponse(BaseModel):
    """A box in surface pixels with its label anchor."""

    box: list[float]
    tag: str
    confidence: float
    label_x: float
    label_y: float


class SystemStatusResponse(BaseModel):
    """System status response."""

    status: str
    ready: bool
    classifier_ready: bool
    detector_ready: bool
    uptime_seconds: float
    total_requests: int
    total_readings: int


class ReloadResponse(BaseModel):
    """Config reload response."""

    success: bool
    message: str


class APIServer:
    """Request bookkeeping behind the REST endpoints."""

    def __init__(
        self,
        reader: MeterReader,
        session: ReadingSession,
        yaml_config: YAMLConfig | None = None,
    ):
        """Initialize API server.

        Args:
            reader: Meter reader instance
            session: Session tracking request ids
            yaml_config: YAML config instance
        """
        self.reader = reader
        self.session = session
        self.yaml_config = yaml_config
        self._start_time = datetime.now()
        self._lock = threading.Lock()
        self._request_count = 0
        self._reading_count = 0

    def read(self, data: bytes) -> ReadingOutcome:
        """Read one submitted image within the session's request order."""
        return self._track(lambda: self.reader.read_bytes(data))

    def read_image(self, image: np.ndarray) -> ReadingOutcome:
        """Read an already decoded image within the session's request order."""
        return self._track(lambda: self.reader.read_image(image))

    def _track(self, read: Callable[[], ReadingOutcome]) -> ReadingOutcome:
        request_id = self.session.begin()
        with self._lock:
            self._request_count += 1

        outcome = self.session.complete(request_id, read())
        if outcome.ok:
            with self._lock:
                self._reading_count += 1
        return outcome

    def reload_config(self) -> tuple[bool, str]:
        """Reload configuration and apply assembly and overlay settings.

        Model weights are loaded once at startup and are not swapped here.

        Returns:
            (success, message)
        """
        if self.yaml_config is None:
            return False, "No configuration file in use"

        try:
            config = self.yaml_config.reload()
        except ConfigError as e:
            return False, str(e)

        self.reader.config = config
        logger.info(f"Configuration reloaded from {self.yaml_config.config_path}")
        return True, "Configuration reloaded"

    def get_status(self) -> dict[str, Any]:
        """Get system status."""
        with self._lock:
            total_requests = self._request_count
            total_readings = self._reading_count
        return {
            "status": "running",
            "ready": self.reader.is_ready,
            "classifier_ready": self.reader.classifier.is_ready,
            "detector_ready": self.reader.detector.is_ready,
            "uptime_seconds": (datetime.now() - self._start_time).total_seconds(),
            "total_requests": total_requests,
            "total_readings": total_readings,
        }


def _to_reading_result(model: ReadingResultModel) -> ReadingResult:
    detections = tuple(
        Detection(box=tuple(d.box), tag=d.tag, confidence=d.confidence)
        for d in model.detections
    )
    return ReadingResult(
        detections=detections,
        reading="".join(d.tag for d in detections),
        image_width=model.image_width,
        image_height=model.image_height,
    )


def create_app(
    reader: MeterReader,
    session: ReadingSession | None = None,
    yaml_config: YAMLConfig | None = None,
) -> FastAPI:
    """Create FastAPI application.

    Args:
        reader: Meter reader instance
        session: Request session (a new one if not provided)
        yaml_config: YAML config instance

    Returns:
        FastAPI application
    """
    app = FastAPI(
        title="meterread API",
        description="REST API for reading utility meters from photographs",
        version="1.0.0",
    )

    api_server = APIServer(reader, session or ReadingSession(), yaml_config)
    app.state.api_server = api_server

    @app.get("/health")
    async def health_check():
        """Health check endpoint."""
        return {"status": "ok"}

    @app.get("/api/status", response_model=SystemStatusResponse)
    async def get_status():
        """Get system status."""
        return api_server.get_status()

    @app.post("/api/config/reload", response_model=ReloadResponse)
    async def reload_config():
        """Reload configuration from file."""
        success, message = api_server.reload_config()
        return {"success": success, "message": message}

    @app.post("/api/readings", response_model=ReadingResponse)
    async def create_reading(request: Request):
        """Read the meter in an uploaded image (raw bytes body)."""
        data = await request.body()
        outcome = await run_in_threadpool(api_server.read, data)
        return JSONResponse(
            content=outcome.to_dict(),
            status_code=STATUS_CODES.get(outcome.status, 200),
        )

    @app.get("/api/readings/latest", response_model=ReadingResponse)
    async def get_latest_reading():
        """Get the latest accepted reading."""
        latest = api_server.session.latest
        if latest is None:
            raise HTTPException(status_code=404, detail="No reading available")
        return latest.to_dict()

    @app.post("/api/assemble", response_model=AssembleResponse)
    async def assemble(request: AssembleRequest):
        """Assemble a reading from detector output supplied by the caller."""
        try:
            ingested, result = reader.assemble(request.detections, request.width, request.height)
        except ValueError as e:
            raise HTTPException(status_code=422, detail=str(e))

        return {
            **result.to_dict(),
            "dropped": ingested.dropped,
            "errors": list(ingested.errors),
        }

    @app.post("/api/overlay/boxes", response_model=list[OverlayBoxResponse])
    async def overlay_boxes(request: OverlayBoxesRequest):
        """Map a reading's boxes onto a display surface of the given size."""
        boxes = map_reading(
            _to_reading_result(request.result),
            request.width,
            request.height,
            label_height=request.label_height,
            label_gap=request.label_gap,
        )
        return [b.to_dict() for b in boxes]

    @app.post("/api/overlay")
    async def overlay_image(
        request: Request,
        width: int = Query(..., gt=0, description="Surface width in pixels"),
        height: int = Query(..., gt=0, description="Surface height in pixels"),
    ):
        """Read an uploaded image and return it letterboxed with boxes drawn.

        Returns a JPEG image of the requested surface size.
        """
        data = await request.body()
        try:
            image = decode_image(data)
        except DecodeFailureError as e:
            raise HTTPException(status_code=400, detail=str(e))

        outcome = await run_in_threadpool(api_server.read_image, image)
        if outcome.status is ReadingStatus.NOT_METER:
            raise HTTPException(
                status_code=422,
                detail=f"Image classified as '{outcome.label}', not a meter",
            )
        if not outcome.ok:
            return JSONResponse(
                content=outcome.to_dict(),
                status_code=STATUS_CODES.get(outcome.status, 200),
            )

        style = reader.config.overlay

        def render() -> bytes:
            canvas = render_overlay(image, outcome.result, width, height, style)
            return encode_jpeg(canvas, style.jpeg_quality)

        return Response(
            content=await run_in_threadpool(render),
            media_type="image/jpeg",
            headers={
                "X-Reading": outcome.reading,
                "X-Request-Id": str(outcome.request_id),
            },
        )

    return app
