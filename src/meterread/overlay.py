"""Map detection boxes onto a display surface and draw them."""

from dataclasses import dataclass

import cv2
import numpy as np

from meterread.models import Detection, OverlayBox, OverlayConfig, ReadingResult

FONT = cv2.FONT_HERSHEY_SIMPLEX


@dataclass(frozen=True)
class Letterbox:
    """Uniform scale plus centering offsets from image to surface."""

    scale: float
    offset_x: float
    offset_y: float

    def map_point(self, x: float, y: float) -> tuple[float, float]:
        return x * self.scale + self.offset_x, y * self.scale + self.offset_y

    def unmap_point(self, x: float, y: float) -> tuple[float, float]:
        return (x - self.offset_x) / self.scale, (y - self.offset_y) / self.scale

    def map_box(
        self, box: tuple[float, float, float, float]
    ) -> tuple[float, float, float, float]:
        x0, y0 = self.map_point(box[0], box[1])
        x1, y1 = self.map_point(box[2], box[3])
        return x0, y0, x1, y1

    def unmap_box(
        self, box: tuple[float, float, float, float]
    ) -> tuple[float, float, float, float]:
        x0, y0 = self.unmap_point(box[0], box[1])
        x1, y1 = self.unmap_point(box[2], box[3])
        return x0, y0, x1, y1


def compute_letterbox(
    image_width: float,
    image_height: float,
    dest_width: float,
    dest_height: float,
) -> Letterbox:
    """Fit the image inside the surface without distortion, centered.

    Raises:
        ValueError: If any dimension is not positive
    """
    if min(image_width, image_height, dest_width, dest_height) <= 0:
        raise ValueError(
            f"Dimensions must be positive: image {image_width}x{image_height}, "
            f"surface {dest_width}x{dest_height}"
        )

    scale = min(dest_width / image_width, dest_height / image_height)
    offset_x = (dest_width - image_width * scale) / 2
    offset_y = (dest_height - image_height * scale) / 2
    return Letterbox(scale=scale, offset_x=offset_x, offset_y=offset_y)


def label_anchor(
    box: tuple[float, float, float, float],
    label_height: float,
    label_gap: float = 2.0,
) -> tuple[float, float]:
    """Top-left corner for a tag label above a mapped box, kept on-surface."""
    return box[0], max(0.0, box[1] - label_height - label_gap)


def map_detection(
    detection: Detection,
    letterbox: Letterbox,
    label_height: float = 12.0,
    label_gap: float = 2.0,
) -> OverlayBox:
    box = letterbox.map_box(detection.box)
    label_x, label_y = label_anchor(box, label_height, label_gap)
    return OverlayBox(
        box=box,
        tag=detection.tag,
        confidence=detection.confidence,
        label_x=label_x,
        label_y=label_y,
    )


def map_reading(
    result: ReadingResult,
    dest_width: float,
    dest_height: float,
    label_height: float = 12.0,
    label_gap: float = 2.0,
) -> list[OverlayBox]:
    """Map every box of a reading into destination surface pixels.

    Deterministic in its inputs, so the same reading and surface size
    always give the same rectangles.
    """
    if result.is_empty:
        return []

    letterbox = compute_letterbox(
        result.image_width, result.image_height, dest_width, dest_height
    )
    return [
        map_detection(d, letterbox, label_height, label_gap)
        for d in result.detections
    ]


def text_height(text: str, font_scale: float, thickness: int = 1) -> int:
    """Pixel height of a rendered label."""
    (_, h), baseline = cv2.getTextSize(text, FONT, font_scale, thickness)
    return h + baseline


def letterbox_image(image: np.ndarray, dest_width: int, dest_height: int) -> np.ndarray:
    """Scale an image into a black canvas of the destination size, centered."""
    h, w = image.shape[:2]
    letterbox = compute_letterbox(w, h, dest_width, dest_height)

    canvas = np.zeros((dest_height, dest_width, 3), dtype=np.uint8)
    new_w = min(dest_width, max(1, int(round(w * letterbox.scale))))
    new_h = min(dest_height, max(1, int(round(h * letterbox.scale))))
    resized = cv2.resize(image, (new_w, new_h), interpolation=cv2.INTER_AREA)
    if resized.ndim == 2:
        resized = cv2.cvtColor(resized, cv2.COLOR_GRAY2BGR)

    x = min(int(round(letterbox.offset_x)), dest_width - new_w)
    y = min(int(round(letterbox.offset_y)), dest_height - new_h)
    canvas[y:y + new_h, x:x + new_w] = resized
    return canvas


def draw_overlay(
    canvas: np.ndarray,
    boxes: list[OverlayBox],
    style: OverlayConfig | None = None,
) -> np.ndarray:
    """Draw mapped boxes and tag labels onto a canvas (in place)."""
    style = style or OverlayConfig()
    color = tuple(int(c) for c in style.color)

    for item in boxes:
        x0, y0, x1, y1 = (int(round(v)) for v in item.box)
        cv2.rectangle(canvas, (x0, y0), (x1, y1), color, style.thickness)

        # putText anchors at the baseline, label_y is the label's top edge
        (_, th), _ = cv2.getTextSize(item.tag, FONT, style.font_scale, 1)
        origin = (int(round(item.label_x)), int(round(item.label_y)) + th)
        cv2.putText(canvas, item.tag, origin, FONT, style.font_scale, color, 1, cv2.LINE_AA)

    return canvas


def render_overlay(
    image: np.ndarray,
    result: ReadingResult,
    dest_width: int,
    dest_height: int,
    style: OverlayConfig | None = None,
) -> np.ndarray:
    """Letterbox an image onto a surface and draw the reading's boxes on it.

    Args:
        image: Source image (BGR) the reading was produced from
        result: Reading to draw
        dest_width: Surface width in pixels
        dest_height: Surface height in pixels
        style: Drawing style

    Returns:
        New BGR image of the destination size
    """
    style = style or OverlayConfig()
    h, w = image.shape[:2]
    if (w, h) != (result.image_width, result.image_height):
        raise ValueError(
            f"Image is {w}x{h} but reading was made on "
            f"{result.image_width}x{result.image_height}"
        )

    canvas = letterbox_image(image, dest_width, dest_height)
    label_height = max(
        (text_height(d.tag, style.font_scale) for d in result.detections),
        default=0,
    )
    boxes = map_reading(result, dest_width, dest_height, label_height, style.label_gap)
    return draw_overlay(canvas, boxes, style)
