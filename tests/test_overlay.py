"""Tests for overlay coordinate mapping and rendering."""

import random

import numpy as np
import pytest

from meterread.models import Detection, OverlayConfig, ReadingResult
from meterread.overlay import (
    compute_letterbox,
    label_anchor,
    letterbox_image,
    map_reading,
    render_overlay,
)


def reading_with(*boxes: tuple[float, float, float, float], width: int = 480, height: int = 320) -> ReadingResult:
    detections = tuple(
        Detection(box=box, tag=str(i), confidence=0.5) for i, box in enumerate(boxes)
    )
    return ReadingResult(
        detections=detections,
        reading="".join(d.tag for d in detections),
        image_width=width,
        image_height=height,
    )


class TestLetterbox:
    def test_exact_double(self):
        letterbox = compute_letterbox(480, 320, 960, 640)

        assert letterbox.scale == 2.0
        assert letterbox.offset_x == 0.0
        assert letterbox.offset_y == 0.0
        assert letterbox.map_box((10, 20, 30, 40)) == (20, 40, 60, 80)

    def test_vertical_bars(self):
        letterbox = compute_letterbox(480, 320, 480, 480)

        assert letterbox.scale == 1.0
        assert letterbox.offset_x == 0.0
        assert letterbox.offset_y == 80.0

    def test_horizontal_bars(self):
        letterbox = compute_letterbox(480, 320, 1000, 320)

        assert letterbox.scale == 1.0
        assert letterbox.offset_x == 260.0
        assert letterbox.offset_y == 0.0

    @pytest.mark.parametrize("dims", [(0, 320, 960, 640), (480, 320, 0, 640), (480, -1, 960, 640)])
    def test_rejects_non_positive(self, dims):
        with pytest.raises(ValueError):
            compute_letterbox(*dims)

    def test_round_trip(self):
        rng = random.Random(7)
        for _ in range(50):
            letterbox = compute_letterbox(
                rng.randint(1, 4000), rng.randint(1, 4000),
                rng.uniform(1, 3000), rng.uniform(1, 3000),
            )
            box = tuple(rng.uniform(1, 4000) for _ in range(4))

            restored = letterbox.unmap_box(letterbox.map_box(box))

            assert restored == pytest.approx(box, rel=1e-6)


class TestLabelAnchor:
    def test_above_box(self):
        assert label_anchor((20, 40, 60, 80), label_height=12) == (20, 26)

    def test_clamped_to_surface(self):
        assert label_anchor((20, 5, 60, 80), label_height=12) == (20, 0.0)


class TestMapReading:
    def test_maps_boxes_and_labels(self):
        boxes = map_reading(reading_with((10, 20, 30, 40)), 960, 640)

        assert len(boxes) == 1
        assert boxes[0].box == (20, 40, 60, 80)
        assert boxes[0].tag == "0"
        assert (boxes[0].label_x, boxes[0].label_y) == (20, 26)

    def test_empty_reading(self):
        assert map_reading(reading_with(), 960, 640) == []

    def test_deterministic(self):
        result = reading_with((10, 20, 30, 40), (50, 20, 70, 40))
        assert map_reading(result, 333, 777) == map_reading(result, 333, 777)


class TestRender:
    def test_letterbox_image_shape(self):
        image = np.full((320, 480, 3), 100, dtype=np.uint8)

        canvas = letterbox_image(image, 480, 480)

        assert canvas.shape == (480, 480, 3)
        assert tuple(canvas[10, 240]) == (0, 0, 0)
        assert tuple(canvas[240, 240]) == (100, 100, 100)

    def test_draws_boxes(self):
        image = np.full((320, 480, 3), 100, dtype=np.uint8)
        style = OverlayConfig(color=(0, 0, 255), thickness=2)

        canvas = render_overlay(image, reading_with((10, 20, 30, 40)), 960, 640, style)

        assert canvas.shape == (640, 960, 3)
        # top edge of the mapped box (20, 40, 60, 80)
        assert tuple(canvas[40, 40]) == (0, 0, 255)
        assert tuple(canvas[300, 300]) == (100, 100, 100)

    def test_rejects_mismatched_image(self):
        image = np.zeros((100, 100, 3), dtype=np.uint8)

        with pytest.raises(ValueError):
            render_overlay(image, reading_with((10, 20, 30, 40)), 960, 640)
