"""Tests for detector output ingestion."""

import math

import pytest

from meterread.errors import MalformedDetectionError
from meterread.ingest import ingest_detections, parse_detection
from meterread.models import Detection


class TestParseDetection:
    def test_five_value_box(self):
        detection = parse_detection({"box": [10, 20, 30, 40, 0.75], "tag": "7"}, 480, 320)

        assert detection == Detection(box=(10.0, 20.0, 30.0, 40.0), tag="7", confidence=0.75)

    def test_missing_confidence_defaults_to_zero(self):
        detection = parse_detection({"box": [10, 20, 30, 40], "tag": "7"}, 480, 320)
        assert detection.confidence == 0.0

    def test_confidence_key_takes_precedence(self):
        record = {"box": [10, 20, 30, 40, 0.1], "tag": "7", "confidence": 0.6}
        assert parse_detection(record, 480, 320).confidence == 0.6

    def test_tag_is_stringified(self):
        assert parse_detection({"box": [10, 20, 30, 40], "tag": 3}, 480, 320).tag == "3"

    @pytest.mark.parametrize(
        "record",
        [
            {"box": [10, 20, 30], "tag": "1"},
            {"box": "10,20,30,40", "tag": "1"},
            {"box": [10, "a", 30, 40], "tag": "1"},
            {"box": [10, math.nan, 30, 40], "tag": "1"},
            {"box": [10, 20, math.inf, 40], "tag": "1"},
            {"box": [30, 20, 30, 40], "tag": "1"},
            {"box": [10, 40, 30, 20], "tag": "1"},
            {"box": [10, 20, 30, 40, 1.5], "tag": "1"},
            {"box": [10, 20, 30, 40, -0.1], "tag": "1"},
            {"box": [10, 20, 30, 40], "tag": ""},
            {"box": [10, 20, 30, 40]},
            {"tag": "1"},
            [10, 20, 30, 40],
        ],
    )
    def test_rejects_malformed(self, record):
        with pytest.raises(MalformedDetectionError):
            parse_detection(record, 480, 320)

    def test_clips_to_image(self):
        detection = parse_detection({"box": [-2, 300, 20, 320.4], "tag": "1"}, 480, 320)
        assert detection.box == (0.0, 300.0, 20.0, 320.0)

    def test_box_outside_image_is_malformed(self):
        with pytest.raises(MalformedDetectionError):
            parse_detection({"box": [10, 330, 20, 350], "tag": "1"}, 480, 320)


class TestIngestDetections:
    def test_empty_output(self):
        result = ingest_detections([], 480, 320)

        assert result.detection_set.detections == ()
        assert (result.detection_set.width, result.detection_set.height) == (480, 320)
        assert result.dropped == 0

    def test_none_output(self):
        assert len(ingest_detections(None, 480, 320).detection_set) == 0

    def test_drops_and_counts_malformed(self):
        records = [
            {"box": [10, 20, 30, 40, 0.9], "tag": "1"},
            {"box": [30, 20, 10, 40, 0.9], "tag": "2"},
            {"box": [40, 20, 60, 40, 0.8], "tag": "3"},
            {"box": [70, 20, 90, 40, 2.0], "tag": "4"},
        ]

        result = ingest_detections(records, 480, 320)

        assert [d.tag for d in result.detection_set.detections] == ["1", "3"]
        assert result.dropped == 2
        assert len(result.errors) == 2
        assert result.errors[0].startswith("#1:")

    @pytest.mark.parametrize("width,height", [(0, 320), (480, -1), (480.0, 320), (True, 320)])
    def test_invalid_image_size(self, width, height):
        with pytest.raises(ValueError):
            ingest_detections([], width, height)
