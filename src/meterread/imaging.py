"""Image decoding and encoding helpers."""

from pathlib import Path

import cv2
import numpy as np

from meterread.errors import DecodeFailureError


def decode_image(data: bytes) -> np.ndarray:
    """Decode encoded image bytes (JPEG, PNG, ...) to a BGR array.

    Raises:
        DecodeFailureError: If the bytes are empty or not a decodable image
    """
    if not data:
        raise DecodeFailureError("Image data is empty")

    buffer = np.frombuffer(data, dtype=np.uint8)
    image = cv2.imdecode(buffer, cv2.IMREAD_COLOR)
    if image is None or image.size == 0:
        raise DecodeFailureError(f"Cannot decode image ({len(data)} bytes)")
    return image


def load_image(path: Path | str) -> np.ndarray:
    """Read and decode an image file.

    Raises:
        DecodeFailureError: If the file is missing or not a decodable image
    """
    path = Path(path)
    try:
        data = path.read_bytes()
    except OSError as e:
        raise DecodeFailureError(f"Cannot read image {path}: {e}")
    return decode_image(data)


def encode_jpeg(image: np.ndarray, quality: int = 85) -> bytes:
    """Encode a BGR array as JPEG bytes."""
    success, jpeg = cv2.imencode(".jpg", image, [cv2.IMWRITE_JPEG_QUALITY, quality])
    if not success:
        raise ValueError("Failed to encode image")
    return jpeg.tobytes()
