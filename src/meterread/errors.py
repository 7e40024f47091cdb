"""Error types for meterread."""


class ReadingError(Exception):
    """Base class for meter reading failures."""

    pass


class NotReadyError(ReadingError):
    """Classifier or detector has not been loaded."""

    pass


class DecodeFailureError(ReadingError):
    """Image bytes could not be decoded."""

    pass


class MalformedDetectionError(ReadingError):
    """A raw detector record failed validation."""

    pass
