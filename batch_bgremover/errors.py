"""Failure taxonomy for the background-removal pipeline.

Every failure lands a job in the Error state; the class only decides the
message shown to the user.
"""


class BackgroundRemovalError(Exception):
    """Base class for per-job failures."""


class UploadFailure(BackgroundRemovalError):
    """The source could not be committed to durable storage."""


class DecodeFailure(BackgroundRemovalError, ValueError):
    """The source bytes are not a decodable image."""


class ProcessingFailure(BackgroundRemovalError):
    """The segmentation algorithm or buffer acquisition failed."""


class EncodeFailure(BackgroundRemovalError):
    """The result buffer could not be serialized to a blob."""
