"""
Per-image job records and their lifecycle states.

Each state is its own frozen dataclass carrying only the fields valid in
that state, so a job can never hold both a result and an error.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import Enum
from threading import Lock
from typing import ClassVar, Optional, Union
import uuid

from .segmentation import Algorithm


class JobStatus(str, Enum):
    UPLOADING = "uploading"
    PROCESSING = "processing"
    COMPLETED = "completed"
    ERROR = "error"


@dataclass(frozen=True)
class Uploading:
    status: ClassVar[JobStatus] = JobStatus.UPLOADING
    progress: int = 0


@dataclass(frozen=True)
class Processing:
    status: ClassVar[JobStatus] = JobStatus.PROCESSING
    progress: int = 50


@dataclass(frozen=True)
class Completed:
    status: ClassVar[JobStatus] = JobStatus.COMPLETED
    progress: ClassVar[int] = 100
    result: bytes


@dataclass(frozen=True)
class Failed:
    status: ClassVar[JobStatus] = JobStatus.ERROR
    error: str
    progress: int = 0


JobState = Union[Uploading, Processing, Completed, Failed]


@dataclass(frozen=True)
class SourceFile:
    filename: str
    content: bytes = field(repr=False)
    media_type: str = "application/octet-stream"

    @property
    def size(self) -> int:
        return len(self.content)


class PreviewRevoked(RuntimeError):
    pass


class PreviewHandle:
    """Revocable local handle onto the original bytes, used for display and retry."""

    def __init__(self, source: SourceFile):
        self.uri = f"preview://{uuid.uuid4().hex}"
        self._content: Optional[bytes] = source.content
        self._lock = Lock()

    @property
    def revoked(self) -> bool:
        return self._content is None

    def read(self) -> bytes:
        with self._lock:
            if self._content is None:
                raise PreviewRevoked(f"{self.uri} has been revoked")
            return self._content

    def revoke(self) -> None:
        with self._lock:
            self._content = None


@dataclass(frozen=True)
class ImageJob:
    source: SourceFile
    preview: PreviewHandle
    algorithm: Algorithm
    state: JobState = field(default_factory=Uploading)
    source_url: Optional[str] = None
    id: str = field(default_factory=lambda: uuid.uuid4().hex)

    @classmethod
    def create(cls, source: SourceFile, algorithm: Algorithm) -> "ImageJob":
        return cls(source=source, preview=PreviewHandle(source), algorithm=Algorithm(algorithm))

    @property
    def filename(self) -> str:
        return self.source.filename

    @property
    def status(self) -> JobStatus:
        return self.state.status

    @property
    def progress(self) -> int:
        return self.state.progress

    @property
    def result(self) -> Optional[bytes]:
        return self.state.result if isinstance(self.state, Completed) else None

    @property
    def error(self) -> Optional[str]:
        return self.state.error if isinstance(self.state, Failed) else None

    def with_state(self, state: JobState, **changes) -> "ImageJob":
        return replace(self, state=state, **changes)
