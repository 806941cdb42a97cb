"""
Batch controller: fans uploaded images out to independent jobs.

Each job runs on a worker thread and moves through
Uploading -> Processing -> Completed | Error. The only shared state is the
session's job table, and every read-modify-write on it happens under the
session lock, so a finishing job can never resurrect a removed one.
"""

from __future__ import annotations

from collections import OrderedDict
from concurrent.futures import Future, ThreadPoolExecutor, wait as wait_futures
import logging
from threading import Lock
from typing import Callable, Dict, Iterable, List, Optional

from . import config
from .errors import BackgroundRemovalError, ProcessingFailure, UploadFailure
from .exporter import ResultExporter
from .jobs import Completed, Failed, ImageJob, JobState, JobStatus, PreviewRevoked, Processing, SourceFile
from .pipeline import remove_background
from .progress import ProgressReporter
from .raster import RasterBuffer
from .segmentation import Algorithm
from .storage import DurableStorage, build_storage

logger = logging.getLogger(__name__)

Decoder = Callable[[bytes], RasterBuffer]


class BatchSession:
    """Ordered job table plus the algorithm applied to newly added jobs."""

    def __init__(self, algorithm: Algorithm = Algorithm.CORNER):
        self._jobs: "OrderedDict[str, ImageJob]" = OrderedDict()
        self._lock = Lock()
        self.selected_algorithm = Algorithm(algorithm)

    def add(self, job: ImageJob) -> None:
        with self._lock:
            if job.id in self._jobs:
                raise ValueError(f"Duplicate job id {job.id}")
            self._jobs[job.id] = job

    def get(self, job_id: str) -> Optional[ImageJob]:
        with self._lock:
            return self._jobs.get(job_id)

    def jobs(self) -> List[ImageJob]:
        with self._lock:
            return list(self._jobs.values())

    def remove(self, job_id: str) -> Optional[ImageJob]:
        with self._lock:
            return self._jobs.pop(job_id, None)

    def clear(self) -> List[ImageJob]:
        with self._lock:
            removed = list(self._jobs.values())
            self._jobs.clear()
        return removed

    def update(self, job_id: str, fn: Callable[[ImageJob], Optional[ImageJob]]) -> Optional[ImageJob]:
        """
        Apply `fn` to the job atomically.

        Returns the stored job, or None when the job is gone or `fn` declined
        the change by returning None.
        """
        with self._lock:
            job = self._jobs.get(job_id)
            if job is None:
                return None
            updated = fn(job)
            if updated is None:
                return None
            self._jobs[job_id] = updated
            return updated

    def set_state(self, job_id: str, state: JobState, **changes) -> Optional[ImageJob]:
        return self.update(job_id, lambda job: job.with_state(state, **changes))

    def set_progress(self, job_id: str, progress: int) -> Optional[ImageJob]:
        def _advance(job: ImageJob) -> Optional[ImageJob]:
            if not isinstance(job.state, Processing) or progress < job.state.progress:
                return None
            return job.with_state(Processing(progress=progress))

        return self.update(job_id, _advance)

    def counts(self) -> Dict[JobStatus, int]:
        totals = {status: 0 for status in JobStatus}
        with self._lock:
            for job in self._jobs.values():
                totals[job.status] += 1
        return totals

    def __len__(self) -> int:
        with self._lock:
            return len(self._jobs)


class BatchController:
    def __init__(
        self,
        storage: Optional[DurableStorage] = None,
        exporter: Optional[ResultExporter] = None,
        decoder: Optional[Decoder] = None,
        session: Optional[BatchSession] = None,
        settings: Optional[config.Settings] = None,
    ):
        self.settings = settings if settings is not None else config.get_settings()
        self.session = session if session is not None else BatchSession(Algorithm(self.settings.default_algorithm))
        self.storage = storage if storage is not None else build_storage(self.settings)
        self.exporter = exporter if exporter is not None else ResultExporter(settings=self.settings)
        self.decoder = decoder if decoder is not None else RasterBuffer.from_bytes
        self._executor = ThreadPoolExecutor(
            max_workers=self.settings.max_workers, thread_name_prefix="bg-job"
        )
        self._futures: Dict[str, Future] = {}
        self._futures_lock = Lock()

    # Session-level operations

    @property
    def selected_algorithm(self) -> Algorithm:
        return self.session.selected_algorithm

    def select_algorithm(self, algorithm: Algorithm) -> None:
        self.session.selected_algorithm = Algorithm(algorithm)
        logger.info("Selected algorithm: %s", self.session.selected_algorithm.value)

    def add_files(self, files: Iterable[SourceFile]) -> List[ImageJob]:
        """Create one job per file and start each without waiting on any of them."""
        limit = int(self.settings.max_upload_mb * 1024 * 1024)
        algorithm = self.session.selected_algorithm
        created: List[ImageJob] = []
        for source in files:
            if source.size > limit:
                logger.warning(
                    "%s is %.1f MB, above the advised %.1f MB",
                    source.filename,
                    source.size / 1024 / 1024,
                    self.settings.max_upload_mb,
                )
            job = ImageJob.create(source, algorithm)
            self.session.add(job)
            created.append(job)
            self._submit(job.id, self._run_job, job.id)
        return created

    def get_job(self, job_id: str) -> Optional[ImageJob]:
        return self.session.get(job_id)

    def jobs(self) -> List[ImageJob]:
        return self.session.jobs()

    def remove_job(self, job_id: str) -> None:
        job = self.session.remove(job_id)
        if job is None:
            return
        job.preview.revoke()
        logger.info("Removed job %s (%s)", job_id, job.filename)

    def retry_job(self, job_id: str) -> bool:
        """Re-enter Processing for a failed job; returns False if it is not in Error."""

        def _restart(job: ImageJob) -> Optional[ImageJob]:
            if job.status is not JobStatus.ERROR:
                return None
            return job.with_state(Processing(progress=50))

        if self.session.update(job_id, _restart) is None:
            return False
        logger.info("Retrying job %s", job_id)
        self._submit(job_id, self._process, job_id)
        return True

    def clear_all(self) -> None:
        for job in self.session.clear():
            job.preview.revoke()
        logger.info("Cleared batch session")

    def completed_jobs(self) -> List[ImageJob]:
        return [job for job in self.session.jobs() if job.status is JobStatus.COMPLETED]

    def download_all(self, stagger_seconds: Optional[float] = None) -> List[str]:
        """Trigger one download per completed job; returns the download filenames."""
        if stagger_seconds is None:
            stagger_seconds = config.stagger_seconds(self.settings)
        items = [(job.result, job.filename) for job in self.completed_jobs()]
        return self.exporter.export_all(items, stagger_seconds=stagger_seconds)

    def counts(self) -> Dict[JobStatus, int]:
        return self.session.counts()

    def summary(self) -> str:
        counts = self.counts()
        return f"{counts[JobStatus.COMPLETED]} of {sum(counts.values())} images processed"

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Block until every submitted job has settled. Returns False on timeout."""
        while True:
            with self._futures_lock:
                pending = [f for f in self._futures.values() if not f.done()]
            if not pending:
                return True
            _, not_done = wait_futures(pending, timeout=timeout)
            if not_done:
                return False

    def shutdown(self, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait)

    # Worker side

    def _submit(self, job_id: str, fn: Callable[[str], None], *args) -> None:
        future = self._executor.submit(fn, *args)
        with self._futures_lock:
            self._futures = {k: f for k, f in self._futures.items() if not f.done()}
            self._futures[job_id] = future

    def _fail(self, job_id: str, exc: BaseException) -> None:
        def _to_error(job: ImageJob) -> ImageJob:
            return job.with_state(Failed(error=str(exc) or type(exc).__name__, progress=job.progress))

        if self.session.update(job_id, _to_error) is None:
            logger.debug("Dropping failure for discarded job %s", job_id)
            return
        logger.warning("Job %s failed: %s", job_id, exc)

    def _run_job(self, job_id: str) -> None:
        job = self.session.get(job_id)
        if job is None:
            return
        try:
            url = self.storage.upload(job.source.filename, job.source.content, job.source.media_type)
        except UploadFailure as exc:
            self._fail(job_id, exc)
            return
        except Exception as exc:  # noqa: BLE001
            logger.exception("Upload failed for %s", job.filename)
            self._fail(job_id, UploadFailure(f"Upload failed: {exc}"))
            return

        if self.session.set_state(job_id, Processing(progress=50), source_url=url) is None:
            return
        logger.info("Uploaded %s to %s", job.filename, url)
        self._process(job_id)

    def _process(self, job_id: str) -> None:
        job = self.session.get(job_id)
        if job is None:
            return
        reporter = ProgressReporter(lambda value: self.session.set_progress(job_id, value))
        try:
            try:
                source_bytes = job.preview.read()
            except PreviewRevoked as exc:
                raise ProcessingFailure("Source image is no longer available") from exc
            buffer = self.decoder(source_bytes)
            result = remove_background(buffer, job.algorithm, reporter, settings=self.settings)
        except BackgroundRemovalError as exc:
            self._fail(job_id, exc)
            return
        except Exception as exc:  # noqa: BLE001
            logger.exception("Processing failed for %s", job.filename)
            self._fail(job_id, ProcessingFailure(f"Failed to process image: {exc}"))
            return

        if self.session.set_state(job_id, Completed(result=result)) is None:
            logger.debug("Discarding result for removed job %s", job_id)
            return
        logger.info("Completed %s with %s", job.filename, job.algorithm.value)
