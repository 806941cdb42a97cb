"""
FastAPI layer exposing the batch background-removal session.

Endpoints:
 - GET /health
 - GET /jobs, POST /jobs, DELETE /jobs
 - GET /jobs/{id}, DELETE /jobs/{id}
 - GET /jobs/{id}/result
 - POST /jobs/{id}/retry
 - POST /jobs/download-all
 - PUT /algorithm
"""

from __future__ import annotations

import logging
from typing import List, Optional

from fastapi import FastAPI, File, HTTPException, Response, UploadFile
from pydantic import BaseModel

from . import config
from .controller import BatchController
from .exporter import download_filename
from .jobs import ImageJob, JobStatus, SourceFile
from .segmentation import Algorithm

settings = config.get_settings()
logging.basicConfig(level=getattr(logging, settings.log_level.upper(), logging.INFO))
logger = logging.getLogger(__name__)

app = FastAPI(title="Batch Background Removal Service", version="0.1.0")
controller = BatchController(settings=settings)


class JobResponse(BaseModel):
    id: str
    filename: str
    status: JobStatus
    progress: int
    algorithm: Algorithm
    preview: str
    sourceUrl: Optional[str] = None
    error: Optional[str] = None
    resultUrl: Optional[str] = None


class BatchResponse(BaseModel):
    algorithm: Algorithm
    completed: int
    total: int
    summary: str
    jobs: List[JobResponse]


class AlgorithmRequest(BaseModel):
    algorithm: Algorithm


class DownloadAllResponse(BaseModel):
    downloads: List[str]


def _to_response(job: ImageJob) -> JobResponse:
    return JobResponse(
        id=job.id,
        filename=job.filename,
        status=job.status,
        progress=job.progress,
        algorithm=job.algorithm,
        preview=job.preview.uri,
        sourceUrl=job.source_url,
        error=job.error,
        resultUrl=f"/jobs/{job.id}/result" if job.status is JobStatus.COMPLETED else None,
    )


def _get_or_404(job_id: str) -> ImageJob:
    job = controller.get_job(job_id)
    if job is None:
        raise HTTPException(status_code=404, detail="Job not found")
    return job


@app.get("/health")
def health():
    return {"status": "ok"}


@app.get("/jobs", response_model=BatchResponse)
def list_jobs():
    jobs = controller.jobs()
    return BatchResponse(
        algorithm=controller.selected_algorithm,
        completed=sum(1 for job in jobs if job.status is JobStatus.COMPLETED),
        total=len(jobs),
        summary=controller.summary(),
        jobs=[_to_response(job) for job in jobs],
    )


@app.post("/jobs", response_model=List[JobResponse], status_code=202)
async def add_jobs(files: List[UploadFile] = File(...)):
    sources: List[SourceFile] = []
    for upload in files:
        media_type = upload.content_type or ""
        if not media_type.startswith("image/"):
            raise HTTPException(status_code=400, detail=f"{upload.filename} is not an image")
        sources.append(
            SourceFile(
                filename=upload.filename or "image",
                content=await upload.read(),
                media_type=media_type,
            )
        )
    created = controller.add_files(sources)
    logger.info("Accepted %d file(s)", len(created))
    return [_to_response(job) for job in created]


@app.delete("/jobs", status_code=204)
def clear_jobs():
    controller.clear_all()
    return Response(status_code=204)


@app.post("/jobs/download-all", response_model=DownloadAllResponse)
def download_all():
    try:
        downloads = controller.download_all()
    except Exception as exc:  # noqa: BLE001
        logger.exception("Batch download failed: %s", exc)
        raise HTTPException(status_code=500, detail="Download failed") from exc
    return DownloadAllResponse(downloads=downloads)


@app.get("/jobs/{job_id}", response_model=JobResponse)
def get_job(job_id: str):
    return _to_response(_get_or_404(job_id))


@app.get("/jobs/{job_id}/result")
def get_result(job_id: str):
    job = _get_or_404(job_id)
    if job.result is None:
        raise HTTPException(status_code=409, detail=f"Job is {job.status.value}")
    return Response(
        content=job.result,
        media_type="image/png",
        headers={"Content-Disposition": f'attachment; filename="{download_filename(job.filename)}"'},
    )


@app.post("/jobs/{job_id}/retry", response_model=JobResponse, status_code=202)
def retry_job(job_id: str):
    _get_or_404(job_id)
    if not controller.retry_job(job_id):
        raise HTTPException(status_code=409, detail="Only failed jobs can be retried")
    return _to_response(_get_or_404(job_id))


@app.delete("/jobs/{job_id}", status_code=204)
def remove_job(job_id: str):
    controller.remove_job(job_id)
    return Response(status_code=204)


@app.put("/algorithm", response_model=AlgorithmRequest)
def select_algorithm(body: AlgorithmRequest):
    controller.select_algorithm(body.algorithm)
    return AlgorithmRequest(algorithm=controller.selected_algorithm)
