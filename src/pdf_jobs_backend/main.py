from __future__ import annotations

import json
import logging
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from fastapi import Depends, FastAPI, File, Form, HTTPException, UploadFile
from fastapi.concurrency import run_in_threadpool
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse, RedirectResponse

from . import s3_service
from .artifacts import ArtifactStore
from .batch import aggregate
from .configuration import load_settings
from .database import JobDatabase
from .errors import ArtifactNotFound, JobBusy, JobNotFound, NoInput, SubmissionError
from .models import BatchStatusRequest, BatchStatusResponse, JobAccepted, JobStatus, JobStatusResponse, ToolDescriptor
from .retention import RetentionSweeper
from .scheduler import ExecutionPolicy, JobScheduler
from .tools import build_tool_registry
from .utils import is_pdf_upload

settings = load_settings()

logging.basicConfig(level=settings.logging.level, format=settings.logging.format)
logger = logging.getLogger(__name__)

artifacts = ArtifactStore(Path(settings.storage.artifacts))
job_db = JobDatabase(Path(settings.storage.database))
scheduler = JobScheduler(
    store=job_db,
    registry=build_tool_registry(),
    artifacts=artifacts,
    policy=ExecutionPolicy.from_config(settings.execution),
    max_workers=settings.execution.max_workers,
    publish_outputs=settings.s3.publish_outputs,
)
sweeper = RetentionSweeper(
    store=job_db,
    artifacts=artifacts,
    max_age_seconds=settings.retention.max_age_seconds,
    interval_seconds=settings.retention.interval_seconds,
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    scheduler.recover()
    if settings.retention.enabled:
        sweeper.start()
    yield
    sweeper.stop()
    scheduler.shutdown(wait=False)


app = FastAPI(title="PDF Jobs API", version="0.1.0", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=list(settings.server.cors_origins),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def get_scheduler() -> JobScheduler:
    return scheduler


@app.get("/healthz")
def healthcheck() -> Dict[str, str]:
    return {"status": "ok"}


@app.get("/tools", response_model=List[ToolDescriptor])
def list_tools(manager: JobScheduler = Depends(get_scheduler)) -> List[ToolDescriptor]:
    return manager.registry.describe()


async def _store_upload(store: ArtifactStore, file: UploadFile) -> str:
    destination = store.new_upload_path(file.filename or "document.pdf")

    with destination.open("wb") as buffer:
        while chunk := await file.read(8 * 1024 * 1024):
            buffer.write(chunk)
    await file.close()
    return store.ref_for(destination)


@app.post("/jobs", response_model=Union[JobAccepted, List[JobAccepted]])
async def create_jobs(
    files: Optional[List[UploadFile]] = File(None),
    tool_type: str = Form(..., alias="toolType"),
    options: str = Form("{}"),
    manager: JobScheduler = Depends(get_scheduler),
) -> Union[JobAccepted, List[JobAccepted]]:
    try:
        manager.registry.resolve(tool_type)
        if not files:
            raise NoInput()
    except SubmissionError as exc:  # noqa: BLE001
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    for upload in files:
        if not is_pdf_upload(upload.filename, upload.content_type):
            raise HTTPException(status_code=400, detail="Only PDF uploads are supported")

    try:
        parsed_options: Dict[str, Any] = json.loads(options) if options else {}
    except json.JSONDecodeError as exc:  # noqa: BLE001
        raise HTTPException(status_code=400, detail=f"Invalid options JSON: {exc}") from exc
    if not isinstance(parsed_options, dict):
        raise HTTPException(status_code=400, detail="Options must be a JSON object")

    input_refs: List[str] = []
    try:
        for upload in files:
            input_refs.append(await _store_upload(manager.artifacts, upload))
    except Exception:
        for ref in input_refs:
            manager.artifacts.delete(ref)
        raise

    try:
        submission = await run_in_threadpool(manager.submit, tool_type, input_refs, parsed_options)
    except SubmissionError as exc:  # noqa: BLE001
        for ref in input_refs:
            manager.artifacts.delete(ref)
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    accepted = [job.to_accepted() for job in submission.jobs]
    return accepted if submission.is_batch else accepted[0]


@app.get("/jobs/{job_id}", response_model=JobStatusResponse)
def get_job(job_id: str, manager: JobScheduler = Depends(get_scheduler)) -> JobStatusResponse:
    try:
        job = manager.get(job_id)
    except JobNotFound as exc:  # noqa: BLE001
        raise HTTPException(status_code=404, detail="Job not found") from exc
    return job.to_status_response()


@app.post("/batches/status", response_model=BatchStatusResponse)
def batch_status(request: BatchStatusRequest, manager: JobScheduler = Depends(get_scheduler)) -> BatchStatusResponse:
    try:
        progress = aggregate(manager.store, request.job_ids)
    except JobNotFound as exc:  # noqa: BLE001
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return progress.to_response()


@app.get("/jobs/{job_id}/download")
def download_output(job_id: str, manager: JobScheduler = Depends(get_scheduler)):
    try:
        job = manager.get(job_id)
    except JobNotFound as exc:  # noqa: BLE001
        raise HTTPException(status_code=404, detail="Job not found") from exc
    if job.status != JobStatus.COMPLETED or not job.output_ref:
        raise HTTPException(status_code=404, detail="File not found or not ready")

    if job.s3_key:
        url = s3_service.generate_presigned_url(job.s3_key, expiration=settings.s3.url_expiration_seconds)
        if url:
            return RedirectResponse(url)

    try:
        path = manager.artifacts.resolve(job.output_ref)
    except ArtifactNotFound as exc:  # noqa: BLE001
        raise HTTPException(status_code=404, detail="File not found or not ready") from exc
    return FileResponse(path, filename=f"{job.tool_type}-{job.job_id}{path.suffix}")


@app.delete("/jobs/{job_id}")
def delete_job(job_id: str, manager: JobScheduler = Depends(get_scheduler)) -> Dict[str, str]:
    try:
        manager.delete(job_id)
    except JobNotFound as exc:  # noqa: BLE001
        raise HTTPException(status_code=404, detail="Job not found") from exc
    except JobBusy as exc:  # noqa: BLE001
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    return {"status": "deleted"}
