from __future__ import annotations

import json
import logging
import time
import uuid
from collections import defaultdict, deque
from dataclasses import dataclass
from datetime import datetime, timezone

from fastapi import FastAPI, File, Form, HTTPException, Request, UploadFile
from fastapi.responses import PlainTextResponse, Response
from rq import Retry
from rq.job import Job
from rq.registry import FailedJobRegistry, StartedJobRegistry
from starlette.concurrency import run_in_threadpool
from starlette.middleware.base import BaseHTTPMiddleware

from sample_catalog.application.process_image_use_case import ProcessImageUseCase
from sample_catalog.config import settings
from sample_catalog.domain.models import UnprocessableImageError
from sample_catalog.infrastructure.image_validation import ImageValidationError, validate_image_bytes
from sample_catalog.infrastructure.jobs import get_queue, get_redis_connection
from sample_catalog.infrastructure.metrics import metrics
from sample_catalog.infrastructure.object_storage import S3ObjectStorage
from sample_catalog.infrastructure.removebg_background_remover import build_background_remover

logger = logging.getLogger("samples.api")
if not logger.handlers:
    logging.basicConfig(level=settings.log_level)

app = FastAPI(title="Sample Catalog Images")

queue = get_queue()
redis_connection = get_redis_connection()
use_case = ProcessImageUseCase(build_background_remover(), max_pixels=settings.max_image_pixels)
storage = S3ObjectStorage()
try:
    storage.ensure_bucket()
except Exception as exc:  # noqa: BLE001
    logger.warning("storage init failed at startup: %s", exc)


@dataclass
class SlidingWindow:
    timestamps: deque[float]


class RequestContextMiddleware(BaseHTTPMiddleware):
    def __init__(self, app: FastAPI) -> None:
        super().__init__(app)
        self._buckets: dict[str, SlidingWindow] = defaultdict(lambda: SlidingWindow(deque()))
        self._last_sweep = 0.0

    def _evict_idle(self, window_start: float) -> None:
        idle = [
            client_ip
            for client_ip, bucket in self._buckets.items()
            if not bucket.timestamps or bucket.timestamps[-1] < window_start
        ]
        for client_ip in idle:
            del self._buckets[client_ip]

    async def dispatch(self, request: Request, call_next):  # type: ignore[override]
        request_id = request.headers.get("x-request-id") or str(uuid.uuid4())
        start = time.perf_counter()

        request.state.request_id = request_id
        metrics.incr("http_requests_total")

        if request.url.path.startswith("/api/"):
            client_ip = request.client.host if request.client else "unknown"
            now = time.time()
            window_start = now - 60.0
            if now - self._last_sweep >= 60.0:
                self._evict_idle(window_start)
                self._last_sweep = now
            bucket = self._buckets[client_ip]

            while bucket.timestamps and bucket.timestamps[0] < window_start:
                bucket.timestamps.popleft()

            if len(bucket.timestamps) >= settings.rate_limit_per_minute:
                metrics.incr("rate_limited_total")
                return Response(
                    content='{"detail":"Rate limit exceeded. Try again in a minute."}',
                    status_code=429,
                    media_type="application/json",
                    headers={"x-request-id": request_id},
                )

            bucket.timestamps.append(now)

        response = await call_next(request)
        elapsed_ms = int((time.perf_counter() - start) * 1000)

        response.headers["x-request-id"] = request_id
        logger.info(
            json.dumps(
                {
                    "request_id": request_id,
                    "method": request.method,
                    "path": str(request.url.path),
                    "status": response.status_code,
                    "elapsed_ms": elapsed_ms,
                }
            )
        )
        return response


app.add_middleware(RequestContextMiddleware)


def _ensure_image_content_type(file: UploadFile) -> None:
    if not file.content_type or not file.content_type.startswith("image/"):
        raise HTTPException(status_code=400, detail=f"{file.filename or 'file'} is not an image")


def _ensure_within_size(file: UploadFile, image_bytes: bytes) -> None:
    if len(image_bytes) > settings.max_image_bytes:
        raise HTTPException(
            status_code=413,
            detail=f"{file.filename or 'file'} is too large. Max size is {settings.max_image_bytes // (1024 * 1024)} MB",
        )


def _enqueue_retry() -> Retry | None:
    if settings.job_retry_max <= 0:
        return None
    intervals = settings.job_retry_intervals
    if not intervals:
        return Retry(max=settings.job_retry_max)
    return Retry(max=settings.job_retry_max, interval=list(intervals))


def _fetch_job(job_id: str) -> Job:
    try:
        return Job.fetch(job_id, connection=redis_connection)
    except Exception as exc:  # noqa: BLE001
        raise HTTPException(status_code=404, detail="Job not found") from exc


def _status_payload(job: Job) -> dict:
    status = job.get_status(refresh=True)
    meta = job.meta or {}

    payload: dict[str, str | int | bool | dict | None] = {
        "job_id": job.id,
        "status": status,
        "download_path": None,
        "filename": None,
        "progress": int(meta.get("progress", 0)),
        "stage": str(meta.get("stage", "queued")),
        "error": None,
        "eta_seconds": None,
        "result": None,
    }

    if status == "failed":
        payload["error"] = str(meta.get("error") or "Job failed")

    if status == "finished":
        result = job.result if isinstance(job.result, dict) else {}
        payload["result"] = result
        if "key" in result:
            payload["filename"] = result.get("filename")
            payload["download_path"] = f"/api/jobs/{job.id}/download"
        payload["progress"] = 100
        payload["stage"] = "done"
        payload["eta_seconds"] = 0
    elif status in {"started", "queued"}:
        started_at = float(meta.get("started_at_ts", 0) or 0)
        progress = int(payload["progress"] or 0)
        if started_at > 0 and progress > 0:
            elapsed = max(1, int(time.time() - started_at))
            estimated_total = max(elapsed, int((elapsed / progress) * 100))
            payload["eta_seconds"] = max(0, estimated_total - elapsed)

    return payload


def _queue_stats() -> tuple[int, int, int]:
    try:
        started_registry = StartedJobRegistry(name=queue.name, connection=redis_connection)
        failed_registry = FailedJobRegistry(name=queue.name, connection=redis_connection)
        return queue.count, len(started_registry.get_job_ids()), len(failed_registry.get_job_ids())
    except Exception:  # noqa: BLE001
        return 0, 0, 0


@app.post("/api/images/process")
async def process_image(file: UploadFile = File(...)) -> Response:
    _ensure_image_content_type(file)
    image_bytes = await file.read()
    _ensure_within_size(file, image_bytes)

    started = time.perf_counter()
    try:
        result = await run_in_threadpool(use_case.execute, image_bytes)
    except UnprocessableImageError as exc:
        metrics.incr("images_unprocessable_total")
        raise HTTPException(status_code=422, detail=str(exc)) from exc

    metrics.observe("image_processing", time.perf_counter() - started)
    metrics.incr("images_processed_total")
    if result.was_background_removed:
        metrics.incr("background_removed_total")

    return Response(
        content=result.data,
        media_type="image/jpeg",
        headers={"X-Background-Removed": "true" if result.was_background_removed else "false"},
    )


@app.post("/api/jobs/process-image")
async def enqueue_process_image(
    file: UploadFile = File(...),
    owner_id: str = Form("anonymous"),
) -> dict[str, str]:
    _ensure_image_content_type(file)
    image_bytes = await file.read()
    _ensure_within_size(file, image_bytes)
    try:
        validate_image_bytes(image_bytes, max_pixels=settings.max_image_pixels)
    except ImageValidationError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    job = queue.enqueue(
        "sample_catalog.tasks.image_jobs.process_upload_job",
        image_bytes,
        owner_id,
        file.filename or "sample.jpg",
        result_ttl=settings.job_result_ttl_seconds,
        failure_ttl=settings.job_failure_ttl_seconds,
        retry=_enqueue_retry(),
    )

    metrics.incr("jobs_submitted_total")
    return {"job_id": job.id, "status": "queued"}


@app.post("/api/admin/reprocess-images")
def enqueue_reprocess_images(prefix: str | None = None) -> dict[str, str]:
    job = queue.enqueue(
        "sample_catalog.tasks.image_jobs.reprocess_images_job",
        prefix or settings.storage_prefix,
        job_timeout=settings.reprocess_job_timeout_seconds,
        result_ttl=settings.job_result_ttl_seconds,
        failure_ttl=settings.job_failure_ttl_seconds,
    )

    metrics.incr("reprocess_jobs_submitted_total")
    return {"job_id": job.id, "status": "queued"}


@app.get("/api/jobs/{job_id}")
def get_job_status(job_id: str) -> dict:
    return _status_payload(_fetch_job(job_id))


@app.post("/api/jobs/{job_id}/cancel")
def cancel_job(job_id: str) -> dict[str, str]:
    job = _fetch_job(job_id)

    status = job.get_status(refresh=True)
    if status in {"finished", "failed", "stopped", "canceled"}:
        return {"job_id": job.id, "status": status}

    job.cancel()
    metrics.incr("jobs_canceled_total")
    return {"job_id": job.id, "status": "canceled"}


@app.post("/api/jobs/{job_id}/retry")
def retry_job(job_id: str) -> dict[str, str]:
    job = _fetch_job(job_id)

    if job.get_status(refresh=True) != "failed":
        raise HTTPException(status_code=409, detail="Only failed jobs can be retried")

    try:
        requeued = queue.enqueue_call(
            func=job.func_name,
            args=job.args,
            kwargs=job.kwargs,
            result_ttl=settings.job_result_ttl_seconds,
            failure_ttl=settings.job_failure_ttl_seconds,
            retry=_enqueue_retry(),
        )
    except Exception as exc:  # noqa: BLE001
        raise HTTPException(status_code=500, detail="Failed to requeue job") from exc

    metrics.incr("jobs_retried_total")
    return {"job_id": requeued.id, "status": "queued"}


@app.get("/api/failed-jobs")
def list_failed_jobs(limit: int = 20) -> dict:
    registry = FailedJobRegistry(name=queue.name, connection=redis_connection)
    job_ids = registry.get_job_ids()[: max(1, min(limit, 100))]
    items: list[dict] = []

    for job_id in job_ids:
        try:
            job = Job.fetch(job_id, connection=redis_connection)
            payload = _status_payload(job)
            payload["created_at"] = (
                job.created_at.replace(tzinfo=timezone.utc).isoformat() if job.created_at else None
            )
            items.append(payload)
        except Exception:  # noqa: BLE001
            continue

    return {"items": items}


@app.get("/api/jobs/{job_id}/download")
def download_job_result(job_id: str) -> Response:
    job = _fetch_job(job_id)

    if job.get_status(refresh=True) != "finished":
        raise HTTPException(status_code=409, detail="Job is not finished")

    result = job.result or {}
    if not isinstance(result, dict) or "key" not in result:
        raise HTTPException(status_code=404, detail="Job has no downloadable image")

    key = result["key"]
    filename = str(result.get("filename") or "sample.jpg")
    content_type = str(result.get("content_type") or "image/jpeg")

    try:
        data = storage.get_bytes(key)
    except Exception as exc:  # noqa: BLE001
        raise HTTPException(status_code=500, detail="Failed to read result from storage") from exc

    metrics.incr("downloads_total")
    return Response(
        content=data,
        media_type=content_type,
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@app.get("/api/metrics")
def get_metrics() -> dict:
    queue_depth, queue_started, queue_failed = _queue_stats()
    metrics.set_gauge("queue_depth", queue_depth)
    metrics.set_gauge("queue_started", queue_started)
    metrics.set_gauge("queue_failed", queue_failed)
    snapshot = metrics.snapshot()
    snapshot["timestamp"] = int(datetime.now(timezone.utc).timestamp())
    return snapshot


@app.get("/api/metrics/prometheus")
def get_prometheus_metrics() -> PlainTextResponse:
    queue_depth, queue_started, queue_failed = _queue_stats()
    metrics.set_gauge("queue_depth", queue_depth)
    metrics.set_gauge("queue_started", queue_started)
    metrics.set_gauge("queue_failed", queue_failed)
    return PlainTextResponse(metrics.to_prometheus_text(), media_type="text/plain; version=0.0.4")


@app.get("/api/health")
def health() -> dict[str, str | bool]:
    return {"status": "ok", "background_removal_configured": bool(settings.remove_bg_api_key)}
