from __future__ import annotations

import logging
import time
import traceback
from pathlib import Path

from rq import get_current_job

from sample_catalog.application.process_image_use_case import ProcessImageUseCase
from sample_catalog.application.reprocess_images_use_case import ReprocessImagesUseCase
from sample_catalog.config import settings
from sample_catalog.domain.models import ReprocessReport
from sample_catalog.infrastructure.object_storage import S3ObjectStorage
from sample_catalog.infrastructure.removebg_background_remover import build_background_remover

logger = logging.getLogger("samples.jobs")

use_case = ProcessImageUseCase(build_background_remover(), max_pixels=settings.max_image_pixels)
storage = S3ObjectStorage()
try:
    storage.ensure_bucket()
except Exception as exc:  # noqa: BLE001
    logger.warning("storage init failed: %s", exc)


def _update_job_meta(**entries: str | int | float | dict[str, str]) -> None:
    job = get_current_job()
    if not job:
        return
    job.meta.update(entries)
    job.save_meta()


def _safe_segment(value: str, fallback: str) -> str:
    safe = "".join(ch for ch in value if ch.isalnum() or ch in ("-", "_"))
    return safe or fallback


def process_upload_job(image_bytes: bytes, owner_id: str, original_name: str) -> dict[str, str | bool]:
    _update_job_meta(progress=5, stage="prepare", started_at_ts=time.time())

    try:
        _update_job_meta(progress=20, stage="process_image")
        result = use_case.execute(image_bytes)

        key = f"{settings.storage_prefix}{_safe_segment(owner_id, 'anonymous')}/{int(time.time() * 1000)}.jpg"
        _update_job_meta(progress=80, stage="upload")
        storage.put_bytes(key, result.data, "image/jpeg")
        _update_job_meta(progress=100, stage="done")
    except Exception as exc:  # noqa: BLE001
        _update_job_meta(progress=0, stage="failed", error=str(exc), traceback=traceback.format_exc())
        raise

    stem = _safe_segment(Path(original_name).stem, "sample")
    return {
        "kind": "single",
        "key": key,
        "filename": f"{stem}.jpg",
        "content_type": "image/jpeg",
        "public_url": storage.public_url(key),
        "was_background_removed": result.was_background_removed,
    }


def reprocess_images_job(prefix: str | None = None) -> dict:
    _update_job_meta(progress=1, stage="prepare", started_at_ts=time.time())

    def on_progress(current: int, total: int, report: ReprocessReport) -> None:
        # Old keys are already deleted at this point; job meta holds the only mapping.
        progress = int((current / max(1, total)) * 99)
        _update_job_meta(
            progress=progress,
            stage="processing",
            total=total,
            current=current,
            failed=report.failed,
            replaced=dict(report.replaced),
        )

    try:
        reprocess = ReprocessImagesUseCase(use_case, storage)
        report = reprocess.execute(prefix or settings.storage_prefix, on_progress=on_progress)
        _update_job_meta(progress=100, stage="done")
    except Exception as exc:  # noqa: BLE001
        _update_job_meta(progress=0, stage="failed", error=str(exc), traceback=traceback.format_exc())
        raise

    return {"kind": "reprocess", **report.as_dict()}
