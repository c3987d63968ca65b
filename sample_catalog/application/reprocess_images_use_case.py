from __future__ import annotations

import logging
import time
from pathlib import PurePosixPath
from typing import Callable

from sample_catalog.application.process_image_use_case import ProcessImageUseCase
from sample_catalog.domain.image_store import ImageStore
from sample_catalog.domain.models import ReprocessReport

logger = logging.getLogger("samples.reprocess")

ProgressCallback = Callable[[int, int, ReprocessReport], None]


def reprocessed_key(key: str, now_ms: int) -> str:
    """Keep the upload id so keys stay unique within an owner folder."""
    path = PurePosixPath(key)
    upload_id = path.stem.split("-", 1)[0]
    return str(path.parent / f"{upload_id}-{now_ms}-reprocessed.jpg")


class ReprocessImagesUseCase:
    def __init__(self, process_image: ProcessImageUseCase, store: ImageStore) -> None:
        self._process_image = process_image
        self._store = store

    def execute(self, prefix: str, on_progress: ProgressCallback | None = None) -> ReprocessReport:
        keys = self._store.list_keys(prefix)
        report = ReprocessReport(total=len(keys))
        logger.info("starting reprocessing of %d images under %s", len(keys), prefix)

        for index, key in enumerate(keys, start=1):
            try:
                new_key = self._reprocess_one(key)
            except Exception as exc:  # noqa: BLE001
                report.failed += 1
                message = f"{key}: {exc}"
                report.errors.append(message)
                logger.error("reprocess failed for %s", message)
            else:
                report.processed += 1
                report.replaced[key] = new_key
                logger.info("reprocessed %s -> %s", key, new_key)

            if on_progress:
                on_progress(index, report.total, report)

        logger.info("reprocessing complete: %d processed, %d failed", report.processed, report.failed)
        return report

    def _reprocess_one(self, key: str) -> str:
        original = self._store.get_bytes(key)
        result = self._process_image.execute(original)

        new_key = reprocessed_key(key, int(time.time() * 1000))
        self._store.put_bytes(new_key, result.data, "image/jpeg")

        try:
            self._store.delete_object(key)
        except Exception as exc:  # noqa: BLE001
            logger.warning("could not delete old image %s: %s", key, exc)
        return new_key
