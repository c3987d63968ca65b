from __future__ import annotations

import logging

import requests

from sample_catalog.config import settings
from sample_catalog.domain.background_remover import BackgroundRemover

logger = logging.getLogger("samples.remover")


class RemoveBgBackgroundRemover(BackgroundRemover):
    """Client for the remove.bg HTTP API.

    The service is asked to backfill the removed background with white so the
    result can go straight into whitespace normalization. Any failure yields
    ``None`` and is not retried.
    """

    def __init__(self, api_key: str | None, api_url: str, timeout_seconds: float = 30.0) -> None:
        self._api_key = api_key
        self._api_url = api_url
        self._timeout = timeout_seconds

    @property
    def configured(self) -> bool:
        return bool(self._api_key)

    def remove(self, image_bytes: bytes) -> bytes | None:
        if not self._api_key:
            logger.warning("remove.bg API key not configured")
            return None

        try:
            response = requests.post(
                self._api_url,
                headers={"X-Api-Key": self._api_key},
                files={"image_file": ("image.png", image_bytes)},
                data={"size": "auto", "bg_color": "white"},
                timeout=self._timeout,
            )
        except requests.Timeout:
            logger.error("remove.bg request timed out after %ss", self._timeout)
            return None
        except Exception as exc:  # noqa: BLE001
            logger.error("remove.bg request failed: %s", exc)
            return None

        if not response.ok:
            logger.error("remove.bg API error %s: %s", response.status_code, response.text[:200])
            return None

        logger.info("background removed via remove.bg (%d bytes)", len(response.content))
        return response.content


def build_background_remover() -> BackgroundRemover:
    return RemoveBgBackgroundRemover(
        api_key=settings.remove_bg_api_key,
        api_url=settings.remove_bg_api_url,
        timeout_seconds=settings.remove_bg_timeout_seconds,
    )
