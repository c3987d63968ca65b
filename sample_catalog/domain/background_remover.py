from __future__ import annotations

from abc import ABC, abstractmethod


class BackgroundRemover(ABC):
    @abstractmethod
    def remove(self, image_bytes: bytes) -> bytes | None:
        """Return image bytes with the background replaced by white, or None on failure."""
