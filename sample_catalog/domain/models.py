from __future__ import annotations

from dataclasses import dataclass, field


class UnprocessableImageError(ValueError):
    """Raised when input bytes cannot be decoded as an image at all."""


@dataclass(frozen=True)
class BackgroundAssessment:
    is_white: bool
    white_ratio: float


@dataclass(frozen=True)
class NormalizedImage:
    data: bytes
    width: int
    height: int
    # False when normalization failed and ``data`` is the untouched input.
    applied: bool


@dataclass(frozen=True)
class ProcessingResult:
    data: bytes
    was_background_removed: bool


@dataclass
class ReprocessReport:
    total: int = 0
    processed: int = 0
    failed: int = 0
    errors: list[str] = field(default_factory=list)
    replaced: dict[str, str] = field(default_factory=dict)

    def as_dict(self) -> dict:
        return {
            "total": self.total,
            "processed": self.processed,
            "failed": self.failed,
            "errors": list(self.errors),
            "replaced": dict(self.replaced),
        }
