from __future__ import annotations

import logging
from typing import Callable

from sample_catalog.domain.background_remover import BackgroundRemover
from sample_catalog.domain.models import (
    BackgroundAssessment,
    NormalizedImage,
    ProcessingResult,
    UnprocessableImageError,
)
from sample_catalog.infrastructure.background_classifier import assess_background
from sample_catalog.infrastructure.image_validation import validate_image_bytes
from sample_catalog.infrastructure.whitespace_normalizer import normalize_whitespace

logger = logging.getLogger("samples.pipeline")


class ProcessImageUseCase:
    """Classify, optionally strip the background, then square-pad an uploaded photo.

    Only input that cannot be decoded or normalized raises (``UnprocessableImageError``);
    every later stage degrades to the best buffer it has.
    """

    def __init__(
        self,
        remover: BackgroundRemover,
        max_pixels: int,
        classify: Callable[[bytes], BackgroundAssessment] = assess_background,
        normalize: Callable[[bytes], NormalizedImage] = normalize_whitespace,
    ) -> None:
        self._remover = remover
        self._max_pixels = max_pixels
        self._classify = classify
        self._normalize = normalize

    def execute(self, image_bytes: bytes) -> ProcessingResult:
        width, height, fmt = validate_image_bytes(image_bytes, max_pixels=self._max_pixels)
        logger.info("processing %s image %dx%d", fmt, width, height)

        working = image_bytes
        removed = False

        assessment = self._classify(image_bytes)
        logger.info("background is white: %s (ratio %.3f)", assessment.is_white, assessment.white_ratio)

        if not assessment.is_white:
            result = self._remover.remove(image_bytes)
            if result is not None:
                working = result
                removed = True
            else:
                logger.warning("background removal failed, proceeding with original image")

        normalized = self._normalize(working)
        if not normalized.applied and removed:
            logger.warning("removed-background image could not be normalized, using original")
            removed = False
            normalized = self._normalize(image_bytes)
        if not normalized.applied:
            raise UnprocessableImageError("Image could not be normalized")

        return ProcessingResult(data=normalized.data, was_background_removed=removed)
