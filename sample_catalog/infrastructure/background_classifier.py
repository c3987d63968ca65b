"""Decide whether a photo already sits on a white background.

Only the perimeter of a downscaled copy is inspected, so a dark subject in
the middle of the frame does not affect the verdict.
"""
from __future__ import annotations

import io
import logging

from PIL import Image

from sample_catalog.domain.models import BackgroundAssessment

logger = logging.getLogger("samples.classifier")

SAMPLE_SIZE = 100
CORNER_SIZE = 10
NEAR_WHITE_MIN = 240
WHITE_RATIO_THRESHOLD = 0.85
EDGE_ROWS = (0, 1, 2, SAMPLE_SIZE - 3, SAMPLE_SIZE - 2, SAMPLE_SIZE - 1)


def _is_near_white(pixel: tuple[int, int, int]) -> bool:
    r, g, b = pixel
    return r >= NEAR_WHITE_MIN and g >= NEAR_WHITE_MIN and b >= NEAR_WHITE_MIN


def _sample_points() -> list[tuple[int, int]]:
    far = SAMPLE_SIZE - CORNER_SIZE
    points: list[tuple[int, int]] = []
    for corner_x, corner_y in ((0, 0), (far, 0), (0, far), (far, far)):
        for dy in range(CORNER_SIZE):
            for dx in range(CORNER_SIZE):
                points.append((corner_x + dx, corner_y + dy))

    # Edge rows skip the corner columns already counted above.
    for row in EDGE_ROWS:
        for x in range(CORNER_SIZE, far):
            points.append((x, row))
    return points


SAMPLE_POINTS = tuple(_sample_points())


def assess_background(image_bytes: bytes) -> BackgroundAssessment:
    try:
        with Image.open(io.BytesIO(image_bytes)) as image:
            width, height = image.size
            if width == 0 or height == 0:
                return BackgroundAssessment(is_white=False, white_ratio=0.0)
            sample = image.convert("RGB").resize((SAMPLE_SIZE, SAMPLE_SIZE), Image.Resampling.LANCZOS)
    except (OSError, ValueError, SyntaxError, Image.DecompressionBombError) as exc:
        logger.warning("background check failed, assuming non-white: %s", exc)
        return BackgroundAssessment(is_white=False, white_ratio=0.0)

    pixels = sample.load()
    white = sum(1 for x, y in SAMPLE_POINTS if _is_near_white(pixels[x, y]))
    ratio = white / len(SAMPLE_POINTS)
    logger.info("white background check: %.1f%% white pixels", ratio * 100)
    return BackgroundAssessment(is_white=ratio > WHITE_RATIO_THRESHOLD, white_ratio=ratio)
