from __future__ import annotations

import io
import logging
import math

from PIL import Image, ImageChops, ImageOps

from sample_catalog.domain.models import NormalizedImage

logger = logging.getLogger("samples.normalizer")

WHITE = (255, 255, 255)
TRIM_THRESHOLD = 10
PADDING_PERCENT = 0.10
JPEG_QUALITY = 90


def _flatten_on_white(image: Image.Image) -> Image.Image:
    if image.mode in ("RGBA", "LA") or (image.mode == "P" and "transparency" in image.info):
        rgba = image.convert("RGBA")
        background = Image.new("RGB", rgba.size, WHITE)
        background.paste(rgba, mask=rgba.getchannel("A"))
        return background
    return image.convert("RGB")


def trim_white(image: Image.Image, threshold: int = TRIM_THRESHOLD) -> Image.Image:
    """Crop to the box of pixels that differ from white by more than ``threshold``.

    Returns the image unchanged when no such pixel exists.
    """
    diff = ImageChops.difference(image, Image.new("RGB", image.size, WHITE))
    mask = diff.point(lambda value: 255 if value > threshold else 0)
    bbox = mask.getbbox()
    if not bbox:
        return image
    return image.crop(bbox)


def target_size(width: int, height: int) -> int:
    return math.ceil(max(width, height) * (1 + PADDING_PERCENT * 2))


def normalize_whitespace(image_bytes: bytes) -> NormalizedImage:
    try:
        with Image.open(io.BytesIO(image_bytes)) as image:
            original_width, original_height = image.size
            rgb = _flatten_on_white(image)

        trimmed = trim_white(rgb)
        size = target_size(*trimmed.size)
        squared = ImageOps.pad(trimmed, (size, size), method=Image.Resampling.LANCZOS, color=WHITE)

        output = io.BytesIO()
        squared.save(output, format="JPEG", quality=JPEG_QUALITY)
    except (OSError, ValueError, SyntaxError, MemoryError, Image.DecompressionBombError) as exc:
        logger.error("whitespace normalization failed, keeping original: %s", exc)
        return NormalizedImage(data=image_bytes, width=0, height=0, applied=False)

    logger.info(
        "image normalized: %dx%d -> %dx%d (trimmed %dx%d)",
        original_width,
        original_height,
        size,
        size,
        trimmed.width,
        trimmed.height,
    )
    return NormalizedImage(data=output.getvalue(), width=size, height=size, applied=True)


def normalize(image_bytes: bytes) -> bytes:
    return normalize_whitespace(image_bytes).data
