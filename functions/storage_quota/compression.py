"""
Image compression applied before upload.

Images are downscaled and re-encoded in their original format until they fit
the byte target of their kind.
"""

from __future__ import annotations

import io
import logging
from dataclasses import dataclass

from PIL import Image, ImageOps

from shared.types import ImageKind
from storage_quota.config import StorageLimits
from storage_quota.errors import UnsupportedImageError

logger = logging.getLogger(__name__)

# Content type -> (Pillow format, file extension)
SUPPORTED_IMAGE_TYPES = {
    "image/jpeg": ("JPEG", "jpg"),
    "image/png": ("PNG", "png"),
    "image/webp": ("WEBP", "webp"),
}


@dataclass(frozen=True)
class CompressionProfile:
    max_bytes: int
    max_dimension: int
    quality: int
    min_quality: int = 40
    quality_step: int = 10


PROFILE_PHOTO_PROFILE = CompressionProfile(
    max_bytes=300 * 1024, max_dimension=800, quality=85
)


def profile_for(kind: ImageKind, limits: StorageLimits) -> CompressionProfile:
    if kind == ImageKind.PROFILE_PHOTO:
        return PROFILE_PHOTO_PROFILE
    return CompressionProfile(
        max_bytes=limits.per_file_compressed_target, max_dimension=1920, quality=90
    )


def file_extension(content_type: str) -> str:
    if content_type not in SUPPORTED_IMAGE_TYPES:
        raise UnsupportedImageError(f"Unsupported image type: {content_type}")
    return SUPPORTED_IMAGE_TYPES[content_type][1]


def _encode(image: Image.Image, image_format: str, quality: int) -> bytes:
    buffer = io.BytesIO()
    if image_format == "PNG":
        image.save(buffer, format=image_format, optimize=True)
    else:
        image.save(buffer, format=image_format, quality=quality)
    return buffer.getvalue()


def compress_image(data: bytes, content_type: str, profile: CompressionProfile) -> bytes:
    """
    Returns bytes of the same media type, no larger than the input.

    Quality is lowered step by step until the output fits profile.max_bytes
    or the quality floor is reached. The original bytes are returned when
    re-encoding does not shrink them.
    """
    if content_type not in SUPPORTED_IMAGE_TYPES:
        raise UnsupportedImageError(f"Unsupported image type: {content_type}")
    image_format = SUPPORTED_IMAGE_TYPES[content_type][0]

    try:
        with Image.open(io.BytesIO(data)) as source:
            source.load()
            image = ImageOps.exif_transpose(source)
            image.thumbnail((profile.max_dimension, profile.max_dimension))
            if image_format == "JPEG" and image.mode not in ("RGB", "L"):
                image = image.convert("RGB")

            quality = profile.quality
            output = _encode(image, image_format, quality)
            # PNG is lossless, so quality has no effect on its size.
            while (
                image_format != "PNG"
                and len(output) > profile.max_bytes
                and quality > profile.min_quality
            ):
                quality = max(profile.min_quality, quality - profile.quality_step)
                output = _encode(image, image_format, quality)
    except (OSError, Image.DecompressionBombError) as e:
        raise UnsupportedImageError(f"Could not process image: {e}") from e

    if len(output) >= len(data):
        return data
    logger.info(
        "Compressed image from %d to %d bytes (%.1f%%)",
        len(data),
        len(output),
        (1 - len(output) / len(data)) * 100,
    )
    return output
