"""
Upload and inline-payload helpers.

Uploads become InlineImage objects (base64 + natural size). Before images are
sent inline to the model their combined size is checked, and optionally
reduced by re-encoding/downscaling.
"""
import base64
import io
import logging
import math
from dataclasses import dataclass, field
from typing import List, Optional, Sequence, Tuple

from fastapi import UploadFile
from PIL import Image

from core.config import settings
from core.exceptions import DecodeError, PayloadTooLargeError
from services.grid_service import run_blocking
from utils.image_codec import clamp_long_edge, decode_image, estimate_b64_bytes, round_half_up, strip_data_url

logger = logging.getLogger(__name__)

DEFAULT_QUALITIES = (0.85, 0.8, 0.75, 0.7, 0.65, 0.6)
MIN_SCALE = 0.15
SECOND_SHRINK_RATIO = 1.8


@dataclass
class InlineImage:
    """An uploaded image ready to be sent inline."""

    mime_type: str
    data_b64: str
    width: int
    height: int
    size_bytes: int
    filename: Optional[str] = None


@dataclass
class OptimizeOptions:
    target_total_bytes: int
    max_long_edge: int = 2048
    min_quality: float = 0.55
    qualities: Sequence[float] = DEFAULT_QUALITIES
    format: str = "WEBP"  # or "JPEG"


@dataclass
class OptimizedImage:
    original: InlineImage
    optimized: InlineImage  # may be the original
    before_bytes: int
    after_bytes: int
    downscaled: bool
    quality_used: float
    scale_used: float


@dataclass
class OptimizeSummary:
    files: List[OptimizedImage] = field(default_factory=list)
    total_before: int = 0
    total_after: int = 0
    reduced_percent: float = 0.0
    hit_target: bool = True


def inline_from_bytes(raw: bytes, mime_type: str, filename: Optional[str] = None) -> InlineImage:
    """Decode raw upload bytes just enough to learn the natural size."""
    width, height = decode_image(raw).size
    return InlineImage(
        mime_type=mime_type or "image/png",
        data_b64=base64.b64encode(raw).decode(),
        width=width,
        height=height,
        size_bytes=len(raw),
        filename=filename,
    )


def inline_from_b64(data: str, mime_type: str = "image/png") -> InlineImage:
    """InlineImage from base64 / data URL input (raises DecodeError)."""
    width, height = decode_image(data).size
    payload = strip_data_url(data)
    return InlineImage(
        mime_type=mime_type or "image/png",
        data_b64=payload,
        width=width,
        height=height,
        size_bytes=estimate_b64_bytes(payload),
    )


async def read_upload(file: UploadFile, max_bytes: Optional[int] = None) -> InlineImage:
    """
    Read an uploaded file into an InlineImage.

    Raises:
        DecodeError: not an image mime type, or undecodable
        PayloadTooLargeError: file larger than max_upload_bytes
    """
    max_bytes = max_bytes or settings.max_upload_bytes
    content_type = file.content_type or ""
    if not content_type.startswith(settings.allowed_image_prefix):
        raise DecodeError(f"File must be an image (got '{content_type or 'unknown'}')")

    contents = await file.read()
    if len(contents) > max_bytes:
        raise PayloadTooLargeError(len(contents), max_bytes)

    image = await run_blocking(inline_from_bytes, contents, content_type, file.filename)
    logger.info(
        f"[Upload] {file.filename}: {image.width}x{image.height} {content_type} ({len(contents) / 1024:.0f}KB)"
    )
    return image


def base_size_for(person: InlineImage, max_long_edge: Optional[int] = None) -> Tuple[int, int]:
    """Base size every output is normalized to: person size clamped to the long-edge limit."""
    width, height, _ = clamp_long_edge(person.width, person.height, max_long_edge or settings.max_long_edge)
    return width, height


def check_payload(images_b64: Sequence[str], limit_bytes: Optional[int] = None) -> int:
    """
    Estimate the combined decoded size of inline images.

    Returns:
        Estimated total bytes

    Raises:
        PayloadTooLargeError: total exceeds the limit
    """
    limit_bytes = limit_bytes or settings.max_payload_bytes
    total = sum(estimate_b64_bytes(data) for data in images_b64)
    if total > limit_bytes:
        raise PayloadTooLargeError(total, limit_bytes)
    return total


def _encode(image: Image.Image, fmt: str, quality: float) -> bytes:
    buffer = io.BytesIO()
    if fmt == "JPEG" and image.mode not in ("RGB", "L"):
        image = image.convert("RGB")
    image.save(buffer, format=fmt, quality=int(round(quality * 100)))
    return buffer.getvalue()


def _unchanged(image: InlineImage) -> OptimizedImage:
    return OptimizedImage(
        original=image,
        optimized=image,
        before_bytes=image.size_bytes,
        after_bytes=image.size_bytes,
        downscaled=False,
        quality_used=1.0,
        scale_used=1.0,
    )


def optimize_image(image: InlineImage, per_file_target: float, scale_suggest: float, options: OptimizeOptions) -> OptimizedImage:
    """Re-encode one image, keeping the smallest encoding tried."""
    try:
        source = decode_image(image.data_b64)
    except DecodeError as e:
        logger.warning(f"[Upload] Keeping original {image.filename}: {e}")
        return _unchanged(image)

    width, height = source.size
    scale = min(1.0, scale_suggest, options.max_long_edge / max(width, height))
    if scale <= 0:
        scale = 1.0
    if image.size_bytes > per_file_target * SECOND_SHRINK_RATIO:
        scale = min(scale, math.sqrt((per_file_target * 1.1) / image.size_bytes))
    scale = max(scale, MIN_SCALE)

    target_w = max(1, round_half_up(width * scale))
    target_h = max(1, round_half_up(height * scale))
    resized = source.resize((target_w, target_h), Image.Resampling.LANCZOS) if scale < 1 else source

    best_bytes: Optional[bytes] = None
    best_size = image.size_bytes
    used_quality = 1.0
    used_scale = 1.0
    for quality in options.qualities:
        quality = max(quality, options.min_quality)
        encoded = _encode(resized, options.format, quality)
        if len(encoded) < best_size:
            best_bytes, best_size = encoded, len(encoded)
            used_quality, used_scale = quality, scale
        if best_size <= per_file_target:
            break

    if best_bytes is None:
        return _unchanged(image)

    mime_type = f"image/{options.format.lower()}"
    optimized = InlineImage(
        mime_type=mime_type,
        data_b64=base64.b64encode(best_bytes).decode(),
        width=resized.width,
        height=resized.height,
        size_bytes=best_size,
        filename=image.filename,
    )
    return OptimizedImage(
        original=image,
        optimized=optimized,
        before_bytes=image.size_bytes,
        after_bytes=best_size,
        downscaled=used_scale < 0.999,
        quality_used=used_quality,
        scale_used=used_scale,
    )


def optimize_images(images: Sequence[InlineImage], options: OptimizeOptions) -> OptimizeSummary:
    """
    Bring the combined size of images under options.target_total_bytes.

    The target is shared between files in proportion to their original size.
    Files that cannot be decoded are kept as they are.
    """
    total_before = sum(image.size_bytes for image in images)
    if total_before <= options.target_total_bytes:
        return OptimizeSummary(
            files=[_unchanged(image) for image in images],
            total_before=total_before,
            total_after=total_before,
            reduced_percent=0.0,
            hit_target=True,
        )

    scale_suggest = min(1.0, math.sqrt(options.target_total_bytes / total_before))
    results = []
    for image in images:
        per_file_target = options.target_total_bytes * (image.size_bytes / total_before)
        results.append(optimize_image(image, per_file_target, scale_suggest, options))

    total_after = sum(result.after_bytes for result in results)
    summary = OptimizeSummary(
        files=results,
        total_before=total_before,
        total_after=total_after,
        reduced_percent=(1 - total_after / total_before) * 100 if total_before else 0.0,
        hit_target=total_after <= options.target_total_bytes,
    )
    logger.info(
        f"[Upload] Optimized {len(images)} images: {total_before / 1024:.0f}KB -> {total_after / 1024:.0f}KB "
        f"({summary.reduced_percent:.1f}% smaller, target hit={summary.hit_target})"
    )
    return summary


async def fit_payload(images: Sequence[InlineImage], limit_bytes: Optional[int] = None) -> List[InlineImage]:
    """
    Return images whose combined size fits the inline payload limit.

    Images already under the limit are returned as they are. Otherwise they
    are re-encoded with optimize_images (when payload_auto_optimize is on);
    the caller's check_payload still rejects a result that does not fit.
    """
    limit_bytes = limit_bytes or settings.max_payload_bytes
    total = sum(estimate_b64_bytes(image.data_b64) for image in images)
    if total <= limit_bytes or not settings.payload_auto_optimize:
        return list(images)

    logger.info(f"[Upload] Payload ~{total / 1024:.0f}KB over {limit_bytes / 1024:.0f}KB limit, optimizing")
    options = OptimizeOptions(target_total_bytes=limit_bytes, max_long_edge=settings.max_long_edge)
    summary = await run_blocking(optimize_images, images, options)
    return [result.optimized for result in summary.files]
