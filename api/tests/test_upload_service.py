"""
Tests for upload handling, payload limits and inline image optimization.
"""
import base64
import io
import os

import pytest
from fastapi import UploadFile
from PIL import Image
from starlette.datastructures import Headers

from conftest import solid_b64
from core.config import settings
from core.exceptions import DecodeError, PayloadTooLargeError
from services.grid_service import run_blocking
from services.upload_service import (
    OptimizeOptions,
    base_size_for,
    check_payload,
    fit_payload,
    inline_from_b64,
    inline_from_bytes,
    optimize_images,
    read_upload,
)
from utils.image_codec import clamp_long_edge, estimate_b64_bytes


def png_bytes(width, height, color=(10, 120, 200)):
    buffer = io.BytesIO()
    Image.new("RGB", (width, height), color).save(buffer, format="PNG")
    return buffer.getvalue()


def noisy_inline(width, height):
    """Incompressible PNG so optimization has something to do."""
    image = Image.frombytes("RGB", (width, height), os.urandom(width * height * 3))
    buffer = io.BytesIO()
    image.save(buffer, format="PNG")
    return inline_from_bytes(buffer.getvalue(), "image/png", "noise.png")


def make_upload(raw: bytes, content_type: str, filename="photo.png") -> UploadFile:
    return UploadFile(file=io.BytesIO(raw), filename=filename, headers=Headers({"content-type": content_type}))


# =============================================================================
# Uploads
# =============================================================================


@pytest.mark.asyncio
async def test_read_upload_reports_natural_size():
    image = await read_upload(make_upload(png_bytes(320, 480), "image/png"))

    assert (image.width, image.height) == (320, 480)
    assert image.mime_type == "image/png"
    assert image.filename == "photo.png"
    assert base64.b64decode(image.data_b64) == png_bytes(320, 480)


@pytest.mark.asyncio
async def test_read_upload_decodes_in_executor(monkeypatch):
    offloaded = []

    async def recording_run_blocking(func, *args, **kwargs):
        offloaded.append(func)
        return await run_blocking(func, *args, **kwargs)

    monkeypatch.setattr("services.upload_service.run_blocking", recording_run_blocking)

    await read_upload(make_upload(png_bytes(32, 32), "image/png"))

    assert offloaded == [inline_from_bytes]


@pytest.mark.asyncio
async def test_read_upload_rejects_non_images():
    with pytest.raises(DecodeError):
        await read_upload(make_upload(b"%PDF-1.4", "application/pdf", "doc.pdf"))


@pytest.mark.asyncio
async def test_read_upload_rejects_oversized_files():
    with pytest.raises(PayloadTooLargeError):
        await read_upload(make_upload(png_bytes(64, 64), "image/png"), max_bytes=10)


@pytest.mark.asyncio
async def test_read_upload_rejects_corrupt_image():
    with pytest.raises(DecodeError):
        await read_upload(make_upload(b"not really a png", "image/png"))


def test_inline_from_b64_accepts_data_url():
    image = inline_from_b64(f"data:image/png;base64,{solid_b64(30, 20)}")

    assert (image.width, image.height) == (30, 20)
    assert not image.data_b64.startswith("data:")


def test_base_size_clamps_long_edge():
    assert base_size_for(inline_from_bytes(png_bytes(400, 300), "image/png")) == (400, 300)
    assert base_size_for(inline_from_bytes(png_bytes(400, 300), "image/png"), max_long_edge=200) == (200, 150)


@pytest.mark.parametrize(
    "size, expected",
    [((1000, 800), (1000, 800, 1.0)), ((4096, 3072), (2048, 1536, 0.5)), ((2049, 1), (2048, 1, 2048 / 2049))],
)
def test_clamp_long_edge(size, expected):
    assert clamp_long_edge(*size, max_long=2048) == expected


# =============================================================================
# Payload limit
# =============================================================================


def test_check_payload_sums_decoded_sizes():
    images = [solid_b64(10, 10), f"data:image/png;base64,{solid_b64(20, 20)}"]
    total = check_payload(images, limit_bytes=10_000)
    assert total == sum(estimate_b64_bytes(i) for i in images)


def test_check_payload_over_limit():
    with pytest.raises(PayloadTooLargeError) as exc_info:
        check_payload(["A" * 4000], limit_bytes=1000)

    assert exc_info.value.total_bytes == 3000
    assert exc_info.value.limit_bytes == 1000


# =============================================================================
# Optimization
# =============================================================================


def test_images_under_target_are_untouched():
    image = inline_from_bytes(png_bytes(50, 50), "image/png")
    summary = optimize_images([image], OptimizeOptions(target_total_bytes=10_000_000))

    assert summary.hit_target
    assert summary.files[0].optimized is image
    assert summary.reduced_percent == 0.0


def test_oversized_images_are_reencoded():
    images = [noisy_inline(256, 256), noisy_inline(256, 256)]
    total = sum(i.size_bytes for i in images)

    summary = optimize_images(images, OptimizeOptions(target_total_bytes=total // 4, format="JPEG"))

    assert summary.total_after < summary.total_before
    assert summary.reduced_percent > 0
    for result in summary.files:
        assert result.optimized.mime_type == "image/jpeg"
        assert result.after_bytes == result.optimized.size_bytes


def test_undecodable_image_is_kept():
    broken = inline_from_bytes(png_bytes(8, 8), "image/png")
    broken.data_b64 = base64.b64encode(b"garbage").decode()
    broken.size_bytes = 5000

    summary = optimize_images([broken], OptimizeOptions(target_total_bytes=100))

    assert summary.files[0].optimized is broken
    assert not summary.hit_target


# =============================================================================
# Fitting the inline payload
# =============================================================================


@pytest.mark.asyncio
async def test_fit_payload_under_limit_is_untouched():
    images = [inline_from_bytes(png_bytes(50, 50), "image/png"), inline_from_bytes(png_bytes(20, 20), "image/png")]

    fitted = await fit_payload(images, limit_bytes=1_000_000)

    assert fitted[0] is images[0] and fitted[1] is images[1]


@pytest.mark.asyncio
async def test_fit_payload_reencodes_over_limit():
    images = [noisy_inline(256, 256), inline_from_bytes(png_bytes(64, 64), "image/png")]
    total = sum(image.size_bytes for image in images)

    fitted = await fit_payload(images, limit_bytes=total // 2)

    assert len(fitted) == 2
    assert fitted[0].mime_type == "image/webp"
    assert sum(image.size_bytes for image in fitted) <= total // 2
    check_payload([image.data_b64 for image in fitted], limit_bytes=total // 2)


@pytest.mark.asyncio
async def test_fit_payload_respects_auto_optimize_switch(monkeypatch):
    monkeypatch.setattr(settings, "payload_auto_optimize", False)
    images = [noisy_inline(128, 128)]

    fitted = await fit_payload(images, limit_bytes=1000)

    assert fitted == images
