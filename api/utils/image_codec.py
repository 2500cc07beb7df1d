"""
Base64 / data URL <-> PIL helpers shared by the grid, recolor and fusion services.
"""
import base64
import binascii
import io
import logging
import math
from typing import Tuple, Union

from PIL import Image, ImageOps, UnidentifiedImageError

from core.exceptions import DecodeError

logger = logging.getLogger(__name__)

ImageInput = Union[str, bytes, Image.Image]


def strip_data_url(image_data: str) -> str:
    """Remove a data URL prefix if present."""
    if image_data.startswith("data:"):
        comma = image_data.find(",")
        if comma == -1:
            raise DecodeError("Malformed data URL: missing ',' separator")
        return image_data[comma + 1 :]
    return image_data


def decode_image(image_data: ImageInput) -> Image.Image:
    """
    Decode base64 / data URL / raw bytes into a fully loaded PIL image.

    EXIF orientation is applied so smartphone photos report their displayed size.

    Raises:
        DecodeError: if the data is not valid base64 or not a readable image
    """
    if isinstance(image_data, Image.Image):
        return image_data

    if isinstance(image_data, str):
        try:
            raw = base64.b64decode(strip_data_url(image_data).strip(), validate=False)
        except (binascii.Error, ValueError) as e:
            raise DecodeError(f"Invalid base64 image data: {e}") from e
    else:
        raw = image_data

    if not raw:
        raise DecodeError("Empty image data")

    try:
        image = Image.open(io.BytesIO(raw))
        image.load()
    except Image.DecompressionBombError as e:
        raise DecodeError(f"Image too large to decode: {e}") from e
    except (UnidentifiedImageError, OSError, SyntaxError, ValueError) as e:
        raise DecodeError(f"Cannot decode image: {e}") from e

    return ImageOps.exif_transpose(image)


def encode_png_b64(image: Image.Image) -> str:
    """Encode an image as lossless PNG base64 (no data URL prefix)."""
    buffer = io.BytesIO()
    image.save(buffer, format="PNG")
    return base64.b64encode(buffer.getvalue()).decode()


def to_data_url(image_b64: str, mime_type: str = "image/png") -> str:
    return f"data:{mime_type};base64,{strip_data_url(image_b64)}"


def image_size(image_data: ImageInput) -> Tuple[int, int]:
    """Natural (width, height) of an encoded image."""
    return decode_image(image_data).size


def round_half_up(value: float) -> int:
    """Round halves up (2.5 -> 3), unlike the builtin banker's rounding."""
    return math.floor(value + 0.5)


def clamp_long_edge(width: int, height: int, max_long: int = 2048) -> Tuple[int, int, float]:
    """
    Scale (width, height) down so the long edge fits max_long.

    Returns:
        (width, height, scale); scale is 1 when the size already fits
    """
    long_edge = max(width, height)
    if long_edge <= max_long:
        return width, height, 1.0
    scale = max_long / long_edge
    return round_half_up(width * scale), round_half_up(height * scale), scale


def estimate_b64_bytes(image_b64: str) -> int:
    """Decoded byte size of a base64 payload (ignores padding)."""
    return math.floor(len(strip_data_url(image_b64)) * 0.75)
