"""
Pytest configuration and fixtures for Fashion Fusion API tests.
"""
import base64
import io
import os

import pytest
from PIL import Image

from services.grid_service import GridSpec

# Row-major 3x3 test colors; cell i of a grid built from these is painted NINE_COLORS[i]
NINE_COLORS = [
    (255, 0, 0),
    (0, 255, 0),
    (0, 0, 255),
    (255, 255, 0),
    (255, 0, 255),
    (0, 255, 255),
    (128, 0, 0),
    (0, 128, 0),
    (0, 0, 128),
]


def to_b64(image: Image.Image, fmt: str = "PNG") -> str:
    """Encode a PIL image as base64 (no data URL prefix)."""
    buffer = io.BytesIO()
    image.save(buffer, format=fmt)
    return base64.b64encode(buffer.getvalue()).decode()


def from_b64(data: str) -> Image.Image:
    if data.startswith("data:"):
        data = data.split(",", 1)[1]
    image = Image.open(io.BytesIO(base64.b64decode(data)))
    image.load()
    return image


def solid_b64(width: int, height: int, color=(200, 200, 200)) -> str:
    return to_b64(Image.new("RGB", (width, height), color))


def noise_b64(width: int, height: int) -> str:
    """Incompressible PNG (random pixels)."""
    return to_b64(Image.frombytes("RGB", (width, height), os.urandom(width * height * 3)))


def grid_image(spec: GridSpec, colors=NINE_COLORS) -> Image.Image:
    """Grid whose cells are solid colors, row-major."""
    image = Image.new("RGB", (spec.grid_width, spec.grid_height))
    for index in range(spec.cell_count):
        left, top, right, bottom = spec.cell_box(index)
        image.paste(Image.new("RGB", (right - left, bottom - top), colors[index]), (left, top))
    return image


@pytest.fixture
def spec_3x3():
    """3x3 grid of 40x60 cells (120x180 total)."""
    return GridSpec(columns=3, rows=3, cell_width=40, cell_height=60)


@pytest.fixture
def nine_color_grid_b64(spec_3x3):
    return to_b64(grid_image(spec_3x3))


@pytest.fixture
def person_b64():
    """Portrait person photo stand-in (300x400)."""
    return solid_b64(300, 400, (180, 150, 120))


@pytest.fixture
def item_b64():
    return solid_b64(200, 200, (20, 40, 160))


@pytest.fixture
def garment_mask_b64():
    """Mask with the middle band (rows 20..39 of 60) white."""
    mask = Image.new("RGB", (40, 60), (0, 0, 0))
    mask.paste(Image.new("RGB", (40, 20), (255, 255, 255)), (0, 20))
    return to_b64(mask)
