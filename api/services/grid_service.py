"""
Grid Service for slicing, assembling and size-normalizing image grids.

Generated pose/color grids are expected to be an R x C arrangement of
equally sized cells. This service:
1. Slices a grid image into independent cell images (row-major)
2. Assembles cell images back into one grid image
3. Forces any image to an exact pixel size (cover / contain fit)
4. Checks a putative grid against its geometric contract

Pure Python/PIL implementation - no AI calls.
"""
import asyncio
import contextvars
import functools
import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, List, Sequence, Tuple, Union

from PIL import Image

from core.exceptions import BoundsError, CountMismatchError, GeometryMismatchError
from utils.image_codec import ImageInput, decode_image, encode_png_b64, round_half_up

logger = logging.getLogger(__name__)


class FitMode(str, Enum):
    """Scaling strategy used to hit an exact target size."""

    COVER = "cover"  # fill the box, center-crop overflow
    CONTAIN = "contain"  # fit inside the box, transparent padding


@dataclass(frozen=True)
class GridSpec:
    """Rows, columns and cell dimensions a grid image must satisfy."""

    columns: int
    rows: int
    cell_width: int
    cell_height: int

    def __post_init__(self):
        for name in ("columns", "rows", "cell_width", "cell_height"):
            value = getattr(self, name)
            if not isinstance(value, int) or isinstance(value, bool) or value <= 0:
                raise ValueError(f"GridSpec.{name} must be a positive integer, got {value!r}")

    @property
    def grid_width(self) -> int:
        return self.columns * self.cell_width

    @property
    def grid_height(self) -> int:
        return self.rows * self.cell_height

    @property
    def cell_count(self) -> int:
        return self.columns * self.rows

    def cell_position(self, index: int) -> Tuple[int, int]:
        """(row, col) of a row-major cell index."""
        if not 0 <= index < self.cell_count:
            raise IndexError(f"Cell index {index} out of range 0..{self.cell_count - 1}")
        return index // self.columns, index % self.columns

    def cell_box(self, index: int) -> Tuple[int, int, int, int]:
        """(left, top, right, bottom) pixel box of a cell."""
        row, col = self.cell_position(index)
        left = col * self.cell_width
        top = row * self.cell_height
        return left, top, left + self.cell_width, top + self.cell_height


@dataclass
class Cell:
    """One cell cut out of a grid."""

    index: int
    row: int
    col: int
    image: str  # Base64 PNG
    width: int
    height: int


@dataclass
class GeometryReport:
    """Outcome of comparing an image's size with a grid contract."""

    expected_width: int
    expected_height: int
    actual_width: int
    actual_height: int
    detected_columns: int
    detected_rows: int
    tolerance: int
    ok: bool

    def describe(self) -> str:
        return (
            f"detected ~{self.detected_columns}x{self.detected_rows} px:{self.actual_width}x{self.actual_height}, "
            f"expected {self.expected_width}x{self.expected_height} (tolerance {self.tolerance}px)"
        )


CellInput = Union[ImageInput, Cell]


async def run_blocking(func: Callable[..., Any], *args: Any, **kwargs: Any) -> Any:
    """Run CPU-bound PIL work in the default executor, inside the caller's context."""
    loop = asyncio.get_running_loop()
    context = contextvars.copy_context()
    return await loop.run_in_executor(None, functools.partial(context.run, func, *args, **kwargs))


def slice_image(image: Image.Image, spec: GridSpec) -> List[Image.Image]:
    """
    Crop every cell of a grid, row-major.

    Raises:
        BoundsError: if the GridSpec's total extent exceeds the image
    """
    width, height = image.size
    if spec.grid_width > width or spec.grid_height > height:
        raise BoundsError(
            f"Grid {spec.grid_width}x{spec.grid_height} exceeds source image {width}x{height}",
            source_size=(width, height),
            required_size=(spec.grid_width, spec.grid_height),
        )
    return [image.crop(spec.cell_box(index)) for index in range(spec.cell_count)]


def assemble_images(images: Sequence[Image.Image], spec: GridSpec) -> Image.Image:
    """
    Paste images into a transparent canvas of exactly the grid size.

    Image i lands at row i // columns, col i % columns.
    """
    if len(images) != spec.cell_count:
        raise CountMismatchError(spec.cell_count, len(images))

    canvas = Image.new("RGBA", (spec.grid_width, spec.grid_height), (0, 0, 0, 0))
    for index, cell in enumerate(images):
        left, top, _, _ = spec.cell_box(index)
        if cell.size != (spec.cell_width, spec.cell_height):
            cell = cell.resize((spec.cell_width, spec.cell_height), Image.Resampling.LANCZOS)
        canvas.paste(cell.convert("RGBA"), (left, top))
    return canvas


def fit_image(image: Image.Image, target_width: int, target_height: int, fit: FitMode = FitMode.COVER) -> Image.Image:
    """
    Scale and center an image into an exact target_width x target_height canvas.

    Cover crops the overflow, contain leaves transparent padding.
    """
    if target_width <= 0 or target_height <= 0:
        raise ValueError(f"Target size must be positive, got {target_width}x{target_height}")

    source = image.convert("RGBA")
    src_w, src_h = source.size
    fit = FitMode(fit)

    if fit == FitMode.COVER:
        scale = max(target_width / src_w, target_height / src_h)
    else:
        scale = min(target_width / src_w, target_height / src_h)

    draw_w = max(1, round_half_up(src_w * scale))
    draw_h = max(1, round_half_up(src_h * scale))
    dx = round_half_up((target_width - draw_w) / 2)
    dy = round_half_up((target_height - draw_h) / 2)

    src_aspect = src_w / src_h
    target_aspect = target_width / target_height
    if abs(src_aspect - target_aspect) > 0.01:
        logger.info(
            f"[Grid] Aspect forced: src={src_aspect:.4f} target={target_aspect:.4f} fit={fit.value} "
            f"canvas={target_width}x{target_height} draw={draw_w}x{draw_h}@({dx},{dy})"
        )

    scaled = source.resize((draw_w, draw_h), Image.Resampling.LANCZOS) if (draw_w, draw_h) != (src_w, src_h) else source

    # Part of the scaled image that falls inside the canvas
    left = max(0, -dx)
    top = max(0, -dy)
    right = min(draw_w, target_width - dx)
    bottom = min(draw_h, target_height - dy)

    canvas = Image.new("RGBA", (target_width, target_height), (0, 0, 0, 0))
    canvas.paste(scaled.crop((left, top, right, bottom)), (max(dx, 0), max(dy, 0)))
    return canvas


def validate_geometry(width: int, height: int, spec: GridSpec, tolerance: int = 0) -> GeometryReport:
    """Compare an image size with a grid contract (no decoding)."""
    detected_columns = round_half_up(width / spec.cell_width)
    detected_rows = round_half_up(height / spec.cell_height)
    ok = (
        abs(width - spec.grid_width) <= tolerance
        and abs(height - spec.grid_height) <= tolerance
        and detected_columns == spec.columns
        and detected_rows == spec.rows
    )
    return GeometryReport(
        expected_width=spec.grid_width,
        expected_height=spec.grid_height,
        actual_width=width,
        actual_height=height,
        detected_columns=detected_columns,
        detected_rows=detected_rows,
        tolerance=tolerance,
        ok=ok,
    )


class GridService:
    """
    Async facade over the grid primitives.

    Decoding and encoding run in the default executor so request handlers
    are not blocked. Failures surface as typed errors and are never retried
    here.
    """

    def __init__(self):
        """Initialize grid service."""
        logger.info("Grid Service initialized")

    async def slice_grid(self, grid_image: ImageInput, spec: GridSpec) -> List[Cell]:
        """
        Split a grid image into independent cells.

        Args:
            grid_image: Base64 / data URL / bytes of the grid
            spec: Expected grid layout

        Returns:
            Cells in row-major order, each encoded as PNG base64

        Raises:
            DecodeError: source cannot be decoded
            BoundsError: spec exceeds source extents
        """
        start_time = time.time()
        image = await run_blocking(decode_image, grid_image)
        crops = slice_image(image, spec)
        encoded = await asyncio.gather(*(run_blocking(encode_png_b64, crop) for crop in crops))

        cells = []
        for index, data in enumerate(encoded):
            row, col = spec.cell_position(index)
            cells.append(
                Cell(index=index, row=row, col=col, image=data, width=spec.cell_width, height=spec.cell_height)
            )

        logger.info(
            f"[Grid] Sliced {image.width}x{image.height} into {len(cells)} cells "
            f"({spec.columns}x{spec.rows}) in {time.time() - start_time:.2f}s"
        )
        return cells

    async def assemble_grid(self, cells: Sequence[CellInput], spec: GridSpec) -> str:
        """
        Combine cells into one grid image.

        Cells are decoded concurrently; placement follows the position in
        `cells`, never decode completion order.

        Args:
            cells: Cell images in row-major order
            spec: Grid layout

        Returns:
            Base64 PNG of exactly spec.grid_width x spec.grid_height

        Raises:
            CountMismatchError: len(cells) != columns * rows (nothing is drawn)
            DecodeError: a cell cannot be decoded
        """
        if len(cells) != spec.cell_count:
            raise CountMismatchError(spec.cell_count, len(cells))

        sources = [cell.image if isinstance(cell, Cell) else cell for cell in cells]
        images = await asyncio.gather(*(run_blocking(decode_image, source) for source in sources))

        canvas = assemble_images(images, spec)
        result = await run_blocking(encode_png_b64, canvas)
        logger.info(f"[Grid] Assembled {len(images)} cells into {canvas.width}x{canvas.height}")
        return result

    async def enforce_size(
        self, image: ImageInput, target_width: int, target_height: int, fit: FitMode = FitMode.COVER
    ) -> str:
        """
        Produce an image of exactly target_width x target_height.

        Compensates for the generator not honoring requested output sizes.
        The only failure path is DecodeError.

        Returns:
            Base64 PNG
        """
        source = await run_blocking(decode_image, image)
        fitted = await run_blocking(fit_image, source, target_width, target_height, fit)
        return await run_blocking(encode_png_b64, fitted)

    def validate_grid_geometry(self, width: int, height: int, spec: GridSpec, tolerance: int = 0) -> GeometryReport:
        return validate_geometry(width, height, spec, tolerance)

    async def inspect_grid(self, grid_image: ImageInput, spec: GridSpec, tolerance: int = 0) -> GeometryReport:
        """Decode a grid image and report whether it honors the GridSpec."""
        image = await run_blocking(decode_image, grid_image)
        report = validate_geometry(image.width, image.height, spec, tolerance)
        if not report.ok:
            logger.warning(f"[Grid] Layout mismatch: {report.describe()}")
        return report

    async def ensure_grid_geometry(self, grid_image: ImageInput, spec: GridSpec, tolerance: int = 0) -> GeometryReport:
        """
        Like inspect_grid but raises on mismatch.

        Raises:
            GeometryMismatchError: carrying the GeometryReport
        """
        report = await self.inspect_grid(grid_image, spec, tolerance)
        if not report.ok:
            raise GeometryMismatchError(f"Grid layout mismatch: {report.describe()}", report=report)
        return report


# Global service instance
grid_service = GridService()
