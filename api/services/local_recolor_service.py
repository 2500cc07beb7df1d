"""
Local garment recoloring with a binary mask.

Used as a no-cost fallback/alternative to model-based color variation:
the garment mask (white = garment) selects the pixels whose hue is remapped,
everything else is left untouched.
"""
import logging
from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

import numpy as np
from PIL import Image, ImageColor

from config.palettes import NAMED_COLORS
from services.grid_service import run_blocking
from utils.image_codec import ImageInput, decode_image, encode_png_b64

logger = logging.getLogger(__name__)

# Rec. 601 luma weights used by the "color" blend mode
LUMA_WEIGHTS = np.array([0.3, 0.59, 0.11], dtype=np.float32)

MAX_VARIANTS = 9


@dataclass
class GutterOptions:
    """Layout of a grid assembled with gaps between cells."""

    columns: int
    rows: int
    cell_width: int
    cell_height: int
    gap: int = 0
    background: str = "#000000"

    @property
    def total_width(self) -> int:
        return self.cell_width * self.columns + self.gap * (self.columns + 1)

    @property
    def total_height(self) -> int:
        return self.cell_height * self.rows + self.gap * (self.rows + 1)


def parse_color(color: str) -> Tuple[int, int, int]:
    """
    Parse #rgb, #rrggbb, a palette color name or a CSS color name into an RGB triple.

    Raises:
        ValueError: unknown color
    """
    value = color.strip()
    value = NAMED_COLORS.get(value.lower(), value)
    if value.startswith("#") and len(value) == 4:
        return tuple(int(ch * 2, 16) for ch in value[1:])
    if value.startswith("#") and len(value) == 7:
        return int(value[1:3], 16), int(value[3:5], 16), int(value[5:7], 16)
    try:
        rgb = ImageColor.getrgb(value.replace(" ", ""))
    except ValueError as e:
        raise ValueError(f"Unknown color: {color}") from e
    return rgb[0], rgb[1], rgb[2]


def garment_mask_array(mask: Image.Image, size: Tuple[int, int], white_threshold: int = 220) -> np.ndarray:
    """Boolean HxW array, True where all mask channels exceed the threshold."""
    rgb = np.asarray(mask.convert("RGB").resize(size, Image.Resampling.NEAREST))
    return np.all(rgb > white_threshold, axis=-1)


def _lum(rgb: np.ndarray) -> np.ndarray:
    return rgb @ LUMA_WEIGHTS


def _clip_color(rgb: np.ndarray) -> np.ndarray:
    lum = _lum(rgb)[..., None]
    low = rgb.min(axis=-1, keepdims=True)
    high = rgb.max(axis=-1, keepdims=True)

    out = rgb.copy()
    below = (low < 0)[..., 0]
    if below.any():
        denom = np.maximum(lum - low, 1e-6)
        out = np.where(below[..., None], lum + (out - lum) * lum / denom, out)
    above = (high > 1)[..., 0]
    if above.any():
        denom = np.maximum(high - lum, 1e-6)
        out = np.where(above[..., None], lum + (out - lum) * (1 - lum) / denom, out)
    return np.clip(out, 0.0, 1.0)


def color_blend(base_rgb: np.ndarray, target: Tuple[int, int, int]) -> np.ndarray:
    """
    "color" blend: hue and saturation of the target, luminance of the base.

    base_rgb is float32 HxWx3 in 0..1; returns the same shape.
    """
    target_rgb = np.array(target, dtype=np.float32) / 255.0
    delta = _lum(base_rgb) - float(_lum(target_rgb))
    return _clip_color(target_rgb + delta[..., None])


def multiply_blend(base_rgb: np.ndarray, target: Tuple[int, int, int]) -> np.ndarray:
    return base_rgb * (np.array(target, dtype=np.float32) / 255.0)


def recolor_image(
    base: Image.Image,
    mask: Optional[Image.Image],
    color: str,
    width: int,
    height: int,
    mode: str = "color",
    white_threshold: int = 220,
) -> Image.Image:
    """Synchronous recolor; see LocalRecolorService.recolor_with_mask."""
    target = parse_color(color)
    canvas = base.convert("RGBA").resize((width, height), Image.Resampling.LANCZOS)
    if mask is None:
        return canvas

    region = garment_mask_array(mask, (width, height), white_threshold)
    if not region.any():
        logger.warning("[Recolor] Mask has no garment pixels; returning base unchanged")
        return canvas

    pixels = np.asarray(canvas).astype(np.float32) / 255.0
    rgb = pixels[..., :3]
    if mode == "multiply":
        blended = multiply_blend(rgb, target)
    else:
        blended = color_blend(rgb, target)

    rgb[region] = blended[region]
    out = np.concatenate([rgb, pixels[..., 3:]], axis=-1)
    return Image.fromarray(np.round(out * 255).astype(np.uint8), mode="RGBA")


def assemble_with_gutter(cells: Sequence[Optional[Image.Image]], options: GutterOptions) -> Image.Image:
    """Assemble cells with uniform gaps; missing cells leave the background visible."""
    canvas = Image.new("RGBA", (options.total_width, options.total_height), options.background)
    for row in range(options.rows):
        for col in range(options.columns):
            index = row * options.columns + col
            if index >= len(cells) or cells[index] is None:
                continue
            x = options.gap + col * (options.cell_width + options.gap)
            y = options.gap + row * (options.cell_height + options.gap)
            cell = cells[index].convert("RGBA").resize((options.cell_width, options.cell_height), Image.Resampling.LANCZOS)
            canvas.alpha_composite(cell, dest=(x, y))
    return canvas


class LocalRecolorService:
    """Service for mask-based garment recoloring without model calls."""

    def __init__(self, white_threshold: int = 220):
        self.white_threshold = white_threshold
        logger.info("Local Recolor Service initialized")

    async def recolor_with_mask(
        self,
        base: ImageInput,
        mask: Optional[ImageInput],
        color: str,
        width: int,
        height: int,
        mode: str = "color",
    ) -> str:
        """
        Recolor the garment region of a composite.

        Args:
            base: Composite image (person wearing garment)
            mask: Binary garment mask (white = garment) or None
            color: Target color (#rgb, #rrggbb or CSS name)
            width, height: Output size; base and mask are drawn at this size
            mode: "color" (keep luminance) or "multiply"

        Returns:
            Base64 PNG; the resized base when no mask is given

        Raises:
            ValueError: unknown color, also when no mask is given
        """
        base_image = await run_blocking(decode_image, base)
        mask_image = await run_blocking(decode_image, mask) if mask else None
        result = await run_blocking(
            recolor_image, base_image, mask_image, color, width, height, mode, self.white_threshold
        )
        return await run_blocking(encode_png_b64, result)

    async def build_variants(
        self, base: ImageInput, mask: Optional[ImageInput], colors: Sequence[str], width: int, height: int
    ) -> List[str]:
        """Recolor once per color (first 9), in order."""
        variants = []
        for color in list(colors)[:MAX_VARIANTS]:
            variants.append(await self.recolor_with_mask(base, mask, color, width, height))
        logger.info(f"[Recolor] Built {len(variants)} local variants at {width}x{height}")
        return variants

    async def assemble_grid(self, cells: Sequence[Optional[ImageInput]], options: GutterOptions) -> str:
        images = []
        for cell in cells:
            images.append(await run_blocking(decode_image, cell) if cell else None)
        canvas = await run_blocking(assemble_with_gutter, images, options)
        return await run_blocking(encode_png_b64, canvas)

    async def build_local_color_grid(
        self,
        base: ImageInput,
        mask: Optional[ImageInput],
        colors: Sequence[str],
        cell_width: int,
        cell_height: int,
        gap: int = 0,
        background: str = "#000000",
    ) -> str:
        """Nine local variants assembled into a 3x3 grid."""
        variants = await self.build_variants(base, mask, colors, cell_width, cell_height)
        options = GutterOptions(
            columns=3, rows=3, cell_width=cell_width, cell_height=cell_height, gap=gap, background=background
        )
        return await self.assemble_grid(variants, options)


# Global service instance
local_recolor_service = LocalRecolorService()
