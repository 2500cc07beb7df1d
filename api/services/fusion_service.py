"""
Fashion fusion workflow: composite, pose grid, color grid, hi-res pose.

Every model output is normalized to the base size (the person image's size,
clamped to the long-edge limit) with the grid service. Grid outputs go
through a bounded generate-then-validate loop; a grid that never matches the
3x3 contract is returned as-is with accepted=False.
"""
import functools
import logging
from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

from config.palettes import CANONICAL_9
from core.config import settings
from core.exceptions import InvalidStateError
from services.acceptance_service import drift_predicate, geometry_predicate
from services.google_ai_service import InlineImagePart, google_ai_service
from services.grid_service import FitMode, GridSpec, grid_service
from services.local_recolor_service import local_recolor_service
from services.prompt_service import FashionPrompts
from services.retry_service import run_with_acceptance
from services.upload_service import InlineImage, check_payload, fit_payload
from utils.image_codec import round_half_up

logger = logging.getLogger(__name__)

HIRES_LARGE_BASE_EDGE = 1100


@dataclass
class GridResult:
    image: str  # Base64 PNG
    accepted: bool
    attempts: int
    width: int
    height: int
    reason: str = ""


@dataclass
class HiResResult:
    image: str
    index: int
    width: int
    height: int


def as_part(image) -> InlineImagePart:
    if isinstance(image, InlineImage):
        return InlineImagePart(data=image.data_b64, mime_type=image.mime_type)
    return InlineImagePart(data=image, mime_type="image/png")


def hires_target_size(base_width: int, base_height: int, max_long_edge: int = 2048) -> Tuple[int, int]:
    """Upscale x1.25 for large bases (long edge >= 1100), else x2, clamped to max_long_edge."""
    upscale = 1.25 if max(base_width, base_height) >= HIRES_LARGE_BASE_EDGE else 2
    target_w = round_half_up(base_width * upscale)
    target_h = round_half_up(base_height * upscale)
    long_edge = max(target_w, target_h)
    if long_edge > max_long_edge:
        scale = max_long_edge / long_edge
        target_w = round_half_up(target_w * scale)
        target_h = round_half_up(target_h * scale)
    return target_w, target_h


class FusionService:
    """Orchestrates model calls and grid normalization for one fusion session"""

    def __init__(self):
        self.columns = settings.grid_columns
        self.rows = settings.grid_rows
        logger.info("Fusion Service initialized")

    def grid_spec(self, base_width: int, base_height: int) -> GridSpec:
        return GridSpec(columns=self.columns, rows=self.rows, cell_width=base_width, cell_height=base_height)

    def _check_payload(self, parts: Sequence[InlineImagePart]) -> None:
        check_payload([part.data for part in parts])

    async def _generate(self, prompt: str, parts: Sequence[InlineImagePart], label: str) -> str:
        self._check_payload(parts)
        return await google_ai_service.generate_image(prompt, parts, label=label)

    async def compose(self, person: InlineImage, item: InlineImage, base_width: int, base_height: int) -> str:
        """
        Composite the item onto the person.

        Person and item are re-encoded first when together they exceed the
        inline payload limit.

        Returns:
            Base64 PNG of exactly base_width x base_height
        """
        person, item = await fit_payload([person, item])
        prompt = FashionPrompts.composite(base_width, base_height)
        raw = await self._generate(prompt, [as_part(person), as_part(item)], "composite")
        return await grid_service.enforce_size(raw, base_width, base_height, FitMode.COVER)

    async def _generate_grid(
        self, prompt: str, parts: Sequence[InlineImagePart], base_width: int, base_height: int, label: str
    ) -> GridResult:
        spec = self.grid_spec(base_width, base_height)
        accept = geometry_predicate(spec, settings.grid_size_tolerance_px)

        async def generate() -> str:
            return await self._generate(prompt, parts, label)

        outcome = await run_with_acceptance(generate, accept, settings.grid_max_attempts, label)
        if not outcome.accepted:
            report = await grid_service.inspect_grid(outcome.image, spec, settings.grid_size_tolerance_px)
            return GridResult(
                image=outcome.image,
                accepted=False,
                attempts=outcome.attempts,
                width=report.actual_width,
                height=report.actual_height,
                reason=outcome.reason,
            )

        normalized = await grid_service.enforce_size(outcome.image, spec.grid_width, spec.grid_height, FitMode.COVER)
        return GridResult(
            image=normalized,
            accepted=True,
            attempts=outcome.attempts,
            width=spec.grid_width,
            height=spec.grid_height,
        )

    async def pose_grid(
        self, composite: str, base_width: int, base_height: int, item: Optional[InlineImage] = None
    ) -> GridResult:
        """3x3 pose variations of the composite."""
        prompt = f"{FashionPrompts.pose_grid_simple(base_width, base_height)}\n" + FashionPrompts.size_hint(
            base_width * self.columns, base_height * self.rows
        )
        parts = [as_part(composite)]
        if item is not None:
            parts.append(as_part(item))
        return await self._generate_grid(prompt, parts, base_width, base_height, "pose_grid")

    async def color_grid(
        self,
        composite: str,
        colors: Sequence[str],
        base_width: int,
        base_height: int,
        item: Optional[InlineImage] = None,
    ) -> GridResult:
        """3x3 garment color variations of the composite, palette order top-left to bottom-right."""
        prompt = f"{FashionPrompts.color_grid_simple(colors, base_width, base_height)}\n" + FashionPrompts.size_hint(
            base_width * self.columns, base_height * self.rows
        )
        parts = [as_part(composite)]
        if item is not None:
            parts.append(as_part(item))
        return await self._generate_grid(prompt, parts, base_width, base_height, "color_grid")

    async def hires_pose(
        self, grid: str, composite: str, index: int, base_width: int, base_height: int
    ) -> HiResResult:
        """
        Re-render one pose grid cell at higher resolution.

        The cell crop is the pose reference, the composite keeps identity
        and outfit.

        Raises:
            InvalidStateError: index outside 0..8
            BoundsError: grid smaller than 3x3 base-size cells
        """
        spec = self.grid_spec(base_width, base_height)
        if not 0 <= index < spec.cell_count:
            raise InvalidStateError(f"Invalid cell index: {index}")

        target_w, target_h = hires_target_size(base_width, base_height, settings.max_long_edge)
        cells = await grid_service.slice_grid(grid, spec)
        prompt = f"{FashionPrompts.hires_pose()}\n{FashionPrompts.size_hint(target_w, target_h)}"

        raw = await self._generate(prompt, [as_part(cells[index].image), as_part(composite)], "hires_pose")
        image = await grid_service.enforce_size(raw, target_w, target_h, FitMode.COVER)
        logger.info(f"[Fusion] Hi-res pose cell {index} rendered at {target_w}x{target_h}")
        return HiResResult(image=image, index=index, width=target_w, height=target_h)

    async def cell_composite_color_grid(
        self,
        person: InlineImage,
        item: InlineImage,
        base_width: int,
        base_height: int,
        colors: Optional[Sequence[str]] = None,
        garment_mask: Optional[str] = None,
    ) -> str:
        """
        Color grid built cell by cell.

        1. Item-only color grid in one call, normalized and sliced
        2. Each recolored item cell composited onto the person (sequential)
        3. Composites assembled into one 3x3 grid

        With a garment mask, each cell composite goes through the acceptance
        loop: pixels outside the garment must stay within the drift policy
        of the person photo, or the cell is regenerated.
        """
        spec = self.grid_spec(base_width, base_height)
        palette = list(colors) if colors else [c["hex"] for c in CANONICAL_9]
        person, item = await fit_payload([person, item])

        item_prompt = FashionPrompts.item_color_grid(palette, base_width, base_height)
        item_grid = await self._generate(item_prompt, [as_part(item)], "item_color_grid")
        item_grid = await grid_service.enforce_size(item_grid, spec.grid_width, spec.grid_height, FitMode.COVER)
        item_cells = await grid_service.slice_grid(item_grid, spec)

        if garment_mask:
            reference = await grid_service.enforce_size(person.data_b64, base_width, base_height, FitMode.COVER)
            accept = drift_predicate(reference, garment_mask)
            max_attempts = settings.grid_max_attempts
        else:
            accept = None
            max_attempts = 1

        composites: List[str] = []
        for cell in item_cells:
            prompt = FashionPrompts.single_color_variant_cell(base_width, base_height, cell.index)
            parts = [as_part(person), as_part(cell.image)]
            label = f"cell_composite[{cell.index}]"
            if accept is None:
                raw = await self._generate(prompt, parts, label)
            else:
                outcome = await run_with_acceptance(
                    functools.partial(self._generate, prompt, parts, label), accept, max_attempts, label
                )
                raw = outcome.image
            composites.append(await grid_service.enforce_size(raw, base_width, base_height, FitMode.COVER))

        return await grid_service.assemble_grid(composites, spec)

    async def garment_mask(self, composite: str, width: int, height: int) -> str:
        """Binary garment mask of the composite, normalized to width x height."""
        prompt = f"{FashionPrompts.garment_mask(width, height)}\n{FashionPrompts.GARMENT_MASK_PROMPT.strip()}"
        raw = await self._generate(prompt, [as_part(composite)], "garment_mask")
        return await grid_service.enforce_size(raw, width, height, FitMode.COVER)

    async def local_color_grid(
        self,
        composite: str,
        mask: Optional[str],
        colors: Sequence[str],
        base_width: int,
        base_height: int,
        gap: int = 0,
    ) -> str:
        """Color grid without model calls: mask-based recolor of the composite."""
        return await local_recolor_service.build_local_color_grid(
            composite, mask, colors, base_width, base_height, gap=gap
        )


# Global service instance
fusion_service = FusionService()
