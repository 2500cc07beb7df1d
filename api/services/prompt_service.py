"""
Prompt templates for the fashion fusion workflow.

Prompts are sent verbatim to the image model. Geometry is stated several
times (JSON spec, hard requirements, self-check); the grid service still
normalizes every result.
"""
import json
from typing import Sequence


def _spec_json(name: str, spec: dict) -> str:
    return f"{name}={json.dumps(spec, separators=(',', ':'), ensure_ascii=False)}"


def _numbered(colors: Sequence[str], sep: str = "\n") -> str:
    return sep.join(f"{i + 1}) {color}" for i, color in enumerate(colors))


class FashionPrompts:
    """Static prompt builders, one per generation step."""

    UNIVERSAL_PROMPT = """
You are a professional fashion compositor.
You receive two images: [Image1]=person photo, [Image2]=a fashion item (hat, sunglasses, top, pants, dress, skirt, logo, shoes, bag, etc.).

Task:
1) From Image2, IDENTIFY the item type automatically (no user input).
2) Composite the item onto the person in Image1 using the correct rules for that type.
3) Keep the person's face, hair, body shape, pose, and background unchanged.
4) Match perspective, scale, lighting, color, and add soft realistic contact shadows.
5) Output exactly one photorealistic image (no extra text).

Placement rules:
- If HAT: place on head; align with head tilt; allow hair to overlap the brim where appropriate.
- If SUNGLASSES: align with the eyes using the interpupillary line; respect face curvature; keep eyelashes/eyebrows visible where natural.
- If TOP (shirt/sweater/jacket): replace the upper garment only; follow shoulder slope, neckline, sleeve length; keep hands and background intact.
- If PANTS (or SKIRT/DRESS): replace the lower garment only; fit waist/hips/legs naturally; preserve shoes and floor shadows unless the item itself is shoes.
- If SHOES: align with feet orientation and floor plane; maintain contact shadows.
- If LOGO/PRINT: warp to the fabric folds; look like it is printed/embroidered; do not modify the face or body.
- If BAG: place on shoulder/hand naturally with proper occlusion; keep arm/hand relationships realistic.
- Otherwise (unknown): overlay naturally onto the most plausible region without altering anatomy or background.

Extra:
- If Image2 has a plain white background, segment it cleanly before compositing.
- Avoid adding any text, watermarks, or borders yourself.
- Target size ≈ 1024×1024.
"""

    GARMENT_MASK_PROMPT = """
You receive one composite fashion photo of a person wearing a garment.
Return exactly ONE black-and-white MATTE MASK image the same size:
- White (255) = garment pixels ONLY
- Black (0)   = everything else
- Keep crisp edges with slight anti-aliasing; respect hair/hand occlusion.
- No text, no borders, no collage. Image output only.
"""

    @staticmethod
    def size_hint(width: int, height: int) -> str:
        return (
            f"Output resolution: EXACTLY {width}x{height} pixels. "
            "Match the aspect ratio and crop/extend internally as needed."
        )

    @staticmethod
    def composite(width: int, height: int) -> str:
        """
        Person + item composite prompt.

        Size and aspect directives come first since the model weighs the
        beginning of the prompt most.
        """
        aspect_str = f"{width}:{height}"
        aspect_decimal = f"{width / height:.6f}"
        return "\n".join(
            [
                f"SIZE_ENFORCEMENT: OUTPUT EXACTLY {width}x{height} pixels (original person aspect {aspect_str} = "
                f"{aspect_decimal}). THIS IS NON-SQUARE; DO NOT RETURN ANY SQUARE (1:1) SIZE (e.g. 1024x1024, "
                "1536x1536) AND DO NOT PAD / LETTERBOX / ADD BORDERS OR BARS.",
                _spec_json(
                    "OUTPUT_SPEC_JSON",
                    {
                        "width": width,
                        "height": height,
                        "aspect_ratio": aspect_str,
                        "aspect_decimal": float(aspect_decimal),
                        "forbid_square": True,
                        "strict": True,
                    },
                ),
                FashionPrompts.UNIVERSAL_PROMPT.strip(),
                FashionPrompts.size_hint(width, height),
                "Hard Requirements:",
                f"- Render EXACTLY {width}x{height}. Never internally settle on 1024x1024 or any 1:1 then upscale/pad.",
                "- Zero padding / letterboxing / solid or transparent bars.",
                "- If vertical area seems lacking, OUTPAINT background or garment continuation; never squarify subject.",
                "- Integrate the fashion item (Image2) once only (no duplicates).",
                "- Preserve face, hair, body proportions (no distortion to force aspect).",
                "- Natural occlusion, scale, lighting & soft contact shadows.",
                "- No extra text, watermarks, borders, frames.",
                "IF MODE=single_color_variant_cell: ABSOLUTE REQUIREMENT: Preserve person face, body, background, "
                "camera framing, global lighting 100% identical to the original composite; ONLY integrate recolored "
                "garment pixels. Do NOT alter any background pixel, skin tone, hair, hair style, or accessories. "
                "No pose change. Only the garment base diffuse color may change; no other region may shift.",
                f"Self-Check BEFORE returning: if (width!={width} OR height!={height} OR aspect!={aspect_decimal}) "
                "internally fix THEN return.",
                "Return only the composite image.",
            ]
        )

    @staticmethod
    def pose_grid_simple(base_width: int, base_height: int) -> str:
        """Pose grid prompt used by the main workflow (aspect-preserving wording)."""
        grid_w, grid_h = base_width * 3, base_height * 3
        example = f"{base_width}x{base_height} cell -> {grid_w}x{grid_h} grid"
        return "\n".join(
            [
                "Generate a 3x3 grid (9 cells) of DIFFERENT full or mid-body fashion poses.",
                "CRITICAL NON-SQUARE / ASPECT RATIO CONSTRAINTS:",
                f"- ORIGINAL single image aspect ratio MUST be preserved in EVERY cell: {base_width}:{base_height}.",
                f"- Each cell EXACT pixel size: {base_width}x{base_height} (no cropping, no padding to make square, no stretching).",
                f"- Overall grid resolution EXACT: {grid_w}x{grid_h} ({example}).",
                "- If original ratio is not 1:1 you MUST NOT coerce cells into squares. Do NOT add extra side bars to square it.",
                "- Reject (do not produce) any internal layout that squares or crops the content; instead keep full frame.",
                "CONSISTENCY:",
                "Same identity (face likeness, hair), body type, outfit design, fabric texture, colors, accessories, "
                "background style and lighting in ALL cells.",
                "VARIATION:",
                "Change ONLY the pose and subtle camera framing. Natural editorial fashion poses; no extreme distortions; no duplicates.",
                "QUALITY & GUTTERS:",
                "- Uniform minimal gutters between cells; no thick borders; no outer frame; no text/watermarks.",
                "OUTPUT:",
                "Return ONE PNG image only containing the 3x3 grid under these constraints.",
            ]
        )

    @staticmethod
    def color_grid_simple(colors: Sequence[str], base_width: int, base_height: int) -> str:
        """Color grid prompt used by the main workflow with the selected palette."""
        return (
            "You are a professional fashion compositor.\n\n"
            "Input: a composite fashion photo of a person already wearing the item.\n\n"
            "Task: Produce ONE 3x3 collage (9 panels) showing color variations of the GARMENT ONLY. "
            "Keep identity, pose, anatomy, background, lighting identical.\n\n"
            "STRICT LAYOUT / ASPECT RATIO CONSTRAINTS:\n"
            f"- Original single-frame aspect ratio: {base_width}:{base_height}.\n"
            f"- EACH panel MUST be EXACTLY {base_width}x{base_height} (no square-forcing, no cropping, "
            "no letterboxing that changes size).\n"
            f"- Full collage MUST be EXACTLY {base_width * 3}x{base_height * 3} (3 columns × 3 rows).\n"
            "- If original is non-square you MUST output a non-square collage; do NOT pad to a square and do NOT distort.\n\n"
            "Colors (top-left -> bottom-right):\n"
            f"{_numbered(colors, ', ')}\n\n"
            "RECOLOR RULES:\n"
            "- Recolor ONLY garment pixels per panel. Preserve shading, fabric texture, wrinkles, stitching, shadows, "
            "global lighting.\n"
            "- Background / skin / hair / accessories remain unchanged (bitwise identical where possible).\n"
            "- No added objects, patterns, or text.\n"
            "- Uniform minimal light gutter between panels; no outer frame.\n"
            "- If multi-piece outfit, recolor only the PRIMARY garment.\n\n"
            "PANEL COUNT (CRITICAL):\n"
            "- EXACTLY 9 panels (3 columns × 3 rows). NEVER 4 rows (12 panels).\n"
            "- If you begin producing more than 9, correct to 9 before returning.\n"
            "- Return ONE PNG only.\n"
        )

    @staticmethod
    def hires_pose() -> str:
        return "\n".join(
            [
                "Refine this single pose into a high-resolution photorealistic fashion image.",
                "Preserve: identity (face likeness, hair), outfit design & colors, fabric texture, accessories, "
                "background style, lighting mood.",
                "Keep the given pose composition. Improve sharpness, edge clarity (especially around limbs & garment "
                "edges), facial detail and fabric shading.",
                "Do NOT change colors, pattern layout, or introduce new objects. No text. Return one PNG image only.",
            ]
        )

    @staticmethod
    def item_color_grid(colors: Sequence[str], cell_width: int, cell_height: int) -> str:
        """Color variation grid of the item alone (no person)."""
        grid_w, grid_h = cell_width * 3, cell_height * 3
        return "\n".join(
            [
                _spec_json(
                    "ITEM_COLOR_GRID_JSON",
                    {
                        "cell_width": cell_width,
                        "cell_height": cell_height,
                        "grid_width": grid_w,
                        "grid_height": grid_h,
                        "cells": 9,
                        "columns": 3,
                        "rows": 3,
                    },
                ),
                "Task: Produce a 3x3 (9) color variation grid of ONLY the uploaded fashion item (no person).",
                "Hard Requirements:",
                f"- Each panel EXACT {cell_width}x{cell_height}; full grid EXACT {grid_w}x{grid_h}.",
                "- Keep geometry, silhouette, material shading, texture, specular highlights identical.",
                "- Recolor ONLY base diffuse color; NO new patterns / gradients / text / logos / extra props.",
                "ABSOLUTE ITEM COLOR REQUIREMENT: Keep geometry, silhouette, wrinkles, material texture, reflections, "
                "and background fixed; change ONLY the base color. No background pixel contamination (no color bleed).",
                "- Preserve transparency / background exactly (bitwise identical where possible).",
                "- 9 distinct colors (top-left to bottom-right follow palette order).",
                "- No padding bars, no aspect distortion, no outer frame.",
                "Palette (TL→BR):",
                _numbered(list(colors)[:9]),
                "Return ONE PNG only.",
            ]
        )

    @staticmethod
    def garment_mask(width: int, height: int) -> str:
        """Binary garment mask prompt (white = garment, black = everything else)."""
        return "\n".join(
            [
                _spec_json(
                    "MASK_SPEC_JSON",
                    {
                        "type": "binary_alpha",
                        "width": width,
                        "height": height,
                        "white": "garment",
                        "black": "non_garment",
                        "strict": True,
                    },
                ),
                "Task: Produce a STRICT binary segmentation mask of ONLY the fashion garment (white garment pixels, "
                "black for person skin, hair, face features, background, accessories, hands). "
                f"Size EXACT {width}x{height} px.",
                "Hard Requirements:",
                f"- Output EXACT resolution {width}x{height}.",
                "- PURE monochrome: garment = #FFFFFF, all else = #000000. No gray, no anti-alias, no soft edges.",
                "- Include ALL visible garment fabric: sleeves, collar, buttons (button metal surfaces should be BLACK "
                "unless they are integral cloth areas).",
                "- Exclude skin, hair, face, background, trees, sky, ground, shadows, hands, jewelry.",
                "- No text, no outlines, no color other than pure white / black.",
                "Edge Accuracy:",
                "- Follow garment silhouette tightly (≤1px deviation).",
                "- Avoid holes: fill interior garment areas fully unless true cutouts exist.",
                "Self-Check: if any pixel is not pure #000000 or #FFFFFF -> internally correct before returning.",
                "Return ONLY one PNG mask (no explanation).",
            ]
        )

    @staticmethod
    def single_color_variant_cell(width: int, height: int, index: int) -> str:
        """Composite prompt for one recolored item cell (cell-composite color grid)."""
        return f"{FashionPrompts.composite(width, height)}\nMODE=single_color_variant_cell index={index}"
