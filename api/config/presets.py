"""
Edit presets: reusable prompt templates for single-image edits.

Each preset has default variables that callers may override, e.g.
    render_preset("add_item_hat", {"item": "a straw boater hat"})
"""
from typing import Dict, Optional

KEEP_COMMON = """
Must follow:
- Do not change the face, hair, body shape, pose or background in any way
- Handle perspective, scale and natural occlusion correctly (hair and arms in front/behind)
- Match color temperature, exposure and noise to the person; add soft shadows at contact points
- Output a single photographic image only. Do not add text or watermarks
- Target resolution about 1024x1024"""

PRESETS = {
    "add_item_hat": {
        "label": "Add/remove element (put on a hat)",
        "kind": "add_remove",
        "defaults": {"item": "a black felt fedora"},
        "template": (
            "\nNaturally add {item} to the person in the provided image. Place it following the tilt of the head,\n"
            "letting the bangs overlap the brim where appropriate." + KEEP_COMMON
        ),
    },
    "semantic_mask_top": {
        "label": "Semantic inpaint (replace the upper garment)",
        "kind": "semantic_mask",
        "defaults": {"target": "the upper-body garment", "new_item": "a white casual shirt"},
        "template": (
            "\nReplace only {target} in the provided image with {new_item}.\n"
            "Match sleeve length, shoulder line and collar shape; do not change the hands or background." + KEEP_COMMON
        ),
    },
    "style_transfer_fabric": {
        "label": "Style/texture transfer (apply fabric)",
        "kind": "style_transfer",
        "defaults": {"region": "the jacket", "style_src": "the fabric in the second image"},
        "template": (
            "\nRebuild {region} of the person photo in the first image with the texture/pattern of {style_src}.\n"
            "Keep the original shape and drape; transfer only fabric detail and tone." + KEEP_COMMON
        ),
    },
    "multi_image_dress_on_person": {
        "label": "Advanced composite (dress the person in another image's garment)",
        "kind": "multi_image",
        "defaults": {"who": "the woman in the first image", "item_src": "the blue floral dress in the second image"},
        "template": (
            "\nAs a professional e-commerce product photo, generate one full-body photo of {who} wearing {item_src}.\n"
            "Match lighting, color and shadows to the person's outdoor environment. Hem and waist fit naturally."
            + KEEP_COMMON
        ),
    },
    "hi_fidelity_logo": {
        "label": "High-fidelity preservation (logo placement)",
        "kind": "hi_fidelity",
        "defaults": {"logo": "the logo in the second image", "region": "the chest of the black T-shirt in the first image"},
        "template": (
            "\nPlace {logo} naturally on {region}. Deform it along the fabric wrinkles and\n"
            "reproduce ink absorption, sheen and fine bleed. The person's face, eyes and hair stay completely unchanged."
            + KEEP_COMMON
        ),
    },
}


def render_preset(preset_id: str, variables: Optional[Dict[str, str]] = None) -> str:
    """
    Fill a preset template.

    Raises:
        KeyError: unknown preset id
    """
    preset = PRESETS[preset_id]
    values = {**preset["defaults"], **(variables or {})}
    return preset["template"].format(**values)
