"""
Garment color palettes for color-variation grids.

Palettes are ordered top-left to bottom-right (row-major), so color i lands in
cell i of a 3x3 grid.
"""

CLASSIC_9 = [
    "black", "white", "navy",
    "beige", "olive", "burgundy",
    "charcoal gray", "cobalt blue", "khaki",
]

PASTEL_9 = [
    "pastel pink", "pastel mint", "pastel lavender",
    "pastel yellow", "pastel peach", "pastel sky blue",
    "sage green", "powder blue", "cream white",
]

# Vivid palette the strict color-grid prompts force, regardless of the palette selected
CANONICAL_9 = [
    {"name": "Pure Red", "hex": "#FF0000"},
    {"name": "Pure Blue", "hex": "#0055FF"},
    {"name": "Pure Yellow", "hex": "#FFD700"},
    {"name": "Pure Green", "hex": "#00B140"},
    {"name": "Pure Purple", "hex": "#7A00FF"},
    {"name": "Pure Orange", "hex": "#FF7A00"},
    {"name": "Pure Black", "hex": "#000000"},
    {"name": "Pure White", "hex": "#FFFFFF"},
    {"name": "Neutral Mid Gray", "hex": "#808080"},
]

PALETTES = {
    "classic9": {"label": "Classic 9", "colors": CLASSIC_9},
    "pastel9": {"label": "Pastel 9", "colors": PASTEL_9},
}

DEFAULT_PALETTE_ID = "classic9"


def get_palette_colors(palette_id: str) -> list:
    """Colors of a palette; raises KeyError for unknown ids."""
    return list(PALETTES[palette_id]["colors"])


# Palette names that are not CSS color keywords
NAMED_COLORS = {
    "burgundy": "#800020",
    "charcoal gray": "#36454F",
    "cobalt blue": "#0047AB",
    "pastel pink": "#FFD1DC",
    "pastel mint": "#AAF0D1",
    "pastel lavender": "#D7C4F2",
    "pastel yellow": "#FDFD96",
    "pastel peach": "#FFDAB9",
    "pastel sky blue": "#A7D8F0",
    "sage green": "#9CAF88",
    "powder blue": "#B0E0E6",
    "cream white": "#FFFDD0",
}
