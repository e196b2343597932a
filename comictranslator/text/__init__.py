"""
Text processing and rendering modules for ComicTranslator.

This subpackage contains modules for:
- Text normalization and tokenization
- Layout engine for largest-fitting text placement
- Drawing engine using Skia and HarfBuzz
"""

from .drawing_engine import (FontResources, HarfBuzzFontMetrics,
                             SkiaTextRenderer, load_font_resources,
                             pil_to_skia_surface, shape_line,
                             skia_surface_to_pil)
from .layout_engine import (FontMetrics, LayoutOverflow, PlacedLine,
                            RegionLayout, TextLayout, describe_overflow,
                            layout_text)
from .text_processing import join_words, normalize_text, tokenize

__all__ = [
    "FontResources",
    "HarfBuzzFontMetrics",
    "SkiaTextRenderer",
    "load_font_resources",
    "pil_to_skia_surface",
    "shape_line",
    "skia_surface_to_pil",
    "FontMetrics",
    "LayoutOverflow",
    "PlacedLine",
    "RegionLayout",
    "TextLayout",
    "describe_overflow",
    "layout_text",
    "join_words",
    "normalize_text",
    "tokenize",
]
