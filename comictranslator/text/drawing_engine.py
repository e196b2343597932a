import os
import threading
from collections import OrderedDict
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Tuple

import skia
import uharfbuzz as hb
from PIL import Image

from comictranslator.text.layout_engine import TextLayout
from utils.exceptions import FontError, RenderingError
from utils.logging import log_message

# HarfBuzz uses 26.6 fixed-point format (64 units per pixel)
HB_26_6_SCALE_FACTOR = 64.0

# Shaped line widths kept per metrics instance
WIDTH_CACHE_SIZE = 4096


class LRUCache:
    """Simple LRU cache implementation to prevent unbounded memory growth."""

    def __init__(self, max_size: int = 100):
        self.max_size = max_size
        self.cache = OrderedDict()

    def get(self, key):
        if key in self.cache:
            # Move to end (most recently used)
            self.cache.move_to_end(key)
            return self.cache[key]
        return None

    def put(self, key, value):
        if key in self.cache:
            self.cache.move_to_end(key)
        elif len(self.cache) >= self.max_size:
            # Remove least recently used (first item)
            self.cache.popitem(last=False)
        self.cache[key] = value

    def __contains__(self, key):
        return key in self.cache

    def __len__(self):
        return len(self.cache)


@dataclass(frozen=True)
class FontResources:
    path: str
    data: bytes
    typeface: skia.Typeface
    hb_face: hb.Face


def load_font_resources(font_path: str) -> FontResources:
    """
    Loads font data, Skia Typeface and HarfBuzz Face for one font file.

    Raises:
        FontError: If the file cannot be read or Skia/HarfBuzz fail to load it
    """
    try:
        with open(font_path, "rb") as f:
            font_data = f.read()
    except OSError as e:
        raise FontError(f"Failed to read font file: {font_path}") from e

    typeface = skia.Typeface.MakeFromData(skia.Data.MakeWithCopy(font_data))
    if typeface is None:
        log_message(
            f"Skia typeface load failed: {os.path.basename(font_path)}",
            always_print=True,
        )
        raise FontError(f"Failed to create Skia typeface from font: {font_path}")

    try:
        hb_face = hb.Face(font_data)
    except Exception as e:
        log_message(
            f"HarfBuzz face load failed: {os.path.basename(font_path)}: {e}",
            always_print=True,
        )
        raise FontError(f"Failed to create HarfBuzz face from font: {font_path}") from e

    return FontResources(font_path, font_data, typeface, hb_face)


def shape_line(text_line: str, hb_font: hb.Font) -> Tuple[List, List]:
    """Shapes a line of text with HarfBuzz."""
    hb_buffer = hb.Buffer()
    hb_buffer.add_str(text_line)
    hb_buffer.guess_segment_properties()
    hb.shape(hb_font, hb_buffer, {"kern": True, "liga": False})
    return hb_buffer.glyph_infos, hb_buffer.glyph_positions


def _make_hb_font(hb_face: hb.Face, font_size: int) -> hb.Font:
    hb_font = hb.Font(hb_face)
    hb_font.ptem = float(font_size)
    # Standard HarfBuzz scaling: font_size * 64 (for 26.6 fixed point coordinates)
    hb_scale = int(font_size * HB_26_6_SCALE_FACTOR)
    hb_font.scale = (hb_scale, hb_scale)
    return hb_font


class HarfBuzzFontMetrics:
    """
    Font metrics for the layout engine.

    Widths come from HarfBuzz shaping (so kerning is accounted for); vertical
    metrics come from Skia. Line widths are memoized in an LRU cache of at
    most ``width_cache_size`` entries, so a long batch does not grow it.
    """

    def __init__(
        self,
        fonts: FontResources,
        line_spacing: float = 1.0,
        width_cache_size: int = WIDTH_CACHE_SIZE,
    ):
        self.fonts = fonts
        self.line_spacing = line_spacing
        self._hb_fonts: Dict[int, hb.Font] = {}
        self._skia_metrics: Dict[int, skia.FontMetrics] = {}
        self._widths = LRUCache(max_size=width_cache_size)
        self._lock = threading.Lock()

    def _hb_font(self, font_size: int) -> hb.Font:
        hb_font = self._hb_fonts.get(font_size)
        if hb_font is None:
            hb_font = _make_hb_font(self.fonts.hb_face, font_size)
            self._hb_fonts[font_size] = hb_font
        return hb_font

    def _metrics(self, font_size: int) -> skia.FontMetrics:
        metrics = self._skia_metrics.get(font_size)
        if metrics is None:
            metrics = skia.Font(self.fonts.typeface, font_size).getMetrics()
            self._skia_metrics[font_size] = metrics
        return metrics

    def text_width(self, text: str, font_size: int) -> float:
        key = (text, font_size)
        with self._lock:
            width = self._widths.get(key)
            if width is None:
                _, positions = shape_line(text, self._hb_font(font_size))
                width = sum(pos.x_advance for pos in positions) / HB_26_6_SCALE_FACTOR
                self._widths.put(key, width)
        return width

    def line_height(self, font_size: int) -> float:
        with self._lock:
            metrics = self._metrics(font_size)
        height = -metrics.fAscent + metrics.fDescent + metrics.fLeading
        if height <= 0:
            height = font_size * 1.2
        return height * self.line_spacing

    def ascent(self, font_size: int) -> float:
        with self._lock:
            metrics = self._metrics(font_size)
        return -metrics.fAscent


def pil_to_skia_surface(pil_image: Image.Image) -> skia.Surface:
    """Converts a PIL image to a Skia Surface.

    Raises:
        RenderingError: If conversion fails
    """
    try:
        if pil_image.mode != "RGBA":
            pil_image = pil_image.convert("RGBA")
        skia_image = skia.Image.frombytes(
            pil_image.tobytes(), pil_image.size, skia.kRGBA_8888_ColorType
        )
        if skia_image is None:
            raise RenderingError("Failed to create Skia image from PIL")
        surface = skia.Surface(pil_image.width, pil_image.height)
        with surface as canvas:
            canvas.drawImage(skia_image, 0, 0)
        return surface
    except Exception as e:
        log_message(f"PIL to Skia conversion error: {e}", always_print=True)
        raise RenderingError("PIL to Skia conversion failed") from e


def skia_surface_to_pil(surface: skia.Surface) -> Image.Image:
    """Converts a Skia Surface back to a PIL image.

    Raises:
        RenderingError: If conversion fails
    """
    try:
        skia_image: Optional[skia.Image] = surface.makeImageSnapshot()
        if skia_image is None:
            raise RenderingError("Failed to create Skia image snapshot")
        skia_image = skia_image.convert(
            alphaType=skia.kUnpremul_AlphaType, colorType=skia.kRGBA_8888_ColorType
        )
        return Image.fromarray(skia_image)
    except Exception as e:
        log_message(f"Skia to PIL conversion error: {e}", always_print=True)
        raise RenderingError("Skia to PIL conversion failed") from e


class SkiaTextRenderer:
    """
    Draws finished text layouts onto a page.

    This is a "dumb" renderer: every position comes from the layout engine, it
    only shapes each line and draws the glyph run at its baseline.
    """

    def __init__(
        self,
        fonts: FontResources,
        metrics: HarfBuzzFontMetrics,
        text_color: Tuple[int, ...] = (0, 0, 0),
        outline_width: float = 0.0,
        verbose: bool = False,
    ):
        self.fonts = fonts
        self.metrics = metrics
        self.text_color = skia.Color(*text_color)
        self.outline_width = outline_width
        self.verbose = verbose

    def _paints(self) -> Tuple[skia.Paint, Optional[skia.Paint]]:
        paint = skia.Paint(AntiAlias=True, Color=self.text_color)
        outline_paint = None
        if self.outline_width > 0:
            # Use opposite color for outline to ensure visibility
            outline_color = (
                skia.ColorWHITE
                if self.text_color == skia.ColorBLACK
                else skia.ColorBLACK
            )
            outline_paint = skia.Paint(
                AntiAlias=True,
                Color=outline_color,
                Style=skia.Paint.kStroke_Style,
                StrokeWidth=self.outline_width,
            )
        return paint, outline_paint

    def _draw_line(self, canvas, text, x, baseline, font_size, paint, outline_paint):
        hb_font = _make_hb_font(self.fonts.hb_face, font_size)
        infos, positions = shape_line(text, hb_font)
        if not infos:
            log_message(f"No glyphs for line '{text}'", verbose=self.verbose)
            return

        glyph_ids = [info.codepoint for info in infos]
        points = []
        cursor_x = 0.0
        for pos in positions:
            glyph_x = x + cursor_x + pos.x_offset / HB_26_6_SCALE_FACTOR
            glyph_y = baseline - pos.y_offset / HB_26_6_SCALE_FACTOR
            points.append(skia.Point(glyph_x, glyph_y))
            cursor_x += pos.x_advance / HB_26_6_SCALE_FACTOR

        builder = skia.TextBlobBuilder()
        builder.allocRunPos(skia.Font(self.fonts.typeface, font_size), glyph_ids, points)
        text_blob = builder.make()
        if text_blob is None:
            log_message(f"TextBlob build failed for '{text}'", verbose=self.verbose)
            return
        if outline_paint:
            canvas.drawTextBlob(text_blob, 0, 0, outline_paint)
        canvas.drawTextBlob(text_blob, 0, 0, paint)

    def draw(self, image: Image.Image, layouts: Sequence[TextLayout]) -> Image.Image:
        """
        Draw every line of ``layouts`` onto a copy of ``image``.

        Raises:
            RenderingError: If Skia conversion or drawing fails
        """
        if not any(layout.lines for layout in layouts):
            return image.copy()

        surface = pil_to_skia_surface(image)
        paint, outline_paint = self._paints()
        try:
            with surface as canvas:
                for layout in layouts:
                    for line in layout.lines:
                        self._draw_line(
                            canvas,
                            line.text,
                            line.x,
                            line.baseline,
                            layout.font_size,
                            paint,
                            outline_paint,
                        )
        except Exception as e:
            log_message(f"Drawing failed: {e}", always_print=True)
            raise RenderingError(f"Text drawing failed: {e}") from e

        rendered = skia_surface_to_pil(surface)
        return rendered.convert(image.mode) if image.mode != "RGBA" else rendered
