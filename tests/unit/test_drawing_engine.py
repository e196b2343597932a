"""
Unit tests for comictranslator.text.drawing_engine font metrics.
"""
from types import SimpleNamespace

import pytest

from comictranslator.models import Rectangle
from comictranslator.text import drawing_engine
from comictranslator.text.drawing_engine import (FontResources,
                                                 HarfBuzzFontMetrics, LRUCache)
from comictranslator.text.layout_engine import layout_text


@pytest.fixture
def shaping_calls(monkeypatch):
    """Replace HarfBuzz shaping with 1 px per character per font size unit."""
    calls = []

    def fake_shape_line(text_line, hb_font):
        calls.append((text_line, hb_font))
        advance = len(text_line) * hb_font * drawing_engine.HB_26_6_SCALE_FACTOR
        return [], [SimpleNamespace(x_advance=advance)]

    monkeypatch.setattr(drawing_engine, "_make_hb_font", lambda face, size: size)
    monkeypatch.setattr(drawing_engine, "shape_line", fake_shape_line)
    return calls


def _metrics(cache_size):
    fonts = FontResources(path="font.ttf", data=b"", typeface=None, hb_face=None)
    metrics = HarfBuzzFontMetrics(fonts, width_cache_size=cache_size)
    # Vertical metrics come from Skia; fixed values keep layout independent of it
    metrics.line_height = lambda font_size: font_size * 1.2
    metrics.ascent = lambda font_size: font_size * 0.8
    return metrics


class TestLRUCache:
    """Tests for the bounded cache."""

    def test_evicts_least_recently_used(self):
        """Test the oldest untouched entry goes first once full."""
        cache = LRUCache(max_size=2)
        cache.put("a", 1)
        cache.put("b", 2)
        assert cache.get("a") == 1

        cache.put("c", 3)

        assert "a" in cache
        assert "b" not in cache
        assert len(cache) == 2

    def test_update_does_not_grow(self):
        cache = LRUCache(max_size=2)
        cache.put("a", 1)
        cache.put("a", 5)

        assert len(cache) == 1
        assert cache.get("a") == 5


class TestHarfBuzzFontMetrics:
    """Tests for width measurement and its cache."""

    def test_width_from_shaping(self, shaping_calls):
        """Test the 26.6 advances are converted to pixels and memoized."""
        metrics = _metrics(cache_size=16)

        assert metrics.text_width("abc", 10) == 30.0
        assert metrics.text_width("abc", 10) == 30.0
        assert len(shaping_calls) == 1

    def test_cache_bounded_across_pages(self, shaping_calls):
        """Test laying out many distinct pages never grows the cache past its size."""
        metrics = _metrics(cache_size=64)
        region = Rectangle(0, 0, 120, 200)

        for page in range(50):
            words = " ".join(f"w{page}x{i}" for i in range(30))
            layout_text(words, [region], metrics, max_font_size=12, min_font_size=6)
            assert len(metrics._widths) <= 64

        assert len(shaping_calls) > 64
