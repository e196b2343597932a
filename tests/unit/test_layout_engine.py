"""
Unit tests for comictranslator.text.layout_engine module.
"""
import pytest

from comictranslator.models import Rectangle
from comictranslator.text.layout_engine import describe_overflow, layout_text


def _words(layout):
    return " ".join(line.text for line in layout.lines).split()


class TestLayoutText:
    """Tests for the descending font size search."""

    def test_picks_largest_fitting_size(self, fake_metrics):
        """Test 'hello there' fits a 60x20 region at size 12 but not above."""
        layout = layout_text("hello there", [Rectangle(0, 0, 60, 20)], fake_metrics)

        assert layout.fits
        assert layout.font_size == 12
        assert [line.text for line in layout.lines] == ["hello there"]

    def test_too_large_start_size_steps_down(self, fake_metrics):
        """Test a single attempt at size 40 does not fit."""
        layout = layout_text(
            "hello there",
            [Rectangle(0, 0, 60, 20)],
            fake_metrics,
            max_font_size=40,
            min_font_size=40,
        )

        assert not layout.fits
        assert layout.font_size == 40

    def test_words_preserved_in_order(self, fake_metrics):
        """Test rendered lines reconstruct the original word sequence."""
        text = "the quick brown fox jumps over the lazy dog again and again"

        layout = layout_text(
            text, [Rectangle(0, 0, 120, 200)], fake_metrics, max_font_size=30
        )

        assert layout.fits
        assert _words(layout) == text.split()
        assert len(layout.lines) > 1

    def test_lines_stay_inside_region(self, fake_metrics):
        """Test every line is narrower than its region and centered in it."""
        region = Rectangle(10, 20, 130, 220)

        layout = layout_text("one two three four five six", [region], fake_metrics)

        for line in layout.lines:
            assert line.width <= region.width
            assert line.x >= region.x1
            assert line.x + line.width <= region.x2
            left_gap = line.x - region.x1
            right_gap = region.x2 - (line.x + line.width)
            assert left_gap == pytest.approx(right_gap)

    def test_block_centered_vertically(self, fake_metrics):
        """Test the block of lines is centered in the region height."""
        region = Rectangle(0, 0, 100, 100)

        layout = layout_text("hi", [region], fake_metrics, max_font_size=10)

        line = layout.lines[0]
        assert line.y == pytest.approx((100 - layout.line_height) / 2)
        assert line.baseline == pytest.approx(line.y + 8)

    def test_regions_filled_top_to_bottom(self, fake_metrics):
        """Test regions are used in y order, not input order."""
        lower = Rectangle(0, 100, 40, 115)
        upper = Rectangle(0, 0, 40, 15)

        layout = layout_text(
            "alpha beta", [lower, upper], fake_metrics, max_font_size=12, min_font_size=12
        )

        assert layout.fits
        assert layout.regions[0].region == upper
        assert [line.text for line in layout.regions[0].lines] == ["alpha"]
        assert [line.text for line in layout.regions[1].lines] == ["beta"]

    def test_long_word_is_never_broken(self, fake_metrics):
        """Test a word wider than the region overflows instead of being split."""
        layout = layout_text(
            "a " + "x" * 40, [Rectangle(0, 0, 100, 100)], fake_metrics
        )

        assert not layout.fits
        assert layout.font_size == 8
        assert layout.overflow_words == ("x" * 40,)
        assert _words(layout) == ["a"]

    def test_overflow_keeps_word_order(self, fake_metrics):
        """Test fitted words and overflow words together give back the text."""
        text = " ".join(f"word{i}" for i in range(40))

        layout = layout_text(text, [Rectangle(0, 0, 50, 30)], fake_metrics)

        assert not layout.fits
        assert _words(layout) + list(layout.overflow_words) == text.split()

    def test_empty_text_fits(self, fake_metrics):
        """Test empty text fits at the largest size with no lines."""
        layout = layout_text("", [Rectangle(0, 0, 50, 50)], fake_metrics)

        assert layout.fits
        assert layout.font_size == 40
        assert layout.lines == []

    def test_no_regions_overflows(self, fake_metrics):
        """Test text without regions is reported, not raised."""
        layout = layout_text("hello", [], fake_metrics)

        assert not layout.fits
        assert layout.overflow_words == ("hello",)

    def test_step_still_tries_min_size(self, fake_metrics):
        """Test the minimum size is attempted even when the step skips it."""
        layout = layout_text(
            "hello there",
            [Rectangle(0, 0, 60, 20)],
            fake_metrics,
            max_font_size=40,
            min_font_size=12,
            step=5,
        )

        assert layout.fits
        assert layout.font_size == 12


class TestDescribeOverflow:
    """Tests for overflow records."""

    def test_overflow_record(self, fake_metrics):
        """Test the record names the text, regions, size and leftover words."""
        region = Rectangle(0, 0, 20, 10)
        layout = layout_text("too much text here", [region], fake_metrics)

        overflow = describe_overflow(layout)

        assert overflow.text == "too much text here"
        assert overflow.regions == (region,)
        assert overflow.font_size == 8
        assert overflow.overflow_words
