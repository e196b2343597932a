import math
from dataclasses import dataclass
from typing import List, Protocol, Sequence, Tuple

from comictranslator.models import Rectangle
from comictranslator.text.text_processing import tokenize
from utils.logging import log_message


class FontMetrics(Protocol):
    """Measures text for the layout engine; all values are in pixels."""

    def text_width(self, text: str, font_size: int) -> float: ...

    def line_height(self, font_size: int) -> float: ...

    def ascent(self, font_size: int) -> float: ...


@dataclass(frozen=True)
class PlacedLine:
    """One line of text with its final position.

    ``x``/``y`` are the top-left corner of the line box; ``baseline`` is the y
    coordinate glyphs are drawn on.
    """

    text: str
    x: float
    y: float
    width: float
    baseline: float


@dataclass(frozen=True)
class RegionLayout:
    region: Rectangle
    lines: Tuple[PlacedLine, ...]


@dataclass(frozen=True)
class TextLayout:
    text: str
    font_size: int
    line_height: float
    regions: Tuple[RegionLayout, ...]
    fits: bool
    overflow_words: Tuple[str, ...] = ()

    @property
    def lines(self) -> List[PlacedLine]:
        """All lines in region-then-line order."""
        return [line for region in self.regions for line in region.lines]


@dataclass(frozen=True)
class LayoutOverflow:
    """Text that did not fit its regions even at the minimum font size."""

    text: str
    regions: Tuple[Rectangle, ...]
    font_size: int
    overflow_words: Tuple[str, ...]


def _fill_region(
    words: Sequence[str],
    start: int,
    region: Rectangle,
    font_size: int,
    line_height: float,
    metrics: FontMetrics,
) -> Tuple[List[str], int]:
    """Greedily pack words from ``start`` into the region's lines."""
    max_lines = math.floor(region.height / line_height) if line_height > 0 else 0
    lines: List[str] = []
    index = start

    while index < len(words) and len(lines) < max_lines:
        line = words[index]
        # A word wider than the region is never broken; leave it for the next region
        if metrics.text_width(line, font_size) > region.width:
            break
        index += 1
        while index < len(words):
            candidate = f"{line} {words[index]}"
            if metrics.text_width(candidate, font_size) > region.width:
                break
            line = candidate
            index += 1
        lines.append(line)

    return lines, index


def _place_lines(
    lines: Sequence[str],
    region: Rectangle,
    font_size: int,
    line_height: float,
    metrics: FontMetrics,
) -> Tuple[PlacedLine, ...]:
    """Center lines horizontally and the block of lines vertically in the region."""
    block_height = len(lines) * line_height
    top = region.y1 + (region.height - block_height) / 2.0
    ascent = metrics.ascent(font_size)
    placed = []
    for i, text in enumerate(lines):
        width = metrics.text_width(text, font_size)
        x = region.x1 + (region.width - width) / 2.0
        y = top + i * line_height
        placed.append(PlacedLine(text, x, y, width, y + ascent))
    return tuple(placed)


def _attempt_layout(
    words: Sequence[str],
    regions: Sequence[Rectangle],
    font_size: int,
    metrics: FontMetrics,
) -> Tuple[List[List[str]], int, float]:
    line_height = metrics.line_height(font_size)
    index = 0
    region_lines: List[List[str]] = []
    for region in regions:
        lines, index = _fill_region(
            words, index, region, font_size, line_height, metrics
        )
        region_lines.append(lines)
    return region_lines, index, line_height


def layout_text(
    text: str,
    regions: Sequence[Rectangle],
    metrics: FontMetrics,
    max_font_size: int = 40,
    min_font_size: int = 8,
    step: int = 1,
    verbose: bool = False,
) -> TextLayout:
    """
    Find the largest font size at which ``text`` fits into ``regions``.

    Regions are filled top to bottom (stable sort on ``y1``). At each size,
    from ``max_font_size`` down to ``min_font_size``, words are packed greedily
    into at most ``floor(height / line_height)`` lines per region without ever
    breaking a word or exceeding the region width. The first size that places
    every word wins, and its lines are centered within their regions.

    If no size fits, the layout at ``min_font_size`` is returned with
    ``fits=False`` and the words that did not fit in ``overflow_words``; the
    caller decides whether to render it partially or skip it.

    Args:
        text: Text to lay out
        regions: Target regions
        metrics: Font measurement functions
        max_font_size: Largest font size to try
        min_font_size: Smallest font size to try
        step: Font size decrement between attempts
        verbose: Whether to print detailed logs

    Returns:
        TextLayout: Placed lines per region
    """
    ordered = sorted(regions, key=lambda region: region.y1)
    words = tokenize(text)

    sizes = list(range(max_font_size, min_font_size - 1, -step))
    if not sizes or sizes[-1] != min_font_size:
        sizes.append(min_font_size)

    region_lines: List[List[str]] = []
    consumed = 0
    line_height = 0.0
    font_size = min_font_size
    for font_size in sizes:
        region_lines, consumed, line_height = _attempt_layout(
            words, ordered, font_size, metrics
        )
        if consumed == len(words):
            break

    fits = consumed == len(words)
    placed = tuple(
        RegionLayout(
            region, _place_lines(lines, region, font_size, line_height, metrics)
        )
        for region, lines in zip(ordered, region_lines)
    )

    if fits:
        log_message(
            f"Layout fits at size {font_size} across {len(ordered)} regions",
            verbose=verbose,
        )
    else:
        log_message(
            f"Layout overflow at min size {font_size}: {len(words) - consumed} words left",
            verbose=verbose,
        )

    return TextLayout(
        text=text,
        font_size=font_size,
        line_height=line_height,
        regions=placed,
        fits=fits,
        overflow_words=tuple(words[consumed:]),
    )


def describe_overflow(layout: TextLayout) -> LayoutOverflow:
    """Overflow record for a layout that did not fit."""
    return LayoutOverflow(
        text=layout.text,
        regions=tuple(region.region for region in layout.regions),
        font_size=layout.font_size,
        overflow_words=layout.overflow_words,
    )
