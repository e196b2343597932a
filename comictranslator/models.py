import math
from dataclasses import dataclass, field, replace
from typing import Generic, List, Optional, Tuple, TypeVar


@dataclass(frozen=True)
class Rectangle:
    """Axis-aligned rectangle in image pixel coordinates.

    Coordinates are stored as floats; rounding only happens when a rectangle is
    rasterized or used to crop an image (see ``to_int_box``).
    """

    x1: float
    y1: float
    x2: float
    y2: float

    def __post_init__(self):
        if self.x2 < self.x1 or self.y2 < self.y1:
            raise ValueError(
                f"Inverted rectangle: ({self.x1}, {self.y1}, {self.x2}, {self.y2})"
            )

    @property
    def width(self) -> float:
        return self.x2 - self.x1

    @property
    def height(self) -> float:
        return self.y2 - self.y1

    @property
    def area(self) -> float:
        return self.width * self.height

    @property
    def bounds(self) -> "Rectangle":
        """The bare rectangle, without any fields added by subclasses."""
        return Rectangle(self.x1, self.y1, self.x2, self.y2)

    def intersection_area(self, other: "Rectangle") -> float:
        """Area shared with ``other``; 0.0 when they do not overlap."""
        width = min(self.x2, other.x2) - max(self.x1, other.x1)
        height = min(self.y2, other.y2) - max(self.y1, other.y1)
        if width <= 0 or height <= 0:
            return 0.0
        return width * height

    def union(self, other: "Rectangle") -> "Rectangle":
        """Smallest rectangle enclosing both rectangles."""
        return Rectangle(
            min(self.x1, other.x1),
            min(self.y1, other.y1),
            max(self.x2, other.x2),
            max(self.y2, other.y2),
        )

    def contains(self, other: "Rectangle") -> bool:
        return (
            self.x1 <= other.x1
            and self.y1 <= other.y1
            and self.x2 >= other.x2
            and self.y2 >= other.y2
        )

    def enlarge(self, padding_x: float, padding_y: float) -> "Rectangle":
        return Rectangle(
            self.x1 - padding_x,
            self.y1 - padding_y,
            self.x2 + padding_x,
            self.y2 + padding_y,
        )

    def clip(self, width: float, height: float) -> "Rectangle":
        """Clamp the rectangle to an image of the given size."""
        x1 = min(max(self.x1, 0.0), width)
        y1 = min(max(self.y1, 0.0), height)
        x2 = min(max(self.x2, x1), width)
        y2 = min(max(self.y2, y1), height)
        return Rectangle(x1, y1, x2, y2)

    def to_int_box(self) -> Tuple[int, int, int, int]:
        """Integer ``(x1, y1, x2, y2)`` suitable for slicing; x1/y1 round down, x2/y2 up."""
        return (
            math.floor(self.x1),
            math.floor(self.y1),
            math.ceil(self.x2),
            math.ceil(self.y2),
        )


@dataclass(frozen=True)
class DetectedBox(Rectangle):
    """A bubble (or other text container) reported by a detector."""

    confidence: float = 1.0
    class_id: int = 0


@dataclass(frozen=True)
class TextMaskRegion(Rectangle):
    """A connected region of the text heatmap.

    When the region was enlarged by padding, ``original`` keeps the tight
    rectangle found by segmentation.
    """

    confidence: float = 0.0
    original: Optional[Rectangle] = None

    def enlarged(self, padding_x: float, padding_y: float) -> "TextMaskRegion":
        grown = self.enlarge(padding_x, padding_y)
        return replace(
            self,
            x1=grown.x1,
            y1=grown.y1,
            x2=grown.x2,
            y2=grown.y2,
            original=self.original or self.bounds,
        )


@dataclass(frozen=True)
class RecognizedText(Rectangle):
    """One block of recognized (or translated) text anchored to a region."""

    text: str = ""
    language: str = ""

    def with_text(self, text: str, language: Optional[str] = None) -> "RecognizedText":
        return replace(
            self, text=text, language=self.language if language is None else language
        )


P = TypeVar("P", bound=Rectangle)
C = TypeVar("C", bound=Rectangle)


@dataclass
class Assignment(Generic[P, C]):
    """A parent region and the child regions assigned to it, in discovery order."""

    parent: P
    children: List[C] = field(default_factory=list)
