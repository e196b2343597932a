from comictranslator.models import Rectangle


def overlap_ratio(a: Rectangle, b: Rectangle) -> float:
    """Intersection area relative to the smaller of the two boxes.

    Returns 0.0 when either box has zero area.
    """
    min_area = min(a.area, b.area)
    if min_area <= 0:
        return 0.0
    return a.intersection_area(b) / min_area


def containment_ratio(inner: Rectangle, outer: Rectangle) -> float:
    """Fraction of ``inner`` that lies inside ``outer`` (intersection over inner area).

    Returns 0.0 when ``inner`` has zero area.
    """
    if inner.area <= 0:
        return 0.0
    return inner.intersection_area(outer) / inner.area


def is_contained(a: Rectangle, b: Rectangle, threshold: float) -> bool:
    """True if either box is at least ``threshold`` contained in the other."""
    return (
        containment_ratio(a, b) >= threshold or containment_ratio(b, a) >= threshold
    )
