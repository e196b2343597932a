from enum import Enum
from typing import Dict, List, Sequence, Set, Tuple, Union

from comictranslator.image.geometry import is_contained, overlap_ratio
from comictranslator.models import DetectedBox
from utils.logging import log_message


class MergeStrategy(str, Enum):
    """How two detections are judged to be the same bubble.

    OVERLAP: intersection over the smaller box's area, merged iteratively.
    CONTAINMENT: intersection over one box's own area, grouped in a single pass.
    """

    OVERLAP = "overlap"
    CONTAINMENT = "containment"


def _merge_group(group: Sequence[DetectedBox]) -> DetectedBox:
    """Union rectangle of a group with mean confidence and max class id."""
    x1 = min(box.x1 for box in group)
    y1 = min(box.y1 for box in group)
    x2 = max(box.x2 for box in group)
    y2 = max(box.y2 for box in group)
    confidence = sum(box.confidence for box in group) / len(group)
    class_id = max(box.class_id for box in group)
    return DetectedBox(x1, y1, x2, y2, confidence=confidence, class_id=class_id)


def merge_overlapping_boxes(
    boxes: Sequence[DetectedBox], threshold: float, verbose: bool = False
) -> List[DetectedBox]:
    """
    Merge boxes whose overlap ratio (intersection / min area) exceeds the threshold.

    Each round scans all pairs (i ascending, then j ascending) and accepts
    candidate pairs greedily: a box consumed by an earlier pair in the round is
    skipped for later pairs. An accepted pair replaces box i with the union of
    both boxes and removes box j. Rounds repeat until nothing merges.

    Args:
        boxes: Detections to merge, in detector order
        threshold: Overlap ratio that must be exceeded for two boxes to merge
        verbose: Whether to print detailed logs

    Returns:
        List[DetectedBox]: Deduplicated boxes; no pair overlaps above the threshold
    """
    merged = list(boxes)
    rounds = 0

    while True:
        candidates: List[Tuple[int, int]] = []
        for i in range(len(merged)):
            for j in range(i + 1, len(merged)):
                if overlap_ratio(merged[i], merged[j]) > threshold:
                    candidates.append((i, j))

        if not candidates:
            break

        consumed: Set[int] = set()
        removed: Set[int] = set()
        replacements: Dict[int, DetectedBox] = {}
        for i, j in candidates:
            if i in consumed or j in consumed:
                continue
            consumed.update((i, j))
            replacements[i] = _merge_group((merged[i], merged[j]))
            removed.add(j)

        merged = [
            replacements.get(index, box)
            for index, box in enumerate(merged)
            if index not in removed
        ]
        rounds += 1

    log_message(
        f"Merged {len(boxes)} boxes into {len(merged)} ({rounds} rounds)",
        verbose=verbose,
    )
    return merged


def merge_contained_boxes(
    boxes: Sequence[DetectedBox], threshold: float, verbose: bool = False
) -> List[DetectedBox]:
    """
    Group boxes where either box is at least ``threshold`` contained in the other.

    Single pass: every box not yet grouped seeds a new group, and each later
    ungrouped box linked to that seed joins it. Groups collapse to their union.
    """
    grouped = [False] * len(boxes)
    merged: List[DetectedBox] = []

    for i, seed in enumerate(boxes):
        if grouped[i]:
            continue
        grouped[i] = True
        group = [seed]
        for j in range(i + 1, len(boxes)):
            if not grouped[j] and is_contained(seed, boxes[j], threshold):
                grouped[j] = True
                group.append(boxes[j])
        merged.append(_merge_group(group) if len(group) > 1 else seed)

    log_message(
        f"Grouped {len(boxes)} boxes into {len(merged)} by containment",
        verbose=verbose,
    )
    return merged


def merge_boxes(
    boxes: Sequence[DetectedBox],
    threshold: float,
    strategy: Union[MergeStrategy, str] = MergeStrategy.OVERLAP,
    verbose: bool = False,
) -> List[DetectedBox]:
    """Deduplicate detections from one or more detectors with the given strategy."""
    strategy = MergeStrategy(strategy)
    if strategy is MergeStrategy.CONTAINMENT:
        return merge_contained_boxes(boxes, threshold, verbose=verbose)
    return merge_overlapping_boxes(boxes, threshold, verbose=verbose)
