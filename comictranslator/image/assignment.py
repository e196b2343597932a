from collections import Counter
from typing import List, Sequence, Set

from comictranslator.models import Assignment, C, P
from utils.logging import log_message


def assign_regions(
    parents: Sequence[P], children: Sequence[C], verbose: bool = False
) -> List[Assignment[P, C]]:
    """
    Assign each child region to the parent it overlaps the most.

    Children are visited in input order. Each goes to the parent with the
    largest absolute intersection area (not IoU, so large parents are not
    penalized); the first parent wins ties. Children overlapping no parent are
    left unassigned, and a child already consumed is skipped. This is a greedy
    first-match-wins pass, not a maximum-weight matching.

    Args:
        parents: Coarse regions (bubbles, recognized text blocks)
        children: Fine regions (mask regions, word boxes)
        verbose: Whether to print detailed logs

    Returns:
        List[Assignment]: One assignment per parent, in parent order, including
            parents that received no children
    """
    assignments: List[Assignment[P, C]] = [Assignment(parent) for parent in parents]
    used: Set[C] = set()

    for child in children:
        if child in used:
            continue

        best_index = -1
        best_area = 0.0
        for index, parent in enumerate(parents):
            area = parent.intersection_area(child)
            if area > best_area:
                best_area = area
                best_index = index

        if best_index >= 0:
            assignments[best_index].children.append(child)
            used.add(child)

    assigned = sum(len(a.children) for a in assignments)
    log_message(
        f"Assigned {assigned}/{len(children)} regions to {len(parents)} parents",
        verbose=verbose,
    )
    return assignments


def find_unassigned(
    assignments: Sequence[Assignment[P, C]], children: Sequence[C]
) -> List[C]:
    """Children (in input order) that do not appear in any assignment."""
    remaining = Counter(child for a in assignments for child in a.children)
    unassigned: List[C] = []
    for child in children:
        if remaining[child] > 0:
            remaining[child] -= 1
        else:
            unassigned.append(child)
    return unassigned
