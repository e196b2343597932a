"""
Unit tests for comictranslator.image.assignment module.
"""
from comictranslator.image.assignment import assign_regions, find_unassigned
from comictranslator.models import Rectangle, RecognizedText, TextMaskRegion


class TestAssignRegions:
    """Tests for largest-intersection assignment."""

    def test_children_go_to_their_parents(self):
        """Test each mask region lands in the parent that covers it."""
        parents = [Rectangle(0, 0, 20, 20), Rectangle(40, 40, 70, 70)]
        children = [TextMaskRegion(5, 5, 15, 15), TextMaskRegion(50, 50, 60, 60)]

        assignments = assign_regions(parents, children)

        assert [a.parent for a in assignments] == parents
        assert assignments[0].children == [children[0]]
        assert assignments[1].children == [children[1]]

    def test_largest_intersection_wins(self):
        """Test the parent sharing the most area gets the child."""
        parents = [Rectangle(0, 0, 100, 100), Rectangle(90, 0, 200, 100)]
        child = Rectangle(80, 0, 150, 50)

        assignments = assign_regions(parents, [child])

        assert assignments[0].children == []
        assert assignments[1].children == [child]

    def test_area_not_iou(self):
        """Test intersection area is compared directly, not relative to parent size."""
        parents = [Rectangle(0, 0, 1000, 1000), Rectangle(95, 0, 130, 10)]
        child = Rectangle(90, 0, 130, 10)

        assignments = assign_regions(parents, [child])

        # 40 x 10 shared with the large parent, 35 x 10 with the small one
        assert assignments[0].children == [child]
        assert assignments[1].children == []

    def test_first_parent_wins_ties(self):
        """Test equal overlap goes to the earlier parent."""
        parents = [Rectangle(0, 0, 10, 10), Rectangle(10, 0, 20, 10)]
        child = Rectangle(5, 0, 15, 10)

        assignments = assign_regions(parents, [child])

        assert assignments[0].children == [child]
        assert assignments[1].children == []

    def test_no_overlap_left_unassigned(self):
        """Test a child touching no parent is not assigned anywhere."""
        parents = [Rectangle(0, 0, 10, 10)]
        children = [Rectangle(10, 0, 20, 10), Rectangle(50, 50, 60, 60)]

        assignments = assign_regions(parents, children)

        assert assignments[0].children == []
        assert find_unassigned(assignments, children) == children

    def test_duplicate_child_assigned_once(self):
        """Test an identical child seen twice is consumed only once."""
        parents = [Rectangle(0, 0, 20, 20)]
        child = TextMaskRegion(5, 5, 15, 15)

        assignments = assign_regions(parents, [child, child])

        assert assignments[0].children == [child]
        assert find_unassigned(assignments, [child, child]) == [child]

    def test_parents_without_children_are_kept(self):
        """Test every parent gets an Assignment even when empty."""
        parents = [
            RecognizedText(0, 0, 10, 10, text="a"),
            RecognizedText(100, 100, 110, 110, text="b"),
        ]

        assignments = assign_regions(parents, [Rectangle(1, 1, 5, 5)])

        assert len(assignments) == 2
        assert assignments[1].children == []

    def test_conservation(self):
        """Test assigned plus unassigned children equals the input count."""
        parents = [
            Rectangle(0, 0, 50, 50),
            Rectangle(40, 0, 100, 50),
            Rectangle(200, 200, 300, 300),
        ]
        children = [
            TextMaskRegion(10, 10, 20, 20),
            TextMaskRegion(35, 5, 60, 15),
            TextMaskRegion(45, 30, 55, 45),
            TextMaskRegion(120, 120, 150, 150),
            TextMaskRegion(210, 210, 220, 220),
            TextMaskRegion(10, 10, 20, 20),
        ]

        assignments = assign_regions(parents, children)
        unassigned = find_unassigned(assignments, children)

        assigned = [child for a in assignments for child in a.children]
        assert len(assigned) + len(unassigned) == len(children)
        assert len(assigned) == len(set(assigned))

    def test_children_keep_input_order(self):
        """Test children are appended to a parent in discovery order."""
        parents = [Rectangle(0, 0, 100, 100)]
        children = [Rectangle(50, 50, 60, 60), Rectangle(0, 0, 10, 10)]

        assignments = assign_regions(parents, children)

        assert assignments[0].children == children
