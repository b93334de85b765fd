"""Unit tests for span tree assembly."""

import pytest

from service.src.models import Span
from service.src.tree import build_span_tree, is_root


def make_spans(*specs):
    """(id, parent, start) tuples -> id keyed mapping."""
    spans = {}
    for span_id, parent, start in specs:
        spans[span_id] = Span(
            span_id=span_id,
            parent_span_id=parent,
            start_nanos=start,
            end_nanos=start + 100,
        )
    return spans


class TestRoots:
    """A span is a root iff its parent id is empty or unknown."""

    def test_empty_parent_is_root(self):
        spans = make_spans(("A", "", 0))
        assert is_root(spans["A"], spans)

    def test_orphan_is_promoted_not_dropped(self):
        """A missing ancestor must not drop the span."""
        spans = make_spans(("A", "", 0), ("B", "missing", 10), ("C", "B", 20))

        tree = build_span_tree(spans)

        assert tree.roots == ["A", "B"]
        assert tree.children_of("B") == ["C"]
        assert tree.excluded == []

    def test_roots_sorted_by_id(self):
        """Root order must not depend on input order."""
        spans = make_spans(("zeta", "", 0), ("alpha", "", 50), ("mid", "", 10))

        tree = build_span_tree(spans)

        assert tree.roots == ["alpha", "mid", "zeta"]

    def test_single_root(self):
        tree = build_span_tree(make_spans(("A", "", 0), ("B", "A", 5)))
        assert tree.roots == ["A"]

    def test_empty_trace(self):
        tree = build_span_tree({})
        assert tree.roots == []
        assert tree.children == {}


class TestChildren:
    """Children are ordered by start time, ties broken by id."""

    def test_children_by_start_time(self):
        spans = make_spans(("A", "", 0), ("late", "A", 300), ("early", "A", 100), ("mid", "A", 200))

        tree = build_span_tree(spans)

        assert tree.children_of("A") == ["early", "mid", "late"]

    def test_start_time_ties_broken_by_id(self):
        spans = make_spans(("A", "", 0), ("c2", "A", 100), ("c1", "A", 100))

        tree = build_span_tree(spans)

        assert tree.children_of("A") == ["c1", "c2"]

    def test_leaf_has_no_children(self):
        tree = build_span_tree(make_spans(("A", "", 0)))
        assert tree.children_of("A") == []

    @pytest.mark.parametrize("order", [
        ["A", "B", "C", "D"],
        ["D", "C", "B", "A"],
        ["C", "A", "D", "B"],
    ])
    def test_same_tree_for_any_input_order(self, order):
        specs = {"A": ("A", "", 0), "B": ("B", "A", 20), "C": ("C", "A", 10), "D": ("D", "", 5)}
        spans = make_spans(*(specs[k] for k in order))

        tree = build_span_tree(spans)

        assert tree.roots == ["A", "D"]
        assert tree.children_of("A") == ["C", "B"]


class TestCycles:
    """Parent cycles are excluded instead of walked forever."""

    def test_two_span_cycle_excluded(self):
        spans = make_spans(("R", "", 0), ("X", "Y", 10), ("Y", "X", 20))

        tree = build_span_tree(spans)

        assert tree.roots == ["R"]
        assert tree.excluded == ["X", "Y"]
        assert "X" not in tree.children and "Y" not in tree.children

    def test_self_parent_excluded(self):
        spans = make_spans(("R", "", 0), ("S", "S", 10))

        tree = build_span_tree(spans)

        assert tree.roots == ["R"]
        assert tree.excluded == ["S"]

    def test_subtree_below_cycle_excluded(self):
        spans = make_spans(("X", "Y", 0), ("Y", "X", 10), ("Z", "Y", 20))

        tree = build_span_tree(spans)

        assert tree.roots == []
        assert tree.excluded == ["X", "Y", "Z"]
