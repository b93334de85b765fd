"""Span tree assembly: parent/child adjacency over the spans of one trace."""

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Mapping

from .models import Span

logger = logging.getLogger(__name__)


@dataclass
class SpanTree:
    """Forest over the spans of one trace.

    roots: root span ids, ascending by id.
    children: parent id -> child ids, ascending by (start, id).
    excluded: ids unreachable from any root because their parent chain loops.
    """

    roots: List[str] = field(default_factory=list)
    children: Dict[str, List[str]] = field(default_factory=dict)
    excluded: List[str] = field(default_factory=list)

    def children_of(self, span_id: str) -> List[str]:
        return self.children.get(span_id, [])


def is_root(span: Span, spans: Mapping[str, Span]) -> bool:
    """A span with no parent id, or a parent outside this trace, is a root.

    Orphans are promoted, not dropped.
    """
    return not span.parent_span_id or span.parent_span_id not in spans


def build_span_tree(spans: Mapping[str, Span]) -> SpanTree:
    """Build the root list and children lists for one trace.

    Parameters
    ----------
    spans : Mapping[str, Span]
        Spans keyed by span id.

    Returns
    -------
    SpanTree
        Deterministically ordered adjacency. Spans caught in a parent cycle
        (self-parenting included) are never reachable from a root; they are
        listed in `excluded` instead of being walked.
    """
    tree = SpanTree()
    for span in spans.values():
        if is_root(span, spans):
            tree.roots.append(span.span_id)
        else:
            tree.children.setdefault(span.parent_span_id, []).append(span.span_id)

    tree.roots.sort()
    for child_ids in tree.children.values():
        child_ids.sort(key=lambda cid: (spans[cid].start_nanos, cid))

    # Anything the roots cannot reach hangs off a cycle
    reachable = set()
    stack = list(tree.roots)
    while stack:
        span_id = stack.pop()
        if span_id in reachable:
            continue
        reachable.add(span_id)
        stack.extend(tree.children_of(span_id))

    if len(reachable) < len(spans):
        tree.excluded = sorted(sid for sid in spans if sid not in reachable)
        logger.warning(
            f"Parent cycle: excluding {len(tree.excluded)} span(s) "
            f"starting at {tree.excluded[0]!r}"
        )
        excluded = set(tree.excluded)
        tree.children = {
            parent: kids
            for parent, kids in tree.children.items()
            if parent not in excluded
        }

    return tree
