"""Flame graph derivation from a span tree.

Node values are microseconds. In total mode a node is worth its own
start-to-end duration; in self mode the total durations of its direct
children are subtracted, floored at zero.
"""

import logging
from typing import Dict, List, Mapping, Tuple

from .models import Span, FlameNode, GroupBy, FlameMode
from .tree import SpanTree, build_span_tree

logger = logging.getLogger(__name__)


def span_total_micros(span: Span) -> int:
    """Duration in whole microseconds (truncating).

    end < start is treated as a zero-length span.
    """
    return max(span.duration_nanos, 0) // 1000


def span_label(span: Span, group_by: GroupBy) -> str:
    """Display label of a span under a grouping policy."""
    if group_by is GroupBy.SERVICE:
        return span.service
    if group_by in (GroupBy.OPERATION, GroupBy.NAME):
        return span.name
    # service_operation
    if not span.service:
        return span.name
    return f"{span.service}:{span.name}"


def build_flame_node(
    root_id: str,
    spans: Mapping[str, Span],
    tree: SpanTree,
    group_by: GroupBy = GroupBy.SERVICE_OPERATION,
    mode: FlameMode = FlameMode.TOTAL,
) -> FlameNode:
    """Convert the subtree under root_id into a FlameNode.

    Walks the tree iteratively in post-order so deep traces do not hit the
    interpreter recursion limit. Children keep the tree builder's order.
    """
    built: Dict[str, FlameNode] = {}
    stack: List[Tuple[str, bool]] = [(root_id, False)]

    while stack:
        span_id, expanded = stack.pop()
        child_ids = tree.children_of(span_id)

        if not expanded:
            stack.append((span_id, True))
            # reversed so the first child is finished first
            for cid in reversed(child_ids):
                stack.append((cid, False))
            continue

        span = spans[span_id]
        value = span_total_micros(span)
        if mode is FlameMode.SELF:
            callees = sum(span_total_micros(spans[cid]) for cid in child_ids)
            value = max(value - callees, 0)

        built[span_id] = FlameNode(
            label=span_label(span, group_by),
            value=value,
            children=[built.pop(cid) for cid in child_ids],
        )

    return built[root_id]


def build_flame_graph(
    trace_id: str,
    spans: Mapping[str, Span],
    group_by: GroupBy = GroupBy.SERVICE_OPERATION,
    mode: FlameMode = FlameMode.TOTAL,
) -> FlameNode:
    """Build the flame graph of one trace.

    Parameters
    ----------
    trace_id : str
        Used to label the synthetic wrapper node.
    spans : Mapping[str, Span]
        Spans of the trace keyed by id.
    group_by : GroupBy
        Labelling policy.
    mode : FlameMode
        total or self durations.

    Returns
    -------
    FlameNode
        An empty "trace:<id>" node when there are no spans, the root's node
        for a single-root trace, otherwise a "trace:<id>" wrapper whose value
        is the sum of its per-root children.
    """
    wrapper_label = f"trace:{trace_id}"
    if not spans:
        return FlameNode(label=wrapper_label, value=0)

    negative = sum(1 for s in spans.values() if s.duration_nanos < 0)
    if negative:
        logger.warning(
            f"Trace {trace_id}: {negative} span(s) end before they start, "
            "counted as zero duration"
        )

    tree = build_span_tree(spans)
    nodes = [build_flame_node(rid, spans, tree, group_by, mode) for rid in tree.roots]

    if len(nodes) == 1:
        return nodes[0]

    return FlameNode(
        label=wrapper_label,
        value=sum(node.value for node in nodes),
        children=nodes,
    )
