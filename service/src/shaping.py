"""Wire shapes for the UI. Structural mapping only."""

import json
import logging
from typing import Any, Dict, Iterable, List

from pydantic import ValidationError

from .models import Span, FlameNode, TraceSummary

logger = logging.getLogger(__name__)


def _decode_lines(lines: Iterable[str], what: str) -> List[Dict[str, Any]]:
    rows = []
    for line in lines:
        try:
            row = json.loads(line)
        except json.JSONDecodeError as e:
            logger.warning(f"Skipping malformed {what} row: {e}")
            continue
        if isinstance(row, dict):
            rows.append(row)
        else:
            logger.warning(f"Skipping {what} row that is not an object")
    return rows


def summary_from_row(row: Dict[str, Any]) -> TraceSummary:
    """Map a trace_roots row. Only the top contributing service is known."""
    return TraceSummary(
        trace_id=row.get("TraceId") or "",
        start_ts=str(row.get("StartTs") or ""),
        duration_ms=row.get("DurationMs") or 0.0,
        root_service=row.get("RootService") or "",
        root_operation=row.get("RootOperation") or "",
        status=row.get("Status") or "",
        span_count=row.get("SpanCount") or 0,
        svc_breakdown=[(row.get("TopService") or "", row.get("TopServiceMs") or 0.0)],
    )


def trace_list_items(lines: Iterable[str]) -> List[Dict[str, Any]]:
    """JSONEachRow trace_roots lines -> list items; unusable rows are skipped."""
    items = []
    for row in _decode_lines(lines, "trace list"):
        try:
            summary = summary_from_row(row)
        except ValidationError as e:
            logger.warning(f"Skipping trace list row {row.get('TraceId')!r}: {e}")
            continue
        items.append(summary.model_dump(mode="json", by_alias=True))
    return items


def span_to_wire(span: Span) -> Dict[str, Any]:
    """Span as the timeline view expects it; empty optional fields are omitted."""
    out = span.model_dump(mode="json", by_alias=True)
    for key in ("parentSpanId", "attributes", "statusCode", "statusMessage"):
        if not out[key]:
            del out[key]
    return out


def spans_to_wire(spans: Iterable[Span]) -> List[Dict[str, Any]]:
    """Chronological order; ties broken by span id."""
    ordered = sorted(spans, key=lambda s: (s.start_nanos, s.span_id))
    return [span_to_wire(s) for s in ordered]


def flame_to_wire(node: FlameNode) -> Dict[str, Any]:
    """{name, value, children} as consumed by d3-flame-graph.

    Built iteratively; deep traces would trip pydantic's serializer depth guard.
    """
    out = {"name": node.label, "value": node.value, "children": []}
    stack = [(node, out)]
    while stack:
        current, current_out = stack.pop()
        for child in current.children:
            child_out = {"name": child.label, "value": child.value, "children": []}
            current_out["children"].append(child_out)
            stack.append((child, child_out))
    return out


def suggestion_items(lines: Iterable[str], column: str) -> List[Dict[str, Any]]:
    """Suggestion rows as {<column>, c} with an integer count.

    ClickHouse renders UInt64 sums as JSON strings by default.
    """
    items = []
    for row in _decode_lines(lines, "suggestion"):
        try:
            count = int(row.get("c") or 0)
        except (TypeError, ValueError):
            logger.warning(f"Skipping suggestion row with bad count: {row!r}")
            continue
        items.append({column: row.get(column, ""), "c": count})
    return items
