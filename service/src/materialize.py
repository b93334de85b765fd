"""Decode raw trace-store rows into Span records.

A malformed row is dropped and counted, never allowed to fail the request.
"""

import json
import logging
from typing import Any, Dict, Iterable, List

from pydantic import ValidationError

from .errors import DecodeError
from .models import Span

logger = logging.getLogger(__name__)


def _as_str(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    return str(value)


def _as_nanos(row: Dict[str, Any], key: str) -> int:
    """Timestamps arrive as JSON numbers, or as strings for 64-bit safety."""
    value = row.get(key)
    if isinstance(value, bool) or value is None:
        raise DecodeError(f"{key} missing or not a number")
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    if isinstance(value, str):
        try:
            return int(value)
        except ValueError:
            pass
    raise DecodeError(f"{key}={value!r} is not an integer")


def decode_span(row: Dict[str, Any]) -> Span:
    """Map one store row to a Span.

    Raises
    ------
    DecodeError
        If the row has no span id or unusable timestamps.
    """
    if not isinstance(row, dict):
        raise DecodeError(f"row is {type(row).__name__}, not an object")

    span_id = _as_str(row.get("SpanId"))
    if not span_id:
        raise DecodeError("row has no SpanId")

    attributes = row.get("SpanAttributes")
    if attributes is not None and not isinstance(attributes, dict):
        raise DecodeError(f"SpanAttributes of {span_id} is not an object")

    try:
        return Span(
            span_id=span_id,
            parent_span_id=_as_str(row.get("ParentSpanId")),
            name=_as_str(row.get("SpanName")),
            kind=_as_str(row.get("SpanKind")),
            service=_as_str(row.get("ServiceName")),
            start_nanos=_as_nanos(row, "start_ns"),
            end_nanos=_as_nanos(row, "end_ns"),
            attributes=attributes,
            status_code=_as_str(row.get("StatusCode")),
            status_message=_as_str(row.get("StatusMessage")),
        )
    except ValidationError as e:
        raise DecodeError(f"span {span_id}: {e}") from e


def decode_rows(lines: Iterable[str]) -> List[Span]:
    """Decode JSONEachRow lines, skipping any that fail to parse.

    Returns
    -------
    List[Span]
        Spans in the order the store returned them.
    """
    spans = []
    dropped = 0
    for line in lines:
        try:
            spans.append(decode_span(json.loads(line)))
        except (json.JSONDecodeError, DecodeError) as e:
            dropped += 1
            logger.debug(f"Dropping trace store row: {e}")

    if dropped:
        logger.warning(f"Dropped {dropped} malformed span row(s), kept {len(spans)}")
    return spans


def index_spans(spans: Iterable[Span]) -> Dict[str, Span]:
    """Key spans by id for O(1) parent lookups.

    Duplicate ids keep their first occurrence.
    """
    by_id: Dict[str, Span] = {}
    for span in spans:
        if span.span_id in by_id:
            logger.warning(f"Duplicate span id {span.span_id!r}, keeping first occurrence")
            continue
        by_id[span.span_id] = span
    return by_id


def materialize_spans(lines: Iterable[str]) -> Dict[str, Span]:
    """Rows straight to the span-id keyed mapping used by the tree builder."""
    return index_spans(decode_rows(lines))
