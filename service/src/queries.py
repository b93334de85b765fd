"""Query construction for the ClickHouse trace store.

Scalar values are always sent as bound parameters ({name:Type} placeholders,
substituted by ClickHouse). IN-lists of free text are the one place where
values are interpolated into the query text, and they go through
quote_literal first.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Sequence

from .errors import BadRequest
from .models import TraceListQuery, SortField

# Most OTEL -> ClickHouse pipelines store Duration in milliseconds.
# Set to 1 if yours stores nanoseconds.
DURATION_TO_NANOS = 1_000_000

SUGGEST_LIMIT = 20
SUGGEST_WINDOW = "INTERVAL 24 HOUR"

# Closed mapping: nothing the caller sends reaches ORDER BY verbatim
SORT_COLUMNS: Dict[SortField, str] = {
    SortField.DURATION: "DurationMs",
    SortField.START: "StartTs",
    SortField.SPAN_COUNT: "SpanCount",
}


@dataclass
class BoundQuery:
    """Query text plus the values for its placeholders."""

    sql: str
    params: Dict[str, Any] = field(default_factory=dict)


def quote_literal(value: str) -> str:
    """Render a string as a single-quoted ClickHouse literal.

    Backslashes are escaped and single quotes doubled, so the value can never
    terminate the literal early.

    Raises
    ------
    BadRequest
        If the value contains control characters.
    """
    if any(ord(ch) < 0x20 or ord(ch) == 0x7F for ch in value):
        raise BadRequest(f"control characters are not allowed in filter value {value!r}")
    escaped = value.replace("\\", "\\\\").replace("'", "''")
    return f"'{escaped}'"


def join_quoted(values: Sequence[str]) -> str:
    """'a', 'b', 'c' with every value passed through quote_literal."""
    return ", ".join(quote_literal(v) for v in values)


def like_pattern(q: str) -> str:
    """Substring ILIKE pattern with LIKE wildcards in q taken literally."""
    escaped = q.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"


#=====================
# Trace list
#=====================

TRACE_LIST_SQL = """
SELECT TraceId, StartTs, DurationMs, RootService, RootOperation, Status, SpanCount, TopService, TopServiceMs
FROM {{db:Identifier}}.trace_roots
WHERE {where}
ORDER BY {order_by} {direction}
LIMIT {limit}
"""


def build_trace_list_query(query: TraceListQuery, database: str) -> BoundQuery:
    """Turn a validated trace list request into a bounded query.

    Parameters
    ----------
    query : TraceListQuery
        Normalized request (time range filled in, sort and page resolved).
    database : str
        ClickHouse database holding trace_roots.

    Returns
    -------
    BoundQuery
        Always has a time range predicate and a LIMIT.
    """
    params: Dict[str, Any] = {
        "db": database,
        "from_ts": int(query.from_ts),
        "to_ts": int(query.to_ts),
    }
    where: List[str] = [
        "StartTs BETWEEN toDateTime({from_ts:Int64}) AND toDateTime({to_ts:Int64})",
    ]

    filters = query.filters
    if filters.service:
        where.append(f"RootService IN ({join_quoted(filters.service)})")
    if filters.operation:
        where.append(f"RootOperation IN ({join_quoted(filters.operation)})")
    if filters.status:
        where.append(f"Status IN ({join_quoted(filters.status)})")

    if filters.duration_ms.gte is not None:
        where.append("DurationMs >= {duration_gte:Float64}")
        params["duration_gte"] = filters.duration_ms.gte
    if filters.duration_ms.lte is not None:
        where.append("DurationMs <= {duration_lte:Float64}")
        params["duration_lte"] = filters.duration_ms.lte

    sql = TRACE_LIST_SQL.format(
        where=" AND ".join(where),
        order_by=SORT_COLUMNS[query.sort.by],
        direction=query.sort.order.value,
        limit=int(query.page.size),
    )
    return BoundQuery(sql=sql, params=params)


#=====================
# Single trace
#=====================

FLAME_SQL = f"""
SELECT
  SpanId,
  ifNull(ParentSpanId, '') AS ParentSpanId,
  SpanName,
  ServiceName,
  toInt64(toUnixTimestamp64Nano(Timestamp)) AS start_ns,
  toInt64(toUnixTimestamp64Nano(Timestamp) + (Duration * {DURATION_TO_NANOS})) AS end_ns
FROM {{db:Identifier}}.otel_traces
WHERE lower(TraceId) = lower({{traceId:String}})
ORDER BY start_ns ASC
"""

TRACE_DETAIL_SQL = f"""
SELECT TraceId, SpanId, ParentSpanId, SpanName, SpanKind, ServiceName,
       toInt64(toUnixTimestamp64Nano(Timestamp)) AS start_ns,
       toInt64(toUnixTimestamp64Nano(Timestamp) + (Duration * {DURATION_TO_NANOS})) AS end_ns,
       SpanAttributes, StatusCode, StatusMessage
FROM {{db:Identifier}}.otel_traces
WHERE TraceId = {{traceId:String}}
ORDER BY start_ns ASC
"""


def build_flame_query(trace_id: str, database: str) -> BoundQuery:
    return BoundQuery(sql=FLAME_SQL, params={"db": database, "traceId": trace_id.lower()})


def build_trace_detail_query(trace_id: str, database: str) -> BoundQuery:
    return BoundQuery(sql=TRACE_DETAIL_SQL, params={"db": database, "traceId": trace_id})


#=====================
# Suggestions
#=====================

@dataclass(frozen=True)
class SuggestSource:
    """A pre-aggregated suggestion table and the column it suggests."""

    table: str
    column: str


SERVICE_SUGGESTIONS = SuggestSource(table="service_suggest", column="ServiceName")
OPERATION_SUGGESTIONS = SuggestSource(table="operation_suggest", column="SpanName")
ATTRIBUTE_SUGGESTIONS = SuggestSource(table="attr_values", column="Val")

SUGGEST_SQL = """
SELECT {column}, sum(Cnt) AS c
FROM {{db:Identifier}}.{table}
WHERE WindowStart > now() - {window} AND {where}
GROUP BY {column} ORDER BY c DESC LIMIT {limit}
"""


def _suggest_query(source: SuggestSource, where: List[str], params: Dict[str, Any]) -> BoundQuery:
    sql = SUGGEST_SQL.format(
        column=source.column,
        table=source.table,
        window=SUGGEST_WINDOW,
        where=" AND ".join(where) if where else "1=1",
        limit=SUGGEST_LIMIT,
    )
    return BoundQuery(sql=sql, params=params)


def build_suggest_query(source: SuggestSource, q: str, database: str) -> BoundQuery:
    """Top values of source.column, optionally narrowed by a substring."""
    params: Dict[str, Any] = {"db": database}
    where: List[str] = []
    if q:
        where.append(f"{source.column} ILIKE {{pattern:String}}")
        params["pattern"] = like_pattern(q)
    return _suggest_query(source, where, params)


def build_attribute_suggest_query(key: str, q: str, database: str) -> BoundQuery:
    """Top values seen for one attribute key."""
    if not key:
        raise BadRequest("key required")
    params: Dict[str, Any] = {"db": database, "key": key}
    where = ["Key = {key:String}"]
    if q:
        where.append("Val ILIKE {pattern:String}")
        params["pattern"] = like_pattern(q)
    return _suggest_query(ATTRIBUTE_SUGGESTIONS, where, params)
