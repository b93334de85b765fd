"""Data models for the trace explorer backend"""

import json
import time
from enum import Enum
from typing import List, Optional, Dict, Any, Tuple

from pydantic import BaseModel, Field, field_validator, model_validator, ConfigDict

# Trace list paging
DEFAULT_PAGE_SIZE = 100
MAX_PAGE_SIZE = 500

# Default lookback when the caller omits "from"
DEFAULT_WINDOW_SECONDS = 3600


def stringify_attributes(data: Optional[Dict[str, Any]]) -> Dict[str, str]:
    """Convert attribute values to strings.

    Strings pass through untouched, everything else (numbers, booleans,
    nested objects, null) is rendered as its JSON text.
    """
    if not data:
        return {}
    out = {}
    for key, value in data.items():
        if isinstance(value, str):
            out[key] = value
        else:
            out[key] = json.dumps(value, separators=(",", ":"), default=str)
    return out


#=====================
# Closed enumerations
#=====================

class GroupBy(str, Enum):
    """How flame graph nodes are labelled."""

    SERVICE = "service"
    OPERATION = "operation"
    NAME = "name"
    SERVICE_OPERATION = "service_operation"

    @classmethod
    def parse(cls, value: Optional[str]) -> "GroupBy":
        """Unknown or missing selectors fall back to service_operation."""
        try:
            return cls(value)
        except ValueError:
            return cls.SERVICE_OPERATION


class FlameMode(str, Enum):
    """total: start-to-end duration, self: duration exclusive of direct children."""

    TOTAL = "total"
    SELF = "self"

    @classmethod
    def parse(cls, value: Optional[str]) -> "FlameMode":
        try:
            return cls(value)
        except ValueError:
            return cls.TOTAL


class SortField(str, Enum):
    DURATION = "duration"
    START = "start"
    SPAN_COUNT = "spanCount"

    @classmethod
    def parse(cls, value: Optional[str]) -> "SortField":
        """Case-insensitive; unknown keys sort by duration."""
        if isinstance(value, cls):
            return value
        lowered = (value or "").strip().lower()
        for member in cls:
            if member.value.lower() == lowered:
                return member
        return cls.DURATION


class SortOrder(str, Enum):
    ASC = "ASC"
    DESC = "DESC"

    @classmethod
    def parse(cls, value: Optional[str]) -> "SortOrder":
        """Anything other than ASC (in any case) means DESC."""
        if isinstance(value, cls):
            return value
        if isinstance(value, str) and value.strip().upper() == "ASC":
            return cls.ASC
        return cls.DESC


#=====================
# Spans and flame graph
#=====================

class Span(BaseModel):
    """One timed unit of work within a trace, as read from the trace store.

    Built per request and thrown away with the response.
    """

    model_config = ConfigDict(populate_by_name=True)

    span_id: str = Field(serialization_alias="spanId")
    parent_span_id: str = Field(default="", serialization_alias="parentSpanId")
    name: str = ""
    kind: str = ""
    service: str = ""
    start_nanos: int = Field(serialization_alias="startUnixNanos")
    end_nanos: int = Field(serialization_alias="endUnixNanos")
    attributes: Dict[str, str] = Field(default_factory=dict)
    status_code: str = Field(default="", serialization_alias="statusCode")
    status_message: str = Field(default="", serialization_alias="statusMessage")

    @field_validator("attributes", mode="before")
    @classmethod
    def stringify(cls, v):
        """Non-string attribute values are kept as their JSON text."""
        if v is None:
            return {}
        if isinstance(v, dict):
            return stringify_attributes(v)
        return v

    @property
    def duration_nanos(self) -> int:
        """end - start; negative for malformed store data."""
        return self.end_nanos - self.start_nanos


class FlameNode(BaseModel):
    """A node of the d3-flame-graph tree. value is in microseconds."""

    label: str = Field(serialization_alias="name")
    value: int = Field(default=0, ge=0)
    children: List["FlameNode"] = Field(default_factory=list)


#=====================
# Trace list
#=====================

class DurationRange(BaseModel):
    """Optional duration bounds in milliseconds; None means unbounded."""

    model_config = ConfigDict(allow_inf_nan=False)

    gte: Optional[float] = None
    lte: Optional[float] = None


class TraceListFilters(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    service: List[str] = Field(default_factory=list)
    operation: List[str] = Field(default_factory=list)
    status: List[str] = Field(default_factory=list)
    duration_ms: DurationRange = Field(default_factory=DurationRange, alias="durationMs")

    @field_validator("service", "operation", "status", mode="before")
    @classmethod
    def none_to_empty(cls, v):
        return [] if v is None else v

    @field_validator("duration_ms", mode="before")
    @classmethod
    def none_to_unbounded(cls, v):
        return {} if v is None else v


class TraceSort(BaseModel):
    by: SortField = SortField.DURATION
    order: SortOrder = SortOrder.DESC

    @field_validator("by", mode="before")
    @classmethod
    def resolve_field(cls, v) -> SortField:
        return SortField.parse(v if isinstance(v, (str, SortField)) else None)

    @field_validator("order", mode="before")
    @classmethod
    def resolve_order(cls, v) -> SortOrder:
        return SortOrder.parse(v if isinstance(v, (str, SortOrder)) else None)


class PageRequest(BaseModel):
    size: int = DEFAULT_PAGE_SIZE

    @field_validator("size", mode="before")
    @classmethod
    def none_to_default(cls, v):
        return DEFAULT_PAGE_SIZE if v is None else v

    @field_validator("size")
    @classmethod
    def clamp_size(cls, v: int) -> int:
        """Out of range sizes reset to the default rather than being clipped."""
        if v < 1 or v > MAX_PAGE_SIZE:
            return DEFAULT_PAGE_SIZE
        return v


class TraceListQuery(BaseModel):
    """Validated request body of POST /api/traces/list.

    from/to are unix seconds. A missing or zero "to" means now, a missing or
    zero "from" means one hour before "to".
    """

    model_config = ConfigDict(populate_by_name=True, allow_inf_nan=False)

    from_ts: Optional[float] = Field(default=None, alias="from")
    to_ts: Optional[float] = Field(default=None, alias="to")
    filters: TraceListFilters = Field(default_factory=TraceListFilters)
    sort: TraceSort = Field(default_factory=TraceSort)
    page: PageRequest = Field(default_factory=PageRequest)

    @field_validator("filters", "sort", "page", mode="before")
    @classmethod
    def none_to_defaults(cls, v):
        return {} if v is None else v

    @model_validator(mode="after")
    def fill_time_range(self) -> "TraceListQuery":
        if not self.to_ts:
            self.to_ts = float(int(time.time()))
        if not self.from_ts:
            self.from_ts = self.to_ts - DEFAULT_WINDOW_SECONDS
        return self


class TraceSummary(BaseModel):
    """One row of the trace list.

    svc_breakdown holds (service, durationMs) pairs; the store currently
    provides only the top contributor.
    """

    trace_id: str = Field(serialization_alias="traceId")
    start_ts: str = Field(default="", serialization_alias="startTs")
    duration_ms: float = Field(default=0.0, serialization_alias="durationMs")
    root_service: str = Field(default="", serialization_alias="rootService")
    root_operation: str = Field(default="", serialization_alias="rootOperation")
    status: str = ""
    span_count: int = Field(default=0, serialization_alias="spanCount")
    svc_breakdown: List[Tuple[str, float]] = Field(
        default_factory=list, serialization_alias="svcBreakdown"
    )


#=====================
# Pass-through proxies
#=====================

class MetricsQueryRequest(BaseModel):
    """Range query forwarded to the metrics backend. Zero means unset."""

    model_config = ConfigDict(allow_inf_nan=False)

    query: str = ""
    start: Optional[float] = None
    end: Optional[float] = None
    step: Optional[float] = None


class LogsSearchRequest(BaseModel):
    query: str = ""
