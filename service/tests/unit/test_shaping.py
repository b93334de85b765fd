"""Unit tests for the wire shapes consumed by the UI."""

import json

from service.src.models import FlameNode, Span
from service.src.shaping import (
    trace_list_items,
    span_to_wire,
    spans_to_wire,
    flame_to_wire,
    suggestion_items,
)


class TestTraceListItems:

    def test_maps_fields(self):
        line = json.dumps({
            "TraceId": "t2", "StartTs": "2025-01-01 10:05:00", "DurationMs": 1200.0,
            "RootService": "api", "RootOperation": "POST /charge", "Status": "ERROR",
            "SpanCount": 33, "TopService": "payments", "TopServiceMs": 800.0,
        })

        items = trace_list_items([line])

        assert items == [{
            "traceId": "t2",
            "startTs": "2025-01-01 10:05:00",
            "durationMs": 1200.0,
            "rootService": "api",
            "rootOperation": "POST /charge",
            "status": "ERROR",
            "spanCount": 33,
            "svcBreakdown": [["payments", 800.0]],
        }]

    def test_numeric_strings_accepted(self):
        """UInt64 columns may arrive quoted."""
        line = json.dumps({"TraceId": "t1", "SpanCount": "20", "DurationMs": "812.5"})

        item = trace_list_items([line])[0]

        assert item["spanCount"] == 20
        assert item["durationMs"] == 812.5

    def test_bad_rows_skipped(self):
        lines = [
            "{oops",
            json.dumps({"TraceId": "t1", "SpanCount": "twenty"}),
            json.dumps(["not", "a", "row"]),
            json.dumps({"TraceId": "t2"}),
        ]

        items = trace_list_items(lines)

        assert [i["traceId"] for i in items] == ["t2"]


class TestSpanWire:

    def test_full_span(self):
        span = Span(
            span_id="B", parent_span_id="A", name="db", kind="CLIENT", service="db",
            start_nanos=100, end_nanos=200, attributes={"db.system": "mysql"},
            status_code="OK", status_message="done",
        )

        assert span_to_wire(span) == {
            "spanId": "B",
            "parentSpanId": "A",
            "name": "db",
            "kind": "CLIENT",
            "service": "db",
            "startUnixNanos": 100,
            "endUnixNanos": 200,
            "attributes": {"db.system": "mysql"},
            "statusCode": "OK",
            "statusMessage": "done",
        }

    def test_empty_optionals_omitted(self):
        wire = span_to_wire(Span(span_id="A", start_nanos=0, end_nanos=1))

        assert "parentSpanId" not in wire
        assert "attributes" not in wire
        assert "statusCode" not in wire
        assert "statusMessage" not in wire
        assert wire["name"] == ""

    def test_chronological_order(self):
        spans = [
            Span(span_id="late", start_nanos=30, end_nanos=40),
            Span(span_id="b", start_nanos=10, end_nanos=20),
            Span(span_id="a", start_nanos=10, end_nanos=20),
        ]

        assert [s["spanId"] for s in spans_to_wire(spans)] == ["a", "b", "late"]


class TestFlameWire:

    def test_nested(self):
        node = FlameNode(label="web:A", value=500, children=[
            FlameNode(label="cart:B", value=200),
            FlameNode(label="pay:C", value=300, children=[FlameNode(label="db:D", value=10)]),
        ])

        assert flame_to_wire(node) == {
            "name": "web:A",
            "value": 500,
            "children": [
                {"name": "cart:B", "value": 200, "children": []},
                {"name": "pay:C", "value": 300, "children": [
                    {"name": "db:D", "value": 10, "children": []},
                ]},
            ],
        }

    def test_empty_trace_node(self):
        assert flame_to_wire(FlameNode(label="trace:x")) == {"name": "trace:x", "value": 0, "children": []}


class TestSuggestionItems:

    def test_counts_are_integers(self):
        lines = [
            json.dumps({"ServiceName": "web", "c": "42"}),
            json.dumps({"ServiceName": "api", "c": 7}),
        ]

        assert suggestion_items(lines, "ServiceName") == [
            {"ServiceName": "web", "c": 42},
            {"ServiceName": "api", "c": 7},
        ]

    def test_bad_count_skipped(self):
        lines = [json.dumps({"Val": "GET", "c": "lots"}), json.dumps({"Val": "POST", "c": 1})]

        assert suggestion_items(lines, "Val") == [{"Val": "POST", "c": 1}]
