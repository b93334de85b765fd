"""Shared pytest fixtures for service tests."""

import json
import pytest
import respx

from service.src.config import Settings

# Fake backend locations; every request to them is intercepted by respx
CH_URL = "http://clickhouse.test:8123"
PROM_URL = "http://prometheus.test:9090"
VLOGS_URL = "http://victorialogs.test:9428"


@pytest.fixture
def settings():
    """Settings pointing at fake backends."""
    return Settings(
        clickhouse_url=CH_URL,
        clickhouse_user="default",
        clickhouse_password="secret",
        clickhouse_database="otel",
        prometheus_url=PROM_URL,
        victorialogs_url=VLOGS_URL,
        request_timeout=5.0,
        readiness_timeout=1.0,
    )


@pytest.fixture
def respx_mock():
    """Fixture that provides a respx mock router.

    Configuration:
        - assert_all_mocked=True: No request may reach a real server.
        - assert_all_called=True: Ensures every mock defined is actually used.
          Catches typos in mock URLs and dead mocks.
    """
    with respx.mock(assert_all_mocked=True, assert_all_called=True) as mock:
        yield mock


@pytest.fixture
def span_row():
    """Factory for flame/detail rows as ClickHouse returns them."""
    def make(span_id, parent="", start=0, end=0, name=None, service="", **extra):
        row = {
            "SpanId": span_id,
            "ParentSpanId": parent,
            "SpanName": name if name is not None else span_id,
            "ServiceName": service,
            "start_ns": start,
            "end_ns": end,
        }
        row.update(extra)
        return row
    return make


@pytest.fixture
def ndjson():
    """Render rows as a JSONEachRow body."""
    def render(rows):
        return "".join(json.dumps(row) + "\n" for row in rows)
    return render


@pytest.fixture
def checkout_rows(span_row):
    """Root A (0..1000us) with children B (100..300us) and C (400..700us)."""
    return [
        span_row("A", start=0, end=1_000_000, service="web"),
        span_row("B", parent="A", start=100_000, end=300_000, service="cart"),
        span_row("C", parent="A", start=400_000, end=700_000, service="pay"),
    ]
