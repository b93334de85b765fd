"""Trace explorer backend: trace list, trace detail and flame graphs over ClickHouse"""

import logging
from contextlib import asynccontextmanager
from datetime import datetime, UTC
from typing import Any, Dict, List, Optional

import anyio
import httpx
from fastapi import APIRouter, Depends, FastAPI, HTTPException, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from starlette.exceptions import HTTPException as StarletteHTTPException

from .config import Settings, load_settings
from .errors import BadRequest, UpstreamError, ClientDisconnected
from .flame import build_flame_graph
from .materialize import decode_rows, materialize_spans
from .models import (
    TraceListQuery, GroupBy, FlameMode,
    MetricsQueryRequest, LogsSearchRequest,
)
from .proxies import MetricsProxy, LogsProxy
from .queries import (
    build_trace_list_query, build_flame_query, build_trace_detail_query,
    build_suggest_query, build_attribute_suggest_query,
    SERVICE_SUGGESTIONS, OPERATION_SUGGESTIONS, ATTRIBUTE_SUGGESTIONS,
    BoundQuery,
)
from .shaping import trace_list_items, spans_to_wire, flame_to_wire, suggestion_items
from .store import ClickHouseClient

# configure logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

router = APIRouter()

# How often a pending store query checks whether its caller is still there
DISCONNECT_POLL_SECONDS = 0.1


def get_store(request: Request) -> ClickHouseClient:
    return request.app.state.store


def get_metrics_proxy(request: Request) -> MetricsProxy:
    return request.app.state.metrics


def get_logs_proxy(request: Request) -> LogsProxy:
    return request.app.state.logs


def error_response(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message})


async def _watch_disconnect(request: Request, scope: anyio.CancelScope) -> None:
    while not await request.is_disconnected():
        await anyio.sleep(DISCONNECT_POLL_SECONDS)
    scope.cancel()


async def store_query(
    request: Request,
    store: ClickHouseClient,
    bound: BoundQuery,
) -> List[str]:
    """Run one store query, cancelling it as soon as the caller disconnects.

    Starlette does not cancel a plain endpoint when the client goes away, so
    the query runs beside a watcher that polls the connection.

    Raises
    ------
    ClientDisconnected
        If the caller left before the store answered.
    UpstreamError
        As raised by the store client.
    """
    outcome: Dict[str, Any] = {}
    async with anyio.create_task_group() as tg:
        tg.start_soon(_watch_disconnect, request, tg.cancel_scope)
        try:
            outcome["lines"] = await store.query_lines(bound.sql, bound.params)
        except Exception as e:
            # re-raised below, outside the task group
            outcome["error"] = e
        finally:
            tg.cancel_scope.cancel()

    if "error" in outcome:
        raise outcome["error"]
    if "lines" not in outcome:
        logger.info(f"Client disconnected from {request.url.path}, store query cancelled")
        raise ClientDisconnected(request.url.path)
    return outcome["lines"]


#=====================
# Health Endpoints
#=====================

@router.get("/healthz")
async def healthz():
    """Liveness: the process is up."""
    return {"ok": True}


@router.get("/readyz")
async def readyz(request: Request):
    """Readiness: the trace store answers. The metrics backend is reported only."""
    settings: Settings = request.app.state.settings
    clickhouse_ok = await request.app.state.store.ping()
    prometheus_ok = await request.app.state.metrics.ping(settings.readiness_timeout)

    body = {
        "ok": clickhouse_ok,
        "checks": {"clickhouse": clickhouse_ok, "prometheus": prometheus_ok},
        "timestamp": datetime.now(UTC).isoformat(),
    }
    return JSONResponse(status_code=200 if clickhouse_ok else 503, content=body)


#=====================
# Trace Endpoints
#=====================

@router.post("/api/traces/list")
async def list_traces(
    request: Request,
    query: TraceListQuery,
    store: ClickHouseClient = Depends(get_store),
):
    """Filtered, sorted and size-bounded list of traces in a time range."""
    try:
        bound = build_trace_list_query(query, store.database)
        lines = await store_query(request, store, bound)
        items = trace_list_items(lines)

        logger.info(
            f"Listed {len(items)} traces [{int(query.from_ts)}..{int(query.to_ts)}] "
            f"sort={query.sort.by.value} {query.sort.order.value} limit={query.page.size}"
        )
        return {"items": items}

    except (BadRequest, UpstreamError, ClientDisconnected):
        raise

    except Exception as e:
        logger.error(f"Error listing traces: {e}")
        raise HTTPException(status_code=500, detail=str(e))


@router.get("/api/traces/suggest/services")
async def suggest_services(
    request: Request,
    q: str = Query("", description="Substring to match"),
    store: ClickHouseClient = Depends(get_store),
) -> List[Dict[str, Any]]:
    """Most frequent service names over the last 24 hours."""
    bound = build_suggest_query(SERVICE_SUGGESTIONS, q, store.database)
    lines = await store_query(request, store, bound)
    return suggestion_items(lines, SERVICE_SUGGESTIONS.column)


@router.get("/api/traces/suggest/operations")
async def suggest_operations(
    request: Request,
    q: str = Query("", description="Substring to match"),
    store: ClickHouseClient = Depends(get_store),
) -> List[Dict[str, Any]]:
    """Most frequent span names over the last 24 hours."""
    bound = build_suggest_query(OPERATION_SUGGESTIONS, q, store.database)
    lines = await store_query(request, store, bound)
    return suggestion_items(lines, OPERATION_SUGGESTIONS.column)


@router.get("/api/traces/suggest/attributes")
async def suggest_attributes(
    request: Request,
    key: Optional[str] = Query(None, description="Attribute key (required)"),
    q: str = Query("", description="Substring of the value to match"),
    store: ClickHouseClient = Depends(get_store),
) -> List[Dict[str, Any]]:
    """Most frequent values of one span attribute over the last 24 hours."""
    bound = build_attribute_suggest_query(key or "", q, store.database)
    lines = await store_query(request, store, bound)
    return suggestion_items(lines, ATTRIBUTE_SUGGESTIONS.column)


@router.get("/api/traces/{trace_id}")
async def get_trace(
    request: Request,
    trace_id: str,
    store: ClickHouseClient = Depends(get_store),
):
    """All spans of a trace in chronological order."""
    try:
        bound = build_trace_detail_query(trace_id, store.database)
        lines = await store_query(request, store, bound)
        spans = decode_rows(lines)

        logger.info(f"Trace {trace_id}: {len(spans)} spans")
        return {"traceId": trace_id, "spans": spans_to_wire(spans)}

    except (BadRequest, UpstreamError, ClientDisconnected):
        raise

    except Exception as e:
        logger.error(f"Error getting trace {trace_id}: {e}")
        raise HTTPException(status_code=500, detail=str(e))


@router.get("/api/traces/{trace_id}/flame")
async def get_flame(
    request: Request,
    trace_id: str,
    group_by: Optional[str] = Query(None, alias="groupBy"),
    mode: Optional[str] = Query(None),
    store: ClickHouseClient = Depends(get_store),
):
    """Flame graph of one trace.

    groupBy: service | operation | name | service_operation (default)
    mode: total (default) | self
    """
    trace_id = trace_id.lower()
    try:
        bound = build_flame_query(trace_id, store.database)
        lines = await store_query(request, store, bound)
        spans = materialize_spans(lines)

        root = build_flame_graph(
            trace_id, spans, GroupBy.parse(group_by), FlameMode.parse(mode)
        )
        logger.info(f"Flame for trace {trace_id}: {len(spans)} spans")
        return JSONResponse(content=flame_to_wire(root))

    except (BadRequest, UpstreamError, ClientDisconnected):
        raise

    except Exception as e:
        logger.error(f"Error building flame graph for {trace_id}: {e}")
        raise HTTPException(status_code=500, detail=str(e))


#=====================
# Pass-through proxies
#=====================

@router.post("/api/metrics/query")
async def metrics_query(
    body: MetricsQueryRequest,
    proxy: MetricsProxy = Depends(get_metrics_proxy),
) -> Response:
    """Range query relayed to Prometheus; start/end/step default to the last hour at 60s."""
    return await proxy.query_range(body)


@router.post("/api/logs/search")
async def logs_search(
    body: LogsSearchRequest,
    proxy: LogsProxy = Depends(get_logs_proxy),
) -> Response:
    """LogsQL query relayed to VictoriaLogs."""
    return await proxy.search(body)


#=====================
# App factory
#=====================

def register_error_handlers(app: FastAPI) -> None:
    """Every outward-facing error is rendered as {"error": <message>}."""

    @app.exception_handler(BadRequest)
    async def bad_request_handler(request: Request, exc: BadRequest):
        return error_response(400, exc.message)

    @app.exception_handler(UpstreamError)
    async def upstream_error_handler(request: Request, exc: UpstreamError):
        return error_response(502, exc.message)

    @app.exception_handler(ClientDisconnected)
    async def client_disconnected_handler(request: Request, exc: ClientDisconnected):
        # nobody is listening; 499 only shows up in access logs
        return error_response(499, "client disconnected")

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        errors = exc.errors()
        if any(err.get("type") == "json_invalid" for err in errors):
            return error_response(400, "bad json")
        detail = "; ".join(
            f"{'.'.join(str(part) for part in err.get('loc', ()))}: {err.get('msg')}"
            for err in errors
        )
        return error_response(400, detail or "bad request")

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(request: Request, exc: StarletteHTTPException):
        return error_response(exc.status_code, str(exc.detail))


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """Build the application around one immutable Settings value.

    The shared httpx client is created here rather than in the lifespan so
    the app also works where lifespan events are disabled (Lambda).
    """
    settings = settings or load_settings()
    http_client = httpx.AsyncClient(timeout=settings.request_timeout)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        await http_client.aclose()

    app = FastAPI(
        title="Trace Explorer",
        description="Backend for the tracing UI: trace list, trace detail and flame graphs over ClickHouse",
        version="1.0.0",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST"],
        allow_headers=["*"],
    )

    app.state.settings = settings
    app.state.store = ClickHouseClient(settings, http_client)
    app.state.metrics = MetricsProxy(settings, http_client)
    app.state.logs = LogsProxy(settings, http_client)

    register_error_handlers(app)
    app.include_router(router)

    logger.info(
        f"Trace store: {settings.clickhouse_url} (db={settings.clickhouse_database}), "
        f"metrics: {settings.prometheus_url}, logs: {settings.victorialogs_url}"
    )
    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8080)
