"""Pass-through proxies to the metrics (Prometheus) and logs (VictoriaLogs) backends.

No transformation beyond filling defaults; the upstream status and body are
relayed as-is. Connection failures become UpstreamError.
"""

import time
import logging
from typing import Dict

import httpx
from fastapi.responses import Response

from .config import Settings
from .errors import UpstreamError
from .models import MetricsQueryRequest, LogsSearchRequest

logger = logging.getLogger(__name__)

DEFAULT_RANGE_SECONDS = 3600
DEFAULT_STEP_SECONDS = 60


def metrics_range_params(request: MetricsQueryRequest) -> Dict[str, str]:
    """query_range parameters with the trailing-hour defaults applied."""
    end = request.end or float(int(time.time()))
    start = request.start or end - DEFAULT_RANGE_SECONDS
    step = request.step or DEFAULT_STEP_SECONDS
    return {
        "query": request.query,
        "start": f"{start:f}",
        "end": f"{end:f}",
        "step": f"{step:f}",
    }


def _relay(resp: httpx.Response) -> Response:
    return Response(
        content=resp.content,
        status_code=resp.status_code,
        media_type="application/json",
    )


class MetricsProxy:
    """Forwards range queries to Prometheus /api/v1/query_range."""

    def __init__(self, settings: Settings, http_client: httpx.AsyncClient):
        self.url = settings.prometheus_url.rstrip("/")
        self._client = http_client

    async def query_range(self, request: MetricsQueryRequest) -> Response:
        try:
            resp = await self._client.get(
                f"{self.url}/api/v1/query_range",
                params=metrics_range_params(request),
            )
        except httpx.RequestError as e:
            logger.error(f"Metrics backend unreachable: {e}")
            raise UpstreamError(f"metrics backend unreachable: {e}") from e
        return _relay(resp)

    async def ping(self, timeout: float) -> bool:
        try:
            resp = await self._client.get(f"{self.url}/-/healthy", timeout=timeout)
            return resp.status_code == 200

        except (httpx.RequestError, httpx.TimeoutException):
            return False


class LogsProxy:
    """Forwards free-text queries to VictoriaLogs /select/logsql/query."""

    def __init__(self, settings: Settings, http_client: httpx.AsyncClient):
        self.url = settings.victorialogs_url.rstrip("/")
        self._client = http_client

    async def search(self, request: LogsSearchRequest) -> Response:
        try:
            # form-encoded body, as LogsQL expects
            resp = await self._client.post(
                f"{self.url}/select/logsql/query",
                data={"query": request.query},
            )
        except httpx.RequestError as e:
            logger.error(f"Logs backend unreachable: {e}")
            raise UpstreamError(f"logs backend unreachable: {e}") from e
        return _relay(resp)
