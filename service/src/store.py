"""ClickHouse HTTP client for the trace store."""

import logging
from typing import Any, Dict, List, Optional

import httpx

from .config import Settings
from .errors import UpstreamError, truncate_body

logger = logging.getLogger(__name__)


def escape_param(value: Any) -> str:
    """Encode a bound value the way ClickHouse parses param_ values (TSV escaping)."""
    text = str(value)
    return text.replace("\\", "\\\\").replace("\t", "\\t").replace("\n", "\\n")


class ClickHouseClient:
    """Runs one templated query per call against the ClickHouse HTTP interface.

    Query text goes in the POST body, bound values travel as param_<name>
    URL parameters and are substituted server side into {name:Type}
    placeholders. Rows come back as JSONEachRow (one JSON object per line).
    """

    def __init__(self, settings: Settings, http_client: httpx.AsyncClient):
        """Initialize the trace store client.

        Parameters
        ----------
        settings : Settings
            Provides the ClickHouse URL, database and credentials.
        http_client : httpx.AsyncClient
            Shared client, owned by the application lifespan. Its timeout
            bounds every store call.
        """
        self.url = settings.clickhouse_url.rstrip("/")
        self.database = settings.clickhouse_database
        self.auth: Optional[httpx.BasicAuth] = None
        if settings.has_clickhouse_credentials:
            self.auth = httpx.BasicAuth(
                settings.clickhouse_user, settings.clickhouse_password
            )
        self.readiness_timeout = settings.readiness_timeout
        self._client = http_client

    def _build_params(self, params: Optional[Dict[str, Any]]) -> Dict[str, str]:
        query_params = {
            "database": self.database,
            "default_format": "JSONEachRow",
        }
        for name, value in (params or {}).items():
            query_params[f"param_{name}"] = escape_param(value)
        return query_params

    async def query_lines(
        self,
        sql: str,
        params: Optional[Dict[str, Any]] = None,
    ) -> List[str]:
        """Execute a query and collect the newline-delimited result rows.

        Parameters
        ----------
        sql : str
            Query text, with {name:Type} placeholders for bound values.
        params : Optional[Dict[str, Any]]
            Values for the placeholders.

        Returns
        -------
        List[str]
            Non-empty response lines, one JSON object each (not yet decoded).

        Raises
        ------
        UpstreamError
            On connection failure, timeout or a non-2xx status. Never retried.
        """
        try:
            async with self._client.stream(
                "POST",
                f"{self.url}/",
                params=self._build_params(params),
                content=sql.encode("utf-8"),
                headers={"Content-Type": "text/plain; charset=utf-8"},
                auth=self.auth,
            ) as resp:
                if resp.status_code >= 300:
                    body = await resp.aread()
                    text = truncate_body(body.decode("utf-8", errors="replace"))
                    logger.error(f"ClickHouse returned {resp.status_code}: {text}")
                    raise UpstreamError("trace store query failed", resp.status_code, text)

                lines = []
                async for line in resp.aiter_lines():
                    line = line.strip()
                    if line:
                        lines.append(line)
                return lines

        except httpx.TimeoutException as e:
            logger.error(f"ClickHouse query timed out: {e}")
            raise UpstreamError(f"trace store timed out: {e}") from e

        except httpx.RequestError as e:
            logger.error(f"ClickHouse unreachable: {e}")
            raise UpstreamError(f"trace store unreachable: {e}") from e

    async def ping(self) -> bool:
        """Check if the trace store answers its /ping endpoint."""
        try:
            resp = await self._client.get(
                f"{self.url}/ping", timeout=self.readiness_timeout
            )
            return resp.status_code == 200

        except (httpx.RequestError, httpx.TimeoutException):
            return False
