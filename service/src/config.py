"""Runtime configuration for the trace explorer backend.

Values are read from the process environment (and an optional .env file) once,
then frozen into a Settings object that is handed to every component.
"""

import os
import logging
from typing import List

from dotenv import load_dotenv, find_dotenv
from pydantic import BaseModel, ConfigDict, Field

logger = logging.getLogger(__name__)

DEFAULT_CORS_ORIGINS = "http://localhost:3000,http://localhost:5173"  # Dev UI default


class Settings(BaseModel):
    """Backend URLs, credentials and client timeouts.

    Immutable once built; components receive it at construction time.
    """

    model_config = ConfigDict(frozen=True)

    clickhouse_url: str = "http://localhost:8123"
    clickhouse_user: str = "default"
    clickhouse_password: str = ""
    clickhouse_database: str = "default"
    prometheus_url: str = "http://localhost:9090"
    victorialogs_url: str = "http://localhost:9428"
    request_timeout: float = Field(default=20.0, gt=0)
    readiness_timeout: float = Field(default=2.0, gt=0)
    cors_origins: List[str] = Field(
        default_factory=lambda: DEFAULT_CORS_ORIGINS.split(",")
    )

    @property
    def has_clickhouse_credentials(self) -> bool:
        return bool(self.clickhouse_user or self.clickhouse_password)


def _getenv(key: str, default: str) -> str:
    """Like os.getenv, but an empty value also means 'unset'."""
    value = os.getenv(key)
    return value if value else default


def _getenv_float(key: str, default: float) -> float:
    raw = os.getenv(key)
    if not raw:
        return default
    try:
        value = float(raw)
    except ValueError:
        logger.warning(f"Ignoring {key}={raw!r}: not a number, using {default}")
        return default
    if value <= 0:
        logger.warning(f"Ignoring {key}={raw!r}: must be positive, using {default}")
        return default
    return value


def load_settings(dotenv: bool = True) -> Settings:
    """Build Settings from the environment.

    Parameters
    ----------
    dotenv : bool
        Load a .env file first. Real environment variables always win.

    Returns
    -------
    Settings
        Frozen configuration for this process.
    """
    if dotenv:
        load_dotenv(find_dotenv(usecwd=True), override=False)

    origins = _getenv("CORS_ORIGINS", DEFAULT_CORS_ORIGINS)

    return Settings(
        clickhouse_url=_getenv("CH_HTTP_URL", "http://localhost:8123"),
        # an explicitly empty CH_USER means anonymous access
        clickhouse_user=os.getenv("CH_USER", "default"),
        clickhouse_password=os.getenv("CH_PASS", ""),
        clickhouse_database=_getenv("CH_DATABASE", "default"),
        prometheus_url=_getenv("PROM_URL", "http://localhost:9090"),
        victorialogs_url=_getenv("VLOGS_URL", "http://localhost:9428"),
        request_timeout=_getenv_float("UPSTREAM_TIMEOUT", 20.0),
        readiness_timeout=_getenv_float("READINESS_TIMEOUT", 2.0),
        cors_origins=[o.strip() for o in origins.split(",") if o.strip()],
    )
