"""Error taxonomy shared by the request handlers and the core modules."""

from typing import Optional

# Upstream bodies are echoed back for diagnostics only
MAX_UPSTREAM_BODY = 4096


def truncate_body(body: Optional[str], max_length: int = MAX_UPSTREAM_BODY) -> str:
    """Cut an upstream response body down to max_length characters."""
    if not body:
        return ""
    if len(body) <= max_length:
        return body
    return body[:max_length]


class BadRequest(Exception):
    """Inbound request is malformed or misses a required parameter (HTTP 400)."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class UpstreamError(Exception):
    """A backend was unreachable, timed out, or answered non-2xx (HTTP 502).

    status_code is None when no response was received at all.
    """

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        body: Optional[str] = None,
    ):
        self.status_code = status_code
        self.body = truncate_body(body)
        if status_code is not None:
            message = f"{message}: upstream {status_code}"
            if self.body:
                message = f"{message}: {self.body}"
        super().__init__(message)
        self.message = message


class DecodeError(Exception):
    """A single store row (or subtree) could not be used.

    Always handled at row level; it never fails a whole response.
    """


class ClientDisconnected(Exception):
    """The caller went away before the trace store answered.

    The in-flight store call has already been cancelled; no body is sent.
    """
