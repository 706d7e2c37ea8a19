"""Per-request context utilities."""
from __future__ import annotations

from contextvars import ContextVar

request_id_ctx_var: ContextVar[str | None] = ContextVar("request_id", default=None)


def get_request_id() -> str | None:
    """Return the request id bound to the current request, if any."""
    return request_id_ctx_var.get()
