"""Request dependencies shared by the scheduling routes."""
from __future__ import annotations

from uuid import UUID

from fastapi import Request

from study_scheduler.api.errors import http_error_from
from study_scheduler.core.config import settings
from study_scheduler.services.errors import AuthError


def get_current_user_id(request: Request) -> UUID:
    """Resolve the caller from the header set by the upstream auth gateway."""
    raw = request.headers.get(settings.user_id_header)
    if not raw:
        raise http_error_from(AuthError("Unauthorized"))
    try:
        return UUID(raw.strip())
    except ValueError as exc:
        raise http_error_from(AuthError("Unauthorized")) from exc
