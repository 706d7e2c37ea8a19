"""Append entries to the scheduling audit trail."""
from __future__ import annotations

from typing import Any, Dict, Optional
from uuid import UUID

from sqlalchemy.orm import Session

from study_scheduler.db.models.schedule_action_log import ScheduleActionLog


def record_action(
    db: Session,
    *,
    user_id: UUID,
    action_type: str,
    payload: Dict[str, Any],
    reason: Optional[str] = None,
    request_id: Optional[str] = None,
) -> ScheduleActionLog:
    """Stage a log row in the current transaction; the caller commits."""
    action_payload = dict(payload)
    if request_id:
        action_payload["request_id"] = request_id
    log = ScheduleActionLog(
        user_id=user_id,
        action_type=action_type,
        action_payload=action_payload,
        reason=reason,
    )
    db.add(log)
    return log
