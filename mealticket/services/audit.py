"""Audit trail for mutating operations.

Recording is best effort: it runs after the primary transaction has
committed or rolled back, in its own session, and a failed write is logged
on the ``mealticket.audit`` logger and dropped.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Optional, Protocol

from sqlalchemy.orm import Session

from mealticket.core.permissions import Principal
from mealticket.domain.errors import DomainError
from mealticket.models.audit_event import AuditEvent
from mealticket.utils.timeslots import utc_now

logger = logging.getLogger("mealticket.audit")

SYSTEM_ACTOR = "system"


@dataclass(frozen=True)
class AuditRecord:
    timestamp: datetime
    actor_id: str
    actor_role: str
    action: str
    resource_type: str
    resource_id: Optional[str]
    outcome: str  # success | failure
    details: dict[str, Any] = field(default_factory=dict)
    error_code: Optional[str] = None
    error_message: Optional[str] = None


class AuditSink(Protocol):
    def write(self, record: AuditRecord) -> None: ...


class DatabaseAuditSink:
    """Appends one row to `audit_events` per record, outside any business transaction."""

    def __init__(self, session_factory: Callable[[], Session]) -> None:
        self._session_factory = session_factory

    def write(self, record: AuditRecord) -> None:
        db = self._session_factory()
        try:
            db.add(AuditEvent(
                timestamp=record.timestamp,
                actor_id=record.actor_id,
                actor_role=record.actor_role,
                action=record.action,
                resource_type=record.resource_type,
                resource_id=record.resource_id,
                outcome=record.outcome,
                details=record.details,
                error_code=record.error_code,
                error_message=record.error_message,
            ))
            db.commit()
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()


class AuditEmitter:
    def __init__(self, sink: AuditSink, clock: Callable[[], datetime] = utc_now) -> None:
        self._sink = sink
        self._clock = clock

    def record(
        self,
        actor: Optional[Principal],
        action: str,
        resource_type: str,
        resource_id: Optional[Any],
        outcome: str,
        details: Optional[dict[str, Any]] = None,
        error: Optional[BaseException] = None,
    ) -> None:
        error_code = None
        error_message = None
        if isinstance(error, DomainError):
            error_code = error.code.value
            error_message = error.message
        elif error is not None:
            error_code = "INTERNAL_ERROR"
            error_message = str(error) or error.__class__.__name__

        record = AuditRecord(
            timestamp=self._clock(),
            actor_id=actor.user_id if actor and actor.user_id else SYSTEM_ACTOR,
            actor_role=actor.role.value if actor and actor.role else SYSTEM_ACTOR,
            action=action,
            resource_type=resource_type,
            resource_id=str(resource_id) if resource_id is not None else None,
            outcome=outcome,
            details=_jsonable(details or {}),
            error_code=error_code,
            error_message=error_message,
        )
        try:
            self._sink.write(record)
        except Exception:
            logger.exception(
                "Failed to write audit event action=%s resource=%s/%s outcome=%s",
                action, resource_type, record.resource_id, outcome,
            )

    def success(self, actor, action, resource_type, resource_id, details=None) -> None:
        self.record(actor, action, resource_type, resource_id, "success", details)

    def failure(self, actor, action, resource_type, resource_id, error, details=None) -> None:
        self.record(actor, action, resource_type, resource_id, "failure", details, error)


def mask_token(token: Optional[str]) -> Optional[str]:
    """Keep enough of a ticket token to correlate, never the whole thing."""
    if not token:
        return None
    return token[:20] + "..."


def _jsonable(details: dict[str, Any]) -> dict[str, Any]:
    out = {}
    for key, value in details.items():
        if value is None or isinstance(value, (str, int, float, bool)):
            out[key] = value
        elif isinstance(value, datetime):
            out[key] = value.isoformat()
        else:
            out[key] = str(value)
    return out
