from mealticket.domain.errors import DomainError, ErrorCode, ErrorKind
from mealticket.domain.lifecycle import LIVE_STATUSES, ReservationStatus, ensure_live, ensure_transition

__all__ = [
    "DomainError",
    "ErrorCode",
    "ErrorKind",
    "LIVE_STATUSES",
    "ReservationStatus",
    "ensure_live",
    "ensure_transition",
]
