"""Reservation lifecycle: the closed set of states and allowed transitions."""

import enum

from mealticket.domain.errors import (
    AlreadyCancelledError,
    AlreadyUsedError,
    InvalidStateError,
)


class ReservationStatus(str, enum.Enum):
    pending = "pending"
    confirmed = "confirmed"
    cancelled = "cancelled"
    used = "used"


LIVE_STATUSES = frozenset({ReservationStatus.pending, ReservationStatus.confirmed})

TRANSITIONS: dict[ReservationStatus, frozenset[ReservationStatus]] = {
    ReservationStatus.pending: frozenset({ReservationStatus.confirmed, ReservationStatus.cancelled}),
    ReservationStatus.confirmed: frozenset({ReservationStatus.used, ReservationStatus.cancelled}),
    ReservationStatus.cancelled: frozenset(),
    ReservationStatus.used: frozenset(),
}


def can_transition(current: ReservationStatus, target: ReservationStatus) -> bool:
    return target in TRANSITIONS[ReservationStatus(current)]


def ensure_transition(current: ReservationStatus, target: ReservationStatus) -> None:
    """Raise unless ``current -> target`` is in the transition table.

    Terminal states get their own error so callers can tell a double
    cancel from a cancel of a consumed ticket.
    """
    current = ReservationStatus(current)
    if can_transition(current, target):
        return
    if current == ReservationStatus.cancelled:
        raise AlreadyCancelledError()
    if current == ReservationStatus.used:
        raise AlreadyUsedError()
    raise InvalidStateError(
        f"Cannot move reservation from '{current.value}' to '{ReservationStatus(target).value}'"
    )


def ensure_live(current: ReservationStatus) -> None:
    """Raise unless the reservation is still pending or confirmed."""
    current = ReservationStatus(current)
    if current in LIVE_STATUSES:
        return
    if current == ReservationStatus.cancelled:
        raise AlreadyCancelledError()
    raise AlreadyUsedError()
