"""Typed failures raised by the reservation core.

Every error carries a coarse ``kind`` (what a client can generically react
to) and a specific ``code`` (what actually went wrong).
"""

from enum import Enum


class ErrorKind(str, Enum):
    NOT_FOUND = "not_found"
    INVALID_ARGUMENT = "invalid_argument"
    PERMISSION_DENIED = "permission_denied"
    INVALID_STATE = "invalid_state"
    CONFLICT = "conflict"
    INVALID_TOKEN = "invalid_token"
    INTERNAL = "internal"


class ErrorCode(str, Enum):
    SLOT_NOT_FOUND = "SLOT_NOT_FOUND"
    RESERVATION_NOT_FOUND = "RESERVATION_NOT_FOUND"
    INVALID_ARGUMENT = "INVALID_ARGUMENT"
    PERMISSION_DENIED = "PERMISSION_DENIED"
    UNAUTHENTICATED = "UNAUTHENTICATED"
    INVALID_STATE = "INVALID_STATE"
    SLOT_INACTIVE = "SLOT_INACTIVE"
    ALREADY_CANCELLED = "ALREADY_CANCELLED"
    ALREADY_USED = "ALREADY_USED"
    TOO_LATE_TO_CANCEL = "TOO_LATE_TO_CANCEL"
    PAST_RESERVATION = "PAST_RESERVATION"
    SLOT_FULL = "SLOT_FULL"
    DUPLICATE_RESERVATION = "DUPLICATE_RESERVATION"
    INVALID_TOKEN = "INVALID_TOKEN"
    INTERNAL_ERROR = "INTERNAL_ERROR"


class DomainError(Exception):
    """Base domain error with code, kind and user-safe message."""

    code: ErrorCode = ErrorCode.INTERNAL_ERROR
    kind: ErrorKind = ErrorKind.INTERNAL
    default_message = "Internal error"

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)

    def __str__(self) -> str:
        return f"{self.code.value}: {self.message}"


class NotFoundError(DomainError):
    kind = ErrorKind.NOT_FOUND


class SlotNotFoundError(NotFoundError):
    code = ErrorCode.SLOT_NOT_FOUND
    default_message = "Time slot not found"

    def __init__(self, slot_id=None) -> None:
        super().__init__()
        self.slot_id = slot_id


class ReservationNotFoundError(NotFoundError):
    code = ErrorCode.RESERVATION_NOT_FOUND
    default_message = "Reservation not found"

    def __init__(self, reservation_id=None) -> None:
        super().__init__()
        self.reservation_id = reservation_id


class InvalidArgumentError(DomainError):
    code = ErrorCode.INVALID_ARGUMENT
    kind = ErrorKind.INVALID_ARGUMENT
    default_message = "Invalid argument"


class PermissionDeniedError(DomainError):
    code = ErrorCode.PERMISSION_DENIED
    kind = ErrorKind.PERMISSION_DENIED
    default_message = "Access denied"


class UnauthenticatedError(PermissionDeniedError):
    code = ErrorCode.UNAUTHENTICATED
    default_message = "User must be authenticated"


class InvalidStateError(DomainError):
    code = ErrorCode.INVALID_STATE
    kind = ErrorKind.INVALID_STATE
    default_message = "Reservation is not in a state that allows this operation"


class SlotInactiveError(InvalidStateError):
    code = ErrorCode.SLOT_INACTIVE
    default_message = "Time slot is not active"


class AlreadyCancelledError(InvalidStateError):
    code = ErrorCode.ALREADY_CANCELLED
    default_message = "Reservation is already cancelled"


class AlreadyUsedError(InvalidStateError):
    code = ErrorCode.ALREADY_USED
    default_message = "Reservation has already been used"


class TooLateToCancelError(InvalidStateError):
    code = ErrorCode.TOO_LATE_TO_CANCEL
    default_message = "Reservation cannot be changed less than 2 hours before meal time"


class PastReservationError(InvalidStateError):
    code = ErrorCode.PAST_RESERVATION
    default_message = "Reservation time has already passed"


class ConflictError(DomainError):
    kind = ErrorKind.CONFLICT


class SlotFullError(ConflictError):
    code = ErrorCode.SLOT_FULL
    default_message = "Time slot is full"


class DuplicateReservationError(ConflictError):
    code = ErrorCode.DUPLICATE_RESERVATION
    default_message = "User already has a reservation for this time slot"


class InvalidTokenError(DomainError):
    code = ErrorCode.INVALID_TOKEN
    kind = ErrorKind.INVALID_TOKEN
    default_message = "Invalid QR token"


class InternalError(DomainError):
    code = ErrorCode.INTERNAL_ERROR
    kind = ErrorKind.INTERNAL
