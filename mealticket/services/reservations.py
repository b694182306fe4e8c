"""Reservation lifecycle orchestration.

Every mutating operation follows the same shape:

1. the Authorization Guard checks the caller's role,
2. the state change runs as one atomic unit (``run_in_transaction``),
   with capacity moving through the ``CapacityLedger`` and status moving
   through guarded compare-and-set updates,
3. the outcome, success or failure, is handed to the audit emitter after
   the transaction has finished.
"""

import enum
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal, InvalidOperation
from typing import Any, Callable, Iterable, Optional
from uuid import UUID

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, joinedload

from mealticket.core.config import settings
from mealticket.core.permissions import (
    Operation,
    Principal,
    authorize,
    ensure_owner_or_elevated,
)
from mealticket.core.tickets import TicketCodec
from mealticket.db.session import run_in_transaction
from mealticket.domain.errors import (
    AlreadyUsedError,
    DomainError,
    DuplicateReservationError,
    InvalidArgumentError,
    InvalidStateError,
    InvalidTokenError,
    PastReservationError,
    ReservationNotFoundError,
    SlotInactiveError,
    SlotNotFoundError,
    TooLateToCancelError,
)
from mealticket.domain.lifecycle import (
    LIVE_STATUSES,
    ReservationStatus,
    ensure_live,
    ensure_transition,
)
from mealticket.models.reservation import Reservation
from mealticket.models.time_slot import TimeSlot
from mealticket.models.user import User
from mealticket.services.audit import AuditEmitter, mask_token
from mealticket.services.ledger import CapacityLedger
from mealticket.utils.timeslots import as_utc, utc_now

logger = logging.getLogger(__name__)

RESOURCE = "reservation"
DEFAULT_CANCEL_REASON = "User cancelled"


class ValidationOutcome(str, enum.Enum):
    used_now = "used_now"
    already_used = "already_used"
    invalid_state = "invalid_state"
    invalid_token = "invalid_token"


@dataclass
class TicketValidation:
    outcome: ValidationOutcome
    message: str
    reservation: Optional[Reservation] = None
    used_at: Optional[datetime] = None
    validated_by: Optional[str] = None
    user: Optional[User] = None

    @property
    def success(self) -> bool:
        return self.outcome == ValidationOutcome.used_now


@dataclass(frozen=True)
class IssuedTicket:
    reservation_id: UUID
    token: str
    expires_at: datetime


class ReservationService:
    def __init__(
        self,
        db: Session,
        codec: TicketCodec,
        audit: AuditEmitter,
        clock: Callable[[], datetime] = utc_now,
        lead_time: Optional[timedelta] = None,
        max_units: Optional[int] = None,
    ) -> None:
        self.db = db
        self.codec = codec
        self.audit = audit
        self.clock = clock
        self.ledger = CapacityLedger(db)
        if lead_time is None:
            lead_time = timedelta(minutes=settings.CANCEL_LEAD_TIME_MINUTES)
        if max_units is None:
            max_units = settings.MAX_UNITS_PER_RESERVATION
        self.lead_time = lead_time
        self.max_units = max_units

    # ------------------------------------------------------------------
    # Create
    # ------------------------------------------------------------------

    def create_reservation(self, principal: Principal, slot_id, capacity: int, amount) -> Reservation:
        """
        Claim `capacity` seats on a slot for the calling student.

        The capacity claim and the reservation row commit together; any
        failure after the claim rolls the claim back.
        """
        action = Operation.create_reservation.value
        details = {"time_slot_id": slot_id, "capacity": capacity, "amount": amount}
        try:
            authorize(principal, Operation.create_reservation)
            slot_uuid = _parse_uuid(slot_id, "time slot id")
            units, price = self._check_create_args(capacity, amount)
            reservation = self._in_transaction(
                lambda: self._create(principal, slot_uuid, units, price)
            )
        except Exception as exc:
            self._fail(principal, action, None, exc, details)
            raise

        logger.info(
            "Reservation %s created for user %s on slot %s (%d unit(s))",
            reservation.id, principal.user_id, slot_uuid, units,
        )
        self.audit.success(principal, action, RESOURCE, reservation.id, details)
        return reservation

    def _check_create_args(self, capacity, amount) -> tuple[int, Decimal]:
        if not isinstance(capacity, int) or isinstance(capacity, bool) or capacity < 1:
            raise InvalidArgumentError("Capacity must be a positive integer")
        if self.max_units is not None and capacity > self.max_units:
            raise InvalidArgumentError(f"At most {self.max_units} places per reservation")
        try:
            price = Decimal(str(amount))
        except (InvalidOperation, TypeError, ValueError):
            raise InvalidArgumentError("Amount must be a number") from None
        if not price.is_finite() or price <= 0:
            raise InvalidArgumentError("Amount must be positive")
        return capacity, price

    def _create(self, principal: Principal, slot_id: UUID, units: int, amount: Decimal) -> Reservation:
        now = self.clock()
        self.ledger.try_reserve(slot_id, units)

        slot = self.db.get(TimeSlot, slot_id)
        if as_utc(slot.start_time) <= now:
            raise SlotInactiveError("Time slot has already started")
        if self._has_live_reservation(principal.user_id, slot_id):
            raise DuplicateReservationError()

        reservation = Reservation(
            user_id=principal.user_id,
            time_slot_id=slot_id,
            capacity=units,
            amount=amount,
            unit_price=slot.price,
            total_price=slot.price * units,
            status=ReservationStatus.pending,
            created_at=now,
        )
        self.db.add(reservation)
        self.db.flush()
        return reservation

    # ------------------------------------------------------------------
    # Confirm (payment completed upstream)
    # ------------------------------------------------------------------

    def confirm_reservation(self, principal: Principal, reservation_id, payment_reference: str) -> Reservation:
        action = Operation.confirm_reservation.value
        details = {"payment_reference": payment_reference}
        try:
            authorize(principal, Operation.confirm_reservation)
            res_uuid = _parse_uuid(reservation_id, "reservation id")
            if not payment_reference:
                raise InvalidArgumentError("Payment reference is required")
            reservation = self._in_transaction(
                lambda: self._confirm(principal, res_uuid, payment_reference)
            )
        except Exception as exc:
            self._fail(principal, action, reservation_id, exc, details)
            raise

        self.audit.success(principal, action, RESOURCE, reservation.id, details)
        return reservation

    def _confirm(self, principal: Principal, reservation_id: UUID, payment_reference: str) -> Reservation:
        now = self.clock()
        reservation = self._get_reservation(reservation_id, for_update=True)
        ensure_owner_or_elevated(principal, reservation.user_id)
        ensure_transition(reservation.status, ReservationStatus.confirmed)

        self._compare_and_set(
            reservation,
            expected=[ReservationStatus.pending],
            values={
                Reservation.status: ReservationStatus.confirmed,
                Reservation.confirmed_at: now,
                Reservation.payment_reference: payment_reference,
            },
            target=ReservationStatus.confirmed,
        )
        return reservation

    # ------------------------------------------------------------------
    # Ticket issuance
    # ------------------------------------------------------------------

    def issue_ticket(self, principal: Principal, reservation_id) -> IssuedTicket:
        """Mint a fresh ticket; any earlier token for the reservation stops validating."""
        action = Operation.issue_ticket.value
        try:
            authorize(principal, Operation.issue_ticket)
            res_uuid = _parse_uuid(reservation_id, "reservation id")
            ticket = self._in_transaction(lambda: self._issue(principal, res_uuid))
        except Exception as exc:
            self._fail(principal, action, reservation_id, exc, {"reservation_id": reservation_id})
            raise

        self.audit.success(
            principal, action, RESOURCE, ticket.reservation_id,
            {"reservation_id": ticket.reservation_id, "qr_token": mask_token(ticket.token)},
        )
        return ticket

    def _issue(self, principal: Principal, reservation_id: UUID) -> IssuedTicket:
        now = self.clock()
        reservation = self._get_reservation(reservation_id, for_update=True)
        ensure_owner_or_elevated(principal, reservation.user_id)
        if reservation.status != ReservationStatus.confirmed:
            raise InvalidStateError("Reservation must be confirmed to generate QR code")

        token = self.codec.issue(
            reservation.id,
            reservation.user_id,
            reservation.time_slot.start_time,
            reservation.capacity,
        )
        self._compare_and_set(
            reservation,
            expected=[ReservationStatus.confirmed],
            values={Reservation.qr_token: token, Reservation.qr_generated_at: now},
        )
        expires_at = now.replace(microsecond=0) + self.codec.ttl
        return IssuedTicket(reservation_id=reservation.id, token=token, expires_at=expires_at)

    # ------------------------------------------------------------------
    # Ticket validation (point of service)
    # ------------------------------------------------------------------

    def validate_ticket(self, principal: Principal, token: str) -> TicketValidation:
        """
        Consume a ticket exactly once.

        Bad tokens, consumed tickets and reservations in the wrong state are
        reported as outcomes rather than raised, and audited as failures.
        """
        action = Operation.validate_ticket.value
        details = {"qr_token": mask_token(token)}
        try:
            authorize(principal, Operation.validate_ticket)
            result = self._validate(principal, token)
        except Exception as exc:
            self._fail(principal, action, None, exc, details)
            raise

        resource_id = result.reservation.id if result.reservation is not None else None
        details["result"] = result.outcome.value
        if result.success:
            details["student_id"] = result.reservation.user_id
            details["student_name"] = display_name(result.user)
            logger.info("Ticket for reservation %s validated by %s", resource_id, principal.user_id)
            self.audit.success(principal, action, RESOURCE, resource_id, details)
        else:
            logger.info("Ticket rejected (%s) for reservation %s", result.outcome.value, resource_id)
            error = _REJECTION_ERRORS[result.outcome](result.message)
            self.audit.failure(principal, action, RESOURCE, resource_id, error, details)
        return result

    def _validate(self, principal: Principal, token: str) -> TicketValidation:
        try:
            claims = self.codec.verify(token)
            reservation_id = _parse_uuid(claims.sub, "reservation id")
        except (InvalidTokenError, InvalidArgumentError) as exc:
            return TicketValidation(ValidationOutcome.invalid_token, exc.message)

        def work() -> TicketValidation:
            now = self.clock()
            reservation = self._get_reservation(reservation_id, for_update=True)
            rejected = self._classify_ticket(reservation, token)
            if rejected is not None:
                return rejected

            won = self._compare_and_set(
                reservation,
                expected=[ReservationStatus.confirmed],
                values={
                    Reservation.status: ReservationStatus.used,
                    Reservation.used_at: now,
                    Reservation.validated_by: principal.user_id,
                },
                extra_filters=[Reservation.qr_token == token],
                raise_on_miss=False,
            )
            if not won:
                # another validator got there first
                return self._classify_ticket(reservation, token) or TicketValidation(
                    ValidationOutcome.invalid_state, "Reservation is not confirmed", reservation
                )

            return TicketValidation(
                ValidationOutcome.used_now,
                "Ticket validated successfully",
                reservation,
                used_at=reservation.used_at,
                validated_by=reservation.validated_by,
                user=self.db.get(User, reservation.user_id),
            )

        return self._in_transaction(work)

    def _classify_ticket(self, reservation: Reservation, token: str) -> Optional[TicketValidation]:
        if reservation.status == ReservationStatus.used:
            return TicketValidation(
                ValidationOutcome.already_used,
                "Ticket has already been used",
                reservation,
                used_at=reservation.used_at,
                validated_by=reservation.validated_by,
            )
        if reservation.status != ReservationStatus.confirmed:
            return TicketValidation(
                ValidationOutcome.invalid_state, "Reservation is not confirmed", reservation
            )
        if reservation.qr_token != token:
            return TicketValidation(
                ValidationOutcome.invalid_token, "QR token has been replaced by a newer one", reservation
            )
        return None

    # ------------------------------------------------------------------
    # Cancel
    # ------------------------------------------------------------------

    def cancel_reservation(self, principal: Principal, reservation_id, reason: Optional[str] = None) -> Reservation:
        action = Operation.cancel_reservation.value
        reason = reason or DEFAULT_CANCEL_REASON
        details = {"reason": reason}
        try:
            authorize(principal, Operation.cancel_reservation)
            res_uuid = _parse_uuid(reservation_id, "reservation id")
            reservation = self._in_transaction(lambda: self._cancel(principal, res_uuid, reason))
        except Exception as exc:
            self._fail(principal, action, reservation_id, exc, details)
            raise

        logger.info("Reservation %s cancelled by %s", reservation.id, principal.user_id)
        self.audit.success(principal, action, RESOURCE, reservation.id, details)
        return reservation

    def _cancel(self, principal: Principal, reservation_id: UUID, reason: str) -> Reservation:
        now = self.clock()
        reservation = self._get_reservation(reservation_id, for_update=True)
        ensure_owner_or_elevated(principal, reservation.user_id)
        ensure_transition(reservation.status, ReservationStatus.cancelled)
        self._check_lead_time(reservation.time_slot, now)

        self._compare_and_set(
            reservation,
            expected=LIVE_STATUSES,
            values={
                Reservation.status: ReservationStatus.cancelled,
                Reservation.cancelled_at: now,
                Reservation.cancellation_reason: reason,
                Reservation.modified_at: now,
            },
            target=ReservationStatus.cancelled,
        )
        self.ledger.release(reservation.time_slot_id, reservation.capacity)
        return reservation

    # ------------------------------------------------------------------
    # Modify (move to another slot)
    # ------------------------------------------------------------------

    def modify_reservation(self, principal: Principal, reservation_id, new_slot_id) -> TimeSlot:
        """
        Move a live reservation to another slot.

        Capacity moves with ``CapacityLedger.transfer``; if the new slot
        cannot take the units, nothing changes on either slot. The stored
        ticket is dropped because it names the old slot time.
        """
        action = Operation.modify_reservation.value
        details = {"new_time_slot_id": new_slot_id}
        try:
            authorize(principal, Operation.modify_reservation)
            res_uuid = _parse_uuid(reservation_id, "reservation id")
            slot_uuid = _parse_uuid(new_slot_id, "time slot id")
            old_slot_id, new_slot = self._in_transaction(
                lambda: self._modify(principal, res_uuid, slot_uuid)
            )
        except Exception as exc:
            self._fail(principal, action, reservation_id, exc, details)
            raise

        details["old_time_slot_id"] = old_slot_id
        logger.info("Reservation %s moved from slot %s to %s", reservation_id, old_slot_id, new_slot.id)
        self.audit.success(principal, action, RESOURCE, res_uuid, details)
        return new_slot

    def _modify(self, principal: Principal, reservation_id: UUID, new_slot_id: UUID) -> tuple[UUID, TimeSlot]:
        now = self.clock()
        reservation = self._get_reservation(reservation_id, for_update=True)
        ensure_owner_or_elevated(principal, reservation.user_id)
        ensure_live(reservation.status)
        self._check_lead_time(reservation.time_slot, now)

        old_slot_id = reservation.time_slot_id
        if new_slot_id == old_slot_id:
            raise InvalidArgumentError("Reservation is already in this time slot")

        new_slot = self.db.get(TimeSlot, new_slot_id)
        if new_slot is None:
            raise SlotNotFoundError(new_slot_id)
        if not new_slot.is_active:
            raise SlotInactiveError()
        if as_utc(new_slot.start_time) < now:
            raise PastReservationError("Cannot modify to a past time slot")
        if self._has_live_reservation(reservation.user_id, new_slot_id):
            raise DuplicateReservationError()

        self.ledger.transfer(old_slot_id, new_slot_id, reservation.capacity)
        self._compare_and_set(
            reservation,
            expected=LIVE_STATUSES,
            values={
                Reservation.time_slot_id: new_slot_id,
                Reservation.unit_price: new_slot.price,
                Reservation.total_price: new_slot.price * reservation.capacity,
                Reservation.qr_token: None,
                Reservation.qr_generated_at: None,
                Reservation.modified_at: now,
            },
        )
        self.db.refresh(new_slot)
        return old_slot_id, new_slot

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_reservation(self, principal: Principal, reservation_id) -> Reservation:
        authorize(principal, Operation.view_reservation)
        reservation = self._get_reservation(_parse_uuid(reservation_id, "reservation id"))
        ensure_owner_or_elevated(principal, reservation.user_id)
        return reservation

    def list_reservations(
        self,
        principal: Principal,
        status: Optional[ReservationStatus] = None,
        page: int = 1,
        limit: int = 10,
    ) -> tuple[list[Reservation], int]:
        """Return the caller's own reservations, newest first, and the total count."""
        authorize(principal, Operation.view_reservation)
        query = (
            self.db.query(Reservation)
            .options(joinedload(Reservation.time_slot))
            .filter(Reservation.user_id == principal.user_id)
        )
        if status:
            query = query.filter(Reservation.status == status)

        total = query.count()
        items = (
            query.order_by(Reservation.created_at.desc())
            .offset((page - 1) * limit)
            .limit(limit)
            .all()
        )
        return items, total

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _in_transaction(self, work: Callable[[], Any]) -> Any:
        try:
            return run_in_transaction(self.db, work)
        except IntegrityError as exc:
            # The partial unique index caught a concurrent duplicate
            raise DuplicateReservationError() from exc

    def _get_reservation(self, reservation_id: UUID, for_update: bool = False) -> Reservation:
        query = self.db.query(Reservation).populate_existing().filter(Reservation.id == reservation_id)
        if for_update:
            query = query.with_for_update()
        reservation = query.first()
        if reservation is None:
            raise ReservationNotFoundError(reservation_id)
        return reservation

    def _has_live_reservation(self, user_id: str, slot_id: UUID) -> bool:
        return (
            self.db.query(Reservation.id)
            .filter(
                Reservation.user_id == user_id,
                Reservation.time_slot_id == slot_id,
                Reservation.status.in_(list(LIVE_STATUSES)),
            )
            .first()
            is not None
        )

    def _compare_and_set(
        self,
        reservation: Reservation,
        expected: Iterable[ReservationStatus],
        values: dict,
        target: Optional[ReservationStatus] = None,
        extra_filters: Iterable = (),
        raise_on_miss: bool = True,
    ) -> bool:
        """
        Apply `values` only if the row is still in one of the `expected` states.

        On a miss the instance is reloaded; with `raise_on_miss` the reload is
        re-checked so the caller gets the error matching the row's real state.
        """
        updated = (
            self.db.query(Reservation)
            .filter(
                Reservation.id == reservation.id,
                Reservation.status.in_(list(expected)),
                *extra_filters,
            )
            .update(values, synchronize_session=False)
        )
        self.db.refresh(reservation)
        if updated == 1:
            return True
        if not raise_on_miss:
            return False
        if target is not None:
            ensure_transition(reservation.status, target)
        else:
            ensure_live(reservation.status)
        raise InvalidStateError()

    def _check_lead_time(self, slot: TimeSlot, now: datetime) -> None:
        starts_at = as_utc(slot.start_time)
        if starts_at < now:
            raise PastReservationError()
        if starts_at - now < self.lead_time:
            hours = self.lead_time.total_seconds() / 3600
            raise TooLateToCancelError(
                f"Cannot change a reservation less than {hours:g} hours before meal time"
            )

    def _fail(self, principal, action: str, resource_id, exc: Exception, details: dict) -> None:
        if isinstance(exc, DomainError):
            logger.info("%s failed for %s: %s", action, getattr(principal, "user_id", None), exc)
        else:
            logger.exception("%s failed unexpectedly", action)
        self.audit.failure(principal, action, RESOURCE, resource_id, exc, details)


# Rejections are returned to the caller, not raised; these only label the audit record
_REJECTION_ERRORS = {
    ValidationOutcome.already_used: AlreadyUsedError,
    ValidationOutcome.invalid_state: InvalidStateError,
    ValidationOutcome.invalid_token: InvalidTokenError,
}


def _parse_uuid(value, label: str) -> UUID:
    if isinstance(value, UUID):
        return value
    try:
        return UUID(str(value))
    except (TypeError, ValueError):
        raise InvalidArgumentError(f"Invalid {label}") from None


def display_name(user: Optional[User]) -> str:
    """Name shown at the counter for a reservation owner's profile."""
    if user is not None and user.full_name:
        return user.full_name
    return "Unknown Student"
