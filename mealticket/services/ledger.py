"""Per-slot capacity accounting.

Every mutation is a single guarded UPDATE on the slot's row, so the
check-and-increment is atomic in the database itself: concurrent callers on
one slot are linearized by the row lock, callers on different slots never
touch each other's rows. The ledger never commits; it runs inside the
caller's transaction.
"""

import logging
from uuid import UUID

from sqlalchemy.orm import Session

from mealticket.domain.errors import (
    InvalidArgumentError,
    SlotFullError,
    SlotInactiveError,
    SlotNotFoundError,
)
from mealticket.models.time_slot import TimeSlot

logger = logging.getLogger(__name__)


class CapacityLedger:
    def __init__(self, db: Session) -> None:
        self.db = db

    def try_reserve(self, slot_id: UUID, units: int) -> None:
        """Claim `units` seats on the slot or raise without changing anything."""
        _check_units(units)
        updated = (
            self.db.query(TimeSlot)
            .filter(
                TimeSlot.id == slot_id,
                TimeSlot.is_active == True,  # noqa: E712
                TimeSlot.current_reservations + units <= TimeSlot.max_capacity,
            )
            .update(
                {TimeSlot.current_reservations: TimeSlot.current_reservations + units},
                synchronize_session=False,
            )
        )
        if updated == 1:
            self._refresh(slot_id)
            return

        # Nothing matched: find out why
        slot = self._load(slot_id)
        if slot is None:
            raise SlotNotFoundError(slot_id)
        if not slot.is_active:
            raise SlotInactiveError()
        logger.info(
            "Slot %s full: %d/%d, requested %d",
            slot_id, slot.current_reservations, slot.max_capacity, units,
        )
        raise SlotFullError(
            f"Only {slot.remaining_capacity} spot(s) available, requested {units}"
        )

    def release(self, slot_id: UUID, units: int) -> None:
        """Give `units` back to the slot, never going below zero."""
        _check_units(units)
        updated = (
            self.db.query(TimeSlot)
            .filter(TimeSlot.id == slot_id, TimeSlot.current_reservations >= units)
            .update(
                {TimeSlot.current_reservations: TimeSlot.current_reservations - units},
                synchronize_session=False,
            )
        )
        if updated == 1:
            self._refresh(slot_id)
            return

        slot = self._load(slot_id)
        if slot is None:
            raise SlotNotFoundError(slot_id)
        # Counter drift: more units released than were ever reserved
        logger.critical(
            "Capacity underflow on slot %s: releasing %d with only %d reserved; flooring at 0",
            slot_id, units, slot.current_reservations,
        )
        self.db.query(TimeSlot).filter(TimeSlot.id == slot_id).update(
            {TimeSlot.current_reservations: 0}, synchronize_session=False
        )
        self._refresh(slot_id)

    def transfer(self, from_slot_id: UUID, to_slot_id: UUID, units: int) -> None:
        """
        Move `units` from one slot to another as part of the current transaction.

        If the reserve leg raises, the release leg is discarded with the
        enclosing rollback. Rows are touched in a stable order so two
        opposite transfers cannot deadlock.
        """
        _check_units(units)
        if from_slot_id == to_slot_id:
            return
        if str(from_slot_id) < str(to_slot_id):
            self.release(from_slot_id, units)
            self.try_reserve(to_slot_id, units)
        else:
            self.try_reserve(to_slot_id, units)
            self.release(from_slot_id, units)

    def _load(self, slot_id: UUID) -> TimeSlot | None:
        return (
            self.db.query(TimeSlot)
            .populate_existing()
            .filter(TimeSlot.id == slot_id)
            .first()
        )

    def _refresh(self, slot_id: UUID) -> None:
        # Keep an already-loaded instance in step with the row
        slot = self.db.identity_map.get(Session.identity_key(TimeSlot, slot_id))
        if slot is not None:
            self.db.expire(slot, ["current_reservations"])


def _check_units(units: int) -> None:
    if not isinstance(units, int) or isinstance(units, bool) or units < 1:
        raise InvalidArgumentError("Capacity must be a positive integer")
