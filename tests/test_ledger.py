"""Tests for CapacityLedger against a real SQLite database."""

import logging
import threading
import uuid
from datetime import timedelta

import pytest

from mealticket.db.session import run_in_transaction
from mealticket.domain.errors import (
    InvalidArgumentError,
    SlotFullError,
    SlotInactiveError,
    SlotNotFoundError,
)
from mealticket.models.time_slot import TimeSlot
from mealticket.services.ledger import CapacityLedger


class TestTryReserve:
    def test_reserves_within_capacity(self, db, make_slot, slot_usage):
        slot_id = make_slot(capacity=3)
        ledger = CapacityLedger(db)

        run_in_transaction(db, lambda: ledger.try_reserve(slot_id, 2))

        assert slot_usage(slot_id) == 2

    def test_full_slot_rejected_without_change(self, db, make_slot, slot_usage):
        slot_id = make_slot(capacity=3)
        ledger = CapacityLedger(db)
        run_in_transaction(db, lambda: ledger.try_reserve(slot_id, 2))

        with pytest.raises(SlotFullError) as exc_info:
            run_in_transaction(db, lambda: ledger.try_reserve(slot_id, 2))

        assert "Only 1 spot(s) available, requested 2" in exc_info.value.message
        assert slot_usage(slot_id) == 2

    def test_exact_fill_allowed(self, db, make_slot, slot_usage):
        slot_id = make_slot(capacity=2)
        ledger = CapacityLedger(db)

        run_in_transaction(db, lambda: ledger.try_reserve(slot_id, 2))

        assert slot_usage(slot_id) == 2

    def test_unknown_slot(self, db):
        with pytest.raises(SlotNotFoundError):
            CapacityLedger(db).try_reserve(uuid.uuid4(), 1)

    def test_inactive_slot(self, db, make_slot):
        slot_id = make_slot(is_active=False)
        with pytest.raises(SlotInactiveError):
            CapacityLedger(db).try_reserve(slot_id, 1)

    @pytest.mark.parametrize("units", [0, -1, True, 1.5])
    def test_units_must_be_positive_int(self, db, make_slot, units):
        slot_id = make_slot()
        with pytest.raises(InvalidArgumentError):
            CapacityLedger(db).try_reserve(slot_id, units)

    def test_loaded_instance_sees_new_count(self, db, make_slot):
        slot_id = make_slot(capacity=5)
        slot = db.get(TimeSlot, slot_id)
        assert slot.current_reservations == 0

        CapacityLedger(db).try_reserve(slot_id, 2)

        assert slot.current_reservations == 2
        assert slot.remaining_capacity == 3
        db.rollback()

    def test_concurrent_reserves_never_oversell(self, session_factory, make_slot, slot_usage):
        """Ten callers race for five places; exactly five win."""
        slot_id = make_slot(capacity=5)
        results = []
        lock = threading.Lock()
        barrier = threading.Barrier(10)

        def worker():
            session = session_factory()
            ledger = CapacityLedger(session)
            barrier.wait()
            try:
                run_in_transaction(session, lambda: ledger.try_reserve(slot_id, 1))
                outcome = "ok"
            except SlotFullError:
                outcome = "full"
            finally:
                session.close()
            with lock:
                results.append(outcome)

        threads = [threading.Thread(target=worker) for _ in range(10)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert results.count("ok") == 5
        assert results.count("full") == 5
        assert slot_usage(slot_id) == 5


class TestRelease:
    def test_release_returns_units(self, db, make_slot, slot_usage):
        slot_id = make_slot(capacity=5)
        ledger = CapacityLedger(db)
        run_in_transaction(db, lambda: ledger.try_reserve(slot_id, 3))

        run_in_transaction(db, lambda: ledger.release(slot_id, 2))

        assert slot_usage(slot_id) == 1

    def test_underflow_floors_at_zero(self, db, make_slot, slot_usage, caplog):
        slot_id = make_slot(capacity=5)
        ledger = CapacityLedger(db)
        run_in_transaction(db, lambda: ledger.try_reserve(slot_id, 1))

        with caplog.at_level(logging.CRITICAL, logger="mealticket.services.ledger"):
            run_in_transaction(db, lambda: ledger.release(slot_id, 3))

        assert slot_usage(slot_id) == 0
        assert any("underflow" in r.message for r in caplog.records)

    def test_unknown_slot(self, db):
        with pytest.raises(SlotNotFoundError):
            CapacityLedger(db).release(uuid.uuid4(), 1)


class TestTransfer:
    def test_moves_units(self, db, make_slot, slot_usage):
        source = make_slot(capacity=5)
        target = make_slot(starts_in=timedelta(days=2), capacity=5)
        ledger = CapacityLedger(db)
        run_in_transaction(db, lambda: ledger.try_reserve(source, 2))

        run_in_transaction(db, lambda: ledger.transfer(source, target, 2))

        assert slot_usage(source) == 0
        assert slot_usage(target) == 2

    def test_full_target_changes_nothing(self, db, make_slot, slot_usage):
        """Whichever leg runs first, a refused reserve leaves both slots as they were."""
        source = make_slot(capacity=5)
        target = make_slot(starts_in=timedelta(days=2), capacity=1)
        ledger = CapacityLedger(db)
        run_in_transaction(db, lambda: ledger.try_reserve(source, 2))

        with pytest.raises(SlotFullError):
            run_in_transaction(db, lambda: ledger.transfer(source, target, 2))

        assert slot_usage(source) == 2
        assert slot_usage(target) == 0

    def test_same_slot_is_noop(self, db, make_slot, slot_usage):
        slot_id = make_slot(capacity=2)
        ledger = CapacityLedger(db)
        run_in_transaction(db, lambda: ledger.try_reserve(slot_id, 2))

        run_in_transaction(db, lambda: ledger.transfer(slot_id, slot_id, 2))

        assert slot_usage(slot_id) == 2
