"""Unit tests for the reservation transition table."""

import pytest

from mealticket.domain.errors import (
    AlreadyCancelledError,
    AlreadyUsedError,
    InvalidStateError,
)
from mealticket.domain.lifecycle import (
    ReservationStatus as S,
    can_transition,
    ensure_live,
    ensure_transition,
)


class TestTransitions:
    @pytest.mark.parametrize(
        "current,target",
        [
            (S.pending, S.confirmed),
            (S.pending, S.cancelled),
            (S.confirmed, S.used),
            (S.confirmed, S.cancelled),
        ],
    )
    def test_allowed(self, current, target):
        assert can_transition(current, target)
        ensure_transition(current, target)

    def test_pending_cannot_be_used(self):
        """A ticket for an unpaid reservation can never be consumed."""
        assert not can_transition(S.pending, S.used)
        with pytest.raises(InvalidStateError):
            ensure_transition(S.pending, S.used)

    @pytest.mark.parametrize("target", list(S))
    def test_cancelled_is_terminal(self, target):
        assert not can_transition(S.cancelled, target)
        with pytest.raises(AlreadyCancelledError):
            ensure_transition(S.cancelled, target)

    @pytest.mark.parametrize("target", list(S))
    def test_used_is_terminal(self, target):
        assert not can_transition(S.used, target)
        with pytest.raises(AlreadyUsedError):
            ensure_transition(S.used, target)

    def test_accepts_raw_values(self):
        assert can_transition("confirmed", S.used)


class TestEnsureLive:
    def test_live_states_pass(self):
        ensure_live(S.pending)
        ensure_live(S.confirmed)

    def test_terminal_states_raise_specific_errors(self):
        with pytest.raises(AlreadyCancelledError):
            ensure_live(S.cancelled)
        with pytest.raises(AlreadyUsedError):
            ensure_live(S.used)
