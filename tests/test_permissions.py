"""Unit tests for the role permission table."""

import pytest

from mealticket.core.permissions import (
    Operation,
    PERMISSIONS,
    Principal,
    Role,
    authorize,
    ensure_owner_or_elevated,
)
from mealticket.domain.errors import PermissionDeniedError, UnauthenticatedError


class TestAuthorize:
    @pytest.mark.parametrize(
        "operation,allowed",
        [
            (Operation.create_reservation, {Role.student}),
            (Operation.issue_ticket, {Role.student, Role.staff, Role.admin}),
            (Operation.validate_ticket, {Role.staff, Role.admin}),
            (Operation.cancel_reservation, {Role.student, Role.staff, Role.admin}),
            (Operation.modify_reservation, {Role.student, Role.staff, Role.admin}),
            (Operation.generate_time_slots, {Role.admin}),
        ],
    )
    def test_table(self, operation, allowed):
        for role in Role:
            principal = Principal("u-1", role)
            if role in allowed:
                assert authorize(principal, operation) is principal
            else:
                with pytest.raises(PermissionDeniedError):
                    authorize(principal, operation)

    def test_every_operation_has_an_entry(self):
        assert set(PERMISSIONS) == set(Operation)

    def test_missing_principal_is_unauthenticated(self):
        with pytest.raises(UnauthenticatedError):
            authorize(None, Operation.view_reservation)

    def test_missing_role_denied(self):
        """An identity with no role recorded is refused everything."""
        principal = Principal.from_claims("u-1", None)
        for operation in Operation:
            with pytest.raises(PermissionDeniedError):
                authorize(principal, operation)

    def test_unknown_role_treated_as_missing(self):
        principal = Principal.from_claims("u-1", "superuser")
        assert principal.role is None
        with pytest.raises(PermissionDeniedError):
            authorize(principal, Operation.view_reservation)

    def test_empty_user_id_denied(self):
        with pytest.raises(PermissionDeniedError):
            authorize(Principal("", Role.admin), Operation.view_reservation)


class TestOwnership:
    def test_owner_allowed(self):
        ensure_owner_or_elevated(Principal("u-1", Role.student), "u-1")

    def test_other_student_denied(self):
        with pytest.raises(PermissionDeniedError):
            ensure_owner_or_elevated(Principal("u-2", Role.student), "u-1")

    @pytest.mark.parametrize("role", [Role.staff, Role.admin])
    def test_elevated_roles_allowed(self, role):
        ensure_owner_or_elevated(Principal("u-9", role), "u-1")
