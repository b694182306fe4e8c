"""Role-gated access to reservation operations.

Roles come from the identity provider; this module only checks them
against a declarative table and never derives them.
"""

import enum
from dataclasses import dataclass
from typing import Optional

from mealticket.domain.errors import PermissionDeniedError, UnauthenticatedError


class Role(str, enum.Enum):
    student = "student"
    staff = "staff"
    admin = "admin"


ELEVATED_ROLES = frozenset({Role.staff, Role.admin})


class Operation(str, enum.Enum):
    create_reservation = "create_reservation"
    confirm_reservation = "confirm_reservation"
    issue_ticket = "generate_qr_token"
    validate_ticket = "validate_qr_code"
    cancel_reservation = "cancel_reservation"
    modify_reservation = "modify_reservation"
    view_reservation = "view_reservation"
    generate_time_slots = "generate_time_slots"


_ANY_ROLE = frozenset(Role)

# Operations open to students additionally require ownership of the
# reservation (see ensure_owner_or_elevated).
PERMISSIONS: dict[Operation, frozenset[Role]] = {
    Operation.create_reservation: frozenset({Role.student}),
    Operation.confirm_reservation: _ANY_ROLE,
    Operation.issue_ticket: _ANY_ROLE,
    Operation.validate_ticket: ELEVATED_ROLES,
    Operation.cancel_reservation: _ANY_ROLE,
    Operation.modify_reservation: _ANY_ROLE,
    Operation.view_reservation: _ANY_ROLE,
    Operation.generate_time_slots: frozenset({Role.admin}),
}


@dataclass(frozen=True)
class Principal:
    """An authenticated caller as asserted by the identity provider."""

    user_id: str
    role: Optional[Role]

    @classmethod
    def from_claims(cls, user_id: str, role: Optional[str]) -> "Principal":
        try:
            parsed = Role(role) if role else None
        except ValueError:
            parsed = None
        return cls(user_id=user_id, role=parsed)

    @property
    def is_elevated(self) -> bool:
        return self.role in ELEVATED_ROLES


def authorize(principal: Optional[Principal], operation: Operation) -> Principal:
    """Fail closed unless the principal's role may perform `operation`."""
    if principal is None or not principal.user_id:
        raise UnauthenticatedError()
    if principal.role is None:
        raise PermissionDeniedError("User role not found")
    if principal.role not in PERMISSIONS.get(operation, frozenset()):
        raise PermissionDeniedError(f"Role '{principal.role.value}' may not {operation.value}")
    return principal


def ensure_owner_or_elevated(principal: Principal, owner_id: str) -> None:
    if principal.user_id != owner_id and not principal.is_elevated:
        raise PermissionDeniedError("Access denied")
