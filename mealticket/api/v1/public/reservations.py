from uuid import UUID
from typing import Optional

from fastapi import APIRouter, Depends, Query, status

from mealticket.api.deps import get_current_principal, get_reservation_service
from mealticket.core.permissions import Principal
from mealticket.domain.lifecycle import ReservationStatus
from mealticket.services.reservations import ReservationService
from mealticket.schemas.reservation import (
    Reservation as ReservationSchema,
    ReservationCreate,
    ReservationCreated,
    ReservationConfirm,
    ReservationCancel,
    ReservationCancelResponse,
    ReservationModify,
    ReservationModifyResponse,
)
from mealticket.schemas.time_slot import TimeSlotSummary
from mealticket.schemas.ticket import TicketResponse
from mealticket.schemas.common import PaginatedResponse

router = APIRouter(prefix="/reservations", tags=["Reservations"])


# ---------------------------------------------------------------------------
# POST /reservations - create a pending reservation
# ---------------------------------------------------------------------------


@router.post("/", response_model=ReservationCreated, status_code=status.HTTP_201_CREATED)
def create_reservation(
    data: ReservationCreate,
    service: ReservationService = Depends(get_reservation_service),
    current_user: Optional[Principal] = Depends(get_current_principal),
):
    """
    Reserve `capacity` places on a time slot (students only).
    - Fails with SLOT_FULL when the slot cannot take the places.
    - Fails with DUPLICATE_RESERVATION when the student already holds a
      pending or confirmed reservation on the slot.
    """
    reservation = service.create_reservation(
        current_user, data.time_slot_id, data.capacity, data.amount
    )
    return ReservationCreated(reservation_id=reservation.id, status=reservation.status)


# ---------------------------------------------------------------------------
# GET /reservations - list current user's reservations
# ---------------------------------------------------------------------------


@router.get("/", response_model=PaginatedResponse[ReservationSchema])
def list_my_reservations(
    status: Optional[ReservationStatus] = Query(
        None, description="Filter by status: pending, confirmed, cancelled, used"
    ),
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=50),
    service: ReservationService = Depends(get_reservation_service),
    current_user: Optional[Principal] = Depends(get_current_principal),
):
    """Return the authenticated user's reservations, newest first."""
    items, total = service.list_reservations(current_user, status=status, page=page, limit=limit)
    return PaginatedResponse(
        data=[ReservationSchema.model_validate(r) for r in items],
        total=total,
        page=page,
        limit=limit,
        total_pages=-(-total // limit) if total else 0,
    )


# ---------------------------------------------------------------------------
# GET /reservations/{id}
# ---------------------------------------------------------------------------


@router.get("/{reservation_id}", response_model=ReservationSchema)
def get_reservation(
    reservation_id: UUID,
    service: ReservationService = Depends(get_reservation_service),
    current_user: Optional[Principal] = Depends(get_current_principal),
):
    """Return a single reservation. Owners, staff and admins only."""
    return service.get_reservation(current_user, reservation_id)


# ---------------------------------------------------------------------------
# POST /reservations/{id}/confirm - payment completed upstream
# ---------------------------------------------------------------------------


@router.post("/{reservation_id}/confirm", response_model=ReservationSchema)
def confirm_reservation(
    reservation_id: UUID,
    data: ReservationConfirm,
    service: ReservationService = Depends(get_reservation_service),
    current_user: Optional[Principal] = Depends(get_current_principal),
):
    """Mark a pending reservation as paid. The payment reference is stored as-is."""
    return service.confirm_reservation(current_user, reservation_id, data.payment_reference)


# ---------------------------------------------------------------------------
# POST /reservations/{id}/ticket - mint the QR ticket
# ---------------------------------------------------------------------------


@router.post("/{reservation_id}/ticket", response_model=TicketResponse)
def issue_ticket(
    reservation_id: UUID,
    service: ReservationService = Depends(get_reservation_service),
    current_user: Optional[Principal] = Depends(get_current_principal),
):
    """
    Generate the QR token for a confirmed reservation.
    Generating again replaces the previous token, which stops validating.
    """
    ticket = service.issue_ticket(current_user, reservation_id)
    return TicketResponse(
        reservation_id=ticket.reservation_id,
        qr_token=ticket.token,
        expires_at=ticket.expires_at,
    )


# ---------------------------------------------------------------------------
# PATCH /reservations/{id}/cancel
# ---------------------------------------------------------------------------


@router.patch("/{reservation_id}/cancel", response_model=ReservationCancelResponse)
def cancel_reservation(
    reservation_id: UUID,
    data: Optional[ReservationCancel] = None,
    service: ReservationService = Depends(get_reservation_service),
    current_user: Optional[Principal] = Depends(get_current_principal),
):
    """
    Cancel a pending or confirmed reservation.
    - Not allowed once the slot has started or less than 2 hours before it.
    - Frees the reserved places on the time slot.
    """
    reservation = service.cancel_reservation(
        current_user, reservation_id, data.reason if data else None
    )
    return ReservationCancelResponse(
        id=reservation.id,
        status=reservation.status,
        cancelled_at=reservation.cancelled_at,
    )


# ---------------------------------------------------------------------------
# PATCH /reservations/{id}/time-slot - move to another slot
# ---------------------------------------------------------------------------


@router.patch("/{reservation_id}/time-slot", response_model=ReservationModifyResponse)
def modify_reservation(
    reservation_id: UUID,
    data: ReservationModify,
    service: ReservationService = Depends(get_reservation_service),
    current_user: Optional[Principal] = Depends(get_current_principal),
):
    """
    Move a reservation to another time slot, all or nothing.
    Same timing rules as cancellation. Any issued ticket must be generated again.
    """
    new_slot = service.modify_reservation(current_user, reservation_id, data.new_time_slot_id)
    return ReservationModifyResponse(
        reservation_id=reservation_id,
        new_time_slot=TimeSlotSummary.model_validate(new_slot),
    )
