from typing import Optional

from fastapi import APIRouter, Depends

from mealticket.api.deps import get_current_principal, get_reservation_service
from mealticket.core.permissions import Principal
from mealticket.services.reservations import ReservationService, TicketValidation, display_name
from mealticket.schemas.ticket import (
    TicketValidateRequest,
    TicketValidationResponse,
    TicketUserInfo,
    TicketReservationInfo,
)

router = APIRouter(prefix="/staff/tickets", tags=["Staff - Tickets"])


def _serialize_validation(result: TicketValidation) -> TicketValidationResponse:
    user_info = None
    reservation_info = None
    if result.success:
        reservation = result.reservation
        user = result.user
        user_info = TicketUserInfo(
            name=display_name(user),
            email=(user.email or "") if user else "",
            group_name=(user.group_name or "") if user else "",
            capacity=reservation.capacity,
        )
        reservation_info = TicketReservationInfo(
            reservation_id=reservation.id,
            slot_start=reservation.time_slot.start_time,
            meal_type=reservation.time_slot.meal_type,
            amount=reservation.amount,
        )

    return TicketValidationResponse(
        success=result.success,
        outcome=result.outcome.value,
        message=result.message,
        used_at=result.used_at,
        validated_by=result.validated_by,
        user_info=user_info,
        reservation_info=reservation_info,
    )


@router.post("/validate", response_model=TicketValidationResponse)
def validate_ticket(
    body: TicketValidateRequest,
    service: ReservationService = Depends(get_reservation_service),
    current_user: Optional[Principal] = Depends(get_current_principal),
):
    """
    Scan a QR ticket at the counter (staff and admins).
    The first successful scan consumes the ticket; later scans report
    `already_used` with the original time. Rejections are returned with
    `success=false`, not as HTTP errors.
    """
    result = service.validate_ticket(current_user, body.qr_token)
    return _serialize_validation(result)
