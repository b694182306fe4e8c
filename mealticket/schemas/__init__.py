from mealticket.schemas.common import PaginatedResponse, ErrorResponse
from mealticket.schemas.user import Me
from mealticket.schemas.time_slot import (
    TimeSlot, TimeSlotSummary, TimeSlotGenerate, TimeSlotGenerateResult,
)
from mealticket.schemas.reservation import (
    Reservation, ReservationCreate, ReservationConfirm, ReservationCancel,
    ReservationModify, ReservationCreated, ReservationCancelResponse,
    ReservationModifyResponse,
)
from mealticket.schemas.ticket import (
    TicketClaims, TicketResponse, TicketValidateRequest, TicketValidationResponse,
    TicketUserInfo, TicketReservationInfo,
)
