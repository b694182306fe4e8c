from typing import Optional
from pydantic import BaseModel, Field, UUID4
from decimal import Decimal
from datetime import datetime

from mealticket.domain.lifecycle import ReservationStatus
from mealticket.schemas.time_slot import TimeSlotSummary


# Reservation - Create (POST /reservations)
class ReservationCreate(BaseModel):
    time_slot_id: UUID4
    capacity: int = 1
    amount: Decimal


# Reservation - Confirm (POST /reservations/{id}/confirm)
class ReservationConfirm(BaseModel):
    payment_reference: str = Field(min_length=1, max_length=128)


# Reservation - Cancel (PATCH /reservations/{id}/cancel)
class ReservationCancel(BaseModel):
    reason: Optional[str] = Field(default=None, max_length=500)


# Reservation - Modify (PATCH /reservations/{id}/time-slot)
class ReservationModify(BaseModel):
    new_time_slot_id: UUID4


# Reservation - Full response
class Reservation(BaseModel):
    id: UUID4
    user_id: str
    time_slot_id: UUID4
    capacity: int
    amount: Decimal
    unit_price: Decimal
    total_price: Decimal
    status: ReservationStatus
    has_ticket: bool = False
    created_at: datetime
    confirmed_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    cancellation_reason: Optional[str] = None
    modified_at: Optional[datetime] = None
    used_at: Optional[datetime] = None
    validated_by: Optional[str] = None
    time_slot: Optional[TimeSlotSummary] = None

    class Config:
        from_attributes = True


class ReservationCreated(BaseModel):
    reservation_id: UUID4
    status: ReservationStatus
    message: str = "Reservation created successfully"


class ReservationCancelResponse(BaseModel):
    id: UUID4
    status: ReservationStatus
    cancelled_at: datetime
    message: str = "Reservation cancelled successfully"


class ReservationModifyResponse(BaseModel):
    reservation_id: UUID4
    new_time_slot: TimeSlotSummary
    message: str = "Reservation modified successfully"
