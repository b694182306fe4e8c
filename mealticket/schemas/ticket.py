from typing import Optional
from pydantic import BaseModel, UUID4, Field
from decimal import Decimal
from datetime import datetime, timezone


# Claims carried by a meal ticket token
class TicketClaims(BaseModel):
    iss: str
    sub: str  # reservation id
    aud: str
    exp: int
    iat: int
    user_id: str
    slot_start: str
    capacity: int = Field(ge=1)

    @property
    def reservation_id(self) -> str:
        return self.sub

    @property
    def expires_at(self) -> datetime:
        return datetime.fromtimestamp(self.exp, tz=timezone.utc)


# POST /reservations/{id}/ticket
class TicketResponse(BaseModel):
    reservation_id: UUID4
    qr_token: str
    expires_at: datetime


# POST /staff/tickets/validate
class TicketValidateRequest(BaseModel):
    qr_token: str = Field(min_length=1)


class TicketUserInfo(BaseModel):
    name: str
    email: str = ""
    group_name: str = ""
    capacity: int


class TicketReservationInfo(BaseModel):
    reservation_id: UUID4
    slot_start: datetime
    meal_type: Optional[str] = None
    amount: Decimal


class TicketValidationResponse(BaseModel):
    success: bool
    outcome: str  # used_now | already_used | invalid_state | invalid_token
    message: str
    used_at: Optional[datetime] = None
    validated_by: Optional[str] = None
    user_info: Optional[TicketUserInfo] = None
    reservation_info: Optional[TicketReservationInfo] = None
