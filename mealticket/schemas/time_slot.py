from typing import Optional, List
from pydantic import BaseModel, UUID4
from decimal import Decimal
from datetime import date, datetime


# Time Slot - DB response
class TimeSlot(BaseModel):
    id: UUID4
    start_time: datetime
    end_time: datetime
    meal_type: Optional[str] = None
    price: Decimal
    max_capacity: int
    current_reservations: int = 0
    remaining_capacity: int = 0
    is_active: bool = True

    class Config:
        from_attributes = True


# Compact time slot for reservation responses
class TimeSlotSummary(BaseModel):
    id: UUID4
    start_time: datetime
    end_time: datetime
    price: Decimal

    class Config:
        from_attributes = True


# Admin - generate one day of slots from the configured schedule
class TimeSlotGenerate(BaseModel):
    date: date
    meal_type: str = "lunch"
    capacity: Optional[int] = None
    price: Optional[Decimal] = None


class TimeSlotGenerateResult(BaseModel):
    created: int
    skipped: int
    time_slots: List[TimeSlot]
