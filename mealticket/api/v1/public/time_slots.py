from typing import List

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from mealticket.db.session import get_db
from mealticket.api.deps import get_clock, require_principal
from mealticket.core.permissions import Principal
from mealticket.schemas.time_slot import TimeSlot as TimeSlotSchema
from mealticket.utils.timeslots import list_upcoming_slots

router = APIRouter(prefix="/time-slots", tags=["Time Slots"])


@router.get("/", response_model=List[TimeSlotSchema])
def get_upcoming_time_slots(
    limit: int = Query(50, ge=1, le=200),
    db: Session = Depends(get_db),
    clock=Depends(get_clock),
    current_user: Principal = Depends(require_principal),
):
    """
    Return active time slots that have not started yet, soonest first.
    `remaining_capacity` is informational; the reservation call is the only
    authoritative capacity check.
    """
    return list_upcoming_slots(db, clock(), limit=limit)
