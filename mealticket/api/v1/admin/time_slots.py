from typing import Optional

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from mealticket.db.session import get_db
from mealticket.api.deps import get_audit_emitter, get_current_principal
from mealticket.core.permissions import Principal
from mealticket.services.audit import AuditEmitter
from mealticket.services.time_slots import generate_slots_for_day
from mealticket.schemas.time_slot import (
    TimeSlot as TimeSlotSchema,
    TimeSlotGenerate,
    TimeSlotGenerateResult,
)

router = APIRouter(prefix="/admin/time-slots", tags=["Admin - Time Slots"])


@router.post("/generate", response_model=TimeSlotGenerateResult, status_code=status.HTTP_201_CREATED)
def generate_time_slots(
    data: TimeSlotGenerate,
    db: Session = Depends(get_db),
    audit: AuditEmitter = Depends(get_audit_emitter),
    current_user: Optional[Principal] = Depends(get_current_principal),
):
    """
    Create one day of service slots from the configured schedule
    (SLOT_DAY_START to SLOT_DAY_END, SLOT_LENGTH_MINUTES each).
    Slots that already exist at the same start time are skipped.
    """
    created, skipped = generate_slots_for_day(
        db, audit, current_user, data.date,
        meal_type=data.meal_type, capacity=data.capacity, price=data.price,
    )
    return TimeSlotGenerateResult(
        created=len(created),
        skipped=skipped,
        time_slots=[TimeSlotSchema.model_validate(s) for s in created],
    )
