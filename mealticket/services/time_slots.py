import logging
from datetime import date
from decimal import Decimal
from typing import Optional

from sqlalchemy.orm import Session

from mealticket.core.config import settings
from mealticket.core.permissions import Operation, Principal, authorize
from mealticket.db.session import run_in_transaction
from mealticket.domain.errors import InvalidArgumentError
from mealticket.models.time_slot import TimeSlot
from mealticket.services.audit import AuditEmitter
from mealticket.utils.timeslots import generate_daily_slots

logger = logging.getLogger(__name__)


def generate_slots_for_day(
    db: Session,
    audit: AuditEmitter,
    principal: Principal,
    day: date,
    meal_type: str = "lunch",
    capacity: Optional[int] = None,
    price: Optional[Decimal] = None,
) -> tuple[list[TimeSlot], int]:
    """Admin: lay out one day of service slots from the configured schedule."""
    action = Operation.generate_time_slots.value
    capacity = settings.SLOT_DEFAULT_CAPACITY if capacity is None else capacity
    price = settings.SLOT_DEFAULT_PRICE if price is None else price
    details = {"date": day.isoformat(), "meal_type": meal_type, "capacity": capacity, "price": price}

    try:
        authorize(principal, Operation.generate_time_slots)
        if capacity < 0:
            raise InvalidArgumentError("Capacity cannot be negative")
        if price < 0:
            raise InvalidArgumentError("Price cannot be negative")
        created, skipped = run_in_transaction(
            db,
            lambda: generate_daily_slots(
                db,
                day,
                start=settings.SLOT_DAY_START,
                end=settings.SLOT_DAY_END,
                length_minutes=settings.SLOT_LENGTH_MINUTES,
                capacity=capacity,
                price=price,
                tz_name=settings.SLOT_TIMEZONE,
                meal_type=meal_type,
            ),
        )
    except Exception as exc:
        audit.failure(principal, action, "time_slot", None, exc, details)
        raise

    details.update(created=len(created), skipped=skipped)
    logger.info("Generated %d slot(s) for %s (%d skipped)", len(created), day, skipped)
    audit.success(principal, action, "time_slot", day.isoformat(), details)
    return created, skipped
