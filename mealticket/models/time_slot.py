import uuid
from sqlalchemy import Column, String, Boolean, DateTime, Integer, DECIMAL, CheckConstraint, Uuid, func
from sqlalchemy.orm import relationship
from mealticket.db.session import Base

class TimeSlot(Base):
    __tablename__ = "time_slots"
    __table_args__ = (
        CheckConstraint("max_capacity >= 0", name="ck_time_slots_max_capacity"),
        CheckConstraint(
            "current_reservations >= 0 AND current_reservations <= max_capacity",
            name="ck_time_slots_current_reservations",
        ),
    )

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    start_time = Column(DateTime(timezone=True), nullable=False, index=True)
    end_time = Column(DateTime(timezone=True), nullable=False)
    meal_type = Column(String(20), nullable=True)  # "lunch" | "dinner"
    price = Column(DECIMAL(10, 2), nullable=False)
    max_capacity = Column(Integer, nullable=False)
    # Only the capacity ledger writes this column
    current_reservations = Column(Integer, nullable=False, default=0)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    # Relationships
    reservations = relationship("Reservation", back_populates="time_slot")

    @property
    def remaining_capacity(self) -> int:
        return max(0, (self.max_capacity or 0) - (self.current_reservations or 0))
