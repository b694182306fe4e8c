import uuid
from sqlalchemy import Column, String, DateTime, DECIMAL, Integer, ForeignKey, Text, Index, Uuid, Enum as SAEnum, text
from sqlalchemy.orm import relationship
from mealticket.db.session import Base
from mealticket.domain.lifecycle import ReservationStatus

_LIVE = "status IN ('pending', 'confirmed')"


class Reservation(Base):
    __tablename__ = "reservations"
    __table_args__ = (
        # one live reservation per user and slot
        Index(
            "uq_reservations_live_user_slot",
            "user_id",
            "time_slot_id",
            unique=True,
            postgresql_where=text(_LIVE),
            sqlite_where=text(_LIVE),
        ),
    )

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(String(128), nullable=False, index=True)
    time_slot_id = Column(Uuid(as_uuid=True), ForeignKey("time_slots.id"), nullable=False, index=True)
    capacity = Column(Integer, nullable=False, default=1)
    amount = Column(DECIMAL(10, 2), nullable=False)
    unit_price = Column(DECIMAL(10, 2), nullable=False)
    total_price = Column(DECIMAL(10, 2), nullable=False)
    status = Column(
        SAEnum(ReservationStatus, native_enum=False, length=20, values_callable=lambda e: [m.value for m in e]),
        nullable=False,
        default=ReservationStatus.pending,
        index=True,
    )
    payment_reference = Column(String(128), nullable=True)
    qr_token = Column(Text, nullable=True)
    qr_generated_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False)
    confirmed_at = Column(DateTime(timezone=True), nullable=True)
    cancelled_at = Column(DateTime(timezone=True), nullable=True)
    cancellation_reason = Column(Text, nullable=True)
    modified_at = Column(DateTime(timezone=True), nullable=True)
    used_at = Column(DateTime(timezone=True), nullable=True)
    validated_by = Column(String(128), nullable=True)

    # Relationships
    time_slot = relationship("TimeSlot", back_populates="reservations")

    @property
    def has_ticket(self) -> bool:
        return self.qr_token is not None
