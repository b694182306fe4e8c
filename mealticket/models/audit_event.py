import uuid
from sqlalchemy import Column, String, DateTime, Text, JSON, Uuid
from sqlalchemy.dialects.postgresql import JSONB
from mealticket.db.session import Base

class AuditEvent(Base):
    """Append-only record of a mutating operation. Never updated or deleted."""
    __tablename__ = "audit_events"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    timestamp = Column(DateTime(timezone=True), nullable=False, index=True)
    actor_id = Column(String(128), nullable=False, index=True)  # "system" when unauthenticated
    actor_role = Column(String(20), nullable=False)
    action = Column(String(50), nullable=False, index=True)
    resource_type = Column(String(50), nullable=False)
    resource_id = Column(String(128), nullable=True, index=True)
    outcome = Column(String(10), nullable=False)  # success | failure
    details = Column(JSON().with_variant(JSONB, "postgresql"), nullable=False, default=dict)
    error_code = Column(String(50), nullable=True)
    error_message = Column(Text, nullable=True)
