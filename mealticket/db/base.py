from mealticket.db.session import Base
from mealticket.models.user import User
from mealticket.models.time_slot import TimeSlot
from mealticket.models.reservation import Reservation
from mealticket.models.audit_event import AuditEvent
