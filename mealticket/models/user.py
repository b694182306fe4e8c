from sqlalchemy import Column, String, Boolean
from mealticket.db.session import Base

class User(Base):
    """Profile mirrored from the identity provider. The core only reads it."""
    __tablename__ = "users"

    id = Column(String(128), primary_key=True)  # identity provider uid
    email = Column(String(255), nullable=True, index=True)
    full_name = Column(String(255), nullable=True)
    group_name = Column(String(50), nullable=True)  # student class / section
    role = Column(String(20), nullable=True)
    is_active = Column(Boolean, default=True)
