"""
User database model.

Users are owned by the identity provider; this service keeps the minimal
profile needed to address notifications and display sender/recipient names.
"""

from sqlalchemy import Column, Integer, String, Boolean, DateTime

from backend.app.core.timeutils import utc_now
from backend.app.db.session import Base


class User(Base):
    """Lab member who can send and receive notifications."""
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    name = Column(String(150), nullable=False)
    email = Column(String(255), unique=True, index=True, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)

    created_at = Column(DateTime(timezone=True), default=utc_now, nullable=False)

    def __repr__(self):
        return f"<User(id={self.id}, name='{self.name}', email='{self.email}')>"
