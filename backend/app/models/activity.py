"""
Activity Database Model.

Append-only audit events recorded across the lab application. The
notification generator reads them; the activity logger writes them.
"""

from sqlalchemy import Column, Integer, String, Text, DateTime, ForeignKey, JSON

from backend.app.core.timeutils import utc_now
from backend.app.db.session import Base


class Activity(Base):
    """
    Immutable activity event.

    ``meta`` carries free-form context; ``meta["category"]`` drives the
    category of notifications generated from the event.
    """
    __tablename__ = "activities"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    # What happened
    type = Column(String(100), nullable=False, index=True)
    description = Column(Text, nullable=False)

    # Who did it (None for anonymous / system events)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True)

    meta = Column(JSON, nullable=True)

    created_at = Column(DateTime(timezone=True), default=utc_now, nullable=False, index=True)

    def __repr__(self):
        return f"<Activity(id={self.id}, type='{self.type}', user={self.user_id})>"
