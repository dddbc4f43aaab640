import uuid

from sqlalchemy import Column, String, DateTime
from sqlalchemy.orm import relationship

from taskreminder.db.base import Base
from taskreminder.utils.timezone import utcnow


class User(Base):
    """Reminder recipient. Owned by the account service; only read here."""
    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    name = Column(String, nullable=False)
    phone = Column(String, nullable=False, unique=True, index=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    tasks = relationship("Task", back_populates="user", passive_deletes=True)
