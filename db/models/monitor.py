from sqlalchemy import Column, Integer, String, Boolean, DateTime, ForeignKey
from db.base import Base
from datetime import datetime, timezone


def _utcnow():
    return datetime.now(timezone.utc)


class Monitor(Base):
    __tablename__ = "monitors"
    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), index=True)
    name = Column(String, nullable=False)
    url = Column(String, nullable=False)  # scheme selects the probe: http(s)://, tcp://, ping://
    check_interval = Column(Integer, nullable=False, default=5)  # minutes, 1..60
    is_active = Column(Boolean, default=True, index=True)
    created_at = Column(DateTime, default=_utcnow)
    updated_at = Column(DateTime, default=_utcnow, onupdate=_utcnow)
