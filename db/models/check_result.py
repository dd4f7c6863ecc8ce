from sqlalchemy import Column, Integer, String, DateTime, ForeignKey
from db.base import Base

STATUS_UP = "up"
STATUS_DOWN = "down"
STATUS_ERROR = "error"


class CheckResult(Base):
    __tablename__ = "monitor_checks"
    id = Column(Integer, primary_key=True)
    monitor_id = Column(Integer, ForeignKey("monitors.id"), index=True, nullable=False)
    status = Column(String, nullable=False)
    response_time = Column(Integer, nullable=False, default=0)  # milliseconds
    status_code = Column(Integer, nullable=True)
    error_message = Column(String, nullable=True)
    checked_at = Column(DateTime, nullable=False, index=True)
