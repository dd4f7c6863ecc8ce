from sqlalchemy import Column, Integer, String, DateTime
from db.base import Base
from datetime import datetime, timezone


class Settings(Base):
    """
    Key/value configuration stored alongside the monitors, e.g. ALERT_POLICY,
    PROBE_CONCURRENCY or the TWILIO_* credentials. An environment variable with the
    same key always wins over the stored row.
    """

    __tablename__ = "settings"
    id = Column(Integer, primary_key=True)
    key = Column(String, unique=True, nullable=False, index=True)
    value = Column(String, nullable=True)
    updated_at = Column(
        DateTime,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )
