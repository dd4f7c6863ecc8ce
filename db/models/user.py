from sqlalchemy import Column, Integer, String, Boolean
from db.base import Base


class User(Base):
    """User profile. Only the alert preferences are read by the check engine."""

    __tablename__ = "users"
    id = Column(Integer, primary_key=True)
    email = Column(String, unique=True, nullable=True)
    sms_alerts_enabled = Column(Boolean, default=False)
    phone_number = Column(String, nullable=True)  # E.164
    slack_alerts_enabled = Column(Boolean, default=False)
    slack_webhook_url = Column(String, nullable=True)
