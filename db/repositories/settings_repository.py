from db.models.settings import Settings
from sqlalchemy.orm import Session
from typing import Optional
import os

TWILIO_KEYS = ["TWILIO_ACCOUNT_SID", "TWILIO_AUTH_TOKEN", "TWILIO_FROM_NUMBER"]


class SettingsRepository:
    def __init__(self, db: Session):
        self.db = db

    def get_setting(self, key: str) -> Optional[str]:
        """Get a setting value, preferring environment variable over database"""
        env_value = os.getenv(key)
        if env_value is not None:
            return env_value

        setting = self.db.query(Settings).filter(Settings.key == key).first()
        return setting.value if setting else None

    def set_setting(self, key: str, value: Optional[str]) -> Settings:
        """Insert or update a stored setting"""
        setting = self.db.query(Settings).filter(Settings.key == key).first()
        if setting:
            setting.value = value
        else:
            setting = Settings(key=key, value=value)
            self.db.add(setting)
        self.db.commit()
        return setting

    def is_sms_configured(self) -> bool:
        """Check if Twilio is configured (either env vars or database)"""
        return all(self.get_setting(key) for key in TWILIO_KEYS)
