#!/usr/bin/env python3
"""
Send a canned "down" alert through a user's enabled channels to verify their configuration.
Usage: python send_test_alert.py <user_id>
"""
import sys
from api.services.alert_service import AlertConfig, AlertDispatcher
from api.services.notifications import AlertPayload
from db.engine import SessionLocal
from db.repositories.settings_repository import SettingsRepository
from db.repositories.user_repository import UserRepository

TEST_PAYLOAD = AlertPayload(
    monitor_name="Test Monitor",
    monitor_url="https://example.com",
    status="down",
    response_time=5000,
    status_code=500,
    error_message="This is a test alert to verify your alert configuration.",
)


def send_test_alert(user_id: int) -> bool:
    """Dispatch TEST_PAYLOAD to every channel the user has enabled"""
    db = SessionLocal()
    try:
        user_repo = UserRepository(db)
        user = user_repo.get_user_by_id(user_id)
        if user is None:
            print(f"❌ User {user_id} not found")
            return False

        config = AlertConfig.from_settings(SettingsRepository(db))
        if user.sms_alerts_enabled and not config.sms:
            print("⚠️  SMS alerts are enabled but Twilio is not configured:")
            print("   - TWILIO_ACCOUNT_SID, TWILIO_AUTH_TOKEN, TWILIO_FROM_NUMBER")

        print(f"📤 Sending test alert to user {user_id}...")
        outcomes = AlertDispatcher(config, user_repo).dispatch(user, TEST_PAYLOAD)
        if not outcomes:
            print("❌ No alert channel is enabled for this user")
            return False

        for channel, outcome in outcomes.items():
            mark = "✅" if outcome == "sent" else "❌"
            print(f"   {mark} {channel}: {outcome}")
        return all(outcome == "sent" for outcome in outcomes.values())
    finally:
        db.close()


if __name__ == "__main__":
    if len(sys.argv) != 2 or not sys.argv[1].isdigit():
        print("Usage: python send_test_alert.py <user_id>")
        sys.exit(1)

    success = send_test_alert(int(sys.argv[1]))
    sys.exit(0 if success else 1)
