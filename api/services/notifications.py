from dataclasses import dataclass
from datetime import datetime
from typing import Optional
import logging

import requests

from api.services.timeutils import utcnow
from db.models.check_result import STATUS_UP

logger = logging.getLogger(__name__)

TWILIO_API_URL = "https://api.twilio.com/2010-04-01/Accounts/{sid}/Messages.json"
SEND_TIMEOUT_SECONDS = 10


class NotificationError(Exception):
    """A notification channel failed to deliver an alert."""


@dataclass(frozen=True)
class AlertPayload:
    monitor_name: str
    monitor_url: str
    status: str
    response_time: int
    status_code: Optional[int] = None
    error_message: Optional[str] = None
    checked_at: Optional[datetime] = None

    @property
    def is_recovery(self) -> bool:
        return self.status == STATUS_UP


def format_sms(payload: AlertPayload) -> str:
    emoji = "✅" if payload.is_recovery else "🚨"
    message = f"{emoji} Monitor Alert: {payload.monitor_name}\n"
    message += f"Status: {payload.status.upper()}\n"
    message += f"URL: {payload.monitor_url}\n"
    message += f"Response Time: {payload.response_time}ms"
    if payload.status_code:
        message += f"\nStatus Code: {payload.status_code}"
    if payload.error_message:
        message += f"\nError: {payload.error_message}"
    return message


def format_slack_message(payload: AlertPayload) -> dict:
    if payload.is_recovery:
        emoji, color, status_text = ":white_check_mark:", "good", "BACK ONLINE"
    else:
        emoji, color, status_text = ":rotating_light:", "danger", "IS DOWN"

    checked_at = payload.checked_at or utcnow()
    ts = int(checked_at.timestamp())
    fields = [
        {"title": "Status", "value": payload.status.upper(), "short": True},
        {"title": "Response Time", "value": f"{payload.response_time}ms", "short": True},
        {"title": "URL", "value": f"<{payload.monitor_url}|{payload.monitor_url}>", "short": False},
        {
            "title": "Status Code",
            "value": str(payload.status_code) if payload.status_code else "N/A",
            "short": True,
        },
        {
            "title": "Checked At",
            "value": f"<!date^{ts}^{{date_pretty}} at {{time}}|{checked_at.isoformat()}>",
            "short": True,
        },
    ]
    if payload.error_message:
        fields.append({"title": "Error", "value": payload.error_message, "short": False})

    return {
        "text": f"{emoji} *{payload.monitor_name}* {status_text}",
        "attachments": [
            {
                "color": color,
                "pretext": f"Monitor *{payload.monitor_name}* {status_text.lower()}",
                "fields": fields,
                "footer": "Uptyne Monitor",
                "ts": ts,
            }
        ],
    }


class SmsService:
    """
    Sends SMS alerts through the Twilio REST API.

    Args:
        config (dict): Expected keys:
                       - 'TWILIO_ACCOUNT_SID'
                       - 'TWILIO_AUTH_TOKEN'
                       - 'TWILIO_FROM_NUMBER': sender number in E.164 form
    """

    def __init__(self, config: dict, session: Optional[requests.Session] = None):
        required_keys = ["TWILIO_ACCOUNT_SID", "TWILIO_AUTH_TOKEN", "TWILIO_FROM_NUMBER"]
        if not all(config.get(k) for k in required_keys):
            raise ValueError(f"Config must contain: {', '.join(required_keys)}")

        self.account_sid = config["TWILIO_ACCOUNT_SID"]
        self.auth_token = config["TWILIO_AUTH_TOKEN"]
        self.from_number = config["TWILIO_FROM_NUMBER"]
        self.session = session

    def send_sms(self, to_number: str, payload: AlertPayload) -> str:
        """Send the alert to *to_number*. Returns the message SID, raises NotificationError."""
        poster = self.session.post if self.session is not None else requests.post
        try:
            response = poster(
                TWILIO_API_URL.format(sid=self.account_sid),
                data={"To": to_number, "From": self.from_number, "Body": format_sms(payload)},
                auth=(self.account_sid, self.auth_token),
                timeout=SEND_TIMEOUT_SECONDS,
            )
        except requests.RequestException as e:
            raise NotificationError(f"SMS alert failed: {e}") from e

        if not response.ok:
            raise NotificationError(f"SMS alert failed: {response.status_code} {response.text}")

        sid = response.json().get("sid", "")
        logger.info(f"SMS sent successfully. SID: {sid}")
        return sid


class SlackService:
    """Posts alerts to a Slack-compatible incoming webhook."""

    def __init__(self, session: Optional[requests.Session] = None):
        self.session = session

    def send_chat_alert(self, webhook_url: str, payload: AlertPayload) -> None:
        poster = self.session.post if self.session is not None else requests.post
        try:
            response = poster(
                webhook_url,
                json=format_slack_message(payload),
                timeout=SEND_TIMEOUT_SECONDS,
            )
        except requests.RequestException as e:
            raise NotificationError(f"Slack webhook failed: {e}") from e

        if not response.ok:
            raise NotificationError(f"Slack webhook failed: {response.status_code} {response.reason}")
