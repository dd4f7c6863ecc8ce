from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Callable, Optional
import logging

from api.services.notifications import AlertPayload, NotificationError, SlackService, SmsService
from db.models import CheckResult, Monitor, User
from db.models.check_result import STATUS_UP
from db.repositories.settings_repository import SettingsRepository, TWILIO_KEYS
from db.repositories.user_repository import UserRepository

logger = logging.getLogger(__name__)

ALERT_POLICY_TRANSITION = "transition"
ALERT_POLICY_EVERY_FAILURE = "every_failure"
ALERT_POLICIES = (ALERT_POLICY_TRANSITION, ALERT_POLICY_EVERY_FAILURE)


@dataclass(frozen=True)
class AlertConfig:
    """Per-invocation alerting configuration."""

    policy: str = ALERT_POLICY_TRANSITION
    sms: Optional[dict] = None  # Twilio credentials, None when SMS is not configured

    @classmethod
    def from_settings(cls, settings_repo: SettingsRepository) -> "AlertConfig":
        policy = (settings_repo.get_setting("ALERT_POLICY") or ALERT_POLICY_TRANSITION).strip().lower()
        if policy not in ALERT_POLICIES:
            logger.warning(f"Unknown ALERT_POLICY {policy!r}, falling back to {ALERT_POLICY_TRANSITION!r}")
            policy = ALERT_POLICY_TRANSITION

        sms = None
        if settings_repo.is_sms_configured():
            sms = {key: settings_repo.get_setting(key) for key in TWILIO_KEYS}
        else:
            logger.info("Twilio not configured, SMS alerts disabled")
        return cls(policy=policy, sms=sms)


def should_alert(previous_status: Optional[str], new_status: str, policy: str = ALERT_POLICY_TRANSITION) -> bool:
    """
    Decide whether a new check result warrants an alert.

    ``down`` and ``error`` are both failing states, so moving between them is not a
    transition. A monitor without history counts as previously up.
    """
    if policy == ALERT_POLICY_EVERY_FAILURE and new_status != STATUS_UP:
        return True
    return is_transition(previous_status, new_status)


def is_transition(previous_status: Optional[str], new_status: str) -> bool:
    was_up = previous_status is None or previous_status == STATUS_UP
    return was_up != (new_status == STATUS_UP)


def build_payload(monitor: Monitor, check: CheckResult) -> AlertPayload:
    return AlertPayload(
        monitor_name=monitor.name,
        monitor_url=monitor.url,
        status=check.status,
        response_time=check.response_time,
        status_code=check.status_code,
        error_message=check.error_message,
        checked_at=check.checked_at,
    )


class AlertDispatcher:
    def __init__(
        self,
        config: AlertConfig,
        user_repo: UserRepository,
        sms_service: Optional[SmsService] = None,
        slack_service: Optional[SlackService] = None,
    ):
        self.config = config
        self.user_repo = user_repo
        self.sms_service = sms_service
        if self.sms_service is None and config.sms:
            self.sms_service = SmsService(config.sms)
        self.slack_service = slack_service or SlackService()

    def maybe_alert(self, monitor: Monitor, check: CheckResult, previous_status: Optional[str]) -> dict[str, str]:
        """Alert the monitor's owner if the policy says so. Returns channel -> outcome."""
        if not should_alert(previous_status, check.status, self.config.policy):
            return {}

        user = self.user_repo.get_user_by_id(monitor.user_id)
        if user is None:
            logger.warning(f"Monitor {monitor.id} has no owner profile, skipping alerts")
            return {}

        if is_transition(previous_status, check.status):
            logger.info(
                f"Monitor {monitor.id} ({monitor.name}) changed {previous_status or 'unknown'} -> {check.status}, alerting"
            )
        else:
            logger.info(
                f"Monitor {monitor.id} ({monitor.name}) still {check.status} under {self.config.policy} policy, alerting"
            )
        return self.dispatch(user, build_payload(monitor, check))

    def _enabled_channels(self, user: User, payload: AlertPayload) -> dict[str, Callable[[], object]]:
        # Read profile fields here; the senders run on worker threads away from the session
        phone_number = user.phone_number
        webhook_url = user.slack_webhook_url
        channels = {}
        if user.sms_alerts_enabled and phone_number:
            if self.sms_service is not None:
                channels["sms"] = lambda: self.sms_service.send_sms(phone_number, payload)
            else:
                logger.warning(f"User {user.id} has SMS alerts enabled but SMS is not configured")
        if user.slack_alerts_enabled and webhook_url:
            channels["slack"] = lambda: self.slack_service.send_chat_alert(webhook_url, payload)
        return channels

    def dispatch(self, user: User, payload: AlertPayload) -> dict[str, str]:
        """Send *payload* on every enabled channel concurrently; one failure never blocks another."""
        channels = self._enabled_channels(user, payload)
        if not channels:
            return {}

        outcomes = {}
        with ThreadPoolExecutor(max_workers=len(channels), thread_name_prefix="alert") as pool:
            futures = {name: pool.submit(send) for name, send in channels.items()}
            for name, future in futures.items():
                try:
                    future.result()
                    outcomes[name] = "sent"
                except NotificationError as e:
                    logger.error(f"{name} alert failed for user {user.id}: {e}")
                    outcomes[name] = str(e)
                except Exception as e:
                    logger.exception(f"{name} alert crashed for user {user.id}")
                    outcomes[name] = str(e)
        return outcomes
