from datetime import datetime, timedelta
from typing import Optional
import logging
import math

from api.services.domain_checker import DomainCheckResult
from api.services.probes import ProbeResult
from api.services.timeutils import ensure_utc, utcnow
from db.models import CheckResult, DomainCheck, Monitor
from db.repositories.check_repository import CheckRepository
from db.repositories.domain_check_repository import DomainCheckRepository

logger = logging.getLogger(__name__)


def calculate_uptime(up_count: int, total_count: int) -> int:
    """Percentage of up checks, rounded half up. No history reads as fully up."""
    if total_count <= 0:
        return 100
    return int(math.floor(100 * up_count / total_count + 0.5))


class ResultRecorder:
    """Appends check outcomes and derives the figures shown on dashboards."""

    def __init__(
        self,
        check_repo: CheckRepository,
        domain_check_repo: DomainCheckRepository,
        uptime_window_hours: Optional[float] = 24,
    ):
        self.check_repo = check_repo
        self.domain_check_repo = domain_check_repo
        self.uptime_window_hours = uptime_window_hours

    def record(self, monitor_id: int, result: ProbeResult, checked_at: Optional[datetime] = None) -> CheckResult:
        check = CheckResult(
            monitor_id=monitor_id,
            status=result.status,
            response_time=result.response_time,
            status_code=result.status_code,
            error_message=result.error_message,
            checked_at=checked_at or utcnow(),
        )
        return self.check_repo.insert(check)

    def record_domain_check(
        self, monitor_id: int, result: DomainCheckResult, checked_at: Optional[datetime] = None
    ) -> DomainCheck:
        row = DomainCheck(
            monitor_id=monitor_id,
            domain=result.domain,
            ssl_valid=result.ssl.valid,
            ssl_expires_at=result.ssl.expires_at,
            ssl_issuer=result.ssl.issuer,
            ssl_error=result.ssl.error,
            dns_resolved=result.dns.resolved,
            dns_records=list(result.dns.records),
            dns_error=result.dns.error,
            whois_registrar=result.whois.registrar,
            whois_expires_at=result.whois.expires_at,
            whois_error=result.whois.error,
            checked_at=checked_at or utcnow(),
        )
        return self.domain_check_repo.insert(row)

    def rollback(self) -> None:
        self.check_repo.db.rollback()

    def latest_check(self, monitor_id: int) -> CheckResult | None:
        return self.check_repo.get_latest(monitor_id)

    def latest_domain_check(self, monitor_id: int) -> DomainCheck | None:
        return self.domain_check_repo.get_latest(monitor_id)

    def recent_checks(self, monitor_id: int, limit: int = 50) -> list[CheckResult]:
        return self.check_repo.list_recent(monitor_id, limit)

    def uptime_percentage(self, monitor_id: int, now: Optional[datetime] = None) -> int:
        since = None
        if self.uptime_window_hours:
            since = (now or utcnow()) - timedelta(hours=self.uptime_window_hours)
        up, total = self.check_repo.count_by_status(monitor_id, since)
        return calculate_uptime(up, total)

    def status_summary(self, monitor: Monitor, now: Optional[datetime] = None) -> dict:
        latest = self.latest_check(monitor.id)
        return {
            "monitor_id": monitor.id,
            "name": monitor.name,
            "url": monitor.url,
            "is_active": bool(monitor.is_active),
            "current_status": latest.status if latest else None,
            "uptime_percentage": self.uptime_percentage(monitor.id, now),
            "last_checked_at": ensure_utc(latest.checked_at) if latest else None,
            "latest_check": latest,
        }
