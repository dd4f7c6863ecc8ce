from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional
from urllib.parse import urlsplit
import logging

from api.services.alert_service import AlertDispatcher
from api.services.domain_checker import (
    DomainChecker,
    DomainCheckResult,
    DnsInfo,
    SslInfo,
    WhoisInfo,
    normalize_domain,
)
from api.services.probes import ProbeResult, ProtocolProbe
from api.services.recorder import ResultRecorder
from api.services.timeutils import ensure_utc, utcnow
from db.models.check_result import STATUS_ERROR
from db.repositories.monitor_repository import MonitorRepository

logger = logging.getLogger(__name__)

DEFAULT_INTERVAL_MINUTES = 5
DOMAIN_CHECK_INTERVAL = timedelta(hours=24)
DEFAULT_MAX_WORKERS = 10
MAX_WORKERS_LIMIT = 50


def is_check_due(interval: timedelta, last_checked_at: Optional[datetime], now: datetime) -> bool:
    """A check is due when there is none yet or the interval has fully elapsed."""
    if last_checked_at is None:
        return True
    return now - ensure_utc(last_checked_at) >= interval


def is_domain_checkable(url: str) -> bool:
    return urlsplit(url.strip()).scheme.lower() in ("http", "https")


@dataclass
class PassSummary:
    timestamp: datetime
    monitors_checked: int = 0
    checks_run: int = 0
    failures: int = 0

    def to_dict(self) -> dict:
        return {
            "timestamp": self.timestamp.isoformat(),
            "monitorsChecked": self.monitors_checked,
            "checksRun": self.checks_run,
            "failures": self.failures,
        }


@dataclass(frozen=True)
class _DueMonitor:
    id: int
    name: str
    url: str
    previous_status: Optional[str]


class MonitorService:
    def __init__(
        self,
        monitor_repo: MonitorRepository,
        recorder: ResultRecorder,
        probe: Optional[ProtocolProbe] = None,
        domain_checker: Optional[DomainChecker] = None,
        alert_dispatcher: Optional[AlertDispatcher] = None,
        max_workers: int = DEFAULT_MAX_WORKERS,
    ):
        self.monitor_repo = monitor_repo
        self.recorder = recorder
        self.probe = probe or ProtocolProbe()
        self.domain_checker = domain_checker or DomainChecker()
        self.alert_dispatcher = alert_dispatcher
        self.max_workers = max(1, min(MAX_WORKERS_LIMIT, int(max_workers)))

    def check_due_monitors(self, now: Optional[datetime] = None) -> PassSummary:
        """Probe every active monitor whose interval has elapsed, record and alert."""
        now = now or utcnow()
        monitors = self.monitor_repo.list_active()
        summary = PassSummary(timestamp=now, monitors_checked=len(monitors))
        logger.info(f"Checking {len(monitors)} active monitors")

        due = []
        for monitor in monitors:
            try:
                latest = self.recorder.latest_check(monitor.id)
            except Exception as e:
                logger.error(f"Failed to read last check for monitor {monitor.id}: {e}")
                self.recorder.rollback()
                summary.failures += 1
                continue

            interval_minutes = monitor.check_interval or DEFAULT_INTERVAL_MINUTES
            last_checked_at = latest.checked_at if latest else None
            should_check = is_check_due(timedelta(minutes=interval_minutes), last_checked_at, now)
            logger.debug(
                f"Monitor {monitor.id} ({monitor.name}): interval={interval_minutes}min, "
                f"last check={last_checked_at.isoformat() if last_checked_at else 'never'}, "
                f"should check={should_check}"
            )
            if should_check:
                due.append(_DueMonitor(monitor.id, monitor.name, monitor.url, latest.status if latest else None))

        if not due:
            logger.info("No monitors due")
            return summary

        by_id = {m.id: m for m in monitors}
        with ThreadPoolExecutor(max_workers=min(self.max_workers, len(due)), thread_name_prefix="probe") as pool:
            futures = {pool.submit(self.probe.check_url, item.url): item for item in due}
            for future in as_completed(futures):
                item = futures[future]
                summary.checks_run += 1
                try:
                    result = future.result()
                except Exception as e:
                    logger.exception(f"Probe crashed for monitor {item.id}")
                    result = ProbeResult(status=STATUS_ERROR, response_time=0, error_message=f"Probe crashed: {e}")

                logger.info(f"Check complete for monitor {item.id}: {result.status}, {result.response_time}ms")
                try:
                    check = self.recorder.record(item.id, result, checked_at=now)
                except Exception as e:
                    logger.error(f"Failed to store check result for monitor {item.id}: {e}")
                    self.recorder.rollback()
                    summary.failures += 1
                    continue

                if self.alert_dispatcher is not None:
                    try:
                        self.alert_dispatcher.maybe_alert(by_id[item.id], check, item.previous_status)
                    except Exception:
                        logger.exception(f"Alerting failed for monitor {item.id}")

        logger.info(
            f"Monitor pass completed: {summary.checks_run} checked, {summary.failures} failures"
        )
        return summary

    def check_due_domains(self, now: Optional[datetime] = None) -> PassSummary:
        """Run domain checks for HTTP(S) monitors not checked within the last 24 hours."""
        now = now or utcnow()
        monitors = self.monitor_repo.list_active()
        summary = PassSummary(timestamp=now, monitors_checked=len(monitors))
        logger.info(f"Checking domains for {len(monitors)} active monitors")

        due = []
        for monitor in monitors:
            if not is_domain_checkable(monitor.url):
                logger.debug(f"Monitor {monitor.id} is not an HTTP(S) target, skipping domain check")
                continue
            try:
                latest = self.recorder.latest_domain_check(monitor.id)
            except Exception as e:
                logger.error(f"Failed to read last domain check for monitor {monitor.id}: {e}")
                self.recorder.rollback()
                summary.failures += 1
                continue
            if is_check_due(DOMAIN_CHECK_INTERVAL, latest.checked_at if latest else None, now):
                due.append((monitor.id, monitor.url))

        if not due:
            return summary

        with ThreadPoolExecutor(max_workers=min(self.max_workers, len(due)), thread_name_prefix="domain") as pool:
            futures = {pool.submit(self.domain_checker.check_domain, url): (monitor_id, url) for monitor_id, url in due}
            for future in as_completed(futures):
                monitor_id, url = futures[future]
                summary.checks_run += 1
                try:
                    result = future.result()
                except Exception as e:
                    logger.exception(f"Domain check crashed for monitor {monitor_id}")
                    message = f"Domain check crashed: {e}"
                    result = DomainCheckResult(
                        domain=normalize_domain(url),
                        ssl=SslInfo(valid=False, error=message),
                        dns=DnsInfo(resolved=False, error=message),
                        whois=WhoisInfo(error=message),
                    )

                try:
                    self.recorder.record_domain_check(monitor_id, result, checked_at=now)
                except Exception as e:
                    logger.error(f"Failed to store domain check for monitor {monitor_id}: {e}")
                    self.recorder.rollback()
                    summary.failures += 1
                    continue
                logger.info(
                    f"Domain check complete for monitor {monitor_id}: ssl={result.ssl.valid}, dns={result.dns.resolved}"
                )

        logger.info(f"Domain pass completed: {summary.checks_run} checked, {summary.failures} failures")
        return summary
