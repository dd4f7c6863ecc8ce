from datetime import datetime
from sqlalchemy.orm import Session
from db.models import CheckResult
from db.models.check_result import STATUS_UP


class CheckRepository:
    """Append-only access to the monitor_checks table."""

    def __init__(self, db: Session):
        self.db = db

    def insert(self, check: CheckResult) -> CheckResult:
        self.db.add(check)
        self.db.commit()
        self.db.refresh(check)
        return check

    def get_latest(self, monitor_id: int) -> CheckResult | None:
        return (
            self.db.query(CheckResult)
            .filter(CheckResult.monitor_id == monitor_id)
            .order_by(CheckResult.checked_at.desc(), CheckResult.id.desc())
            .first()
        )

    def get_latest_checked_at(self, monitor_id: int) -> datetime | None:
        latest = self.get_latest(monitor_id)
        return latest.checked_at if latest else None

    def list_recent(self, monitor_id: int, limit: int = 50) -> list[CheckResult]:
        return (
            self.db.query(CheckResult)
            .filter(CheckResult.monitor_id == monitor_id)
            .order_by(CheckResult.checked_at.desc(), CheckResult.id.desc())
            .limit(limit)
            .all()
        )

    def count_by_status(self, monitor_id: int, since: datetime | None = None) -> tuple[int, int]:
        """Return (up_count, total_count), optionally restricted to checks at or after *since*."""
        query = self.db.query(CheckResult).filter(CheckResult.monitor_id == monitor_id)
        if since is not None:
            query = query.filter(CheckResult.checked_at >= since)
        total = query.count()
        up = query.filter(CheckResult.status == STATUS_UP).count()
        return up, total
