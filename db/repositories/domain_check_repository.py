from datetime import datetime
from sqlalchemy.orm import Session
from db.models import DomainCheck


class DomainCheckRepository:
    def __init__(self, db: Session):
        self.db = db

    def insert(self, domain_check: DomainCheck) -> DomainCheck:
        self.db.add(domain_check)
        self.db.commit()
        self.db.refresh(domain_check)
        return domain_check

    def get_latest(self, monitor_id: int) -> DomainCheck | None:
        return (
            self.db.query(DomainCheck)
            .filter(DomainCheck.monitor_id == monitor_id)
            .order_by(DomainCheck.checked_at.desc(), DomainCheck.id.desc())
            .first()
        )

    def get_latest_checked_at(self, monitor_id: int) -> datetime | None:
        latest = self.get_latest(monitor_id)
        return latest.checked_at if latest else None
