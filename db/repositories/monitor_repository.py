from sqlalchemy.orm import Session
from db.models import Monitor


class MonitorRepository:
    def __init__(self, db: Session):
        self.db = db

    def create(self, monitor: Monitor) -> Monitor:
        self.db.add(monitor)
        self.db.commit()
        self.db.refresh(monitor)
        return monitor

    def get_by_id(self, monitor_id: int) -> Monitor | None:
        return self.db.query(Monitor).filter(Monitor.id == monitor_id).first()

    def list_by_user(self, user_id: int) -> list[Monitor]:
        return self.db.query(Monitor).filter(Monitor.user_id == user_id).all()

    def list_active(self) -> list[Monitor]:
        return (
            self.db.query(Monitor)
            .filter(Monitor.is_active.is_(True))
            .order_by(Monitor.id)
            .all()
        )
