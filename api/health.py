from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from sqlalchemy import text
from api.dependencies import get_db
from db.repositories.monitor_repository import MonitorRepository
import logging

router = APIRouter()
logger = logging.getLogger(__name__)


def _scheduler_state() -> str:
    # Imported lazily, main imports this module
    from main import scheduler, scheduler_enabled

    if not scheduler_enabled():
        return "external"
    return "running" if scheduler and scheduler.running else "stopped"


@router.get("/health")
def health_check(db: Session = Depends(get_db)):
    """
    Health check for load balancers and the external cron trigger.
    Reports database connectivity, how passes are triggered and how many monitors are active.
    """
    try:
        db.execute(text("SELECT 1"))
        active_monitors = len(MonitorRepository(db).list_active())
    except Exception as e:
        logger.error(f"Health check failed: {e}")
        return {
            "status": "unhealthy",
            "error": str(e)
        }

    return {
        "status": "healthy",
        "database": "connected",
        "scheduler": _scheduler_state(),
        "active_monitors": active_monitors,
    }
