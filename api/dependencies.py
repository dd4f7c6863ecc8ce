# api/dependencies.py
from fastapi import Depends, Request, HTTPException, status
from db.engine import SessionLocal
from sqlalchemy.orm import Session
from db.repositories.check_repository import CheckRepository
from db.repositories.domain_check_repository import DomainCheckRepository
from db.repositories.monitor_repository import MonitorRepository
from db.repositories.settings_repository import SettingsRepository
from db.repositories.user_repository import UserRepository
from api.services.alert_service import AlertConfig, AlertDispatcher
from api.services.monitor_service import MonitorService, DEFAULT_MAX_WORKERS
from api.services.recorder import ResultRecorder
import logging
import os
import secrets

logger = logging.getLogger(__name__)


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def _int_setting(settings_repo: SettingsRepository, key: str, default: int) -> int:
    value = settings_repo.get_setting(key)
    if value is None or value == "":
        return default
    try:
        return int(value)
    except ValueError:
        logger.warning(f"Invalid {key}={value!r}, using {default}")
        return default


def build_recorder(db: Session) -> ResultRecorder:
    settings_repo = SettingsRepository(db)
    window = _int_setting(settings_repo, "UPTIME_WINDOW_HOURS", 24)
    return ResultRecorder(CheckRepository(db), DomainCheckRepository(db), uptime_window_hours=window or None)


def build_monitor_service(db: Session) -> MonitorService:
    """Wire one invocation's worth of repositories, config and collaborators."""
    settings_repo = SettingsRepository(db)
    alert_config = AlertConfig.from_settings(settings_repo)
    return MonitorService(
        MonitorRepository(db),
        build_recorder(db),
        alert_dispatcher=AlertDispatcher(alert_config, UserRepository(db)),
        max_workers=_int_setting(settings_repo, "PROBE_CONCURRENCY", DEFAULT_MAX_WORKERS),
    )


def get_monitor_service(db: Session = Depends(get_db)):
    return build_monitor_service(db)


def get_recorder(db: Session = Depends(get_db)):
    return build_recorder(db)


def get_monitor_repo(db: Session = Depends(get_db)):
    return MonitorRepository(db)


def verify_cron_secret(request: Request):
    """Require `Authorization: Bearer <CRON_SECRET>` when CRON_SECRET is set."""
    expected = os.getenv("CRON_SECRET")
    if not expected:
        return
    provided = request.headers.get("Authorization", "")
    if not secrets.compare_digest(provided, f"Bearer {expected}"):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid cron secret")
