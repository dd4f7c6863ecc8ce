from typing import Optional
from fastapi import APIRouter, Depends, HTTPException, Query, status
from api.dependencies import get_monitor_repo, get_recorder
from api.models import CheckResponse, DomainCheckResponse, MonitorStatusResponse
from api.services.recorder import ResultRecorder
from db.models import Monitor
from db.repositories.monitor_repository import MonitorRepository

router = APIRouter()


def _get_monitor_or_404(monitor_id: int, monitor_repo: MonitorRepository) -> Monitor:
    monitor = monitor_repo.get_by_id(monitor_id)
    if not monitor:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Monitor not found")
    return monitor


@router.get("/monitors/{monitor_id}/checks", response_model=list[CheckResponse])
def list_checks(
    monitor_id: int,
    limit: int = Query(50, ge=1, le=500),
    monitor_repo: MonitorRepository = Depends(get_monitor_repo),
    recorder: ResultRecorder = Depends(get_recorder),
):
    _get_monitor_or_404(monitor_id, monitor_repo)
    return recorder.recent_checks(monitor_id, limit)


@router.get("/monitors/{monitor_id}/status", response_model=MonitorStatusResponse)
def get_status(
    monitor_id: int,
    monitor_repo: MonitorRepository = Depends(get_monitor_repo),
    recorder: ResultRecorder = Depends(get_recorder),
):
    monitor = _get_monitor_or_404(monitor_id, monitor_repo)
    return recorder.status_summary(monitor)


@router.get("/monitors/{monitor_id}/domain-check", response_model=Optional[DomainCheckResponse])
def get_domain_check(
    monitor_id: int,
    monitor_repo: MonitorRepository = Depends(get_monitor_repo),
    recorder: ResultRecorder = Depends(get_recorder),
):
    _get_monitor_or_404(monitor_id, monitor_repo)
    return recorder.latest_domain_check(monitor_id)
