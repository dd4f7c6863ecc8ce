from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy.exc import SQLAlchemyError
from api.dependencies import get_monitor_service, verify_cron_secret
from api.models import PassSummaryResponse
from api.rate_limit import limiter
from api.services.monitor_service import MonitorService
import logging

router = APIRouter(dependencies=[Depends(verify_cron_secret)])
logger = logging.getLogger(__name__)


@router.api_route("/cron/check-monitors", methods=["GET", "POST"], response_model=PassSummaryResponse)
@limiter.limit("60/minute")
def check_monitors(
    request: Request,
    monitor_service: MonitorService = Depends(get_monitor_service),
):
    """Run one due-check pass over all active monitors."""
    try:
        summary = monitor_service.check_due_monitors()
    except SQLAlchemyError as e:
        logger.error(f"Error fetching monitors: {e}")
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Failed to fetch monitors")
    return summary.to_dict()


@router.api_route("/cron/check-domains", methods=["GET", "POST"], response_model=PassSummaryResponse)
@limiter.limit("60/minute")
def check_domains(
    request: Request,
    monitor_service: MonitorService = Depends(get_monitor_service),
):
    """Run one domain-check pass (TLS, DNS, WHOIS) over HTTP(S) monitors."""
    try:
        summary = monitor_service.check_due_domains()
    except SQLAlchemyError as e:
        logger.error(f"Error fetching monitors: {e}")
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Failed to fetch monitors")
    return summary.to_dict()
