from pydantic import BaseModel, ConfigDict
from datetime import datetime
from typing import Optional


class PassSummaryResponse(BaseModel):
    timestamp: datetime
    monitorsChecked: int
    checksRun: int
    failures: int


class CheckResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    monitor_id: int
    status: str
    response_time: int
    status_code: Optional[int]
    error_message: Optional[str]
    checked_at: datetime


class DomainCheckResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    monitor_id: int
    domain: str
    ssl_valid: bool
    ssl_expires_at: Optional[datetime]
    ssl_issuer: Optional[str]
    ssl_error: Optional[str]
    dns_resolved: bool
    dns_records: Optional[list[str]]
    dns_error: Optional[str]
    whois_registrar: Optional[str]
    whois_expires_at: Optional[datetime]
    whois_error: Optional[str]
    checked_at: datetime


class MonitorStatusResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    monitor_id: int
    name: str
    url: str
    is_active: bool
    current_status: Optional[str]
    uptime_percentage: int
    last_checked_at: Optional[datetime]
    latest_check: Optional[CheckResponse]
