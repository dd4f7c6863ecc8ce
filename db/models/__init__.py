from .check_result import CheckResult
from .domain_check import DomainCheck
from .monitor import Monitor
from .user import User
from .settings import Settings

__all__ = ["CheckResult", "DomainCheck", "Monitor", "User", "Settings"]
