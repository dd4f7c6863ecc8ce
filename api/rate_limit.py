from slowapi import Limiter
from slowapi.util import get_remote_address
import os

limiter = Limiter(
    key_func=get_remote_address,
    default_limits=["100/minute"],
    enabled=os.getenv("RATE_LIMIT_ENABLED", "true").lower() == "true",
)
