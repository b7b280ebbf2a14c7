"""
Rate limiter configuration using SlowAPI.
"""

from slowapi import Limiter
from slowapi.util import get_remote_address

from config import settings

WRITE_LIMIT = "30/minute"
READ_LIMIT = "120/minute"

# Keyed by client IP; counters live in Redis when configured so that limits
# hold across worker processes
limiter = Limiter(
    key_func=get_remote_address,
    enabled=settings.rate_limit_enabled,
    storage_uri=settings.redis_url or "memory://",
    default_limits=[settings.rate_limit_default],
)
