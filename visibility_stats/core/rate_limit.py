"""Rate limiting configuration using slowapi."""

from slowapi import Limiter
from slowapi.util import get_remote_address

from visibility_stats.core.config import settings

# Rate limiter instance, keyed by remote address
limiter = Limiter(key_func=get_remote_address, default_limits=[], enabled=settings.rate_limit_enabled)
