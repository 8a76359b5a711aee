"""
Per-client-IP request limits (slowapi).

Routes opt in with @limiter.limit("N/minute") placed under the route
decorator, and must accept `request: Request`. Exceeded limits are answered
with 429 {"error": ...} by the handler in main.py.
"""
from slowapi import Limiter
from slowapi.util import get_remote_address

from authserver.config import settings

limiter = Limiter(
    key_func=get_remote_address,
    default_limits=["200/minute"],
    # Off in tests and local load runs
    enabled=settings.rate_limit_enabled,
)
