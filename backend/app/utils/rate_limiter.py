# /app/utils/rate_limiter.py

from slowapi import Limiter
from app.utils.request_utils import get_remote_address
from app.config.settings import settings

# The limiter lives here so both the app and the chat router can import it
# without a circular import.

limiter = Limiter(
    key_func=get_remote_address,
    default_limits=[f"{settings.rate_limit_per_minute}/minute"],
    enabled=settings.environment != "test",
)
