"""
Shared rate limiter for the auth routes.

Per-IP limits only apply in production; the per-phone OTP quota lives in
otp_provider.
"""
from slowapi import Limiter
from slowapi.util import get_remote_address

from .config import get_settings

_settings = get_settings()

AUTH_RATE_LIMIT = _settings.AUTH_RATE_LIMIT

limiter = Limiter(
    key_func=get_remote_address,
    enabled=_settings.is_production,
)
