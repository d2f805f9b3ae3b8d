"""
Throttling for invitation code submissions.

Codes are short, so POST /rsvp is the endpoint worth guessing against and the
only one limited. The limit is read per request, which lets create_app()
apply whatever Settings it was given.
"""
from slowapi import Limiter
from slowapi.util import get_remote_address

from rsvp.core.config import Settings, settings

_active = {"rsvp": settings.rate_limit_rsvp}

limiter = Limiter(
    key_func=get_remote_address,
    enabled=settings.rate_limit_enabled,
)


def rsvp_limit() -> str:
    return _active["rsvp"]


def configure_limiter(app_settings: Settings) -> Limiter:
    limiter.enabled = app_settings.rate_limit_enabled
    _active["rsvp"] = app_settings.rate_limit_rsvp
    return limiter
