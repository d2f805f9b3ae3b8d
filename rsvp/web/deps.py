import hmac
from typing import Optional

from fastapi import Depends, Header, HTTPException, Request, status

from rsvp.core.config import Settings
from rsvp.core.cookies import SessionCodec, session_cookie_name
from rsvp.services.guest_state import GuestStateMachine
from rsvp.services.guest_store import GuestStore


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_store(request: Request) -> GuestStore:
    return request.app.state.store


def get_codec(request: Request) -> SessionCodec:
    return request.app.state.codec


def get_state_machine(request: Request) -> GuestStateMachine:
    return request.app.state.state_machine


def get_session_token(
    request: Request, app_settings: Settings = Depends(get_settings)
) -> Optional[str]:
    return request.cookies.get(session_cookie_name(app_settings))


async def require_api_key(
    x_api_key: Optional[str] = Header(default=None),
    app_settings: Settings = Depends(get_settings),
) -> None:
    """Admin API guard. An unset API_KEY disables the admin API entirely."""
    if not app_settings.api_key:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Forbidden")

    if not x_api_key or not hmac.compare_digest(x_api_key, app_settings.api_key):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Forbidden")
