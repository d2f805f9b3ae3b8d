import logging
from pathlib import Path
from typing import Optional

from fastapi import APIRouter, Depends, Form, Request, status
from fastapi.responses import HTMLResponse, RedirectResponse, Response
from fastapi.templating import Jinja2Templates
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address

from rsvp.core.config import Settings
from rsvp.core.cookies import SessionCodec, clear_session_cookie, set_session_cookie
from rsvp.core.rate_limiter import limiter, rsvp_limit
from rsvp.schemas.guest import DetailsSubmission
from rsvp.services.guest_state import GuestStateMachine, Outcome
from rsvp.web.deps import get_codec, get_session_token, get_settings, get_state_machine

logger = logging.getLogger(__name__)

TEMPLATES_DIR = Path(__file__).resolve().parent.parent / "templates"
templates = Jinja2Templates(directory=str(TEMPLATES_DIR))

router = APIRouter(tags=["rsvp"])


def event_context(app_settings: Settings) -> dict:
    """Only the display fields, never the whole settings object."""
    return {
        "name": app_settings.event_name,
        "date": app_settings.event_date,
        "venue": app_settings.event_venue,
    }


def render_outcome(
    request: Request,
    outcome: Outcome,
    app_settings: Settings,
    codec: SessionCodec,
) -> Response:
    """Turn a state machine Outcome into a response, cookie included."""
    if outcome.redirect_to:
        response = RedirectResponse(url=outcome.redirect_to, status_code=outcome.status_code)
    else:
        response = templates.TemplateResponse(
            request,
            f"{outcome.view.value}.html",
            {
                "event": event_context(app_settings),
                "state": outcome.state,
                "guest": outcome.guest,
                "scratch": outcome.scratch,
            },
            status_code=outcome.status_code,
        )

    # Reassert the session on every resolved request
    if outcome.clear_session:
        clear_session_cookie(response, app_settings)
    elif outcome.session_value:
        set_session_cookie(response, codec, outcome.session_value, app_settings)

    return response


@router.get("/", response_class=HTMLResponse)
async def index(
    request: Request,
    token: Optional[str] = Depends(get_session_token),
    machine: GuestStateMachine = Depends(get_state_machine),
    codec: SessionCodec = Depends(get_codec),
    app_settings: Settings = Depends(get_settings),
):
    """Home page, picks the view from the guest's stored state"""
    outcome = await machine.index(token)
    return render_outcome(request, outcome, app_settings, codec)


@router.post("/rsvp")
@limiter.limit(rsvp_limit)
async def rsvp(
    request: Request,
    guest_code: Optional[str] = Form(default=None, alias="guest-code"),
    invitee_code: Optional[str] = Form(default=None, alias="invitee-code"),
    attendance: Optional[str] = Form(default=None),
    token: Optional[str] = Depends(get_session_token),
    machine: GuestStateMachine = Depends(get_state_machine),
    codec: SessionCodec = Depends(get_codec),
    app_settings: Settings = Depends(get_settings),
):
    """Code entry and attendance response"""
    outcome = await machine.submit_rsvp(token, guest_code or invitee_code, attendance)
    return render_outcome(request, outcome, app_settings, codec)


@router.post("/guest-details")
async def guest_details(
    request: Request,
    email: str = Form(default=""),
    phone_number: str = Form(default="", alias="phone-number"),
    meal_choice: str = Form(default="", alias="meal-choice"),
    dietary_requirements: str = Form(default="", alias="dietary-requirements"),
    token: Optional[str] = Depends(get_session_token),
    machine: GuestStateMachine = Depends(get_state_machine),
    codec: SessionCodec = Depends(get_codec),
    app_settings: Settings = Depends(get_settings),
):
    details = DetailsSubmission(
        email=email,
        phone_number=phone_number,
        meal_choice=meal_choice,
        dietary_requirements=dietary_requirements,
    )
    outcome = await machine.submit_details(token, details)
    return render_outcome(request, outcome, app_settings, codec)


@router.get("/change-details", response_class=HTMLResponse)
async def change_details(
    request: Request,
    token: Optional[str] = Depends(get_session_token),
    machine: GuestStateMachine = Depends(get_state_machine),
    codec: SessionCodec = Depends(get_codec),
    app_settings: Settings = Depends(get_settings),
):
    outcome = await machine.change_details(token)
    return render_outcome(request, outcome, app_settings, codec)


@router.get("/change-attendance-response", response_class=HTMLResponse)
async def change_attendance_response(
    request: Request,
    token: Optional[str] = Depends(get_session_token),
    machine: GuestStateMachine = Depends(get_state_machine),
    codec: SessionCodec = Depends(get_codec),
    app_settings: Settings = Depends(get_settings),
):
    outcome = await machine.change_attendance(token)
    return render_outcome(request, outcome, app_settings, codec)


@router.get("/reset-guest")
async def reset_guest(
    request: Request,
    machine: GuestStateMachine = Depends(get_state_machine),
    codec: SessionCodec = Depends(get_codec),
    app_settings: Settings = Depends(get_settings),
):
    """Forget who this browser belongs to"""
    return render_outcome(request, machine.reset(), app_settings, codec)


@router.get("/error", response_class=HTMLResponse)
async def error_page(
    request: Request,
    app_settings: Settings = Depends(get_settings),
):
    return templates.TemplateResponse(
        request,
        "error.html",
        {"event": event_context(app_settings)},
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
    )


async def rate_limited(request: Request, exc: RateLimitExceeded) -> Response:
    """Too many code submissions from one client."""
    logger.warning(
        f"Rate limit hit on {request.url.path}: {exc.detail}",
        extra={"path": request.url.path, "client": get_remote_address(request)},
    )
    return templates.TemplateResponse(
        request,
        "rate_limited.html",
        {"event": event_context(request.app.state.settings)},
        status_code=status.HTTP_429_TOO_MANY_REQUESTS,
    )
