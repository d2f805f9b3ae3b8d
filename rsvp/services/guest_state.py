"""
Guest state machine.

Works out, from the session cookie and the stored guest flags, which page a
guest should see, and applies the RSVP transitions. Handlers get back an
Outcome and only translate it into an HTTP response.

Reads are strict: a StoreUnavailableError propagates and aborts the request.
Writes are lenient: each failed write is logged and the request carries on.
"""
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from fastapi import status

from rsvp.core.cookies import INVALID_SESSION_MARKER, SessionCodec
from rsvp.core.errors import (
    InvalidSession,
    MalformedInput,
    NoSessionPresent,
    SessionError,
    StoreWriteError,
)
from rsvp.models import GuestField, ScratchField
from rsvp.schemas.guest import DetailsSubmission, GuestOut, SessionScratchOut
from rsvp.services.guest_store import GuestStore
from rsvp.utils.codes import is_valid_code_shape
from rsvp.utils.validators import (
    normalize_meal_choice,
    validate_dietary,
    validate_email,
    validate_phone,
)

logger = logging.getLogger(__name__)

HOME_URL = "/"


class GuestState(str, Enum):
    NO_SESSION = "no_session"
    INVALID_CODE = "invalid_code"
    AWAITING_RESPONSE = "awaiting_response"
    DECLINED = "declined"
    DETAILS_INVALID = "details_invalid"
    DETAILS_PENDING = "details_pending"
    ACCEPTED = "accepted"


class View(str, Enum):
    INDEX = "index"
    INVALID_GUEST = "invalid_guest"
    RESPOND = "respond"
    GUEST_DECLINED = "guest_declined"
    INVALID_DETAILS = "invalid_details"
    GUEST_DETAILS = "guest_details"
    GUEST_ACCEPTED = "guest_accepted"
    CHANGE_ATTENDANCE = "change_attendance"


STATE_VIEWS = {
    GuestState.NO_SESSION: View.INDEX,
    GuestState.INVALID_CODE: View.INVALID_GUEST,
    GuestState.AWAITING_RESPONSE: View.RESPOND,
    GuestState.DECLINED: View.GUEST_DECLINED,
    GuestState.DETAILS_INVALID: View.INVALID_DETAILS,
    GuestState.DETAILS_PENDING: View.GUEST_DETAILS,
    GuestState.ACCEPTED: View.GUEST_ACCEPTED,
}


@dataclass
class Outcome:
    """What a handler should send back.

    Exactly one of `view` or `redirect_to` is set. `session_value` is the
    value to (re)issue in the session cookie; `clear_session` drops it.
    """

    state: Optional[GuestState] = None
    view: Optional[View] = None
    redirect_to: Optional[str] = None
    status_code: int = status.HTTP_200_OK
    guest: Optional[GuestOut] = None
    scratch: Optional[SessionScratchOut] = None
    session_value: Optional[str] = None
    clear_session: bool = False

    @classmethod
    def redirect(cls, url: str = HOME_URL, **kwargs) -> "Outcome":
        return cls(redirect_to=url, status_code=status.HTTP_303_SEE_OTHER, **kwargs)


def derive_state(guest: GuestOut) -> GuestState:
    """Pure function of the stored flags; calling it twice gives the same answer."""
    if guest.attendance is None:
        return GuestState.AWAITING_RESPONSE
    if guest.attendance is False:
        return GuestState.DECLINED
    if guest.details_provided:
        return GuestState.ACCEPTED
    if guest.invalid_details:
        return GuestState.DETAILS_INVALID
    return GuestState.DETAILS_PENDING


class GuestStateMachine:
    def __init__(self, store: GuestStore, codec: SessionCodec):
        self.store = store
        self.codec = codec

    async def resolve_guest(self, token: Optional[str]) -> GuestOut:
        """
        Turn a session cookie into a guest.

        Raises NoSessionPresent, InvalidSession, or StoreUnavailableError
        when the lookup itself fails.
        """
        code = self.codec.open(token)

        # Skip the store for visitors already known to have a bad code
        if code == INVALID_SESSION_MARKER:
            raise InvalidSession("session carries the invalid marker")

        guest = await self.store.get_guest(code)
        if guest is None:
            logger.warning("Session code not found", extra={"code": code})
            raise InvalidSession(f"code {code} does not exist")
        return guest

    async def _write(self, description: str, code: str, coro) -> bool:
        try:
            await coro
        except StoreWriteError as e:
            logger.error(
                f"Store write failed: {description}: {e}",
                extra={"code": code, "operation": description},
            )
            return False
        return True

    async def index(self, token: Optional[str]) -> Outcome:
        try:
            guest = await self.resolve_guest(token)
        except NoSessionPresent:
            return Outcome(state=GuestState.NO_SESSION, view=View.INDEX)
        except InvalidSession:
            return Outcome(state=GuestState.INVALID_CODE, view=View.INVALID_GUEST)

        state = derive_state(guest)
        view = STATE_VIEWS[state]

        scratch = None
        if state == GuestState.DETAILS_INVALID:
            scratch = await self.store.get_session_scratch(guest.code)

        await self._write(
            "record page visit",
            guest.code,
            self.store.record_page_visit(guest.id, view.value),
        )

        return Outcome(
            state=state,
            view=view,
            guest=guest,
            scratch=scratch,
            session_value=guest.code,
        )

    async def _guest_from_code(self, code_input: Optional[str]) -> GuestOut:
        code = (code_input or "").strip()
        if not is_valid_code_shape(code):
            raise MalformedInput("guest-code", code)

        guest = await self.store.get_guest(code)
        if guest is None:
            raise InvalidSession(f"code {code} does not exist")
        return guest

    async def submit_rsvp(
        self,
        token: Optional[str],
        code_input: Optional[str],
        attendance_input: Optional[str],
    ) -> Outcome:
        """
        Establish the session from a submitted code if needed, then record
        attendance when the form carried it.
        """
        try:
            guest = await self.resolve_guest(token)
        except SessionError:
            try:
                guest = await self._guest_from_code(code_input)
            except (MalformedInput, InvalidSession):
                logger.warning(
                    "Invalid invitation code used", extra={"code": code_input}
                )
                return Outcome.redirect(
                    state=GuestState.INVALID_CODE,
                    session_value=INVALID_SESSION_MARKER,
                )

        if attendance_input is None:
            return Outcome.redirect(
                state=derive_state(guest), guest=guest, session_value=guest.code
            )

        if attendance_input == "true":
            await self._write(
                "update attendance",
                guest.code,
                self.store.update_attendance(guest.code, True, guest.form_completed),
            )
        else:
            # Declining finishes the form, no details are ever asked for
            await self._write(
                "update attendance",
                guest.code,
                self.store.update_attendance(guest.code, False, True),
            )

        logger.info(
            "Attendance recorded",
            extra={"code": guest.code, "attending": attendance_input == "true"},
        )
        return Outcome.redirect(guest=guest, session_value=guest.code)

    async def submit_details(
        self, token: Optional[str], details: DetailsSubmission
    ) -> Outcome:
        try:
            guest = await self.resolve_guest(token)
        except NoSessionPresent:
            return Outcome(
                state=GuestState.NO_SESSION,
                view=View.INDEX,
                status_code=status.HTTP_401_UNAUTHORIZED,
            )
        except InvalidSession:
            return Outcome(
                state=GuestState.INVALID_CODE,
                view=View.INVALID_GUEST,
                status_code=status.HTTP_401_UNAUTHORIZED,
            )

        # Details only matter for guests who are coming
        if guest.attendance is not True:
            return Outcome.redirect(
                state=derive_state(guest), guest=guest, session_value=guest.code
            )

        code = guest.code
        checks = [
            (GuestField.EMAIL, ScratchField.EMAIL, validate_email(details.email)),
            (
                GuestField.PHONE_NUMBER,
                ScratchField.PHONE_NUMBER,
                validate_phone(details.phone_number),
            ),
            (
                GuestField.DIETARY_REQUIREMENTS,
                ScratchField.DIETARY_REQUIREMENTS,
                validate_dietary(details.dietary_requirements),
            ),
        ]

        scratch = SessionScratchOut(code=code)
        saved = {}
        for field, scratch_field, (is_valid, value) in checks:
            setattr(scratch, scratch_field.value, not is_valid)
            await self._write(
                f"set {scratch_field.value}",
                code,
                self.store.set_field_scratch(code, scratch_field, not is_valid),
            )

            if is_valid:
                if await self._write(
                    f"update {field.value}",
                    code,
                    self.store.update_field(code, field, value),
                ):
                    saved[field.value] = value
            else:
                logger.warning(
                    f"{field.value} for code {code} is invalid",
                    extra={"code": code, "field": field.value},
                )

        meal_choice = normalize_meal_choice(details.meal_choice)
        if meal_choice and await self._write(
            "update meal_choice",
            code,
            self.store.update_field(code, GuestField.MEAL_CHOICE, meal_choice),
        ):
            saved[GuestField.MEAL_CHOICE.value] = meal_choice

        if scratch.has_errors:
            await self._write(
                "mark invalid details",
                code,
                self.store.mark_invalid_details(code, True),
            )
            # Reflect the saved values without another store read
            refreshed = guest.model_copy(
                update={**saved, "invalid_details": True, "details_provided": False}
            )
            return Outcome(
                state=GuestState.DETAILS_INVALID,
                view=View.INVALID_DETAILS,
                status_code=status.HTTP_400_BAD_REQUEST,
                guest=refreshed,
                scratch=scratch,
                session_value=code,
            )

        await self._write(
            "mark details committed",
            code,
            self.store.mark_details_committed(code),
        )
        logger.info("Guest details provided", extra={"code": code})
        return Outcome.redirect(
            state=GuestState.ACCEPTED, guest=guest, session_value=code
        )

    async def _reopen_form(self, token: Optional[str], view: View) -> Outcome:
        try:
            guest = await self.resolve_guest(token)
        except NoSessionPresent:
            return Outcome(
                state=GuestState.NO_SESSION,
                view=View.INDEX,
                status_code=status.HTTP_401_UNAUTHORIZED,
            )
        except InvalidSession:
            return Outcome(
                state=GuestState.INVALID_CODE,
                view=View.INVALID_GUEST,
                status_code=status.HTTP_401_UNAUTHORIZED,
            )

        state = derive_state(guest)
        if view == View.GUEST_DETAILS and guest.attendance is not True:
            return Outcome.redirect(state=state, guest=guest, session_value=guest.code)

        scratch = None
        if state == GuestState.DETAILS_INVALID:
            scratch = await self.store.get_session_scratch(guest.code)

        return Outcome(
            state=state,
            view=view,
            guest=guest,
            scratch=scratch,
            session_value=guest.code,
        )

    async def change_details(self, token: Optional[str]) -> Outcome:
        """Re-open the details form prefilled. Stored flags are left alone."""
        return await self._reopen_form(token, View.GUEST_DETAILS)

    async def change_attendance(self, token: Optional[str]) -> Outcome:
        return await self._reopen_form(token, View.CHANGE_ATTENDANCE)

    def reset(self) -> Outcome:
        """Forget the session. The store is not touched."""
        return Outcome.redirect(state=GuestState.NO_SESSION, clear_session=True)
