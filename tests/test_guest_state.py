"""
Tests for the guest state machine
"""
from unittest.mock import AsyncMock

import pytest
from fastapi import status

from rsvp.core.cookies import INVALID_SESSION_MARKER
from rsvp.core.errors import InvalidSession, NoSessionPresent, StoreUnavailableError, StoreWriteError
from rsvp.schemas.guest import DetailsSubmission, GuestOut
from rsvp.services.guest_state import GuestState, View, derive_state

VALID_DETAILS = DetailsSubmission(
    email="a@b.co",
    phone_number="5551234",
    meal_choice="Fish",
    dietary_requirements="No nuts, please.",
)


def make_guest(**flags) -> GuestOut:
    return GuestOut(id=1, name="Maria Lopez", code="Maria-1St", **flags)


class TestDeriveState:
    def test_no_response(self):
        assert derive_state(make_guest()) == GuestState.AWAITING_RESPONSE

    def test_declined(self):
        assert derive_state(make_guest(attendance=False, form_started=True)) == GuestState.DECLINED

    def test_declined_ignores_old_details(self):
        guest = make_guest(attendance=False, form_started=True, details_provided=True)
        assert derive_state(guest) == GuestState.DECLINED

    def test_details_pending(self):
        assert derive_state(make_guest(attendance=True, form_started=True)) == GuestState.DETAILS_PENDING

    def test_details_invalid(self):
        guest = make_guest(attendance=True, form_started=True, invalid_details=True)
        assert derive_state(guest) == GuestState.DETAILS_INVALID

    def test_accepted(self):
        guest = make_guest(attendance=True, form_started=True, details_provided=True)
        assert derive_state(guest) == GuestState.ACCEPTED


class TestResolveGuest:
    async def test_no_cookie(self, machine):
        with pytest.raises(NoSessionPresent):
            await machine.resolve_guest(None)

    async def test_marker_skips_store(self, machine, codec, store):
        store.get_guest = AsyncMock()
        with pytest.raises(InvalidSession):
            await machine.resolve_guest(codec.seal(INVALID_SESSION_MARKER))
        store.get_guest.assert_not_called()

    async def test_unknown_code(self, machine, codec):
        with pytest.raises(InvalidSession):
            await machine.resolve_guest(codec.seal("Ghost-abcdef"))

    async def test_store_read_error_propagates(self, machine, codec, store):
        store.get_guest = AsyncMock(side_effect=StoreUnavailableError("db down"))
        with pytest.raises(StoreUnavailableError):
            await machine.resolve_guest(codec.seal("Maria-1St"))


class TestIndex:
    async def test_first_visit(self, machine):
        outcome = await machine.index(None)
        assert outcome.state == GuestState.NO_SESSION
        assert outcome.view == View.INDEX
        assert outcome.session_value is None

    async def test_bad_cookie_shows_invalid_view(self, machine):
        outcome = await machine.index("garbage")
        assert outcome.state == GuestState.INVALID_CODE
        assert outcome.view == View.INVALID_GUEST
        assert outcome.status_code == status.HTTP_200_OK

    async def test_reissues_cookie_and_records_visit(self, machine, codec, store, maria):
        outcome = await machine.index(codec.seal(maria.code))

        assert outcome.state == GuestState.AWAITING_RESPONSE
        assert outcome.session_value == maria.code
        visits = await store.list_page_visits()
        assert [(v.guest_id, v.page_name, v.visit_count) for v in visits] == [(1, "respond", 1)]

    async def test_repeated_reads_are_idempotent(self, machine, codec, store, maria):
        await store.update_attendance(maria.code, True, False)
        token = codec.seal(maria.code)

        first = await machine.index(token)
        second = await machine.index(token)
        assert first.state == second.state == GuestState.DETAILS_PENDING
        assert first.view == second.view

    async def test_visit_write_failure_is_not_fatal(self, machine, codec, store, maria):
        store.record_page_visit = AsyncMock(side_effect=StoreWriteError("disk full"))
        outcome = await machine.index(codec.seal(maria.code))
        assert outcome.view == View.RESPOND


class TestSubmitRsvp:
    async def test_valid_code_starts_session(self, machine, store):
        guest = await store.insert_guest("Tom Hart")
        outcome = await machine.submit_rsvp(None, guest.code, None)

        assert outcome.redirect_to == "/"
        assert outcome.session_value == guest.code
        assert outcome.state == GuestState.AWAITING_RESPONSE

    async def test_malformed_code_never_hits_store(self, machine, store):
        store.get_guest = AsyncMock()
        outcome = await machine.submit_rsvp(None, "maria1", "true")

        store.get_guest.assert_not_called()
        assert outcome.redirect_to == "/"
        assert outcome.session_value == INVALID_SESSION_MARKER

    async def test_unknown_code_sets_marker(self, machine):
        outcome = await machine.submit_rsvp(None, "Ghost-abcdef", None)
        assert outcome.session_value == INVALID_SESSION_MARKER
        assert outcome.state == GuestState.INVALID_CODE

    async def test_invalid_cookie_can_retry_with_code(self, machine, codec, store):
        guest = await store.insert_guest("Tom Hart")
        outcome = await machine.submit_rsvp(codec.seal(INVALID_SESSION_MARKER), guest.code, None)
        assert outcome.session_value == guest.code

    async def test_decline(self, machine, codec, store, maria):
        outcome = await machine.submit_rsvp(codec.seal(maria.code), None, "false")
        assert outcome.redirect_to == "/"

        guest = await store.get_guest(maria.code)
        assert derive_state(guest) == GuestState.DECLINED
        assert guest.form_completed
        assert guest.email is None and guest.phone_number is None

    async def test_anything_but_true_declines(self, machine, codec, store, maria):
        await machine.submit_rsvp(codec.seal(maria.code), None, "yes")
        assert (await store.get_guest(maria.code)).attendance is False

    async def test_accept(self, machine, codec, store, maria):
        await machine.submit_rsvp(codec.seal(maria.code), None, "true")

        guest = await store.get_guest(maria.code)
        assert derive_state(guest) == GuestState.DETAILS_PENDING
        assert guest.form_started
        assert not guest.form_completed

    async def test_write_failure_still_redirects(self, machine, codec, store, maria):
        store.update_attendance = AsyncMock(side_effect=StoreWriteError("locked"))
        outcome = await machine.submit_rsvp(codec.seal(maria.code), None, "true")
        assert outcome.redirect_to == "/"
        assert outcome.session_value == maria.code


class TestSubmitDetails:
    @pytest.fixture
    async def attending(self, store, maria, codec):
        await store.update_attendance(maria.code, True, False)
        return codec.seal(maria.code)

    async def test_invalid_fields_flagged_valid_ones_kept(self, machine, store, maria, attending):
        details = DetailsSubmission(
            email="bad",
            phone_number="555-1234",
            dietary_requirements="Vegan",
        )
        outcome = await machine.submit_details(attending, details)

        assert outcome.state == GuestState.DETAILS_INVALID
        assert outcome.status_code == status.HTTP_400_BAD_REQUEST

        scratch = await store.get_session_scratch(maria.code)
        assert scratch.invalid_email and scratch.invalid_phone_number
        assert not scratch.invalid_dietary_requirements

        guest = await store.get_guest(maria.code)
        assert guest.dietary_requirements == "Vegan"
        assert guest.email is None and guest.phone_number is None
        assert guest.invalid_details and not guest.details_provided
        assert derive_state(guest) == GuestState.DETAILS_INVALID

    async def test_resubmit_valid_accepts(self, machine, store, maria, attending):
        await machine.submit_details(attending, DetailsSubmission(email="bad", phone_number="555-1234"))
        outcome = await machine.submit_details(attending, VALID_DETAILS)

        assert outcome.redirect_to == "/"
        guest = await store.get_guest(maria.code)
        assert derive_state(guest) == GuestState.ACCEPTED
        assert not guest.invalid_details
        assert guest.email == "a@b.co"
        assert guest.phone_number == "5551234"
        assert guest.meal_choice == "Fish"
        assert not (await store.get_session_scratch(maria.code)).has_errors

    async def test_failing_field_keeps_previous_value(self, machine, store, maria, attending):
        await machine.submit_details(attending, VALID_DETAILS)
        await machine.submit_details(attending, VALID_DETAILS.model_copy(update={"email": "nope"}))

        guest = await store.get_guest(maria.code)
        assert guest.email == "a@b.co"
        assert guest.invalid_details and not guest.details_provided

    async def test_declined_guest_details_ignored(self, machine, codec, store, maria):
        await store.update_attendance(maria.code, False, True)
        outcome = await machine.submit_details(codec.seal(maria.code), VALID_DETAILS)

        assert outcome.redirect_to == "/"
        guest = await store.get_guest(maria.code)
        assert guest.email is None
        assert not guest.details_provided

    async def test_no_session_is_unauthorized(self, machine):
        outcome = await machine.submit_details(None, VALID_DETAILS)
        assert outcome.status_code == status.HTTP_401_UNAUTHORIZED

    async def test_one_field_write_failure_does_not_block_others(self, machine, store, maria, attending):
        original = store.update_field

        async def flaky_update(code, field, value):
            if field.value == "email":
                raise StoreWriteError("locked")
            await original(code, field, value)

        store.update_field = flaky_update
        outcome = await machine.submit_details(attending, VALID_DETAILS)

        assert outcome.redirect_to == "/"
        guest = await store.get_guest(maria.code)
        assert guest.email is None
        assert guest.phone_number == "5551234"

    async def test_invalid_details_view_needs_no_extra_read(self, machine, codec, store, maria):
        await store.update_attendance(maria.code, True, False)
        attending = await store.get_guest(maria.code)
        store.get_guest = AsyncMock(side_effect=[attending, StoreUnavailableError("db down")])

        details = DetailsSubmission(email="bad", phone_number="5551234", meal_choice="Fish")
        outcome = await machine.submit_details(codec.seal(maria.code), details)

        assert outcome.view == View.INVALID_DETAILS
        assert outcome.status_code == status.HTTP_400_BAD_REQUEST
        assert outcome.guest.phone_number == "5551234"
        assert outcome.guest.meal_choice == "Fish"
        assert outcome.guest.email is None
        assert outcome.guest.invalid_details and not outcome.guest.details_provided
        assert store.get_guest.await_count == 1


class TestChangeFlows:
    async def test_change_attendance_keeps_details(self, machine, codec, store, maria):
        token = codec.seal(maria.code)
        await machine.submit_rsvp(token, None, "true")
        await machine.submit_details(token, VALID_DETAILS)

        outcome = await machine.change_attendance(token)
        assert outcome.view == View.CHANGE_ATTENDANCE

        await machine.submit_rsvp(token, None, "false")
        assert derive_state(await store.get_guest(maria.code)) == GuestState.DECLINED

        await machine.submit_rsvp(token, None, "true")
        guest = await store.get_guest(maria.code)
        assert derive_state(guest) == GuestState.ACCEPTED

    async def test_change_details_does_not_mutate(self, machine, codec, store, maria):
        token = codec.seal(maria.code)
        await machine.submit_rsvp(token, None, "true")
        await machine.submit_details(token, VALID_DETAILS)
        before = await store.get_guest(maria.code)

        outcome = await machine.change_details(token)
        assert outcome.view == View.GUEST_DETAILS
        assert await store.get_guest(maria.code) == before

    async def test_change_details_for_declined_guest_redirects(self, machine, codec, store, maria):
        await store.update_attendance(maria.code, False, True)
        outcome = await machine.change_details(codec.seal(maria.code))
        assert outcome.redirect_to == "/"

    async def test_change_flows_need_a_session(self, machine):
        assert (await machine.change_details(None)).status_code == status.HTTP_401_UNAUTHORIZED
        assert (await machine.change_attendance(None)).status_code == status.HTTP_401_UNAUTHORIZED

    async def test_change_flows_without_cookie_show_code_form(self, machine):
        for outcome in [await machine.change_details(None), await machine.change_attendance(None)]:
            assert outcome.state == GuestState.NO_SESSION
            assert outcome.view == View.INDEX

    async def test_change_flows_with_bad_cookie_show_invalid_code(self, machine, codec):
        token = codec.seal(INVALID_SESSION_MARKER)
        for outcome in [await machine.change_details(token), await machine.change_attendance(token)]:
            assert outcome.state == GuestState.INVALID_CODE
            assert outcome.view == View.INVALID_GUEST
            assert outcome.status_code == status.HTTP_401_UNAUTHORIZED

    def test_reset_clears_cookie(self, machine):
        outcome = machine.reset()
        assert outcome.clear_session
        assert outcome.redirect_to == "/"
