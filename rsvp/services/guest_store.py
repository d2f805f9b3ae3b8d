"""Guest store contract and the in-memory implementation.

The state machine only talks to a GuestStore. Every mutation raises
GuestNotFoundError when no guest row was affected, StoreWriteError when the
write itself failed; reads raise StoreUnavailableError.
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from typing import Iterable, Optional, Protocol

from rsvp.core.errors import GuestNotFoundError, StoreWriteError
from rsvp.models import GuestField, ScratchField
from rsvp.schemas.guest import GuestOut, PageVisitOut, SessionScratchOut
from rsvp.utils.codes import generate_code

MAX_CODE_ATTEMPTS = 10


class GuestStore(Protocol):
    async def get_guest(self, code: str) -> Optional[GuestOut]:
        ...

    async def update_attendance(self, code: str, attending: bool, form_completed: bool) -> None:
        ...

    async def update_field(self, code: str, field: GuestField, value: str) -> None:
        ...

    async def mark_invalid_details(self, code: str, invalid: bool) -> None:
        ...

    async def mark_details_committed(self, code: str) -> None:
        ...

    async def get_session_scratch(self, code: str) -> SessionScratchOut:
        ...

    async def set_field_scratch(self, code: str, field: ScratchField, invalid: bool) -> None:
        ...

    async def record_page_visit(self, guest_id: int, page_name: str) -> None:
        ...

    async def insert_guest(self, name: str) -> GuestOut:
        ...

    async def list_guests(self) -> list[GuestOut]:
        ...

    async def list_page_visits(self) -> list[PageVisitOut]:
        ...

    async def seed_guests(self, names: Iterable[str]) -> int:
        ...


class InMemoryGuestStore:
    """
    Dict-backed GuestStore for demos and tests.

    Built explicitly and injected at startup. Hands out copies so callers
    can't mutate stored state behind the store's back.
    """

    def __init__(self) -> None:
        self._guests: dict[str, GuestOut] = {}
        self._scratch: dict[str, SessionScratchOut] = {}
        self._visits: dict[tuple[int, str], PageVisitOut] = {}
        self._next_id = 1
        self._lock = asyncio.Lock()

    def _require(self, code: str) -> GuestOut:
        guest = self._guests.get(code)
        if guest is None:
            raise GuestNotFoundError(code)
        return guest

    async def get_guest(self, code: str) -> Optional[GuestOut]:
        guest = self._guests.get(code)
        return guest.model_copy() if guest else None

    async def update_attendance(self, code: str, attending: bool, form_completed: bool) -> None:
        async with self._lock:
            guest = self._require(code)
            guest.attendance = attending
            guest.form_started = True
            guest.form_completed = form_completed

    async def update_field(self, code: str, field: GuestField, value: str) -> None:
        async with self._lock:
            guest = self._require(code)
            setattr(guest, GuestField(field).value, value)

    async def mark_invalid_details(self, code: str, invalid: bool) -> None:
        async with self._lock:
            guest = self._require(code)
            guest.invalid_details = invalid
            if invalid:
                guest.details_provided = False

    async def mark_details_committed(self, code: str) -> None:
        async with self._lock:
            guest = self._require(code)
            guest.invalid_details = False
            guest.details_provided = True
            guest.form_completed = True

    async def get_session_scratch(self, code: str) -> SessionScratchOut:
        scratch = self._scratch.get(code)
        return scratch.model_copy() if scratch else SessionScratchOut(code=code)

    async def set_field_scratch(self, code: str, field: ScratchField, invalid: bool) -> None:
        async with self._lock:
            scratch = self._scratch.setdefault(code, SessionScratchOut(code=code))
            setattr(scratch, ScratchField(field).value, invalid)

    async def record_page_visit(self, guest_id: int, page_name: str) -> None:
        now = datetime.now(timezone.utc)
        async with self._lock:
            visit = self._visits.get((guest_id, page_name))
            if visit is None:
                self._visits[(guest_id, page_name)] = PageVisitOut(
                    guest_id=guest_id,
                    page_name=page_name,
                    visit_count=1,
                    first_visit_time=now,
                    latest_visit_time=now,
                )
            else:
                visit.visit_count += 1
                visit.latest_visit_time = now

    async def insert_guest(self, name: str) -> GuestOut:
        async with self._lock:
            for _ in range(MAX_CODE_ATTEMPTS):
                code = generate_code(name)
                if code not in self._guests:
                    break
            else:
                raise StoreWriteError(f"could not generate a unique code for {name}")

            guest = GuestOut(id=self._next_id, name=name, code=code)
            self._guests[code] = guest
            self._next_id += 1
            return guest.model_copy()

    async def add_guest(self, guest: GuestOut) -> None:
        """Insert a fully-formed guest record. Used for fixtures and imports."""
        async with self._lock:
            self._guests[guest.code] = guest.model_copy()
            self._next_id = max(self._next_id, guest.id + 1)

    async def list_guests(self) -> list[GuestOut]:
        return sorted(
            (g.model_copy() for g in self._guests.values()), key=lambda g: g.id
        )

    async def list_page_visits(self) -> list[PageVisitOut]:
        return [v.model_copy() for v in self._visits.values()]

    async def seed_guests(self, names: Iterable[str]) -> int:
        names = list(names)
        # New names are assumed to be appended to the end of the list
        missing = names[len(self._guests):]
        for name in missing:
            await self.insert_guest(name)
        return len(missing)
