import logging
from datetime import datetime, timezone
from typing import Iterable, Optional

from sqlalchemy import func, select, update
from sqlalchemy.dialects.sqlite import insert
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from rsvp.core.errors import GuestNotFoundError, StoreUnavailableError, StoreWriteError
from rsvp.models import Guest, GuestField, PageVisit, ScratchField, SessionScratch
from rsvp.schemas.guest import GuestOut, PageVisitOut, SessionScratchOut
from rsvp.services.guest_store import MAX_CODE_ATTEMPTS
from rsvp.utils.codes import generate_code

logger = logging.getLogger(__name__)


class SqlGuestStore:
    """GuestStore backed by SQLite through async SQLAlchemy.

    Every operation runs in its own short transaction and touches one row.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def _update_guest(self, code: str, values: dict) -> None:
        stmt = update(Guest).where(Guest.code == code).values(**values)
        try:
            async with self._session_factory() as db:
                result = await db.execute(stmt)
                await db.commit()
                rowcount = result.rowcount
        except SQLAlchemyError as e:
            raise StoreWriteError(f"failed to update guest {code}: {e}") from e

        if rowcount == 0:
            raise GuestNotFoundError(code)

    async def get_guest(self, code: str) -> Optional[GuestOut]:
        try:
            async with self._session_factory() as db:
                result = await db.execute(select(Guest).where(Guest.code == code))
                guest = result.scalar_one_or_none()
        except SQLAlchemyError as e:
            raise StoreUnavailableError(f"failed to read guest {code}: {e}") from e

        return GuestOut.model_validate(guest) if guest else None

    async def update_attendance(self, code: str, attending: bool, form_completed: bool) -> None:
        await self._update_guest(
            code,
            {
                "attendance": attending,
                "form_started": True,
                "form_completed": form_completed,
            },
        )

    async def update_field(self, code: str, field: GuestField, value: str) -> None:
        await self._update_guest(code, {GuestField(field).value: value})

    async def mark_invalid_details(self, code: str, invalid: bool) -> None:
        values = {"invalid_details": invalid}
        if invalid:
            values["details_provided"] = False
        await self._update_guest(code, values)

    async def mark_details_committed(self, code: str) -> None:
        await self._update_guest(
            code,
            {
                "invalid_details": False,
                "details_provided": True,
                "form_completed": True,
            },
        )

    async def get_session_scratch(self, code: str) -> SessionScratchOut:
        try:
            async with self._session_factory() as db:
                result = await db.execute(
                    select(SessionScratch).where(SessionScratch.code == code)
                )
                scratch = result.scalar_one_or_none()
        except SQLAlchemyError as e:
            raise StoreUnavailableError(f"failed to read session data for {code}: {e}") from e

        if scratch is None:
            return SessionScratchOut(code=code)
        return SessionScratchOut.model_validate(scratch)

    async def set_field_scratch(self, code: str, field: ScratchField, invalid: bool) -> None:
        column = ScratchField(field).value
        stmt = (
            insert(SessionScratch)
            .values(code=code, **{column: invalid})
            .on_conflict_do_update(index_elements=["code"], set_={column: invalid})
        )
        try:
            async with self._session_factory() as db:
                result = await db.execute(stmt)
                await db.commit()
                rowcount = result.rowcount
        except SQLAlchemyError as e:
            raise StoreWriteError(f"failed to save session data for {code}: {e}") from e

        if rowcount != 1:
            raise StoreWriteError(
                f"rowcount {rowcount} for code {code} and {column} was not 1"
            )

    async def record_page_visit(self, guest_id: int, page_name: str) -> None:
        now = datetime.now(timezone.utc)
        stmt = (
            insert(PageVisit)
            .values(
                guest_id=guest_id,
                page_name=page_name,
                visit_count=1,
                first_visit_time=now,
                latest_visit_time=now,
            )
            .on_conflict_do_update(
                index_elements=["guest_id", "page_name"],
                set_={
                    "visit_count": PageVisit.visit_count + 1,
                    "latest_visit_time": now,
                },
            )
        )
        try:
            async with self._session_factory() as db:
                result = await db.execute(stmt)
                await db.commit()
                rowcount = result.rowcount
        except SQLAlchemyError as e:
            raise StoreWriteError(f"failed to save page visit: {e}") from e

        if rowcount != 1:
            raise StoreWriteError(
                f"rowcount {rowcount} for id {guest_id} and page {page_name} was not 1"
            )

    async def insert_guest(self, name: str) -> GuestOut:
        for _ in range(MAX_CODE_ATTEMPTS):
            guest = Guest(
                name=name,
                code=generate_code(name),
                invalid_details=False,
                details_provided=False,
                form_started=False,
                form_completed=False,
            )
            try:
                async with self._session_factory() as db:
                    db.add(guest)
                    await db.commit()
                    await db.refresh(guest)
            except IntegrityError:
                # Code collision, try another one
                logger.warning(f"Invitation code collision for {name}, regenerating")
                continue
            except SQLAlchemyError as e:
                raise StoreWriteError(f"failed to insert guest {name}: {e}") from e

            return GuestOut.model_validate(guest)

        raise StoreWriteError(f"could not generate a unique code for {name}")

    async def list_guests(self) -> list[GuestOut]:
        try:
            async with self._session_factory() as db:
                result = await db.execute(select(Guest).order_by(Guest.id))
                guests = result.scalars().all()
        except SQLAlchemyError as e:
            raise StoreUnavailableError(f"failed to list guests: {e}") from e

        return [GuestOut.model_validate(g) for g in guests]

    async def list_page_visits(self) -> list[PageVisitOut]:
        try:
            async with self._session_factory() as db:
                result = await db.execute(
                    select(PageVisit).order_by(PageVisit.guest_id, PageVisit.page_name)
                )
                visits = result.scalars().all()
        except SQLAlchemyError as e:
            raise StoreUnavailableError(f"failed to list page visits: {e}") from e

        return [PageVisitOut.model_validate(v) for v in visits]

    async def seed_guests(self, names: Iterable[str]) -> int:
        names = list(names)
        try:
            async with self._session_factory() as db:
                count = await db.scalar(select(func.count()).select_from(Guest))
        except SQLAlchemyError as e:
            raise StoreUnavailableError(f"failed to count guests: {e}") from e

        # New names are assumed to be appended to the end of the list
        missing = names[count or 0:]
        for name in missing:
            await self.insert_guest(name)
        return len(missing)
