from datetime import datetime
from enum import Enum
from typing import Optional

from sqlalchemy import Boolean, DateTime, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from rsvp.database import Base


class GuestField(str, Enum):
    """Guest columns that can be updated one at a time."""

    EMAIL = "email"
    PHONE_NUMBER = "phone_number"
    MEAL_CHOICE = "meal_choice"
    DIETARY_REQUIREMENTS = "dietary_requirements"


class ScratchField(str, Enum):
    """Fields whose last-submission validity is remembered between requests."""

    EMAIL = "invalid_email"
    PHONE_NUMBER = "invalid_phone_number"
    DIETARY_REQUIREMENTS = "invalid_dietary_requirements"


class Guest(Base):
    __tablename__ = "guests"

    id: Mapped[int] = mapped_column(primary_key=True)
    name: Mapped[str] = mapped_column(String)
    code: Mapped[str] = mapped_column(String, unique=True, index=True)

    # Contact and catering details
    email: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    phone_number: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    meal_choice: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    dietary_requirements: Mapped[Optional[str]] = mapped_column(String, nullable=True)

    # RSVP state. NULL attendance = no response yet
    attendance: Mapped[Optional[bool]] = mapped_column(Boolean, nullable=True)
    invalid_details: Mapped[bool] = mapped_column(Boolean, default=False)
    details_provided: Mapped[bool] = mapped_column(Boolean, default=False)
    form_started: Mapped[bool] = mapped_column(Boolean, default=False)
    form_completed: Mapped[bool] = mapped_column(Boolean, default=False)


class SessionScratch(Base):
    """Per-code validity of the last details submission, overwritten on each one."""

    __tablename__ = "session_data"

    code: Mapped[str] = mapped_column(String, primary_key=True)
    invalid_email: Mapped[bool] = mapped_column(Boolean, default=False)
    invalid_phone_number: Mapped[bool] = mapped_column(Boolean, default=False)
    invalid_dietary_requirements: Mapped[bool] = mapped_column(Boolean, default=False)


class PageVisit(Base):
    __tablename__ = "page_visits"

    guest_id: Mapped[int] = mapped_column(Integer, primary_key=True)
    page_name: Mapped[str] = mapped_column(String, primary_key=True)
    visit_count: Mapped[int] = mapped_column(Integer, default=1)
    first_visit_time: Mapped[datetime] = mapped_column(DateTime)
    latest_visit_time: Mapped[datetime] = mapped_column(DateTime)
