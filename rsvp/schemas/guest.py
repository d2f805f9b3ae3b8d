from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class GuestBase(BaseModel):
    name: str
    code: str

    email: Optional[str] = None
    phone_number: Optional[str] = None
    meal_choice: Optional[str] = None
    dietary_requirements: Optional[str] = None

    attendance: Optional[bool] = None
    invalid_details: bool = False
    details_provided: bool = False
    form_started: bool = False
    form_completed: bool = False


class GuestOut(GuestBase):
    id: int

    model_config = ConfigDict(from_attributes=True)


class GuestCreate(BaseModel):
    name: str = Field(min_length=1, max_length=120)


class SessionScratchOut(BaseModel):
    code: str
    invalid_email: bool = False
    invalid_phone_number: bool = False
    invalid_dietary_requirements: bool = False

    model_config = ConfigDict(from_attributes=True)

    @property
    def has_errors(self) -> bool:
        return (
            self.invalid_email
            or self.invalid_phone_number
            or self.invalid_dietary_requirements
        )


class PageVisitOut(BaseModel):
    guest_id: int
    page_name: str
    visit_count: int
    first_visit_time: datetime
    latest_visit_time: datetime

    model_config = ConfigDict(from_attributes=True)


class DetailsSubmission(BaseModel):
    """Raw details form, as posted by the guest."""

    email: str = ""
    phone_number: str = ""
    meal_choice: str = ""
    dietary_requirements: str = ""
