"""
Leader Profile Schemas
"""

from datetime import date, datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator

from gdpt.modules.leaders.models import LeaderStatus

MIN_YEAR_OF_BIRTH = 1900


def _check_year_of_birth(value: int | None) -> int | None:
    if value is not None and not MIN_YEAR_OF_BIRTH <= value <= date.today().year:
        raise ValueError(f"year_of_birth must be between {MIN_YEAR_OF_BIRTH} and the current year")
    return value


class LeaderProfileFields(BaseModel):
    """Descriptive fields shared by create and update."""

    model_config = ConfigDict(str_strip_whitespace=True)

    dharma_name: str | None = Field(default=None, max_length=200)
    full_date_of_birth: date | None = None
    place_of_origin: str | None = Field(default=None, max_length=255)
    education: str | None = Field(default=None, max_length=255)
    occupation: str | None = Field(default=None, max_length=255)
    phone: str | None = Field(default=None, max_length=30)
    address: str | None = None
    join_date: date | None = None
    refuge_date: date | None = None
    refuge_name: str | None = Field(default=None, max_length=200)
    level: str | None = Field(default=None, max_length=100)
    notes: str | None = None


class LeaderProfileCreate(LeaderProfileFields):
    name: str = Field(min_length=2, max_length=200)
    year_of_birth: int
    unit_id: UUID
    status: LeaderStatus = LeaderStatus.ACTIVE

    @field_validator("year_of_birth")
    @classmethod
    def valid_year(cls, value: int) -> int:
        return _check_year_of_birth(value)


class LeaderProfileUpdate(LeaderProfileFields):
    """Partial update; only fields that are set are applied."""

    name: str | None = Field(default=None, min_length=2, max_length=200)
    year_of_birth: int | None = None
    unit_id: UUID | None = None
    status: LeaderStatus | None = None

    @field_validator("year_of_birth")
    @classmethod
    def valid_year(cls, value: int | None) -> int | None:
        return _check_year_of_birth(value)


class LeaderProfileResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    user_id: UUID
    unit_id: UUID
    name: str
    dharma_name: str | None
    year_of_birth: int
    status: LeaderStatus
    full_date_of_birth: date | None
    place_of_origin: str | None
    education: str | None
    occupation: str | None
    phone: str | None
    address: str | None
    join_date: date | None
    refuge_date: date | None
    refuge_name: str | None
    level: str | None
    notes: str | None
    created_at: datetime
