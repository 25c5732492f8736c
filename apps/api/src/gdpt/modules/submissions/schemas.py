"""
Submission Schemas

Pydantic models for child registration payloads and review requests.
"""

from datetime import date, datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator

from gdpt.modules.students.models import Gender
from gdpt.modules.submissions.models import SubmissionStatus


class SubmissionData(BaseModel):
    """Child details proposed by a parent."""

    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(min_length=2, max_length=200)
    dharma_name: str | None = Field(default=None, max_length=200)
    date_of_birth: date
    gender: Gender
    unit_id: UUID
    class_id: UUID | None = None
    notes: str | None = Field(default=None, max_length=2000)

    @field_validator("date_of_birth")
    @classmethod
    def not_in_future(cls, value: date) -> date:
        if value > date.today():
            raise ValueError("date_of_birth cannot be in the future")
        return value


class SubmissionCreate(BaseModel):
    """Request body for submitting or resubmitting a registration."""

    data: SubmissionData
    notes: str | None = Field(default=None, max_length=2000)


class RejectRequest(BaseModel):
    review_notes: str = Field(max_length=2000)


class SubmissionResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    parent_id: UUID
    submitted_data: SubmissionData
    submission_notes: str | None
    status: SubmissionStatus
    reviewed_by: UUID | None
    review_notes: str | None
    reviewed_at: datetime | None
    created_at: datetime


class ApproveResponse(BaseModel):
    submission_id: UUID
    student_id: UUID
    status: SubmissionStatus
    message: str
