"""Pydantic schemas for tutor applications and tutor listings"""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, Field

from etuition.db.models import ApplicationStatus


class ApplicationCreate(BaseModel):
    tuition_id: UUID
    qualifications: str | None = Field(None, max_length=2000)
    experience: str | None = Field(None, max_length=2000)
    expected_salary: str | None = Field(None, max_length=100)


class SalaryUpdate(BaseModel):
    expected_salary: str = Field(..., min_length=1, max_length=100)


class ApplicationStatusUpdate(BaseModel):
    status: ApplicationStatus


class ApplicationResponse(BaseModel):
    id: UUID
    tuition_id: UUID
    tuition_subject: str | None
    tuition_location: str | None
    recruiter_email: str
    tutor_email: str
    tutor_name: str | None
    tutor_image: str | None
    qualifications: str
    experience: str
    expected_salary: str
    status: ApplicationStatus
    applied_at: datetime
    transaction_id: str | None

    model_config = {"from_attributes": True}


class ApplicationListResponse(BaseModel):
    applications: list[ApplicationResponse]
    total: int


class TutorListingResponse(BaseModel):
    id: UUID
    tuition_id: UUID
    name: str | None = Field(None, validation_alias="tutor_name")
    image: str | None = Field(None, validation_alias="tutor_image")
    subject: str | None = Field(None, validation_alias="tuition_subject")
    location: str | None = Field(None, validation_alias="tuition_location")
    experience: str | None
    salary: str | None = Field(None, validation_alias="expected_salary")
    status: ApplicationStatus
    date: datetime | None = Field(None, validation_alias="applied_at")

    model_config = {"from_attributes": True}


class TutorListingPage(BaseModel):
    tutors: list[TutorListingResponse]
    total: int
    page: int
    limit: int
