"""Pydantic schemas for tuition posts"""

from datetime import datetime
from enum import Enum
from uuid import UUID

from pydantic import BaseModel, Field

from etuition.db.models import TuitionStatus


class TuitionSort(str, Enum):
    NEWEST = "newest"
    OLDEST = "oldest"
    SALARY_ASC = "salary_asc"
    SALARY_DESC = "salary_desc"


class TuitionCreate(BaseModel):
    subject: str = Field(..., min_length=1, max_length=255)
    class_level: str = Field(..., min_length=1, max_length=100)
    location: str = Field(..., min_length=1, max_length=255)
    budget: int = Field(..., ge=0)
    description: str | None = None


class TuitionUpdate(BaseModel):
    """Editable fields; status and ownership are not part of this schema"""
    subject: str | None = Field(None, min_length=1, max_length=255)
    class_level: str | None = Field(None, min_length=1, max_length=100)
    location: str | None = Field(None, min_length=1, max_length=255)
    budget: int | None = Field(None, ge=0)
    description: str | None = None


class TuitionStatusUpdate(BaseModel):
    status: TuitionStatus


class TuitionFilters(BaseModel):
    search: str | None = None
    class_level: str | None = None
    status: TuitionStatus | None = None
    student_email: str | None = None
    sort: TuitionSort = TuitionSort.NEWEST
    page: int = Field(default=1, ge=1)
    limit: int = Field(default=8, ge=1, le=100)


class TuitionResponse(BaseModel):
    id: UUID
    subject: str
    class_level: str
    location: str
    budget: int
    description: str | None
    student_email: str
    status: TuitionStatus
    transaction_id: str | None
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class TuitionListResponse(BaseModel):
    tuitions: list[TuitionResponse]
    total: int
    page: int
    limit: int
