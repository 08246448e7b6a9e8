"""Tuition post endpoints"""

import logging
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from etuition.api.deps import require
from etuition.config import settings
from etuition.db.database import get_db
from etuition.db.models import TuitionStatus, User
from etuition.schemas.applications import ApplicationListResponse, ApplicationResponse
from etuition.schemas.tuitions import (
    TuitionCreate,
    TuitionFilters,
    TuitionListResponse,
    TuitionResponse,
    TuitionSort,
    TuitionStatusUpdate,
    TuitionUpdate,
)
from etuition.services.applications import ApplicationService
from etuition.services.authorization import Operation
from etuition.services.tuitions import TuitionService

logger = logging.getLogger(__name__)
router = APIRouter()


@router.post("/", response_model=TuitionResponse, status_code=status.HTTP_201_CREATED)
async def create_tuition(
    tuition_data: TuitionCreate,
    student: User = Depends(require(Operation.CREATE_TUITION)),
    db: AsyncSession = Depends(get_db),
) -> TuitionResponse:
    """Post a tuition request (pending admin approval)"""
    tuition = await TuitionService(db).create(student, tuition_data)
    await db.commit()
    return TuitionResponse.model_validate(tuition)


@router.get("/", response_model=TuitionListResponse)
async def list_tuitions(
    search: str | None = Query(None),
    class_level: str | None = Query(None),
    status_filter: TuitionStatus | None = Query(None, alias="status"),
    student_email: str | None = Query(None),
    sort: TuitionSort = Query(TuitionSort.NEWEST),
    page: int = Query(1, ge=1),
    limit: int = Query(settings.default_page_size, ge=1, le=settings.max_page_size),
    db: AsyncSession = Depends(get_db),
) -> TuitionListResponse:
    """Browse tuitions with search, filters, sorting and pagination"""
    filters = TuitionFilters(
        search=search,
        class_level=class_level,
        status=status_filter,
        student_email=student_email,
        sort=sort,
        page=page,
        limit=limit,
    )
    tuitions, total = await TuitionService(db).list_tuitions(filters)
    return TuitionListResponse(
        tuitions=[TuitionResponse.model_validate(tuition) for tuition in tuitions],
        total=total,
        page=page,
        limit=limit,
    )


@router.patch("/status/{tuition_id}", response_model=TuitionResponse)
async def moderate_tuition(
    tuition_id: UUID,
    status_update: TuitionStatusUpdate,
    admin: User = Depends(require(Operation.MODERATE_TUITION)),
    db: AsyncSession = Depends(get_db),
) -> TuitionResponse:
    """Approve, reject or book a tuition (admin)"""
    tuition = await TuitionService(db).set_status(tuition_id, status_update.status, admin.role)
    await db.commit()
    return TuitionResponse.model_validate(tuition)


@router.get("/{tuition_id}", response_model=TuitionResponse)
async def get_tuition(
    tuition_id: UUID,
    db: AsyncSession = Depends(get_db),
) -> TuitionResponse:
    tuition = await TuitionService(db).get(tuition_id)
    return TuitionResponse.model_validate(tuition)


@router.patch("/{tuition_id}", response_model=TuitionResponse)
async def update_tuition(
    tuition_id: UUID,
    update_data: TuitionUpdate,
    student: User = Depends(require(Operation.EDIT_TUITION)),
    db: AsyncSession = Depends(get_db),
) -> TuitionResponse:
    """Edit a tuition's details (owning student, not once booked)"""
    tuition = await TuitionService(db).update_fields(tuition_id, student.email, update_data)
    await db.commit()
    return TuitionResponse.model_validate(tuition)


@router.delete("/{tuition_id}")
async def delete_tuition(
    tuition_id: UUID,
    student: User = Depends(require(Operation.DELETE_TUITION)),
    db: AsyncSession = Depends(get_db),
) -> dict[str, str]:
    await TuitionService(db).delete(tuition_id, student.email)
    await db.commit()
    return {"message": "Tuition deleted successfully"}


@router.get("/{tuition_id}/applications", response_model=ApplicationListResponse)
async def list_tuition_applications(
    tuition_id: UUID,
    student: User = Depends(require(Operation.VIEW_RECEIVED_APPLICATIONS)),
    db: AsyncSession = Depends(get_db),
) -> ApplicationListResponse:
    """Applications received on the student's tuition"""
    applications = await ApplicationService(db).list_for_tuition(tuition_id, student.email)
    await db.commit()
    return ApplicationListResponse(
        applications=[ApplicationResponse.model_validate(app) for app in applications],
        total=len(applications),
    )
