"""Tutor application endpoints"""

import logging
from uuid import UUID

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from etuition.api.deps import get_current_user, require
from etuition.db.database import get_db
from etuition.db.models import User
from etuition.schemas.applications import (
    ApplicationCreate,
    ApplicationListResponse,
    ApplicationResponse,
    ApplicationStatusUpdate,
    SalaryUpdate,
)
from etuition.services.applications import ApplicationService
from etuition.services.authorization import Operation

logger = logging.getLogger(__name__)
router = APIRouter()


def _to_list_response(applications) -> ApplicationListResponse:
    return ApplicationListResponse(
        applications=[ApplicationResponse.model_validate(app) for app in applications],
        total=len(applications),
    )


@router.post("/", response_model=ApplicationResponse, status_code=status.HTTP_201_CREATED)
async def apply_to_tuition(
    application_data: ApplicationCreate,
    tutor: User = Depends(require(Operation.APPLY)),
    db: AsyncSession = Depends(get_db),
) -> ApplicationResponse:
    """Apply to a tuition as the authenticated tutor"""
    application = await ApplicationService(db).apply(tutor.email, application_data)
    await db.commit()
    return ApplicationResponse.model_validate(application)


@router.get("/mine", response_model=ApplicationListResponse)
async def list_my_applications(
    tutor: User = Depends(require(Operation.VIEW_OWN_APPLICATIONS)),
    db: AsyncSession = Depends(get_db),
) -> ApplicationListResponse:
    applications = await ApplicationService(db).list_for_tutor(tutor.email)
    await db.commit()
    return _to_list_response(applications)


@router.get("/ongoing", response_model=ApplicationListResponse)
async def list_ongoing_tuitions(
    tutor: User = Depends(require(Operation.VIEW_ONGOING)),
    db: AsyncSession = Depends(get_db),
) -> ApplicationListResponse:
    """Approved (paid) engagements of the tutor"""
    applications = await ApplicationService(db).list_ongoing(tutor.email)
    await db.commit()
    return _to_list_response(applications)


@router.patch("/status/{application_id}", response_model=ApplicationResponse)
async def override_application_status(
    application_id: UUID,
    status_update: ApplicationStatusUpdate,
    _admin=Depends(require(Operation.OVERRIDE_APPLICATION_STATUS)),
    db: AsyncSession = Depends(get_db),
) -> ApplicationResponse:
    """Admin override of an application's status"""
    application = await ApplicationService(db).set_status(application_id, status_update.status)
    await db.commit()
    return ApplicationResponse.model_validate(application)


@router.get("/{application_id}", response_model=ApplicationResponse)
async def get_application(
    application_id: UUID,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> ApplicationResponse:
    """Visible to the applicant, the recruiter and admins"""
    application = await ApplicationService(db).get(application_id, viewer=user)
    await db.commit()
    return ApplicationResponse.model_validate(application)


@router.patch("/{application_id}/salary", response_model=ApplicationResponse)
async def update_expected_salary(
    application_id: UUID,
    salary_update: SalaryUpdate,
    tutor: User = Depends(require(Operation.EDIT_APPLICATION)),
    db: AsyncSession = Depends(get_db),
) -> ApplicationResponse:
    application = await ApplicationService(db).update_expected_salary(
        application_id, tutor.email, salary_update.expected_salary
    )
    await db.commit()
    return ApplicationResponse.model_validate(application)


@router.patch("/{application_id}/reject", response_model=ApplicationResponse)
async def reject_application(
    application_id: UUID,
    student: User = Depends(require(Operation.REJECT_APPLICATION)),
    db: AsyncSession = Depends(get_db),
) -> ApplicationResponse:
    """Recruiter declines an application without payment"""
    application = await ApplicationService(db).reject_manually(application_id, student.email)
    await db.commit()
    return ApplicationResponse.model_validate(application)


@router.delete("/{application_id}")
async def withdraw_application(
    application_id: UUID,
    tutor: User = Depends(require(Operation.WITHDRAW_APPLICATION)),
    db: AsyncSession = Depends(get_db),
) -> dict[str, str]:
    await ApplicationService(db).withdraw(application_id, tutor.email)
    await db.commit()
    return {"message": "Application withdrawn"}
