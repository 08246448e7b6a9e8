"""Tutor application lifecycle"""

import logging
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from etuition.db.models import (
    Application,
    ApplicationStatus,
    TuitionPost,
    TuitionStatus,
    User,
    UserRole,
)
from etuition.schemas.applications import ApplicationCreate
from etuition.services.authorization import ensure_owner
from etuition.services.exceptions import (
    DuplicateApplication,
    Forbidden,
    InvalidTransition,
    NotFound,
)
from etuition.services.listings import ListingProjection

logger = logging.getLogger(__name__)

CLOSED_TUITION_STATUSES = {TuitionStatus.BOOKED, TuitionStatus.REJECTED}


class ApplicationService:
    def __init__(self, db: AsyncSession):
        self.db = db
        self.listings = ListingProjection(db)

    async def apply(self, tutor_email: str, application_data: ApplicationCreate) -> Application:
        """
        Submit a tutor's application and mirror it into the tutor listings

        Args:
            tutor_email: Verified email of the applying tutor
            application_data: Target tuition and the tutor's pitch

        Returns:
            The new application in Pending status

        Raises:
            NotFound: tuition or tutor profile missing
            InvalidTransition: tuition already booked or rejected
            DuplicateApplication: a live application exists for this pair
        """
        tutor_email = tutor_email.lower()
        tuition = await self.db.get(TuitionPost, application_data.tuition_id)
        if not tuition:
            raise NotFound("Tuition not found")
        if tuition.status in CLOSED_TUITION_STATUSES:
            raise InvalidTransition(f"Tuition is {tuition.status.value} and not accepting applications")

        tutor = await self._get_user(tutor_email)
        if not tutor:
            raise NotFound("User profile not found.")

        if await self._find_active(tuition.id, tutor_email):
            raise DuplicateApplication()

        application = Application(
            tuition_id=tuition.id,
            tuition_subject=tuition.subject,
            tuition_location=tuition.location,
            recruiter_email=tuition.student_email,
            tutor_email=tutor.email,
            tutor_name=tutor.display_name,
            tutor_image=tutor.photo_url,
            qualifications=application_data.qualifications or "N/A",
            experience=application_data.experience or "N/A",
            expected_salary=application_data.expected_salary or "Negotiable",
            status=ApplicationStatus.PENDING,
        )
        self.db.add(application)
        try:
            await self.db.flush()
        except IntegrityError:
            # Lost a race with a concurrent apply for the same pair
            await self.db.rollback()
            raise DuplicateApplication()

        await self.listings.sync(application)

        logger.info(f"Application {application.id} submitted by {tutor_email} for tuition {tuition.id}")
        return application

    async def get(self, application_id: UUID, viewer: User | None = None) -> Application:
        """Fetch an application, repairing its listing if it has drifted

        When a viewer is given, only the applicant, the recruiter and admins
        may read it, and the check happens before any repair is written.
        """
        application = await self._get(application_id)
        if viewer is not None and viewer.role != UserRole.ADMIN and viewer.email.lower() not in (
            application.tutor_email,
            application.recruiter_email,
        ):
            raise Forbidden()
        await self.listings.reconcile(application)
        return application

    async def withdraw(self, application_id: UUID, requester_email: str) -> None:
        application = await self._get(application_id)
        ensure_owner(requester_email, application.tutor_email)

        if application.status != ApplicationStatus.PENDING:
            raise InvalidTransition("Only pending applications can be withdrawn")

        # The mirrored listing is intentionally left in place
        await self.db.delete(application)
        await self.db.flush()
        logger.info(f"Application {application_id} withdrawn by {requester_email}")

    async def update_expected_salary(
        self, application_id: UUID, requester_email: str, expected_salary: str
    ) -> Application:
        application = await self._get(application_id)
        ensure_owner(requester_email, application.tutor_email)

        if application.status != ApplicationStatus.PENDING:
            raise InvalidTransition("Only pending applications can be edited")

        application.expected_salary = expected_salary
        await self.db.flush()
        await self.listings.sync(application)
        return application

    async def reject_manually(self, application_id: UUID, requester_email: str) -> Application:
        """Recruiter declines an application without payment"""
        application = await self._get(application_id)
        tuition = await self.db.get(TuitionPost, application.tuition_id)
        if not tuition:
            raise NotFound("Tuition not found")
        ensure_owner(requester_email, tuition.student_email)

        if application.status == ApplicationStatus.REJECTED:
            return application
        if application.status != ApplicationStatus.PENDING:
            raise InvalidTransition("Only pending applications can be rejected")

        application.status = ApplicationStatus.REJECTED
        await self.db.flush()
        await self.listings.sync(application)

        logger.info(f"Application {application_id} rejected by recruiter {requester_email}")
        return application

    async def set_status(
        self,
        application_id: UUID,
        status: ApplicationStatus,
        transaction_id: str | None = None,
    ) -> Application:
        """Admin or internal override; re-setting the current status is a no-op"""
        application = await self._get(application_id)
        if application.status == status and (transaction_id is None or application.transaction_id == transaction_id):
            return application

        if status != ApplicationStatus.REJECTED and application.status == ApplicationStatus.REJECTED:
            other = await self._find_active(application.tuition_id, application.tutor_email)
            if other and other.id != application.id:
                raise DuplicateApplication("Another active application exists for this tutor and tuition")

        previous = application.status
        application.status = status
        if transaction_id is not None:
            application.transaction_id = transaction_id
        await self.db.flush()
        await self.listings.sync(application)

        logger.info(f"Application {application_id} status {previous.value} -> {status.value}")
        return application

    async def reject_competitors(self, tuition_id: UUID, winner_id: UUID) -> int:
        """Reject every other application on the tuition; returns how many changed"""
        stmt = (
            select(Application)
            .where(Application.tuition_id == tuition_id)
            .where(Application.id != winner_id)
            .where(Application.status != ApplicationStatus.REJECTED)
        )
        competitors = (await self.db.execute(stmt)).scalars().all()
        for competitor in competitors:
            competitor.status = ApplicationStatus.REJECTED
        await self.db.flush()

        for competitor in competitors:
            await self.listings.sync(competitor)
        return len(competitors)

    async def list_for_tutor(self, tutor_email: str, status: ApplicationStatus | None = None) -> list[Application]:
        stmt = select(Application).where(Application.tutor_email == tutor_email.lower())
        if status:
            stmt = stmt.where(Application.status == status)
        stmt = stmt.order_by(Application.applied_at.desc())
        return await self._reconciled(stmt)

    async def list_ongoing(self, tutor_email: str) -> list[Application]:
        return await self.list_for_tutor(tutor_email, ApplicationStatus.APPROVED)

    async def list_for_tuition(self, tuition_id: UUID, requester_email: str) -> list[Application]:
        tuition = await self.db.get(TuitionPost, tuition_id)
        if not tuition:
            raise NotFound("Tuition not found")
        ensure_owner(requester_email, tuition.student_email)

        stmt = (
            select(Application)
            .where(Application.tuition_id == tuition_id)
            .order_by(Application.applied_at.desc())
        )
        return await self._reconciled(stmt)

    async def _reconciled(self, stmt) -> list[Application]:
        applications = list((await self.db.execute(stmt)).scalars().all())
        for application in applications:
            await self.listings.reconcile(application)
        return applications

    async def _get(self, application_id: UUID) -> Application:
        application = await self.db.get(Application, application_id)
        if not application:
            raise NotFound("Application not found")
        return application

    async def _find_active(self, tuition_id: UUID, tutor_email: str) -> Application | None:
        stmt = (
            select(Application)
            .where(Application.tuition_id == tuition_id)
            .where(Application.tutor_email == tutor_email)
            .where(Application.status != ApplicationStatus.REJECTED)
            .limit(1)
        )
        return (await self.db.execute(stmt)).scalar_one_or_none()

    async def _get_user(self, email: str) -> User | None:
        stmt = select(User).where(User.email == email)
        return (await self.db.execute(stmt)).scalar_one_or_none()
