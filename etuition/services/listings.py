"""Tutor listing projection.

Listings are a denormalized copy of applications for public browsing,
matched to their source by (tuition_id, tutor_email). They are kept
eventually consistent: every application write syncs its listing, and every
application read repairs a listing that has drifted.
"""

import logging
from uuid import UUID

from sqlalchemy import delete, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from etuition.db.models import Application, ApplicationStatus, TutorListing

logger = logging.getLogger(__name__)

# Application attributes copied verbatim onto the listing
MIRRORED_FIELDS = (
    "tuition_subject",
    "tuition_location",
    "recruiter_email",
    "tutor_name",
    "tutor_image",
    "qualifications",
    "experience",
    "expected_salary",
    "status",
    "applied_at",
    "transaction_id",
)

# Timestamps lose tzinfo on some backends, so drift is judged on the rest
COMPARED_FIELDS = tuple(field for field in MIRRORED_FIELDS if field != "applied_at")


class ListingProjection:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def find(self, tuition_id: UUID, tutor_email: str) -> TutorListing | None:
        stmt = (
            select(TutorListing)
            .where(TutorListing.tuition_id == tuition_id)
            .where(TutorListing.tutor_email == tutor_email)
            .order_by(TutorListing.created_at.desc())
            .limit(1)
        )
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def sync(self, application: Application) -> TutorListing:
        """Upsert the listing so it mirrors the application"""
        listing = await self.find(application.tuition_id, application.tutor_email)
        if listing is None:
            listing = TutorListing(
                tuition_id=application.tuition_id,
                tutor_email=application.tutor_email,
            )
            self.db.add(listing)

        listing.application_id = application.id
        for field in MIRRORED_FIELDS:
            setattr(listing, field, getattr(application, field))

        await self.db.flush()
        return listing

    async def mark_settled(self, tuition_id: UUID, tutor_email: str, transaction_id: str) -> TutorListing | None:
        listing = await self.find(tuition_id, tutor_email)
        if listing is None:
            logger.warning(f"No listing found for tuition {tuition_id} / {tutor_email}")
            return None

        listing.status = ApplicationStatus.APPROVED
        listing.transaction_id = transaction_id
        await self.db.flush()
        return listing

    async def reconcile(self, application: Application) -> bool:
        """Correct the listing if it diverges from the application.

        Returns True when a correction was written.
        """
        listing = await self.find(application.tuition_id, application.tutor_email)
        if listing is not None:
            if listing.application_id != application.id and application.status == ApplicationStatus.REJECTED:
                # A later application for the same pair owns the listing
                return False
            if listing.application_id == application.id and not self._diverges(listing, application):
                return False

        logger.info(f"Reconciling listing for application {application.id}")
        await self.sync(application)
        return True

    async def browse(
        self,
        search: str | None = None,
        subject: str | None = None,
        location: str | None = None,
        page: int = 1,
        limit: int = 8,
    ) -> tuple[list[TutorListing], int]:
        conditions = []
        if search:
            conditions.append(or_(
                TutorListing.tutor_name.ilike(f"%{search}%"),
                TutorListing.tutor_email.ilike(f"%{search}%"),
            ))
        if subject:
            conditions.append(TutorListing.tuition_subject.ilike(f"%{subject}%"))
        if location:
            conditions.append(TutorListing.tuition_location.ilike(f"%{location}%"))

        stmt = (
            select(TutorListing)
            .where(*conditions)
            .order_by(TutorListing.applied_at.desc())
            .offset((page - 1) * limit)
            .limit(limit)
        )
        count_stmt = select(func.count(TutorListing.id)).where(*conditions)

        listings = (await self.db.execute(stmt)).scalars().all()
        total = (await self.db.execute(count_stmt)).scalar() or 0
        return list(listings), total

    async def prune_orphans(self) -> int:
        """Delete listings whose source application no longer exists"""
        orphaned = (
            select(TutorListing.id)
            .outerjoin(Application, Application.id == TutorListing.application_id)
            .where(Application.id.is_(None))
        )
        ids = (await self.db.execute(orphaned)).scalars().all()
        if not ids:
            return 0

        await self.db.execute(delete(TutorListing).where(TutorListing.id.in_(ids)))
        await self.db.flush()
        logger.info(f"Pruned {len(ids)} orphaned tutor listings")
        return len(ids)

    @staticmethod
    def _diverges(listing: TutorListing, application: Application) -> bool:
        return any(
            getattr(listing, field) != getattr(application, field)
            for field in COMPARED_FIELDS
        )
