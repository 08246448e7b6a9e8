"""Tests for the application lifecycle and its listing projection"""

import uuid

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError

from conftest import apply, create_tuition
from etuition.db.models import Application, ApplicationStatus, TuitionStatus, TutorListing
from etuition.schemas.applications import ApplicationCreate
from etuition.services.applications import ApplicationService
from etuition.services.exceptions import (
    DuplicateApplication,
    Forbidden,
    InvalidTransition,
    NotFound,
)
from etuition.services.listings import ListingProjection


async def count_applications(db, tuition_id) -> int:
    stmt = select(func.count(Application.id)).where(Application.tuition_id == tuition_id)
    return (await db.execute(stmt)).scalar()


class TestApply:

    async def test_apply_creates_pending_with_defaults(self, test_db, tutor_a, tuition, student):
        application = await apply(test_db, tutor_a, tuition)

        assert application.status == ApplicationStatus.PENDING
        assert application.qualifications == "N/A"
        assert application.experience == "N/A"
        assert application.expected_salary == "Negotiable"
        assert application.tutor_name == "Alice Tutor"
        assert application.tutor_image == "https://img.test/alice.png"
        assert application.recruiter_email == student.email
        assert application.tuition_subject == tuition.subject

    async def test_apply_mirrors_listing(self, test_db, tutor_a, tuition):
        application = await apply(test_db, tutor_a, tuition, expected_salary="6000")

        listing = await ListingProjection(test_db).find(tuition.id, tutor_a.email)
        assert listing is not None
        assert listing.application_id == application.id
        assert listing.status == ApplicationStatus.PENDING
        assert listing.expected_salary == "6000"
        assert listing.tutor_name == "Alice Tutor"

    async def test_duplicate_application_rejected(self, test_db, tutor_a, tuition):
        await apply(test_db, tutor_a, tuition)

        with pytest.raises(DuplicateApplication) as exc_info:
            await apply(test_db, tutor_a, tuition)

        assert exc_info.value.message == "You have already applied to this tuition!"
        assert await count_applications(test_db, tuition.id) == 1

    async def test_reapply_after_rejection(self, test_db, tutor_a, student, tuition):
        service = ApplicationService(test_db)
        first = await apply(test_db, tutor_a, tuition)
        await service.reject_manually(first.id, student.email)

        second = await apply(test_db, tutor_a, tuition)

        assert second.id != first.id
        assert second.status == ApplicationStatus.PENDING
        listing = await ListingProjection(test_db).find(tuition.id, tutor_a.email)
        assert listing.application_id == second.id

    async def test_database_enforces_single_active_application(self, test_db, tutor_a, tuition):
        for _ in range(2):
            test_db.add(Application(
                tuition_id=tuition.id,
                recruiter_email=tuition.student_email,
                tutor_email=tutor_a.email,
            ))
        with pytest.raises(IntegrityError):
            await test_db.flush()
        await test_db.rollback()

    @pytest.mark.parametrize("status", [TuitionStatus.BOOKED, TuitionStatus.REJECTED])
    async def test_closed_tuition_not_accepting(self, test_db, tutor_a, student, status):
        tuition = await create_tuition(test_db, student, status=status)
        with pytest.raises(InvalidTransition):
            await apply(test_db, tutor_a, tuition)

    async def test_missing_tuition(self, test_db, tutor_a):
        with pytest.raises(NotFound):
            await ApplicationService(test_db).apply(
                tutor_a.email, ApplicationCreate(tuition_id=uuid.uuid4())
            )

    async def test_missing_tutor_profile(self, test_db, tuition):
        with pytest.raises(NotFound):
            await ApplicationService(test_db).apply(
                "ghost@example.com", ApplicationCreate(tuition_id=tuition.id)
            )


class TestApplicationChanges:

    async def test_withdraw_by_applicant_keeps_listing(self, test_db, tutor_a, tuition):
        application = await apply(test_db, tutor_a, tuition)

        await ApplicationService(test_db).withdraw(application.id, tutor_a.email)

        assert await count_applications(test_db, tuition.id) == 0
        assert await ListingProjection(test_db).find(tuition.id, tutor_a.email) is not None

    async def test_withdraw_by_other_tutor_forbidden(self, test_db, tutor_a, tutor_b, tuition):
        application = await apply(test_db, tutor_a, tuition)

        with pytest.raises(Forbidden):
            await ApplicationService(test_db).withdraw(application.id, tutor_b.email)
        assert await count_applications(test_db, tuition.id) == 1

    async def test_withdraw_only_pending(self, test_db, tutor_a, student, tuition):
        service = ApplicationService(test_db)
        application = await apply(test_db, tutor_a, tuition)
        await service.reject_manually(application.id, student.email)

        with pytest.raises(InvalidTransition):
            await service.withdraw(application.id, tutor_a.email)

    async def test_update_salary_syncs_listing(self, test_db, tutor_a, tuition):
        application = await apply(test_db, tutor_a, tuition)

        await ApplicationService(test_db).update_expected_salary(application.id, tutor_a.email, "9000")

        listing = await ListingProjection(test_db).find(tuition.id, tutor_a.email)
        assert listing.expected_salary == "9000"

    async def test_update_salary_by_other_tutor_forbidden(self, test_db, tutor_a, tutor_b, tuition):
        application = await apply(test_db, tutor_a, tuition)
        with pytest.raises(Forbidden):
            await ApplicationService(test_db).update_expected_salary(application.id, tutor_b.email, "1")

    async def test_reject_manually_by_recruiter(self, test_db, tutor_a, student, tuition):
        application = await apply(test_db, tutor_a, tuition)

        rejected = await ApplicationService(test_db).reject_manually(application.id, student.email)

        assert rejected.status == ApplicationStatus.REJECTED
        listing = await ListingProjection(test_db).find(tuition.id, tutor_a.email)
        assert listing.status == ApplicationStatus.REJECTED

    async def test_reject_manually_requires_recruiter(self, test_db, tutor_a, other_student, tuition):
        application = await apply(test_db, tutor_a, tuition)
        with pytest.raises(Forbidden):
            await ApplicationService(test_db).reject_manually(application.id, other_student.email)

    async def test_reject_manually_approved_application(self, test_db, tutor_a, student, tuition):
        service = ApplicationService(test_db)
        application = await apply(test_db, tutor_a, tuition)
        await service.set_status(application.id, ApplicationStatus.APPROVED)

        with pytest.raises(InvalidTransition):
            await service.reject_manually(application.id, student.email)

    async def test_reopen_colliding_application(self, test_db, tutor_a, student, tuition):
        service = ApplicationService(test_db)
        first = await apply(test_db, tutor_a, tuition)
        await service.reject_manually(first.id, student.email)
        await apply(test_db, tutor_a, tuition)

        with pytest.raises(DuplicateApplication):
            await service.set_status(first.id, ApplicationStatus.PENDING)

    async def test_reject_competitors(self, test_db, tutor_a, tutor_b, student, tuition):
        service = ApplicationService(test_db)
        winner = await apply(test_db, tutor_a, tuition)
        loser = await apply(test_db, tutor_b, tuition)

        assert await service.reject_competitors(tuition.id, winner.id) == 1
        assert loser.status == ApplicationStatus.REJECTED
        assert winner.status == ApplicationStatus.PENDING
        # Running again changes nothing
        assert await service.reject_competitors(tuition.id, winner.id) == 0

    async def test_list_for_tuition_owner_only(self, test_db, tutor_a, tutor_b, student, other_student, tuition):
        service = ApplicationService(test_db)
        await apply(test_db, tutor_a, tuition)
        await apply(test_db, tutor_b, tuition)

        assert len(await service.list_for_tuition(tuition.id, student.email)) == 2
        with pytest.raises(Forbidden):
            await service.list_for_tuition(tuition.id, other_student.email)

    async def test_list_ongoing(self, test_db, tutor_a, student):
        service = ApplicationService(test_db)
        first = await apply(test_db, tutor_a, await create_tuition(test_db, student))
        await apply(test_db, tutor_a, await create_tuition(test_db, student, subject="Biology"))
        await service.set_status(first.id, ApplicationStatus.APPROVED, transaction_id="pi_1")

        assert len(await service.list_for_tutor(tutor_a.email)) == 2
        ongoing = await service.list_ongoing(tutor_a.email)
        assert [a.id for a in ongoing] == [first.id]


class TestListingReconciliation:

    async def test_read_repairs_diverged_listing(self, test_db, tutor_a, tuition):
        application = await apply(test_db, tutor_a, tuition, expected_salary="5000")
        listing = await ListingProjection(test_db).find(tuition.id, tutor_a.email)
        listing.expected_salary = "stale"
        listing.status = ApplicationStatus.REJECTED
        await test_db.flush()

        await ApplicationService(test_db).get(application.id)

        listing = await ListingProjection(test_db).find(tuition.id, tutor_a.email)
        assert listing.expected_salary == "5000"
        assert listing.status == ApplicationStatus.PENDING

    async def test_read_recreates_missing_listing(self, test_db, tutor_a, tuition):
        application = await apply(test_db, tutor_a, tuition)
        listing = await ListingProjection(test_db).find(tuition.id, tutor_a.email)
        await test_db.delete(listing)
        await test_db.flush()

        await ApplicationService(test_db).get(application.id)

        listing = await ListingProjection(test_db).find(tuition.id, tutor_a.email)
        assert listing is not None
        assert listing.application_id == application.id

    async def test_list_reads_repair_diverged_listings(self, test_db, student, tutor_a, tuition):
        await apply(test_db, tutor_a, tuition)
        service = ApplicationService(test_db)
        listings = ListingProjection(test_db)

        for read in (
            lambda: service.list_for_tutor(tutor_a.email),
            lambda: service.list_for_tuition(tuition.id, student.email),
        ):
            listing = await listings.find(tuition.id, tutor_a.email)
            listing.status = ApplicationStatus.REJECTED
            await test_db.flush()

            assert len(await read()) == 1
            assert (await listings.find(tuition.id, tutor_a.email)).status == ApplicationStatus.PENDING

    async def test_viewer_checked_before_repair(self, test_db, tutor_a, tutor_b, tuition):
        application = await apply(test_db, tutor_a, tuition)
        listing = await ListingProjection(test_db).find(tuition.id, tutor_a.email)
        listing.status = ApplicationStatus.REJECTED
        await test_db.flush()

        with pytest.raises(Forbidden):
            await ApplicationService(test_db).get(application.id, viewer=tutor_b)

        listing = await ListingProjection(test_db).find(tuition.id, tutor_a.email)
        assert listing.status == ApplicationStatus.REJECTED

        await ApplicationService(test_db).get(application.id, viewer=tutor_a)
        listing = await ListingProjection(test_db).find(tuition.id, tutor_a.email)
        assert listing.status == ApplicationStatus.PENDING

    async def test_consistent_listing_untouched(self, test_db, tutor_a, tuition):
        application = await apply(test_db, tutor_a, tuition)
        assert await ListingProjection(test_db).reconcile(application) is False

    async def test_old_rejected_application_does_not_reclaim_listing(self, test_db, tutor_a, student, tuition):
        service = ApplicationService(test_db)
        first = await apply(test_db, tutor_a, tuition)
        await service.reject_manually(first.id, student.email)
        second = await apply(test_db, tutor_a, tuition)

        await service.get(first.id)

        listing = await ListingProjection(test_db).find(tuition.id, tutor_a.email)
        assert listing.application_id == second.id
        assert listing.status == ApplicationStatus.PENDING

    async def test_prune_orphans(self, test_db, tutor_a, tutor_b, tuition):
        withdrawn = await apply(test_db, tutor_a, tuition)
        await apply(test_db, tutor_b, tuition)
        await ApplicationService(test_db).withdraw(withdrawn.id, tutor_a.email)

        removed = await ListingProjection(test_db).prune_orphans()

        assert removed == 1
        remaining = (await test_db.execute(select(TutorListing))).scalars().all()
        assert [listing.tutor_email for listing in remaining] == [tutor_b.email]
