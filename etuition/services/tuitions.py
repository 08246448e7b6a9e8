"""Tuition post lifecycle"""

import logging
from uuid import UUID

from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from etuition.db.models import TuitionPost, TuitionStatus, User, UserRole, utcnow
from etuition.schemas.tuitions import (
    TuitionCreate,
    TuitionFilters,
    TuitionSort,
    TuitionUpdate,
)
from etuition.services.authorization import ensure_owner
from etuition.services.exceptions import (
    Forbidden,
    InvalidTransition,
    NotFound,
    ValidationError,
)

logger = logging.getLogger(__name__)

REQUIRED_FIELDS = ("subject", "class_level", "location")

# Statuses an admin may moderate into, keyed by the status they may leave
MODERATION_TRANSITIONS: dict[TuitionStatus, set[TuitionStatus]] = {
    TuitionStatus.PENDING: {TuitionStatus.APPROVED, TuitionStatus.REJECTED},
    TuitionStatus.APPROVED: {TuitionStatus.REJECTED},
    TuitionStatus.REJECTED: {TuitionStatus.APPROVED},
    TuitionStatus.BOOKED: set(),
}


def check_transition(
    current: TuitionStatus,
    new_status: TuitionStatus,
    requester_role: UserRole | None,
    internal: bool = False,
) -> None:
    """Validate a tuition status change.

    Moderation (approved/rejected) belongs to admins; booking belongs to the
    settlement protocol or an admin. Nothing leaves ``booked``.

    Raises:
        Forbidden: requester may not drive this transition
        InvalidTransition: the state machine does not allow it
    """
    if new_status == TuitionStatus.BOOKED:
        if not internal and requester_role != UserRole.ADMIN:
            raise Forbidden("Only settlement or an admin can book a tuition")
    elif requester_role != UserRole.ADMIN:
        raise Forbidden("Only an admin can moderate tuitions")

    if current == new_status:
        return

    if current == TuitionStatus.BOOKED:
        raise InvalidTransition("A booked tuition cannot be reopened")

    if new_status == TuitionStatus.BOOKED:
        return

    if new_status not in MODERATION_TRANSITIONS[current]:
        raise InvalidTransition(
            f"Cannot change tuition status from {current.value} to {new_status.value}"
        )


class TuitionService:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def create(self, student: User, tuition_data: TuitionCreate) -> TuitionPost:
        """Create a tuition post owned by the student, pending moderation"""
        missing = [
            name for name in REQUIRED_FIELDS
            if not (getattr(tuition_data, name) or "").strip()
        ]
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}")

        tuition = TuitionPost(
            subject=tuition_data.subject.strip(),
            class_level=tuition_data.class_level.strip(),
            location=tuition_data.location.strip(),
            budget=tuition_data.budget,
            description=tuition_data.description,
            student_email=student.email,
            student_id=student.id,
            status=TuitionStatus.PENDING,
        )
        self.db.add(tuition)
        await self.db.flush()

        logger.info(f"Tuition {tuition.id} created by {student.email}")
        return tuition

    async def get(self, tuition_id: UUID) -> TuitionPost:
        tuition = await self.db.get(TuitionPost, tuition_id)
        if not tuition:
            raise NotFound("Tuition not found")
        return tuition

    async def update_fields(
        self, tuition_id: UUID, requester_email: str, update_data: TuitionUpdate
    ) -> TuitionPost:
        tuition = await self.get(tuition_id)
        ensure_owner(requester_email, tuition.student_email)

        if tuition.status == TuitionStatus.BOOKED:
            raise InvalidTransition("A booked tuition cannot be edited")

        changes = update_data.model_dump(exclude_unset=True)
        for name in REQUIRED_FIELDS:
            if name in changes and not (changes[name] or "").strip():
                raise ValidationError(f"{name} cannot be empty")
        if "budget" in changes and changes["budget"] is None:
            raise ValidationError("budget cannot be empty")

        for field, value in changes.items():
            setattr(tuition, field, value.strip() if isinstance(value, str) and field in REQUIRED_FIELDS else value)

        await self.db.flush()
        logger.info(f"Tuition {tuition_id} updated by {requester_email}")
        return tuition

    async def set_status(
        self,
        tuition_id: UUID,
        new_status: TuitionStatus,
        requester_role: UserRole | None,
        internal: bool = False,
        transaction_id: str | None = None,
    ) -> TuitionPost:
        tuition = await self.get(tuition_id)
        check_transition(tuition.status, new_status, requester_role, internal)

        if tuition.status == new_status:
            return tuition

        previous = tuition.status
        tuition.status = new_status
        if new_status == TuitionStatus.BOOKED:
            tuition.booked_at = utcnow()
            tuition.transaction_id = transaction_id

        await self.db.flush()
        logger.info(f"Tuition {tuition_id} status {previous.value} -> {new_status.value}")
        return tuition

    async def delete(self, tuition_id: UUID, requester_email: str) -> None:
        tuition = await self.get(tuition_id)
        ensure_owner(requester_email, tuition.student_email)

        if tuition.status == TuitionStatus.BOOKED:
            raise InvalidTransition("A booked tuition cannot be deleted")

        await self.db.delete(tuition)
        await self.db.flush()
        logger.info(f"Tuition {tuition_id} deleted by {requester_email}")

    async def list_tuitions(self, filters: TuitionFilters) -> tuple[list[TuitionPost], int]:
        """Filtered, sorted, paginated tuition listing"""
        conditions = []
        if filters.status:
            conditions.append(TuitionPost.status == filters.status)
        if filters.class_level:
            conditions.append(
                TuitionPost.class_level.ilike(f"%{filters.class_level}%")
            )
        if filters.student_email:
            conditions.append(TuitionPost.student_email == filters.student_email.lower())
        if filters.search:
            term = filters.search
            conditions.append(or_(
                TuitionPost.subject.ilike(f"%{term}%"),
                TuitionPost.location.ilike(f"%{term}%"),
            ))

        order_by = {
            TuitionSort.NEWEST: (TuitionPost.created_at.desc(),),
            TuitionSort.OLDEST: (TuitionPost.created_at.asc(),),
            TuitionSort.SALARY_ASC: (TuitionPost.budget.asc(), TuitionPost.created_at.desc()),
            TuitionSort.SALARY_DESC: (TuitionPost.budget.desc(), TuitionPost.created_at.desc()),
        }[filters.sort]

        stmt = (
            select(TuitionPost)
            .where(*conditions)
            .order_by(*order_by)
            .offset((filters.page - 1) * filters.limit)
            .limit(filters.limit)
        )
        count_stmt = select(func.count(TuitionPost.id)).where(*conditions)

        tuitions = (await self.db.execute(stmt)).scalars().all()
        total = (await self.db.execute(count_stmt)).scalar() or 0
        return list(tuitions), total
