"""Checkout session creation for approving an application"""

import logging
from decimal import ROUND_HALF_UP, Decimal

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from etuition.config import settings
from etuition.db.models import (
    Application,
    ApplicationStatus,
    TuitionPost,
    TuitionStatus,
    User,
)
from etuition.schemas.payments import CheckoutRequest, CheckoutSession
from etuition.services.authorization import ensure_owner
from etuition.services.exceptions import InvalidTransition, NotFound, ValidationError
from etuition.services.payment_gateway import PaymentGateway

logger = logging.getLogger(__name__)


def to_minor_units(amount: Decimal) -> int:
    return int((amount * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def build_metadata(student: User, tutor: User | None, application: Application) -> dict[str, str]:
    """Checkout metadata; every value is a string, never null"""
    metadata = {
        "applicationId": str(application.id),
        "tuitionId": str(application.tuition_id),
        "studentEmail": student.email,
        "tutorEmail": application.tutor_email,
        "studentId": str(student.id),
        "tutorId": str(tutor.id) if tutor else "",
    }
    return {key: value or "" for key, value in metadata.items()}


class CheckoutService:
    def __init__(self, db: AsyncSession, gateway: PaymentGateway):
        self.db = db
        self.gateway = gateway

    async def create_checkout_session(
        self, student: User, checkout: CheckoutRequest
    ) -> CheckoutSession:
        """
        Start a paid approval of an application

        Args:
            student: Authenticated student who owns the tuition
            checkout: Application, tuition and amount to charge

        Returns:
            The processor's session id and hosted checkout URL
        """
        application = await self.db.get(Application, checkout.application_id)
        tuition = await self.db.get(TuitionPost, checkout.tuition_id)
        if not application or not tuition:
            raise NotFound("not found")

        ensure_owner(student.email, tuition.student_email)

        if application.tuition_id != tuition.id:
            raise ValidationError("Application does not belong to this tuition")
        if application.status != ApplicationStatus.PENDING:
            raise InvalidTransition(f"Application is already {application.status.value}")
        if tuition.status == TuitionStatus.BOOKED:
            raise InvalidTransition("Tuition is already booked")

        amount_cents = to_minor_units(checkout.amount)
        if amount_cents <= 0:
            raise ValidationError("Amount must be positive")

        tutor = await self._get_user(application.tutor_email)
        metadata = build_metadata(student, tutor, application)

        session = await self.gateway.create_checkout_session(
            amount_cents=amount_cents,
            currency=settings.payment_currency,
            description=f"Tuition Payment for {tuition.subject} ({tuition.class_level})",
            metadata=metadata,
            success_url=f"{settings.site_domain}/dashboard/payment-success?session_id={{CHECKOUT_SESSION_ID}}",
            cancel_url=f"{settings.site_domain}/dashboard/payment-cancelled",
            customer_email=student.email,
        )

        logger.info(
            f"Checkout session {session.id} created for application {application.id}",
            extra={"amount_cents": amount_cents, "tuition_id": str(tuition.id)},
        )
        return session

    async def _get_user(self, email: str) -> User | None:
        result = await self.db.execute(select(User).where(User.email == email))
        return result.scalar_one_or_none()
