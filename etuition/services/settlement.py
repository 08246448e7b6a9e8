"""Payment settlement protocol.

Once the processor confirms a payment, settlement records it and moves the
related records into their booked state:

    recorded -> application_approved -> tuition_booked
             -> listing_mirrored -> competitors_rejected -> completed

The payment's transaction reference is the idempotency key. Every stage is
idempotent and the PaymentRecord stores the last finished stage, so a retry
after any failure resumes where the previous attempt stopped. By default all
stages share one database transaction; with ``settlement_commit_per_step``
each stage is committed on its own.
"""

import logging
import uuid
from dataclasses import dataclass

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from etuition.config import settings
from etuition.db.models import (
    ApplicationStatus,
    PaymentRecord,
    PaymentStatus,
    SettlementStage,
    TuitionPost,
    TuitionStatus,
)
from etuition.schemas.payments import SessionDetails, SettlementRequest
from etuition.services.applications import ApplicationService
from etuition.services.exceptions import SettlementError, ValidationError
from etuition.services.listings import ListingProjection
from etuition.services.payment_gateway import PaymentGateway
from etuition.services.tuitions import TuitionService

logger = logging.getLogger(__name__)


@dataclass
class SettlementResult:
    success: bool
    payment: PaymentRecord | None = None
    already_settled: bool = False
    transaction_id: str | None = None


def settlement_request_from_session(details: SessionDetails) -> SettlementRequest:
    """Build a settlement request from a paid checkout session"""
    metadata = details.metadata
    try:
        application_id = uuid.UUID(metadata["applicationId"])
        tuition_id = uuid.UUID(metadata["tuitionId"])
    except (KeyError, ValueError):
        raise ValidationError("Checkout session metadata is missing application or tuition id")

    payer_email = details.customer_email or metadata.get("studentEmail")
    payee_email = metadata.get("tutorEmail")
    if not payer_email or not payee_email:
        raise ValidationError("Checkout session metadata is missing payer or payee")

    return SettlementRequest(
        transaction_id=details.payment_intent_id or details.id,
        session_id=details.id,
        amount_cents=details.amount_total,
        currency=details.currency,
        payer_email=payer_email.lower(),
        payee_email=payee_email.lower(),
        application_id=application_id,
        tuition_id=tuition_id,
        extra_metadata={"stripe_metadata": dict(metadata)},
    )


class SettlementService:
    """Idempotent, resumable settlement keyed by transaction reference"""

    def __init__(self, db: AsyncSession, commit_per_step: bool | None = None):
        self.db = db
        self.commit_per_step = (
            settings.settlement_commit_per_step if commit_per_step is None else commit_per_step
        )
        self.applications = ApplicationService(db)
        self.tuitions = TuitionService(db)
        self.listings = ListingProjection(db)

        self._stages = [
            (SettlementStage.APPLICATION_APPROVED, self._approve_application),
            (SettlementStage.TUITION_BOOKED, self._book_tuition),
            (SettlementStage.LISTING_MIRRORED, self._mirror_listing),
            (SettlementStage.COMPETITORS_REJECTED, self._reject_competitors),
        ]

    async def confirm_checkout(self, gateway: PaymentGateway, session_id: str) -> SettlementResult:
        """Settle the payment behind a checkout session, if it has been paid"""
        details = await gateway.retrieve_session(session_id)
        if not details.is_paid:
            logger.info(f"Checkout session {session_id} not paid (status={details.payment_status})")
            return SettlementResult(success=False)

        return await self.settle(settlement_request_from_session(details))

    async def settle(self, request: SettlementRequest) -> SettlementResult:
        """
        Run the settlement sequence for a confirmed payment

        Args:
            request: Confirmed payment details and the records it pays for

        Returns:
            The payment record; ``already_settled`` is set when an earlier
            call finished the sequence for this transaction reference

        Raises:
            SettlementError: any stage failed; retrying is safe
        """
        transaction_id = request.transaction_id

        payment = await self._get_payment(transaction_id)
        if payment is not None and payment.is_settled:
            logger.info(f"Payment {transaction_id} already settled")
            return SettlementResult(
                success=True, payment=payment, already_settled=True, transaction_id=transaction_id
            )

        try:
            if payment is None:
                await self._check_tuition_available(request.tuition_id, transaction_id)
                payment = await self._record_payment(request)
                if payment.is_settled:
                    return SettlementResult(
                        success=True, payment=payment, already_settled=True, transaction_id=transaction_id
                    )
            else:
                logger.info(f"Resuming settlement of {transaction_id} after {payment.settlement_stage.value}")
                # Another payment may have booked the tuition since this one stopped
                await self._check_tuition_available(payment.tuition_id, transaction_id)

            await self._run_stages(payment)
            await self.db.commit()
        except Exception as e:
            await self.db.rollback()
            logger.error(f"Settlement of {transaction_id} failed: {e}", exc_info=True)
            if isinstance(e, SettlementError):
                raise
            raise SettlementError(f"Settlement of transaction {transaction_id} failed") from e

        logger.info(
            f"Settled payment {transaction_id}",
            extra={
                "application_id": str(request.application_id),
                "tuition_id": str(request.tuition_id),
                "amount_cents": request.amount_cents,
            },
        )
        return SettlementResult(success=True, payment=payment, transaction_id=transaction_id)

    async def _run_stages(self, payment: PaymentRecord) -> None:
        for stage, step in self._stages:
            if payment.settlement_stage.order >= stage.order:
                continue
            await step(payment)
            await self._advance(payment, stage)

        if payment.settlement_stage != SettlementStage.COMPLETED:
            await self._advance(payment, SettlementStage.COMPLETED)

    async def _advance(self, payment: PaymentRecord, stage: SettlementStage) -> None:
        payment.settlement_stage = stage
        await self.db.flush()
        if self.commit_per_step:
            await self.db.commit()
        logger.debug(f"Settlement {payment.transaction_id} reached {stage.value}")

    async def _check_tuition_available(self, tuition_id: uuid.UUID, transaction_id: str) -> None:
        tuition = await self.db.get(TuitionPost, tuition_id)
        if tuition is None:
            raise SettlementError(f"Tuition {tuition_id} not found")
        if tuition.transaction_id not in (None, transaction_id):
            raise SettlementError(f"Tuition {tuition_id} is already booked by another payment")

    async def _record_payment(self, request: SettlementRequest) -> PaymentRecord:
        payment = PaymentRecord(
            transaction_id=request.transaction_id,
            session_id=request.session_id,
            amount_cents=request.amount_cents,
            currency=request.currency,
            payer_email=request.payer_email,
            payee_email=request.payee_email,
            application_id=request.application_id,
            tuition_id=request.tuition_id,
            status=PaymentStatus.PAID,
            settlement_stage=SettlementStage.RECORDED,
            extra_metadata=request.extra_metadata,
        )
        self.db.add(payment)
        try:
            await self.db.flush()
        except IntegrityError:
            # A concurrent confirmation inserted the same transaction first
            await self.db.rollback()
            existing = await self._get_payment(request.transaction_id)
            if existing is None:
                raise
            logger.info(f"Payment {request.transaction_id} recorded concurrently")
            return existing

        if self.commit_per_step:
            await self.db.commit()
        return payment

    async def _approve_application(self, payment: PaymentRecord) -> None:
        await self.applications.set_status(
            payment.application_id,
            ApplicationStatus.APPROVED,
            transaction_id=payment.transaction_id,
        )

    async def _book_tuition(self, payment: PaymentRecord) -> None:
        await self._check_tuition_available(payment.tuition_id, payment.transaction_id)
        await self.tuitions.set_status(
            payment.tuition_id,
            TuitionStatus.BOOKED,
            requester_role=None,
            internal=True,
            transaction_id=payment.transaction_id,
        )

    async def _mirror_listing(self, payment: PaymentRecord) -> None:
        application = await self.applications.get(payment.application_id)
        await self.listings.mark_settled(
            application.tuition_id, application.tutor_email, payment.transaction_id
        )

    async def _reject_competitors(self, payment: PaymentRecord) -> None:
        rejected = await self.applications.reject_competitors(payment.tuition_id, payment.application_id)
        logger.info(f"Rejected {rejected} competing applications on tuition {payment.tuition_id}")

    async def list_payments(self, payer_email: str) -> list[PaymentRecord]:
        stmt = (
            select(PaymentRecord)
            .where(PaymentRecord.payer_email == payer_email.lower())
            .order_by(PaymentRecord.paid_at.desc())
        )
        return list((await self.db.execute(stmt)).scalars().all())

    async def _get_payment(self, transaction_id: str) -> PaymentRecord | None:
        stmt = select(PaymentRecord).where(PaymentRecord.transaction_id == transaction_id)
        return (await self.db.execute(stmt)).scalar_one_or_none()
