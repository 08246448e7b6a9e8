"""API endpoints for checkout and payment settlement"""

import logging

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from etuition.api.deps import get_payment_gateway, require
from etuition.db.database import get_db
from etuition.db.models import User
from etuition.schemas.payments import (
    CheckoutRequest,
    CheckoutResponse,
    PaymentResponse,
    SettlementResponse,
)
from etuition.services.authorization import Operation
from etuition.services.checkout import CheckoutService
from etuition.services.payment_gateway import PaymentGateway
from etuition.services.settlement import SettlementResult, SettlementService

logger = logging.getLogger(__name__)
router = APIRouter(tags=["payments"])


def to_settlement_response(result: SettlementResult) -> SettlementResponse:
    return SettlementResponse(
        success=result.success,
        already_settled=result.already_settled,
        transaction_id=result.transaction_id,
        payment=PaymentResponse.model_validate(result.payment) if result.payment else None,
    )


@router.post("/create-checkout-session", response_model=CheckoutResponse)
async def create_checkout_session(
    checkout: CheckoutRequest,
    student: User = Depends(require(Operation.CREATE_CHECKOUT)),
    gateway: PaymentGateway = Depends(get_payment_gateway),
    db: AsyncSession = Depends(get_db),
) -> CheckoutResponse:
    """Start payment for approving a tutor's application"""
    session = await CheckoutService(db, gateway).create_checkout_session(student, checkout)
    return CheckoutResponse(url=session.url, session_id=session.id)


@router.post("/payment-success", response_model=SettlementResponse)
async def confirm_payment(
    session_id: str = Query(..., min_length=1),
    gateway: PaymentGateway = Depends(get_payment_gateway),
    db: AsyncSession = Depends(get_db),
) -> SettlementResponse:
    """Settle a checkout session after the processor redirects back.

    Safe to call repeatedly; a settled session returns the existing payment.
    """
    result = await SettlementService(db).confirm_checkout(gateway, session_id)
    return to_settlement_response(result)


@router.get("/payments", response_model=list[PaymentResponse])
async def list_my_payments(
    student: User = Depends(require(Operation.VIEW_OWN_PAYMENTS)),
    db: AsyncSession = Depends(get_db),
) -> list[PaymentResponse]:
    payments = await SettlementService(db).list_payments(student.email)
    return [PaymentResponse.model_validate(payment) for payment in payments]
