"""Webhook endpoints for external services"""

import logging

import stripe
from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.ext.asyncio import AsyncSession

from etuition.config import settings
from etuition.db.database import get_db
from etuition.services.payment_gateway import session_details_from_stripe
from etuition.services.settlement import SettlementService, settlement_request_from_session

logger = logging.getLogger(__name__)
router = APIRouter()

SETTLEMENT_EVENTS = {
    "checkout.session.completed",
    "checkout.session.async_payment_succeeded",
}


@router.post("/stripe")
async def stripe_webhook(
    request: Request,
    db: AsyncSession = Depends(get_db),
) -> dict[str, str]:
    """Handle Stripe webhook events"""

    if not settings.stripe_webhook_secret:
        raise HTTPException(status_code=503, detail="Payment webhooks are not configured")

    # Get raw request body and headers
    payload = await request.body()
    sig_header = request.headers.get('stripe-signature')

    if not sig_header:
        raise HTTPException(status_code=400, detail="Missing Stripe signature")

    # Verify webhook signature
    try:
        event = stripe.Webhook.construct_event(
            payload, sig_header, settings.stripe_webhook_secret
        )
    except ValueError as e:
        logger.error(f"Invalid Stripe webhook payload: {e}")
        raise HTTPException(status_code=400, detail="Invalid payload")
    except stripe.SignatureVerificationError as e:
        logger.error(f"Invalid Stripe webhook signature: {e}")
        raise HTTPException(status_code=400, detail="Invalid signature")

    event_type = event['type']
    logger.info(f"Received Stripe webhook: {event_type}")

    if event_type not in SETTLEMENT_EVENTS:
        logger.info(f"Unhandled Stripe webhook event type: {event_type}")
        return {"status": "ignored"}

    details = session_details_from_stripe(event['data']['object'])
    if not details.is_paid:
        logger.info(f"Checkout session {details.id} completed without payment")
        return {"status": "pending"}

    # SettlementError propagates as a 500 so Stripe redelivers the event
    result = await SettlementService(db).settle(settlement_request_from_session(details))
    return {
        "status": "already_settled" if result.already_settled else "settled",
        "transaction_id": result.transaction_id or "",
    }
