"""Stripe Checkout integration"""

import asyncio
import logging
from typing import Any, Protocol

import stripe

from etuition.config import settings
from etuition.schemas.payments import CheckoutSession, SessionDetails

logger = logging.getLogger(__name__)


class PaymentGateway(Protocol):
    async def create_checkout_session(
        self,
        amount_cents: int,
        currency: str,
        description: str,
        metadata: dict[str, str],
        success_url: str,
        cancel_url: str,
        customer_email: str | None = None,
    ) -> CheckoutSession: ...

    async def retrieve_session(self, session_id: str) -> SessionDetails: ...


class StripeCheckoutGateway:
    """Checkout sessions through the Stripe SDK"""

    def __init__(self, api_key: str | None = None):
        # Configure Stripe
        stripe.api_key = api_key or settings.stripe_secret_key
        self.stripe_client = stripe

    async def create_checkout_session(
        self,
        amount_cents: int,
        currency: str,
        description: str,
        metadata: dict[str, str],
        success_url: str,
        cancel_url: str,
        customer_email: str | None = None,
    ) -> CheckoutSession:
        session_data: dict[str, Any] = {
            "mode": "payment",
            "line_items": [
                {
                    "price_data": {
                        "currency": currency,
                        "unit_amount": amount_cents,
                        "product_data": {"name": description},
                    },
                    "quantity": 1,
                }
            ],
            "metadata": metadata,
            "success_url": success_url,
            "cancel_url": cancel_url,
        }
        if customer_email:
            session_data["customer_email"] = customer_email

        session = await asyncio.to_thread(self.stripe_client.checkout.Session.create, **session_data)
        logger.info(f"Created Stripe checkout session {session['id']}")
        return CheckoutSession(id=session["id"], url=session["url"])

    async def retrieve_session(self, session_id: str) -> SessionDetails:
        session = await asyncio.to_thread(self.stripe_client.checkout.Session.retrieve, session_id)
        return session_details_from_stripe(session)


def _field(obj: Any, key: str) -> Any:
    if isinstance(obj, dict):
        return obj.get(key)
    return getattr(obj, key, None)


def session_details_from_stripe(session: Any) -> SessionDetails:
    """Normalize a Stripe checkout session object (or webhook payload)"""
    payment_intent = _field(session, "payment_intent")
    if payment_intent is not None and not isinstance(payment_intent, str):
        payment_intent = _field(payment_intent, "id")

    customer_details = _field(session, "customer_details")
    customer_email = _field(session, "customer_email") or (
        _field(customer_details, "email") if customer_details is not None else None
    )
    metadata = _field(session, "metadata") or {}

    return SessionDetails(
        id=_field(session, "id"),
        payment_status=_field(session, "payment_status") or "unpaid",
        amount_total=_field(session, "amount_total") or 0,
        currency=_field(session, "currency") or settings.payment_currency,
        payment_intent_id=payment_intent,
        customer_email=customer_email,
        metadata={key: str(metadata[key]) for key in metadata.keys()},
    )
