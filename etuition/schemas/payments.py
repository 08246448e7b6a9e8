"""Pydantic schemas for checkout and payment settlement"""

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Any
from uuid import UUID

from pydantic import BaseModel, Field

from etuition.db.models import PaymentStatus, SettlementStage


class CheckoutRequest(BaseModel):
    application_id: UUID
    tuition_id: UUID
    amount: Decimal = Field(..., gt=0, max_digits=12, decimal_places=2, description="Amount in major currency units")


class CheckoutResponse(BaseModel):
    url: str
    session_id: str


@dataclass
class CheckoutSession:
    """Session created by the payment processor"""
    id: str
    url: str


@dataclass
class SessionDetails:
    """Subset of a retrieved checkout session used for settlement"""
    id: str
    payment_status: str
    amount_total: int
    currency: str
    payment_intent_id: str | None
    customer_email: str | None
    metadata: dict[str, str] = field(default_factory=dict)

    @property
    def is_paid(self) -> bool:
        return self.payment_status == "paid"


@dataclass
class SettlementRequest:
    transaction_id: str
    amount_cents: int
    currency: str
    payer_email: str
    payee_email: str
    application_id: UUID
    tuition_id: UUID
    session_id: str | None = None
    extra_metadata: dict[str, Any] = field(default_factory=dict)


class PaymentResponse(BaseModel):
    id: UUID
    transaction_id: str
    amount_cents: int
    currency: str
    payer_email: str
    payee_email: str
    application_id: UUID
    tuition_id: UUID
    status: PaymentStatus
    settlement_stage: SettlementStage
    paid_at: datetime

    model_config = {"from_attributes": True}


class SettlementResponse(BaseModel):
    success: bool
    already_settled: bool = False
    transaction_id: str | None = None
    payment: PaymentResponse | None = None
