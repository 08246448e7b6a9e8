"""Tests for checkout session creation and Stripe session parsing"""

import uuid
from decimal import Decimal

import pytest

from conftest import apply, create_tuition
from etuition.db.models import ApplicationStatus, TuitionStatus
from etuition.schemas.payments import CheckoutRequest
from etuition.services.checkout import CheckoutService, build_metadata, to_minor_units
from etuition.services.exceptions import Forbidden, InvalidTransition, NotFound, ValidationError
from etuition.services.payment_gateway import session_details_from_stripe


@pytest.mark.parametrize(
    "amount,expected",
    [(Decimal("50"), 5000), (Decimal("19.99"), 1999), (Decimal("0.015"), 2), (Decimal("1200.50"), 120050)],
)
def test_to_minor_units(amount, expected):
    assert to_minor_units(amount) == expected


class TestCreateCheckoutSession:

    async def test_creates_session(self, test_db, payment_gateway, student, tutor_a, tuition):
        application = await apply(test_db, tutor_a, tuition)

        session = await CheckoutService(test_db, payment_gateway).create_checkout_session(
            student,
            CheckoutRequest(application_id=application.id, tuition_id=tuition.id, amount=Decimal("45.50")),
        )

        assert session.url.endswith(session.id)
        created = payment_gateway.created[0]
        assert created["amount_cents"] == 4550
        assert created["currency"] == "usd"
        assert created["description"] == "Tuition Payment for Physics (Grade 10)"
        assert created["success_url"].endswith(
            "/dashboard/payment-success?session_id={CHECKOUT_SESSION_ID}"
        )
        assert created["cancel_url"].endswith("/dashboard/payment-cancelled")
        assert created["metadata"] == {
            "applicationId": str(application.id),
            "tuitionId": str(tuition.id),
            "studentEmail": student.email,
            "tutorEmail": tutor_a.email,
            "studentId": str(student.id),
            "tutorId": str(tutor_a.id),
        }

    async def test_only_owner_can_pay(self, test_db, payment_gateway, other_student, tutor_a, tuition):
        application = await apply(test_db, tutor_a, tuition)
        with pytest.raises(Forbidden):
            await CheckoutService(test_db, payment_gateway).create_checkout_session(
                other_student,
                CheckoutRequest(application_id=application.id, tuition_id=tuition.id, amount=Decimal("10")),
            )
        assert payment_gateway.created == []

    async def test_application_must_match_tuition(self, test_db, payment_gateway, student, tutor_a, tuition):
        application = await apply(test_db, tutor_a, tuition)
        other = await create_tuition(test_db, student, subject="Biology")
        with pytest.raises(ValidationError):
            await CheckoutService(test_db, payment_gateway).create_checkout_session(
                student,
                CheckoutRequest(application_id=application.id, tuition_id=other.id, amount=Decimal("10")),
            )

    async def test_booked_tuition(self, test_db, payment_gateway, student, tutor_a, tuition):
        application = await apply(test_db, tutor_a, tuition)
        tuition.status = TuitionStatus.BOOKED
        await test_db.flush()
        with pytest.raises(InvalidTransition):
            await CheckoutService(test_db, payment_gateway).create_checkout_session(
                student,
                CheckoutRequest(application_id=application.id, tuition_id=tuition.id, amount=Decimal("10")),
            )

    async def test_rejected_application(self, test_db, payment_gateway, student, tutor_a, tuition):
        application = await apply(test_db, tutor_a, tuition)
        application.status = ApplicationStatus.REJECTED
        await test_db.flush()
        with pytest.raises(InvalidTransition):
            await CheckoutService(test_db, payment_gateway).create_checkout_session(
                student,
                CheckoutRequest(application_id=application.id, tuition_id=tuition.id, amount=Decimal("10")),
            )

    async def test_unknown_application(self, test_db, payment_gateway, student, tuition):
        with pytest.raises(NotFound):
            await CheckoutService(test_db, payment_gateway).create_checkout_session(
                student,
                CheckoutRequest(application_id=uuid.uuid4(), tuition_id=tuition.id, amount=Decimal("10")),
            )


async def test_metadata_without_tutor_profile(test_db, student, tutor_a, tuition):
    application = await apply(test_db, tutor_a, tuition)
    metadata = build_metadata(student, None, application)
    assert metadata["tutorId"] == ""
    assert all(isinstance(value, str) for value in metadata.values())


class TestSessionDetailsFromStripe:

    def test_webhook_payload(self):
        details = session_details_from_stripe({
            "id": "cs_1",
            "payment_status": "paid",
            "amount_total": 2500,
            "currency": "usd",
            "payment_intent": "pi_1",
            "customer_email": None,
            "customer_details": {"email": "payer@example.com"},
            "metadata": {"applicationId": "a", "tuitionId": "t"},
        })
        assert details.is_paid
        assert details.payment_intent_id == "pi_1"
        assert details.customer_email == "payer@example.com"
        assert details.metadata == {"applicationId": "a", "tuitionId": "t"}

    def test_expanded_payment_intent(self):
        details = session_details_from_stripe({
            "id": "cs_2",
            "payment_status": "unpaid",
            "amount_total": 100,
            "currency": "usd",
            "payment_intent": {"id": "pi_2", "object": "payment_intent"},
            "metadata": None,
        })
        assert not details.is_paid
        assert details.payment_intent_id == "pi_2"
        assert details.metadata == {}
