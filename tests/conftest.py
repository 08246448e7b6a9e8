"""Pytest configuration and fixtures"""

import os
from collections.abc import AsyncGenerator

# Configure before the application module reads its settings
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("APP_DEBUG", "false")
os.environ.setdefault("LOG_FORMAT", "text")
os.environ.setdefault("LOG_LEVEL", "WARNING")

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from etuition.api.deps import get_identity_verifier, get_payment_gateway
from etuition.db.database import Base, get_db
from etuition.db.models import TuitionPost, TuitionStatus, User, UserRole
from etuition.main import app
from etuition.schemas.applications import ApplicationCreate
from etuition.schemas.payments import CheckoutSession, SessionDetails
from etuition.services.applications import ApplicationService
from etuition.services.exceptions import Unauthorized
from etuition.services.identity import VerifiedIdentity

TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


class FakeIdentityVerifier:
    """Accepts any bearer token that is an email address"""

    async def verify(self, token: str) -> VerifiedIdentity:
        if "@" not in token:
            raise Unauthorized()
        return VerifiedIdentity(email=token.lower(), subject_id=f"uid-{token.lower()}")


class FakePaymentGateway:
    """In-memory stand-in for Stripe Checkout"""

    def __init__(self):
        self.created: list[dict] = []
        self.sessions: dict[str, SessionDetails] = {}

    async def create_checkout_session(
        self,
        amount_cents,
        currency,
        description,
        metadata,
        success_url,
        cancel_url,
        customer_email=None,
    ) -> CheckoutSession:
        session_id = f"cs_test_{len(self.created) + 1}"
        self.created.append({
            "id": session_id,
            "amount_cents": amount_cents,
            "currency": currency,
            "description": description,
            "metadata": metadata,
            "success_url": success_url,
            "cancel_url": cancel_url,
            "customer_email": customer_email,
        })
        self.sessions[session_id] = SessionDetails(
            id=session_id,
            payment_status="unpaid",
            amount_total=amount_cents,
            currency=currency,
            payment_intent_id=None,
            customer_email=customer_email,
            metadata=dict(metadata),
        )
        return CheckoutSession(id=session_id, url=f"https://checkout.test/{session_id}")

    async def retrieve_session(self, session_id: str) -> SessionDetails:
        return self.sessions[session_id]

    def mark_paid(self, session_id: str, payment_intent_id: str) -> SessionDetails:
        details = self.sessions[session_id]
        details.payment_status = "paid"
        details.payment_intent_id = payment_intent_id
        return details


def auth_headers(email: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {email}"}


@pytest_asyncio.fixture
async def test_db() -> AsyncGenerator[AsyncSession, None]:
    """Create a test database session on a fresh in-memory database"""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    TestSessionLocal = async_sessionmaker(
        engine, class_=AsyncSession, expire_on_commit=False
    )

    async with TestSessionLocal() as session:
        yield session

    await engine.dispose()


@pytest.fixture
def payment_gateway() -> FakePaymentGateway:
    return FakePaymentGateway()


@pytest_asyncio.fixture
async def client(
    test_db: AsyncSession, payment_gateway: FakePaymentGateway
) -> AsyncGenerator[AsyncClient, None]:
    """Create a test client with overridden collaborators"""

    async def override_get_db():
        yield test_db

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_identity_verifier] = FakeIdentityVerifier
    app.dependency_overrides[get_payment_gateway] = lambda: payment_gateway

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


async def create_user(
    db: AsyncSession,
    email: str,
    role: UserRole,
    display_name: str | None = None,
    photo_url: str | None = None,
) -> User:
    user = User(
        email=email,
        firebase_uid=f"uid-{email}",
        display_name=display_name or email.split("@")[0].title(),
        photo_url=photo_url,
        role=role,
    )
    db.add(user)
    await db.flush()
    return user


async def create_tuition(
    db: AsyncSession,
    student: User,
    subject: str = "Physics",
    class_level: str = "Grade 10",
    location: str = "Dhaka",
    budget: int = 5000,
    status: TuitionStatus = TuitionStatus.APPROVED,
) -> TuitionPost:
    tuition = TuitionPost(
        subject=subject,
        class_level=class_level,
        location=location,
        budget=budget,
        student_email=student.email,
        student_id=student.id,
        status=status,
    )
    db.add(tuition)
    await db.flush()
    return tuition


async def apply(db: AsyncSession, tutor: User, tuition: TuitionPost, **fields):
    return await ApplicationService(db).apply(
        tutor.email, ApplicationCreate(tuition_id=tuition.id, **fields)
    )


@pytest_asyncio.fixture
async def student(test_db: AsyncSession) -> User:
    return await create_user(test_db, "student@example.com", UserRole.STUDENT, "Sadia Student")


@pytest_asyncio.fixture
async def other_student(test_db: AsyncSession) -> User:
    return await create_user(test_db, "other.student@example.com", UserRole.STUDENT)


@pytest_asyncio.fixture
async def tutor_a(test_db: AsyncSession) -> User:
    return await create_user(
        test_db, "tutor.a@example.com", UserRole.TUTOR, "Alice Tutor", "https://img.test/alice.png"
    )


@pytest_asyncio.fixture
async def tutor_b(test_db: AsyncSession) -> User:
    return await create_user(test_db, "tutor.b@example.com", UserRole.TUTOR, "Bob Tutor")


@pytest_asyncio.fixture
async def admin(test_db: AsyncSession) -> User:
    return await create_user(test_db, "admin@example.com", UserRole.ADMIN, "Site Admin")


@pytest_asyncio.fixture
async def tuition(test_db: AsyncSession, student: User) -> TuitionPost:
    return await create_tuition(test_db, student)
