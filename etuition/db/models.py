"""Database models for the eTuition marketplace"""

import enum
import uuid
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import (
    JSON,
    DateTime,
    Index,
    Integer,
    String,
    Text,
    Uuid,
    text,
)
from sqlalchemy import Enum as SQLEnum
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from etuition.db.database import Base


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _enum_column(enum_cls: type[enum.Enum]) -> SQLEnum:
    # Persist the enum values ("Pending", "booked") rather than member names
    return SQLEnum(
        enum_cls,
        values_callable=lambda members: [member.value for member in members],
        validate_strings=True,
    )


class TimestampMixin:
    """Mixin for adding timestamp columns to models"""
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        onupdate=utcnow,
        nullable=False
    )


class UserRole(str, enum.Enum):
    """Marketplace roles"""
    STUDENT = "Student"
    TUTOR = "Tutor"
    ADMIN = "Admin"


class TuitionStatus(str, enum.Enum):
    """Tuition post lifecycle"""
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    BOOKED = "booked"


class ApplicationStatus(str, enum.Enum):
    """Tutor application lifecycle"""
    PENDING = "Pending"
    APPROVED = "Approved"
    REJECTED = "Rejected"


class PaymentStatus(str, enum.Enum):
    PAID = "paid"


class SettlementStage(str, enum.Enum):
    """Progress marker of the settlement sequence, in execution order"""
    RECORDED = "recorded"
    APPLICATION_APPROVED = "application_approved"
    TUITION_BOOKED = "tuition_booked"
    LISTING_MIRRORED = "listing_mirrored"
    COMPETITORS_REJECTED = "competitors_rejected"
    COMPLETED = "completed"

    @property
    def order(self) -> int:
        return list(SettlementStage).index(self)


class User(Base, TimestampMixin):
    """Students, tutors and admins; created on first login"""
    __tablename__ = "users"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        primary_key=True,
        default=uuid.uuid4
    )
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    firebase_uid: Mapped[str | None] = mapped_column(String(128), nullable=True)
    display_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    photo_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    phone: Mapped[str | None] = mapped_column(String(32), nullable=True)
    role: Mapped[UserRole] = mapped_column(
        _enum_column(UserRole),
        default=UserRole.STUDENT,
        nullable=False
    )

    __table_args__ = (
        Index("idx_user_role", "role"),
    )


class TuitionPost(Base, TimestampMixin):
    """A student's tuition request"""
    __tablename__ = "tuition_posts"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        primary_key=True,
        default=uuid.uuid4
    )
    subject: Mapped[str] = mapped_column(String(255), nullable=False)
    class_level: Mapped[str] = mapped_column(String(100), nullable=False)
    location: Mapped[str] = mapped_column(String(255), nullable=False)
    budget: Mapped[int] = mapped_column(Integer, nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)

    student_email: Mapped[str] = mapped_column(String(255), nullable=False)
    student_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, nullable=True)

    status: Mapped[TuitionStatus] = mapped_column(
        _enum_column(TuitionStatus),
        default=TuitionStatus.PENDING,
        nullable=False
    )
    booked_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    transaction_id: Mapped[str | None] = mapped_column(String(255), nullable=True)

    __table_args__ = (
        Index("idx_tuition_student", "student_email"),
        Index("idx_tuition_status", "status"),
        Index("idx_tuition_created", "created_at"),
    )


class Application(Base, TimestampMixin):
    """A tutor's application to a tuition post"""
    __tablename__ = "applications"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        primary_key=True,
        default=uuid.uuid4
    )
    tuition_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)
    tuition_subject: Mapped[str | None] = mapped_column(String(255), nullable=True)
    tuition_location: Mapped[str | None] = mapped_column(String(255), nullable=True)
    recruiter_email: Mapped[str] = mapped_column(String(255), nullable=False)

    tutor_email: Mapped[str] = mapped_column(String(255), nullable=False)
    tutor_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    tutor_image: Mapped[str | None] = mapped_column(Text, nullable=True)
    qualifications: Mapped[str] = mapped_column(Text, default="N/A", nullable=False)
    experience: Mapped[str] = mapped_column(Text, default="N/A", nullable=False)
    expected_salary: Mapped[str] = mapped_column(String(100), default="Negotiable", nullable=False)

    status: Mapped[ApplicationStatus] = mapped_column(
        _enum_column(ApplicationStatus),
        default=ApplicationStatus.PENDING,
        nullable=False
    )
    applied_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        nullable=False
    )
    transaction_id: Mapped[str | None] = mapped_column(String(255), nullable=True)

    __table_args__ = (
        Index("idx_application_tuition", "tuition_id"),
        Index("idx_application_tutor", "tutor_email"),
        # At most one live (non-rejected) application per tutor and tuition
        Index(
            "uq_application_active_pair",
            "tuition_id",
            "tutor_email",
            unique=True,
            postgresql_where=text("status <> 'Rejected'"),
            sqlite_where=text("status <> 'Rejected'"),
        ),
    )


class TutorListing(Base, TimestampMixin):
    """Read-optimized copy of an application for public tutor browsing"""
    __tablename__ = "tutor_listings"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        primary_key=True,
        default=uuid.uuid4
    )
    # Loose reference, not a foreign key
    application_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, nullable=True)
    tuition_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)
    tuition_subject: Mapped[str | None] = mapped_column(String(255), nullable=True)
    tuition_location: Mapped[str | None] = mapped_column(String(255), nullable=True)
    recruiter_email: Mapped[str | None] = mapped_column(String(255), nullable=True)

    tutor_email: Mapped[str] = mapped_column(String(255), nullable=False)
    tutor_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    tutor_image: Mapped[str | None] = mapped_column(Text, nullable=True)
    qualifications: Mapped[str | None] = mapped_column(Text, nullable=True)
    experience: Mapped[str | None] = mapped_column(Text, nullable=True)
    expected_salary: Mapped[str | None] = mapped_column(String(100), nullable=True)

    status: Mapped[ApplicationStatus] = mapped_column(
        _enum_column(ApplicationStatus),
        default=ApplicationStatus.PENDING,
        nullable=False
    )
    applied_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    transaction_id: Mapped[str | None] = mapped_column(String(255), nullable=True)

    __table_args__ = (
        Index("idx_listing_pair", "tuition_id", "tutor_email"),
        Index("idx_listing_tutor_name", "tutor_name"),
    )


class PaymentRecord(Base, TimestampMixin):
    """Append-only ledger of settled checkout payments"""
    __tablename__ = "payments"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        primary_key=True,
        default=uuid.uuid4
    )
    # Idempotency key: the processor's payment intent id
    transaction_id: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    session_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    amount_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False)
    payer_email: Mapped[str] = mapped_column(String(255), nullable=False)
    payee_email: Mapped[str] = mapped_column(String(255), nullable=False)
    application_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)
    tuition_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)
    status: Mapped[PaymentStatus] = mapped_column(
        _enum_column(PaymentStatus),
        default=PaymentStatus.PAID,
        nullable=False
    )
    settlement_stage: Mapped[SettlementStage] = mapped_column(
        _enum_column(SettlementStage),
        default=SettlementStage.RECORDED,
        nullable=False
    )
    paid_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        nullable=False
    )
    extra_metadata: Mapped[dict[str, Any]] = mapped_column(
        JSON().with_variant(JSONB, "postgresql"),
        default=dict,
        nullable=False
    )

    @property
    def is_settled(self) -> bool:
        return self.settlement_stage == SettlementStage.COMPLETED

    __table_args__ = (
        Index("idx_payment_payer", "payer_email"),
        Index("idx_payment_application", "application_id"),
    )
