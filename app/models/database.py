"""
Database Models

SQLAlchemy ORM models for the multi-tenant WhatsApp clinic booking bot.
"""

import uuid
from datetime import date as date_type, datetime
from enum import Enum
from typing import Optional, List

from sqlalchemy import (
    Boolean, Column, Date, DateTime, ForeignKey, Index, Integer, Numeric,
    String, Table, Text, UniqueConstraint, Uuid, Enum as SQLEnum, text
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


class Base(DeclarativeBase):
    """Base class for all database models."""
    pass


class TimestampMixin:
    """Mixin that adds created_at and updated_at timestamp columns."""

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=text("CURRENT_TIMESTAMP"),
        nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=text("CURRENT_TIMESTAMP"),
        nullable=False
    )


class Locale(str, Enum):
    """Bot UI language."""
    AR = "AR"
    EN = "EN"


class SubscriptionTier(str, Enum):
    """Subscription tier (bounds monthly booking count)."""
    STARTER = "STARTER"
    GROWTH = "GROWTH"
    CLINIC = "CLINIC"


class AppointmentStatus(str, Enum):
    """Appointment status enumeration."""
    PENDING = "PENDING"
    CONFIRMED = "CONFIRMED"
    CANCELLED = "CANCELLED"
    NO_SHOW = "NO_SHOW"
    COMPLETED = "COMPLETED"


# Monthly non-cancelled appointment limit per tier. None means unlimited.
TIER_LIMITS: dict[SubscriptionTier, Optional[int]] = {
    SubscriptionTier.STARTER: 100,
    SubscriptionTier.GROWTH: 300,
    SubscriptionTier.CLINIC: None,
}
DEFAULT_TIER_LIMIT = 100


def monthly_limit(tier: Optional[str]) -> Optional[int]:
    """Return the monthly booking limit for a tier (None = unlimited)."""
    try:
        return TIER_LIMITS[SubscriptionTier(tier)]
    except ValueError:
        return DEFAULT_TIER_LIMIT


doctor_services = Table(
    "doctor_services",
    Base.metadata,
    Column(
        "doctor_id",
        Uuid(as_uuid=True),
        ForeignKey("doctors.id", ondelete="CASCADE"),
        primary_key=True,
    ),
    Column(
        "service_id",
        Uuid(as_uuid=True),
        ForeignKey("services.id", ondelete="CASCADE"),
        primary_key=True,
    ),
)


class Tenant(Base, TimestampMixin):
    """
    Tenant model (clinic account).

    Every other row hangs off a tenant. The WhatsApp phone-number id is how
    inbound webhook events are routed to a tenant.
    """

    __tablename__ = "tenants"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    phone_number_id: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    access_token: Mapped[str] = mapped_column(Text, nullable=False)
    locale: Mapped[Locale] = mapped_column(SQLEnum(Locale), default=Locale.AR)
    timezone: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    subscription_tier: Mapped[SubscriptionTier] = mapped_column(
        SQLEnum(SubscriptionTier),
        default=SubscriptionTier.STARTER
    )
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    trial_started_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True
    )
    owner_phone: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)

    doctors: Mapped[List["Doctor"]] = relationship("Doctor", back_populates="tenant")
    services: Mapped[List["Service"]] = relationship("Service", back_populates="tenant")

    def __repr__(self) -> str:
        return f"<Tenant(id={self.id}, name='{self.name}', tier={self.subscription_tier})>"


class Doctor(Base, TimestampMixin):
    """Doctor model. Belongs to exactly one tenant."""

    __tablename__ = "doctors"
    __table_args__ = (
        Index("idx_doctor_tenant", "tenant_id"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4
    )
    tenant_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("tenants.id", ondelete="CASCADE"),
        nullable=False
    )
    name_ar: Mapped[str] = mapped_column(String(150), nullable=False)
    name_en: Mapped[Optional[str]] = mapped_column(String(150), nullable=True)
    specialty: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    tenant: Mapped["Tenant"] = relationship("Tenant", back_populates="doctors")
    schedules: Mapped[List["Schedule"]] = relationship("Schedule", back_populates="doctor")
    services: Mapped[List["Service"]] = relationship(
        "Service",
        secondary=doctor_services,
        back_populates="doctors",
    )

    def display_name(self, locale: str) -> str:
        """Localized name, falling back to Arabic."""
        if locale == Locale.EN.value and self.name_en:
            return self.name_en
        return self.name_ar

    def __repr__(self) -> str:
        return f"<Doctor(id={self.id}, name='{self.name_ar}', specialty='{self.specialty}')>"


class Service(Base, TimestampMixin):
    """Bookable service offered by a tenant."""

    __tablename__ = "services"
    __table_args__ = (
        Index("idx_service_tenant", "tenant_id"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4
    )
    tenant_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("tenants.id", ondelete="CASCADE"),
        nullable=False
    )
    name_ar: Mapped[str] = mapped_column(String(150), nullable=False)
    name_en: Mapped[Optional[str]] = mapped_column(String(150), nullable=True)
    duration_minutes: Mapped[int] = mapped_column(Integer, default=30)
    price: Mapped[Optional[float]] = mapped_column(Numeric(10, 2), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    tenant: Mapped["Tenant"] = relationship("Tenant", back_populates="services")
    doctors: Mapped[List["Doctor"]] = relationship(
        "Doctor",
        secondary=doctor_services,
        back_populates="services",
    )

    def display_name(self, locale: str) -> str:
        """Localized name, falling back to Arabic."""
        if locale == Locale.EN.value and self.name_en:
            return self.name_en
        return self.name_ar


class Schedule(Base):
    """
    Weekly recurring hours for a doctor.

    One row per (doctor, day_of_week); 0 = Sunday. Times are "HH:MM".
    """

    __tablename__ = "schedules"
    __table_args__ = (
        UniqueConstraint("doctor_id", "day_of_week", name="uq_schedule_doctor_day"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4
    )
    doctor_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("doctors.id", ondelete="CASCADE"),
        nullable=False
    )
    day_of_week: Mapped[int] = mapped_column(Integer, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    start_time: Mapped[str] = mapped_column(String(5), nullable=False)
    end_time: Mapped[str] = mapped_column(String(5), nullable=False)
    break_start: Mapped[Optional[str]] = mapped_column(String(5), nullable=True)
    break_end: Mapped[Optional[str]] = mapped_column(String(5), nullable=True)

    doctor: Mapped["Doctor"] = relationship("Doctor", back_populates="schedules")


class ScheduleException(Base):
    """Date-specific override: closed all day, or custom hours (no break)."""

    __tablename__ = "schedule_exceptions"
    __table_args__ = (
        UniqueConstraint("doctor_id", "date", name="uq_exception_doctor_date"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4
    )
    doctor_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("doctors.id", ondelete="CASCADE"),
        nullable=False
    )
    date: Mapped[date_type] = mapped_column(Date, nullable=False)
    is_closed: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    custom_start: Mapped[Optional[str]] = mapped_column(String(5), nullable=True)
    custom_end: Mapped[Optional[str]] = mapped_column(String(5), nullable=True)
    reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    @property
    def has_custom_hours(self) -> bool:
        return bool(self.custom_start and self.custom_end)


class Patient(Base, TimestampMixin):
    """
    Patient model.

    Identified by (tenant, phone); created on the first inbound message.
    """

    __tablename__ = "patients"
    __table_args__ = (
        UniqueConstraint("tenant_id", "phone", name="uq_patient_tenant_phone"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4
    )
    tenant_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("tenants.id", ondelete="CASCADE"),
        nullable=False
    )
    phone: Mapped[str] = mapped_column(String(50), nullable=False)
    name_ar: Mapped[Optional[str]] = mapped_column(String(150), nullable=True)
    name_en: Mapped[Optional[str]] = mapped_column(String(150), nullable=True)
    language_preference: Mapped[Locale] = mapped_column(SQLEnum(Locale), default=Locale.AR)
    last_interaction_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True
    )

    appointments: Mapped[List["Appointment"]] = relationship(
        "Appointment",
        back_populates="patient"
    )

    @property
    def display_name(self) -> str:
        return self.name_ar or self.name_en or ""

    def __repr__(self) -> str:
        return f"<Patient(id={self.id}, phone='{self.phone}')>"


class Appointment(Base, TimestampMixin):
    """
    Appointment model.

    CONFIRMED is the only status from which cancellation, reminders and
    completion proceed.
    """

    __tablename__ = "appointments"
    __table_args__ = (
        Index("idx_appointment_tenant_created", "tenant_id", "created_at"),
        Index("idx_appointment_doctor_time", "doctor_id", "scheduled_at"),
        Index("idx_appointment_patient", "patient_id"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4
    )
    tenant_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("tenants.id", ondelete="CASCADE"),
        nullable=False
    )
    patient_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("patients.id", ondelete="CASCADE"),
        nullable=False
    )
    doctor_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("doctors.id", ondelete="CASCADE"),
        nullable=False
    )
    service_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("services.id", ondelete="SET NULL"),
        nullable=True
    )
    scheduled_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    status: Mapped[AppointmentStatus] = mapped_column(
        SQLEnum(AppointmentStatus),
        default=AppointmentStatus.PENDING
    )
    reminder_24h_sent: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    reminder_2h_sent: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    tenant: Mapped["Tenant"] = relationship("Tenant")
    patient: Mapped["Patient"] = relationship("Patient", back_populates="appointments")
    doctor: Mapped["Doctor"] = relationship("Doctor")
    service: Mapped[Optional["Service"]] = relationship("Service")

    @property
    def reference(self) -> str:
        """Short human-readable reference shown to the patient."""
        return self.id.hex[-6:].upper()

    def __repr__(self) -> str:
        return (
            f"<Appointment(id={self.id}, patient_id={self.patient_id}, "
            f"doctor_id={self.doctor_id}, at={self.scheduled_at}, "
            f"status={self.status})>"
        )
