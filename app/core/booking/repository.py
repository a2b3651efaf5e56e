"""
Booking Repository

Every query the conversation engine, availability calculator, reminder
worker and trial notifier run against the relational store. Each method
opens its own unit of work, so callers never handle sessions. Returned
ORM objects are detached with the relationships the callers read already
loaded.
"""

import logging
from datetime import datetime
from typing import Optional
from uuid import UUID

from sqlalchemy import and_, func, select, update
from sqlalchemy.orm import selectinload

from app.infra.database import Database
from app.models.database import (
    Appointment,
    AppointmentStatus,
    Doctor,
    Locale,
    Patient,
    Schedule,
    ScheduleException,
    Service,
    Tenant,
    doctor_services,
)

logger = logging.getLogger(__name__)

REMINDER_FLAGS = {
    "24h": "reminder_24h_sent",
    "2h": "reminder_2h_sent",
}


class BookingRepository:
    """Async data access for tenants, catalog, schedules and appointments."""

    def __init__(self, database: Database):
        self.db = database

    # ------------------------------------------------------------------
    # Tenants and patients
    # ------------------------------------------------------------------

    async def get_tenant_by_phone_number_id(self, phone_number_id: str) -> Optional[Tenant]:
        async with self.db.session() as session:
            result = await session.execute(
                select(Tenant).where(Tenant.phone_number_id == phone_number_id)
            )
            return result.scalar_one_or_none()

    async def upsert_patient(self, tenant: Tenant, phone: str, now: datetime) -> Patient:
        """
        Fetch or create the patient for (tenant, phone) and stamp the
        interaction time. New patients inherit the tenant's locale.
        """
        async with self.db.session() as session:
            result = await session.execute(
                select(Patient).where(
                    Patient.tenant_id == tenant.id,
                    Patient.phone == phone,
                )
            )
            patient = result.scalar_one_or_none()

            if patient is None:
                patient = Patient(
                    tenant_id=tenant.id,
                    phone=phone,
                    language_preference=tenant.locale or Locale.AR,
                )
                session.add(patient)
                logger.info(f"New patient for tenant {tenant.id}")

            patient.last_interaction_at = now
            await session.flush()
            return patient

    async def trial_tenants(self, start: datetime, end: datetime) -> list[Tenant]:
        """Active tenants with an owner phone whose trial started in [start, end)."""
        async with self.db.session() as session:
            result = await session.execute(
                select(Tenant).where(
                    Tenant.is_active.is_(True),
                    Tenant.owner_phone.is_not(None),
                    Tenant.trial_started_at >= start,
                    Tenant.trial_started_at < end,
                )
            )
            return list(result.scalars().all())

    # ------------------------------------------------------------------
    # Catalog
    # ------------------------------------------------------------------

    async def active_services(self, tenant_id: UUID) -> list[Service]:
        async with self.db.session() as session:
            result = await session.execute(
                select(Service)
                .where(Service.tenant_id == tenant_id, Service.is_active.is_(True))
                .order_by(Service.name_ar)
            )
            return list(result.scalars().all())

    async def get_service(self, tenant_id: UUID, service_id: UUID) -> Optional[Service]:
        async with self.db.session() as session:
            result = await session.execute(
                select(Service).where(
                    Service.id == service_id,
                    Service.tenant_id == tenant_id,
                )
            )
            return result.scalar_one_or_none()

    async def doctors_for_service(self, tenant_id: UUID, service_id: UUID) -> list[Doctor]:
        """Active doctors of this tenant linked to the service."""
        async with self.db.session() as session:
            result = await session.execute(
                select(Doctor)
                .join(doctor_services, doctor_services.c.doctor_id == Doctor.id)
                .where(
                    doctor_services.c.service_id == service_id,
                    Doctor.tenant_id == tenant_id,
                    Doctor.is_active.is_(True),
                )
                .order_by(Doctor.name_ar)
            )
            return list(result.scalars().all())

    async def get_doctor(self, tenant_id: UUID, doctor_id: UUID) -> Optional[Doctor]:
        async with self.db.session() as session:
            result = await session.execute(
                select(Doctor).where(
                    Doctor.id == doctor_id,
                    Doctor.tenant_id == tenant_id,
                )
            )
            return result.scalar_one_or_none()

    # ------------------------------------------------------------------
    # Availability inputs
    # ------------------------------------------------------------------

    async def get_schedule(self, doctor_id: UUID, day_of_week: int) -> Optional[Schedule]:
        async with self.db.session() as session:
            result = await session.execute(
                select(Schedule).where(
                    Schedule.doctor_id == doctor_id,
                    Schedule.day_of_week == day_of_week,
                )
            )
            return result.scalar_one_or_none()

    async def get_exception(self, doctor_id: UUID, day) -> Optional[ScheduleException]:
        async with self.db.session() as session:
            result = await session.execute(
                select(ScheduleException).where(
                    ScheduleException.doctor_id == doctor_id,
                    ScheduleException.date == day,
                )
            )
            return result.scalar_one_or_none()

    async def booked_times(
        self,
        doctor_id: UUID,
        start: datetime,
        end: datetime,
    ) -> list[datetime]:
        """Start times of PENDING/CONFIRMED appointments in [start, end)."""
        async with self.db.session() as session:
            result = await session.execute(
                select(Appointment.scheduled_at).where(
                    Appointment.doctor_id == doctor_id,
                    Appointment.scheduled_at >= start,
                    Appointment.scheduled_at < end,
                    Appointment.status.in_(
                        [AppointmentStatus.PENDING, AppointmentStatus.CONFIRMED]
                    ),
                )
            )
            return list(result.scalars().all())

    # ------------------------------------------------------------------
    # Appointments
    # ------------------------------------------------------------------

    async def count_appointments_since(self, tenant_id: UUID, since: datetime) -> int:
        """Non-cancelled appointments created at or after `since`."""
        async with self.db.session() as session:
            result = await session.execute(
                select(func.count(Appointment.id)).where(
                    Appointment.tenant_id == tenant_id,
                    Appointment.created_at >= since,
                    Appointment.status != AppointmentStatus.CANCELLED,
                )
            )
            return int(result.scalar_one())

    async def create_appointment(
        self,
        tenant_id: UUID,
        patient_id: UUID,
        doctor_id: UUID,
        service_id: Optional[UUID],
        scheduled_at: datetime,
    ) -> Appointment:
        async with self.db.session() as session:
            appointment = Appointment(
                tenant_id=tenant_id,
                patient_id=patient_id,
                doctor_id=doctor_id,
                service_id=service_id,
                scheduled_at=scheduled_at,
                status=AppointmentStatus.CONFIRMED,
            )
            session.add(appointment)
            await session.flush()
            logger.info(f"Appointment {appointment.id} confirmed for {scheduled_at.isoformat()}")
            return appointment

    async def reschedule_appointment(
        self,
        tenant_id: UUID,
        patient_id: UUID,
        appointment_id: UUID,
        scheduled_at: datetime,
    ) -> Optional[Appointment]:
        """
        Move a CONFIRMED appointment and clear its reminder flags.

        Returns:
            The updated appointment, or None if it is gone or no longer confirmed
        """
        async with self.db.session() as session:
            result = await session.execute(
                select(Appointment).where(
                    Appointment.id == appointment_id,
                    Appointment.tenant_id == tenant_id,
                    Appointment.patient_id == patient_id,
                    Appointment.status == AppointmentStatus.CONFIRMED,
                )
            )
            appointment = result.scalar_one_or_none()
            if appointment is None:
                return None

            appointment.scheduled_at = scheduled_at
            appointment.reminder_24h_sent = False
            appointment.reminder_2h_sent = False
            await session.flush()
            logger.info(f"Appointment {appointment.id} moved to {scheduled_at.isoformat()}")
            return appointment

    async def cancel_appointment(self, appointment_id: UUID) -> bool:
        """CONFIRMED -> CANCELLED. Returns False if it was not confirmed."""
        async with self.db.session() as session:
            result = await session.execute(
                update(Appointment)
                .where(
                    Appointment.id == appointment_id,
                    Appointment.status == AppointmentStatus.CONFIRMED,
                )
                .values(status=AppointmentStatus.CANCELLED)
            )
            return result.rowcount == 1

    async def find_patient_appointment(
        self,
        tenant_id: UUID,
        patient_id: UUID,
        appointment_id: UUID,
    ) -> Optional[Appointment]:
        """A CONFIRMED appointment owned by this patient, with doctor loaded."""
        async with self.db.session() as session:
            result = await session.execute(
                select(Appointment)
                .options(selectinload(Appointment.doctor))
                .where(
                    Appointment.id == appointment_id,
                    Appointment.tenant_id == tenant_id,
                    Appointment.patient_id == patient_id,
                    Appointment.status == AppointmentStatus.CONFIRMED,
                )
            )
            return result.scalar_one_or_none()

    async def upcoming_appointments(
        self,
        tenant_id: UUID,
        patient_id: UUID,
        now: datetime,
        limit: int = 5,
    ) -> list[Appointment]:
        """Soonest future CONFIRMED appointments, ascending."""
        async with self.db.session() as session:
            result = await session.execute(
                select(Appointment)
                .options(
                    selectinload(Appointment.doctor),
                    selectinload(Appointment.service),
                )
                .where(
                    and_(
                        Appointment.tenant_id == tenant_id,
                        Appointment.patient_id == patient_id,
                        Appointment.status == AppointmentStatus.CONFIRMED,
                        Appointment.scheduled_at > now,
                    )
                )
                .order_by(Appointment.scheduled_at.asc())
                .limit(limit)
            )
            return list(result.scalars().all())

    async def get_appointment_for_reminder(self, appointment_id: UUID) -> Optional[Appointment]:
        """Appointment with tenant, patient and doctor loaded."""
        async with self.db.session() as session:
            result = await session.execute(
                select(Appointment)
                .options(
                    selectinload(Appointment.tenant),
                    selectinload(Appointment.patient),
                    selectinload(Appointment.doctor),
                )
                .where(Appointment.id == appointment_id)
            )
            return result.scalar_one_or_none()

    async def mark_reminder_sent(self, appointment_id: UUID, kind: str) -> None:
        column = REMINDER_FLAGS[kind]
        async with self.db.session() as session:
            await session.execute(
                update(Appointment)
                .where(Appointment.id == appointment_id)
                .values({column: True})
            )
