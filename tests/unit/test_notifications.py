"""Tests for appointment reminders and trial-expiry notices."""

from contextlib import asynccontextmanager
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, patch
from uuid import uuid4
from zoneinfo import ZoneInfo

import pytest

from app.core.conversation.messages import format_when, text
from app.core.notifications.reminders import (
    REMINDER_QUEUE,
    ReminderScheduler,
    ReminderWorker,
    run_reminder,
    send_reminder_job,
)
from app.core.notifications.services import JobServices
from app.core.notifications.trial import (
    SCHEDULER_QUEUE,
    TRIAL_CHECK_KEY,
    TrialExpiryNotifier,
    next_run_at,
    run_trial_check,
    schedule_next,
    trial_check_job,
)
from app.infra.jobs import JobQueue
from app.infra.whatsapp import WhatsAppSendError
from app.models.database import AppointmentStatus, Locale, Patient
from tests.fakes import (
    FakeBookingRepository,
    FakeGateway,
    FakeJobQueue,
    make_doctor,
    make_tenant,
)

NOW = datetime(2025, 6, 8, 6, 0, tzinfo=timezone.utc)
RIYADH = ZoneInfo("Asia/Riyadh")


class TestReminderScheduler:
    """Keyed reminder jobs."""

    @pytest.fixture
    def queue(self):
        queue = AsyncMock(spec=JobQueue)
        queue.enqueue_at = AsyncMock(side_effect=lambda *a, **kw: kw["job_id"])
        return queue

    @pytest.fixture(autouse=True)
    def frozen_now(self):
        with patch("app.core.notifications.reminders._utcnow", return_value=NOW):
            yield

    @pytest.mark.asyncio
    async def test_both_reminders_for_distant_appointment(self, queue):
        appointment_id = uuid4()
        scheduled_at = NOW + timedelta(days=3)

        keys = await ReminderScheduler(queue).schedule(appointment_id, scheduled_at)

        assert keys == [f"{appointment_id}-24h", f"{appointment_id}-2h"]
        first, second = queue.enqueue_at.await_args_list
        assert first.args == (
            REMINDER_QUEUE, NOW + timedelta(days=2), send_reminder_job, str(appointment_id), "24h",
        )
        assert second.args[1] == scheduled_at - timedelta(hours=2)
        assert second.args[4] == "2h"
        assert first.kwargs["job_id"] == f"{appointment_id}-24h"
        assert first.kwargs["retry"].max == 3
        assert first.kwargs["retry"].intervals == [60, 300, 900]

    @pytest.mark.asyncio
    async def test_passed_fire_times_are_skipped(self, queue):
        appointment_id = uuid4()

        keys = await ReminderScheduler(queue).schedule(appointment_id, NOW + timedelta(hours=5))

        assert keys == [f"{appointment_id}-2h"]

    @pytest.mark.asyncio
    async def test_nothing_queued_inside_two_hours(self, queue):
        keys = await ReminderScheduler(queue).schedule(uuid4(), NOW + timedelta(hours=1))

        assert keys == []
        queue.enqueue_at.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_cancel_removes_both_keys(self, queue):
        appointment_id = uuid4()

        await ReminderScheduler(queue).cancel(appointment_id)

        removed = [c.args[0] for c in queue.remove.await_args_list]
        assert removed == [f"{appointment_id}-24h", f"{appointment_id}-2h"]


class TestReminderWorker:
    """Reminder delivery."""

    @pytest.fixture
    def repository(self):
        return FakeBookingRepository()

    @pytest.fixture
    def gateway(self):
        return FakeGateway()

    @pytest.fixture
    def appointment(self, repository):
        tenant = repository.add_tenant(make_tenant())
        doctor = make_doctor(tenant)
        patient = Patient(
            id=uuid4(), tenant_id=tenant.id, phone="966500000001",
            language_preference=Locale.EN,
        )
        repository.patients[(tenant.id, patient.phone)] = patient
        return repository.add_appointment(
            tenant, patient, doctor, datetime(2025, 6, 9, 10, 0, tzinfo=RIYADH)
        )

    @pytest.fixture
    def worker(self, repository, gateway):
        return ReminderWorker(repository, gateway)

    @pytest.mark.asyncio
    async def test_sends_and_marks(self, worker, gateway, appointment):
        body = await worker.handle({"appointment_id": str(appointment.id), "kind": "24h"})

        assert body == text(
            "EN",
            "reminder_24h",
            doctor="Dr. Sara",
            when=format_when(datetime(2025, 6, 9, 10, 0, tzinfo=RIYADH), "EN"),
        )
        phone_number_id, access_token, message = gateway.sent[0]
        assert phone_number_id == appointment.tenant.phone_number_id
        assert access_token == appointment.tenant.access_token
        assert message.to == "966500000001"
        assert appointment.reminder_24h_sent is True
        assert appointment.reminder_2h_sent is False

    @pytest.mark.asyncio
    async def test_cancelled_appointment_is_skipped(self, worker, gateway, appointment):
        appointment.status = AppointmentStatus.CANCELLED

        assert await worker.handle({"appointment_id": str(appointment.id), "kind": "2h"}) is None
        assert gateway.sent == []

    @pytest.mark.asyncio
    async def test_already_sent_is_skipped(self, worker, gateway, appointment):
        appointment.reminder_2h_sent = True

        assert await worker.handle({"appointment_id": str(appointment.id), "kind": "2h"}) is None
        assert gateway.sent == []

    @pytest.mark.asyncio
    async def test_missing_appointment_is_skipped(self, worker, gateway):
        assert await worker.handle({"appointment_id": str(uuid4()), "kind": "24h"}) is None
        assert gateway.sent == []

    @pytest.mark.asyncio
    async def test_bad_payload_is_dropped(self, worker, gateway):
        assert await worker.handle({"appointment_id": "nope", "kind": "24h"}) is None
        assert await worker.handle({"appointment_id": str(uuid4()), "kind": "1h"}) is None
        assert gateway.sent == []

    @pytest.mark.asyncio
    async def test_send_failure_leaves_flag_unset(self, repository, appointment):
        gateway = FakeGateway(fail_for={"966500000001"})
        worker = ReminderWorker(repository, gateway)

        with pytest.raises(WhatsAppSendError):
            await worker.handle({"appointment_id": str(appointment.id), "kind": "24h"})

        assert appointment.reminder_24h_sent is False


class TestTrialExpiry:
    """Daily trial sweep."""

    @pytest.fixture
    def repository(self):
        return FakeBookingRepository()

    @pytest.fixture
    def gateway(self):
        return FakeGateway()

    def test_next_run_at(self):
        assert next_run_at(NOW, hour=9) == datetime(2025, 6, 8, 9, 0, tzinfo=timezone.utc)
        assert next_run_at(NOW, hour=6) == datetime(2025, 6, 9, 6, 0, tzinfo=timezone.utc)
        assert next_run_at(NOW, hour=3) == datetime(2025, 6, 9, 3, 0, tzinfo=timezone.utc)

    @pytest.mark.asyncio
    async def test_notifies_owners_twelve_days_in(self, repository, gateway):
        due = repository.add_tenant(make_tenant(
            name="Due Clinic",
            phone_number_id="111",
            owner_phone="966511111111",
            trial_started_at=NOW - timedelta(days=12, hours=3),
        ))
        repository.add_tenant(make_tenant(
            phone_number_id="222",
            owner_phone="966522222222",
            trial_started_at=NOW - timedelta(days=11),
        ))
        repository.add_tenant(make_tenant(
            phone_number_id="333",
            owner_phone=None,
            trial_started_at=NOW - timedelta(days=12),
        ))
        repository.add_tenant(make_tenant(
            phone_number_id="444",
            owner_phone="966544444444",
            is_active=False,
            trial_started_at=NOW - timedelta(days=12),
        ))

        notified = await TrialExpiryNotifier(repository, gateway).run(NOW)

        assert notified == 1
        phone_number_id, _, message = gateway.sent[0]
        assert phone_number_id == due.phone_number_id
        assert message.to == "966511111111"
        assert message.body == text("EN", "trial_ending", clinic="Due Clinic")

    @pytest.mark.asyncio
    async def test_one_failed_owner_does_not_stop_the_sweep(self, repository):
        for number, owner in (("111", "966511111111"), ("222", "966522222222")):
            repository.add_tenant(make_tenant(
                phone_number_id=number,
                owner_phone=owner,
                trial_started_at=NOW - timedelta(days=12),
            ))
        gateway = FakeGateway(fail_for={"966511111111"})

        notified = await TrialExpiryNotifier(repository, gateway).run(NOW)

        assert notified == 1
        assert [m.to for m in gateway.messages] == ["966522222222"]

    @pytest.mark.asyncio
    async def test_unreachable_gateway_does_not_stop_the_sweep(self, repository):
        for number, owner in (("111", "966511111111"), ("222", "966522222222")):
            repository.add_tenant(make_tenant(
                phone_number_id=number,
                owner_phone=owner,
                trial_started_at=NOW - timedelta(days=12),
            ))
        gateway = FakeGateway(unreachable_for={"966511111111"})

        notified = await TrialExpiryNotifier(repository, gateway).run(NOW)

        assert notified == 1
        assert [m.to for m in gateway.messages] == ["966522222222"]

    @pytest.mark.asyncio
    async def test_schedule_next_is_single_flight(self):
        jobs = FakeJobQueue()

        first = await schedule_next(jobs, NOW)
        second = await schedule_next(jobs, NOW)

        assert first == f"{TRIAL_CHECK_KEY}:20250608"
        assert second is None
        queue_name, run_at, func, args = jobs.jobs[first]
        assert queue_name == SCHEDULER_QUEUE
        assert run_at == datetime(2025, 6, 8, 9, 0, tzinfo=timezone.utc)
        assert func is trial_check_job
        assert args == ()

    @pytest.mark.asyncio
    async def test_each_day_gets_its_own_job(self):
        jobs = FakeJobQueue()

        today = await schedule_next(jobs, NOW)
        tomorrow = await schedule_next(jobs, datetime(2025, 6, 8, 9, 0, tzinfo=timezone.utc))

        assert today == f"{TRIAL_CHECK_KEY}:20250608"
        assert tomorrow == f"{TRIAL_CHECK_KEY}:20250609"
        assert len(jobs.jobs) == 2

    @pytest.mark.asyncio
    async def test_run_trial_check_sweeps_and_rearms(self, repository, gateway):
        jobs = FakeJobQueue()
        services = JobServices(repository=repository, gateway=gateway, jobs=jobs)
        repository.add_tenant(make_tenant(
            owner_phone="966511111111",
            trial_started_at=NOW - timedelta(days=12),
        ))

        notified = await run_trial_check(services, NOW)

        assert notified == 1
        assert f"{TRIAL_CHECK_KEY}:20250608" in jobs.jobs

    @pytest.mark.asyncio
    async def test_rearms_even_when_sweep_fails(self, repository, gateway):
        jobs = FakeJobQueue()
        services = JobServices(repository=repository, gateway=gateway, jobs=jobs)

        with patch.object(
            TrialExpiryNotifier, "run", AsyncMock(side_effect=RuntimeError("db down"))
        ):
            with pytest.raises(RuntimeError):
                await run_trial_check(services, NOW)

        assert f"{TRIAL_CHECK_KEY}:20250608" in jobs.jobs


class TestReminderJob:
    """RQ entry point for reminders."""

    @pytest.fixture
    def services(self):
        return JobServices(
            repository=FakeBookingRepository(),
            gateway=FakeGateway(),
            jobs=FakeJobQueue(),
        )

    @pytest.fixture
    def appointment(self, services):
        tenant = services.repository.add_tenant(make_tenant())
        patient = Patient(
            id=uuid4(), tenant_id=tenant.id, phone="966500000001",
            language_preference=Locale.EN,
        )
        services.repository.patients[(tenant.id, patient.phone)] = patient
        return services.repository.add_appointment(
            tenant, patient, make_doctor(tenant), datetime(2025, 6, 9, 10, 0, tzinfo=RIYADH)
        )

    @pytest.mark.asyncio
    async def test_run_reminder(self, services, appointment):
        body = await run_reminder(services, str(appointment.id), "2h")

        assert body is not None
        assert services.gateway.last.to == "966500000001"
        assert appointment.reminder_2h_sent is True

    def test_job_builds_and_closes_its_own_services(self, services, appointment):
        @asynccontextmanager
        async def fake_job_services():
            yield services

        with patch("app.core.notifications.reminders.job_services", fake_job_services):
            body = send_reminder_job(str(appointment.id), "24h")

        assert body == services.gateway.last.body
        assert appointment.reminder_24h_sent is True

    def test_job_failure_propagates_for_retry(self, services, appointment):
        services.gateway.fail_for.add("966500000001")

        @asynccontextmanager
        async def fake_job_services():
            yield services

        with patch("app.core.notifications.reminders.job_services", fake_job_services):
            with pytest.raises(WhatsAppSendError):
                send_reminder_job(str(appointment.id), "24h")
