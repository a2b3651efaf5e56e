"""Reminder and trial-expiry notifications, run as RQ jobs."""

from .reminders import REMINDER_QUEUE, ReminderScheduler, ReminderWorker, send_reminder_job
from .trial import SCHEDULER_QUEUE, TrialExpiryNotifier, schedule_next, trial_check_job

__all__ = [
    "REMINDER_QUEUE",
    "ReminderScheduler",
    "ReminderWorker",
    "send_reminder_job",
    "SCHEDULER_QUEUE",
    "TrialExpiryNotifier",
    "schedule_next",
    "trial_check_job",
]
