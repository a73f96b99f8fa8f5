"""Stale-task reminders: scan, aggregate, schedule.

Key Components:
    - StalenessScanner: incomplete tasks older than a threshold, oldest first
    - ReminderAggregator: per-owner reminders plus one admin summary
    - ReminderScheduler: cron-driven sweeps, manual trigger, status, stop
"""

from reminders.aggregator import (
    ReminderAggregator,
    ReminderBatch,
    UserReminder,
    format_task_age,
    group_by_owner,
)
from reminders.scanner import StalenessScanner
from reminders.scheduler import (
    ReminderJob,
    ReminderScheduler,
    SweepResult,
    SweepStatus,
)

__all__ = [
    "ReminderAggregator",
    "ReminderBatch",
    "ReminderJob",
    "ReminderScheduler",
    "StalenessScanner",
    "SweepResult",
    "SweepStatus",
    "UserReminder",
    "format_task_age",
    "group_by_owner",
]
