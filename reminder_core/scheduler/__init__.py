"""Scheduler de recordatorios y jobs periódicos."""

from reminder_core.scheduler.reminder_scheduler import ReminderScheduler

__all__ = ["ReminderScheduler"]
