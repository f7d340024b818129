"""Repositories de base de datos."""

from reminder_core.db.repositories.reminders import ReminderSnapshotRepository

__all__ = ["ReminderSnapshotRepository"]
