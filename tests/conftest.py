"""Pytest configuration and fixtures for Reminder Core tests."""

import os
from datetime import datetime, timedelta

import pytest
import pytz

# Set test environment
os.environ["APP_ENV"] = "test"
os.environ["DEBUG"] = "false"
os.environ["TZ"] = "UTC"
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["CHANNEL_TIMEOUT_SECONDS"] = "1.0"
os.environ["HISTORY_SIZE"] = "50"

from reminder_core.channels.memory import InMemoryDeliveryChannel  # noqa: E402
from reminder_core.domain.entities import (  # noqa: E402
    Daily,
    EntityKind,
    NoRecurrence,
    ReminderConfig,
    ReminderEntity,
    ReminderSetting,
    StandardOffset,
)
from reminder_core.services.integration import build_reminder_core  # noqa: E402


class FakeClock:
    """Reloj controlable para los tests."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def set(self, now: datetime) -> None:
        self.now = now

    def advance(self, delta: timedelta) -> None:
        self.now = self.now + delta


def utc(*args) -> datetime:
    """Shortcut for an aware UTC datetime."""
    return pytz.utc.localize(datetime(*args))


@pytest.fixture
def clock():
    """Clock fixed at 2024-06-01T09:00:00Z."""
    return FakeClock(utc(2024, 6, 1, 9, 0))


@pytest.fixture
def channel():
    """In-memory delivery channel."""
    return InMemoryDeliveryChannel()


@pytest.fixture
def core(channel, clock):
    """Fully wired reminder core over the in-memory channel."""
    return build_reminder_core(channel, clock=clock, tz="UTC", timeout=1.0)


@pytest.fixture
def registry(core):
    return core.registry


@pytest.fixture
def task_config():
    """Task due 2024-06-01T10:00Z with a 30 minute reminder."""
    return ReminderConfig(
        entity_kind=EntityKind.TASK,
        entity_id=1,
        anchor_instant=utc(2024, 6, 1, 10, 0),
        offset=StandardOffset.MINUTES_30,
        recurrence=NoRecurrence(),
        title="Submit report",
        description="Quarterly numbers",
    )


@pytest.fixture
def habit_config():
    """Daily habit at 08:00 with a 15 minute reminder."""
    return ReminderConfig(
        entity_kind=EntityKind.HABIT,
        entity_id="habit-1",
        anchor_instant=utc(2024, 6, 1, 8, 0),
        offset=StandardOffset.MINUTES_15,
        recurrence=Daily(),
        title="Drink water",
    )


@pytest.fixture
def sample_task():
    """Task entity with 5 minute and 1 hour reminders."""
    return ReminderEntity(
        kind=EntityKind.TASK,
        entity_id=42,
        title="Call the dentist",
        description="Reschedule cleaning",
        anchor_instant=utc(2024, 6, 1, 12, 0),
        reminders=[
            ReminderSetting(StandardOffset.MINUTES_5),
            ReminderSetting(StandardOffset.HOUR_1),
        ],
    )


@pytest.fixture
def sample_habit():
    """Daily habit entity at 08:00 with a 15 minute reminder."""
    return ReminderEntity(
        kind=EntityKind.HABIT,
        entity_id="habit-7",
        title="Stretch",
        anchor_instant=utc(2024, 6, 1, 8, 0),
        recurrence=Daily(),
        reminders=[ReminderSetting(StandardOffset.MINUTES_15)],
    )
