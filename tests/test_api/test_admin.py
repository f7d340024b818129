"""Tests for the health and admin endpoints."""

from datetime import datetime, timedelta

import pytz
from fastapi.testclient import TestClient

from reminder_core.domain.entities import (
    EntityKind,
    ReminderEntity,
    ReminderSetting,
    StandardOffset,
)
from reminder_core.main import app


def upcoming_task(entity_id=7):
    return ReminderEntity(
        kind=EntityKind.TASK,
        entity_id=entity_id,
        title="Pay rent",
        anchor_instant=datetime.now(pytz.utc) + timedelta(hours=3),
        reminders=[
            ReminderSetting(StandardOffset.MINUTES_30),
            ReminderSetting(StandardOffset.HOUR_1),
        ],
    )


class TestHealth:
    """Test suite for health endpoints."""

    def test_health(self):
        with TestClient(app) as client:
            response = client.get("/health")

        assert response.status_code == 200
        assert response.json() == {"status": "healthy", "service": "reminder-core"}

    def test_health_detailed(self):
        with TestClient(app) as client:
            data = client.get("/health/detailed").json()

        assert data["status"] == "healthy"
        assert data["environment"] == "test"
        assert data["checks"]["registry"]["pending"] == 0
        assert data["checks"]["scheduler"]["running"] is True
        assert data["checks"]["scheduler"]["next_reconciliation"] is not None


class TestAdmin:
    """Test suite for admin endpoints."""

    def test_core_unavailable_outside_lifespan(self):
        client = TestClient(app)

        response = client.get("/admin/reminders")

        assert response.status_code == 503

    def test_list_pending_reminders(self):
        with TestClient(app) as client:
            core = app.state.reminder_core
            summary = client.portal.call(core.on_entity_created_or_updated, upcoming_task())
            assert summary.all_succeeded

            data = client.get("/admin/reminders").json()

        assert [r["offset"] for r in data] == ["1 hour before", "30 minutes before"]
        assert all(r["state"] == "pending" for r in data)
        assert data[0]["title"] == "📋 Task Reminder"
        assert data[0]["entity_id"] == 7

    def test_history_newest_first(self):
        with TestClient(app) as client:
            core = app.state.reminder_core
            client.portal.call(core.on_entity_created_or_updated, upcoming_task(1))
            client.portal.call(core.on_entity_created_or_updated, upcoming_task(2))
            client.portal.call(core.on_entity_deleted, EntityKind.TASK, 1)
            client.portal.call(core.on_entity_deleted, EntityKind.TASK, 2)

            data = client.get("/admin/reminders/history", params={"limit": 3}).json()

        assert len(data) == 3
        assert all(r["state"] == "cancelled" for r in data)
        assert data[0]["entity_id"] == 2

    def test_force_reconcile(self):
        with TestClient(app) as client:
            core = app.state.reminder_core
            client.portal.call(core.on_entity_created_or_updated, upcoming_task())
            lost = core.registry.pending()[0].handle
            client.portal.call(core.scheduler._channel.cancel, lost)

            response = client.post("/admin/reconcile")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "ok"
        assert data["live"] == 1
        assert data["expired"] == [lost]
        assert len(data["rescheduled"]) == 1

    def test_reminder_options(self):
        with TestClient(app) as client:
            response = client.get("/admin/options/task")

        options = response.json()
        assert [o["value"] for o in options] == [
            "MINUTES_5",
            "MINUTES_15",
            "MINUTES_30",
            "HOUR_1",
            "DAY_1",
            "custom",
            None,
        ]
        assert [o["label"] for o in options if o["default"]] == ["30 minutes before"]

    def test_unknown_kind(self):
        with TestClient(app) as client:
            response = client.get("/admin/options/project")

        assert response.status_code == 422
