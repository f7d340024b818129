"""Tests for ReminderRegistry."""

from dataclasses import replace
from datetime import timedelta
from unittest.mock import AsyncMock, MagicMock

import pytest

from reminder_core.channels.memory import InMemoryDeliveryChannel
from reminder_core.domain.entities import EntityKind, ReminderState, StandardOffset
from reminder_core.domain.services.registry import ReminderRegistry
from reminder_core.services.integration import build_reminder_core
from reminder_core.utils.errors import DeliveryRejected, NoValidOccurrence
from tests.conftest import utc


class TestUpsert:
    """Test suite for upsert."""

    @pytest.mark.asyncio
    async def test_upsert_returns_pending_record(self, registry, channel, task_config):
        """A valid config produces a PENDING record held by the channel."""
        record = await registry.upsert(task_config)

        assert record.state == ReminderState.PENDING
        assert record.fire_instant == utc(2024, 6, 1, 9, 30)
        assert record.handle in await channel.list_pending()
        assert record.content.title == "📋 Task Reminder"

    @pytest.mark.asyncio
    async def test_at_most_one_pending_per_key(self, registry, channel, task_config):
        """Repeated upserts leave exactly one PENDING reflecting the last config."""
        config = task_config
        for minutes in range(5):
            config = replace(task_config, anchor_instant=utc(2024, 6, 1, 11, minutes))
            await registry.upsert(config)

        pending = registry.pending_for(EntityKind.TASK, 1)
        assert len(pending) == 1
        assert pending[0].source_config == config
        assert pending[0].fire_instant == utc(2024, 6, 1, 10, 34)
        assert len(channel.queue) == 1

        cancelled = [r for r in registry.history() if r.state == ReminderState.CANCELLED]
        assert len(cancelled) == 4

    @pytest.mark.asyncio
    async def test_new_reminder_is_scheduled_before_old_is_cancelled(self, task_config, clock):
        """Create-then-delete-old ordering."""
        calls = []

        async def schedule(fire_instant, content):
            calls.append("schedule")
            return f"h{len(calls)}"

        async def cancel(handle):
            calls.append(f"cancel:{handle}")

        scheduler = MagicMock()
        scheduler.schedule = AsyncMock(side_effect=schedule)
        scheduler.cancel = AsyncMock(side_effect=cancel)
        registry = ReminderRegistry(scheduler, clock=clock, tz="UTC")

        await registry.upsert(task_config)
        await registry.upsert(replace(task_config, anchor_instant=utc(2024, 6, 1, 11, 0)))

        assert calls == ["schedule", "schedule", "cancel:h1"]

    @pytest.mark.asyncio
    async def test_past_config_cancels_stale_pending(self, registry, channel, task_config):
        """An edit that moves the reminder into the past drops the old one."""
        record = await registry.upsert(task_config)

        with pytest.raises(NoValidOccurrence):
            await registry.upsert(replace(task_config, anchor_instant=utc(2024, 6, 1, 9, 10)))

        assert registry.pending() == []
        assert record.state == ReminderState.CANCELLED
        assert await channel.list_pending() == set()

    @pytest.mark.asyncio
    async def test_disabled_config_produces_no_reminder(self, registry, channel, task_config):
        await registry.upsert(task_config)

        with pytest.raises(NoValidOccurrence):
            await registry.upsert(replace(task_config, enabled=False))

        assert registry.pending() == []
        assert channel.queue == {}

    @pytest.mark.asyncio
    async def test_rejection_records_nothing(self, registry, channel, task_config):
        """A rejected schedule leaves no PENDING and flags a retry."""
        channel.permission_granted = False

        with pytest.raises(DeliveryRejected):
            await registry.upsert(task_config)

        assert registry.pending() == []
        assert registry.flagged() == [task_config]

    @pytest.mark.asyncio
    async def test_rejected_update_keeps_previous_reminder(self, registry, channel, task_config):
        """Over-notification beats silent loss: the old reminder stays live."""
        record = await registry.upsert(task_config)
        channel.permission_granted = False

        with pytest.raises(DeliveryRejected):
            await registry.upsert(replace(task_config, anchor_instant=utc(2024, 6, 1, 11, 0)))

        assert registry.pending() == [record]
        assert record.handle in channel.queue

    @pytest.mark.asyncio
    async def test_reused_handle_is_rejected(self, task_config, clock):
        """The registry refuses a handle it has already seen."""
        scheduler = MagicMock()
        scheduler.schedule = AsyncMock(return_value="same-handle")
        scheduler.cancel = AsyncMock()
        registry = ReminderRegistry(scheduler, clock=clock, tz="UTC")

        await registry.upsert(task_config)
        with pytest.raises(DeliveryRejected):
            await registry.upsert(replace(task_config, entity_id=2))

        assert len(registry.pending()) == 1


class TestCancellation:
    """Test suite for cancel_all."""

    @pytest.mark.asyncio
    async def test_cancel_all_clears_channel(self, registry, channel, task_config):
        """No handle of the entity remains in the channel queue."""
        await registry.upsert(task_config)
        await registry.upsert(replace(task_config, offset=StandardOffset.MINUTES_5))
        other = await registry.upsert(replace(task_config, entity_id=2))

        cancelled = await registry.cancel_all(EntityKind.TASK, 1)

        assert len(cancelled) == 2
        assert all(r.state == ReminderState.CANCELLED for r in cancelled)
        assert await channel.list_pending() == {other.handle}
        assert registry.pending_for(EntityKind.TASK, 1) == []

    @pytest.mark.asyncio
    async def test_cancel_all_unknown_entity(self, registry):
        assert await registry.cancel_all(EntityKind.EVENT, "missing") == []

    @pytest.mark.asyncio
    async def test_cancel_all_drops_retry_flag(self, registry, channel, task_config):
        channel.permission_granted = False
        with pytest.raises(DeliveryRejected):
            await registry.upsert(task_config)

        await registry.cancel_all(EntityKind.TASK, 1)

        assert registry.flagged() == []


class TestTransitions:
    """Test suite for mark_fired / mark_expired."""

    @pytest.mark.asyncio
    async def test_mark_fired(self, registry, task_config):
        record = await registry.upsert(task_config)

        fired = await registry.mark_fired(record.handle)

        assert fired is record
        assert record.state == ReminderState.FIRED
        assert registry.pending() == []
        assert registry.history()[-1] is record

    @pytest.mark.asyncio
    async def test_unknown_handle_is_noop(self, registry):
        assert await registry.mark_fired("nope") is None
        assert await registry.mark_expired("nope") is None

    @pytest.mark.asyncio
    async def test_fire_after_cancel_is_noop(self, registry, task_config):
        """A late fire for a cancelled handle does not touch the new reminder."""
        old = await registry.upsert(task_config)
        new = await registry.upsert(replace(task_config, anchor_instant=utc(2024, 6, 1, 11, 0)))

        assert await registry.mark_fired(old.handle) is None
        assert old.state == ReminderState.CANCELLED
        assert new.state == ReminderState.PENDING

    @pytest.mark.asyncio
    async def test_mark_expired_flags_for_retry(self, registry, task_config):
        record = await registry.upsert(task_config)

        await registry.mark_expired(record.handle)

        assert record.state == ReminderState.EXPIRED
        assert registry.flagged() == [task_config]


class TestReconcile:
    """Test suite for drift repair."""

    @pytest.mark.asyncio
    async def test_lost_handle_expires_and_is_rescheduled(self, registry, channel, task_config):
        """A handle missing from the channel is EXPIRED, then re-created."""
        record = await registry.upsert(task_config)
        channel.drop(record.handle)

        report = registry.reconcile(await channel.list_pending())

        assert report.expired == [record]
        assert record.state == ReminderState.EXPIRED
        assert registry.pending() == []

        retry = await registry.retry_flagged()

        assert len(retry.rescheduled) == 1
        new = retry.rescheduled[0]
        assert new.handle != record.handle
        assert new.handle in channel.queue
        assert registry.flagged() == []

    @pytest.mark.asyncio
    async def test_live_handles_untouched(self, registry, channel, task_config):
        record = await registry.upsert(task_config)

        report = registry.reconcile(await channel.list_pending())

        assert report.live == 1
        assert report.expired == []
        assert record.state == ReminderState.PENDING

    @pytest.mark.asyncio
    async def test_locked_keys_are_skipped(self, registry, task_config):
        """Keys with an in-flight mutation are left alone."""
        record = await registry.upsert(task_config)

        async with registry._locks[record.key]:
            report = registry.reconcile(set())

        assert report.skipped == [record.key]
        assert record.state == ReminderState.PENDING

    @pytest.mark.asyncio
    async def test_records_newer_than_snapshot_are_skipped(self, registry, task_config):
        record = await registry.upsert(task_config)

        report = registry.reconcile(set(), candidates=set())

        assert report.expired == []
        assert record.state == ReminderState.PENDING

    @pytest.mark.asyncio
    async def test_lost_past_reminder_is_dropped(self, registry, channel, clock, task_config):
        """A lost one-shot whose instant has passed is not resurrected."""
        record = await registry.upsert(task_config)
        channel.drop(record.handle)
        clock.advance(timedelta(hours=1))

        registry.reconcile(set())
        retry = await registry.retry_flagged()

        assert retry.dropped == [record.key]
        assert registry.pending() == []
        assert registry.flagged() == []


class TestPersistence:
    """Test suite for snapshot / rehydrate."""

    @pytest.mark.asyncio
    async def test_rehydrate_restores_pending(self, registry, channel, clock, task_config):
        record = await registry.upsert(task_config)
        snapshot = registry.snapshot()

        fresh = ReminderRegistry(MagicMock(), clock=clock, tz="UTC")
        loaded = fresh.rehydrate(snapshot)

        assert loaded == 1
        assert fresh.get(record.handle) is record
        assert fresh.keys_for(EntityKind.TASK, 1) == [record.key]

    def test_rehydrate_ignores_duplicate_keys(self, clock, task_config):
        from reminder_core.domain.entities import ScheduledReminder
        from reminder_core.services.content import build_content

        first = ScheduledReminder("a", utc(2024, 6, 1, 9, 30), build_content(task_config), task_config)
        second = ScheduledReminder("b", utc(2024, 6, 1, 9, 30), build_content(task_config), task_config)

        registry = ReminderRegistry(MagicMock(), clock=clock, tz="UTC")

        assert registry.rehydrate([first, second]) == 1
        assert registry.pending_handles() == {"a"}

    @pytest.mark.asyncio
    async def test_stats(self, registry, task_config):
        record = await registry.upsert(task_config)
        await registry.mark_fired(record.handle)

        stats = registry.stats()

        assert stats["pending"] == 0
        assert stats["history_by_state"] == {"fired": 1}

    @pytest.mark.asyncio
    async def test_closed_record_dict_round_trip(self, registry, habit_config):
        from reminder_core.domain.entities import ScheduledReminder

        record = await registry.upsert(habit_config)
        await registry.mark_fired(record.handle)

        restored = ScheduledReminder.from_dict(record.to_dict())

        assert restored == record
        assert restored.closed_at is not None
        assert not restored.is_pending


class TestRetryPersistence:
    """Test suite for configs waiting on a retry across restarts."""

    @pytest.mark.asyncio
    async def test_rejected_config_survives_restart(self, registry, channel, clock, task_config):
        """A rejected reminder is retried after a restart instead of vanishing."""
        channel.permission_granted = False
        with pytest.raises(DeliveryRejected):
            await registry.upsert(task_config)

        assert registry.snapshot() == []
        flagged = registry.flagged_snapshot()
        assert flagged == [task_config]

        restarted = build_reminder_core(InMemoryDeliveryChannel(), clock=clock, tz="UTC", timeout=1.0)
        restarted.registry.rehydrate([], flagged)
        report = await restarted.reconcile()

        assert len(report.rescheduled) == 1
        assert restarted.registry.pending()[0].source_config == task_config
        assert restarted.registry.flagged() == []

    @pytest.mark.asyncio
    async def test_flagged_edit_replaces_stale_pending_after_restart(
        self, registry, channel, clock, task_config
    ):
        """An edit rejected before the restart still wins over the old reminder."""
        await registry.upsert(task_config)
        edited = replace(task_config, anchor_instant=utc(2024, 6, 1, 11, 0))
        channel.permission_granted = False
        with pytest.raises(DeliveryRejected):
            await registry.upsert(edited)

        survivor = InMemoryDeliveryChannel()
        survivor.queue.update(channel.queue)
        restarted = build_reminder_core(survivor, clock=clock, tz="UTC", timeout=1.0)
        restarted.registry.rehydrate(registry.snapshot(), registry.flagged_snapshot())
        await restarted.reconcile()

        pending = restarted.registry.pending()
        assert len(pending) == 1
        assert pending[0].source_config == edited
        assert set(survivor.queue) == {pending[0].handle}


class TestResourceBounds:
    """Test suite for per-key bookkeeping that must not grow forever."""

    @pytest.mark.asyncio
    async def test_locks_released_after_cancel(self, registry, task_config):
        await registry.upsert(task_config)
        await registry.upsert(replace(task_config, offset=StandardOffset.MINUTES_5))

        await registry.cancel_all(EntityKind.TASK, 1)

        assert registry._locks == {}

    @pytest.mark.asyncio
    async def test_locks_released_after_no_valid_occurrence(self, registry, task_config):
        with pytest.raises(NoValidOccurrence):
            await registry.upsert(replace(task_config, anchor_instant=utc(2024, 6, 1, 9, 0)))

        assert registry._locks == {}

    @pytest.mark.asyncio
    async def test_recurring_chain_keeps_one_lock(self, core, channel, clock, habit_config):
        record = await core.registry.upsert(habit_config)
        for _ in range(10):
            clock.set(record.fire_instant)
            await channel.fire(record.handle)
            record = core.registry.pending()[0]

        assert list(core.registry._locks) == [habit_config.key]

    @pytest.mark.asyncio
    async def test_handle_in_history_is_still_refused(self, task_config, clock):
        """A handle reused right after firing is refused."""
        scheduler = MagicMock()
        scheduler.schedule = AsyncMock(return_value="same-handle")
        scheduler.cancel = AsyncMock()
        registry = ReminderRegistry(scheduler, clock=clock, tz="UTC")

        await registry.upsert(task_config)
        await registry.mark_fired("same-handle")

        with pytest.raises(DeliveryRejected):
            await registry.upsert(replace(task_config, entity_id=2))

    @pytest.mark.asyncio
    async def test_handle_older_than_history_is_accepted(self, task_config, clock):
        """Only the recent-history window is remembered."""
        handles = iter(["h1", "h2", "h3", "h1"])
        scheduler = MagicMock()
        scheduler.schedule = AsyncMock(side_effect=lambda fire_instant, content: next(handles))
        scheduler.cancel = AsyncMock()
        registry = ReminderRegistry(scheduler, clock=clock, tz="UTC", history_size=1)

        for entity_id in (1, 2, 3):
            record = await registry.upsert(replace(task_config, entity_id=entity_id))
            await registry.mark_fired(record.handle)

        record = await registry.upsert(replace(task_config, entity_id=4))

        assert record.handle == "h1"
