"""Unit tests for CLI commands.

Tests verify that the CLI handler correctly:
- Maps reminder and tracking commands onto the core services
- Returns status dictionaries for success and error outcomes
- Dispatches interactive command names through the composition root
"""

import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from cuckoo.adapters.cli.commands import CLICommandHandler
from cuckoo.adapters.scheduler.daemon import PollableRegistry
from cuckoo.core.deferred_scheduler import DeferredScheduler
from cuckoo.core.models import LiveContext
from cuckoo.core.state_diff_poller import FlightTracker
from cuckoo.main import _execute_cli_command
from cuckoo.tests.fakes import (
    FakeNotifierPort,
    FakeStatusSourcePort,
    FakeTaskStorePort,
)

# ============================================================================
# Test Fixtures
# ============================================================================


@pytest.fixture
def store() -> FakeTaskStorePort:
    return FakeTaskStorePort()


@pytest.fixture
def notifier() -> FakeNotifierPort:
    return FakeNotifierPort()


@pytest.fixture
def source() -> FakeStatusSourcePort:
    return FakeStatusSourcePort()


@pytest.fixture
async def scheduler(store, notifier):
    scheduler = DeferredScheduler(store=store, notifier=notifier)
    yield scheduler
    await scheduler.shutdown()


@pytest.fixture
def tracker(source, notifier) -> FlightTracker:
    return FlightTracker(source=source, notifier=notifier)


@pytest.fixture
def handler(scheduler, tracker) -> CLICommandHandler:
    return CLICommandHandler(reminders=scheduler, tracking=tracker)


@pytest.fixture
def registry(tracker) -> PollableRegistry:
    registry = PollableRegistry(
        contexts=lambda: [LiveContext(connection="local")], handle_signals=False
    )
    registry.register(tracker)
    return registry


# ============================================================================
# Reminder commands
# ============================================================================


@pytest.mark.asyncio
class TestRemindCommands:
    """Tests for remind, reminders and forget."""

    async def test_remind_in_seconds(self, handler, store) -> None:
        result = await handler.remind("local", "#chan", "tea", in_seconds=300)

        assert result["status"] == "success"
        assert result["operation"] == "remind"
        task = store.tasks[result["task_id"]]
        assert task.delivery.text == "tea"
        assert task.owner == "#chan"

    async def test_remind_at_iso_time(self, handler, store) -> None:
        at = (datetime.now(timezone.utc) + timedelta(hours=1)).replace(microsecond=0)

        result = await handler.remind(
            "local", "bob", "standup", at=at.isoformat(), owner="alice"
        )

        assert result["status"] == "success"
        task = store.tasks[result["task_id"]]
        assert task.fire_at == at
        assert task.owner == "alice"

    async def test_naive_time_taken_as_utc(self, handler, store) -> None:
        at = (datetime.now(timezone.utc) + timedelta(hours=1)).replace(
            microsecond=0, tzinfo=None
        )

        result = await handler.remind("local", "bob", "x", at=at.isoformat())

        task = store.tasks[result["task_id"]]
        assert task.fire_at == at.replace(tzinfo=timezone.utc)

    async def test_remind_in_past(self, handler, store) -> None:
        result = await handler.remind(
            "local", "bob", "too late", at="2001-01-01T00:00:00+00:00"
        )

        assert result["status"] == "error"
        assert "in the past" in result["message"]
        assert store.inserted == []

    @pytest.mark.parametrize(
        "kwargs",
        [{}, {"at": "2099-01-01T00:00:00", "in_seconds": 10}],
    )
    async def test_remind_needs_exactly_one_time(self, handler, kwargs) -> None:
        result = await handler.remind("local", "bob", "x", **kwargs)

        assert result["status"] == "error"
        assert "exactly one" in result["message"]

    async def test_remind_malformed_time(self, handler) -> None:
        result = await handler.remind("local", "bob", "x", at="next tuesday")
        assert result["status"] == "error"

    async def test_remind_store_failure(self, handler, store) -> None:
        store.set_should_fail(True)

        result = await handler.remind("local", "bob", "x", in_seconds=60)

        assert result["status"] == "error"
        assert "Store unavailable" in result["message"]

    async def test_list_reminders(self, handler) -> None:
        await handler.remind("local", "#chan", "later", in_seconds=600, owner="alice")
        await handler.remind("local", "#chan", "sooner", in_seconds=60, owner="alice")

        result = await handler.list_reminders("alice")

        assert result["status"] == "success"
        assert result["count"] == 2
        assert [r["text"] for r in result["reminders"]] == ["sooner", "later"]

    async def test_forget(self, handler, store) -> None:
        created = await handler.remind("local", "#chan", "x", in_seconds=600)

        result = await handler.forget(created["task_id"])

        assert result["status"] == "success"
        assert store.tasks == {}

    async def test_forget_unknown(self, handler) -> None:
        result = await handler.forget("missing")

        assert result["status"] == "error"
        assert "No pending reminder" in result["message"]

    async def test_forget_while_delivering(self, handler, store, notifier) -> None:
        """A reminder already on its way is not reported as forgotten."""
        notifier.delay = 0.2
        created = await handler.remind("local", "#chan", "x", in_seconds=0.05)

        for _ in range(50):
            if notifier.deliver_call_count:
                break
            await asyncio.sleep(0.01)

        result = await handler.forget(created["task_id"])

        assert result["status"] == "error"
        assert await notifier.wait_for_deliveries(1)


# ============================================================================
# API key command
# ============================================================================


@pytest.mark.asyncio
class TestApiKeyCommand:
    """Tests for apikey."""

    async def test_sets_key(self, scheduler, tracker) -> None:
        keys: list[str] = []
        handler = CLICommandHandler(
            reminders=scheduler, tracking=tracker, set_api_key=keys.append
        )

        result = handler.api_key("  abc123 ")

        assert result["status"] == "success"
        assert result["message"] == "AviationStack API key updated."
        assert keys == ["abc123"]

    async def test_blank_key(self, scheduler, tracker) -> None:
        keys: list[str] = []
        handler = CLICommandHandler(
            reminders=scheduler, tracking=tracker, set_api_key=keys.append
        )

        result = handler.api_key("   ")

        assert result["status"] == "error"
        assert result["message"] == "Please provide an API key."
        assert keys == []

    async def test_without_upstream(self, handler) -> None:
        assert handler.api_key("abc123")["status"] == "error"


# ============================================================================
# Tracking commands
# ============================================================================


@pytest.mark.asyncio
class TestTrackCommands:
    """Tests for track, untrack and tracked."""

    async def test_track(self, handler) -> None:
        result = await handler.track("local", "#chan", "ba123")

        assert result["status"] == "success"
        assert result["entity"]["external_id"] == "BA123"
        assert result["entity"]["status"] == ""

    async def test_track_blank(self, handler) -> None:
        result = await handler.track("local", "#chan", "  ")
        assert result["status"] == "error"

    async def test_untrack(self, handler) -> None:
        await handler.track("local", "#chan", "BA123")

        assert (await handler.untrack("local", "#chan", "BA123"))["status"] == "success"
        assert (await handler.untrack("local", "#chan", "BA123"))["status"] == "error"

    async def test_list_tracked_shows_status(self, handler, tracker, source) -> None:
        source.set_status("BA123", "On time", "scheduled")
        await handler.track("local", "#chan", "BA123")
        await tracker.poll([LiveContext(connection="local")])

        result = await handler.list_tracked(target="#chan")

        assert result["count"] == 1
        assert result["entities"][0]["status"] == "On time"
        assert result["entities"][0]["raw_status"] == "scheduled"


# ============================================================================
# Interactive dispatch
# ============================================================================


@pytest.mark.asyncio
class TestCommandDispatch:
    """Tests for the interactive command dispatcher."""

    async def test_dispatch_track_and_poll(
        self, handler, registry, source, notifier
    ) -> None:
        source.set_status("BA123", "Boarding", "active")

        await _execute_cli_command(
            handler,
            registry,
            "track",
            {"connection": "local", "target": "#chan", "flight": "BA123"},
        )
        result = await _execute_cli_command(handler, registry, "poll", {})

        assert result["status"] == "success"
        assert result["results"]["flights"].notifications == 1
        assert notifier.deliveries == [
            ("local", "#chan", "Flight BA123 update: Boarding")
        ]

    async def test_dispatch_missing_parameter(self, handler, registry) -> None:
        with pytest.raises(ValueError, match="Missing required parameter: text"):
            await _execute_cli_command(
                handler, registry, "remind", {"connection": "local", "target": "bob"}
            )

    async def test_dispatch_unknown_command(self, handler, registry) -> None:
        with pytest.raises(ValueError, match="Unknown command"):
            await _execute_cli_command(handler, registry, "launch", {})

    async def test_dispatch_remind(self, handler, registry, store) -> None:
        result = await _execute_cli_command(
            handler,
            registry,
            "remind",
            {"connection": "local", "target": "bob", "text": "hi", "in_seconds": 30},
        )

        assert result["status"] == "success"
        assert result["task_id"] in store.tasks

    async def test_dispatch_poll_reports_stats(self, handler, registry) -> None:
        await _execute_cli_command(handler, registry, "poll", {})
        result = await _execute_cli_command(handler, registry, "poll", {})

        assert result["stats"] == {
            "flights": {"cycles": 2, "skipped_ticks": 0, "failures": 0}
        }

    async def test_dispatch_status(self, handler, registry) -> None:
        result = await _execute_cli_command(handler, registry, "status", {})

        assert result["operation"] == "status"
        assert result["running"] is False
        assert result["stats"]["flights"]["cycles"] == 0

    async def test_dispatch_apikey_reaches_source(
        self, scheduler, tracker, registry
    ) -> None:
        from cuckoo.adapters.upstream.aviationstack import AviationStackStatusSource

        source = AviationStackStatusSource(api_key="")
        handler = CLICommandHandler(
            reminders=scheduler, tracking=tracker, set_api_key=source.set_api_key
        )
        try:
            result = await _execute_cli_command(
                handler, registry, "apikey", {"key": "fresh-key"}
            )
        finally:
            await source.close()

        assert result["status"] == "success"
        assert source.api_key == "fresh-key"

    async def test_dispatch_apikey_requires_key(self, handler, registry) -> None:
        with pytest.raises(ValueError, match="Missing required parameter: key"):
            await _execute_cli_command(handler, registry, "apikey", {})
