"""Tests for Tracker — the coordinator wiring consent, middleware, queue and fan-out."""

from __future__ import annotations

import asyncio
import logging

import pytest

from trackrelay.core.tracker import Tracker, create_tracker, log_error
from trackrelay.errors import DestinationError, QueueClosedError, RelayError
from trackrelay.models import (
    ConsentConfig,
    DispatchedEvent,
    EventDefinition,
    QueueConfig,
    TrackerConfig,
)
from trackrelay.routing.destinations.memory import MemoryDestination

GRANT_ANALYTICS = ConsentConfig(default_state={"analytics": True})

CATALOG = {
    "auth": {
        "login": EventDefinition(
            key="auth::login",
            constants={"event_name": "login"},
            build_payload=lambda params: {"event_name": "login", **params},
        ),
        "logout": EventDefinition(
            key="auth::logout",
            constants={"event_name": "logout"},
            build_payload=lambda: {"event_name": "logout"},
        ),
    },
    "cart": {
        "add": EventDefinition(key="cart::add", constants={"event_name": "add_to_cart"}),
    },
}


class _Lifecycle:
    """Destination recording init/destroy calls, optionally failing."""

    def __init__(self, name: str, *, fail_init=False, fail_destroy=False, fail_send=False):
        self.name = name
        self.calls: list[str] = []
        self._fail_init = fail_init
        self._fail_destroy = fail_destroy
        self._fail_send = fail_send

    def init(self) -> None:
        self.calls.append("init")
        if self._fail_init:
            raise RuntimeError("no transport")

    def send(self, event: DispatchedEvent) -> None:
        self.calls.append(f"send:{event.key}")
        if self._fail_send:
            raise RuntimeError("send failed")

    async def destroy(self) -> None:
        self.calls.append("destroy")
        if self._fail_destroy:
            raise RuntimeError("destroy failed")


class TestEmit:
    @pytest.mark.asyncio
    async def test_emit_reaches_destination(self, memory):
        tracker = create_tracker(destinations=[memory], consent=GRANT_ANALYTICS)

        tracker.emit("auth::login", "auth", "login", {"auth_method": "google"})
        await tracker.flush()

        assert len(memory.received) == 1
        assert memory.received[0].key == "auth::login"
        assert memory.received[0].payload == {"auth_method": "google"}

    @pytest.mark.asyncio
    async def test_consent_blocks_until_granted(self, memory):
        tracker = create_tracker(destinations=[memory])

        tracker.emit("auth::login", "auth", "login")
        await tracker.flush()
        assert memory.received == []

        tracker.set_consent({"analytics": True})
        tracker.emit("auth::login", "auth", "login")
        await tracker.flush()
        assert len(memory.received) == 1

    @pytest.mark.asyncio
    async def test_consent_denied_is_silent(self, memory, errors, collect_errors):
        tracker = create_tracker(destinations=[memory], on_error=collect_errors)
        tracker.emit("auth::login", "auth", "login")
        await tracker.flush()
        assert errors == []

    @pytest.mark.asyncio
    async def test_middleware_filters(self, memory):
        tracker = create_tracker(
            destinations=[memory],
            consent=GRANT_ANALYTICS,
            middleware=[lambda e, proceed: proceed(e) if e.name != "logout" else None],
        )
        tracker.emit("auth::login", "auth", "login")
        tracker.emit("auth::logout", "auth", "logout")
        await tracker.flush()

        assert [e.key for e in memory.received] == ["auth::login"]

    @pytest.mark.asyncio
    async def test_global_metadata(self, memory):
        tracker = create_tracker(
            destinations=[memory],
            consent=GRANT_ANALYTICS,
            global_metadata={"app": "shop"},
        )
        tracker.emit("auth::login", "auth", "login")
        tracker.set_global_metadata({"user_id": "u-1"})
        tracker.emit("auth::login", "auth", "login")
        await tracker.flush()

        assert memory.received[0].metadata == {"app": "shop"}
        assert memory.received[1].metadata == {"app": "shop", "user_id": "u-1"}

    @pytest.mark.asyncio
    async def test_metadata_not_shared_between_events(self, memory):
        def annotate(e, proceed):
            e.metadata["seen"] = e.metadata.get("seen", 0) + 1
            proceed(e)

        tracker = create_tracker(
            destinations=[memory],
            consent=GRANT_ANALYTICS,
            middleware=[annotate],
            global_metadata={"app": "shop"},
        )
        tracker.emit("auth::login", "auth", "login")
        tracker.emit("auth::login", "auth", "login")
        await tracker.flush()

        assert [e.metadata["seen"] for e in memory.received] == [1, 1]

    @pytest.mark.asyncio
    async def test_destination_error_reported_with_event(self, memory, errors, collect_errors):
        failing = _Lifecycle("broken", fail_send=True)
        tracker = create_tracker(
            destinations=[failing, memory],
            consent=GRANT_ANALYTICS,
            on_error=collect_errors,
        )
        tracker.emit("auth::login", "auth", "login")
        await tracker.flush()

        assert len(memory.received) == 1
        assert len(errors) == 1
        error, event = errors[0]
        assert isinstance(error, DestinationError)
        assert error.destination_name == "broken"
        assert event is not None and event.key == "auth::login"

    @pytest.mark.asyncio
    async def test_malformed_event_reported_not_raised(self, memory, errors, collect_errors):
        tracker = create_tracker(
            destinations=[memory], consent=GRANT_ANALYTICS, on_error=collect_errors
        )
        tracker.emit("auth::wrong", "auth", "login")
        await tracker.flush()

        assert memory.received == []
        assert len(errors) == 1

    def test_emit_without_running_loop_reported(self, memory, errors, collect_errors):
        tracker = create_tracker(
            destinations=[memory], consent=GRANT_ANALYTICS, on_error=collect_errors
        )
        tracker.emit("auth::login", "auth", "login")

        assert len(errors) == 1
        assert isinstance(errors[0][0], RuntimeError)
        assert errors[0][1] is not None

    @pytest.mark.asyncio
    async def test_error_callback_failure_is_contained(self, caplog):
        def explode(error, event=None):
            raise ValueError("callback bug")

        tracker = create_tracker(
            destinations=[_Lifecycle("broken", fail_send=True)],
            consent=GRANT_ANALYTICS,
            on_error=explode,
        )
        with caplog.at_level(logging.ERROR, logger="trackrelay.core.tracker"):
            tracker.emit("auth::login", "auth", "login")
            await tracker.flush()
        assert "Error callback raised" in caplog.text


class TestBatching:
    @pytest.mark.asyncio
    async def test_queue_batches_until_flush(self, memory):
        tracker = create_tracker(
            destinations=[memory],
            consent=GRANT_ANALYTICS,
            queue=QueueConfig(enabled=True, max_size=10, flush_interval=0),
        )
        for _ in range(3):
            tracker.emit("auth::login", "auth", "login")
        assert tracker.queue is not None
        assert tracker.queue.pending == 3
        assert memory.received == []

        await tracker.flush()
        assert len(memory.batches) == 1
        assert len(memory.batches[0]) == 3

    @pytest.mark.asyncio
    async def test_size_trigger(self, memory):
        tracker = create_tracker(
            destinations=[memory],
            consent=GRANT_ANALYTICS,
            queue=QueueConfig(enabled=True, max_size=2, flush_interval=0),
        )
        for _ in range(5):
            tracker.emit("auth::login", "auth", "login")
        await tracker.flush()

        assert [len(b) for b in memory.batches] == [2, 2, 1]

    @pytest.mark.asyncio
    async def test_batch_errors_reported_without_event(self, errors, collect_errors):
        tracker = create_tracker(
            destinations=[_Lifecycle("broken", fail_send=True)],
            consent=GRANT_ANALYTICS,
            queue=QueueConfig(enabled=True, flush_interval=0),
            on_error=collect_errors,
        )
        tracker.emit("auth::login", "auth", "login")
        await tracker.flush()

        assert len(errors) == 1
        assert errors[0][1] is None

    @pytest.mark.asyncio
    async def test_emit_after_destroy_reported(self, memory, errors, collect_errors):
        tracker = create_tracker(
            destinations=[memory],
            consent=GRANT_ANALYTICS,
            queue=QueueConfig(enabled=True, flush_interval=0),
            on_error=collect_errors,
        )
        await tracker.destroy()
        tracker.emit("auth::login", "auth", "login")

        assert len(errors) == 1
        assert isinstance(errors[0][0], RelayError)

    @pytest.mark.asyncio
    async def test_closed_queue_error_reported(self, memory, errors, collect_errors):
        tracker = create_tracker(
            destinations=[memory],
            consent=GRANT_ANALYTICS,
            queue=QueueConfig(enabled=True, flush_interval=0),
            on_error=collect_errors,
        )
        assert tracker.queue is not None
        await tracker.queue.destroy()
        tracker.emit("auth::login", "auth", "login")

        assert isinstance(errors[0][0], QueueClosedError)


class TestLifecycle:
    def test_init_called_once(self):
        destination = _Lifecycle("a")
        Tracker(TrackerConfig(destinations=[destination]))
        assert destination.calls == ["init"]

    @pytest.mark.asyncio
    async def test_init_failure_reported_but_operational(self, errors, collect_errors):
        broken = _Lifecycle("broken", fail_init=True)
        healthy = MemoryDestination()
        tracker = create_tracker(
            destinations=[broken, healthy],
            consent=GRANT_ANALYTICS,
            on_error=collect_errors,
        )
        assert len(errors) == 1
        assert isinstance(errors[0][0], DestinationError)
        assert errors[0][0].action == "init"

        tracker.emit("auth::login", "auth", "login")
        await tracker.flush()
        assert len(healthy.received) == 1

    @pytest.mark.asyncio
    async def test_async_init_awaited(self, errors, collect_errors):
        class _AsyncInit(MemoryDestination):
            ready = False

            async def init(self):
                self.ready = True

        destination = _AsyncInit()
        tracker = create_tracker(destinations=[destination], on_error=collect_errors)
        await tracker.flush()

        assert destination.ready is True
        assert errors == []

    def test_async_init_without_loop_reported(self, errors, collect_errors):
        class _AsyncInit(MemoryDestination):
            async def init(self):
                pass

        create_tracker(destinations=[_AsyncInit()], on_error=collect_errors)
        assert len(errors) == 1
        assert errors[0][0].action == "init"

    @pytest.mark.asyncio
    async def test_destroy_tears_down_all_destinations(self, errors, collect_errors):
        first = _Lifecycle("first", fail_destroy=True)
        second = _Lifecycle("second")
        tracker = create_tracker(destinations=[first, second], on_error=collect_errors)

        await tracker.destroy()
        await tracker.destroy()

        assert first.calls.count("destroy") == 1
        assert second.calls.count("destroy") == 1
        assert len(errors) == 1
        assert errors[0][0].action == "destroy"
        assert tracker.destroyed

    @pytest.mark.asyncio
    async def test_destroy_flushes_queue_first(self):
        destination = _Lifecycle("a")
        tracker = create_tracker(
            destinations=[destination],
            consent=GRANT_ANALYTICS,
            queue=QueueConfig(enabled=True, flush_interval=0),
        )
        tracker.emit("auth::login", "auth", "login")
        await tracker.destroy()

        assert destination.calls == ["init", "send:auth::login", "destroy"]

    @pytest.mark.asyncio
    async def test_destroy_waits_for_background_flush(self):
        class _SlowSend(_Lifecycle):
            async def send(self, event: DispatchedEvent) -> None:
                self.calls.append("send_start")
                await asyncio.sleep(0.05)
                self.calls.append("send_end")

        destination = _SlowSend("slow")
        tracker = create_tracker(
            destinations=[destination],
            consent=GRANT_ANALYTICS,
            queue=QueueConfig(enabled=True, flush_interval=0),
        )
        tracker.emit("auth::login", "auth", "login")
        flushing = asyncio.create_task(tracker.flush())
        await asyncio.sleep(0)

        await tracker.destroy()
        await flushing

        assert destination.calls == ["init", "send_start", "send_end", "destroy"]

    def test_get_consent_is_copy(self):
        tracker = create_tracker()
        state = tracker.get_consent()
        state["marketing"] = True
        assert tracker.get_consent()["marketing"] is False


class TestCatalog:
    @pytest.mark.asyncio
    async def test_track_builds_payload(self, memory):
        tracker = create_tracker(events=CATALOG, destinations=[memory], consent=GRANT_ANALYTICS)

        tracker.track("auth", "login", {"auth_method": "google"})
        tracker.track("auth", "logout")
        await tracker.flush()

        assert [(e.key, e.payload) for e in memory.received] == [
            ("auth::login", {"event_name": "login", "auth_method": "google"}),
            ("auth::logout", {"event_name": "logout"}),
        ]

    @pytest.mark.asyncio
    async def test_namespace_methods(self, memory):
        tracker = create_tracker(events=CATALOG, destinations=[memory], consent=GRANT_ANALYTICS)

        tracker.events.cart.add({"sku": "A-1"})
        await tracker.flush()

        event = memory.received[0]
        assert event.key == "cart::add"
        assert event.area == "cart"
        assert event.name == "add"
        assert event.payload == {"event_name": "add_to_cart", "sku": "A-1"}

    def test_unknown_event_raises(self):
        tracker = create_tracker(events=CATALOG)
        with pytest.raises(KeyError, match="auth::signup"):
            tracker.track("auth", "signup")

    def test_catalog_key_mismatch_rejected(self):
        with pytest.raises(ValueError, match="expected 'auth::login'"):
            create_tracker(events={"auth": {"login": EventDefinition(key="login")}})

    @pytest.mark.asyncio
    async def test_payload_builder_error_reported(self, memory, errors, collect_errors):
        def broken(params):
            raise TypeError("bad params")

        tracker = create_tracker(
            events={"auth": {"login": EventDefinition(key="auth::login", build_payload=broken)}},
            destinations=[memory],
            consent=GRANT_ANALYTICS,
            on_error=collect_errors,
        )
        tracker.events.auth.login({"x": 1})
        await tracker.flush()

        assert memory.received == []
        assert isinstance(errors[0][0], TypeError)


class TestLogError:
    def test_logs_destination_context(self, caplog, event):
        error = DestinationError("ga4", RuntimeError("timeout"), action="send")
        with caplog.at_level(logging.ERROR, logger="trackrelay.core.tracker"):
            log_error(error, event)
        assert "destination=ga4" in caplog.text
        assert "action=send" in caplog.text
        assert "event=auth::login" in caplog.text

    def test_logs_plain_error(self, caplog):
        with caplog.at_level(logging.ERROR, logger="trackrelay.core.tracker"):
            log_error(ValueError("bad"))
        assert "bad" in caplog.text

    @pytest.mark.asyncio
    async def test_default_handler_used(self, caplog):
        tracker = create_tracker(
            destinations=[_Lifecycle("broken", fail_send=True)], consent=GRANT_ANALYTICS
        )
        with caplog.at_level(logging.ERROR, logger="trackrelay.core.tracker"):
            tracker.emit("auth::login", "auth", "login")
            await tracker.flush()
        assert "destination=broken" in caplog.text
