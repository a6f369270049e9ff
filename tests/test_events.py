"""
Tests for the event feed.
"""

import asyncio

import pytest

from conduit.workflow import events
from conduit.workflow.events import ENGINE_SOURCE, MONITORING_SOURCE, EventFeed


class TestEventFeed:
    """Tests for publish/subscribe and history."""

    def test_delivery_in_subscription_order(self):
        feed = EventFeed()
        seen = []
        feed.subscribe(lambda e: seen.append(("first", e.message)))
        feed.subscribe(lambda e: seen.append(("second", e.message)))

        feed.emit(ENGINE_SOURCE, "info", "hello")

        assert seen == [("first", "hello"), ("second", "hello")]

    def test_unsubscribe(self):
        feed = EventFeed()
        seen = []
        unsubscribe = feed.subscribe(seen.append)
        unsubscribe()
        unsubscribe()

        feed.emit(ENGINE_SOURCE, "info", "ignored")

        assert seen == []
        assert feed.subscriber_count == 0

    def test_failing_subscriber_is_isolated(self):
        feed = EventFeed()
        seen = []

        def broken(event):
            raise RuntimeError("boom")

        feed.subscribe(broken)
        feed.subscribe(seen.append)

        event = feed.emit(ENGINE_SOURCE, "error", "still delivered")

        assert seen == [event]

    @pytest.mark.asyncio
    async def test_coroutine_subscriber_is_scheduled(self):
        feed = EventFeed()
        received = asyncio.Event()

        async def on_event(event):
            received.set()

        feed.subscribe(on_event)
        feed.emit(ENGINE_SOURCE, "info", "async")

        await asyncio.wait_for(received.wait(), timeout=1)

    def test_history_filters(self):
        feed = EventFeed(max_history=3)
        feed.emit(ENGINE_SOURCE, "info", "a", {"execution_id": "e1"})
        feed.emit(MONITORING_SOURCE, "warning", "b", {"execution_id": "e1"})
        feed.emit(ENGINE_SOURCE, "info", "c", {"execution_id": "e2"})
        feed.emit(ENGINE_SOURCE, "info", "d", {"execution_id": "e2"})

        assert [e.message for e in feed.history()] == ["b", "c", "d"]
        assert [e.message for e in feed.history(source=ENGINE_SOURCE)] == ["c", "d"]
        assert [e.message for e in feed.history(execution_id="e1")] == ["b"]
        assert [e.message for e in feed.history(limit=1)] == ["d"]

    def test_event_exposes_workflow_id(self):
        feed = EventFeed()
        event = feed.emit(ENGINE_SOURCE, "info", "x", {"workflow_id": "wf-1"})
        assert event.workflow_id == "wf-1"
        assert event.to_dict()["source"] == ENGINE_SOURCE

    @pytest.mark.asyncio
    async def test_failing_coroutine_subscriber_is_logged(self, monkeypatch):
        warnings = []

        class RecordingLogger:
            def warning(self, event, **fields):
                warnings.append((event, fields))

        monkeypatch.setattr(events, "logger", RecordingLogger())
        feed = EventFeed()
        received = asyncio.Event()

        async def broken(event):
            raise RuntimeError("async boom")

        async def healthy(event):
            received.set()

        feed.subscribe(broken)
        feed.subscribe(healthy)
        feed.emit(ENGINE_SOURCE, "error", "first")
        await asyncio.wait_for(received.wait(), timeout=1)
        await asyncio.sleep(0)

        assert warnings == [
            ("event_subscriber_error", {"source": ENGINE_SOURCE, "status": "error", "error": "async boom"}),
        ]

        received.clear()
        feed.emit(ENGINE_SOURCE, "info", "second")
        await asyncio.wait_for(received.wait(), timeout=1)
