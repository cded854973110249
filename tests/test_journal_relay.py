"""
tests/test_journal_relay.py — Level-change Journal Relay Tests
===============================================================

Transitions are journalled by one pipeline (standing in for the bot
process) and picked up by a relay with its own hub (the API process).
"""

from __future__ import annotations

import asyncio

import pytest

from ascent.engine.events import ArtifactMinted, Transition
from ascent.errors import MetricsStoreUnavailable
from ascent.services import metrics_store
from ascent.services.journal_relay import LevelChangeRelay
from ascent.services.live_sessions import LiveSessionHub
from ascent.services.normalizer import EventNormalizer
from ascent.services.progression import ProgressionEngine


class RecordingHub:
    def __init__(self) -> None:
        self.published: list[tuple[str, dict]] = []

    def publish(self, project_id, message):
        self.published.append((project_id, message))
        return 1


@pytest.fixture
def hub() -> RecordingHub:
    return RecordingHub()


@pytest.fixture
def relay(db_engine, hub, config) -> LevelChangeRelay:
    return LevelChangeRelay(db_engine, live_hub=hub, config=config)


def _reach_level_two(normalizer) -> None:
    normalizer.handle(ArtifactMinted("p1", "idea"))
    normalizer.handle(ArtifactMinted("p1", "vision"))


class TestPoll:
    def test_publishes_transitions_won_elsewhere(self, relay, hub, normalizer, dispatcher):
        relay.skip_to_latest()
        _reach_level_two(normalizer)

        assert relay.poll() == [Transition("p1", 1, 2)]
        project_id, message = hub.published[0]
        assert project_id == "p1"
        assert message["type"] == "LevelChanged"
        assert (message["previous_level"], message["new_level"], message["completed"]) == (1, 2, False)
        assert message["template_id"] == "level_up_2"
        assert message["message"].startswith("🚀 your project reached Level 2")
        assert dispatcher.dispatched == [Transition("p1", 1, 2)]

    def test_each_row_is_relayed_once(self, relay, hub, normalizer):
        _reach_level_two(normalizer)
        relay.poll()
        assert relay.poll() == []
        assert len(hub.published) == 1

    def test_skip_to_latest_ignores_history(self, relay, hub, normalizer):
        _reach_level_two(normalizer)
        assert relay.skip_to_latest() > 0
        assert relay.poll() == []
        assert hub.published == []

    def test_empty_journal(self, relay):
        assert relay.skip_to_latest() == 0
        assert relay.poll() == []

    def test_reads_past_one_batch(self, db_engine, hub):
        metrics_store.get_or_create_project(db_engine, "p1")
        for level in range(1, 7):
            metrics_store.compare_and_set_level(db_engine, "p1", level)
        metrics_store.mark_completed(db_engine, "p1")

        relay = LevelChangeRelay(db_engine, live_hub=hub, batch_size=2)
        relayed = relay.poll()
        assert len(relayed) == 7
        assert relayed[-1] == Transition("p1", 7, 7, completed=True)
        assert hub.published[-1][1]["template_id"] == "journey_complete"

    def test_uses_project_name(self, db_engine, relay, hub, normalizer):
        metrics_store.get_or_create_project(db_engine, "p1", name="Helix DAO")
        _reach_level_two(normalizer)
        relay.poll()
        assert hub.published[0][1]["message"].startswith("🚀 Helix DAO reached Level 2")


class TestSinks:
    def test_sinks_receive_rendered_message(self, relay, normalizer):
        seen = []
        relay.add_sink(lambda request, message: seen.append((request.template_id, message.subject)))
        _reach_level_two(normalizer)
        relay.poll()
        assert seen == [("level_up_2", "🚀 your project reached Level 2: Community Setup")]

    def test_failing_output_does_not_block_others(self, relay, hub, normalizer):
        after = []

        def broken(request, message):
            raise RuntimeError("chat is down")

        relay.add_sink(broken)
        relay.add_sink(lambda request, message: after.append(request.template_id))
        _reach_level_two(normalizer)
        assert relay.poll() == [Transition("p1", 1, 2)]
        assert after == ["level_up_2"]
        assert len(hub.published) == 1


class TestStoreFailure:
    def test_cursor_holds_until_store_recovers(self, relay, hub, normalizer, monkeypatch):
        _reach_level_two(normalizer)
        original = metrics_store.level_changes_since

        def unavailable(*args, **kwargs):
            raise MetricsStoreUnavailable("level_changes_since failed")

        monkeypatch.setattr(metrics_store, "level_changes_since", unavailable)
        with pytest.raises(MetricsStoreUnavailable):
            relay.poll()
        assert relay.cursor == 0

        monkeypatch.setattr(metrics_store, "level_changes_since", original)
        assert relay.poll() == [Transition("p1", 1, 2)]


class TestRun:
    def test_background_task_feeds_live_sessions(self, file_engine):
        normalizer = EventNormalizer(file_engine, ProgressionEngine(file_engine))

        async def scenario():
            hub = LiveSessionHub()
            queue = hub.subscribe("p1")
            relay = LevelChangeRelay(file_engine, live_hub=hub)
            task = asyncio.create_task(relay.run(interval=0.01))
            try:
                await asyncio.to_thread(_reach_level_two, normalizer)
                message = await asyncio.wait_for(queue.get(), timeout=5)
            finally:
                task.cancel()
                with pytest.raises(asyncio.CancelledError):
                    await task
            return message

        message = asyncio.run(scenario())
        assert message["type"] == "LevelChanged"
        assert message["new_level"] == 2
