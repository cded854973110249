"""
tests/test_progression.py — Progression Engine Tests
=====================================================

Monotonic single-step advancement, exactly-once side effects and the
terminal ``complete`` state, including concurrent evaluation against a
file-backed database.
"""

from __future__ import annotations

import threading

import pytest
from sqlalchemy.orm import Session

from ascent.database.models import ArtifactRecord, CommunityRecord, Project, SocialRecord
from ascent.engine.anti_gaming import AuthorActivityTracker
from ascent.engine.classifier import ActivityClassifier
from ascent.engine.events import MemberCountSet, MessageArrived, Transition
from ascent.engine.guard import TransitionGuard
from ascent.errors import UnknownProjectError
from ascent.services import metrics_store
from ascent.services.normalizer import EventNormalizer
from ascent.services.progression import ProgressionEngine


def _seed_everything(engine, project_id: str = "p1", *, level: int = 1) -> None:
    """A project whose metrics satisfy every gate."""
    with Session(engine) as session:
        session.add(Project(id=project_id, level=level, verified_member_count=10))
        session.add(CommunityRecord(
            project_id=project_id, community_id=f"c-{project_id}",
            member_count=5, messages_count=50, papers_shared=5,
            bot_confirmed=True, link_verified=True,
        ))
        session.add(SocialRecord(
            project_id=project_id, connected=True, handle="helixdao", intro_post_count=3,
            space_url="https://x.com/i/spaces/1", blogpost_url="https://blog.example.org/a",
            thread_url="https://x.com/helixdao/status/1", welcome_video_url="https://v.example.org/1",
        ))
        session.add(ArtifactRecord(project_id=project_id, type="idea"))
        session.add(ArtifactRecord(project_id=project_id, type="vision"))
        session.commit()


def _seed_level_one_ready(engine, project_id: str = "p1") -> None:
    """A level-1 project that meets the level-1 gate and nothing beyond it."""
    with Session(engine) as session:
        session.add(Project(id=project_id, level=1))
        session.add(ArtifactRecord(project_id=project_id, type="idea"))
        session.add(ArtifactRecord(project_id=project_id, type="vision"))
        session.commit()


class TestEvaluateOnce:
    def test_unsatisfied_gate_does_nothing(self, progression, db_engine, dispatcher):
        metrics_store.get_or_create_project(db_engine, "p1")
        assert progression.evaluate_once("p1") is None
        assert dispatcher.dispatched == []

    def test_advances_exactly_one_level(self, progression, db_engine):
        _seed_everything(db_engine)
        assert progression.evaluate_once("p1") == Transition("p1", 1, 2)
        assert metrics_store.load_snapshot(db_engine, "p1").level == 2

    def test_unknown_project(self, progression):
        with pytest.raises(UnknownProjectError):
            progression.evaluate_once("ghost")


class TestProcess:
    def test_walks_every_level_then_completes(self, progression, db_engine, dispatcher):
        _seed_everything(db_engine)
        transitions = progression.process("p1")
        assert transitions == [
            Transition("p1", 1, 2), Transition("p1", 2, 3), Transition("p1", 3, 4),
            Transition("p1", 4, 5), Transition("p1", 5, 6), Transition("p1", 6, 7),
            Transition("p1", 7, 7, completed=True),
        ]
        assert dispatcher.dispatched == transitions
        snap = metrics_store.load_snapshot(db_engine, "p1")
        assert snap.level == 7 and snap.completed

    def test_stops_at_first_unmet_gate(self, progression, db_engine):
        _seed_everything(db_engine)
        metrics_store.apply_update(db_engine, MemberCountSet("p1", "c-p1", 4))
        transitions = progression.process("p1")
        # level 3 needs five members
        assert [t.new_level for t in transitions] == [2, 3]
        assert metrics_store.load_snapshot(db_engine, "p1").level == 3

    def test_redundant_calls_are_noops(self, progression, db_engine, dispatcher):
        _seed_everything(db_engine)
        progression.process("p1")
        dispatched = list(dispatcher.dispatched)
        assert progression.process("p1") == []
        assert dispatcher.dispatched == dispatched

    def test_completed_project_is_terminal(self, progression, db_engine):
        _seed_everything(db_engine, level=7)
        assert progression.process("p1") == [Transition("p1", 7, 7, completed=True)]
        assert progression.evaluate_once("p1") is None
        assert metrics_store.level_history(db_engine, "p1") == [
            Transition("p1", 7, 7, completed=True),
        ]

    def test_lowering_metrics_never_demotes(self, progression, db_engine):
        _seed_everything(db_engine)
        progression.process("p1")
        metrics_store.apply_update(db_engine, MemberCountSet("p1", "c-p1", 0))
        assert progression.process("p1") == []
        assert metrics_store.load_snapshot(db_engine, "p1").level == 7


class TestSideEffects:
    def test_guard_suppresses_repeat_dispatch(self, db_engine, dispatcher, cache):
        guard = TransitionGuard(60)
        guard.should_fire("p1", 2)
        engine = ProgressionEngine(db_engine, dispatcher, guard=guard, cache=cache)
        _seed_everything(db_engine)
        assert engine.evaluate_once("p1") == Transition("p1", 1, 2)
        assert dispatcher.dispatched == []

    def test_no_dispatcher(self, db_engine, cache):
        engine = ProgressionEngine(db_engine, cache=cache)
        _seed_everything(db_engine)
        assert len(engine.process("p1")) == 7


class TestConcurrentEvaluation:
    WORKERS = 6

    def _race(self, file_engine, dispatcher, action):
        barrier = threading.Barrier(self.WORKERS)
        results: list = []
        errors: list[Exception] = []
        lock = threading.Lock()

        def worker():
            # each worker has its own guard, as separate processes would
            engine = ProgressionEngine(file_engine, dispatcher, guard=TransitionGuard(60))
            barrier.wait()
            try:
                outcome = action(engine)
            except Exception as exc:
                with lock:
                    errors.append(exc)
                return
            with lock:
                results.append(outcome)

        threads = [threading.Thread(target=worker) for _ in range(self.WORKERS)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        assert errors == []
        return results

    def test_one_winner_per_transition(self, file_engine, dispatcher):
        _seed_level_one_ready(file_engine)
        results = self._race(file_engine, dispatcher, lambda e: e.evaluate_once("p1"))
        winners = [r for r in results if r is not None]
        assert winners == [Transition("p1", 1, 2)]
        assert dispatcher.dispatched == [Transition("p1", 1, 2)]
        assert metrics_store.load_snapshot(file_engine, "p1").level == 2
        assert metrics_store.level_history(file_engine, "p1") == [Transition("p1", 1, 2)]

    def test_full_walk_applies_each_step_once(self, file_engine, dispatcher):
        _seed_everything(file_engine)
        results = self._race(file_engine, dispatcher, lambda e: e.process("p1"))
        applied = [t for batch in results for t in batch]
        assert len(applied) == 7
        assert len(set(applied)) == 7
        assert sorted(dispatcher.dispatched, key=lambda t: (t.new_level, t.completed)) == sorted(
            applied, key=lambda t: (t.new_level, t.completed),
        )
        assert len(metrics_store.level_history(file_engine, "p1")) == 7


class TestConcurrentEvents:
    def test_simultaneous_messages_cross_level_three_once(self, file_engine, dispatcher):
        with Session(file_engine) as session:
            session.add(Project(id="p1", level=3))
            session.add(CommunityRecord(
                project_id="p1", community_id="c-p1",
                member_count=5, messages_count=49, papers_shared=5,
                bot_confirmed=True, link_verified=True,
            ))
            session.commit()

        events = [
            MessageArrived("p1", "c-p1", "u1", "m1", "the binding assay replicated on the second plate"),
            MessageArrived("p1", "c-p1", "u2", "m2", "does anyone have the buffer recipe from the protocol"),
        ]
        barrier = threading.Barrier(len(events))
        results: list = []
        errors: list[Exception] = []
        lock = threading.Lock()

        def worker(event):
            normalizer = EventNormalizer(
                file_engine,
                ProgressionEngine(file_engine, dispatcher, guard=TransitionGuard(60)),
                classifier=ActivityClassifier(None, AuthorActivityTracker()),
            )
            barrier.wait()
            try:
                outcome = normalizer.handle(event)
            except Exception as exc:
                with lock:
                    errors.append(exc)
                return
            with lock:
                results.append(outcome)

        threads = [threading.Thread(target=worker, args=(e,)) for e in events]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert errors == []
        assert all(r.changed for r in results)
        transitions = [t for r in results for t in r.transitions]
        assert transitions == [Transition("p1", 3, 4)]
        assert dispatcher.dispatched == [Transition("p1", 3, 4)]
        assert metrics_store.level_history(file_engine, "p1") == [Transition("p1", 3, 4)]
        snap = metrics_store.load_snapshot(file_engine, "p1")
        assert snap.level == 4
        assert snap.messages_count == 51
