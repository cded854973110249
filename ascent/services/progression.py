"""
ascent.services.progression — Progression Engine
=================================================

Level state machine: ``1 → 2 → … → 7 → complete``.

One evaluation step::

    snapshot = load_snapshot(project)
    gate     = evaluate_gate(snapshot.level, snapshot)
    if gate.satisfied:
        CAS level N → N+1            (or completed_at NULL → now at level 7)
        on win: guard → dispatch notifications

Any number of event paths may run this for the same project at the same
time.  The compare-and-set in the metrics store lets exactly one of them
apply a given transition; the others see ``None`` and stop.  The guard
keeps notification side effects to one per transition even when the
same win is observed twice within its window.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from ascent.constants import MAX_LEVEL
from ascent.engine.events import Transition
from ascent.engine.gates import evaluate_gate
from ascent.engine.guard import TransitionGuard
from ascent.services import metrics_store

if TYPE_CHECKING:
    from sqlalchemy import Engine

    from ascent.engine.cache import ConfigCache
    from ascent.services.notifications import NotificationDispatcher

logger = logging.getLogger(__name__)

COMPLETE = "complete"


class ProgressionEngine:
    """Applies level transitions exactly once and fans out notifications.

    Parameters
    ----------
    engine:
        SQLAlchemy engine backing the metrics store.
    dispatcher:
        Receives each won transition.  ``None`` disables notifications.
    guard:
        Side-effect memo; a fresh 60 s guard is used if omitted.
    cache:
        Optional :class:`ConfigCache` for gate threshold overrides.
    """

    def __init__(
        self,
        engine: Engine,
        dispatcher: NotificationDispatcher | None = None,
        *,
        guard: TransitionGuard | None = None,
        cache: ConfigCache | None = None,
    ) -> None:
        self.engine = engine
        self.dispatcher = dispatcher
        self.guard = guard or TransitionGuard()
        self._cache = cache

    def evaluate_once(self, project_id: str) -> Transition | None:
        """Run one gate check; apply and announce at most one transition."""
        snapshot = metrics_store.load_snapshot(self.engine, project_id)
        if snapshot.completed:
            return None

        gate = evaluate_gate(snapshot.level, snapshot, self._cache)
        if not gate.satisfied:
            logger.debug(
                "Project %s at level %d still needs: %s",
                project_id, snapshot.level, ", ".join(gate.missing),
            )
            return None

        if gate.completes:
            transition = metrics_store.mark_completed(self.engine, project_id)
        else:
            transition = metrics_store.compare_and_set_level(
                self.engine, project_id, snapshot.level,
            )
        if transition is None:
            logger.debug(
                "Project %s: level %d transition already applied elsewhere",
                project_id, snapshot.level,
            )
            return None

        if transition.completed:
            logger.info("Project %s completed the final level", project_id)
        else:
            logger.info(
                "Project %s advanced: level %d → %d",
                project_id, transition.previous_level, transition.new_level,
            )
        self._fire_side_effects(transition)
        return transition

    def process(self, project_id: str) -> list[Transition]:
        """Advance *project_id* as far as its current metrics allow.

        Safe to call redundantly; a project with nothing new to satisfy
        returns an empty list.
        """
        transitions: list[Transition] = []
        # One step per level plus the completion step
        for _ in range(MAX_LEVEL):
            transition = self.evaluate_once(project_id)
            if transition is None:
                break
            transitions.append(transition)
        return transitions

    def _fire_side_effects(self, transition: Transition) -> None:
        target = COMPLETE if transition.completed else transition.new_level
        if not self.guard.should_fire(transition.project_id, target):
            return
        if self.dispatcher is None:
            return
        self.dispatcher.dispatch(transition)
