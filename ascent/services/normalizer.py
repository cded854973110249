"""
ascent.services.normalizer — Event Normalizer
==============================================

Single entry point for every event source.  Each inbound event is
validated, turned into exactly one ``MetricUpdate`` variant, applied to
the metrics store and then handed to the progression engine for that
project.

Callable from the bot (via :func:`~ascent.database.engine.run_db`) and
from the API routes; the normalizer itself is synchronous.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from ascent.engine.classifier import ActivityClassifier
from ascent.engine.events import (
    ActivityCounted,
    ArtifactAdded,
    ArtifactMinted,
    AutomationConfirmed,
    AutomationConfirmedUpdate,
    Classification,
    Counts,
    InboundEvent,
    IntroPostsVerified,
    LinkSet,
    LinkVerified,
    MemberCountSet,
    MemberJoined,
    MessageArrived,
    MetricUpdate,
    ScientificProfileVerified,
    SocialAccountConnected,
    SocialConnected,
    SocialPostsSubmitted,
    Transition,
    VerifiedMemberAdded,
)
from ascent.errors import MalformedEventError
from ascent.services import metrics_store
from ascent.services.social_verification import verify_posts

if TYPE_CHECKING:
    from sqlalchemy import Engine

    from ascent.engine.cache import ConfigCache
    from ascent.services.progression import ProgressionEngine

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class NormalizationResult:
    """What one inbound event did.

    ``changed`` is ``False`` for replays and no-op updates;
    ``classification`` is only set for community messages.
    """

    update: MetricUpdate
    changed: bool
    classification: Classification | None = None
    transitions: tuple[Transition, ...] = field(default_factory=tuple)


class EventNormalizer:
    """Validate → convert → store → progress.

    Parameters
    ----------
    engine:
        SQLAlchemy engine backing the metrics store.
    progression:
        Engine run after every stored update.  ``None`` only stores.
    classifier:
        Message classifier; a default one sharing *cache* is built if omitted.
    """

    def __init__(
        self,
        engine: Engine,
        progression: ProgressionEngine | None = None,
        *,
        classifier: ActivityClassifier | None = None,
        cache: ConfigCache | None = None,
    ) -> None:
        self.engine = engine
        self.progression = progression
        self.classifier = classifier or ActivityClassifier(cache)
        self._converters: dict[
            type, Callable[[InboundEvent], tuple[MetricUpdate, Classification | None]]
        ] = {
            MessageArrived: self._convert_message,
            MemberJoined: self._convert_member_joined,
            AutomationConfirmed: self._convert_automation,
            ArtifactMinted: self._convert_artifact,
            SocialAccountConnected: self._convert_social_connected,
            SocialPostsSubmitted: self._convert_social_posts,
            LinkVerified: self._convert_link,
            ScientificProfileVerified: self._convert_profile,
        }

    # -------------------------------------------------------------------
    # Public API
    # -------------------------------------------------------------------
    def handle(self, event: InboundEvent) -> NormalizationResult:
        """Process one inbound event end to end.

        Raises
        ------
        MalformedEventError
            The event failed validation; nothing was stored.
        MetricsStoreUnavailable
            The store rejected the write; the event should be redelivered.
        """
        update, classification = self.to_update(event)
        changed = metrics_store.apply_update(self.engine, update)
        if changed:
            logger.debug("Applied %s for %s", type(update).__name__, update.project_id)
            if classification is not None and classification.counts is Counts.MESSAGE:
                self.classifier.record(event)

        transitions: tuple[Transition, ...] = ()
        if self.progression is not None:
            transitions = tuple(self.progression.process(update.project_id))
        return NormalizationResult(update, changed, classification, transitions)

    def to_update(self, event: InboundEvent) -> tuple[MetricUpdate, Classification | None]:
        """Validate *event* and convert it to its ``MetricUpdate`` variant."""
        converter = self._converters.get(type(event))
        if converter is None:
            error = MalformedEventError(type(event).__name__, ["unsupported event type"])
            logger.warning("%s", error)
            raise error
        try:
            event.validate()
        except MalformedEventError as exc:
            logger.warning("Rejected event: %s", exc)
            raise
        return converter(event)

    # -------------------------------------------------------------------
    # Converters — one per inbound event type
    # -------------------------------------------------------------------
    def _convert_message(self, event: MessageArrived):
        classification = self.classifier.classify(event)
        logger.debug(
            "Message %s in %s → %s (%s)",
            event.message_id, event.community_id,
            classification.counts, classification.reason,
        )
        update = ActivityCounted(
            project_id=event.project_id,
            community_id=event.community_id,
            message_id=event.message_id,
            counts=classification.counts,
            quality_delta=classification.quality_delta,
        )
        return update, classification

    def _convert_member_joined(self, event: MemberJoined):
        return MemberCountSet(event.project_id, event.community_id, event.new_member_count), None

    def _convert_automation(self, event: AutomationConfirmed):
        return AutomationConfirmedUpdate(
            event.project_id, event.community_id, event.member_count,
        ), None

    def _convert_artifact(self, event: ArtifactMinted):
        return ArtifactAdded(event.project_id, event.artifact_type), None

    def _convert_social_connected(self, event: SocialAccountConnected):
        return SocialConnected(event.project_id, event.handle.strip().lstrip("@")), None

    def _convert_social_posts(self, event: SocialPostsSubmitted):
        handle = metrics_store.get_social_handle(self.engine, event.project_id)
        accepted, rejected = verify_posts(event.urls, handle)
        for check in rejected:
            logger.info(
                "Intro post rejected for %s: %s (%s)",
                event.project_id, check.url, check.reason,
            )
        return IntroPostsVerified(
            project_id=event.project_id,
            posts=tuple(accepted),
            rejected_urls=tuple(check.url for check in rejected),
        ), None

    def _convert_link(self, event: LinkVerified):
        return LinkSet(event.project_id, event.link_kind, event.url.strip()), None

    def _convert_profile(self, event: ScientificProfileVerified):
        return VerifiedMemberAdded(event.project_id, event.member_id), None
