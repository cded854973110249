"""
ascent.services.metrics_store — Durable Per-Project Metrics
============================================================

Every write here is safe under concurrent delivery from several event
sources for the same project:

* counters are incremented in SQL (``col = col + 1``), never read-modify-written;
* replayable events claim a row in a ledger table (``processed_messages``,
  ``verified_members``, ``verified_posts``) inside a SAVEPOINT, in the
  same transaction as the counter change, so a rolled-back write leaves
  the event eligible for redelivery;
* URL fields are write-once (``UPDATE … WHERE col IS NULL``);
* ``projects.level`` and ``projects.completed_at`` change only through
  compare-and-set, and each win is journalled in ``level_changes`` in the
  same transaction.

Any :class:`~sqlalchemy.exc.SQLAlchemyError` escaping an operation is
logged and re-raised as :class:`~ascent.errors.MetricsStoreUnavailable`.
"""

from __future__ import annotations

import functools
import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING, ParamSpec, TypeVar

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from ascent.constants import MAX_LEVEL
from ascent.database.engine import get_session
from ascent.database.models import (
    ArtifactRecord,
    CommunityRecord,
    LevelChange,
    LinkKind,
    ProcessedMessage,
    Project,
    SocialRecord,
    VerifiedMember,
    VerifiedPost,
)
from ascent.engine.events import (
    ActivityCounted,
    ArtifactAdded,
    AutomationConfirmedUpdate,
    Counts,
    IntroPostsVerified,
    LinkSet,
    MemberCountSet,
    MetricUpdate,
    SocialConnected,
    Transition,
    VerifiedMemberAdded,
)
from ascent.engine.gates import MetricsSnapshot
from ascent.errors import MetricsStoreUnavailable, UnknownProjectError

if TYPE_CHECKING:
    from sqlalchemy import Engine

logger = logging.getLogger(__name__)

P = ParamSpec("P")
T = TypeVar("T")

QUALITY_DECAY = 0.9
QUALITY_WEIGHT = 0.1


def _store_operation(func_: Callable[P, T]) -> Callable[P, T]:
    """Translate driver/ORM failures into :class:`MetricsStoreUnavailable`."""

    @functools.wraps(func_)
    def wrapper(*args: P.args, **kwargs: P.kwargs) -> T:
        try:
            return func_(*args, **kwargs)
        except SQLAlchemyError as exc:
            logger.error("Metrics store %s failed: %s", func_.__name__, exc)
            raise MetricsStoreUnavailable(f"{func_.__name__} failed: {exc}") from exc

    return wrapper


# ---------------------------------------------------------------------------
# Row creation helpers (race-safe get-or-create)
# ---------------------------------------------------------------------------
def _insert_if_missing(session: Session, row: object) -> bool:
    """Insert *row* in a SAVEPOINT; ``False`` if a unique key already exists."""
    try:
        with session.begin_nested():
            session.add(row)
            session.flush()
    except IntegrityError:
        return False
    return True


def _ensure_project(session: Session, project_id: str) -> None:
    if session.get(Project, project_id) is None:
        _insert_if_missing(session, Project(id=project_id, level=1))


def _ensure_community(session: Session, project_id: str, community_id: str) -> bool:
    """Make sure *project_id* has a community record.  ``False`` if it can't be linked."""
    _ensure_project(session, project_id)
    record = session.get(CommunityRecord, project_id)
    if record is None:
        if _insert_if_missing(
            session, CommunityRecord(project_id=project_id, community_id=community_id),
        ):
            return True
        record = session.get(CommunityRecord, project_id)
        if record is None:
            logger.warning(
                "Community %s is already linked to another project; not linking %s",
                community_id, project_id,
            )
            return False
    if record.community_id != community_id:
        logger.warning(
            "Project %s is linked to community %s; ignoring community %s",
            project_id, record.community_id, community_id,
        )
        return False
    return True


def _ensure_social(session: Session, project_id: str) -> None:
    _ensure_project(session, project_id)
    if session.get(SocialRecord, project_id) is None:
        _insert_if_missing(session, SocialRecord(project_id=project_id))


# ---------------------------------------------------------------------------
# Projects & communities
# ---------------------------------------------------------------------------
@_store_operation
def get_or_create_project(
    engine: Engine,
    project_id: str,
    *,
    name: str | None = None,
    contact_email: str | None = None,
) -> bool:
    """Create the project on first contact.  Returns ``True`` if created.

    *name* only fills a blank name; *contact_email* replaces the stored address.
    """
    with get_session(engine) as session:
        created = False
        if session.get(Project, project_id) is None:
            created = _insert_if_missing(session, Project(id=project_id, level=1))
        if name or contact_email:
            project = session.get(Project, project_id)
            if name and not project.name:
                project.name = name
            if contact_email:
                project.contact_email = contact_email
        if created:
            logger.info("Project %s created at level 1", project_id)
        return created


@_store_operation
def link_community(engine: Engine, project_id: str, community_id: str) -> bool:
    """Create the project's community record if missing.  ``False`` on a link conflict."""
    with get_session(engine) as session:
        return _ensure_community(session, project_id, community_id)


@_store_operation
def project_for_community(engine: Engine, community_id: str) -> str | None:
    """Return the project linked to *community_id*, or ``None``."""
    with Session(engine) as session:
        return session.scalar(
            select(CommunityRecord.project_id).where(
                CommunityRecord.community_id == community_id
            )
        )


@_store_operation
def community_for_project(engine: Engine, project_id: str) -> str | None:
    with Session(engine) as session:
        return session.scalar(
            select(CommunityRecord.community_id).where(
                CommunityRecord.project_id == project_id
            )
        )


@dataclass(frozen=True, slots=True)
class ProjectContact:
    project_id: str
    name: str | None
    contact_email: str | None


@_store_operation
def get_contact(engine: Engine, project_id: str) -> ProjectContact:
    with Session(engine) as session:
        project = session.get(Project, project_id)
        if project is None:
            raise UnknownProjectError(project_id)
        return ProjectContact(project.id, project.name, project.contact_email)


# ---------------------------------------------------------------------------
# MetricUpdate appliers — one per variant
# ---------------------------------------------------------------------------
def _apply_activity(session: Session, u: ActivityCounted) -> bool:
    if not _ensure_community(session, u.project_id, u.community_id):
        return False
    claimed = _insert_if_missing(session, ProcessedMessage(
        community_id=u.community_id,
        message_id=u.message_id,
        classification=str(u.counts),
    ))
    if not claimed:
        logger.debug(
            "Replay of message %s in community %s ignored", u.message_id, u.community_id,
        )
        return False

    stmt = update(CommunityRecord).where(CommunityRecord.project_id == u.project_id)
    if u.counts == Counts.PAPER:
        stmt = stmt.values(papers_shared=CommunityRecord.papers_shared + 1)
    elif u.counts == Counts.MESSAGE:
        delta = max(0.0, min(100.0, float(u.quality_delta)))
        stmt = stmt.values(
            messages_count=CommunityRecord.messages_count + 1,
            quality_score=CommunityRecord.quality_score * QUALITY_DECAY + delta * QUALITY_WEIGHT,
        )
    else:
        return False
    session.execute(stmt.execution_options(synchronize_session=False))
    return True


def _apply_member_count(session: Session, u: MemberCountSet) -> bool:
    if not _ensure_community(session, u.project_id, u.community_id):
        return False
    session.execute(
        update(CommunityRecord)
        .where(CommunityRecord.project_id == u.project_id)
        .values(member_count=u.member_count)
        .execution_options(synchronize_session=False)
    )
    return True


def _apply_automation(session: Session, u: AutomationConfirmedUpdate) -> bool:
    if not _ensure_community(session, u.project_id, u.community_id):
        return False
    session.execute(
        update(CommunityRecord)
        .where(CommunityRecord.project_id == u.project_id)
        .values(bot_confirmed=True, link_verified=True, member_count=u.member_count)
        .execution_options(synchronize_session=False)
    )
    return True


def _apply_artifact(session: Session, u: ArtifactAdded) -> bool:
    _ensure_project(session, u.project_id)
    session.add(ArtifactRecord(project_id=u.project_id, type=u.artifact_type))
    return True


def _apply_social_connected(session: Session, u: SocialConnected) -> bool:
    _ensure_social(session, u.project_id)
    session.execute(
        update(SocialRecord)
        .where(SocialRecord.project_id == u.project_id)
        .values(connected=True, handle=u.handle)
        .execution_options(synchronize_session=False)
    )
    return True


def _apply_intro_posts(session: Session, u: IntroPostsVerified) -> bool:
    _ensure_social(session, u.project_id)
    added = 0
    for post_id, url in u.posts:
        if _insert_if_missing(session, VerifiedPost(project_id=u.project_id, post_id=post_id, url=url)):
            added += 1
        else:
            logger.debug("Intro post %s already counted for %s", post_id, u.project_id)
    if added:
        session.execute(
            update(SocialRecord)
            .where(SocialRecord.project_id == u.project_id)
            .values(intro_post_count=SocialRecord.intro_post_count + added)
            .execution_options(synchronize_session=False)
        )
    return added > 0


def _apply_link(session: Session, u: LinkSet) -> bool:
    _ensure_social(session, u.project_id)
    column = getattr(SocialRecord, LinkKind(u.link_kind).column)
    result = session.execute(
        update(SocialRecord)
        .where(SocialRecord.project_id == u.project_id, column.is_(None))
        .values({column: u.url})
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        logger.debug("%s link already set for %s; keeping it", u.link_kind, u.project_id)
        return False
    return True


def _apply_verified_member(session: Session, u: VerifiedMemberAdded) -> bool:
    _ensure_project(session, u.project_id)
    if not _insert_if_missing(
        session, VerifiedMember(project_id=u.project_id, member_id=u.member_id),
    ):
        logger.debug("Member %s already verified for %s", u.member_id, u.project_id)
        return False
    session.execute(
        update(Project)
        .where(Project.id == u.project_id)
        .values(verified_member_count=Project.verified_member_count + 1)
        .execution_options(synchronize_session=False)
    )
    return True


_APPLIERS: dict[type, Callable[[Session, object], bool]] = {
    ActivityCounted: _apply_activity,
    MemberCountSet: _apply_member_count,
    AutomationConfirmedUpdate: _apply_automation,
    ArtifactAdded: _apply_artifact,
    SocialConnected: _apply_social_connected,
    IntroPostsVerified: _apply_intro_posts,
    LinkSet: _apply_link,
    VerifiedMemberAdded: _apply_verified_member,
}


@_store_operation
def apply_update(engine: Engine, update_: MetricUpdate) -> bool:
    """Apply one MetricUpdate atomically.

    Returns ``True`` if any stored value changed, ``False`` for replays
    and no-op updates.
    """
    applier = _APPLIERS.get(type(update_))
    if applier is None:
        raise TypeError(f"Unsupported metric update: {type(update_).__name__}")
    with get_session(engine) as session:
        return applier(session, update_)


# ---------------------------------------------------------------------------
# Snapshot
# ---------------------------------------------------------------------------
@_store_operation
def load_snapshot(engine: Engine, project_id: str) -> MetricsSnapshot:
    """Read everything the gates need for *project_id*.

    Raises
    ------
    UnknownProjectError
        If the project has never been seen.
    """
    with Session(engine) as session:
        project = session.get(Project, project_id)
        if project is None:
            raise UnknownProjectError(project_id)
        community = session.get(CommunityRecord, project_id)
        social = session.get(SocialRecord, project_id)
        artifact_types = set(session.scalars(
            select(ArtifactRecord.type)
            .where(ArtifactRecord.project_id == project_id)
            .distinct()
        ))

        return MetricsSnapshot(
            level=project.level,
            completed=project.completed_at is not None,
            has_idea_artifact="idea" in artifact_types,
            has_vision_artifact="vision" in artifact_types,
            member_count=community.member_count if community else 0,
            messages_count=community.messages_count if community else 0,
            papers_shared=community.papers_shared if community else 0,
            quality_score=community.quality_score if community else 50.0,
            bot_confirmed=community.bot_confirmed if community else False,
            link_verified=community.link_verified if community else False,
            social_connected=social.connected if social else False,
            intro_post_count=social.intro_post_count if social else 0,
            space_url=social.space_url if social else None,
            blogpost_url=social.blogpost_url if social else None,
            thread_url=social.thread_url if social else None,
            welcome_video_url=social.welcome_video_url if social else None,
            verified_member_count=project.verified_member_count,
        )


@_store_operation
def get_social_handle(engine: Engine, project_id: str) -> str | None:
    with Session(engine) as session:
        social = session.get(SocialRecord, project_id)
        if social is None or not social.connected:
            return None
        return social.handle


# ---------------------------------------------------------------------------
# Compare-and-set level writes
# ---------------------------------------------------------------------------
@_store_operation
def compare_and_set_level(engine: Engine, project_id: str, expected: int) -> Transition | None:
    """Advance *project_id* from *expected* to ``expected + 1``.

    Returns the applied :class:`Transition`, or ``None`` if another caller
    already moved the level (or completed the project).
    """
    if not 1 <= expected < MAX_LEVEL:
        raise ValueError(f"Cannot advance from level {expected}")
    new_level = expected + 1
    with get_session(engine) as session:
        result = session.execute(
            update(Project)
            .where(
                Project.id == project_id,
                Project.level == expected,
                Project.completed_at.is_(None),
            )
            .values(level=new_level)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            return None
        session.add(LevelChange(
            project_id=project_id, previous_level=expected, new_level=new_level,
        ))
    return Transition(project_id, expected, new_level)


@_store_operation
def mark_completed(engine: Engine, project_id: str) -> Transition | None:
    """Set the terminal marker once.  ``None`` if already complete."""
    with get_session(engine) as session:
        result = session.execute(
            update(Project)
            .where(
                Project.id == project_id,
                Project.level == MAX_LEVEL,
                Project.completed_at.is_(None),
            )
            .values(completed_at=func.now())
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            return None
        session.add(LevelChange(
            project_id=project_id,
            previous_level=MAX_LEVEL,
            new_level=MAX_LEVEL,
            completed=True,
        ))
    return Transition(project_id, MAX_LEVEL, MAX_LEVEL, completed=True)


@_store_operation
def level_history(engine: Engine, project_id: str) -> list[Transition]:
    """Every applied transition for *project_id*, oldest first."""
    with Session(engine) as session:
        rows = session.scalars(
            select(LevelChange)
            .where(LevelChange.project_id == project_id)
            .order_by(LevelChange.id)
        ).all()
        return [
            Transition(r.project_id, r.previous_level, r.new_level, completed=r.completed)
            for r in rows
        ]


@_store_operation
def latest_level_change_id(engine: Engine) -> int:
    """Id of the newest journal row, ``0`` when the journal is empty."""
    with Session(engine) as session:
        return session.scalar(select(func.max(LevelChange.id))) or 0


@_store_operation
def level_changes_since(
    engine: Engine, after_id: int, limit: int = 100,
) -> list[tuple[int, Transition]]:
    """Journal rows with an id above *after_id*, across all projects, oldest first."""
    with Session(engine) as session:
        rows = session.scalars(
            select(LevelChange)
            .where(LevelChange.id > after_id)
            .order_by(LevelChange.id)
            .limit(limit)
        ).all()
        return [
            (r.id, Transition(r.project_id, r.previous_level, r.new_level, completed=r.completed))
            for r in rows
        ]
