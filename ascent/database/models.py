"""
ascent.database.models — SQLAlchemy 2.0 Data Models
====================================================

Tables:
- projects            — The entity climbing the level ladder
- community_records   — Aggregated chat-community metrics (one per project)
- social_records      — Social-account verification state (one per project)
- artifact_records    — Append-only minted artifacts (idea / vision)
- processed_messages  — Dedup ledger for replayed chat messages
- verified_members    — Dedup ledger for scientific-profile verifications
- verified_posts      — Dedup ledger for social intro posts
- level_changes       — Append-only journal of applied level transitions
- settings            — Tuning key-value store
"""

from __future__ import annotations

import enum
import uuid
from datetime import datetime

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


# ---------------------------------------------------------------------------
# Base
# ---------------------------------------------------------------------------
class Base(DeclarativeBase):
    """Shared base for all Ascent ORM models."""


def _new_id() -> str:
    return str(uuid.uuid4())


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------
class ArtifactType(enum.StrEnum):
    """Minted credential kinds that gate level 1 → 2."""
    IDEA = "idea"
    VISION = "vision"


class LinkKind(enum.StrEnum):
    """Verified link kinds and the write-once SocialRecord column they fill."""
    SPACE = "space"
    BLOGPOST = "blogpost"
    THREAD = "thread"
    VIDEO = "video"

    @property
    def column(self) -> str:
        return _LINK_COLUMNS[self]


_LINK_COLUMNS: dict[LinkKind, str] = {
    LinkKind.SPACE: "space_url",
    LinkKind.BLOGPOST: "blogpost_url",
    LinkKind.THREAD: "thread_url",
    LinkKind.VIDEO: "welcome_video_url",
}


# ---------------------------------------------------------------------------
# Projects
# ---------------------------------------------------------------------------
class Project(Base):
    __tablename__ = "projects"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=_new_id)
    name: Mapped[str | None] = mapped_column(String(200), default=None)
    contact_email: Mapped[str | None] = mapped_column(String(320), default=None)
    level: Mapped[int] = mapped_column(Integer, default=1, nullable=False)
    verified_member_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    # Terminal marker; set once when the level-7 gate is satisfied
    completed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), default=None
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    community: Mapped[CommunityRecord | None] = relationship(
        back_populates="project", uselist=False, cascade="all, delete-orphan"
    )
    social: Mapped[SocialRecord | None] = relationship(
        back_populates="project", uselist=False, cascade="all, delete-orphan"
    )
    artifacts: Mapped[list[ArtifactRecord]] = relationship(
        back_populates="project", cascade="all, delete-orphan"
    )

    __table_args__ = (
        CheckConstraint("level >= 1 AND level <= 7", name="ck_projects_level_range"),
    )

    def __repr__(self) -> str:
        return f"<Project id={self.id!r} lvl={self.level}>"


# ---------------------------------------------------------------------------
# CommunityRecord — chat-community metrics
# ---------------------------------------------------------------------------
class CommunityRecord(Base):
    """Aggregated metrics for the project's linked chat community.

    ``messages_count`` and ``papers_shared`` only ever grow, and only via
    the classifier path.  ``quality_score`` is a moving average.
    """
    __tablename__ = "community_records"

    project_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("projects.id", ondelete="CASCADE"), primary_key=True
    )
    community_id: Mapped[str] = mapped_column(String(64), nullable=False)
    member_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    messages_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    papers_shared: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    quality_score: Mapped[float] = mapped_column(Float, default=50.0, nullable=False)
    bot_confirmed: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    link_verified: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    project: Mapped[Project] = relationship(back_populates="community")

    __table_args__ = (
        UniqueConstraint("community_id", name="uq_community_records_community"),
    )

    def __repr__(self) -> str:
        return (
            f"<CommunityRecord project={self.project_id!r} "
            f"members={self.member_count} msgs={self.messages_count} "
            f"papers={self.papers_shared}>"
        )


# ---------------------------------------------------------------------------
# SocialRecord — social-account verification state
# ---------------------------------------------------------------------------
class SocialRecord(Base):
    """Social-platform state.  Every ``*_url`` column is write-once."""
    __tablename__ = "social_records"

    project_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("projects.id", ondelete="CASCADE"), primary_key=True
    )
    connected: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    handle: Mapped[str | None] = mapped_column(String(100), default=None)
    intro_post_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    space_url: Mapped[str | None] = mapped_column(Text, default=None)
    blogpost_url: Mapped[str | None] = mapped_column(Text, default=None)
    thread_url: Mapped[str | None] = mapped_column(Text, default=None)
    welcome_video_url: Mapped[str | None] = mapped_column(Text, default=None)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    project: Mapped[Project] = relationship(back_populates="social")

    def __repr__(self) -> str:
        return (
            f"<SocialRecord project={self.project_id!r} "
            f"connected={self.connected} posts={self.intro_post_count}>"
        )


# ---------------------------------------------------------------------------
# ArtifactRecord — append-only minted artifacts
# ---------------------------------------------------------------------------
class ArtifactRecord(Base):
    __tablename__ = "artifact_records"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    project_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("projects.id", ondelete="CASCADE"), nullable=False
    )
    type: Mapped[str] = mapped_column(String(20), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    project: Mapped[Project] = relationship(back_populates="artifacts")

    __table_args__ = (
        Index("ix_artifact_records_project_type", "project_id", "type"),
    )

    def __repr__(self) -> str:
        return f"<ArtifactRecord project={self.project_id!r} type={self.type!r}>"


# ---------------------------------------------------------------------------
# ProcessedMessage — replay ledger for chat messages
# ---------------------------------------------------------------------------
class ProcessedMessage(Base):
    """One row per counted (community, message) pair.

    Inserted in the same transaction as the counter increment, so a
    rolled-back increment leaves the message eligible for redelivery.
    """
    __tablename__ = "processed_messages"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    community_id: Mapped[str] = mapped_column(String(64), nullable=False)
    message_id: Mapped[str] = mapped_column(String(64), nullable=False)
    classification: Mapped[str] = mapped_column(String(20), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    __table_args__ = (
        UniqueConstraint(
            "community_id", "message_id", name="uq_processed_messages_community_message",
        ),
    )


# ---------------------------------------------------------------------------
# VerifiedMember — replay ledger for scientific-profile verifications
# ---------------------------------------------------------------------------
class VerifiedMember(Base):
    __tablename__ = "verified_members"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    project_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("projects.id", ondelete="CASCADE"), nullable=False
    )
    member_id: Mapped[str] = mapped_column(String(64), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    __table_args__ = (
        UniqueConstraint("project_id", "member_id", name="uq_verified_members_project_member"),
    )


# ---------------------------------------------------------------------------
# VerifiedPost — replay ledger for social intro posts
# ---------------------------------------------------------------------------
class VerifiedPost(Base):
    """One row per intro post counted toward ``intro_post_count``."""
    __tablename__ = "verified_posts"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    project_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("projects.id", ondelete="CASCADE"), nullable=False
    )
    post_id: Mapped[str] = mapped_column(String(32), nullable=False)
    url: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    __table_args__ = (
        UniqueConstraint("project_id", "post_id", name="uq_verified_posts_project_post"),
    )


# ---------------------------------------------------------------------------
# LevelChange — append-only transition journal
# ---------------------------------------------------------------------------
class LevelChange(Base):
    """Persisted ``LevelChanged`` event.

    ``new_level == previous_level`` marks the terminal completion entry.
    """
    __tablename__ = "level_changes"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    project_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("projects.id", ondelete="CASCADE"), nullable=False
    )
    previous_level: Mapped[int] = mapped_column(Integer, nullable=False)
    new_level: Mapped[int] = mapped_column(Integer, nullable=False)
    completed: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    __table_args__ = (
        Index("ix_level_changes_project_time", "project_id", "created_at"),
    )

    def __repr__(self) -> str:
        return (
            f"<LevelChange project={self.project_id!r} "
            f"{self.previous_level}→{self.new_level}>"
        )


# ---------------------------------------------------------------------------
# Setting — tuning key-value store
# ---------------------------------------------------------------------------
class Setting(Base):
    """Key-value configuration store.

    Classifier thresholds and gate threshold overrides live here so they
    can be adjusted without redeploying.  Values are stored as JSON
    strings; typed accessors live in :class:`~ascent.engine.cache.ConfigCache`.
    """
    __tablename__ = "settings"

    key: Mapped[str] = mapped_column(String(100), primary_key=True)
    value_json: Mapped[str] = mapped_column(Text, nullable=False)
    category: Mapped[str] = mapped_column(String(50), nullable=False, default="general")
    description: Mapped[str | None] = mapped_column(Text, default=None)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    __table_args__ = (
        Index("ix_settings_category", "category"),
    )

    def __repr__(self) -> str:
        return f"<Setting key={self.key!r} category={self.category!r}>"
