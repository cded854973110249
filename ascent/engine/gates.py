"""
ascent.engine.gates — Gate Evaluator & Level Table
===================================================

The single table of level gates.  Each level maps to a pure handler that
lists the requirement checks for leaving that level; a gate is satisfied
when every check is met.

``missing`` is guidance for the user only.  The transition decision is
the AND of the checks, nothing else.

This module is pure calculation — no database I/O.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING

from ascent.constants import LEVEL_TITLES, MAX_LEVEL

if TYPE_CHECKING:
    from ascent.engine.cache import ConfigCache


# ---------------------------------------------------------------------------
# Metrics snapshot — read model consumed by the gates
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class MetricsSnapshot:
    """Point-in-time view of everything the gates read for one project."""

    level: int = 1
    completed: bool = False
    # Artifacts
    has_idea_artifact: bool = False
    has_vision_artifact: bool = False
    # Community
    member_count: int = 0
    messages_count: int = 0
    papers_shared: int = 0
    quality_score: float = 50.0
    bot_confirmed: bool = False
    link_verified: bool = False
    # Social
    social_connected: bool = False
    intro_post_count: int = 0
    space_url: str | None = None
    blogpost_url: str | None = None
    thread_url: str | None = None
    welcome_video_url: str | None = None
    # Project
    verified_member_count: int = 0


# ---------------------------------------------------------------------------
# Requirement & result types
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class Requirement:
    """One sub-predicate of a gate."""

    token: str
    label: str
    met: bool
    current: int | None = None
    target: int | None = None


@dataclass(frozen=True, slots=True)
class GateResult:
    """Outcome of one gate check.  ``target`` is ``None`` for the completion gate."""

    satisfied: bool
    missing: tuple[str, ...]
    level: int
    target: int | None
    requirements: tuple[Requirement, ...] = ()

    @property
    def completes(self) -> bool:
        return self.target is None


# ---------------------------------------------------------------------------
# Default thresholds (overridable via ``gates.*`` settings)
# ---------------------------------------------------------------------------
DEFAULT_THRESHOLDS: dict[str, int] = {
    "gates.level2.min_members": 4,
    "gates.level3.min_members": 5,
    "gates.level3.min_papers": 5,
    "gates.level3.min_messages": 50,
    "gates.level4.min_intro_posts": 3,
    "gates.level5.min_verified_members": 10,
}


def _threshold(cache: ConfigCache | None, key: str) -> int:
    default = DEFAULT_THRESHOLDS[key]
    return cache.get_int(key, default) if cache else default


def _at_least(token: str, label: str, current: int, target: int) -> Requirement:
    return Requirement(f"{token}>={target}", label, current >= target, current, target)


def _is_set(token: str, label: str, value: object) -> Requirement:
    return Requirement(token, label, bool(value))


# ---------------------------------------------------------------------------
# Gate handlers — pure functions (metrics, cache) → requirements
# ---------------------------------------------------------------------------
def _gate_level_1(m: MetricsSnapshot, cache: ConfigCache | None) -> list[Requirement]:
    return [
        _is_set("ideaArtifact", "Mint your Idea NFT", m.has_idea_artifact),
        _is_set("visionArtifact", "Mint your Vision NFT", m.has_vision_artifact),
    ]


def _gate_level_2(m: MetricsSnapshot, cache: ConfigCache | None) -> list[Requirement]:
    return [
        _is_set("linkVerified", "Connect your community and install the bot", m.link_verified),
        _at_least(
            "memberCount", "Community members", m.member_count,
            _threshold(cache, "gates.level2.min_members"),
        ),
    ]


def _gate_level_3(m: MetricsSnapshot, cache: ConfigCache | None) -> list[Requirement]:
    return [
        _at_least(
            "memberCount", "Community members", m.member_count,
            _threshold(cache, "gates.level3.min_members"),
        ),
        _at_least(
            "papersShared", "Scientific papers shared", m.papers_shared,
            _threshold(cache, "gates.level3.min_papers"),
        ),
        _at_least(
            "messagesCount", "Quality messages", m.messages_count,
            _threshold(cache, "gates.level3.min_messages"),
        ),
    ]


def _gate_level_4(m: MetricsSnapshot, cache: ConfigCache | None) -> list[Requirement]:
    return [
        _is_set("socialConnected", "Connect your social account", m.social_connected),
        _at_least(
            "introPostCount", "Verified intro posts", m.intro_post_count,
            _threshold(cache, "gates.level4.min_intro_posts"),
        ),
    ]


def _gate_level_5(m: MetricsSnapshot, cache: ConfigCache | None) -> list[Requirement]:
    return [
        _at_least(
            "verifiedMemberCount", "Verified scientists", m.verified_member_count,
            _threshold(cache, "gates.level5.min_verified_members"),
        ),
        _is_set("spaceUrl", "Host a live audio space", m.space_url),
    ]


def _gate_level_6(m: MetricsSnapshot, cache: ConfigCache | None) -> list[Requirement]:
    return [
        _is_set("blogpostUrl", "Publish a blog post", m.blogpost_url),
        _is_set("threadUrl", "Post a thread about your vision", m.thread_url),
    ]


def _gate_level_7(m: MetricsSnapshot, cache: ConfigCache | None) -> list[Requirement]:
    return [
        _is_set("welcomeVideoUrl", "Share a welcome video", m.welcome_video_url),
    ]


GATE_HANDLERS: dict[int, Callable[[MetricsSnapshot, ConfigCache | None], list[Requirement]]] = {
    1: _gate_level_1,
    2: _gate_level_2,
    3: _gate_level_3,
    4: _gate_level_4,
    5: _gate_level_5,
    6: _gate_level_6,
    7: _gate_level_7,
}


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------
def evaluate_gate(
    level: int,
    metrics: MetricsSnapshot,
    cache: ConfigCache | None = None,
) -> GateResult:
    """Evaluate the gate for leaving *level*.

    Raises
    ------
    ValueError
        If *level* is outside the ladder.
    """
    handler = GATE_HANDLERS.get(level)
    if handler is None:
        raise ValueError(f"No gate defined for level {level}")

    requirements = tuple(handler(metrics, cache))
    satisfied = all(r.met for r in requirements)
    missing = tuple(r.token for r in requirements if not r.met)
    target = level + 1 if level < MAX_LEVEL else None
    return GateResult(
        satisfied=satisfied,
        missing=missing,
        level=level,
        target=target,
        requirements=requirements,
    )


def describe_requirements(
    level: int,
    metrics: MetricsSnapshot,
    cache: ConfigCache | None = None,
) -> str:
    """Render a user-facing checklist for the gate out of *level*."""
    if metrics.completed:
        return "🎉 All levels complete."

    result = evaluate_gate(level, metrics, cache)
    if result.target is None:
        heading = f"Level {level} ({LEVEL_TITLES[level]}) → journey complete"
    else:
        heading = (
            f"Level {level} ({LEVEL_TITLES[level]}) → "
            f"Level {result.target} ({LEVEL_TITLES[result.target]})"
        )

    lines = [heading]
    for req in result.requirements:
        mark = "✅" if req.met else "⬜"
        if req.target is not None:
            lines.append(f"{mark} {req.label}: {min(req.current or 0, req.target)}/{req.target}")
        else:
            lines.append(f"{mark} {req.label}")
    return "\n".join(lines)
