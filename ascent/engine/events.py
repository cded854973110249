"""
ascent.engine.events — Inbound Events & MetricUpdate Variants
==============================================================

Every event source (chat listener, API callbacks, pollers) builds one of
the frozen inbound event dataclasses below.  The normalizer validates it
with :meth:`validate` and turns it into exactly one ``MetricUpdate``
variant, which is the only shape the metrics store accepts.
"""

from __future__ import annotations

import enum
from dataclasses import MISSING, dataclass, field, fields
from typing import ClassVar, Union

from ascent.constants import ARTIFACT_TYPES, LINK_KINDS
from ascent.errors import MalformedEventError

__all__ = [
    "Attachment",
    "MessageArrived",
    "MemberJoined",
    "AutomationConfirmed",
    "ArtifactMinted",
    "SocialAccountConnected",
    "SocialPostsSubmitted",
    "LinkVerified",
    "ScientificProfileVerified",
    "InboundEvent",
    "Counts",
    "Classification",
    "ActivityCounted",
    "MemberCountSet",
    "AutomationConfirmedUpdate",
    "ArtifactAdded",
    "SocialConnected",
    "IntroPostsVerified",
    "LinkSet",
    "VerifiedMemberAdded",
    "MetricUpdate",
    "Transition",
]


# ---------------------------------------------------------------------------
# Validation helper
# ---------------------------------------------------------------------------
def _blank_fields(event: object, names: tuple[str, ...]) -> list[str]:
    problems = []
    for name in names:
        value = getattr(event, name)
        if value is None or (isinstance(value, str) and not value.strip()):
            problems.append(f"missing {name}")
    return problems


class _Validated:
    """Mixin: ``required`` fields must be non-blank strings."""

    kind: ClassVar[str] = "event"
    required: ClassVar[tuple[str, ...]] = ("project_id",)

    __slots__ = ()

    def _extra_problems(self) -> list[str]:
        return []

    def validate(self) -> None:
        problems = _blank_fields(self, self.required) + self._extra_problems()
        if problems:
            raise MalformedEventError(self.kind, problems)


# ---------------------------------------------------------------------------
# Inbound events
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class Attachment:
    name: str
    size: int = 0


@dataclass(frozen=True, slots=True)
class MessageArrived(_Validated):
    """A message posted in the project's linked community."""

    kind: ClassVar[str] = "message"
    required: ClassVar[tuple[str, ...]] = (
        "project_id", "community_id", "author_id", "message_id",
    )

    project_id: str
    community_id: str
    author_id: str
    message_id: str
    text: str = ""
    attachments: tuple[Attachment, ...] = field(default_factory=tuple)

    def _extra_problems(self) -> list[str]:
        if self.text is None:
            return ["missing text"]
        return []


@dataclass(frozen=True, slots=True)
class MemberJoined(_Validated):
    kind: ClassVar[str] = "member-joined"
    required: ClassVar[tuple[str, ...]] = ("project_id", "community_id")

    project_id: str
    community_id: str
    new_member_count: int

    def _extra_problems(self) -> list[str]:
        if not isinstance(self.new_member_count, int) or self.new_member_count < 0:
            return ["new_member_count must be a non-negative integer"]
        return []


@dataclass(frozen=True, slots=True)
class AutomationConfirmed(_Validated):
    """The bot was installed in (or re-confirmed for) the community."""

    kind: ClassVar[str] = "automation-confirmed"
    required: ClassVar[tuple[str, ...]] = ("project_id", "community_id")

    project_id: str
    community_id: str
    member_count: int

    def _extra_problems(self) -> list[str]:
        if not isinstance(self.member_count, int) or self.member_count < 0:
            return ["member_count must be a non-negative integer"]
        return []


@dataclass(frozen=True, slots=True)
class ArtifactMinted(_Validated):
    kind: ClassVar[str] = "artifact-minted"
    required: ClassVar[tuple[str, ...]] = ("project_id", "artifact_type")

    project_id: str
    artifact_type: str

    def _extra_problems(self) -> list[str]:
        if self.artifact_type and self.artifact_type not in ARTIFACT_TYPES:
            return [f"artifact_type must be one of {sorted(ARTIFACT_TYPES)}"]
        return []


@dataclass(frozen=True, slots=True)
class SocialAccountConnected(_Validated):
    kind: ClassVar[str] = "social-connected"
    required: ClassVar[tuple[str, ...]] = ("project_id", "handle")

    project_id: str
    handle: str


@dataclass(frozen=True, slots=True)
class SocialPostsSubmitted(_Validated):
    """Intro post URLs; each is checked against the connected handle."""

    kind: ClassVar[str] = "social-posts"

    project_id: str
    urls: tuple[str, ...] = field(default_factory=tuple)

    def _extra_problems(self) -> list[str]:
        if not self.urls:
            return ["missing urls"]
        return []


@dataclass(frozen=True, slots=True)
class LinkVerified(_Validated):
    kind: ClassVar[str] = "link-verified"
    required: ClassVar[tuple[str, ...]] = ("project_id", "link_kind", "url")

    project_id: str
    link_kind: str
    url: str

    def _extra_problems(self) -> list[str]:
        if self.link_kind and self.link_kind not in LINK_KINDS:
            return [f"link_kind must be one of {sorted(LINK_KINDS)}"]
        return []


@dataclass(frozen=True, slots=True)
class ScientificProfileVerified(_Validated):
    kind: ClassVar[str] = "profile-verified"
    required: ClassVar[tuple[str, ...]] = ("project_id", "member_id")

    project_id: str
    member_id: str


InboundEvent = Union[
    MessageArrived,
    MemberJoined,
    AutomationConfirmed,
    ArtifactMinted,
    SocialAccountConnected,
    SocialPostsSubmitted,
    LinkVerified,
    ScientificProfileVerified,
]


EVENT_TYPES: dict[str, type] = {
    cls.kind: cls
    for cls in (
        MessageArrived,
        MemberJoined,
        AutomationConfirmed,
        ArtifactMinted,
        SocialAccountConnected,
        SocialPostsSubmitted,
        LinkVerified,
        ScientificProfileVerified,
    )
}


def parse_event(kind: str, payload: dict) -> InboundEvent:
    """Build and validate an inbound event from a loose ``payload`` dict.

    Unknown keys are ignored; missing or invalid ones raise
    :class:`MalformedEventError`.
    """
    cls = EVENT_TYPES.get(kind)
    if cls is None:
        raise MalformedEventError(kind, [f"unknown event kind {kind!r}"])

    names = {f.name for f in fields(cls)}
    data = {k: v for k, v in payload.items() if k in names}
    try:
        if "attachments" in data:
            data["attachments"] = tuple(
                a if isinstance(a, Attachment)
                else Attachment(name=str(a.get("name", "")), size=int(a.get("size") or 0))
                for a in data["attachments"] or ()
            )
        if "urls" in data:
            data["urls"] = tuple(str(u) for u in data["urls"] or ())
    except (AttributeError, TypeError, ValueError) as exc:
        raise MalformedEventError(kind, [str(exc)]) from exc

    missing = [
        f.name for f in fields(cls)
        if f.name not in data and f.default is MISSING and f.default_factory is MISSING
    ]
    if missing:
        raise MalformedEventError(kind, [f"missing {name}" for name in missing])

    event = cls(**data)
    event.validate()
    return event


# ---------------------------------------------------------------------------
# Classification
# ---------------------------------------------------------------------------
class Counts(enum.StrEnum):
    PAPER = "paper"
    MESSAGE = "message"
    IGNORED = "ignored"


@dataclass(frozen=True, slots=True)
class Classification:
    """Result of classifying one community message.

    ``quality_delta`` is only meaningful for ``Counts.MESSAGE``.
    """

    counts: Counts
    quality_delta: float = 0.0
    reason: str = ""


# ---------------------------------------------------------------------------
# MetricUpdate — one variant per event kind
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class ActivityCounted:
    project_id: str
    community_id: str
    message_id: str
    counts: Counts
    quality_delta: float = 0.0


@dataclass(frozen=True, slots=True)
class MemberCountSet:
    project_id: str
    community_id: str
    member_count: int


@dataclass(frozen=True, slots=True)
class AutomationConfirmedUpdate:
    project_id: str
    community_id: str
    member_count: int


@dataclass(frozen=True, slots=True)
class ArtifactAdded:
    project_id: str
    artifact_type: str


@dataclass(frozen=True, slots=True)
class SocialConnected:
    project_id: str
    handle: str


@dataclass(frozen=True, slots=True)
class IntroPostsVerified:
    project_id: str
    # (post_id, url) pairs that passed handle verification
    posts: tuple[tuple[str, str], ...]
    rejected_urls: tuple[str, ...] = ()


@dataclass(frozen=True, slots=True)
class LinkSet:
    project_id: str
    link_kind: str
    url: str


@dataclass(frozen=True, slots=True)
class VerifiedMemberAdded:
    project_id: str
    member_id: str


MetricUpdate = Union[
    ActivityCounted,
    MemberCountSet,
    AutomationConfirmedUpdate,
    ArtifactAdded,
    SocialConnected,
    IntroPostsVerified,
    LinkSet,
    VerifiedMemberAdded,
]


# ---------------------------------------------------------------------------
# Transition — an applied level change
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class Transition:
    """One applied step on the level ladder.

    ``completed`` marks the terminal step out of level 7, for which
    ``new_level == previous_level``.
    """

    project_id: str
    previous_level: int
    new_level: int
    completed: bool = False
