"""
ascent.api.routes.events — Inbound event callbacks
===================================================

``POST /api/events/{kind}`` for every event source that is not the chat
bot (artifact minting, social verification, link checks, profile
verification), plus the chat kinds for sources that relay them over HTTP.

Status codes:

* 422 — payload failed schema validation,
* 400 — payload is well-formed JSON but fails event validation,
* 404 — unknown event kind,
* 503 — metrics store unavailable; the caller should retry.
"""

from __future__ import annotations

import logging
from typing import Any, Literal

from fastapi import APIRouter, Body, Depends, HTTPException, status
from pydantic import BaseModel, Field, ValidationError

from ascent.api.deps import get_normalizer, require_api_key
from ascent.database.engine import run_db
from ascent.engine.events import parse_event
from ascent.errors import MalformedEventError, MetricsStoreUnavailable, UnknownProjectError
from ascent.services.normalizer import EventNormalizer, NormalizationResult

router = APIRouter(prefix="/events", tags=["events"], dependencies=[Depends(require_api_key)])
logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Pydantic schemas — one per event kind
# ---------------------------------------------------------------------------
class AttachmentIn(BaseModel):
    name: str
    size: int = Field(0, ge=0)


class MessageIn(BaseModel):
    project_id: str
    community_id: str
    author_id: str
    message_id: str
    text: str = ""
    attachments: list[AttachmentIn] = Field(default_factory=list)


class MemberJoinedIn(BaseModel):
    project_id: str
    community_id: str
    new_member_count: int = Field(ge=0)


class AutomationConfirmedIn(BaseModel):
    project_id: str
    community_id: str
    member_count: int = Field(ge=0)


class ArtifactMintedIn(BaseModel):
    project_id: str
    artifact_type: Literal["idea", "vision"]


class SocialConnectedIn(BaseModel):
    project_id: str
    handle: str


class SocialPostsIn(BaseModel):
    project_id: str
    urls: list[str] = Field(min_length=1)


class LinkVerifiedIn(BaseModel):
    project_id: str
    link_kind: Literal["space", "blogpost", "thread", "video"]
    url: str


class ProfileVerifiedIn(BaseModel):
    project_id: str
    member_id: str


PAYLOAD_MODELS: dict[str, type[BaseModel]] = {
    "message": MessageIn,
    "member-joined": MemberJoinedIn,
    "automation-confirmed": AutomationConfirmedIn,
    "artifact-minted": ArtifactMintedIn,
    "social-connected": SocialConnectedIn,
    "social-posts": SocialPostsIn,
    "link-verified": LinkVerifiedIn,
    "profile-verified": ProfileVerifiedIn,
}


def _result_dict(result: NormalizationResult) -> dict:
    classification = None
    if result.classification is not None:
        classification = {
            "counts": str(result.classification.counts),
            "quality_delta": round(result.classification.quality_delta, 2),
            "reason": result.classification.reason,
        }
    return {
        "update": type(result.update).__name__,
        "changed": result.changed,
        "classification": classification,
        "transitions": [
            {
                "previous_level": t.previous_level,
                "new_level": t.new_level,
                "completed": t.completed,
            }
            for t in result.transitions
        ],
    }


# ---------------------------------------------------------------------------
# POST /events/{kind}
# ---------------------------------------------------------------------------
@router.post("/{kind}")
async def post_event(
    kind: str,
    body: dict[str, Any] = Body(...),
    normalizer: EventNormalizer = Depends(get_normalizer),
):
    model = PAYLOAD_MODELS.get(kind)
    if model is None:
        raise HTTPException(status.HTTP_404_NOT_FOUND, f"Unknown event kind: {kind}")
    try:
        payload = model.model_validate(body)
    except ValidationError as exc:
        raise HTTPException(
            status.HTTP_422_UNPROCESSABLE_ENTITY,
            exc.errors(include_url=False, include_context=False),
        ) from exc

    try:
        event = parse_event(kind, payload.model_dump())
        result = await run_db(normalizer.handle, event)
    except MalformedEventError as exc:
        logger.warning("Rejected %s event: %s", kind, exc)
        raise HTTPException(status.HTTP_400_BAD_REQUEST, str(exc)) from exc
    except UnknownProjectError as exc:
        raise HTTPException(status.HTTP_404_NOT_FOUND, str(exc)) from exc
    except MetricsStoreUnavailable as exc:
        raise HTTPException(
            status.HTTP_503_SERVICE_UNAVAILABLE, "Metrics store unavailable; retry later",
        ) from exc
    return _result_dict(result)
