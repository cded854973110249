"""
ascent.api.routes.projects — Project registration, progress & live updates
===========================================================================
"""

from __future__ import annotations

import asyncio
import logging
import uuid

from fastapi import APIRouter, Depends, HTTPException, Query, WebSocket, WebSocketDisconnect, status
from pydantic import BaseModel, Field

from ascent.api.deps import api_key_matches, get_cache, get_engine, get_live_hub, require_api_key
from ascent.constants import LEVEL_TITLES
from ascent.database.engine import run_db
from ascent.engine.gates import describe_requirements, evaluate_gate
from ascent.errors import MetricsStoreUnavailable, UnknownProjectError
from ascent.services import metrics_store

router = APIRouter(prefix="/projects", tags=["projects"])
logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Pydantic schemas
# ---------------------------------------------------------------------------
class ProjectCreate(BaseModel):
    project_id: str | None = Field(None, min_length=1, max_length=64)
    name: str | None = Field(None, max_length=200)
    contact_email: str | None = Field(None, max_length=320)


class CommunityLink(BaseModel):
    community_id: str = Field(min_length=1, max_length=64)


# ---------------------------------------------------------------------------
# Registration
# ---------------------------------------------------------------------------
@router.post("", dependencies=[Depends(require_api_key)])
async def create_project(body: ProjectCreate, engine=Depends(get_engine)):
    """Register a project at level 1.  Idempotent for an existing id."""
    project_id = body.project_id or str(uuid.uuid4())
    try:
        created = await run_db(
            metrics_store.get_or_create_project, engine, project_id,
            name=body.name, contact_email=body.contact_email,
        )
    except MetricsStoreUnavailable as exc:
        raise HTTPException(status.HTTP_503_SERVICE_UNAVAILABLE, "Metrics store unavailable") from exc
    return {"project_id": project_id, "created": created}


@router.post("/{project_id}/community", dependencies=[Depends(require_api_key)])
async def link_community(project_id: str, body: CommunityLink, engine=Depends(get_engine)):
    try:
        linked = await run_db(metrics_store.link_community, engine, project_id, body.community_id)
    except MetricsStoreUnavailable as exc:
        raise HTTPException(status.HTTP_503_SERVICE_UNAVAILABLE, "Metrics store unavailable") from exc
    if not linked:
        raise HTTPException(status.HTTP_409_CONFLICT, "Community is linked to a different project")
    return {"project_id": project_id, "community_id": body.community_id}


# ---------------------------------------------------------------------------
# GET /projects/{id}/progress
# ---------------------------------------------------------------------------
def _progress(engine, cache, project_id: str) -> dict:
    snapshot = metrics_store.load_snapshot(engine, project_id)
    history = metrics_store.level_history(engine, project_id)
    gate = None if snapshot.completed else evaluate_gate(snapshot.level, snapshot, cache)
    return {
        "project_id": project_id,
        "level": snapshot.level,
        "title": LEVEL_TITLES[snapshot.level],
        "completed": snapshot.completed,
        "metrics": {
            "member_count": snapshot.member_count,
            "messages_count": snapshot.messages_count,
            "papers_shared": snapshot.papers_shared,
            "quality_score": round(snapshot.quality_score, 1),
            "bot_confirmed": snapshot.bot_confirmed,
            "link_verified": snapshot.link_verified,
            "social_connected": snapshot.social_connected,
            "intro_post_count": snapshot.intro_post_count,
            "verified_member_count": snapshot.verified_member_count,
            "has_idea_artifact": snapshot.has_idea_artifact,
            "has_vision_artifact": snapshot.has_vision_artifact,
            "space_url": snapshot.space_url,
            "blogpost_url": snapshot.blogpost_url,
            "thread_url": snapshot.thread_url,
            "welcome_video_url": snapshot.welcome_video_url,
        },
        "missing": list(gate.missing) if gate else [],
        "checklist": describe_requirements(snapshot.level, snapshot, cache),
        "history": [
            {
                "previous_level": t.previous_level,
                "new_level": t.new_level,
                "completed": t.completed,
            }
            for t in history
        ],
    }


@router.get("/{project_id}/progress", dependencies=[Depends(require_api_key)])
async def get_progress(project_id: str, engine=Depends(get_engine), cache=Depends(get_cache)):
    try:
        return await run_db(_progress, engine, cache, project_id)
    except UnknownProjectError as exc:
        raise HTTPException(status.HTTP_404_NOT_FOUND, str(exc)) from exc
    except MetricsStoreUnavailable as exc:
        raise HTTPException(status.HTTP_503_SERVICE_UNAVAILABLE, "Metrics store unavailable") from exc


# ---------------------------------------------------------------------------
# WS /projects/{id}/live
# ---------------------------------------------------------------------------
@router.websocket("/{project_id}/live")
async def live_updates(
    websocket: WebSocket,
    project_id: str,
    key: str | None = Query(None),
    hub=Depends(get_live_hub),
):
    """Stream ``LevelChanged`` messages for *project_id*.

    Authenticate with ``X-API-Key`` or ``?key=``.
    """
    if not api_key_matches(websocket.headers.get("x-api-key") or key):
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    await websocket.accept()
    queue = hub.subscribe(project_id)

    async def _forward() -> None:
        while True:
            await websocket.send_json(await queue.get())

    await websocket.send_json({"type": "subscribed", "project_id": project_id})
    forwarder = asyncio.create_task(_forward())
    try:
        # Inbound frames are ignored; receiving only detects the disconnect
        while True:
            await websocket.receive_text()
    except WebSocketDisconnect:
        logger.debug("Live client for %s disconnected", project_id)
    finally:
        forwarder.cancel()
        hub.unsubscribe(project_id, queue)
