"""Session endpoints and the per-turn event stream."""

import logging

from fastapi import APIRouter, HTTPException, Request

from taleweave.sessions import NotFoundError

from . import deps
from .models import ActionBody, CreateSession

logger = logging.getLogger(__name__)

router = APIRouter()


def _session_view(session) -> dict:
    return {
        "session_id": session.session_id,
        "file_id": session.file_id,
        "manifest": session.manifest.model_dump(),
        "world": session.world.model_dump(),
        "player": session.game_state.player.model_dump(),
        "last_action_at": session.game_state.last_action_at,
        "conversation_history": [t.model_dump() for t in session.conversation_history],
    }


@router.post("/sessions", status_code=201)
async def create_session(request: Request, body: CreateSession):
    """Create a session from an inline world bundle or a stored template."""
    try:
        session = deps.manager(request).create_session(
            world=body.world,
            template=body.template,
            player_name=body.player_name,
            style=body.style,
            file_id=body.file_id,
        )
    except NotFoundError as e:
        raise HTTPException(404, str(e))
    except ValueError as e:
        raise HTTPException(400, str(e))
    return _session_view(session)


@router.get("/sessions/{session_id}")
async def get_session(request: Request, session_id: str):
    """Get a session, recovering it from disk when it is not cached."""
    try:
        session = deps.manager(request).get_session(session_id)
    except NotFoundError as e:
        raise HTTPException(404, str(e))
    return _session_view(session)


@router.delete("/sessions/{session_id}")
async def evict_session(request: Request, session_id: str):
    """Drop the cached copy of a session. Stored artifacts are kept."""
    return {"evicted": deps.manager(request).evict(session_id)}


@router.get("/sessions/{session_id}/transcript")
async def get_transcript(request: Request, session_id: str):
    """Full transcript of a session."""
    try:
        session = deps.manager(request).get_session(session_id)
    except NotFoundError as e:
        raise HTTPException(404, str(e))
    return [e.model_dump() for e in session.history]


@router.get("/sessions/{session_id}/status")
async def get_status(request: Request, session_id: str):
    """Current player status."""
    try:
        session = deps.manager(request).get_session(session_id)
    except NotFoundError as e:
        raise HTTPException(404, str(e))
    return session.game_state.player.model_dump()


@router.post("/sessions/{session_id}/actions")
async def session_action(request: Request, session_id: str, body: ActionBody):
    """Submit a player action and stream the turn as Server-Sent Events."""
    cfg = deps.config(request)
    try:
        queue = deps.manager(request).start_turn(session_id, body.action, deps.llm(request, cfg), cfg)
    except NotFoundError as e:
        raise HTTPException(404, str(e))

    return deps.event_stream(queue)
