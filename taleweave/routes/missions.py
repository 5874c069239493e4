"""Mission endpoints: list, summary, create, submit, abandon, storyline."""

from fastapi import APIRouter, HTTPException, Request

from taleweave.missions import MissionStateError, mission_summary, storyline_status
from taleweave.sessions import NotFoundError

from . import deps
from .models import CreateMission

router = APIRouter()


@router.get("/sessions/{session_id}/missions")
async def list_missions(request: Request, session_id: str):
    """Mission log of a session, including the turn counter."""
    try:
        return deps.manager(request).get_missions(session_id).model_dump()
    except NotFoundError as e:
        raise HTTPException(404, str(e))


@router.get("/sessions/{session_id}/missions/summary")
async def get_mission_summary(request: Request, session_id: str):
    """Active/completed/abandoned missions and the turns left on the cooldown."""
    try:
        log = deps.manager(request).get_missions(session_id)
    except NotFoundError as e:
        raise HTTPException(404, str(e))
    cfg = deps.config(request)
    return mission_summary(log, cooldown_turns=int(cfg["mission_cooldown_turns"]))


@router.post("/sessions/{session_id}/missions", status_code=201)
async def create_mission(request: Request, session_id: str, body: CreateMission):
    """Add a mission supplied by the caller."""
    try:
        mission = await deps.manager(request).create_mission(session_id, **dict(body))
    except NotFoundError as e:
        raise HTTPException(404, str(e))
    except MissionStateError as e:
        raise HTTPException(409, str(e))
    return mission.model_dump()


@router.post("/sessions/{session_id}/missions/{mission_id}/submit")
async def submit_mission(request: Request, session_id: str, mission_id: str):
    """Check the mission's completion paths against the player's state.

    An incomplete submission answers with JSON. A completion answers with an
    event stream: `mission_completed`, then the story continuation turn.
    """
    manager = deps.manager(request)
    try:
        result = await manager.submit_mission(session_id, mission_id)
    except NotFoundError as e:
        raise HTTPException(404, str(e))
    except MissionStateError as e:
        raise HTTPException(409, str(e))
    payload = {
        "completed": result.completed,
        "completed_via": result.completed_via,
        "message": result.message,
        "mission": result.mission.model_dump(),
        "player": result.player.model_dump(),
        "paths": [
            {
                "path_id": p.path_id,
                "name": p.name,
                "met": p.check.met,
                "missing": p.check.missing,
            }
            for p in result.paths
        ],
    }
    if not result.completed:
        return payload

    cfg = deps.config(request)
    queue = manager.continue_story(
        session_id, {"type": "mission_completed", **payload}, deps.llm(request, cfg), cfg,
    )
    return deps.event_stream(queue)


@router.post("/sessions/{session_id}/missions/{mission_id}/abandon")
async def abandon_mission(request: Request, session_id: str, mission_id: str):
    """Abandon an active mission. No reward is granted.

    Abandoning the mission that blocks the storyline answers with an event
    stream: `mission_abandoned`, then the story continuation turn.
    """
    manager = deps.manager(request)
    try:
        mission = await manager.abandon_mission(session_id, mission_id)
    except NotFoundError as e:
        raise HTTPException(404, str(e))
    except MissionStateError as e:
        raise HTTPException(409, str(e))
    if not (mission.is_story_mission and mission.blocks_storyline):
        return mission.model_dump()

    cfg = deps.config(request)
    queue = manager.continue_story(
        session_id, {"type": "mission_abandoned", "mission": mission.model_dump()}, deps.llm(request, cfg), cfg,
    )
    return deps.event_stream(queue)


@router.get("/sessions/{session_id}/storyline")
async def get_storyline(request: Request, session_id: str):
    """Whether the main storyline is blocked, and by which mission."""
    try:
        log = deps.manager(request).get_missions(session_id)
    except NotFoundError as e:
        raise HTTPException(404, str(e))
    return storyline_status(log)
