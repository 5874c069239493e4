"""Mission lifecycle: creation, submission, abandonment and the storyline gate.

    active ──submit (some path met)──▶ completed
       │
       └────────abandon─────────────▶ abandoned

Both end states are terminal. A story mission created with
`blocks_storyline` holds the session's storyline block until it leaves
`active`; at most one such mission exists per session.

The functions here mutate the MissionLog they are given and never touch
storage. SessionManager loads the log, calls them under the session lock and
persists the result.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from typing import Any

from taleweave.llm import LLM, LLMError
from taleweave.models import (
    CompletionPath,
    ItemRequirement,
    Mission,
    MissionLog,
    PlayerState,
    Requirements,
    Reward,
    Session,
    ThresholdRequirement,
    now_iso,
)
from taleweave.pipeline.extractors import add_item, parse_json_output
from taleweave.prompts import (
    DEFAULT_MISSION_PROMPT,
    PromptError,
    build_mission_context,
    render_prompt,
)
from taleweave.requirements import PathCheck, evaluate_paths

logger = logging.getLogger(__name__)

MISSION_TYPES = ("story", "location", "stat", "item", "npc")


class MissionStateError(RuntimeError):
    """Raised for an operation the mission's current state does not allow."""


@dataclass
class SubmissionResult:
    mission: Mission
    completed: bool
    player: PlayerState
    paths: list[PathCheck] = field(default_factory=list)
    completed_via: str | None = None

    @property
    def message(self) -> str:
        if self.completed:
            return f"Mission '{self.mission.title}' completed."
        return f"Mission '{self.mission.title}' is not complete yet."


def new_mission_id() -> str:
    return f"mission_{uuid.uuid4().hex[:12]}"


# ── Storyline gate ───────────────────────────────────────


def storyline_status(log: MissionLog) -> dict[str, Any]:
    blocker = log.blocking_mission()
    return {
        "blocked": log.has_active_story_mission,
        "mission": blocker.model_dump() if blocker else None,
    }


def blocked_message(mission: Mission) -> str:
    return (
        f"The story cannot move on until the mission '{mission.title}' is "
        f"completed or abandoned."
    )


# ── Creation ─────────────────────────────────────────────


def add_mission(log: MissionLog, mission: Mission) -> Mission:
    """Record a mission at the current turn, enforcing the single-blocker rule."""
    if mission.is_story_mission and mission.blocks_storyline and log.blocking_mission() is not None:
        raise MissionStateError("A story mission is already blocking the storyline")
    mission.created_turn = log.turn_count
    log.missions.append(mission)
    if mission.is_story_mission:
        log.last_mission_turn = log.turn_count
    if mission.is_blocker:
        log.has_active_story_mission = True
    logger.info("Mission created: %s (%s)", mission.id, mission.title)
    return mission


def create_mission(
    log: MissionLog,
    title: str,
    description: str = "",
    type: str = "location",
    completion_paths: list[CompletionPath] | None = None,
    reward: Reward | None = None,
    is_story_mission: bool = False,
    blocks_storyline: bool = False,
) -> Mission:
    """Record a caller-supplied mission."""
    if not completion_paths:
        raise ValueError("A mission needs at least one completion path")
    mission = Mission(
        id=new_mission_id(),
        title=title,
        description=description,
        type=type,
        is_story_mission=is_story_mission or type == "story",
        blocks_storyline=blocks_storyline,
        completion_paths=completion_paths,
        reward=reward or Reward(),
    )
    return add_mission(log, mission)


def story_mission_trigger(
    log: MissionLog,
    signal: bool | None,
    cooldown_turns: int = 3,
    force_after: int = 10,
) -> bool:
    """Whether this turn should generate a story mission.

    Fires on the model's `[MISSION: true]` once the cooldown has elapsed, or
    unconditionally after `force_after` turns without a story mission. Never
    fires while one is active.
    """
    if log.has_active_story_mission:
        return False
    since = log.turn_count - (log.last_mission_turn or 0)
    if signal and (log.last_mission_turn is None or since >= cooldown_turns):
        return True
    return since >= force_after


async def generate_story_mission(
    llm: LLM,
    session: Session,
    log: MissionLog,
    template: str = "",
) -> Mission | None:
    """Ask the model for a story mission and record it as the storyline blocker.

    Model, template and parse failures are logged and yield None.
    """
    try:
        prompt = render_prompt(template or DEFAULT_MISSION_PROMPT, build_mission_context(session, log))
    except PromptError as e:
        logger.warning("Mission prompt failed to render: %s", e)
        return None
    try:
        raw = await llm("mission_designer", prompt)
    except LLMError as e:
        logger.warning("Mission generation failed: %s", e)
        return None

    data = parse_json_output(raw)
    if data is None:
        logger.warning("Mission generation returned no usable JSON")
        return None
    try:
        mission = mission_from_json(data)
    except (TypeError, ValueError) as e:
        logger.warning("Mission generation returned malformed fields: %s", e)
        return None
    if mission is None:
        logger.warning("Mission generation returned an unusable mission: %s", data)
        return None
    mission.type = "story"
    mission.is_story_mission = True
    mission.blocks_storyline = True
    return add_mission(log, mission)


def mission_from_json(data: dict[str, Any]) -> Mission | None:
    """Build a Mission from model JSON (camelCase or snake_case keys)."""
    title = str(data.get("title") or "").strip()
    raw_paths = data.get("completionPaths") or data.get("completion_paths") or []
    if not title or not isinstance(raw_paths, list):
        return None

    paths = []
    for i, raw in enumerate(raw_paths):
        if not isinstance(raw, dict):
            continue
        paths.append(CompletionPath(
            path_id=str(raw.get("pathId") or raw.get("path_id") or f"path_{i + 1}"),
            name=str(raw.get("name") or f"Path {i + 1}"),
            description=str(raw.get("description") or ""),
            requirements=_requirements_from_json(raw.get("requirements") or {}),
        ))
    if not paths:
        return None

    mission_type = data.get("type")
    raw_reward = data.get("reward") if isinstance(data.get("reward"), dict) else {}
    return Mission(
        id=new_mission_id(),
        title=title,
        description=str(data.get("description") or ""),
        type=mission_type if mission_type in MISSION_TYPES else "story",
        completion_paths=paths,
        reward=Reward(
            gold=int(raw_reward.get("gold") or 0),
            items=[str(i) for i in raw_reward.get("items") or []],
            experience=int(raw_reward.get("experience") or 0),
        ),
    )


def _requirements_from_json(raw: dict[str, Any]) -> Requirements:
    req = Requirements()
    if isinstance(raw.get("items"), list):
        req.items = [
            ItemRequirement(
                item_name=str(i.get("itemName") or i.get("item_name") or i.get("name") or ""),
                quantity=int(i.get("quantity") or 1),
            )
            for i in raw["items"] if isinstance(i, dict)
        ]
    if isinstance(raw.get("relationships"), list):
        req.relationships = [
            ThresholdRequirement(
                name=str(r.get("npcId") or r.get("npc") or r.get("name") or ""),
                min_value=int(r.get("minValue", r.get("min_value", 0))),
            )
            for r in raw["relationships"] if isinstance(r, dict)
        ]
    if isinstance(raw.get("stats"), list):
        req.stats = [
            ThresholdRequirement(
                name=str(s.get("stat") or s.get("name") or ""),
                min_value=int(s.get("minValue", s.get("min_value", 0))),
            )
            for s in raw["stats"] if isinstance(s, dict)
        ]
    if isinstance(raw.get("locations"), list):
        req.locations = [str(l) for l in raw["locations"]]
    return req


# ── Submission and abandonment ───────────────────────────


def _require_active(mission: Mission) -> None:
    if mission.status != "active":
        raise MissionStateError(f"Mission '{mission.id}' is already {mission.status}")


def _release_block(log: MissionLog, mission: Mission) -> None:
    if mission.is_story_mission and mission.blocks_storyline:
        log.has_active_story_mission = log.blocking_mission() is not None


def submit_mission(log: MissionLog, mission: Mission, player: PlayerState) -> SubmissionResult:
    """Check every completion path; complete via the first one that is met.

    Paths are tried in declared order, so when several are satisfied the
    earliest wins. The returned player carries the granted reward.
    """
    _require_active(mission)
    mission.attempted_submissions += 1
    paths = evaluate_paths(mission.completion_paths, player)
    met = next((p for p in paths if p.check.met), None)
    if met is None:
        return SubmissionResult(mission=mission, completed=False, player=player, paths=paths)

    mission.status = "completed"
    mission.completed_turn = log.turn_count
    mission.completed_via_path = met.path_id
    _release_block(log, mission)
    logger.info("Mission completed: %s via %s", mission.id, met.path_id)
    return SubmissionResult(
        mission=mission,
        completed=True,
        player=grant_reward(player, mission.reward),
        paths=paths,
        completed_via=met.path_id,
    )


def abandon_mission(log: MissionLog, mission: Mission) -> Mission:
    """Abandon an active mission. No reward is granted."""
    _require_active(mission)
    mission.status = "abandoned"
    mission.abandoned_turn = log.turn_count
    _release_block(log, mission)
    logger.info("Mission abandoned: %s", mission.id)
    return mission


def grant_reward(player: PlayerState, reward: Reward) -> PlayerState:
    updated = player.model_copy(deep=True)
    if reward.gold:
        updated.currency["gold"] = updated.currency.get("gold", 0) + reward.gold
    for name in reward.items:
        add_item(updated, name, 1)
    if reward.experience:
        updated.stats["experience"] = updated.stats.get("experience", 0) + reward.experience
    return updated


# ── Summary ──────────────────────────────────────────────


def mission_summary(log: MissionLog, cooldown_turns: int = 3) -> dict[str, Any]:
    def titles(status: str) -> list[dict[str, Any]]:
        return [
            {"id": m.id, "title": m.title, "type": m.type, "is_story_mission": m.is_story_mission}
            for m in log.missions if m.status == status
        ]

    if log.last_mission_turn is None:
        wait = 0
    else:
        wait = max(0, cooldown_turns - (log.turn_count - log.last_mission_turn))
    return {
        "turn_count": log.turn_count,
        "storyline_blocked": log.has_active_story_mission,
        "active": titles("active"),
        "completed": titles("completed"),
        "abandoned": titles("abandoned"),
        "turns_until_next_mission": wait,
        "generated_at": now_iso(),
    }
