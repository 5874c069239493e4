"""Core domain models.

Every pipeline stage, the mission manager and the session store operate on
these types. Pydantic is used for validation and serialisation at every data
boundary; on-disk artifacts are plain `model_dump_json` output.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Annotated, Literal, Union

from pydantic import BaseModel, Field


def now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


# ---------------------------------------------------------------------------
# Narrative steps
# ---------------------------------------------------------------------------

class StatDelta(BaseModel):
    kind: Literal["stat"] = "stat"
    target: str  # "player" or a character id
    attribute: str
    delta: int


class RelationshipDelta(BaseModel):
    kind: Literal["relationship"] = "relationship"
    npc: str
    delta: int


class ItemDelta(BaseModel):
    kind: Literal["item"] = "item"
    item: str
    action: Literal["gain", "lose"]
    quantity: int = Field(ge=0)


class SceneUnlock(BaseModel):
    kind: Literal["scene_unlock"] = "scene_unlock"
    scene_id: str


Delta = Annotated[
    Union[StatDelta, RelationshipDelta, ItemDelta, SceneUnlock],
    Field(discriminator="kind"),
]


class NarrationStep(BaseModel):
    type: Literal["narration"] = "narration"
    text: str


class DialogueStep(BaseModel):
    type: Literal["dialogue"] = "dialogue"
    speaker_id: str = Field(min_length=1)
    text: str


class HintStep(BaseModel):
    type: Literal["hint"] = "hint"
    text: str
    deltas: list[Delta] = Field(default_factory=list)


class ChoiceStep(BaseModel):
    type: Literal["choice"] = "choice"
    title: str
    body: str = ""
    options: list[str] = Field(default_factory=list)


NarrativeStep = Annotated[
    Union[NarrationStep, DialogueStep, HintStep, ChoiceStep],
    Field(discriminator="type"),
]


# ---------------------------------------------------------------------------
# Player state and world bundle
# ---------------------------------------------------------------------------

class InventoryItem(BaseModel):
    id: str
    name: str
    description: str = ""
    quantity: int = 1


class PlayerState(BaseModel):
    """Read-only snapshot handed to the requirement evaluator.

    Persisted as the session's player-status artifact.
    """

    name: str = "Player"
    stats: dict[str, int] = Field(default_factory=dict)
    inventory: list[InventoryItem] = Field(default_factory=list)
    relationships: dict[str, int] = Field(default_factory=dict)
    location: str = ""
    visited_locations: list[str] = Field(default_factory=list)
    unlocked_scenes: list[str] = Field(default_factory=list)
    currency: dict[str, int] = Field(default_factory=dict)


class Npc(BaseModel):
    id: str
    name: str
    description: str = ""


class Scene(BaseModel):
    id: str
    name: str
    description: str = ""
    exits: dict[str, str] = Field(default_factory=dict)  # direction -> scene id
    npcs: list[str] = Field(default_factory=list)  # npc ids


class ItemSpec(BaseModel):
    id: str
    name: str
    description: str = ""
    quantity: int = 1


class World(BaseModel):
    """Structured world data supplied once at session creation."""

    title: str = ""
    background: str = ""
    npcs: list[Npc] = Field(default_factory=list)
    scenes: list[Scene] = Field(default_factory=list)
    items: list[ItemSpec] = Field(default_factory=list)
    start_scene: str = ""
    initial_stats: dict[str, int] = Field(default_factory=dict)
    initial_items: list[ItemSpec] = Field(default_factory=list)
    initial_currency: dict[str, int] = Field(default_factory=dict)

    def scene(self, scene_id: str) -> Scene | None:
        for s in self.scenes:
            if s.id == scene_id:
                return s
        return None

    def npc(self, npc_id: str) -> Npc | None:
        for n in self.npcs:
            if n.id == npc_id or n.name == npc_id:
                return n
        return None


class WorldTemplate(BaseModel):
    """A shared world bundle that many sessions can point at."""

    slug: str
    title: str
    description: str = ""
    style: str = ""
    world: World = Field(default_factory=World)


# ---------------------------------------------------------------------------
# Missions
# ---------------------------------------------------------------------------

MissionType = Literal["story", "location", "stat", "item", "npc"]
MissionStatus = Literal["active", "completed", "abandoned"]


class ItemRequirement(BaseModel):
    item_name: str
    quantity: int = 1


class ThresholdRequirement(BaseModel):
    name: str
    min_value: int


class Requirements(BaseModel):
    items: list[ItemRequirement] | None = None
    relationships: list[ThresholdRequirement] | None = None
    locations: list[str] | None = None
    stats: list[ThresholdRequirement] | None = None


class CompletionPath(BaseModel):
    path_id: str
    name: str
    description: str = ""
    requirements: Requirements = Field(default_factory=Requirements)


class Reward(BaseModel):
    gold: int = 0
    items: list[str] = Field(default_factory=list)
    experience: int = 0

    def is_empty(self) -> bool:
        return not (self.gold or self.items or self.experience)


class Mission(BaseModel):
    id: str
    title: str
    description: str = ""
    type: MissionType = "story"
    is_story_mission: bool = False
    blocks_storyline: bool = False
    completion_paths: list[CompletionPath] = Field(default_factory=list)
    reward: Reward = Field(default_factory=Reward)
    status: MissionStatus = "active"
    created_turn: int = 0
    created_at: str = Field(default_factory=now_iso)
    completed_turn: int | None = None
    completed_via_path: str | None = None
    abandoned_turn: int | None = None
    attempted_submissions: int = 0

    @property
    def is_blocker(self) -> bool:
        return self.status == "active" and self.is_story_mission and self.blocks_storyline


class MissionLog(BaseModel):
    """Per-session mission store: missions plus the shared turn clock."""

    missions: list[Mission] = Field(default_factory=list)
    turn_count: int = 0
    last_mission_turn: int | None = None
    has_active_story_mission: bool = False

    def get(self, mission_id: str) -> Mission | None:
        for m in self.missions:
            if m.id == mission_id:
                return m
        return None

    def blocking_mission(self) -> Mission | None:
        for m in self.missions:
            if m.is_blocker:
                return m
        return None


# ---------------------------------------------------------------------------
# Sessions
# ---------------------------------------------------------------------------

class Manifest(BaseModel):
    session_id: str
    file_id: str = ""
    player_name: str = "Player"
    style: str = ""
    template: str | None = None  # world template slug
    created_at: str = Field(default_factory=now_iso)


class TranscriptEntry(BaseModel):
    turn: int
    role: Literal["player", "narrator"]
    text: str
    ts: str = Field(default_factory=now_iso)
    partial: bool = False  # narrator text cut short by an upstream failure


class ChatTurn(BaseModel):
    role: Literal["user", "assistant"]
    content: str


class GameState(BaseModel):
    player: PlayerState = Field(default_factory=PlayerState)
    last_action_at: str | None = None


class Session(BaseModel):
    session_id: str
    file_id: str = ""
    manifest: Manifest
    world: World = Field(default_factory=World)
    conversation_history: list[ChatTurn] = Field(default_factory=list)
    history: list[TranscriptEntry] = Field(default_factory=list)
    game_state: GameState = Field(default_factory=GameState)


def conversation_from_transcript(history: list[TranscriptEntry], limit: int = 20) -> list[ChatTurn]:
    """Bounded chat history: the last `limit` transcript entries as chat turns."""
    recent = history[-limit:] if limit > 0 else []
    return [
        ChatTurn(role="user" if e.role == "player" else "assistant", content=e.text)
        for e in recent
    ]


def initial_player(world: World, name: str = "Player") -> PlayerState:
    start = [world.start_scene] if world.start_scene else []
    return PlayerState(
        name=name or "Player",
        stats=dict(world.initial_stats),
        inventory=[InventoryItem(**i.model_dump()) for i in world.initial_items],
        location=world.start_scene,
        visited_locations=start,
        currency=dict(world.initial_currency),
    )
