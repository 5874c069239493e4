"""Status extraction from classified steps and model JSON output."""

from __future__ import annotations

import json
import logging
import re
import uuid
from typing import Any

from pydantic import BaseModel, Field

from taleweave.models import (
    HintStep,
    InventoryItem,
    ItemDelta,
    PlayerState,
    RelationshipDelta,
    SceneUnlock,
    StatDelta,
)

from .steps import Step

logger = logging.getLogger(__name__)

PLAYER_TARGETS = {"player", "hero", "玩家"}

_JSON_OBJECT_RE = re.compile(r"\{.*\}", re.DOTALL)


class StatusChanges(BaseModel):
    """Aggregated deltas from one narrator response."""

    stats: dict[str, int] = Field(default_factory=dict)
    relationships: dict[str, int] = Field(default_factory=dict)
    gained_items: list[tuple[str, int]] = Field(default_factory=list)
    lost_items: list[tuple[str, int]] = Field(default_factory=list)
    unlocked_scenes: list[str] = Field(default_factory=list)

    def is_empty(self) -> bool:
        return not (
            self.stats or self.relationships or self.gained_items
            or self.lost_items or self.unlocked_scenes
        )


def parse_json_output(text: str) -> dict[str, Any] | None:
    """Parse a JSON object from model output, stripping markdown fences."""
    cleaned = text.strip()
    if cleaned.startswith("```"):
        lines = cleaned.split("\n")
        lines = [l for l in lines[1:] if not l.strip().startswith("```")]
        cleaned = "\n".join(lines)
    try:
        data = json.loads(cleaned)
    except json.JSONDecodeError:
        # Models like to wrap the object in prose
        match = _JSON_OBJECT_RE.search(cleaned)
        if not match:
            logger.warning("Model output contains no JSON object")
            return None
        try:
            data = json.loads(match.group(0))
        except json.JSONDecodeError as e:
            logger.warning("Model output is not valid JSON: %s", e)
            return None
    return data if isinstance(data, dict) else None


def collect_status_changes(steps: list[Step]) -> StatusChanges:
    """Fold the deltas of every hint step into one change set.

    Stat deltas aimed at someone other than the player count as relationship
    changes with that character.
    """
    changes = StatusChanges()
    for step in steps:
        if not isinstance(step, HintStep):
            continue
        for delta in step.deltas:
            if isinstance(delta, StatDelta):
                if delta.target.lower() in PLAYER_TARGETS:
                    changes.stats[delta.attribute] = changes.stats.get(delta.attribute, 0) + delta.delta
                else:
                    changes.relationships[delta.target] = (
                        changes.relationships.get(delta.target, 0) + delta.delta
                    )
            elif isinstance(delta, RelationshipDelta):
                changes.relationships[delta.npc] = changes.relationships.get(delta.npc, 0) + delta.delta
            elif isinstance(delta, ItemDelta):
                if delta.action == "gain":
                    changes.gained_items.append((delta.item, delta.quantity))
                else:
                    changes.lost_items.append((delta.item, delta.quantity))
            elif isinstance(delta, SceneUnlock):
                if delta.scene_id not in changes.unlocked_scenes:
                    changes.unlocked_scenes.append(delta.scene_id)
    return changes


def apply_status_changes(player: PlayerState, changes: StatusChanges) -> PlayerState:
    """Return a new snapshot with the changes applied; the input is untouched."""
    updated = player.model_copy(deep=True)
    for name, delta in changes.stats.items():
        updated.stats[name] = updated.stats.get(name, 0) + delta
    for npc, delta in changes.relationships.items():
        updated.relationships[npc] = updated.relationships.get(npc, 0) + delta
    for name, quantity in changes.gained_items:
        add_item(updated, name, quantity)
    for name, quantity in changes.lost_items:
        remove_item(updated, name, quantity)
    for scene_id in changes.unlocked_scenes:
        if scene_id not in updated.unlocked_scenes:
            updated.unlocked_scenes.append(scene_id)
    return updated


def find_item(player: PlayerState, name: str) -> InventoryItem | None:
    for item in player.inventory:
        if item.name == name or item.id == name:
            return item
    return None


def add_item(player: PlayerState, name: str, quantity: int = 1) -> None:
    existing = find_item(player, name)
    if existing is not None:
        existing.quantity += quantity
        return
    player.inventory.append(InventoryItem(
        id=f"item_{uuid.uuid4().hex[:12]}",
        name=name,
        quantity=quantity,
    ))


def remove_item(player: PlayerState, name: str, quantity: int = 1) -> None:
    existing = find_item(player, name)
    if existing is None:
        return
    if existing.quantity > quantity:
        existing.quantity -= quantity
    else:
        player.inventory.remove(existing)
