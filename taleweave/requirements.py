"""Completion-path requirement evaluation.

Pure functions over a read-only PlayerState snapshot. A completion path is an
AND over its present requirement categories; a mission is satisfied when ANY
of its paths is (OR of ANDs). Absent categories are vacuously met.

    items          name or id match, quantity >= required
    relationships  current value >= min_value
    stats          current value >= min_value
    locations      current location, visited locations or unlocked scenes

A requirement naming a stat or relationship the player does not have is
reported missing rather than treated as zero.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from taleweave.models import CompletionPath, PlayerState, Requirements


@dataclass
class RequirementCheck:
    met: bool
    missing: list[str] = field(default_factory=list)
    details: dict[str, bool] = field(default_factory=dict)


@dataclass
class PathCheck:
    path_id: str
    name: str
    check: RequirementCheck


def evaluate_requirements(requirements: Requirements, player: PlayerState) -> RequirementCheck:
    missing: list[str] = []
    details: dict[str, bool] = {}

    if requirements.items is not None:
        ok = True
        for req in requirements.items:
            held = _held_quantity(player, req.item_name)
            if held < req.quantity:
                ok = False
                missing.append(f"item {req.item_name} x{req.quantity} (have {held})")
        details["items"] = ok

    if requirements.relationships is not None:
        ok = True
        for req in requirements.relationships:
            current = player.relationships.get(req.name)
            if current is None or current < req.min_value:
                ok = False
                missing.append(f"relationship {req.name} >= {req.min_value} (have {_fmt(current)})")
        details["relationships"] = ok

    if requirements.stats is not None:
        ok = True
        for req in requirements.stats:
            current = player.stats.get(req.name)
            if current is None or current < req.min_value:
                ok = False
                missing.append(f"stat {req.name} >= {req.min_value} (have {_fmt(current)})")
        details["stats"] = ok

    if requirements.locations is not None:
        reached = {player.location, *player.visited_locations, *player.unlocked_scenes}
        ok = True
        for loc in requirements.locations:
            if loc not in reached:
                ok = False
                missing.append(f"location {loc}")
        details["locations"] = ok

    return RequirementCheck(met=all(details.values()), missing=missing, details=details)


def evaluate_paths(paths: list[CompletionPath], player: PlayerState) -> list[PathCheck]:
    """Evaluate every path in declared order."""
    return [
        PathCheck(path_id=p.path_id, name=p.name, check=evaluate_requirements(p.requirements, player))
        for p in paths
    ]


def first_met_path(paths: list[CompletionPath], player: PlayerState) -> PathCheck | None:
    """First satisfied path by declaration order; order decides ties."""
    for result in evaluate_paths(paths, player):
        if result.check.met:
            return result
    return None


def _held_quantity(player: PlayerState, name: str) -> int:
    return sum(i.quantity for i in player.inventory if i.name == name or i.id == name)


def _fmt(value: int | None) -> str:
    return "none" if value is None else str(value)
