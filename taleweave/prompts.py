"""Handlebars prompt rendering for the narrator and the mission designer.

Templates may use two block helpers on top of stock Handlebars:
`{{#take list N}}` iterates the first N items, `{{#last list N}}` the last N.
"""

from collections.abc import Callable
from typing import Any

import pybars

from taleweave.models import ChatTurn, MissionLog, PlayerState, Session, World

_compiler = pybars.Compiler()
_compiled: dict[str, Callable] = {}


class PromptError(Exception):
    """A template failed to compile or render."""


def _window_helper(pick: Callable[[list, int], list]) -> Callable:
    def helper(this, options, items, count):
        out = []
        for item in pick(list(items), int(count)):
            out.extend(options["fn"](item))
        return out
    return helper


_HELPERS: dict[str, Callable] = {
    "take": _window_helper(lambda items, n: items[:n]),
    "last": _window_helper(lambda items, n: items[-n:] if n > 0 else []),
}


def render_prompt(template_str: str, context: dict[str, Any]) -> str:
    """Render a Handlebars template, compiling each distinct source once."""
    try:
        if template_str not in _compiled:
            _compiled[template_str] = _compiler.compile(template_str)
        return _compiled[template_str](context, helpers=_HELPERS)
    except Exception as e:
        raise PromptError(f"Template error: {e}") from e


# ── Default templates ────────────────────────────────────

DEFAULT_NARRATOR_PROMPT = """\
You are the narrator of an interactive story. {{{style}}}

# World
{{{world.title}}}
{{{world.background}}}

{{#if scene}}
# Current scene: {{{scene.name}}}
{{{scene.description}}}
{{#if scene.exits}}Exits: {{#each scene.exits}}{{{@key}}} -> {{{this}}}; {{/each}}{{/if}}
{{/if}}
{{#if npcs}}
# Characters present
{{#each npcs}}
- {{{id}}}: {{{name}}}. {{{description}}}
{{/each}}
{{/if}}

# {{{player.name}}}
Stats: {{#each player.stats}}{{{@key}}}={{this}} {{/each}}
Inventory: {{#each player.inventory}}{{{name}}} x{{quantity}}; {{/each}}
{{#if missions}}

# Active missions
{{#each missions}}
- {{{title}}}: {{{description}}}
{{/each}}
{{/if}}

# Output format
Write the next beat using only these markers, one per line:
[NARRATION: text]
[DIALOGUE: character_id, "spoken text"]
[HINT: text] optionally followed by [CHANGE: item, GAIN|LOSE, N], [CHANGE: RELATIONSHIP, character_id, +N], [CHANGE: player, attribute, +N] or [UNLOCK_SCENE: scene_id]
[CHOICE: title] then [OPTION: text] lines, closed by [END_CHOICE]
End with [MISSION: true] if the story would benefit from a new quest, otherwise [MISSION: false].

# Story so far
{{#last history 20}}
{{#if is_player}}> {{{text}}}{{else}}{{{text}}}{{/if}}
{{/last}}

> {{{action}}}
"""

DEFAULT_MISSION_PROMPT = """\
You design story missions for an interactive story.

# World
{{{world.title}}}
{{{world.background}}}
{{#if scene}}Current scene: {{{scene.name}}}. {{{scene.description}}}{{/if}}
Characters: {{#each world.npcs}}{{{id}}} ({{{name}}}); {{/each}}
Scenes: {{#each world.scenes}}{{{id}}} ({{{name}}}); {{/each}}
Unlocked scenes: {{#each player.unlocked_scenes}}{{{this}}} {{/each}}
Inventory: {{#each player.inventory}}{{{name}}} x{{quantity}}; {{/each}}

# Recent story
{{#last history 10}}
{{#if is_player}}> {{{text}}}{{else}}{{{text}}}{{/if}}
{{/last}}
{{#if previous_missions}}

# Earlier missions (do not repeat)
{{#each previous_missions}}
- {{{title}}} ({{status}})
{{/each}}
{{/if}}

Create ONE story mission that fits the recent story. It must offer two or
three completion paths, each reachable through items, relationships, stats or
locations that exist in this world. Answer with a single JSON object only:
{"type": "story", "title": "...", "description": "...",
 "completionPaths": [{"pathId": "path_a", "name": "...", "description": "...",
   "requirements": {"items": [{"itemName": "...", "quantity": 1}],
                    "relationships": [{"npcId": "...", "minValue": 10}],
                    "locations": ["scene_id"],
                    "stats": [{"stat": "...", "minValue": 5}] } }],
 "reward": {"gold": 0, "items": [], "experience": 0} }
"""


# ── Context builders ─────────────────────────────────────


def _history_context(turns: list[ChatTurn]) -> list[dict[str, Any]]:
    return [
        {
            "role": t.role,
            "text": t.content,
            "is_player": t.role == "user",
            "is_narrator": t.role == "assistant",
        }
        for t in turns
    ]


def _scene_context(world: World, player: PlayerState) -> tuple[dict | None, list[dict]]:
    scene = world.scene(player.location) if player.location else None
    if scene is None:
        return None, []
    npcs = [n.model_dump() for n in (world.npc(i) for i in scene.npcs) if n is not None]
    return scene.model_dump(), npcs


def build_narrator_context(
    session: Session,
    action: str,
    missions: MissionLog,
    style: str = "",
) -> dict[str, Any]:
    """Assemble template variables for the narrator prompt."""
    player = session.game_state.player
    scene, npcs = _scene_context(session.world, player)
    return {
        "style": style or session.manifest.style,
        "world": session.world.model_dump(),
        "scene": scene,
        "npcs": npcs,
        "player": player.model_dump(),
        "missions": [m.model_dump() for m in missions.missions if m.status == "active"],
        "history": _history_context(session.conversation_history),
        "action": action,
    }


def build_mission_context(session: Session, missions: MissionLog) -> dict[str, Any]:
    """Assemble template variables for the mission-designer prompt."""
    player = session.game_state.player
    scene, _ = _scene_context(session.world, player)
    return {
        "world": session.world.model_dump(),
        "scene": scene,
        "player": player.model_dump(),
        "history": _history_context(session.conversation_history),
        "previous_missions": [
            {"title": m.title, "status": m.status} for m in missions.missions
        ],
    }
