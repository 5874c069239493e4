"""One player turn: gate, stream, classify, apply, persist, trigger.

Yields event dicts in the order a client should see them. The caller holds
the session lock for the whole generator.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from typing import Any

from taleweave import missions
from taleweave.llm import LLM, LLMError
from taleweave.models import (
    Session,
    TranscriptEntry,
    conversation_from_transcript,
)
from taleweave.prompts import (
    DEFAULT_NARRATOR_PROMPT,
    PromptError,
    build_narrator_context,
    render_prompt,
)
from taleweave.storage import Storage

from .emitter import Event, IncrementalEmitter
from .extractors import apply_status_changes, collect_status_changes

logger = logging.getLogger(__name__)


def _record(
    session: Session,
    store: Storage,
    entries: list[TranscriptEntry],
    history_limit: int,
) -> None:
    store.append_transcript(session.session_id, entries)
    session.history.extend(entries)
    session.conversation_history = conversation_from_transcript(session.history, history_limit)
    session.game_state.last_action_at = entries[0].ts


async def run_turn(
    session: Session,
    action: str,
    llm: LLM,
    store: Storage,
    config: dict[str, Any],
) -> AsyncIterator[Event]:
    """Process one player action against a loaded session.

    Storyline blocked: yields `storyline_blocked` and stops without calling
    the model or advancing the turn clock.
    Upstream failure: the text received so far is stored as a partial
    narrator entry and an `error` event closes the stream. Status, missions
    and the turn clock stay untouched, so the retry reuses the turn number.
    """
    sid = session.session_id
    log = store.get_missions(sid)

    if log.has_active_story_mission:
        blocker = log.blocking_mission()
        logger.info("Turn refused for %s: storyline blocked", sid)
        yield {
            "type": "storyline_blocked",
            "mission": blocker.model_dump() if blocker else None,
            "message": missions.blocked_message(blocker) if blocker else "The storyline is blocked.",
        }
        return

    history_limit = int(config.get("history_limit", 20))
    try:
        prompt = render_prompt(
            config.get("narrator_prompt") or DEFAULT_NARRATOR_PROMPT,
            build_narrator_context(session, action, log, style=config.get("default_style", "")),
        )
    except PromptError as e:
        logger.warning("Narrator prompt failed for %s: %s", sid, e)
        yield {"type": "error", "message": str(e)}
        return

    turn = log.turn_count + 1
    player_entry = TranscriptEntry(turn=turn, role="player", text=action)

    # ── Stream ──
    emitter = IncrementalEmitter()
    chunk_index = 0
    try:
        async for chunk in llm.stream("narrator", prompt):
            yield {"type": "raw_text", "text": chunk, "chunk_index": chunk_index}
            chunk_index += 1
            for event in emitter.feed(chunk):
                yield event
    except LLMError as e:
        logger.warning("Narrator stream failed for %s on turn %d: %s", sid, turn, e)
        entries = [player_entry]
        if emitter.buffer:
            entries.append(TranscriptEntry(turn=turn, role="narrator", text=emitter.buffer, partial=True))
        _record(session, store, entries, history_limit)
        yield {"type": "error", "message": f"{e}. Please try again."}
        return

    log.turn_count = turn
    store.save_missions(sid, log)

    for event in emitter.finish():
        yield event

    # ── Status ──
    changes = collect_status_changes(emitter.steps)
    if not changes.is_empty():
        session.game_state.player = apply_status_changes(session.game_state.player, changes)
        store.save_player(sid, session.game_state.player)
    yield {
        "type": "status",
        "player": session.game_state.player.model_dump(),
        "changes": changes.model_dump(),
    }

    _record(
        session, store,
        [player_entry, TranscriptEntry(turn=turn, role="narrator", text=emitter.buffer)],
        history_limit,
    )

    # ── Mission trigger ──
    if missions.story_mission_trigger(
        log,
        emitter.mission_signal,
        cooldown_turns=int(config.get("mission_cooldown_turns", 3)),
        force_after=int(config.get("mission_force_turns", 10)),
    ):
        mission = await missions.generate_story_mission(
            llm, session, log, template=config.get("mission_prompt", ""),
        )
        if mission is not None:
            store.save_missions(sid, log)
            yield {"type": "mission", "mission": mission.model_dump()}

    yield {"type": "done", "turn": turn}
