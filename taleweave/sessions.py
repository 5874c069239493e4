"""Session cache, recovery and per-session serialisation.

    request ──▶ SessionManager.get_session(id)
                    │
                    ├─ cache hit ──────────────▶ Session
                    └─ miss ─▶ recover_session(id)
                                 manifest.json   (required)
                                 player.json     (required)
                                 world.json | templates/<slug>.json (required)
                                 transcript.json (optional, empty when absent)
                               ─▶ cache.put ──▶ Session

Recovery fails closed: any required artifact missing raises NotFoundError
rather than fabricating defaults. Turns, submissions and abandonments run
under one asyncio.Lock per session.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
import weakref
from collections import OrderedDict
from collections.abc import AsyncIterator, Callable
from typing import Any

from taleweave import missions
from taleweave.llm import LLM
from taleweave.models import (
    CompletionPath,
    GameState,
    Manifest,
    Mission,
    MissionLog,
    Reward,
    Session,
    World,
    conversation_from_transcript,
    initial_player,
)
from taleweave.pipeline import run_turn
from taleweave.storage import Storage

logger = logging.getLogger(__name__)


class NotFoundError(LookupError):
    """Raised when a session, mission, template or required artifact is absent."""


class SessionCache:
    """Bounded in-memory LRU of live sessions."""

    def __init__(self, max_size: int = 64) -> None:
        self.max_size = max_size
        self._items: OrderedDict[str, Session] = OrderedDict()

    def get(self, session_id: str) -> Session | None:
        session = self._items.get(session_id)
        if session is not None:
            self._items.move_to_end(session_id)
        return session

    def put(self, session: Session) -> None:
        self._items[session.session_id] = session
        self._items.move_to_end(session.session_id)
        while len(self._items) > self.max_size:
            evicted, _ = self._items.popitem(last=False)
            logger.debug("Session evicted from cache: %s", evicted)

    def evict(self, session_id: str) -> bool:
        return self._items.pop(session_id, None) is not None

    def clear(self) -> None:
        self._items.clear()

    def __contains__(self, session_id: str) -> bool:
        return session_id in self._items

    def __len__(self) -> int:
        return len(self._items)


class SessionManager:
    def __init__(
        self,
        store: Storage,
        cache: SessionCache | None = None,
        history_limit: int = 20,
    ) -> None:
        self.store = store
        self.cache = cache if cache is not None else SessionCache()
        self.history_limit = history_limit
        self._locks: weakref.WeakValueDictionary[str, asyncio.Lock] = weakref.WeakValueDictionary()
        self._running: dict[str, Session] = {}
        self._tasks: set[asyncio.Task] = set()

    def lock(self, session_id: str) -> asyncio.Lock:
        """The session's lock. It lives only while someone holds or awaits it."""
        lock = self._locks.get(session_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[session_id] = lock
        return lock

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def create_session(
        self,
        world: World | None = None,
        template: str | None = None,
        player_name: str = "Player",
        style: str = "",
        file_id: str = "",
        session_id: str | None = None,
    ) -> Session:
        """Create and persist a session from an inline world or a template slug."""
        if template:
            tpl = self.store.get_template(template)
            if tpl is None:
                raise NotFoundError(f"Template '{template}' not found")
            world = tpl.world
            style = style or tpl.style
        elif world is None:
            raise ValueError("A session needs a world bundle or a template")

        sid = session_id or uuid.uuid4().hex
        manifest = Manifest(
            session_id=sid,
            file_id=file_id,
            player_name=player_name or "Player",
            style=style,
            template=template or None,
        )
        player = initial_player(world, manifest.player_name)

        self.store.create_session_dir(sid)
        self.store.save_manifest(manifest)
        self.store.save_player(sid, player)
        if not template:
            self.store.save_world(sid, world)
        self.store.save_missions(sid, MissionLog())

        session = Session(
            session_id=sid,
            file_id=file_id,
            manifest=manifest,
            world=world,
            game_state=GameState(player=player),
        )
        self.cache.put(session)
        logger.info("Session created: %s", sid)
        return session

    def get_session(self, session_id: str) -> Session:
        session = self.cache.get(session_id)
        if session is not None:
            return session
        session = self._running.get(session_id)
        if session is not None:
            # Evicted mid-turn: the running turn still owns the live copy
            self.cache.put(session)
            return session
        return self.recover_session(session_id)

    def recover_session(self, session_id: str) -> Session:
        """Rebuild a session from its artifacts and put it back in the cache."""
        manifest = self.store.get_manifest(session_id)
        if manifest is None:
            raise NotFoundError(f"Session '{session_id}' not found")
        player = self.store.get_player(session_id)
        if player is None:
            raise NotFoundError(f"Session '{session_id}' has no player status")

        if manifest.template:
            tpl = self.store.get_template(manifest.template)
            if tpl is None:
                raise NotFoundError(f"Template '{manifest.template}' for session '{session_id}' not found")
            world = tpl.world
        else:
            world = self.store.get_world(session_id)
            if world is None:
                raise NotFoundError(f"Session '{session_id}' has no world data")

        history = self.store.get_transcript(session_id)
        session = Session(
            session_id=session_id,
            file_id=manifest.file_id,
            manifest=manifest,
            world=world,
            conversation_history=conversation_from_transcript(history, self.history_limit),
            history=history,
            game_state=GameState(
                player=player,
                last_action_at=history[-1].ts if history else None,
            ),
        )
        self.cache.put(session)
        logger.info("Session recovered: %s (%d transcript entries)", session_id, len(history))
        return session

    def evict(self, session_id: str) -> bool:
        """Drop the in-memory copy; artifacts stay on disk."""
        return self.cache.evict(session_id)

    # ------------------------------------------------------------------
    # Missions
    # ------------------------------------------------------------------

    def get_missions(self, session_id: str) -> MissionLog:
        self.get_session(session_id)
        return self.store.get_missions(session_id)

    def _mission(self, log: MissionLog, session_id: str, mission_id: str) -> Mission:
        mission = log.get(mission_id)
        if mission is None:
            raise NotFoundError(f"Mission '{mission_id}' not found in session '{session_id}'")
        return mission

    async def create_mission(
        self,
        session_id: str,
        title: str,
        description: str = "",
        type: str = "location",
        completion_paths: list[CompletionPath] | None = None,
        reward: Reward | None = None,
        is_story_mission: bool = False,
        blocks_storyline: bool = False,
    ) -> Mission:
        async with self.lock(session_id):
            self.get_session(session_id)
            log = self.store.get_missions(session_id)
            mission = missions.create_mission(
                log, title, description, type, completion_paths, reward,
                is_story_mission, blocks_storyline,
            )
            self.store.save_missions(session_id, log)
            return mission

    async def submit_mission(self, session_id: str, mission_id: str) -> missions.SubmissionResult:
        async with self.lock(session_id):
            session = self.get_session(session_id)
            log = self.store.get_missions(session_id)
            mission = self._mission(log, session_id, mission_id)
            result = missions.submit_mission(log, mission, session.game_state.player)
            self.store.save_missions(session_id, log)
            if result.completed:
                session.game_state.player = result.player
                self.store.save_player(session_id, result.player)
            return result

    async def abandon_mission(self, session_id: str, mission_id: str) -> Mission:
        async with self.lock(session_id):
            self.get_session(session_id)
            log = self.store.get_missions(session_id)
            mission = missions.abandon_mission(log, self._mission(log, session_id, mission_id))
            self.store.save_missions(session_id, log)
            return mission

    # ------------------------------------------------------------------
    # Turns
    # ------------------------------------------------------------------

    def start_turn(
        self,
        session_id: str,
        action: str,
        llm: LLM,
        config: dict[str, Any],
    ) -> asyncio.Queue:
        """Run a turn in a background task and return its event queue.

        The queue ends with None. The task owns persistence, so a consumer
        that stops reading does not cut the turn short.
        """
        self.get_session(session_id)
        return self._spawn(session_id, lambda session: run_turn(session, action, llm, self.store, config))

    def continue_story(
        self,
        session_id: str,
        opening: dict[str, Any],
        llm: LLM,
        config: dict[str, Any],
    ) -> asyncio.Queue:
        """Resume the story after a completion or the blocker's abandonment.

        Streams `opening`, then a turn for the configured continue action,
        then `story_complete`. A failed continuation ends with an `error`
        telling the player to continue by hand; the mission outcome stands.
        """
        self.get_session(session_id)
        action = config.get("continue_action") or "Continue the story."

        async def events(session: Session) -> AsyncIterator[dict[str, Any]]:
            yield opening
            new_mission = None
            async for event in run_turn(session, action, llm, self.store, config):
                if event["type"] == "error":
                    logger.warning("Story continuation failed for %s: %s", session_id, event["message"])
                    yield {
                        "type": "error",
                        "message": "Story continuation failed. Send an action to continue the story.",
                        "detail": event["message"],
                    }
                    return
                if event["type"] == "mission":
                    new_mission = event["mission"]
                yield event
                if event["type"] == "storyline_blocked":
                    return
            yield {
                "type": "story_complete",
                "player": session.game_state.player.model_dump(),
                "new_mission": new_mission,
            }

        return self._spawn(session_id, events)

    def _spawn(
        self,
        session_id: str,
        produce: Callable[[Session], AsyncIterator[dict[str, Any]]],
    ) -> asyncio.Queue:
        queue: asyncio.Queue = asyncio.Queue()

        async def worker() -> None:
            try:
                async with self.lock(session_id):
                    # The session may have been evicted while waiting on the lock
                    session = self.get_session(session_id)
                    self._running[session_id] = session
                    try:
                        async for event in produce(session):
                            await queue.put(event)
                    finally:
                        del self._running[session_id]
            except Exception as e:
                logger.exception("Turn failed for session %s", session_id)
                await queue.put({"type": "error", "message": str(e)})
            finally:
                await queue.put(None)

        task = asyncio.create_task(worker())
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return queue

    async def drain(self) -> None:
        """Wait for running turns to finish."""
        if self._tasks:
            await asyncio.gather(*self._tasks)
