"""JSON file storage for world templates and session artifacts.

All state lives in flat JSON files under a configurable base directory.
Reads and writes go through plain helpers that load and dump JSON; pydantic
models are serialised with `model_dump_json`.

Directory layout:

    {base}/
      config.json               ← app settings (see taleweave.config)
      templates/
        {slug}.json             ← shared WorldTemplate
      sessions/
        {session_id}/
          manifest.json         ← Manifest (style, optional template pointer)
          transcript.json       ← list of TranscriptEntry, append-only
          player.json           ← PlayerState snapshot
          missions.json         ← MissionLog
          world.json            ← World, only when the manifest has no template

A session directory is only considered present when its manifest exists.
"""

from __future__ import annotations

import json
import logging
import re
import shutil
import unicodedata
from pathlib import Path
from typing import Any

from taleweave.models import (
    Manifest,
    MissionLog,
    PlayerState,
    TranscriptEntry,
    World,
    WorldTemplate,
)

logger = logging.getLogger(__name__)


def slugify(title: str) -> str:
    """Convert a title to a filesystem-safe slug.

    "The Sunken Keep" → "the-sunken-keep"
    """
    text = unicodedata.normalize("NFKD", title)
    text = text.encode("ascii", "ignore").decode("ascii")
    text = text.lower()
    text = re.sub(r"['\"]", "", text)
    text = re.sub(r"[^a-z0-9]+", "-", text)
    text = text.strip("-")
    return text or "untitled"


class Storage:
    def __init__(self, base_path: Path) -> None:
        self._base = base_path
        self._templates = base_path / "templates"
        self._sessions = base_path / "sessions"
        self._templates.mkdir(parents=True, exist_ok=True)
        self._sessions.mkdir(parents=True, exist_ok=True)

    @property
    def base(self) -> Path:
        return self._base

    # ------------------------------------------------------------------
    # Internal path helpers
    # ------------------------------------------------------------------

    def _template_file(self, slug: str) -> Path:
        return self._templates / f"{slug}.json"

    def _session_dir(self, session_id: str) -> Path:
        return self._sessions / session_id

    def _read_json(self, path: Path) -> Any:
        return json.loads(path.read_text())

    def _write_json(self, path: Path, data: Any) -> None:
        path.write_text(json.dumps(data, indent=2, ensure_ascii=False))

    # ------------------------------------------------------------------
    # World templates
    # ------------------------------------------------------------------

    def list_templates(self) -> list[WorldTemplate]:
        return [
            WorldTemplate.model_validate_json(p.read_text())
            for p in sorted(self._templates.glob("*.json"))
        ]

    def get_template(self, slug: str) -> WorldTemplate | None:
        path = self._template_file(slug)
        if not path.is_file():
            return None
        return WorldTemplate.model_validate_json(path.read_text())

    def save_template(self, template: WorldTemplate, overwrite: bool = False) -> WorldTemplate:
        path = self._template_file(template.slug)
        if path.exists() and not overwrite:
            raise FileExistsError(f"Template '{template.title}' already exists (slug: {template.slug})")
        path.write_text(template.model_dump_json(indent=2))
        return template

    def delete_template(self, slug: str) -> bool:
        path = self._template_file(slug)
        if not path.is_file():
            return False
        path.unlink()
        return True

    # ------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------

    def session_exists(self, session_id: str) -> bool:
        return (self._session_dir(session_id) / "manifest.json").is_file()

    def list_sessions(self) -> list[str]:
        return sorted(
            p.name for p in self._sessions.iterdir()
            if p.is_dir() and (p / "manifest.json").is_file()
        )

    def create_session_dir(self, session_id: str) -> None:
        d = self._session_dir(session_id)
        if d.exists():
            raise FileExistsError(f"Session '{session_id}' already exists")
        d.mkdir(parents=True)

    def delete_session(self, session_id: str) -> bool:
        d = self._session_dir(session_id)
        if not d.is_dir():
            return False
        shutil.rmtree(d)
        return True

    # ── Manifest ─────────────────────────────────────────

    def get_manifest(self, session_id: str) -> Manifest | None:
        path = self._session_dir(session_id) / "manifest.json"
        if not path.is_file():
            return None
        return Manifest.model_validate_json(path.read_text())

    def save_manifest(self, manifest: Manifest) -> None:
        path = self._session_dir(manifest.session_id) / "manifest.json"
        path.write_text(manifest.model_dump_json(indent=2))

    # ── Player status ────────────────────────────────────

    def get_player(self, session_id: str) -> PlayerState | None:
        path = self._session_dir(session_id) / "player.json"
        if not path.is_file():
            return None
        return PlayerState.model_validate_json(path.read_text())

    def save_player(self, session_id: str, player: PlayerState) -> None:
        path = self._session_dir(session_id) / "player.json"
        path.write_text(player.model_dump_json(indent=2))

    # ── World bundle ─────────────────────────────────────

    def get_world(self, session_id: str) -> World | None:
        path = self._session_dir(session_id) / "world.json"
        if not path.is_file():
            return None
        return World.model_validate_json(path.read_text())

    def save_world(self, session_id: str, world: World) -> None:
        path = self._session_dir(session_id) / "world.json"
        path.write_text(world.model_dump_json(indent=2))

    # ── Transcript (append-only) ─────────────────────────

    def get_transcript(self, session_id: str) -> list[TranscriptEntry]:
        path = self._session_dir(session_id) / "transcript.json"
        if not path.exists():
            return []
        return [TranscriptEntry.model_validate(e) for e in self._read_json(path)]

    def append_transcript(self, session_id: str, entries: list[TranscriptEntry]) -> None:
        existing = self.get_transcript(session_id)
        existing.extend(entries)
        self._write_json(
            self._session_dir(session_id) / "transcript.json",
            [e.model_dump() for e in existing],
        )

    # ── Missions ─────────────────────────────────────────

    def get_missions(self, session_id: str) -> MissionLog:
        path = self._session_dir(session_id) / "missions.json"
        if not path.is_file():
            return MissionLog()
        return MissionLog.model_validate_json(path.read_text())

    def save_missions(self, session_id: str, log: MissionLog) -> None:
        path = self._session_dir(session_id) / "missions.json"
        path.write_text(log.model_dump_json(indent=2))
