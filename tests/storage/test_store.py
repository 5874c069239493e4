"""Tests for the JSON file Storage: templates and session artifacts."""

import json

import pytest

from taleweave.models import (
    Manifest,
    Mission,
    MissionLog,
    PlayerState,
    TranscriptEntry,
    World,
    WorldTemplate,
)
from taleweave.storage import Storage, slugify


def test_slugify():
    assert slugify("The Sunken Keep") == "the-sunken-keep"
    assert slugify("Dragon's Hollow!") == "dragons-hollow"
    assert slugify("???") == "untitled"


def test_init_creates_directories(tmp_path):
    Storage(tmp_path / "data")
    assert (tmp_path / "data" / "templates").is_dir()
    assert (tmp_path / "data" / "sessions").is_dir()


# ── Templates ────────────────────────────────────────────────


def test_template_roundtrip(store, world):
    tpl = WorldTemplate(slug="keep", title="The Sunken Keep", world=world)
    store.save_template(tpl)
    assert store.get_template("keep") == tpl
    assert [t.slug for t in store.list_templates()] == ["keep"]


def test_template_collision(store):
    store.save_template(WorldTemplate(slug="keep", title="Keep"))
    with pytest.raises(FileExistsError):
        store.save_template(WorldTemplate(slug="keep", title="Keep"))
    store.save_template(WorldTemplate(slug="keep", title="Keep II"), overwrite=True)
    assert store.get_template("keep").title == "Keep II"


def test_delete_template(store):
    store.save_template(WorldTemplate(slug="keep", title="Keep"))
    assert store.delete_template("keep") is True
    assert store.delete_template("keep") is False
    assert store.get_template("keep") is None


# ── Session artifacts ────────────────────────────────────────


def test_session_exists_needs_manifest(store):
    store.create_session_dir("s1")
    assert store.session_exists("s1") is False
    store.save_manifest(Manifest(session_id="s1"))
    assert store.session_exists("s1") is True
    assert store.list_sessions() == ["s1"]


def test_create_session_dir_twice(store):
    store.create_session_dir("s1")
    with pytest.raises(FileExistsError):
        store.create_session_dir("s1")


def test_missing_artifacts_read_as_none(store):
    store.create_session_dir("s1")
    assert store.get_manifest("s1") is None
    assert store.get_player("s1") is None
    assert store.get_world("s1") is None
    assert store.get_transcript("s1") == []
    assert store.get_missions("s1") == MissionLog()


def test_transcript_is_appended(store):
    store.create_session_dir("s1")
    store.append_transcript("s1", [TranscriptEntry(turn=1, role="player", text="hi")])
    store.append_transcript("s1", [TranscriptEntry(turn=1, role="narrator", text="hello", partial=True)])
    transcript = store.get_transcript("s1")
    assert [e.text for e in transcript] == ["hi", "hello"]
    assert transcript[1].partial is True


def test_artifacts_roundtrip(store, world):
    store.create_session_dir("s1")
    player = PlayerState(name="Ada", stats={"wits": 4})
    log = MissionLog(missions=[Mission(id="m1", title="x")], turn_count=3, last_mission_turn=2)
    store.save_player("s1", player)
    store.save_world("s1", world)
    store.save_missions("s1", log)
    assert store.get_player("s1") == player
    assert store.get_world("s1") == world
    assert store.get_missions("s1") == log


def test_artifacts_are_plain_json(store, tmp_path):
    store.create_session_dir("s1")
    store.save_manifest(Manifest(session_id="s1", style="grim", template="keep"))
    data = json.loads((tmp_path / "sessions" / "s1" / "manifest.json").read_text())
    assert data["style"] == "grim"
    assert data["template"] == "keep"


def test_delete_session(store):
    store.create_session_dir("s1")
    store.save_manifest(Manifest(session_id="s1"))
    assert store.delete_session("s1") is True
    assert store.session_exists("s1") is False
    assert store.delete_session("s1") is False
