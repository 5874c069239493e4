"""Tests for the mission lifecycle: creation, submission, abandonment, policy."""

import json
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from taleweave.llm import HttpLLM, LLMError
from taleweave.missions import (
    MissionStateError,
    abandon_mission,
    add_mission,
    create_mission,
    generate_story_mission,
    mission_from_json,
    mission_summary,
    story_mission_trigger,
    storyline_status,
    submit_mission,
)
from taleweave.models import (
    CompletionPath,
    Mission,
    MissionLog,
    PlayerState,
    Requirements,
    Reward,
    ThresholdRequirement,
)


def _story_mission(mission_id: str = "m1") -> Mission:
    return Mission(
        id=mission_id,
        title="The Drowned Bell",
        is_story_mission=True,
        blocks_storyline=True,
        completion_paths=[
            CompletionPath(path_id="A", name="Dive", requirements=Requirements(
                stats=[ThresholdRequirement(name="strength", min_value=10)])),
            CompletionPath(path_id="B", name="Ask Mira", requirements=Requirements(
                relationships=[ThresholdRequirement(name="mira", min_value=10)])),
        ],
        reward=Reward(gold=20, items=["Bell Rope"], experience=50),
    )


def _player(**overrides) -> PlayerState:
    data = dict(stats={"strength": 3}, relationships={"mira": 12}, currency={"gold": 5})
    data.update(overrides)
    return PlayerState(**data)


# ── Creation and the storyline block ─────────────────────────


def test_add_story_mission_blocks_storyline():
    log = MissionLog(turn_count=4)
    mission = add_mission(log, _story_mission())
    assert mission.created_turn == 4
    assert log.last_mission_turn == 4
    assert storyline_status(log) == {"blocked": True, "mission": mission.model_dump()}


def test_second_blocker_rejected():
    log = MissionLog()
    add_mission(log, _story_mission("m1"))
    with pytest.raises(MissionStateError):
        add_mission(log, _story_mission("m2"))
    assert len(log.missions) == 1


def test_create_side_mission_does_not_block():
    log = MissionLog()
    mission = create_mission(
        log, "Find the key", type="item",
        completion_paths=[CompletionPath(path_id="A", name="a")],
    )
    assert mission.status == "active"
    assert log.has_active_story_mission is False
    assert log.last_mission_turn is None


def test_create_requires_a_path():
    with pytest.raises(ValueError):
        create_mission(MissionLog(), "Nothing to do", completion_paths=[])


# ── Submission ───────────────────────────────────────────────


def test_submit_reports_second_path_and_unblocks():
    log = MissionLog(turn_count=7)
    mission = add_mission(log, _story_mission())
    result = submit_mission(log, mission, _player())

    assert result.completed is True
    assert result.completed_via == "B"
    assert [(p.path_id, p.check.met) for p in result.paths] == [("A", False), ("B", True)]
    assert mission.status == "completed"
    assert mission.completed_turn == 7
    assert mission.completed_via_path == "B"
    assert mission.attempted_submissions == 1
    assert log.has_active_story_mission is False


def test_submit_grants_reward():
    log = MissionLog()
    mission = add_mission(log, _story_mission())
    player = _player()
    result = submit_mission(log, mission, player)

    assert result.player.currency == {"gold": 25}
    assert result.player.stats["experience"] == 50
    assert [i.name for i in result.player.inventory] == ["Bell Rope"]
    assert player.currency == {"gold": 5}


def test_failed_submission_counts_attempt():
    log = MissionLog()
    mission = add_mission(log, _story_mission())
    result = submit_mission(log, mission, _player(relationships={}))

    assert result.completed is False
    assert result.player.currency == {"gold": 5}
    assert mission.status == "active"
    assert mission.attempted_submissions == 1
    assert log.has_active_story_mission is True
    assert "not complete" in result.message


def test_terminal_missions_reject_operations():
    log = MissionLog()
    mission = add_mission(log, _story_mission())
    submit_mission(log, mission, _player())
    with pytest.raises(MissionStateError):
        submit_mission(log, mission, _player())
    with pytest.raises(MissionStateError):
        abandon_mission(log, mission)


# ── Abandonment ──────────────────────────────────────────────


def test_abandon_unblocks_without_reward():
    log = MissionLog(turn_count=2)
    mission = add_mission(log, _story_mission())
    abandoned = abandon_mission(log, mission)

    assert abandoned.status == "abandoned"
    assert abandoned.abandoned_turn == 2
    assert abandoned.completed_via_path is None
    assert log.has_active_story_mission is False
    assert storyline_status(log) == {"blocked": False, "mission": None}


# ── Trigger policy ───────────────────────────────────────────


@pytest.mark.parametrize(
    ("turn", "last", "signal", "expected"),
    [
        (1, None, True, True),     # first mission needs no cooldown
        (1, None, False, False),
        (5, 3, True, False),       # cooldown not elapsed
        (6, 3, True, True),
        (10, None, False, True),   # force trip
        (12, 3, None, False),
        (13, 3, None, True),
    ],
)
def test_story_mission_trigger(turn, last, signal, expected):
    log = MissionLog(turn_count=turn, last_mission_turn=last)
    assert story_mission_trigger(log, signal, cooldown_turns=3, force_after=10) is expected


def test_trigger_never_fires_while_blocked():
    log = MissionLog(turn_count=50, has_active_story_mission=True)
    assert story_mission_trigger(log, True) is False


# ── Generation ───────────────────────────────────────────────

GENERATED = {
    "type": "story",
    "title": "The Drowned Bell",
    "description": "Raise the bell.",
    "completionPaths": [
        {"pathId": "path_a", "name": "Dive", "requirements": {
            "items": [{"itemName": "Rope", "quantity": 2}],
            "locations": ["crypt"],
        }},
        {"name": "Talk", "requirements": {"relationships": [{"npcId": "mira", "minValue": 10}]}},
    ],
    "reward": {"gold": 20, "items": ["Bell Rope"], "experience": 50},
}


def test_mission_from_json():
    mission = mission_from_json(GENERATED)
    assert mission.title == "The Drowned Bell"
    assert [p.path_id for p in mission.completion_paths] == ["path_a", "path_2"]
    req = mission.completion_paths[0].requirements
    assert req.items[0].item_name == "Rope"
    assert req.items[0].quantity == 2
    assert req.locations == ["crypt"]
    assert req.stats is None
    assert mission.completion_paths[1].requirements.relationships[0].name == "mira"
    assert mission.reward == Reward(gold=20, items=["Bell Rope"], experience=50)


def test_mission_from_json_rejects_pathless():
    assert mission_from_json({"title": "x"}) is None
    assert mission_from_json({"completionPaths": [{"name": "a"}]}) is None


async def test_generate_story_mission(manager, world, stub_llm):
    session = manager.create_session(world=world)
    log = MissionLog(turn_count=3)
    llm = stub_llm({"mission_designer": ["```json\n" + json.dumps(GENERATED) + "\n```"]})

    mission = await generate_story_mission(llm, session, log)

    assert mission is not None
    assert mission.is_blocker
    assert log.has_active_story_mission is True
    assert log.last_mission_turn == 3
    assert "The Sunken Keep" in llm.calls[0][1]


async def test_generate_story_mission_upstream_failure(manager, world, stub_llm):
    session = manager.create_session(world=world)
    log = MissionLog()
    llm = stub_llm({"mission_designer": [LLMError("Cannot connect")]})

    assert await generate_story_mission(llm, session, log) is None
    assert log.missions == []


async def test_generate_story_mission_unreadable_backend_reply(manager, world):
    session = manager.create_session(world=world)
    log = MissionLog()
    resp = MagicMock()
    resp.raise_for_status = MagicMock()
    resp.json.side_effect = json.JSONDecodeError("Expecting value", "<html>", 0)

    with patch("httpx.AsyncClient.post", AsyncMock(return_value=resp)):
        assert await generate_story_mission(HttpLLM("http://localhost:5001"), session, log) is None
    assert log.missions == []


# ── Summary ──────────────────────────────────────────────────


def test_mission_summary():
    log = MissionLog(turn_count=4)
    first = add_mission(log, _story_mission("m1"))
    abandon_mission(log, first)
    create_mission(log, "Side", completion_paths=[CompletionPath(path_id="A", name="a")])

    summary = mission_summary(log, cooldown_turns=3)
    assert summary["turn_count"] == 4
    assert summary["storyline_blocked"] is False
    assert [m["id"] for m in summary["abandoned"]] == ["m1"]
    assert [m["title"] for m in summary["active"]] == ["Side"]
    assert summary["completed"] == []
    assert summary["turns_until_next_mission"] == 3
