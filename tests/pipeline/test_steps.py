"""Tests for classify_steps: marker grammar, free text, partial buffers."""

from taleweave.models import (
    ChoiceStep,
    DialogueStep,
    HintStep,
    ItemDelta,
    NarrationStep,
    RelationshipDelta,
    SceneUnlock,
    StatDelta,
)
from taleweave.pipeline.steps import classify_steps

DAWN = (
    '[NARRATION: It is dawn.][DIALOGUE: npc_1, "Hello."][CHOICE: Pick]\n'
    "Go?\n[OPTION: Yes]\n[OPTION: No]\n[END_CHOICE]"
)


# ── Complete buffers ─────────────────────────────────────────


def test_markers_sharing_a_line():
    parsed = classify_steps(DAWN)
    assert parsed.steps == [
        NarrationStep(text="It is dawn."),
        DialogueStep(speaker_id="npc_1", text="Hello."),
        ChoiceStep(title="Pick", body="Go?", options=["Yes", "No"]),
    ]
    assert parsed.trailing_open is False


def test_classification_is_idempotent():
    assert classify_steps(DAWN) == classify_steps(DAWN)


def test_free_text_lines():
    parsed = classify_steps('The fog lifts.\nMira: "Hold the rope."\n')
    assert parsed.steps == [
        NarrationStep(text="The fog lifts."),
        DialogueStep(speaker_id="Mira", text="Hold the rope."),
    ]


def test_unknown_markers_are_skipped():
    parsed = classify_steps("[WEATHER: rain][NARRATION: Wet stones.]")
    assert parsed.steps == [NarrationStep(text="Wet stones.")]


def test_hint_with_deltas():
    text = (
        "[HINT: You pocket the key.]\n"
        "[CHANGE: Rusty Key, GAIN, 1]\n"
        "[CHANGE: RELATIONSHIP, mira, +5]\n"
        "[CHANGE: player, wits, -1]\n"
        "[UNLOCK_SCENE: crypt]\n"
        "[NARRATION: Footsteps above.]"
    )
    parsed = classify_steps(text)
    hint = parsed.steps[0]
    assert isinstance(hint, HintStep)
    assert hint.deltas == [
        ItemDelta(item="Rusty Key", action="gain", quantity=1),
        RelationshipDelta(npc="mira", delta=5),
        StatDelta(target="player", attribute="wits", delta=-1),
        SceneUnlock(scene_id="crypt"),
    ]
    assert parsed.steps[1] == NarrationStep(text="Footsteps above.")


def test_chinese_item_actions():
    parsed = classify_steps("[HINT: 交易][CHANGE: 铜钥匙, 丢失, 2]\n[NARRATION: ok]")
    assert parsed.steps[0].deltas == [ItemDelta(item="铜钥匙", action="lose", quantity=2)]


def test_delta_outside_hint_is_ignored():
    parsed = classify_steps("[NARRATION: Quiet.][CHANGE: player, wits, +1]")
    assert parsed.steps == [NarrationStep(text="Quiet.")]


def test_choice_without_options_is_dropped():
    parsed = classify_steps("[CHOICE: Nothing]\nbody\n[END_CHOICE][NARRATION: After.]")
    assert parsed.steps == [NarrationStep(text="After.")]


def test_new_block_closes_open_choice():
    parsed = classify_steps("[CHOICE: Door]\n[OPTION: Open]\n[NARRATION: Later.]")
    assert parsed.steps == [
        ChoiceStep(title="Door", options=["Open"]),
        NarrationStep(text="Later."),
    ]


def test_mission_signal():
    assert classify_steps("[NARRATION: x][MISSION: true]").mission_signal is True
    assert classify_steps("[NARRATION: x][MISSION: false]").mission_signal is False
    assert classify_steps("[NARRATION: x]").mission_signal is None


def test_mission_marker_is_not_a_step():
    assert len(classify_steps("[MISSION: true]").steps) == 0


# ── Partial buffers ──────────────────────────────────────────


def test_unclosed_marker_is_omitted():
    parsed = classify_steps("[NARRATION: It is dawn.][DIALOGUE: npc_1, \"Hel")
    assert parsed.steps == [NarrationStep(text="It is dawn.")]


def test_free_text_without_newline_is_open():
    parsed = classify_steps("The wind")
    assert parsed.steps == [NarrationStep(text="The wind")]
    assert parsed.trailing_open is True


def test_open_choice_with_options_is_open():
    parsed = classify_steps("[CHOICE: Pick]\nGo?\n[OPTION: Yes]")
    assert parsed.steps == [ChoiceStep(title="Pick", body="Go?", options=["Yes"])]
    assert parsed.trailing_open is True


def test_open_choice_without_options_is_withheld():
    parsed = classify_steps("[NARRATION: a][CHOICE: Pick]\nGo?")
    assert parsed.steps == [NarrationStep(text="a")]


def test_hint_at_tail_is_open():
    parsed = classify_steps("[HINT: You feel watched.]")
    assert parsed.trailing_open is True


def test_prefixes_are_monotone():
    """Every step of a prefix, except the open tail, is final."""
    final = classify_steps(DAWN).steps
    for cut in range(len(DAWN) + 1):
        parsed = classify_steps(DAWN[:cut])
        settled = parsed.steps[:-1] if parsed.steps else []
        assert settled == final[:len(settled)]
