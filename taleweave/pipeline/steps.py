"""Narrator output classification into typed narrative steps.

Marker format (several markers may share one line):

  [NARRATION: text]
  [DIALOGUE: speaker_id, "text"]
  [HINT: text]                       followed by zero or more delta markers:
    [CHANGE: item, GAIN|LOSE, 2]
    [CHANGE: RELATIONSHIP, npc, +5]
    [CHANGE: player, strength, -1]
    [UNLOCK_SCENE: scene_id]
  [CHOICE: title]
  body text
  [OPTION: text]
  [END_CHOICE]
  [MISSION: true|false]              mission intent signal, not a step

Free text lines outside a choice block become narration, or dialogue when they
look like `Speaker: "text"`. Unknown bracket content is skipped.

The buffer may still be streaming: an unclosed trailing marker is dropped, and
a last step that can still grow is reported through `trailing_open`.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field

from pydantic import ValidationError

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

Step = NarrationStep | DialogueStep | HintStep | ChoiceStep

_BRACKET_RE = re.compile(r"\[([^\[\]]*)\]")
_TAG_RE = re.compile(r"^([A-Z_]+)\s*(?::\s*(.*?))?\s*$", re.DOTALL)
_DIALOGUE_BODY_RE = re.compile(r'^([^,"]+),\s*["“](.*)["”]$', re.DOTALL)
_FREE_DIALOGUE_RE = re.compile(r'^([^:："“]+)[：:]\s*["“](.+)["”]$')

_ITEM_CHANGE_RE = re.compile(r"^([^,]+),\s*(GAIN|LOSE|获得|丢失),\s*(\d+)$", re.IGNORECASE)
_REL_CHANGE_RE = re.compile(r"^RELATIONSHIP,\s*([^,]+),\s*([+-]?\d+)$", re.IGNORECASE)
_STAT_CHANGE_RE = re.compile(r"^([^,]+),\s*([^,]+),\s*([+-]?\d+)$")

_ITEM_ACTIONS = {"gain": "gain", "lose": "lose", "获得": "gain", "丢失": "lose"}


class ClassificationError(ValueError):
    """Raised when marker text cannot be turned into a valid step."""


@dataclass
class StepParse:
    steps: list[Step] = field(default_factory=list)
    mission_signal: bool | None = None
    trailing_open: bool = False


def classify_steps(text: str) -> StepParse:
    """Classify the full buffer into ordered narrative steps.

    Stateless and deterministic: the same text always yields equal results,
    so callers can rerun it on every chunk of a growing buffer.
    """
    try:
        return _Classifier().run(text)
    except ValidationError as e:
        raise ClassificationError(f"Malformed narrative marker: {e}") from e


class _Classifier:
    def __init__(self) -> None:
        self.result = StepParse()
        self.choice: ChoiceStep | None = None
        self.hint_open = False

    @property
    def steps(self) -> list[Step]:
        return self.result.steps

    def run(self, text: str) -> StepParse:
        pos = 0
        for match in _BRACKET_RE.finditer(text):
            self._text(text[pos:match.start()], at_end=False)
            self._marker(match.group(1))
            pos = match.end()

        tail = text[pos:]
        cut = tail.find("[")
        if cut != -1:
            # Marker still being written
            tail = tail[:cut]
            self._text(tail, at_end=False)
        else:
            self._text(tail, at_end=not text.endswith("\n"))

        if self.choice is not None:
            if self.choice.options:
                self.steps.append(self.choice)
                self.result.trailing_open = True
        elif self.hint_open and self.steps and isinstance(self.steps[-1], HintStep):
            self.result.trailing_open = True
        return self.result

    # ── Free text ────────────────────────────────────────

    def _text(self, chunk: str, at_end: bool) -> None:
        lines = chunk.split("\n")
        for i, raw in enumerate(lines):
            line = raw.strip()
            if not line or line.startswith("["):
                continue
            self.hint_open = False
            if self.choice is not None:
                self.choice.body = f"{self.choice.body} {line}".strip()
                continue
            match = _FREE_DIALOGUE_RE.match(line)
            if match:
                self.steps.append(DialogueStep(
                    speaker_id=match.group(1).strip(),
                    text=match.group(2).strip(),
                ))
            else:
                self.steps.append(NarrationStep(text=line))
            if at_end and i == len(lines) - 1:
                self.result.trailing_open = True

    # ── Markers ──────────────────────────────────────────

    def _marker(self, inner: str) -> None:
        match = _TAG_RE.match(inner.strip())
        if not match:
            return
        tag, body = match.group(1), (match.group(2) or "").strip()

        if tag == "MISSION":
            if body.lower() in ("true", "false"):
                self.result.mission_signal = body.lower() == "true"
            return

        if tag in ("CHANGE", "UNLOCK_SCENE"):
            if self.hint_open and self.steps and isinstance(self.steps[-1], HintStep):
                delta = _parse_delta(tag, body)
                if delta is not None:
                    self.steps[-1].deltas.append(delta)
            return

        if tag == "OPTION":
            if self.choice is not None and body:
                self.choice.options.append(body)
            return

        if tag == "END_CHOICE":
            if self.choice is not None:
                self._close_choice()
            return

        if tag not in ("NARRATION", "DIALOGUE", "HINT", "CHOICE"):
            return

        self.hint_open = False
        if self.choice is not None:
            self._close_choice()

        if tag == "NARRATION":
            self.steps.append(NarrationStep(text=body))
        elif tag == "DIALOGUE":
            dm = _DIALOGUE_BODY_RE.match(body)
            if dm:
                self.steps.append(DialogueStep(
                    speaker_id=dm.group(1).strip(),
                    text=dm.group(2).strip(),
                ))
        elif tag == "HINT":
            self.steps.append(HintStep(text=body))
            self.hint_open = True
        elif tag == "CHOICE":
            self.choice = ChoiceStep(title=body)

    def _close_choice(self) -> None:
        # A choice block without options carries nothing to choose from
        if self.choice is not None and self.choice.options:
            self.steps.append(self.choice)
        self.choice = None


def _parse_delta(tag: str, body: str):
    if tag == "UNLOCK_SCENE":
        return SceneUnlock(scene_id=body) if body else None

    match = _ITEM_CHANGE_RE.match(body)
    if match:
        return ItemDelta(
            item=match.group(1).strip(),
            action=_ITEM_ACTIONS[match.group(2).lower()],
            quantity=int(match.group(3)),
        )
    match = _REL_CHANGE_RE.match(body)
    if match:
        return RelationshipDelta(npc=match.group(1).strip(), delta=int(match.group(2)))
    match = _STAT_CHANGE_RE.match(body)
    if match:
        return StatDelta(
            target=match.group(1).strip(),
            attribute=match.group(2).strip(),
            delta=int(match.group(3)),
        )
    return None
