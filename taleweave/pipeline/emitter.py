"""Incremental step emission over a growing model buffer.

The emitter is fed one chunk at a time. After each chunk it reclassifies the
whole buffer and releases steps it has not sent yet. The last step is held
back while it can still change: when the buffer does not end on a closing
bracket, or the classifier reports the tail as open (an unfinished choice
block, a hint that may still receive delta lines, a free-text line without
its newline). `finish()` flushes whatever is left once the stream is done.

Events are plain dicts:
  {"type": "step", "step_index": i, "step": {...}, "is_incremental": bool}
  {"type": "complete", "total_steps": n, "steps": [...]}
"""

from __future__ import annotations

import logging
from typing import Any

from .steps import ClassificationError, Step, StepParse, classify_steps

logger = logging.getLogger(__name__)

Event = dict[str, Any]


def ends_cleanly(buffer: str) -> bool:
    tail = buffer.rstrip()
    return tail.endswith("]")


class IncrementalEmitter:
    def __init__(self) -> None:
        self.buffer = ""
        self.sent = 0
        self.degraded = False
        self.mission_signal: bool | None = None
        self._final: list[Step] = []

    def feed(self, chunk: str) -> list[Event]:
        """Append a chunk and return the step events that became safe to send."""
        self.buffer += chunk
        parsed = self._classify()
        if parsed is None:
            return []

        events: list[Event] = []
        steps = parsed.steps
        hold_last = parsed.trailing_open or not ends_cleanly(self.buffer)
        for i in range(self.sent, len(steps)):
            if i == len(steps) - 1 and hold_last:
                break
            events.append(_step_event(i, steps[i], incremental=True))
            self.sent = i + 1
        return events

    def finish(self) -> list[Event]:
        """Flush pending steps and close the stream with a `complete` event."""
        parsed = self._classify()
        steps = parsed.steps if parsed is not None else []
        events = [
            _step_event(i, steps[i], incremental=False)
            for i in range(self.sent, len(steps))
        ]
        self.sent = max(self.sent, len(steps))
        self._final = list(steps)
        events.append({
            "type": "complete",
            "total_steps": len(steps),
            "steps": [s.model_dump() for s in steps],
        })
        return events

    @property
    def steps(self) -> list[Step]:
        """Final step list; only meaningful after `finish()`."""
        return self._final

    def _classify(self) -> StepParse | None:
        if self.degraded:
            return None
        try:
            parsed = classify_steps(self.buffer)
        except ClassificationError as e:
            # Raw text keeps flowing; structured steps stop for this stream
            logger.warning("Step classification failed, raw text only: %s", e)
            self.degraded = True
            return None
        if parsed.mission_signal is not None:
            self.mission_signal = parsed.mission_signal
        return parsed


def _step_event(index: int, step: Step, incremental: bool) -> Event:
    return {
        "type": "step",
        "step_index": index,
        "step": step.model_dump(),
        "is_incremental": incremental,
    }
