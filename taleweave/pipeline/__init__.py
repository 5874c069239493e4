"""Narrator turn pipeline.

Executes one player turn:
  1. Storyline gate — refuse the action while a story mission blocks the plot.
  2. Narrator stream — raw chunks are forwarded as `raw_text` events.
  3. Step emission — the growing buffer is reclassified after every chunk and
     steps that can no longer change are emitted once, in order.
  4. Turn clock — one tick once the stream completes, shared with mission policy.
  5. Status — deltas carried by hint steps are applied to the player.
  6. Transcript — player action and narrator text are appended.
  7. Mission trigger — `[MISSION: true]` after the cooldown, or the force
     trip, asks the model for a blocking story mission.

Narrator output format (parsed by classify_steps):
  [NARRATION: text]
  [DIALOGUE: speaker_id, "text"]
  [HINT: text] [CHANGE: ...] [UNLOCK_SCENE: ...]
  [CHOICE: title] body [OPTION: text] ... [END_CHOICE]
  [MISSION: true|false]
"""

from .core import run_turn  # noqa: F401
from .emitter import IncrementalEmitter  # noqa: F401
from .extractors import (  # noqa: F401
    StatusChanges,
    apply_status_changes,
    collect_status_changes,
)
from .steps import (  # noqa: F401
    ClassificationError,
    Step,
    StepParse,
    classify_steps,
)
