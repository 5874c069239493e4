"""App settings: defaults merged with `<data>/config.json`.

`llm` is merged key-by-key, scalars are overwritten. Empty prompt strings mean
"use the built-in template". TALEWEAVE_LLM_URL / TALEWEAVE_LLM_KEY override
the stored connection at read time but are never written back.
"""

import json
import os
from pathlib import Path
from typing import Any

_CONFIG_DEFAULTS: dict[str, Any] = {
    "llm": {
        "provider_url": "http://localhost:5001",
        "api_key": "",
        "provider_format": "koboldcpp",
        "model": "",
        "timeout": 120,
    },
    "history_limit": 20,
    "mission_cooldown_turns": 3,
    "mission_force_turns": 10,
    "max_cached_sessions": 64,
    "default_style": "",
    "narrator_prompt": "",
    "mission_prompt": "",
    "continue_action": "Continue the story.",
}

_SCALAR_KEYS = [k for k in _CONFIG_DEFAULTS if k != "llm"]


def _config_path(data_dir: Path) -> Path:
    return data_dir / "config.json"


def _stored(data_dir: Path) -> dict[str, Any]:
    config: dict[str, Any] = json.loads(json.dumps(_CONFIG_DEFAULTS))
    path = _config_path(data_dir)
    if path.is_file():
        stored = json.loads(path.read_text())
        if isinstance(stored.get("llm"), dict):
            config["llm"].update(stored["llm"])
        for key in _SCALAR_KEYS:
            if key in stored:
                config[key] = stored[key]
    return config


def get_config(data_dir: Path) -> dict[str, Any]:
    """Read config, returning defaults merged with stored values and env overrides."""
    config = _stored(data_dir)
    if url := os.getenv("TALEWEAVE_LLM_URL"):
        config["llm"]["provider_url"] = url
    if key := os.getenv("TALEWEAVE_LLM_KEY"):
        config["llm"]["api_key"] = key
    return config


def update_config(data_dir: Path, fields: dict[str, Any]) -> dict[str, Any]:
    """Merge fields into config and persist. Returns full config."""
    config = _stored(data_dir)
    if isinstance(fields.get("llm"), dict):
        config["llm"].update(fields["llm"])
    for key in _SCALAR_KEYS:
        if key in fields:
            config[key] = fields[key]
    _config_path(data_dir).write_text(json.dumps(config, indent=2))
    return get_config(data_dir)
