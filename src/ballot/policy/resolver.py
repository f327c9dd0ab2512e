"""Policy resolver — loads and validates ballot configuration.

Configuration lives in config/ballot_policy.json. Missing keys fall
back to built-in defaults; present keys are validated fail-closed.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any

POLICY_FILENAME = "ballot_policy.json"

_DEFAULTS: dict[str, Any] = {
    "sentinel_description": "GENESIS",
    "events_file": "events.jsonl",
    "state_file": "state.json",
}


@dataclass(frozen=True)
class PolicyResolver:
    """Resolved ballot policy.

    Invariants:
    - sentinel_description is non-empty
    - events_file and state_file are plain, distinct file names
    """
    sentinel_description: str
    events_file: str
    state_file: str

    def __post_init__(self) -> None:
        if not isinstance(self.sentinel_description, str) or not self.sentinel_description.strip():
            raise ValueError("sentinel_description must be a non-empty string")
        for key in ("events_file", "state_file"):
            name = getattr(self, key)
            if not isinstance(name, str) or not name.strip():
                raise ValueError(f"{key} must be a non-empty string")
            if Path(name).name != name:
                raise ValueError(f"{key} must be a file name, got {name!r}")
        if self.events_file == self.state_file:
            raise ValueError("events_file and state_file must differ")

    @classmethod
    def default(cls) -> PolicyResolver:
        return cls(**_DEFAULTS)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> PolicyResolver:
        unknown = set(data) - set(_DEFAULTS)
        if unknown:
            raise ValueError(f"Unknown policy keys: {', '.join(sorted(unknown))}")
        merged = {**_DEFAULTS, **data}
        return cls(**merged)

    @classmethod
    def from_config_dir(cls, config_dir: Path) -> PolicyResolver:
        """Load policy from a config directory.

        A directory without a policy file yields the defaults.
        """
        path = config_dir / POLICY_FILENAME
        if not path.exists():
            return cls.default()
        with path.open("r", encoding="utf-8") as handle:
            data = json.load(handle)
        if not isinstance(data, dict):
            raise ValueError(f"{path} must contain a JSON object")
        return cls.from_dict(data)

    def events_path(self, data_dir: Path) -> Path:
        return data_dir / self.events_file

    def state_path(self, data_dir: Path) -> Path:
        return data_dir / self.state_file
