"""State store — JSON snapshots of the workflow engine.

The snapshot holds the persisted state layout only: administrator,
phase, voters, proposals and winning id. Notifications live in the
event log. Writes go to a temporary file that replaces the target, so
a crash mid-write never leaves a truncated snapshot behind.
"""

from __future__ import annotations

import json
import os
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from ballot.engine.workflow import WorkflowEngine

SNAPSHOT_VERSION = 1


class StateStore:
    """Persists one ballot's engine state to a JSON file."""

    def __init__(self, storage_path: Path) -> None:
        self._storage_path = storage_path

    @property
    def storage_path(self) -> Path:
        return self._storage_path

    def exists(self) -> bool:
        return self._storage_path.exists()

    def save(self, engine: WorkflowEngine, ballot_id: str) -> None:
        """Write a snapshot. Raises OSError on write failure."""
        record = {
            "version": SNAPSHOT_VERSION,
            "ballot_id": ballot_id,
            "saved_utc": datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ"),
            "engine": engine.to_dict(),
        }
        self._storage_path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self._storage_path.with_suffix(self._storage_path.suffix + ".tmp")
        with tmp_path.open("w", encoding="utf-8") as f:
            json.dump(record, f, indent=2, sort_keys=True, ensure_ascii=False)
            f.write("\n")
        os.replace(tmp_path, self._storage_path)

    def load(self) -> Optional[tuple[str, WorkflowEngine]]:
        """Load (ballot_id, engine), or None if nothing has been saved.

        Raises:
            ValueError: Unreadable, unsupported or inconsistent snapshot.
        """
        if not self._storage_path.exists():
            return None
        with self._storage_path.open("r", encoding="utf-8") as f:
            try:
                record = json.load(f)
            except json.JSONDecodeError as e:
                raise ValueError(f"Corrupt state file {self._storage_path}: {e}") from e

        if not isinstance(record, dict):
            raise ValueError(f"Corrupt state file {self._storage_path}: not an object")
        version = record.get("version")
        if version != SNAPSHOT_VERSION:
            raise ValueError(f"Unsupported state snapshot version: {version!r}")
        if "ballot_id" not in record or "engine" not in record:
            raise ValueError(f"Corrupt state file {self._storage_path}: missing fields")

        return record["ballot_id"], WorkflowEngine.from_dict(record["engine"])
