# Copyright 2025 Roger Cibrian
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

"""State file persistence for pubtrack.

This module persists a HistoryStore between runs as a single JSON file:

    {
      "metadata": {"pubtrack_version": "...", "schema_version": "1",
                   "last_updated": "2025-01-01T00:00:00+00:00"},
      "history": [{"plugin_id": ..., "timestamp": ..., "duration_ms": ...}],
      "transitions": [{"plugin_id": ..., "version": ..., "from_stage": ...}],
      "last_known_status": {"12345": {"stage": "published", ...}}
    }

Tracked plugin ids and retention settings live in the YAML settings file,
not here.

Key Features:

- JSON-based state storage (fast parsing, standard library)
- Auto-creation of state files and directories
- Corrupted files are backed up and replaced with a fresh state
- Stable output (sorted keys, 2-space indent) for readable diffs

Example:
    High-level API with StateTracker:
        ```python
        from pathlib import Path
        from pubtrack.state import StateTracker

        tracker = StateTracker(Path("state/pubtrack.json"))
        store = tracker.load(retention_days=30, max_history_entries=1000)
        store.observe(status, elapsed_ms=350)
        tracker.save(store)
        ```

    Low-level API with functions:
        ```python
        from pathlib import Path
        from pubtrack.state import load_state, save_state

        state = load_state(Path("state/pubtrack.json"))
        save_state(state, Path("state/pubtrack.json"))
        ```

"""

from __future__ import annotations

from collections.abc import Callable
from datetime import UTC, datetime
import json
from pathlib import Path
from typing import Any

from pubtrack import __version__
from pubtrack.exceptions import StateError
from pubtrack.logging import get_global_logger
from pubtrack.models import now_ms
from pubtrack.state.store import (
    DEFAULT_MAX_HISTORY_ENTRIES,
    DEFAULT_RETENTION_DAYS,
    HistoryStore,
)

SCHEMA_VERSION = "1"


class StateTracker:
    """Loads and saves a HistoryStore to a JSON state file.

    Attributes:
        state_file: Path to the JSON state file.
        state: Raw state dictionary from the last load or save.

    """

    def __init__(self, state_file: Path):
        """Initialize state tracker.

        Args:
            state_file: Path to JSON state file. Created if doesn't exist.

        """
        self.state_file = state_file
        self.state: dict[str, Any] = {}

    def load(
        self,
        retention_days: int = DEFAULT_RETENTION_DAYS,
        max_history_entries: int = DEFAULT_MAX_HISTORY_ENTRIES,
        clock: Callable[[], int] = now_ms,
    ) -> HistoryStore:
        """Load the state file into a new HistoryStore.

        Creates a default state file if none exists. A corrupted file is
        renamed to '<name>.backup', replaced with a fresh state, and then
        reported with StateError.

        Args:
            retention_days: Retention window applied to the loaded store.
            max_history_entries: History cap applied to the loaded store.
            clock: Clock for the store (epoch ms).

        Returns:
            Store populated from the file (retention already applied).

        Raises:
            StateError: If the file was corrupted (after backing it up) or
                holds a record that cannot be read.
            OSError: If file permissions prevent reading.

        """
        logger = get_global_logger()
        try:
            self.state = load_state(self.state_file)
            logger.verbose("STATE", f"Loaded state from {self.state_file}")
        except FileNotFoundError:
            logger.verbose("STATE", f"State file not found, creating: {self.state_file}")
            self.state = create_default_state()
            save_state(self.state, self.state_file)
        except json.JSONDecodeError as err:
            backup = self.state_file.with_suffix(self.state_file.suffix + ".backup")
            self.state_file.replace(backup)
            self.state = create_default_state()
            save_state(self.state, self.state_file)
            raise StateError(
                f"Corrupted state file backed up to {backup}. "
                f"Created fresh state file."
            ) from err

        if not isinstance(self.state, dict):
            raise StateError(f"State file {self.state_file} must contain a JSON object")

        try:
            return HistoryStore.from_state(
                self.state,
                retention_days=retention_days,
                max_history_entries=max_history_entries,
                clock=clock,
            )
        except (AttributeError, TypeError, ValueError) as err:
            raise StateError(
                f"Invalid record in state file {self.state_file}: {err}"
            ) from err

    def save(self, store: HistoryStore) -> None:
        """Write the store to the state file.

        Updates metadata.last_updated automatically and creates parent
        directories if needed.

        Raises:
            OSError: If file permissions prevent writing.

        """
        state = create_default_state()
        state.update(store.to_state())
        self.state = state
        save_state(self.state, self.state_file)
        get_global_logger().verbose("STATE", f"Saved state to {self.state_file}")


def create_default_state() -> dict[str, Any]:
    """Create a default empty state structure.

    Returns:
        Empty state with a metadata section and empty collections.

    """
    return {
        "metadata": {
            "pubtrack_version": __version__,
            "schema_version": SCHEMA_VERSION,
            "last_updated": datetime.now(UTC).isoformat(),
        },
        "history": [],
        "transitions": [],
        "last_known_status": {},
    }


def load_state(state_file: Path) -> dict[str, Any]:
    """Load state from JSON file.

    Args:
        state_file: Path to JSON state file.

    Returns:
        Loaded state dictionary.

    Raises:
        FileNotFoundError: If state file doesn't exist.
        json.JSONDecodeError: If file contains invalid JSON.
        OSError: If file cannot be read due to permissions.

    """
    with open(state_file, encoding="utf-8") as f:
        return json.load(f)


def save_state(state: dict[str, Any], state_file: Path) -> None:
    """Save state to JSON file with pretty-printing.

    Creates parent directories if needed. Writes to a temporary sibling
    file and renames it over the target, so an interrupted write never
    leaves a truncated state file behind.

    Args:
        state: State dictionary to save.
        state_file: Path to JSON state file.

    Raises:
        OSError: If file cannot be written due to permissions.

    """
    state_file.parent.mkdir(parents=True, exist_ok=True)

    tmp_file = state_file.with_suffix(state_file.suffix + ".part")
    with open(tmp_file, "w", encoding="utf-8") as f:
        json.dump(state, f, indent=2, sort_keys=True)
        f.write("\n")  # Trailing newline for git
    tmp_file.replace(state_file)
