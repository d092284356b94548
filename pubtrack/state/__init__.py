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

"""History storage and persistence for pubtrack.

This package keeps everything the tracker remembers between polls:

- Poll history (how long each poll of each plugin took)
- Phase transitions (every detected stage change per plugin version)
- The last known status of every tracked plugin

HistoryStore is the in-memory, thread-safe store with retention pruning.
StateTracker persists a store as a JSON state file between runs.

Public API:

- HistoryStore: Append-only, retention-bounded in-memory store
- StateTracker: Load/save a HistoryStore from/to a JSON file
- load_state: Load raw state dict from JSON file
- save_state: Save raw state dict to JSON file with pretty-printing

Example:
    Basic usage:

        from pathlib import Path
        from pubtrack.state import StateTracker

        tracker = StateTracker(Path("state/pubtrack.json"))
        store = tracker.load()
        print(store.average_phase_durations())
        tracker.save(store)

"""

from .store import HistoryStore
from .tracker import StateTracker, load_state, save_state

__all__ = ["HistoryStore", "StateTracker", "load_state", "save_state"]
