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

"""pubtrack - marketplace publish time tracker.

Tracks how long plugin updates spend in each marketplace verification stage
(submitted, under review, approved, published, rejected).

pubtrack provides:

- Periodic polling of the marketplace updates API
- Detection and storage of stage transitions per plugin version
- Per-version timelines with phase durations
- Poll metrics, trends and completion predictions
- Notification decisions for notable stage changes

Quick Start:

    $ pubtrack poll 12345
    $ pubtrack timeline 12345

Package Structure:

- cli: Command-line interface with argparse
- core: High-level orchestration functions
- config: YAML settings loading and validation
- marketplace: Update source protocol and HTTP client
- state: In-memory history store and JSON persistence
- scheduler: Poll cycles, cancellation and events
- timeline, analytics: Derived views over recorded history

"""

__version__ = "0.1.0"

from pubtrack.exceptions import (  # noqa: E402
    ConfigError,
    DataError,
    FetchError,
    PubTrackError,
    StateError,
)
from pubtrack.models import (  # noqa: E402
    HistoryEntry,
    PhaseTransition,
    PluginStatus,
    RawUpdate,
)
from pubtrack.stages import VerificationStage, classify  # noqa: E402

__all__ = [
    "__version__",
    "ConfigError",
    "DataError",
    "FetchError",
    "HistoryEntry",
    "PhaseTransition",
    "PluginStatus",
    "PubTrackError",
    "RawUpdate",
    "StateError",
    "VerificationStage",
    "classify",
]
