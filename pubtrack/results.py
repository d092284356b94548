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

"""Public API return types for pubtrack.

This module defines dataclasses for return values from the analytics
functions and the polling orchestration.

All dataclasses are frozen (immutable) to prevent accidental mutation of
return values.

Example:
    Using result types:
        ```python
        from pubtrack.analytics import plugin_metrics
        from pubtrack.results import PluginMetrics

        metrics: PluginMetrics = plugin_metrics("12345", store.history_for())
        print(metrics.average_ms)  # Attribute access, not dict access
        ```

Note:
    Only public API return types belong in this module. Domain records
    (PluginStatus, PhaseTransition) live in pubtrack.models and timelines
    in pubtrack.timeline.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from pubtrack.models import PhaseTransition, PluginStatus


@dataclass(frozen=True)
class PluginMetrics:
    """Poll-duration metrics for one plugin.

    Attributes:
        plugin_id: Plugin the metrics describe.
        average_ms: Truncated mean of the successful poll durations.
        success_rate: Share of polls with a positive duration (0.0-1.0).
        total_submissions: Number of polls considered.
        last_timestamp: Most recent poll time (epoch ms), 0 if none.
        fastest_ms: Shortest successful poll duration.
        slowest_ms: Longest successful poll duration.
    """

    plugin_id: str
    average_ms: int = 0
    success_rate: float = 0.0
    total_submissions: int = 0
    last_timestamp: int = 0
    fastest_ms: int = 0
    slowest_ms: int = 0


@dataclass(frozen=True)
class OverallMetrics:
    """Poll-duration metrics across all plugins.

    Attributes:
        total_submissions: Number of polls considered.
        successful_submissions: Polls with a positive duration.
        success_rate: successful / total (0.0 when empty).
        average_processing_time_ms: Mean successful duration (not truncated).
        submissions_by_day: UTC day start (epoch ms) -> poll count.
    """

    total_submissions: int = 0
    successful_submissions: int = 0
    success_rate: float = 0.0
    average_processing_time_ms: float = 0.0
    submissions_by_day: dict[int, int] = field(default_factory=dict)


@dataclass(frozen=True)
class PollResult:
    """Outcome of one poll cycle run through pubtrack.core.

    Attributes:
        statuses: One status per polled plugin, in polling order.
        transitions: Transitions recorded during the cycle.
        errors: Number of plugins whose fetch failed.
        cancelled: True if the cycle stopped before polling every plugin.
    """

    statuses: list[PluginStatus]
    transitions: list[PhaseTransition]
    errors: int
    cancelled: bool = False
