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

"""Analytics over stored poll history.

All functions are pure: they take snapshots of history (as returned by
HistoryStore.history_for) and return fresh result objects. Nothing is
cached, so every call reflects the data passed in.

A poll counts as successful when its duration is positive. Averages and
predictions are truncated toward zero, matching integer millisecond
arithmetic used everywhere else.

Example:
    Summarize a plugin:
        ```python
        from pubtrack.analytics import plugin_metrics, predict_completion

        entries = store.history_for("12345")
        metrics = plugin_metrics("12345", entries)
        eta = predict_completion("12345", entries)
        ```

"""

from __future__ import annotations

from collections import Counter
from collections.abc import Iterable, Iterator

from pubtrack.models import MS_PER_DAY, HistoryEntry, PluginStatus, now_ms
from pubtrack.results import OverallMetrics, PluginMetrics
from pubtrack.stages import VerificationStage

MIN_PREDICTION_SAMPLES = 3
PREDICTION_WINDOW = 5


def plugin_metrics(plugin_id: str, entries: Iterable[HistoryEntry]) -> PluginMetrics:
    """Compute poll-duration metrics for one plugin.

    Args:
        plugin_id: Plugin to summarize. Entries of other plugins are ignored.
        entries: Poll history entries.

    Returns:
        Metrics for the plugin. With no entries every field is zero.

    """
    history = [e for e in entries if e.plugin_id == plugin_id]
    if not history:
        return PluginMetrics(plugin_id=plugin_id)

    durations = [e.duration_ms for e in history if e.duration_ms > 0]

    return PluginMetrics(
        plugin_id=plugin_id,
        average_ms=int(sum(durations) / len(durations)) if durations else 0,
        success_rate=len(durations) / len(history),
        total_submissions=len(history),
        last_timestamp=max(e.timestamp for e in history),
        fastest_ms=min(durations, default=0),
        slowest_ms=max(durations, default=0),
    )


def overall_metrics(entries: Iterable[HistoryEntry]) -> OverallMetrics:
    """Compute poll-duration metrics across every plugin.

    Args:
        entries: Poll history entries of any plugins.

    Returns:
        Aggregated metrics, with polls bucketed by UTC day.

    """
    history = list(entries)
    durations = [e.duration_ms for e in history if e.duration_ms > 0]
    by_day = Counter((e.timestamp // MS_PER_DAY) * MS_PER_DAY for e in history)

    return OverallMetrics(
        total_submissions=len(history),
        successful_submissions=len(durations),
        success_rate=len(durations) / len(history) if history else 0.0,
        average_processing_time_ms=sum(durations) / len(durations) if durations else 0.0,
        submissions_by_day=dict(sorted(by_day.items())),
    )


def trend_data(
    entries: Iterable[HistoryEntry],
    window_days: int = 30,
    now: int | None = None,
) -> Iterator[tuple[int, int]]:
    """Yield (day_start_ms, poll_count) for the trailing window, oldest first.

    Args:
        entries: Poll history entries.
        window_days: Size of the trailing window in days.
        now: End of the window in epoch ms. Defaults to the wall clock.

    Yields:
        One pair per UTC day that has at least one poll.

    """
    if now is None:
        now = now_ms()
    cutoff = now - window_days * MS_PER_DAY
    counts = Counter(e.timestamp // MS_PER_DAY for e in entries if e.timestamp >= cutoff)
    for day in sorted(counts):
        yield day * MS_PER_DAY, counts[day]


def status_distribution(
    statuses: Iterable[PluginStatus],
) -> dict[VerificationStage, int]:
    """Count plugins per stage. Stages without plugins are omitted."""
    counts = Counter(s.stage for s in statuses)
    return {stage: counts[stage] for stage in VerificationStage if stage in counts}


def predict_completion(plugin_id: str, entries: Iterable[HistoryEntry]) -> int | None:
    """Predict the next poll duration of a plugin from recent history.

    Uses the mean of the most recent (up to five) successful polls.

    Args:
        plugin_id: Plugin to predict for.
        entries: Poll history entries.

    Returns:
        Predicted duration in ms, or None with fewer than three successful
        polls.

    """
    successful = [e for e in entries if e.plugin_id == plugin_id and e.duration_ms > 0]
    if len(successful) < MIN_PREDICTION_SAMPLES:
        return None

    recent = sorted(successful, key=lambda e: e.timestamp, reverse=True)[
        :PREDICTION_WINDOW
    ]
    return int(sum(e.duration_ms for e in recent) / len(recent))
