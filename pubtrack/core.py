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

"""Core orchestration for pubtrack.

This module wires the pieces together for the CLI and for programmatic use:
settings from pubtrack.config, persisted history from pubtrack.state, the
marketplace client, and the PollScheduler.

Design Principles:

- Each function has a single, clear responsibility
- Functions return structured data (dataclasses) for easy testing
- Error handling uses exceptions; CLI layer formats for user display
- The update source is injectable so tests never touch the network

Example:
    Programmatic usage:
        ```python
        from pathlib import Path
        from pubtrack.core import poll_plugins

        result = poll_plugins(
            config_path=Path("pubtrack.yaml"),
            state_file=Path("state/history.json"),
        )

        for status in result.statuses:
            print(status.plugin_id, status.stage.label)
        ```

"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from pathlib import Path
import queue
import threading

from pubtrack.analytics import (
    overall_metrics,
    plugin_metrics,
    predict_completion,
    status_distribution,
    trend_data,
)
from pubtrack.config import Settings, load_settings
from pubtrack.logging import get_global_logger
from pubtrack.marketplace import MarketplaceClient, UpdateSource
from pubtrack.results import PollResult
from pubtrack.scheduler import PollScheduler, SchedulerEvent
from pubtrack.state import HistoryStore, StateTracker

DEFAULT_STATE_FILE = Path("state/history.json")


def open_store(
    settings: Settings, state_file: Path = DEFAULT_STATE_FILE
) -> tuple[StateTracker, HistoryStore]:
    """Load persisted history with the retention settings applied.

    Args:
        settings: Effective settings.
        state_file: JSON state file. Created if missing.

    Returns:
        The tracker (for saving later) and the loaded store.

    Raises:
        StateError: If the state file was corrupted.

    """
    tracker = StateTracker(state_file)
    store = tracker.load(
        retention_days=settings.data_retention_days,
        max_history_entries=settings.max_history_entries,
    )
    return tracker, store


def create_source(settings: Settings) -> MarketplaceClient:
    """Build the marketplace client described by the settings."""
    return MarketplaceClient(
        base_url=settings.api_base_url,
        token=settings.api_token,
        timeout=settings.api_timeout,
    )


def create_scheduler(
    settings: Settings,
    store: HistoryStore,
    source: UpdateSource | None = None,
    listener: Callable[[SchedulerEvent], None] | None = None,
) -> PollScheduler:
    """Build a scheduler bound to a store and an update source.

    Args:
        settings: Effective settings (notification preference).
        store: Store receiving poll outcomes.
        source: Update source. Defaults to a MarketplaceClient.
        listener: Optional event listener to register.

    """
    scheduler = PollScheduler(
        store,
        source if source is not None else create_source(settings),
        preference=settings.effective_preference,
    )
    if listener is not None:
        scheduler.add_listener(listener)
    return scheduler


def poll_plugins(
    config_path: Path | None = None,
    state_file: Path = DEFAULT_STATE_FILE,
    *,
    plugin_ids: Iterable[str] | None = None,
    source: UpdateSource | None = None,
    listener: Callable[[SchedulerEvent], None] | None = None,
) -> PollResult:
    """Run one poll cycle and persist the result.

    This is the main entry point for the 'pubtrack poll' command.

    Steps:
        1. Load settings (defaults if the file is missing).
        2. Load history from the state file, applying retention.
        3. Poll every tracked plugin once.
        4. Save the updated history.

    Args:
        config_path: Settings YAML file.
        state_file: JSON state file.
        plugin_ids: Plugins to poll instead of settings.tracked_plugins.
        source: Update source. Defaults to a MarketplaceClient.
        listener: Receives scheduler events as they happen.

    Returns:
        Statuses, transitions and error count of the cycle.

    Raises:
        ConfigError: If the settings file is invalid.
        StateError: If the state file was corrupted.

    """
    logger = get_global_logger()
    settings = load_settings(config_path)
    ids = list(plugin_ids) if plugin_ids is not None else list(settings.tracked_plugins)

    logger.step(1, 3, "Loading state...")
    tracker, store = open_store(settings, state_file)

    logger.step(2, 3, f"Polling {len(ids)} plugin(s)...")
    scheduler = create_scheduler(settings, store, source, listener)
    result = scheduler.run_cycle(ids)

    logger.step(3, 3, "Saving state...")
    tracker.save(store)
    return result


def watch_plugins(
    config_path: Path | None = None,
    state_file: Path = DEFAULT_STATE_FILE,
    *,
    source: UpdateSource | None = None,
    listener: Callable[[SchedulerEvent], None] | None = None,
    stop: threading.Event | None = None,
    max_cycles: int | None = None,
) -> int:
    """Poll on the configured interval until stopped.

    State is saved after every cycle, so interrupting the watch never loses
    more than the cycle in flight.

    Args:
        config_path: Settings YAML file.
        state_file: JSON state file.
        source: Update source. Defaults to a MarketplaceClient.
        listener: Receives scheduler events as they happen.
        stop: Set it to end the watch. KeyboardInterrupt also ends it.
        max_cycles: Stop after this many cycles (None means forever).

    Returns:
        Number of completed cycles.

    """
    settings = load_settings(config_path)
    tracker, store = open_store(settings, state_file)
    scheduler = create_scheduler(settings, store, source, listener)

    if not settings.tracked_plugins:
        scheduler.run_once([])
        return 0

    stop = stop or threading.Event()
    results = scheduler.schedule(
        settings.tracked_plugins, settings.polling_interval_minutes
    )
    cycles = 0
    try:
        while not stop.is_set():
            try:
                results.get(timeout=0.5)
            except queue.Empty:
                continue
            cycles += 1
            tracker.save(store)
            if max_cycles is not None and cycles >= max_cycles:
                break
    finally:
        scheduler.cancel(wait=True, timeout=5.0)
        tracker.save(store)
    return cycles


def metrics_report(
    store: HistoryStore,
    plugin_id: str | None = None,
    days: int = 30,
) -> dict[str, object]:
    """Collect analytics for display or export.

    Args:
        store: Loaded history.
        plugin_id: Restrict to one plugin. None means all plugins.
        days: Trailing window for the trend series.

    Returns:
        Dict with "overall", "plugin" (when plugin_id is given),
        "prediction_ms", "trend", "distribution" and "phase_averages".

    """
    entries = store.history_for()
    report: dict[str, object] = {
        "overall": overall_metrics(entries),
        "trend": list(trend_data(entries, window_days=days)),
        "distribution": status_distribution(store.last_known_statuses().values()),
        "phase_averages": store.average_phase_durations(plugin_id),
    }
    if plugin_id is not None:
        report["plugin"] = plugin_metrics(plugin_id, entries)
        report["prediction_ms"] = predict_completion(plugin_id, entries)
    return report
