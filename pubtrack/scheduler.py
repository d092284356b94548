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

"""Poll scheduling for pubtrack.

PollScheduler drives poll cycles: for each tracked plugin it fetches the
latest update through an UpdateSource, turns it into a PluginStatus and
records the outcome in the HistoryStore. Cycles run either on demand
(run_once) or periodically on one background thread (schedule).

State Machine:
    IDLE -> RUNNING -> IDLE       (cycle or schedule finished)
    IDLE -> RUNNING -> CANCELLED  (cancel() called)

Only one cycle runs at a time. Asking for another while RUNNING emits an
"already-running" event instead of starting a second cycle.

Events:
    Listeners registered with add_listener() receive SchedulerEvent objects:

    - polling-started / polling-stopped: schedule() lifecycle
    - fetch-error: one per plugin whose fetch failed
    - notable-change: stage entered or left {approved, published, rejected}
    - cycle-complete: success and error counts of the cycle
    - configuration-warning: nothing to poll
    - already-running: a cycle was requested while one is in flight

Cancellation is cooperative. The cancel token (threading.Event) is checked
between plugins, so the plugin being fetched always completes.

Example:
    One cycle:
        ```python
        from pubtrack.scheduler import PollScheduler

        scheduler = PollScheduler(store, client)
        scheduler.add_listener(lambda event: print(event.kind, event.message))
        statuses = scheduler.run_once(["12345", "67890"])
        ```

    Background polling:
        ```python
        results = scheduler.schedule(["12345"], interval_minutes=10)
        statuses = results.get()  # blocks until the first cycle completes
        scheduler.cancel(wait=True)
        ```

"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass
from enum import Enum
import queue
import threading
import time

from pubtrack.logging import get_global_logger
from pubtrack.marketplace.base import UpdateSource
from pubtrack.models import PhaseTransition, PluginStatus, now_ms
from pubtrack.notifications import NotificationPreference, should_notify
from pubtrack.results import PollResult
from pubtrack.stages import VerificationStage
from pubtrack.state.store import HistoryStore

NOTABLE_CHANGE = "notable-change"
FETCH_ERROR = "fetch-error"
CYCLE_COMPLETE = "cycle-complete"
CONFIGURATION_WARNING = "configuration-warning"
ALREADY_RUNNING = "already-running"
POLLING_STARTED = "polling-started"
POLLING_STOPPED = "polling-stopped"


class SchedulerState(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class SchedulerEvent:
    """Something a listener may want to report to the user.

    Attributes:
        kind: One of the event kind constants of this module.
        status: Plugin status the event is about, if any.
        previous_stage: Stage before the cycle, for notable changes.
        message: Human-readable description.

    """

    kind: str
    status: PluginStatus | None = None
    previous_stage: VerificationStage | None = None
    message: str = ""


Listener = Callable[[SchedulerEvent], None]


class PollScheduler:
    """Runs poll cycles against an UpdateSource and records them.

    Attributes:
        store: HistoryStore receiving every poll outcome.
        source: Collaborator that fetches plugin updates.
        preference: Notification preference gating notable-change events.

    """

    def __init__(
        self,
        store: HistoryStore,
        source: UpdateSource,
        preference: NotificationPreference = NotificationPreference.BALLOON,
        clock: Callable[[], int] = now_ms,
    ):
        self.store = store
        self.source = source
        self.preference = preference
        self._clock = clock
        self._listeners: list[Listener] = []
        self._state = SchedulerState.IDLE
        self._state_lock = threading.Lock()
        self._cancel = threading.Event()
        self._thread: threading.Thread | None = None
        self._results: queue.Queue[list[PluginStatus]] | None = None

    @property
    def state(self) -> SchedulerState:
        with self._state_lock:
            return self._state

    def add_listener(self, listener: Listener) -> None:
        self._listeners.append(listener)

    def snapshot(self) -> Mapping[str, PluginStatus]:
        """Read-only map of the last known status of every plugin."""
        return self.store.last_known_statuses()

    # -------------------------------
    # Cycles
    # -------------------------------

    def run_once(
        self, plugin_ids: Iterable[str], cancel: threading.Event | None = None
    ) -> list[PluginStatus]:
        """Poll every plugin once.

        Args:
            plugin_ids: Plugins to poll, in order.
            cancel: Token checked between plugins. A set token stops the
                cycle and the statuses gathered so far are returned.

        Returns:
            One status per polled plugin. Empty if nothing was configured or
            another cycle is already running.

        """
        return self.run_cycle(plugin_ids, cancel).statuses

    def run_cycle(
        self, plugin_ids: Iterable[str], cancel: threading.Event | None = None
    ) -> PollResult:
        """Poll every plugin once and return the full cycle outcome.

        Same as run_once, but also reports the transitions recorded and
        whether the cycle was cancelled.
        """
        ids = list(plugin_ids)
        if not ids:
            self._emit(
                SchedulerEvent(
                    CONFIGURATION_WARNING,
                    message="No plugins configured. Add plugin ids to tracked_plugins.",
                )
            )
            return PollResult(statuses=[], transitions=[], errors=0)

        owns = self._owns_worker()
        with self._state_lock:
            if owns:
                busy = False
            elif self._state is SchedulerState.RUNNING:
                busy = True
            else:
                busy = False
                self._state = SchedulerState.RUNNING
        if busy:
            self._emit(
                SchedulerEvent(ALREADY_RUNNING, message="A poll cycle is already running.")
            )
            return PollResult(statuses=[], transitions=[], errors=0)

        try:
            return self._poll(ids, cancel)
        finally:
            if not owns:
                with self._state_lock:
                    if self._state is SchedulerState.RUNNING:
                        self._state = SchedulerState.IDLE

    def schedule(
        self, plugin_ids: Iterable[str], interval_minutes: float
    ) -> queue.Queue[list[PluginStatus]]:
        """Start polling on a background thread.

        The first cycle starts immediately, the next ones every
        interval_minutes until cancel() is called. Each cycle's statuses are
        put on the returned queue.

        Args:
            plugin_ids: Plugins to poll.
            interval_minutes: Delay between the start of consecutive cycles.

        Returns:
            Queue receiving one list of statuses per cycle. When polling is
            already running the existing queue is returned.

        """
        ids = list(plugin_ids)
        with self._state_lock:
            if self._state is SchedulerState.RUNNING:
                existing = self._results
            else:
                existing = None
                self._state = SchedulerState.RUNNING
                self._cancel = threading.Event()
                self._results = queue.Queue()
                self._thread = threading.Thread(
                    target=self._worker,
                    args=(ids, interval_minutes * 60.0, self._cancel, self._results),
                    daemon=True,
                    name="pubtrack-poller",
                )
            results = self._results
            thread = self._thread

        if existing is not None:
            self._emit(
                SchedulerEvent(ALREADY_RUNNING, message="Polling is already running.")
            )
            return existing

        get_global_logger().verbose(
            "POLL", f"Polling {len(ids)} plugin(s) every {interval_minutes:g} minute(s)"
        )
        self._emit(
            SchedulerEvent(
                POLLING_STARTED,
                message=f"Monitoring {len(ids)} plugin(s) every {interval_minutes:g} minute(s).",
            )
        )
        thread.start()
        return results

    def cancel(self, wait: bool = False, timeout: float | None = None) -> None:
        """Stop polling.

        The cycle in flight finishes the plugin it is fetching and stops.

        Args:
            wait: Block until the background thread has exited.
            timeout: Maximum seconds to wait when wait is True.

        """
        with self._state_lock:
            self._cancel.set()
            if self._state is SchedulerState.RUNNING:
                self._state = SchedulerState.CANCELLED
            thread = self._thread

        if wait and thread is not None and thread is not threading.current_thread():
            thread.join(timeout)

    # -------------------------------
    # Internals
    # -------------------------------

    def _owns_worker(self) -> bool:
        return self._thread is not None and self._thread is threading.current_thread()

    def _worker(
        self,
        plugin_ids: list[str],
        interval_seconds: float,
        cancel: threading.Event,
        results: queue.Queue[list[PluginStatus]],
    ) -> None:
        logger = get_global_logger()
        me = threading.current_thread()
        try:
            while not cancel.is_set():
                result = self.run_cycle(plugin_ids, cancel)
                results.put(result.statuses)
                if cancel.wait(interval_seconds):
                    break
        finally:
            with self._state_lock:
                if self._thread is me and self._state is SchedulerState.RUNNING:
                    self._state = SchedulerState.IDLE
            logger.verbose("POLL", "Polling stopped")
            self._emit(SchedulerEvent(POLLING_STOPPED, message="Polling stopped."))

    def _poll(self, plugin_ids: list[str], cancel: threading.Event | None) -> PollResult:
        logger = get_global_logger()
        previous = self.store.last_known_statuses()
        statuses: list[PluginStatus] = []
        transitions: list[PhaseTransition] = []
        cancelled = False

        for index, plugin_id in enumerate(plugin_ids, start=1):
            if cancel is not None and cancel.is_set():
                logger.verbose(
                    "POLL", f"Cycle cancelled after {len(statuses)} of {len(plugin_ids)}"
                )
                cancelled = True
                break

            logger.verbose("POLL", f"[{index}/{len(plugin_ids)}] Fetching {plugin_id}")
            status, elapsed_ms = self._fetch(plugin_id)
            duration_ms = 0 if status.failed else max(elapsed_ms, 1)
            transition = self.store.observe(status, duration_ms, now=status.last_checked_at)
            if transition is not None:
                transitions.append(transition)
            statuses.append(status)

        errors = 0
        for status in statuses:
            if status.failed:
                errors += 1
                self._emit(
                    SchedulerEvent(
                        FETCH_ERROR,
                        status=status,
                        message=f"Failed to check {status.plugin_id}: {status.error_message}",
                    )
                )
                continue

            before = previous.get(status.plugin_id)
            previous_stage = before.stage if before is not None else None
            if previous_stage is not None and should_notify(
                status, previous_stage, self.preference
            ):
                self._emit(
                    SchedulerEvent(
                        NOTABLE_CHANGE,
                        status=status,
                        previous_stage=previous_stage,
                        message=(
                            f"{status.display_name} {status.latest_version}: "
                            f"{previous_stage.label} -> {status.stage.label}"
                        ),
                    )
                )

        succeeded = len(statuses) - errors
        logger.verbose("POLL", f"Cycle complete: {succeeded} succeeded, {errors} failed")
        self._emit(
            SchedulerEvent(
                CYCLE_COMPLETE,
                message=f"Checked {succeeded} plugin(s) successfully, {errors} error(s).",
            )
        )
        return PollResult(
            statuses=statuses, transitions=transitions, errors=errors, cancelled=cancelled
        )

    def _fetch(self, plugin_id: str) -> tuple[PluginStatus, int]:
        """Fetch one plugin. Failures become an error status."""
        logger = get_global_logger()
        started = time.perf_counter()
        try:
            updates = self.source.fetch_latest_updates(plugin_id)
        except Exception as err:
            elapsed_ms = int((time.perf_counter() - started) * 1000)
            logger.verbose("POLL", f"{plugin_id}: fetch failed: {err}")
            return PluginStatus.from_error(plugin_id, str(err), self._clock()), elapsed_ms

        elapsed_ms = int((time.perf_counter() - started) * 1000)
        latest = updates[0] if updates else None
        status = PluginStatus.from_update(plugin_id, latest, self._clock())
        logger.debug(
            "POLL",
            f"{plugin_id}: {status.latest_version or '(no updates)'} "
            f"{status.stage.label} in {elapsed_ms}ms",
        )
        return status, elapsed_ms

    def _emit(self, event: SchedulerEvent) -> None:
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception as err:
                get_global_logger().verbose(
                    "POLL", f"Listener failed on {event.kind} event: {err}"
                )
