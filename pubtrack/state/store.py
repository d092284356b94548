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

"""In-memory history store for pubtrack.

The HistoryStore owns everything the tracker remembers between polls:

- Poll history: one HistoryEntry per poll of a plugin (elapsed time)
- Phase transitions: every stage change detected for a plugin version
- Last known status: the latest successful snapshot of every plugin

Retention:

Every write purges records older than the retention window
(timestamp < now - retention_days * 86400000). Poll history is additionally
capped at max_history_entries, discarding the oldest entries by timestamp.
Transitions are only purged by age.

Thread Safety:

One coarse lock guards every read and write. Writers append and prune under
the lock; readers get copies, so they never observe a half-applied write.
Public methods never call each other while holding the lock.

Example:
    Record a poll and query it:
        ```python
        from pubtrack.state import HistoryStore

        store = HistoryStore(retention_days=30, max_history_entries=1000)
        transition = store.observe(status, elapsed_ms=420)
        timeline = store.build_timeline("12345", "1.2.0")
        averages = store.average_phase_durations()
        ```

"""

from __future__ import annotations

from collections.abc import Callable, Mapping
import threading
from types import MappingProxyType
from typing import Any

from pubtrack.comparator import detect_transition
from pubtrack.logging import get_global_logger
from pubtrack.models import (
    MS_PER_DAY,
    HistoryEntry,
    PhaseTransition,
    PluginStatus,
    now_ms,
)
from pubtrack.stages import VerificationStage
from pubtrack.timeline import (
    APPROVAL_TO_PUBLISHED,
    PHASE_LABELS,
    TOTAL_UPLOAD_TO_PUBLISHED,
    UPLOAD_TO_VERIFICATION,
    VERIFICATION_TO_APPROVAL,
    PluginVersionTimeline,
    build_timeline,
)

DEFAULT_RETENTION_DAYS = 30
DEFAULT_MAX_HISTORY_ENTRIES = 1000


class HistoryStore:
    """Append-only, retention-bounded store of poll results and transitions.

    Attributes:
        retention_days: Age in days after which records are purged.
        max_history_entries: Maximum number of poll history entries kept.

    """

    def __init__(
        self,
        retention_days: int = DEFAULT_RETENTION_DAYS,
        max_history_entries: int = DEFAULT_MAX_HISTORY_ENTRIES,
        clock: Callable[[], int] = now_ms,
    ):
        """Initialize an empty store.

        Args:
            retention_days: Retention window in days.
            max_history_entries: Cap on poll history entries.
            clock: Returns the current time in epoch ms. Injected by tests.

        """
        self.retention_days = retention_days
        self.max_history_entries = max_history_entries
        self._clock = clock
        self._lock = threading.Lock()
        self._history: list[HistoryEntry] = []
        self._transitions: list[PhaseTransition] = []
        self._last_known: dict[str, PluginStatus] = {}

    # -------------------------------
    # Writes
    # -------------------------------

    def record_poll(
        self, plugin_id: str, elapsed_ms: int, timestamp: int | None = None
    ) -> HistoryEntry:
        """Append a poll-duration entry, then prune by age and count.

        Args:
            plugin_id: Plugin that was polled.
            elapsed_ms: Wall-clock duration of the poll.
            timestamp: When the poll happened. Defaults to the store clock.

        Returns:
            The appended entry.

        """
        with self._lock:
            return self._append_history(plugin_id, elapsed_ms, timestamp)

    def record_transition(
        self, transition: PhaseTransition, status: PluginStatus | None = None
    ) -> bool:
        """Append a transition, prune by age, refresh the last known status.

        A transition identical to one already stored (same plugin, version,
        stages and timestamp) is not appended a second time, so replaying
        the same polls is idempotent.

        Args:
            transition: Transition to store.
            status: Snapshot that produced the transition. When given it
                becomes the plugin's last known status.

        Returns:
            True if the transition was appended, False for a duplicate.

        """
        with self._lock:
            appended = self._append_transition(transition)
            if status is not None:
                self._set_last_known(status)
            return appended

    def update_last_known(self, status: PluginStatus) -> None:
        """Refresh a plugin's last known status without growing history.

        A snapshot older than the stored one (by last_checked_at) is ignored
        so a late poll result never overwrites a newer one.
        """
        with self._lock:
            self._set_last_known(status)

    def observe(
        self, status: PluginStatus, elapsed_ms: int, now: int | None = None
    ) -> PhaseTransition | None:
        """Record the complete outcome of polling one plugin.

        This is the write the scheduler performs once per plugin. All steps
        happen under one lock acquisition:

        1. Append the poll-duration entry (always).
        2. For successful polls, compare with the last known snapshot and
           append a transition if the stage changed.
        3. For successful polls, refresh the last known snapshot.

        Failed polls (status.error_message set) only leave the duration
        entry, so an outage never shows up as a move to UNKNOWN. The same
        holds for a snapshot older than the last known one, so a late result
        never records a backward transition.

        Args:
            status: Snapshot produced by the poll.
            elapsed_ms: Wall-clock duration of the poll.
            now: Time of the poll. Defaults to the store clock.

        Returns:
            The transition that was recorded, or None.

        """
        logger = get_global_logger()
        with self._lock:
            if now is None:
                now = self._clock()
            self._append_history(status.plugin_id, elapsed_ms, now)
            if status.failed:
                return None

            previous = self._last_known.get(status.plugin_id)
            if previous is not None and status.last_checked_at < previous.last_checked_at:
                logger.debug("STORE", f"Ignoring stale snapshot for {status.plugin_id}")
                return None

            transition = detect_transition(previous, status, now=now)
            if transition is not None and self._append_transition(transition):
                logger.verbose(
                    "STORE",
                    f"{status.plugin_id} {transition.version or '(no version)'}: "
                    f"{transition.from_stage.label} -> {transition.to_stage.label}",
                )
            else:
                transition = None
            self._set_last_known(status)
            return transition

    def clear(self) -> None:
        """Remove all poll history, transitions and last known statuses."""
        with self._lock:
            self._history.clear()
            self._transitions.clear()
            self._last_known.clear()

    # -------------------------------
    # Reads
    # -------------------------------

    def last_known(self, plugin_id: str) -> PluginStatus | None:
        with self._lock:
            return self._last_known.get(plugin_id)

    def last_known_statuses(self) -> Mapping[str, PluginStatus]:
        """Read-only copy of the last known status of every plugin."""
        with self._lock:
            return MappingProxyType(dict(self._last_known))

    def history_for(self, plugin_id: str | None = None) -> list[HistoryEntry]:
        """Poll history entries, optionally restricted to one plugin."""
        with self._lock:
            if plugin_id is None:
                return list(self._history)
            return [e for e in self._history if e.plugin_id == plugin_id]

    def transitions_for(
        self, plugin_id: str, version: str | None = None
    ) -> list[PhaseTransition]:
        """Transitions of a plugin (optionally one version) in insertion order.

        The result is not sorted; callers that care about order sort by
        timestamp.
        """
        with self._lock:
            return self._filter_transitions(plugin_id, version)

    def all_transitions(self) -> list[PhaseTransition]:
        with self._lock:
            return list(self._transitions)

    def build_timeline(
        self, plugin_id: str, version: str
    ) -> PluginVersionTimeline | None:
        """Timeline of one plugin version, or None without transitions."""
        with self._lock:
            transitions = self._filter_transitions(plugin_id, version)
        return build_timeline(plugin_id, version, transitions)

    def average_phase_durations(self, plugin_id: str | None = None) -> dict[str, int]:
        """Average time spent in each phase across versions.

        Transitions are grouped by (plugin, version). Each group is walked in
        ascending timestamp order carrying the latest SUBMITTED, UNDER_REVIEW
        and APPROVED timestamps seen so far:

        - UNDER_REVIEW adds the gap since SUBMITTED to "Upload to Verification"
        - APPROVED adds the gap since UNDER_REVIEW to "Verification to Approval"
        - PUBLISHED adds the gap since APPROVED to "Approval to Published" and
          the gap since SUBMITTED to "Total (Upload to Published)"

        Args:
            plugin_id: Restrict to one plugin. None averages over all plugins.

        Returns:
            Mapping of every phase label to its truncated mean in ms. Phases
            without samples report 0.

        """
        with self._lock:
            if plugin_id is None:
                relevant = list(self._transitions)
            else:
                relevant = [t for t in self._transitions if t.plugin_id == plugin_id]

        groups: dict[tuple[str, str], list[PhaseTransition]] = {}
        for transition in relevant:
            groups.setdefault((transition.plugin_id, transition.version), []).append(
                transition
            )

        samples: dict[str, list[int]] = {label: [] for label in PHASE_LABELS}
        for group in groups.values():
            uploaded: int | None = None
            verified: int | None = None
            approved: int | None = None
            for transition in sorted(group, key=lambda t: t.timestamp):
                stamp = transition.timestamp
                stage = transition.to_stage
                if stage is VerificationStage.SUBMITTED:
                    uploaded = stamp
                elif stage is VerificationStage.UNDER_REVIEW:
                    verified = stamp
                    if uploaded is not None:
                        samples[UPLOAD_TO_VERIFICATION].append(stamp - uploaded)
                elif stage is VerificationStage.APPROVED:
                    approved = stamp
                    if verified is not None:
                        samples[VERIFICATION_TO_APPROVAL].append(stamp - verified)
                elif stage is VerificationStage.PUBLISHED:
                    if approved is not None:
                        samples[APPROVAL_TO_PUBLISHED].append(stamp - approved)
                    if uploaded is not None:
                        samples[TOTAL_UPLOAD_TO_PUBLISHED].append(stamp - uploaded)

        return {
            label: int(sum(values) / len(values)) if values else 0
            for label, values in samples.items()
        }

    # -------------------------------
    # Persistence
    # -------------------------------

    def to_state(self) -> dict[str, Any]:
        """Serialize collections into the JSON-ready state layout."""
        with self._lock:
            return {
                "history": [e.to_dict() for e in self._history],
                "transitions": [t.to_dict() for t in self._transitions],
                "last_known_status": {
                    pid: s.to_dict() for pid, s in sorted(self._last_known.items())
                },
            }

    def export(self) -> dict[str, Any]:
        """History export document (poll history and transitions)."""
        with self._lock:
            return {
                "exported_at": self._clock(),
                "plugin_history": [e.to_dict() for e in self._history],
                "phase_transitions": [t.to_dict() for t in self._transitions],
            }

    @classmethod
    def from_state(
        cls,
        state: dict[str, Any],
        retention_days: int = DEFAULT_RETENTION_DAYS,
        max_history_entries: int = DEFAULT_MAX_HISTORY_ENTRIES,
        clock: Callable[[], int] = now_ms,
    ) -> HistoryStore:
        """Rebuild a store from a loaded state dict.

        Missing sections are treated as empty. Retention is applied
        immediately so a long-idle state file is trimmed on load.
        """
        store = cls(
            retention_days=retention_days,
            max_history_entries=max_history_entries,
            clock=clock,
        )
        store._history = [HistoryEntry.from_dict(d) for d in state.get("history", [])]
        store._transitions = [
            PhaseTransition.from_dict(d) for d in state.get("transitions", [])
        ]
        store._last_known = {
            pid: PluginStatus.from_dict(d)
            for pid, d in state.get("last_known_status", {}).items()
        }
        with store._lock:
            now = store._clock()
            store._prune_history(now)
            store._prune_transitions(now)
        return store

    # -------------------------------
    # Internals (caller holds the lock)
    # -------------------------------

    def _cutoff(self, now: int) -> int:
        return now - self.retention_days * MS_PER_DAY

    def _append_history(
        self, plugin_id: str, elapsed_ms: int, timestamp: int | None
    ) -> HistoryEntry:
        now = self._clock()
        entry = HistoryEntry(
            plugin_id=plugin_id,
            timestamp=timestamp if timestamp is not None else now,
            duration_ms=elapsed_ms,
        )
        self._history.append(entry)
        self._prune_history(now)
        return entry

    def _append_transition(self, transition: PhaseTransition) -> bool:
        if transition in self._transitions:
            get_global_logger().debug(
                "STORE", f"Skipping duplicate transition for {transition.plugin_id}"
            )
            return False
        self._transitions.append(transition)
        self._prune_transitions(self._clock())
        return True

    def _set_last_known(self, status: PluginStatus) -> None:
        existing = self._last_known.get(status.plugin_id)
        if existing is not None and existing.last_checked_at > status.last_checked_at:
            return
        self._last_known[status.plugin_id] = status

    def _prune_history(self, now: int) -> None:
        cutoff = self._cutoff(now)
        before = len(self._history)
        self._history = [e for e in self._history if e.timestamp >= cutoff]
        if len(self._history) > self.max_history_entries:
            self._history.sort(key=lambda e: e.timestamp)
            del self._history[: len(self._history) - self.max_history_entries]
        pruned = before - len(self._history)
        if pruned:
            get_global_logger().debug("STORE", f"Pruned {pruned} history entries")

    def _prune_transitions(self, now: int) -> None:
        cutoff = self._cutoff(now)
        self._transitions = [t for t in self._transitions if t.timestamp >= cutoff]

    def _filter_transitions(
        self, plugin_id: str, version: str | None
    ) -> list[PhaseTransition]:
        return [
            t
            for t in self._transitions
            if t.plugin_id == plugin_id and (version is None or t.version == version)
        ]
