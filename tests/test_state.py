"""
Tests for pubtrack.state module.

Tests state management including:
- HistoryStore writes, reads and retention
- Transition deduplication and last known status
- Phase duration averages
- Loading and saving state files
"""

from __future__ import annotations

import json

import pytest

from pubtrack.comparator import detect_transition
from pubtrack.exceptions import StateError
from pubtrack.models import MS_PER_DAY, PhaseTransition
from pubtrack.stages import VerificationStage
from pubtrack.state import HistoryStore, StateTracker, load_state, save_state
from pubtrack.state.tracker import create_default_state
from pubtrack.timeline import (
    APPROVAL_TO_PUBLISHED,
    TOTAL_UPLOAD_TO_PUBLISHED,
    UPLOAD_TO_VERIFICATION,
    VERIFICATION_TO_APPROVAL,
)

S = VerificationStage


def _transition(
    plugin_id: str,
    version: str,
    to_stage: VerificationStage,
    timestamp: int,
    from_stage: VerificationStage = S.UNKNOWN,
) -> PhaseTransition:
    return PhaseTransition(
        plugin_id=plugin_id,
        version=version,
        from_stage=from_stage,
        to_stage=to_stage,
        timestamp=timestamp,
    )


class TestHistoryRetention:
    """Tests for age and count based pruning."""

    def test_retention_boundaries(self, store, clock):
        """Test entries just outside the window are dropped on the next write."""
        now = clock()
        store.record_poll("old", 100, timestamp=now - 31 * MS_PER_DAY)
        store.record_poll("recent", 100, timestamp=now - 29 * MS_PER_DAY)

        store.record_poll("new", 100)

        ids = [e.plugin_id for e in store.history_for()]
        assert "old" not in ids
        assert "recent" in ids
        assert "new" in ids

    def test_transitions_pruned_by_age(self, store, clock):
        """Test that old transitions are dropped when a new one is stored."""
        now = clock()
        store.record_transition(_transition("123", "1.0", S.SUBMITTED, now - 31 * MS_PER_DAY))
        store.record_transition(_transition("123", "1.0", S.UNDER_REVIEW, now - 29 * MS_PER_DAY))

        store.record_transition(_transition("123", "1.0", S.APPROVED, now))

        stages = [t.to_stage for t in store.all_transitions()]
        assert stages == [S.UNDER_REVIEW, S.APPROVED]

    def test_history_cap_drops_oldest(self, clock):
        """Test that max_history_entries keeps the newest entries."""
        store = HistoryStore(retention_days=30, max_history_entries=3, clock=clock)
        now = clock()
        for offset in (4, 1, 3, 2, 0):
            store.record_poll(f"p{offset}", 100, timestamp=now - offset * 1000)

        kept = {e.plugin_id for e in store.history_for()}
        assert kept == {"p0", "p1", "p2"}

    def test_history_for_filters_by_plugin(self, store):
        """Test reading history of one plugin."""
        store.record_poll("a", 100)
        store.record_poll("b", 200)
        store.record_poll("a", 300)

        assert [e.duration_ms for e in store.history_for("a")] == [100, 300]
        assert len(store.history_for()) == 3


class TestTransitions:
    """Tests for transition storage."""

    def test_duplicate_transition_not_stored(self, store, clock):
        """Test replaying an identical transition does not duplicate it."""
        transition = _transition("123", "1.0", S.SUBMITTED, clock())

        assert store.record_transition(transition) is True
        assert store.record_transition(transition) is False
        assert len(store.all_transitions()) == 1

    def test_transitions_for_version(self, store, clock):
        """Test filtering transitions by plugin and version."""
        store.record_transition(_transition("123", "1.0", S.SUBMITTED, clock()))
        store.record_transition(_transition("123", "2.0", S.SUBMITTED, clock() + 1))
        store.record_transition(_transition("456", "1.0", S.SUBMITTED, clock() + 2))

        assert len(store.transitions_for("123")) == 2
        assert [t.version for t in store.transitions_for("123", "2.0")] == ["2.0"]

    def test_record_transition_updates_last_known(self, store, clock, make_status):
        """Test that passing a status refreshes the last known snapshot."""
        status = make_status("123", S.SUBMITTED)

        store.record_transition(_transition("123", "1.0", S.SUBMITTED, clock()), status)

        assert store.last_known("123") == status


class TestObserve:
    """Tests for the per-plugin poll write."""

    def test_first_observation(self, store, clock, make_status):
        """Test first sighting records a transition from UNKNOWN."""
        status = make_status("123", S.SUBMITTED)

        transition = store.observe(status, elapsed_ms=250)

        assert transition is not None
        assert transition.from_stage is S.UNKNOWN
        assert store.last_known("123") == status
        assert store.history_for("123")[0].duration_ms == 250

    def test_unchanged_stage_refreshes_last_known(self, store, clock, make_status):
        """Test that polls without a stage change still update last_checked_at."""
        store.observe(make_status("123", S.UNDER_REVIEW), elapsed_ms=100)
        clock.advance(60_000)
        later = make_status("123", S.UNDER_REVIEW)

        assert store.observe(later, elapsed_ms=100) is None
        assert store.last_known("123").last_checked_at == later.last_checked_at
        assert len(store.all_transitions()) == 1

    def test_stage_change_dwell_time(self, store, clock, make_status):
        """Test dwell time is measured from the latest poll."""
        store.observe(make_status("123", S.UNDER_REVIEW), elapsed_ms=100)
        clock.advance(60_000)
        store.observe(make_status("123", S.UNDER_REVIEW), elapsed_ms=100)
        clock.advance(30_000)

        transition = store.observe(make_status("123", S.APPROVED), elapsed_ms=100)

        assert transition is not None
        assert transition.duration_in_previous_stage_ms == 30_000

    def test_failed_poll_only_records_history(self, store, clock, make_status):
        """Test that a failed fetch leaves transitions and last known alone."""
        good = make_status("123", S.UNDER_REVIEW)
        store.observe(good, elapsed_ms=100)
        clock.advance(1000)

        failed = make_status("123", S.UNKNOWN, error="timeout")
        assert store.observe(failed, elapsed_ms=0) is None

        assert store.last_known("123") == good
        assert len(store.all_transitions()) == 1
        assert len(store.history_for("123")) == 2

    def test_replay_same_instant_is_idempotent(self, store, clock, make_status):
        """Test replaying the same poll at the same instant stores one transition."""
        previous = make_status("123", S.SUBMITTED, checked_at=clock() - 1000)
        current = make_status("123", S.UNDER_REVIEW)

        for _ in range(2):
            transition = detect_transition(previous, current, now=clock())
            store.record_transition(transition, current)

        transitions = store.all_transitions()
        assert len(transitions) == 1
        assert transitions[0].to_stage is S.UNDER_REVIEW

    def test_older_snapshot_does_not_overwrite(self, store, clock, make_status):
        """Test that a late, older snapshot is ignored."""
        newer = make_status("123", S.APPROVED, checked_at=clock())
        older = make_status("123", S.UNDER_REVIEW, checked_at=clock() - 5000)

        store.update_last_known(newer)
        store.update_last_known(older)

        assert store.last_known("123") == newer

    def test_late_observation_records_no_backward_transition(
        self, store, clock, make_status
    ):
        """Test that an observation older than the last known one is history only."""
        newer = make_status("123", S.APPROVED, checked_at=clock())
        older = make_status("123", S.UNDER_REVIEW, checked_at=clock() - 5000)
        store.observe(newer, elapsed_ms=100, now=newer.last_checked_at)

        transition = store.observe(older, elapsed_ms=100, now=older.last_checked_at)

        assert transition is None
        assert [t.to_stage for t in store.transitions_for("123")] == [S.APPROVED]
        assert len(store.history_for("123")) == 2
        assert store.last_known("123") == newer

    def test_last_known_statuses_is_read_only_copy(self, store, make_status):
        """Test that readers cannot mutate the store through the snapshot."""
        store.observe(make_status("123", S.SUBMITTED), elapsed_ms=100)

        snapshot = store.last_known_statuses()

        with pytest.raises(TypeError):
            snapshot["456"] = None  # type: ignore[index]
        store.observe(make_status("456", S.SUBMITTED), elapsed_ms=100)
        assert "456" not in snapshot

    def test_clear(self, store, make_status):
        """Test clearing every collection."""
        store.observe(make_status("123", S.SUBMITTED), elapsed_ms=100)

        store.clear()

        assert store.history_for() == []
        assert store.all_transitions() == []
        assert store.last_known_statuses() == {}


class TestAveragePhaseDurations:
    """Tests for average_phase_durations."""

    def test_two_versions(self, store, clock):
        """Test averages over two partially complete versions."""
        base = clock()
        for stage, offset in ((S.SUBMITTED, 0), (S.UNDER_REVIEW, 10), (S.APPROVED, 30)):
            store.record_transition(_transition("123", "1.0", stage, base + offset))
        for stage, offset in ((S.SUBMITTED, 0), (S.UNDER_REVIEW, 20)):
            store.record_transition(_transition("123", "2.0", stage, base + offset))

        averages = store.average_phase_durations()

        assert averages[UPLOAD_TO_VERIFICATION] == 15
        assert averages[VERIFICATION_TO_APPROVAL] == 20
        assert averages[APPROVAL_TO_PUBLISHED] == 0
        assert averages[TOTAL_UPLOAD_TO_PUBLISHED] == 0

    def test_full_lifecycle(self, store, clock):
        """Test a version that reaches PUBLISHED."""
        base = clock()
        for stage, offset in (
            (S.SUBMITTED, 0),
            (S.UNDER_REVIEW, 10),
            (S.APPROVED, 25),
            (S.PUBLISHED, 40),
        ):
            store.record_transition(_transition("123", "1.0", stage, base + offset))

        averages = store.average_phase_durations("123")

        assert averages[APPROVAL_TO_PUBLISHED] == 15
        assert averages[TOTAL_UPLOAD_TO_PUBLISHED] == 40

    def test_filter_by_plugin(self, store, clock):
        """Test restricting the averages to one plugin."""
        base = clock()
        store.record_transition(_transition("a", "1", S.SUBMITTED, base))
        store.record_transition(_transition("a", "1", S.UNDER_REVIEW, base + 10))
        store.record_transition(_transition("b", "1", S.SUBMITTED, base))
        store.record_transition(_transition("b", "1", S.UNDER_REVIEW, base + 50))

        assert store.average_phase_durations("a")[UPLOAD_TO_VERIFICATION] == 10
        assert store.average_phase_durations()[UPLOAD_TO_VERIFICATION] == 30

    def test_empty(self, store):
        """Test that every label is present with no data."""
        averages = store.average_phase_durations()

        assert set(averages) == {
            UPLOAD_TO_VERIFICATION,
            VERIFICATION_TO_APPROVAL,
            APPROVAL_TO_PUBLISHED,
            TOTAL_UPLOAD_TO_PUBLISHED,
        }
        assert all(value == 0 for value in averages.values())


class TestStateFileOperations:
    """Tests for loading and saving state files."""

    def test_create_default_state(self):
        """Test creating default empty state structure."""
        state = create_default_state()

        assert state["metadata"]["schema_version"] == "1"
        assert state["history"] == []
        assert state["transitions"] == []
        assert state["last_known_status"] == {}

    def test_load_missing_file_raises(self, tmp_path):
        """Test that loading nonexistent file raises FileNotFoundError."""
        with pytest.raises(FileNotFoundError):
            load_state(tmp_path / "nonexistent.json")

    def test_load_invalid_json_raises(self, tmp_path):
        """Test that loading invalid JSON raises JSONDecodeError."""
        state_file = tmp_path / "invalid.json"
        state_file.write_text("This is not JSON", encoding="utf-8")

        with pytest.raises(json.JSONDecodeError):
            load_state(state_file)

    def test_save_creates_parent_directory(self, tmp_path):
        """Test that save creates parent directories if needed."""
        state_file = tmp_path / "nested" / "dir" / "state.json"

        save_state(create_default_state(), state_file)

        assert state_file.exists()

    def test_save_pretty_prints_json(self, tmp_path):
        """Test that saved JSON is pretty-printed with a trailing newline."""
        state_file = tmp_path / "state.json"

        save_state(create_default_state(), state_file)

        content = state_file.read_text(encoding="utf-8")
        assert "  " in content
        assert content.endswith("\n")


class TestStateTracker:
    """Tests for StateTracker class."""

    def test_load_creates_default_if_missing(self, tmp_path, clock):
        """Test that load creates the state file if it doesn't exist."""
        state_file = tmp_path / "state" / "history.json"

        store = StateTracker(state_file).load(clock=clock)

        assert state_file.exists()
        assert store.history_for() == []

    def test_save_and_load_round_trip(self, tmp_path, clock, store, make_status):
        """Test persisting a store and loading it back."""
        state_file = tmp_path / "history.json"
        store.observe(make_status("123", S.SUBMITTED), elapsed_ms=150)
        clock.advance(1000)
        store.observe(make_status("123", S.UNDER_REVIEW), elapsed_ms=200)

        StateTracker(state_file).save(store)
        loaded = StateTracker(state_file).load(clock=clock)

        assert loaded.history_for() == store.history_for()
        assert loaded.all_transitions() == store.all_transitions()
        assert loaded.last_known("123") == store.last_known("123")

        state = load_state(state_file)
        assert "last_updated" in state["metadata"]

    def test_load_applies_retention(self, tmp_path, clock, store):
        """Test that a long-idle state file is trimmed on load."""
        state_file = tmp_path / "history.json"
        store.record_poll("123", 100)
        StateTracker(state_file).save(store)

        clock.advance_days(31)
        loaded = StateTracker(state_file).load(retention_days=30, clock=clock)

        assert loaded.history_for() == []

    def test_load_corrupted_file_creates_backup(self, tmp_path):
        """Test that corrupted file is backed up and replaced."""
        state_file = tmp_path / "state.json"
        state_file.write_text("corrupted JSON{{{", encoding="utf-8")

        with pytest.raises(StateError, match="Corrupted state file"):
            StateTracker(state_file).load()

        backup_file = tmp_path / "state.json.backup"
        assert backup_file.read_text(encoding="utf-8") == "corrupted JSON{{{"
        assert load_state(state_file)["history"] == []

    def test_load_non_object_raises(self, tmp_path):
        """Test that a JSON array is rejected."""
        state_file = tmp_path / "state.json"
        state_file.write_text("[]", encoding="utf-8")

        with pytest.raises(StateError):
            StateTracker(state_file).load()

    def test_load_invalid_record_raises(self, tmp_path):
        """Test that a hand-edited record with a bad timestamp is reported."""
        state_file = tmp_path / "state.json"
        state = create_default_state()
        state["history"] = [{"plugin_id": "123", "timestamp": "yesterday", "duration_ms": 10}]
        save_state(state, state_file)

        with pytest.raises(StateError, match="Invalid record") as exc_info:
            StateTracker(state_file).load()

        assert isinstance(exc_info.value.__cause__, ValueError)

    def test_export(self, store, make_status, clock):
        """Test the history export document."""
        store.observe(make_status("123", S.SUBMITTED), elapsed_ms=100)

        document = store.export()

        assert document["exported_at"] == clock()
        assert len(document["plugin_history"]) == 1
        assert document["phase_transitions"][0]["to_stage"] == "submitted"
