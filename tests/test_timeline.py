"""
Tests for pubtrack.timeline module.
"""

from __future__ import annotations

from pubtrack.models import PhaseTransition
from pubtrack.stages import VerificationStage
from pubtrack.timeline import (
    APPROVAL_TO_PUBLISHED,
    TOTAL_UPLOAD_TO_PUBLISHED,
    UPLOAD_TO_VERIFICATION,
    VERIFICATION_TO_APPROVAL,
    TimelineBuilder,
    build_timeline,
    phase_durations,
)

S = VerificationStage

LIFECYCLE = [
    (S.UNKNOWN, S.SUBMITTED, 0),
    (S.SUBMITTED, S.UNDER_REVIEW, 10),
    (S.UNDER_REVIEW, S.APPROVED, 25),
    (S.APPROVED, S.PUBLISHED, 40),
]


def _transitions(steps, plugin_id="123", version="1.0", base=0):
    return [
        PhaseTransition(
            plugin_id=plugin_id,
            version=version,
            from_stage=from_stage,
            to_stage=to_stage,
            timestamp=base + timestamp,
        )
        for from_stage, to_stage, timestamp in steps
    ]


class TestBuildTimeline:
    """Tests for build_timeline."""

    def test_empty(self):
        """Test that no transitions yields no timeline."""
        assert build_timeline("123", "1.0", []) is None

    def test_full_lifecycle(self):
        """Test milestones of a version that reaches PUBLISHED."""
        timeline = build_timeline("123", "1.0", _transitions(LIFECYCLE))

        assert timeline is not None
        assert timeline.uploaded_at == 0
        assert timeline.verification_started_at == 10
        assert timeline.approved_at == 25
        assert timeline.published_at == 40
        assert timeline.total_duration_ms == 40
        assert timeline.current_stage is S.PUBLISHED

    def test_unordered_input(self):
        """Test that transitions are sorted by timestamp first."""
        timeline = build_timeline("123", "1.0", reversed(_transitions(LIFECYCLE)))

        assert timeline is not None
        assert [t.timestamp for t in timeline.transitions] == [0, 10, 25, 40]
        assert timeline.current_stage is S.PUBLISHED

    def test_first_arrival_wins(self):
        """Test that re-entering a stage keeps the first milestone."""
        steps = [
            (S.UNKNOWN, S.UNDER_REVIEW, 5),
            (S.UNDER_REVIEW, S.SUBMITTED, 8),
            (S.SUBMITTED, S.UNDER_REVIEW, 12),
        ]

        timeline = build_timeline("123", "1.0", _transitions(steps))

        assert timeline is not None
        assert timeline.verification_started_at == 5
        assert timeline.current_stage is S.UNDER_REVIEW

    def test_phase_timeline(self):
        """Test the milestone mapping used for display."""
        timeline = build_timeline("123", "1.0", _transitions(LIFECYCLE[:2]))

        assert timeline is not None
        assert timeline.phase_timeline() == {
            "Upload": 0,
            "Verification": 10,
            "Approval": None,
            "Published": None,
        }


class TestPhaseDurations:
    """Tests for phase_durations of a single timeline."""

    def test_complete(self):
        """Test gaps between adjacent milestones."""
        timeline = build_timeline("123", "1.0", _transitions(LIFECYCLE))

        assert phase_durations(timeline) == {
            UPLOAD_TO_VERIFICATION: 10,
            VERIFICATION_TO_APPROVAL: 15,
            APPROVAL_TO_PUBLISHED: 15,
            TOTAL_UPLOAD_TO_PUBLISHED: 40,
        }

    def test_missing_milestones(self):
        """Test that gaps with a missing end are None."""
        timeline = build_timeline("123", "1.0", _transitions(LIFECYCLE[:2]))

        durations = phase_durations(timeline)

        assert durations[UPLOAD_TO_VERIFICATION] == 10
        assert durations[VERIFICATION_TO_APPROVAL] is None
        assert durations[TOTAL_UPLOAD_TO_PUBLISHED] is None


class TestTimelineBuilder:
    """Tests for TimelineBuilder over a HistoryStore."""

    def test_versions_in_first_seen_order(self, store, clock):
        """Test listing recorded versions of a plugin."""
        newest = _transitions(LIFECYCLE[:1], version="2.0", base=clock())
        older = _transitions(LIFECYCLE, version="1.0", base=clock())
        for transition in newest + older:
            store.record_transition(transition)

        builder = TimelineBuilder(store)

        assert builder.versions("123") == ["2.0", "1.0"]
        assert [t.version for t in builder.timelines("123")] == ["2.0", "1.0"]

    def test_build_unknown_version(self, store):
        """Test that a version without transitions has no timeline."""
        assert TimelineBuilder(store).build("123", "9.9") is None
