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

"""Per-version phase timelines.

A timeline is the ordered reconstruction of all transitions recorded for one
plugin version, annotated with four milestones:

- Upload: first arrival at SUBMITTED
- Verification: first arrival at UNDER_REVIEW
- Approval: first arrival at APPROVED
- Published: first arrival at PUBLISHED

Later arrivals at a stage that already has a milestone do not move it.
Timelines are derived on demand and never stored.

Example:
    Inspect the latest timeline of a plugin:
        ```python
        from pubtrack.timeline import TimelineBuilder, phase_durations

        builder = TimelineBuilder(store)
        timeline = builder.build("12345", "1.2.0")
        if timeline:
            for label, ms in phase_durations(timeline).items():
                print(label, ms)
        ```

"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from typing import TYPE_CHECKING

from pubtrack.models import PhaseTransition
from pubtrack.stages import VerificationStage

if TYPE_CHECKING:
    from pubtrack.state.store import HistoryStore

UPLOAD_TO_VERIFICATION = "Upload to Verification"
VERIFICATION_TO_APPROVAL = "Verification to Approval"
APPROVAL_TO_PUBLISHED = "Approval to Published"
TOTAL_UPLOAD_TO_PUBLISHED = "Total (Upload to Published)"

PHASE_LABELS = (
    UPLOAD_TO_VERIFICATION,
    VERIFICATION_TO_APPROVAL,
    APPROVAL_TO_PUBLISHED,
    TOTAL_UPLOAD_TO_PUBLISHED,
)


@dataclass(frozen=True)
class PluginVersionTimeline:
    """Ordered transitions and milestones of one plugin version.

    Attributes:
        plugin_id: Marketplace plugin id.
        version: Plugin version.
        transitions: Transitions sorted ascending by timestamp.
        uploaded_at: First arrival at SUBMITTED, if any.
        verification_started_at: First arrival at UNDER_REVIEW, if any.
        approved_at: First arrival at APPROVED, if any.
        published_at: First arrival at PUBLISHED, if any.
        current_stage: Target stage of the latest transition.
        total_duration_ms: Latest minus earliest transition timestamp.
    """

    plugin_id: str
    version: str
    transitions: tuple[PhaseTransition, ...]
    uploaded_at: int | None
    verification_started_at: int | None
    approved_at: int | None
    published_at: int | None
    current_stage: VerificationStage
    total_duration_ms: int

    def phase_timeline(self) -> dict[str, int | None]:
        """Milestone timestamps keyed by phase name."""
        return {
            "Upload": self.uploaded_at,
            "Verification": self.verification_started_at,
            "Approval": self.approved_at,
            "Published": self.published_at,
        }


def build_timeline(
    plugin_id: str,
    version: str,
    transitions: Iterable[PhaseTransition],
) -> PluginVersionTimeline | None:
    """Reconstruct the timeline of one version from its transitions.

    Args:
        plugin_id: Plugin the transitions belong to.
        version: Version the transitions belong to.
        transitions: Transitions of that version, in any order.

    Returns:
        The timeline, or None when there are no transitions.

    """
    ordered = sorted(transitions, key=lambda t: t.timestamp)
    if not ordered:
        return None

    milestones: dict[VerificationStage, int] = {}
    for transition in ordered:
        milestones.setdefault(transition.to_stage, transition.timestamp)

    return PluginVersionTimeline(
        plugin_id=plugin_id,
        version=version,
        transitions=tuple(ordered),
        uploaded_at=milestones.get(VerificationStage.SUBMITTED),
        verification_started_at=milestones.get(VerificationStage.UNDER_REVIEW),
        approved_at=milestones.get(VerificationStage.APPROVED),
        published_at=milestones.get(VerificationStage.PUBLISHED),
        current_stage=ordered[-1].to_stage,
        total_duration_ms=ordered[-1].timestamp - ordered[0].timestamp,
    )


def _gap(start: int | None, end: int | None) -> int | None:
    if start is None or end is None:
        return None
    return end - start


def phase_durations(timeline: PluginVersionTimeline) -> dict[str, int | None]:
    """Durations between adjacent milestones of a single timeline.

    Unlike HistoryStore.average_phase_durations this looks at one version
    only. Every label is present; a gap is None when either milestone is
    missing.

    Args:
        timeline: Timeline to measure.

    Returns:
        Mapping of phase label to milliseconds or None.

    """
    return {
        UPLOAD_TO_VERIFICATION: _gap(
            timeline.uploaded_at, timeline.verification_started_at
        ),
        VERIFICATION_TO_APPROVAL: _gap(
            timeline.verification_started_at, timeline.approved_at
        ),
        APPROVAL_TO_PUBLISHED: _gap(timeline.approved_at, timeline.published_at),
        TOTAL_UPLOAD_TO_PUBLISHED: _gap(timeline.uploaded_at, timeline.published_at),
    }


class TimelineBuilder:
    """Read-side helper that builds timelines from a HistoryStore."""

    def __init__(self, store: HistoryStore):
        self.store = store

    def build(self, plugin_id: str, version: str) -> PluginVersionTimeline | None:
        return self.store.build_timeline(plugin_id, version)

    def versions(self, plugin_id: str) -> list[str]:
        """Versions with recorded transitions, in first-seen order."""
        seen: dict[str, None] = {}
        for transition in self.store.transitions_for(plugin_id):
            seen.setdefault(transition.version, None)
        return list(seen)

    def timelines(self, plugin_id: str) -> list[PluginVersionTimeline]:
        """Timelines of every known version of a plugin."""
        timelines = []
        for version in self.versions(plugin_id):
            timeline = self.build(plugin_id, version)
            if timeline is not None:
                timelines.append(timeline)
        return timelines

    phase_durations = staticmethod(phase_durations)
