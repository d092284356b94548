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

"""Stage transition detection between successive snapshots.

Compares the last known status of a plugin with a freshly fetched one and
decides whether a stage transition happened. The decision is pure: nothing
is stored here, the caller (HistoryStore.observe) persists the result and
refreshes the last known snapshot whether or not a transition fired.

Example:
    Detect a move from review to approval:
        ```python
        from pubtrack.comparator import detect_transition

        transition = detect_transition(previous, current, now=now_ms())
        if transition:
            print(f"{transition.from_stage} -> {transition.to_stage}")
        ```

"""

from __future__ import annotations

from pubtrack.models import PhaseTransition, PluginStatus, now_ms
from pubtrack.stages import VerificationStage


def detect_transition(
    previous: PluginStatus | None,
    current: PluginStatus,
    now: int | None = None,
) -> PhaseTransition | None:
    """Decide whether `current` moved to a different stage than `previous`.

    Args:
        previous: Last known snapshot of the plugin, or None on first sight.
        current: Newly fetched snapshot.
        now: Detection time in epoch ms. Defaults to the wall clock.

    Returns:
        A transition when there is no previous snapshot or the stages
        differ, otherwise None.

    Note:
        The dwell time is measured from previous.last_checked_at, which is
        refreshed on every poll. It is therefore the time since the latest
        poll, not since the latest stage change.

    """
    if previous is not None and previous.stage == current.stage:
        return None

    if now is None:
        now = now_ms()

    return PhaseTransition(
        plugin_id=current.plugin_id,
        version=current.latest_version,
        from_stage=previous.stage if previous is not None else VerificationStage.UNKNOWN,
        to_stage=current.stage,
        timestamp=now,
        duration_in_previous_stage_ms=(
            now - previous.last_checked_at if previous is not None else None
        ),
    )
