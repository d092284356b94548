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

"""Notification decision policy for pubtrack.

Determines whether a status change is worth telling the user about. Only
the decision lives here; delivering the notification (balloon, email, CLI
line) is up to whoever listens to the scheduler's events.

Example:
    Decide whether to notify:

        from pubtrack.notifications import NotificationPreference, should_notify

        if should_notify(
            status,
            previous_stage=VerificationStage.UNDER_REVIEW,
            preference=NotificationPreference.BALLOON,
        ):
            send(notification_title(status))

"""

from __future__ import annotations

from enum import Enum
from typing import Literal

from pubtrack.models import PluginStatus
from pubtrack.stages import NOTABLE_STAGES, VerificationStage

Severity = Literal["info", "warning", "error"]


class NotificationPreference(str, Enum):
    BALLOON = "balloon"
    STICKY_BALLOON = "sticky_balloon"
    NONE = "none"
    EMAIL = "email"


def is_notable_change(
    previous_stage: VerificationStage | None,
    current_stage: VerificationStage,
) -> bool:
    """Check whether a stage change entered or left the notable set.

    The notable set is {APPROVED, PUBLISHED, REJECTED}. Without a previous
    stage (first sighting of a plugin) nothing has changed yet, so the
    answer is False.

    Args:
        previous_stage: Stage before the poll cycle, or None.
        current_stage: Stage after the poll cycle.

    Returns:
        True if the stage changed and either side is notable.

    """
    if previous_stage is None or previous_stage == current_stage:
        return False
    return previous_stage in NOTABLE_STAGES or current_stage in NOTABLE_STAGES


def should_notify(
    status: PluginStatus,
    previous_stage: VerificationStage | None,
    preference: NotificationPreference,
) -> bool:
    """Decide whether a poll result should produce a notification.

    Args:
        status: Snapshot produced by the poll.
        previous_stage: Stage from the snapshot taken before the cycle.
        preference: User notification preference.

    Returns:
        False when notifications are disabled, the poll failed (errors are
        reported separately), or the change is not notable.

    """
    if preference is NotificationPreference.NONE:
        return False
    if status.failed:
        return False
    return is_notable_change(previous_stage, status.stage)


def notification_title(status: PluginStatus) -> str:
    """Short title for a notification about this status."""
    if status.failed:
        return "Plugin Error"
    if status.stage is VerificationStage.UNKNOWN:
        return "Plugin Status Update"
    return f"Plugin {status.stage.label}"


def notification_severity(status: PluginStatus) -> Severity:
    """Severity a notifier should use for this status."""
    if status.failed:
        return "error"
    if status.stage is VerificationStage.REJECTED:
        return "warning"
    return "info"
