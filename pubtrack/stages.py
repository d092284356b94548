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

"""Verification stages for marketplace plugin versions.

This module defines the finite set of stages a plugin version moves through
on its way to the marketplace, and the pure functions that map raw API data
onto those stages.

Stage Lifecycle:

    SUBMITTED -> UNDER_REVIEW -> APPROVED -> PUBLISHED
                              \\-> REJECTED

PUBLISHED and REJECTED are terminal for a version. UNKNOWN is a placeholder
for "no usable information" (empty responses, fetch errors) and is never
treated as terminal.

Classification Rules:

The marketplace only returns updates that have already passed initial
moderation, so the approve/listed flags decide almost every case:

- approve=True,  listed=True  -> PUBLISHED
- approve=True,  listed=False -> APPROVED (approved but not yet visible)
- approve=False, any listed   -> REJECTED
- approve=None,  listed=True  -> PUBLISHED
- approve=None,  listed=False -> APPROVED

When the flags do not decide, an optional free-text status hint is matched
case-insensitively for "submitted", "review" and "rejected". Everything else
is UNKNOWN. Classification never raises.

Example:
    Classify a raw update:
        ```python
        from pubtrack.stages import VerificationStage, classify

        stage = classify(None, approved=True, listed=False)
        assert stage is VerificationStage.APPROVED
        ```

"""

from __future__ import annotations

from enum import Enum


class VerificationStage(str, Enum):
    """Discrete point in a plugin version's publication lifecycle."""

    SUBMITTED = "submitted"
    UNDER_REVIEW = "under_review"
    APPROVED = "approved"
    REJECTED = "rejected"
    PUBLISHED = "published"
    UNKNOWN = "unknown"

    @property
    def label(self) -> str:
        """Human-readable stage name (e.g., "Under Review")."""
        return self.value.replace("_", " ").title()

    @property
    def is_terminal(self) -> bool:
        """True for stages a version never leaves (PUBLISHED, REJECTED)."""
        return self in TERMINAL_STAGES


TERMINAL_STAGES = frozenset({VerificationStage.PUBLISHED, VerificationStage.REJECTED})

# Entering or leaving one of these is worth telling the user about
NOTABLE_STAGES = frozenset(
    {
        VerificationStage.APPROVED,
        VerificationStage.PUBLISHED,
        VerificationStage.REJECTED,
    }
)

_NAME_ALIASES: dict[str, VerificationStage] = {
    "submitted": VerificationStage.SUBMITTED,
    "review": VerificationStage.UNDER_REVIEW,
    "under_review": VerificationStage.UNDER_REVIEW,
    "under review": VerificationStage.UNDER_REVIEW,
    "under-review": VerificationStage.UNDER_REVIEW,
    "approved": VerificationStage.APPROVED,
    "rejected": VerificationStage.REJECTED,
    "published": VerificationStage.PUBLISHED,
}


def classify(
    status: str | None,
    approved: bool | None,
    listed: bool | None,
) -> VerificationStage:
    """Classify a raw marketplace record into a verification stage.

    Args:
        status: Optional textual status hint. Only consulted when the
            approve/listed flags do not decide the stage.
        approved: The record's tri-state "approve" flag.
        listed: The record's tri-state "listed" flag.

    Returns:
        The inferred stage. Unmapped combinations yield UNKNOWN.

    Example:
        Flags take precedence over the hint:
            ```python
            classify("in review", approved=True, listed=True)
            # VerificationStage.PUBLISHED
            classify("in review", approved=None, listed=None)
            # VerificationStage.UNDER_REVIEW
            ```

    """
    if approved is True and listed is True:
        return VerificationStage.PUBLISHED
    if approved is True and listed is False:
        return VerificationStage.APPROVED
    if approved is False:
        return VerificationStage.REJECTED
    if approved is None and listed is True:
        return VerificationStage.PUBLISHED
    if approved is None and listed is False:
        return VerificationStage.APPROVED

    if status:
        hint = status.lower()
        if "submitted" in hint:
            return VerificationStage.SUBMITTED
        if "review" in hint:
            return VerificationStage.UNDER_REVIEW
        if "rejected" in hint:
            return VerificationStage.REJECTED

    return VerificationStage.UNKNOWN


def from_name(text: str | None) -> VerificationStage:
    """Parse a stage name, accepting the usual aliases.

    Matching is case-insensitive and exact after trimming whitespace:
    "review" and "under_review" both map to UNDER_REVIEW. Unmatched text
    (including None) maps to UNKNOWN rather than raising.

    Args:
        text: Stage name as stored in state files or typed by a user.

    Returns:
        The matching stage, or UNKNOWN.

    """
    if text is None:
        return VerificationStage.UNKNOWN
    return _NAME_ALIASES.get(text.strip().lower(), VerificationStage.UNKNOWN)
