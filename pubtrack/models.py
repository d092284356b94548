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

"""Domain records for pubtrack.

This module defines the records that flow through the polling pipeline:

- RawUpdate: one entry of the marketplace "updates" response
- PluginStatus: the current snapshot of a tracked plugin
- PhaseTransition: a recorded move from one stage to another
- HistoryEntry: the wall-clock duration of one poll of one plugin

All records are frozen dataclasses. Timestamps are integer epoch
milliseconds, matching what the marketplace API returns. Each record
converts to and from a plain dict so the state tracker can persist it as
JSON.

Example:
    Build a status from an API response:
        ```python
        from pubtrack.models import PluginStatus, RawUpdate

        update = RawUpdate.from_api({"version": "1.2.0", "approve": True,
                                     "listed": True, "cdate": "1700000000000"})
        status = PluginStatus.from_update("12345", update, checked_at=now_ms())
        print(status.stage)  # VerificationStage.PUBLISHED
        ```

"""

from __future__ import annotations

from dataclasses import dataclass
import time
from typing import Any

from pubtrack.exceptions import DataError
from pubtrack.stages import VerificationStage, classify, from_name

MS_PER_DAY = 24 * 60 * 60 * 1000


def now_ms() -> int:
    """Return the current wall-clock time in epoch milliseconds."""
    return int(time.time() * 1000)


def parse_timestamp(value: str | int | None) -> int:
    """Parse an epoch-millisecond timestamp encoded as text.

    Args:
        value: Timestamp text such as "1700000000000". Integers pass through.

    Returns:
        The timestamp as an int.

    Raises:
        DataError: If the value is missing or not an integer.

    """
    if value is None:
        raise DataError("Timestamp is missing")
    if isinstance(value, bool):
        raise DataError(f"Invalid timestamp: {value!r}")
    if isinstance(value, int):
        return value
    try:
        return int(str(value).strip())
    except ValueError as err:
        raise DataError(f"Invalid timestamp: {value!r}") from err


def _optional_bool(value: Any) -> bool | None:
    return value if isinstance(value, bool) else None


def _optional_int(value: Any) -> int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    try:
        return int(value) if value is not None else None
    except (TypeError, ValueError):
        return None


@dataclass(frozen=True)
class RawUpdate:
    """One update record as returned by the marketplace.

    Attributes:
        version: Version string of the uploaded build.
        approved: Tri-state "approve" flag (None when absent).
        listed: Tri-state "listed" flag (None when absent).
        author: Author display name, if present.
        created: Creation timestamp as text (epoch millis), "cdate" upstream.
        downloads: Download counter.
        size: Artifact size in bytes.
        update_id: Marketplace id of this update.
        channel: Release channel ("" for the default channel).
        notes: Change notes.
        status_hint: Optional free-text moderation status.
    """

    version: str = ""
    approved: bool | None = None
    listed: bool | None = None
    author: str | None = None
    created: str | None = None
    downloads: int | None = None
    size: int | None = None
    update_id: int | None = None
    channel: str | None = None
    notes: str | None = None
    status_hint: str | None = None

    @property
    def timestamp(self) -> int | None:
        """Creation time in epoch ms, or None if missing or malformed."""
        try:
            return parse_timestamp(self.created)
        except DataError:
            return None

    @property
    def stage(self) -> VerificationStage:
        """Stage this record classifies into."""
        return classify(self.status_hint, self.approved, self.listed)

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> RawUpdate:
        """Build a RawUpdate from one element of the marketplace JSON list.

        Unknown keys are ignored and wrongly typed values become None, the
        same leniency the marketplace client applies to the whole response.
        """
        author = data.get("author")
        author_name = author.get("name") if isinstance(author, dict) else None
        created = data.get("cdate")
        status = data.get("status")
        return cls(
            version=str(data.get("version") or ""),
            approved=_optional_bool(data.get("approve")),
            listed=_optional_bool(data.get("listed")),
            author=author_name if isinstance(author_name, str) else None,
            created=str(created) if created is not None else None,
            downloads=_optional_int(data.get("downloads")),
            size=_optional_int(data.get("size")),
            update_id=_optional_int(data.get("id")),
            channel=data.get("channel") if isinstance(data.get("channel"), str) else None,
            notes=data.get("notes") if isinstance(data.get("notes"), str) else None,
            status_hint=status if isinstance(status, str) else None,
        )


@dataclass(frozen=True)
class PluginStatus:
    """Current snapshot of one tracked plugin.

    Attributes:
        plugin_id: Marketplace plugin id.
        display_name: Name shown to users.
        latest_version: Version of the most recent update ("" if none).
        stage: Verification stage of the most recent update.
        last_checked_at: When this snapshot was taken (epoch ms).
        last_updated_at: Upstream creation time of the update, if known.
        error_message: Why the poll failed, if it did.

    A status carrying an error message always has stage UNKNOWN; the
    constructor enforces this.
    """

    plugin_id: str
    display_name: str = ""
    latest_version: str = ""
    stage: VerificationStage = VerificationStage.UNKNOWN
    last_checked_at: int = 0
    last_updated_at: int | None = None
    error_message: str | None = None

    def __post_init__(self) -> None:
        if self.error_message is not None and self.stage is not VerificationStage.UNKNOWN:
            object.__setattr__(self, "stage", VerificationStage.UNKNOWN)

    @property
    def failed(self) -> bool:
        return self.error_message is not None

    @classmethod
    def from_update(
        cls, plugin_id: str, update: RawUpdate | None, checked_at: int
    ) -> PluginStatus:
        """Build a snapshot from the most recent update (None means no data)."""
        if update is None:
            return cls(
                plugin_id=plugin_id,
                display_name=plugin_id,
                last_checked_at=checked_at,
            )
        return cls(
            plugin_id=plugin_id,
            display_name=update.author or plugin_id,
            latest_version=update.version,
            stage=update.stage,
            last_checked_at=checked_at,
            last_updated_at=update.timestamp,
        )

    @classmethod
    def from_error(cls, plugin_id: str, message: str, checked_at: int) -> PluginStatus:
        """Build the snapshot recorded for a failed poll."""
        return cls(
            plugin_id=plugin_id,
            display_name=plugin_id,
            last_checked_at=checked_at,
            error_message=message,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "plugin_id": self.plugin_id,
            "display_name": self.display_name,
            "latest_version": self.latest_version,
            "stage": self.stage.value,
            "last_checked_at": self.last_checked_at,
            "last_updated_at": self.last_updated_at,
            "error_message": self.error_message,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> PluginStatus:
        return cls(
            plugin_id=str(data.get("plugin_id", "")),
            display_name=str(data.get("display_name", "")),
            latest_version=str(data.get("latest_version", "")),
            stage=from_name(data.get("stage")),
            last_checked_at=int(data.get("last_checked_at", 0)),
            last_updated_at=_optional_int(data.get("last_updated_at")),
            error_message=data.get("error_message"),
        )


@dataclass(frozen=True)
class PhaseTransition:
    """A move of one plugin version from one stage to another.

    Attributes:
        plugin_id: Marketplace plugin id.
        version: Version the transition belongs to.
        from_stage: Stage before the move (UNKNOWN on first sighting).
        to_stage: Stage after the move.
        timestamp: When the move was detected (epoch ms).
        duration_in_previous_stage_ms: Time since the previous snapshot was
            taken, or None when there was no previous snapshot.
    """

    plugin_id: str
    version: str
    from_stage: VerificationStage
    to_stage: VerificationStage
    timestamp: int
    duration_in_previous_stage_ms: int | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "plugin_id": self.plugin_id,
            "version": self.version,
            "from_stage": self.from_stage.value,
            "to_stage": self.to_stage.value,
            "timestamp": self.timestamp,
            "duration_in_previous_stage_ms": self.duration_in_previous_stage_ms,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> PhaseTransition:
        return cls(
            plugin_id=str(data.get("plugin_id", "")),
            version=str(data.get("version", "")),
            from_stage=from_name(data.get("from_stage")),
            to_stage=from_name(data.get("to_stage")),
            timestamp=int(data.get("timestamp", 0)),
            duration_in_previous_stage_ms=_optional_int(
                data.get("duration_in_previous_stage_ms")
            ),
        )


@dataclass(frozen=True)
class HistoryEntry:
    """Wall-clock duration of one poll of one plugin.

    A duration of zero marks a poll that produced no usable measurement;
    analytics count only positive durations as successful.
    """

    plugin_id: str
    timestamp: int
    duration_ms: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "plugin_id": self.plugin_id,
            "timestamp": self.timestamp,
            "duration_ms": self.duration_ms,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> HistoryEntry:
        return cls(
            plugin_id=str(data.get("plugin_id", "")),
            timestamp=int(data.get("timestamp", 0)),
            duration_ms=int(data.get("duration_ms", 0)),
        )
