"""
Pytest configuration and shared fixtures for pubtrack tests.

This module provides reusable fixtures and test utilities used across
the test suite.
"""

from __future__ import annotations

from collections.abc import Callable
from pathlib import Path
from typing import Any

import pytest
import yaml

from pubtrack.exceptions import FetchError
from pubtrack.logging import SilentLogger, set_global_logger
from pubtrack.models import MS_PER_DAY, PluginStatus, RawUpdate
from pubtrack.stages import VerificationStage
from pubtrack.state import HistoryStore

# 2024-01-10 00:00:00 UTC
BASE_TIME = 1704844800000


class FakeClock:
    """Manually advanced epoch-ms clock."""

    def __init__(self, now: int = BASE_TIME):
        self.now = now

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> int:
        self.now += ms
        return self.now

    def advance_days(self, days: float) -> int:
        return self.advance(int(days * MS_PER_DAY))


class FakeSource:
    """UpdateSource returning canned updates or raising canned errors.

    `responses` maps a plugin id to either a list of RawUpdate or an
    exception instance. Each call is appended to `calls`.
    """

    def __init__(self, responses: dict[str, Any] | None = None):
        self.responses: dict[str, Any] = dict(responses or {})
        self.calls: list[str] = []

    def fetch_latest_updates(self, plugin_id: str) -> list[RawUpdate]:
        self.calls.append(plugin_id)
        response = self.responses.get(plugin_id, [])
        if isinstance(response, Exception):
            raise response
        return list(response)

    def set_stage(self, plugin_id: str, version: str, stage: VerificationStage) -> None:
        self.responses[plugin_id] = [update_for(version, stage)]

    def fail(self, plugin_id: str, message: str = "connection refused") -> None:
        self.responses[plugin_id] = FetchError(message)


_FLAGS: dict[VerificationStage, dict[str, Any]] = {
    VerificationStage.PUBLISHED: {"approved": True, "listed": True},
    VerificationStage.APPROVED: {"approved": True, "listed": False},
    VerificationStage.REJECTED: {"approved": False},
    VerificationStage.SUBMITTED: {"status_hint": "Submitted"},
    VerificationStage.UNDER_REVIEW: {"status_hint": "In review"},
    VerificationStage.UNKNOWN: {},
}


def update_for(version: str, stage: VerificationStage, **extra: Any) -> RawUpdate:
    """Build a RawUpdate that classifies into `stage`."""
    return RawUpdate(version=version, **_FLAGS[stage], **extra)


@pytest.fixture(autouse=True)
def silent_logger():
    """Reset the global logger so tests never print log lines."""
    set_global_logger(SilentLogger())
    yield
    set_global_logger(SilentLogger())


@pytest.fixture
def tmp_test_dir(tmp_path: Path) -> Path:
    """
    Provide a temporary directory for test artifacts.

    Automatically cleaned up after test completion.
    """
    return tmp_path


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def store(clock: FakeClock) -> HistoryStore:
    """Empty store with 30-day retention driven by the fake clock."""
    return HistoryStore(retention_days=30, max_history_entries=1000, clock=clock)


@pytest.fixture
def fake_source() -> FakeSource:
    return FakeSource()


@pytest.fixture
def make_status(clock: FakeClock) -> Callable[..., PluginStatus]:
    """
    Factory fixture for PluginStatus snapshots.

    Usage:
        status = make_status("123", VerificationStage.APPROVED, version="1.0")
    """

    def _make(
        plugin_id: str,
        stage: VerificationStage,
        version: str = "1.0.0",
        checked_at: int | None = None,
        error: str | None = None,
    ) -> PluginStatus:
        return PluginStatus(
            plugin_id=plugin_id,
            display_name=plugin_id,
            latest_version=version,
            stage=stage,
            last_checked_at=clock() if checked_at is None else checked_at,
            error_message=error,
        )

    return _make


@pytest.fixture
def sample_settings_data() -> dict[str, Any]:
    """Provide a complete settings document."""
    return {
        "tracked_plugins": ["12345", "67890"],
        "polling_interval_minutes": 15,
        "data_retention_days": 14,
        "max_history_entries": 500,
        "notifications": {"enabled": True, "preference": "sticky_balloon"},
        "api": {
            "base_url": "https://marketplace.example.com/",
            "token": "${PUBTRACK_TEST_TOKEN}",
            "timeout": 10,
        },
    }


@pytest.fixture
def create_yaml_file(tmp_test_dir: Path):
    """
    Factory fixture for creating temporary YAML files.

    Usage:
        yaml_path = create_yaml_file("pubtrack.yaml", {"key": "value"})
    """

    def _create(filename: str, data: Any) -> Path:
        path = tmp_test_dir / filename
        path.parent.mkdir(parents=True, exist_ok=True)
        with path.open("w", encoding="utf-8") as f:
            yaml.dump(data, f)
        return path

    return _create


@pytest.fixture
def sample_updates_payload() -> list[dict[str, Any]]:
    """Marketplace updates response, newest first."""
    return [
        {
            "id": 501,
            "version": "2.1.0",
            "approve": True,
            "listed": False,
            "cdate": "1704844800000",
            "author": {"name": "Acme Tools"},
            "downloads": 42,
            "size": 102400,
            "channel": "",
            "notes": "Bug fixes",
        },
        {
            "id": 480,
            "version": "2.0.0",
            "approve": True,
            "listed": True,
            "cdate": "1703000000000",
            "author": {"name": "Acme Tools"},
        },
    ]
