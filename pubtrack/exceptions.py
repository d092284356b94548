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

"""Exception hierarchy for pubtrack.

This module defines a custom exception hierarchy that allows library users
to distinguish between different types of errors:

- ConfigError: Settings-related errors (YAML parse, invalid field values)
- FetchError: Marketplace fetch errors (HTTP failures, timeouts, bad JSON)
- DataError: Malformed data inside an otherwise valid record (timestamps)
- StateError: Persisted state file problems (corrupted JSON)

All exceptions inherit from PubTrackError, allowing users to catch all
pubtrack errors with a single except clause if needed.

Most of these never cross the core boundary. A FetchError is captured into
the failing package's PluginStatus.error_message by the scheduler, and a
DataError is turned into "no timestamp" by the parser that raised it.

Example:
    Catching specific error types:
        ```python
        from pubtrack.marketplace import MarketplaceClient
        from pubtrack.exceptions import FetchError

        client = MarketplaceClient()
        try:
            updates = client.fetch_latest_updates("12345")
        except FetchError as e:
            print(f"Fetch error: {e}")
        ```

    Catching all pubtrack errors:
        ```python
        from pubtrack.exceptions import PubTrackError

        try:
            settings = load_settings(Path("pubtrack.yaml"))
        except PubTrackError as e:
            print(f"pubtrack error: {e}")
        ```
"""

from __future__ import annotations

__all__ = [
    "PubTrackError",
    "ConfigError",
    "FetchError",
    "DataError",
    "StateError",
]


class PubTrackError(Exception):
    """Base exception for all pubtrack errors.

    All pubtrack-specific exceptions inherit from this class, allowing users
    to catch all pubtrack errors with a single except clause if needed.
    """

    pass


class ConfigError(PubTrackError):
    """Raised for settings-related errors.

    This exception is raised when there are problems with:

    - YAML parsing (syntax errors, non-mapping top level)
    - Invalid field types or values (negative retention, unknown preference)

    An empty tracked-plugin list is not a ConfigError. The scheduler reports
    it as a "configuration-warning" event instead.
    """

    pass


class FetchError(PubTrackError):
    """Raised when the marketplace cannot be queried for a plugin.

    This exception is raised when there are problems with:

    - HTTP errors (404 unknown plugin, 401/403 bad token, 5xx)
    - Connection failures and timeouts
    - Response bodies that are not a JSON list of updates

    Example:
        Catching fetch errors:
            ```python
            from pubtrack.exceptions import FetchError

            try:
                updates = client.fetch_latest_updates("12345")
            except FetchError as e:
                print(f"Fetch error: {e}")
            ```
    """

    pass


class DataError(PubTrackError):
    """Raised for malformed values inside marketplace records.

    Currently only raised by the strict timestamp parser. Callers on the
    polling path use the lenient variant which returns None instead.
    """

    pass


class StateError(PubTrackError):
    """Raised when the persisted state file cannot be used.

    The state tracker backs up the corrupted file and starts fresh before
    raising, so the next run proceeds normally.
    """

    pass
