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

"""Update source protocol for pubtrack.

This module defines the interface the scheduler uses to ask the outside
world for a plugin's updates. The bundled MarketplaceClient implements it
over HTTP; tests and alternative backends implement it directly.

Design Philosophy:
    - Sources are Protocol classes (structural subtyping, not inheritance)
    - The scheduler only uses the first (most recent) update returned
    - Timeouts and retries are the source's responsibility
    - Every failure surfaces as FetchError

Protocol Benefits:

Using typing.Protocol instead of ABC allows:

- Duck typing: Classes don't need explicit inheritance
- Better IDE support: Type checkers verify interface compliance
- Flexibility: Tests can pass a tiny stub class without touching base

Example:
    Implementing a custom source:
        ```python
        from pubtrack.models import RawUpdate

        class FixedSource:
            def fetch_latest_updates(self, plugin_id: str) -> list[RawUpdate]:
                return [RawUpdate(version="1.0.0", approved=True, listed=True)]

        scheduler = PollScheduler(store, FixedSource())
        ```

"""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from pubtrack.models import RawUpdate


@runtime_checkable
class UpdateSource(Protocol):
    """Protocol for anything that can list a plugin's marketplace updates."""

    def fetch_latest_updates(self, plugin_id: str) -> list[RawUpdate]:
        """Fetch the updates of a plugin, most recent first.

        Args:
            plugin_id: Marketplace plugin id.

        Returns:
            Updates ordered newest first. An empty list means the
            marketplace has no data for the plugin (not an error).

        Raises:
            FetchError: On network, authentication or parse failures.

        """
        ...
