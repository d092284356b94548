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

"""HTTP client for the plugin marketplace updates API.

Queries the marketplace for the update list of a plugin:

    GET {base_url}api/plugins/{plugin_id}/updates

The response is a JSON array of update objects, newest first. Only the
fields pubtrack needs are decoded (see RawUpdate.from_api); unknown fields
are ignored.

Authentication:

- Anonymous requests work for public plugins
- A token is sent as "Authorization: Bearer <token>"
- Tokens of the form "${ENV_VAR}" are read from the environment

Error Handling:

- FetchError: HTTP errors, connection failures, timeouts, bad JSON
- Errors are chained with 'from err' for better debugging

Example:
    From Python:
        ```python
        from pubtrack.marketplace import MarketplaceClient

        client = MarketplaceClient(token="${MARKETPLACE_TOKEN}")
        updates = client.fetch_latest_updates("12345")
        if updates:
            print(updates[0].version, updates[0].stage)
        ```

"""

from __future__ import annotations

import os

import requests

from pubtrack.exceptions import FetchError
from pubtrack.logging import get_global_logger
from pubtrack.models import RawUpdate

DEFAULT_BASE_URL = "https://plugins.jetbrains.com/"
DEFAULT_TIMEOUT = 30


def expand_token(token: str | None) -> str | None:
    """Resolve "${ENV_VAR}" token references from the environment.

    Args:
        token: Literal token, "${ENV_VAR}" reference, or None.

    Returns:
        The resolved token, or None when unset.

    """
    if not token:
        return None
    if token.startswith("${") and token.endswith("}"):
        env_var = token[2:-1]
        value = os.environ.get(env_var)
        if not value:
            get_global_logger().verbose(
                "FETCH", f"Warning: Environment variable {env_var} not set"
            )
        return value or None
    return token


class MarketplaceClient:
    """UpdateSource backed by the marketplace REST API.

    Attributes:
        base_url: Marketplace root URL, with trailing slash.
        timeout: Request timeout in seconds.

    """

    def __init__(
        self,
        base_url: str = DEFAULT_BASE_URL,
        token: str | None = None,
        timeout: float = DEFAULT_TIMEOUT,
        session: requests.Session | None = None,
    ):
        """Initialize the client.

        Args:
            base_url: Marketplace root URL.
            token: API token or "${ENV_VAR}" reference.
            timeout: Request timeout in seconds.
            session: Session to reuse. A new one is created if omitted.

        """
        self.base_url = base_url if base_url.endswith("/") else base_url + "/"
        self.timeout = timeout
        self._token = expand_token(token)
        self._session = session or requests.Session()

    def updates_url(self, plugin_id: str) -> str:
        return f"{self.base_url}api/plugins/{plugin_id}/updates"

    def fetch_latest_updates(self, plugin_id: str) -> list[RawUpdate]:
        """Fetch the update list of a plugin.

        Args:
            plugin_id: Marketplace plugin id.

        Returns:
            Updates, newest first. Empty if the plugin has none.

        Raises:
            FetchError: If the request fails or the body is not a JSON list.

        """
        logger = get_global_logger()
        url = self.updates_url(plugin_id)
        headers = {"Accept": "application/json"}
        if self._token:
            headers["Authorization"] = f"Bearer {self._token}"

        logger.debug("FETCH", f"GET {url}")
        logger.debug("FETCH", f"Auth token: {'present' if self._token else 'not set'}")

        try:
            response = self._session.get(url, headers=headers, timeout=self.timeout)
            response.raise_for_status()
        except requests.exceptions.HTTPError as err:
            status_code = response.status_code
            if status_code == 404:
                raise FetchError(f"Plugin {plugin_id!r} not found") from err
            elif status_code in (401, 403):
                raise FetchError(
                    f"Marketplace rejected the request for {plugin_id!r} "
                    f"(status {status_code}). Check the API token."
                ) from err
            else:
                raise FetchError(
                    f"Marketplace request failed: {status_code} {response.reason}"
                ) from err
        except requests.exceptions.RequestException as err:
            raise FetchError(f"Failed to fetch updates for {plugin_id!r}: {err}") from err

        try:
            payload = response.json()
        except ValueError as err:
            raise FetchError(f"Invalid JSON in response for {plugin_id!r}") from err

        if not isinstance(payload, list):
            raise FetchError(
                f"Expected a JSON list of updates for {plugin_id!r}, "
                f"got {type(payload).__name__}"
            )

        updates = [RawUpdate.from_api(item) for item in payload if isinstance(item, dict)]
        logger.debug("FETCH", f"Received {len(updates)} update(s) for {plugin_id}")
        return updates

    def close(self) -> None:
        self._session.close()
