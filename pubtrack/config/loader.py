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

"""Settings loading and validation for pubtrack.

Settings live in a YAML file (pubtrack.yaml by default). The file is
deep-merged on top of built-in defaults, so a settings file only needs the
keys it changes:

    tracked_plugins: ["12345", "67890"]
    polling_interval_minutes: 10
    data_retention_days: 30
    max_history_entries: 1000
    notifications:
      enabled: true
      preference: balloon
    api:
      base_url: "https://plugins.jetbrains.com/"
      token: "${MARKETPLACE_TOKEN}"
      timeout: 30

Merge Behavior:
    The loader performs deep merging with "last wins" semantics:

    - Dicts: Recursively merged (keys from the file override defaults)
    - Lists: Completely replaced (NOT appended/extended)
    - Scalars: Overwritten (strings, numbers, booleans)

Error Handling:
    - Missing file: built-in defaults are used (not an error)
    - ConfigError: YAML parse errors, non-mapping content, invalid values
    - All errors are chained with "from err" for better debugging

Example:
    Load settings:
        ```python
        from pathlib import Path
        from pubtrack.config import load_settings

        settings = load_settings(Path("pubtrack.yaml"))
        print(settings.tracked_plugins, settings.polling_interval_minutes)
        ```

"""

from __future__ import annotations

import copy
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml

from pubtrack.exceptions import ConfigError
from pubtrack.logging import get_global_logger
from pubtrack.notifications import NotificationPreference

DEFAULT_SETTINGS_FILE = Path("pubtrack.yaml")

DEFAULT_SETTINGS: dict[str, Any] = {
    "tracked_plugins": [],
    "polling_interval_minutes": 10,
    "data_retention_days": 30,
    "max_history_entries": 1000,
    "notifications": {
        "enabled": True,
        "preference": NotificationPreference.BALLOON.value,
    },
    "api": {
        "base_url": "https://plugins.jetbrains.com/",
        "token": None,
        "timeout": 30,
    },
}

# -------------------------------
# Data types
# -------------------------------


@dataclass(frozen=True)
class Settings:
    """Effective pubtrack settings.

    Attributes:
        tracked_plugins: Plugin ids to poll, in order.
        polling_interval_minutes: Delay between scheduled cycles.
        data_retention_days: Age after which history is purged.
        max_history_entries: Cap on stored poll history entries.
        notifications_enabled: Master switch for notable-change events.
        notification_preference: How the user wants to be notified.
        api_base_url: Marketplace root URL.
        api_token: API token or "${ENV_VAR}" reference.
        api_timeout: HTTP timeout in seconds.

    """

    tracked_plugins: tuple[str, ...] = ()
    polling_interval_minutes: int = 10
    data_retention_days: int = 30
    max_history_entries: int = 1000
    notifications_enabled: bool = True
    notification_preference: NotificationPreference = NotificationPreference.BALLOON
    api_base_url: str = "https://plugins.jetbrains.com/"
    api_token: str | None = None
    api_timeout: int = 30

    @property
    def effective_preference(self) -> NotificationPreference:
        """Preference with the master switch applied."""
        if not self.notifications_enabled:
            return NotificationPreference.NONE
        return self.notification_preference


# -------------------------------
# YAML helpers
# -------------------------------


def _load_yaml_file(p: Path) -> Any:
    """Load a YAML file and return the parsed Python object.

    Raises:
        ConfigError: For unreadable files or invalid YAML.
    """
    try:
        with p.open("r", encoding="utf-8") as f:
            return yaml.safe_load(f)
    except yaml.YAMLError as err:
        raise ConfigError(f"Error parsing YAML: {p}: {err}") from err
    except OSError as err:
        raise ConfigError(f"Cannot read settings file {p}: {err}") from err


def _deep_merge_dicts(base: dict[str, Any], overlay: dict[str, Any]) -> dict[str, Any]:
    """Deep-merge two dicts with "overlay wins".

    Lists and scalars from the overlay replace the base value. Inputs are
    not mutated.
    """
    result: dict[str, Any] = dict(base)
    for k, v in overlay.items():
        if k in result and isinstance(result[k], dict) and isinstance(v, dict):
            result[k] = _deep_merge_dicts(result[k], v)
        else:
            result[k] = v
    return result


# -------------------------------
# Validation
# -------------------------------


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def validate_settings(data: dict[str, Any]) -> list[str]:
    """Check merged settings for invalid types and values.

    Args:
        data: Settings dict (usually defaults merged with the file).

    Returns:
        Human-readable error messages. Empty if the settings are valid.

    """
    errors: list[str] = []

    plugins = data.get("tracked_plugins")
    if not isinstance(plugins, list):
        errors.append("tracked_plugins: must be a list of plugin ids")
    else:
        for i, plugin_id in enumerate(plugins):
            if not isinstance(plugin_id, (str, int)) or isinstance(plugin_id, bool):
                errors.append(f"tracked_plugins[{i}]: must be a string or integer id")
            elif not str(plugin_id).strip():
                errors.append(f"tracked_plugins[{i}]: must not be empty")

    for key in ("polling_interval_minutes", "data_retention_days", "max_history_entries"):
        value = data.get(key)
        if not _is_int(value) or value < 1:
            errors.append(f"{key}: must be a positive integer, got {value!r}")

    notifications = data.get("notifications")
    if not isinstance(notifications, dict):
        errors.append("notifications: must be a mapping")
    else:
        if not isinstance(notifications.get("enabled"), bool):
            errors.append("notifications.enabled: must be true or false")
        preference = notifications.get("preference")
        valid = [p.value for p in NotificationPreference]
        if preference not in valid:
            errors.append(
                f"notifications.preference: must be one of {', '.join(valid)}, "
                f"got {preference!r}"
            )

    api = data.get("api")
    if not isinstance(api, dict):
        errors.append("api: must be a mapping")
    else:
        base_url = api.get("base_url")
        if not isinstance(base_url, str) or not base_url.startswith(("http://", "https://")):
            errors.append(f"api.base_url: must be an http(s) URL, got {base_url!r}")
        token = api.get("token")
        if token is not None and not isinstance(token, str):
            errors.append("api.token: must be a string")
        timeout = api.get("timeout")
        if not _is_int(timeout) or timeout < 1:
            errors.append(f"api.timeout: must be a positive integer, got {timeout!r}")

    return errors


# -------------------------------
# Public API
# -------------------------------


def load_settings(path: Path | None = None) -> Settings:
    """Load the effective settings.

    Steps:
        1. Read the YAML file (skipped when it does not exist).
        2. Deep-merge it over DEFAULT_SETTINGS.
        3. Validate the merged result.

    Args:
        path: Settings file. Defaults to pubtrack.yaml in the working
            directory.

    Returns:
        Frozen Settings.

    Raises:
        ConfigError: If the file is not valid YAML, is not a mapping, or
            holds invalid values.

    """
    logger = get_global_logger()
    path = path or DEFAULT_SETTINGS_FILE

    if not path.exists():
        logger.verbose("CONFIG", f"Settings file not found: {path}, using defaults")
        data: Any = {}
    else:
        logger.verbose("CONFIG", f"Loading settings: {path}")
        data = _load_yaml_file(path)
        if data is None:
            data = {}
        if not isinstance(data, dict):
            raise ConfigError(f"Top-level YAML must be a mapping (dict): {path}")

    merged = _deep_merge_dicts(copy.deepcopy(DEFAULT_SETTINGS), data)

    errors = validate_settings(merged)
    if errors:
        details = "\n".join(f"  - {e}" for e in errors)
        raise ConfigError(f"Invalid settings in {path}:\n{details}")

    notifications = merged["notifications"]
    api = merged["api"]
    settings = Settings(
        tracked_plugins=tuple(str(p).strip() for p in merged["tracked_plugins"]),
        polling_interval_minutes=merged["polling_interval_minutes"],
        data_retention_days=merged["data_retention_days"],
        max_history_entries=merged["max_history_entries"],
        notifications_enabled=notifications["enabled"],
        notification_preference=NotificationPreference(notifications["preference"]),
        api_base_url=api["base_url"],
        api_token=api["token"],
        api_timeout=api["timeout"],
    )
    logger.debug(
        "CONFIG",
        f"Tracking {len(settings.tracked_plugins)} plugin(s), "
        f"interval {settings.polling_interval_minutes}m, "
        f"retention {settings.data_retention_days}d",
    )
    return settings
