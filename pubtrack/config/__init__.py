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

"""Settings management for pubtrack.

Public API:

- load_settings: Load pubtrack.yaml merged over the built-in defaults
- validate_settings: Report invalid settings without raising
- Settings: Frozen effective settings

"""

from .loader import DEFAULT_SETTINGS, Settings, load_settings, validate_settings

__all__ = ["DEFAULT_SETTINGS", "Settings", "load_settings", "validate_settings"]
