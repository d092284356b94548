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

"""Marketplace access for pubtrack.

The scheduler talks to the marketplace through the UpdateSource protocol.
MarketplaceClient is the bundled HTTP implementation built on requests.

Public API:

- UpdateSource: Protocol every update source implements
- MarketplaceClient: requests-based client for the updates endpoint

"""

from .base import UpdateSource
from .client import MarketplaceClient

__all__ = ["UpdateSource", "MarketplaceClient"]
