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

"""Console output for pubtrack commands and the background poller.

Library modules log through get_global_logger() with a short prefix naming
the area (POLL, FETCH, STORE, STATE, CONFIG). The global logger is silent
until the CLI installs one, so importing pubtrack never prints. `pubtrack
watch` turns on timestamps because its lines come from the poller thread
and span hours.
"""

from __future__ import annotations

from datetime import datetime
from typing import Protocol


class Logger(Protocol):
    """Anything the poller and commands can report progress to."""

    def step(self, step: int, total: int, message: str) -> None: ...

    def verbose(self, prefix: str, message: str) -> None: ...

    def debug(self, prefix: str, message: str) -> None: ...


class DefaultLogger:
    """Prints to stdout. Debug implies verbose; steps always print."""

    def __init__(
        self, verbose: bool = False, debug: bool = False, timestamps: bool = False
    ) -> None:
        self._verbose = verbose or debug
        self._debug = debug
        self._timestamps = timestamps

    def _emit(self, text: str) -> None:
        if self._timestamps:
            text = f"{datetime.now().strftime('%H:%M:%S')} {text}"
        print(text)

    def step(self, step: int, total: int, message: str) -> None:
        self._emit(f"[{step}/{total}] {message}")

    def verbose(self, prefix: str, message: str) -> None:
        if self._verbose:
            self._emit(f"[{prefix}] {message}")

    def debug(self, prefix: str, message: str) -> None:
        if self._debug:
            self._emit(f"[{prefix}] {message}")


class SilentLogger:
    """Drops everything. The library default."""

    def step(self, step: int, total: int, message: str) -> None:
        pass

    def verbose(self, prefix: str, message: str) -> None:
        pass

    def debug(self, prefix: str, message: str) -> None:
        pass


_global_logger: Logger = SilentLogger()


def get_logger(
    verbose: bool = False, debug: bool = False, timestamps: bool = False
) -> Logger:
    """Build the stdout logger used by the CLI."""
    return DefaultLogger(verbose=verbose, debug=debug, timestamps=timestamps)


def get_global_logger() -> Logger:
    """Return the logger library modules write to."""
    return _global_logger


def set_global_logger(logger: Logger) -> None:
    """Replace the logger library modules write to.

    The poller thread reads it on every cycle, so set it before calling
    PollScheduler.schedule().
    """
    global _global_logger
    _global_logger = logger
