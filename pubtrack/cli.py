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

"""Command-line interface for pubtrack.

This module provides the main CLI entry point for the pubtrack tool, offering
commands to poll the marketplace and to inspect the recorded history.

Commands:

    poll: Poll every tracked plugin once and save the result
    watch: Poll on the configured interval until Ctrl+C
    status: Show the last known status of every plugin
    timeline: Show the stage timeline of a plugin version
    metrics: Show poll metrics, trends and phase averages
    export: Write poll history and transitions as JSON
    clear: Remove all recorded history

Example:
    Poll once:
        ```bash
        $ pubtrack poll --config pubtrack.yaml
        ```

    Watch with verbose output:
        ```bash
        $ pubtrack watch --verbose
        ```

    Timeline of one version:
        ```bash
        $ pubtrack timeline 12345 --version 1.2.0
        ```

Exit Codes:

- 0: Success
- 1: Error (configuration, state file, or polling failure)

Note:
    The CLI uses argparse for command parsing.
    Each command has its own handler function (cmd_<command>).
    Verbose mode shows full tracebacks on errors for debugging.
    Debug mode implies verbose mode.

"""

from __future__ import annotations

import argparse
from datetime import UTC, datetime
import json
from pathlib import Path
import sys
import traceback

from pubtrack import __version__
from pubtrack.config import load_settings
from pubtrack.core import (
    DEFAULT_STATE_FILE,
    metrics_report,
    open_store,
    poll_plugins,
    watch_plugins,
)
from pubtrack.exceptions import PubTrackError
from pubtrack.logging import get_logger, set_global_logger
from pubtrack.models import PluginStatus
from pubtrack.notifications import notification_title
from pubtrack.results import OverallMetrics, PluginMetrics
from pubtrack.scheduler import SchedulerEvent
from pubtrack.timeline import TimelineBuilder

# -------------------------------
# Formatting helpers
# -------------------------------


def format_duration(milliseconds: int | None) -> str:
    """Render a duration the way people read it ("2d 3h", "4m 10s")."""
    if milliseconds is None:
        return "N/A"
    seconds = milliseconds // 1000
    minutes = seconds // 60
    hours = minutes // 60
    days = hours // 24
    if days > 0:
        return f"{days}d {hours % 24}h"
    if hours > 0:
        return f"{hours}h {minutes % 60}m"
    if minutes > 0:
        return f"{minutes}m {seconds % 60}s"
    return f"{seconds}s"


def format_timestamp(milliseconds: int | None) -> str:
    if milliseconds is None:
        return "N/A"
    moment = datetime.fromtimestamp(milliseconds / 1000, tz=UTC)
    return moment.strftime("%Y-%m-%d %H:%M:%S UTC")


def _print_event(event: SchedulerEvent) -> None:
    if event.kind == "notable-change" and event.status is not None:
        print(f"  [{notification_title(event.status).upper()}] {event.message}")
    elif event.kind == "fetch-error":
        print(f"  [X] {event.message}")
    elif event.kind in ("configuration-warning", "already-running"):
        print(f"  [WARNING] {event.message}")
    else:
        print(f"  [INFO] {event.message}")


def _print_status_table(statuses: list[PluginStatus]) -> None:
    print(f"{'Plugin':<20} {'Version':<14} {'Stage':<14} Last Checked")
    print("-" * 70)
    for status in statuses:
        stage = "Error" if status.failed else status.stage.label
        print(
            f"{status.display_name[:20]:<20} {status.latest_version[:14] or '-':<14} "
            f"{stage:<14} {format_timestamp(status.last_checked_at)}"
        )
        if status.failed:
            print(f"    {status.error_message}")


def _report_error(args: argparse.Namespace, err: Exception) -> int:
    print(f"Error: {err}")
    if args.verbose or args.debug:
        traceback.print_exc()
    return 1


def _configure_logger(args: argparse.Namespace, timestamps: bool = False) -> None:
    logger = get_logger(verbose=args.verbose, debug=args.debug, timestamps=timestamps)
    set_global_logger(logger)


# -------------------------------
# Command handlers
# -------------------------------


def cmd_poll(args: argparse.Namespace) -> int:
    """Handler for 'pubtrack poll' command.

    Polls every tracked plugin once, records the results in the state file,
    and prints the statuses plus any notable changes.

    Args:
        args: Parsed command-line arguments.

    Returns:
        Exit code (0 for success, 1 for failure). Individual fetch errors do
        not fail the command; they are reported per plugin.

    """
    _configure_logger(args)

    try:
        result = poll_plugins(
            args.config,
            args.state_file,
            plugin_ids=args.plugins or None,
            listener=_print_event,
        )
    except PubTrackError as err:
        return _report_error(args, err)

    print()
    print("=" * 70)
    print("POLL RESULTS")
    print("=" * 70)
    _print_status_table(result.statuses)
    print("=" * 70)
    print(f"Transitions:     {len(result.transitions)}")
    print(f"Errors:          {result.errors}")
    print()
    print("[SUCCESS] Poll cycle complete.")
    return 0


def cmd_watch(args: argparse.Namespace) -> int:
    """Handler for 'pubtrack watch' command.

    Polls on the configured interval until interrupted with Ctrl+C. State is
    saved after every cycle.
    """
    _configure_logger(args, timestamps=True)

    print("Watching tracked plugins. Press Ctrl+C to stop.")
    print()
    try:
        cycles = watch_plugins(args.config, args.state_file, listener=_print_event)
    except KeyboardInterrupt:
        print()
        print("Interrupted.")
        return 0
    except PubTrackError as err:
        return _report_error(args, err)

    print(f"[SUCCESS] Completed {cycles} poll cycle(s).")
    return 0


def cmd_status(args: argparse.Namespace) -> int:
    """Handler for 'pubtrack status' command."""
    _configure_logger(args)

    try:
        settings = load_settings(args.config)
        _, store = open_store(settings, args.state_file)
    except PubTrackError as err:
        return _report_error(args, err)

    statuses = [status for _, status in sorted(store.last_known_statuses().items())]
    if not statuses:
        print("No plugin status recorded yet. Run 'pubtrack poll' first.")
        return 0

    print("=" * 70)
    print("LAST KNOWN STATUS")
    print("=" * 70)
    _print_status_table(statuses)
    print("=" * 70)
    return 0


def cmd_timeline(args: argparse.Namespace) -> int:
    """Handler for 'pubtrack timeline' command.

    Shows the milestones and phase durations of a plugin version. Without
    --version every recorded version of the plugin is shown.
    """
    _configure_logger(args)

    try:
        settings = load_settings(args.config)
        _, store = open_store(settings, args.state_file)
    except PubTrackError as err:
        return _report_error(args, err)

    builder = TimelineBuilder(store)
    if args.version:
        timeline = builder.build(args.plugin, args.version)
        timelines = [timeline] if timeline is not None else []
    else:
        timelines = builder.timelines(args.plugin)

    if not timelines:
        print(f"No transitions recorded for plugin {args.plugin}.")
        return 1

    for timeline in timelines:
        print("=" * 70)
        print(f"TIMELINE {timeline.plugin_id} {timeline.version or '(no version)'}")
        print("=" * 70)
        for transition in sorted(timeline.transitions, key=lambda t: t.timestamp):
            print(
                f"  {format_timestamp(transition.timestamp)}  "
                f"{transition.from_stage.label} -> {transition.to_stage.label}  "
                f"({format_duration(transition.duration_in_previous_stage_ms)})"
            )
        print()
        for label, duration in builder.phase_durations(timeline).items():
            print(f"  {label + ':':<30} {format_duration(duration)}")
        print(f"  {'Current Stage:':<30} {timeline.current_stage.label}")
        print()
    return 0


def _print_plugin_metrics(metrics: PluginMetrics, prediction: int | None) -> None:
    print(f"Plugin:          {metrics.plugin_id}")
    print(f"Polls:           {metrics.total_submissions}")
    print(f"Success Rate:    {metrics.success_rate:.0%}")
    print(f"Average:         {format_duration(metrics.average_ms)}")
    print(f"Fastest:         {format_duration(metrics.fastest_ms)}")
    print(f"Slowest:         {format_duration(metrics.slowest_ms)}")
    print(f"Last Poll:       {format_timestamp(metrics.last_timestamp or None)}")
    print(f"Predicted Next:  {format_duration(prediction)}")


def _print_overall_metrics(metrics: OverallMetrics) -> None:
    print(f"Total Polls:     {metrics.total_submissions}")
    print(f"Successful:      {metrics.successful_submissions}")
    print(f"Success Rate:    {metrics.success_rate:.0%}")
    print(f"Average:         {format_duration(int(metrics.average_processing_time_ms))}")


def cmd_metrics(args: argparse.Namespace) -> int:
    """Handler for 'pubtrack metrics' command."""
    _configure_logger(args)

    try:
        settings = load_settings(args.config)
        _, store = open_store(settings, args.state_file)
    except PubTrackError as err:
        return _report_error(args, err)

    report = metrics_report(store, plugin_id=args.plugin, days=args.days)

    print("=" * 70)
    print("METRICS")
    print("=" * 70)
    if args.plugin:
        _print_plugin_metrics(report["plugin"], report["prediction_ms"])
    else:
        _print_overall_metrics(report["overall"])
    print()

    print("Phase Averages:")
    for label, duration in report["phase_averages"].items():
        print(f"  {label + ':':<30} {format_duration(duration)}")
    print()

    distribution = report["distribution"]
    if distribution:
        print("Status Distribution:")
        for stage, count in distribution.items():
            print(f"  {stage.label + ':':<30} {count}")
        print()

    trend = report["trend"]
    if trend:
        print(f"Polls per Day (last {args.days} days):")
        for day, count in trend:
            print(f"  {format_timestamp(day)[:10]}  {count}")
    print("=" * 70)
    return 0


def cmd_export(args: argparse.Namespace) -> int:
    """Handler for 'pubtrack export' command.

    Writes poll history and transitions as JSON to --output, or to stdout.
    """
    _configure_logger(args)

    try:
        settings = load_settings(args.config)
        _, store = open_store(settings, args.state_file)
    except PubTrackError as err:
        return _report_error(args, err)

    document = json.dumps(store.export(), indent=2, sort_keys=True)
    if args.output is None:
        print(document)
        return 0

    output = Path(args.output)
    output.parent.mkdir(parents=True, exist_ok=True)
    output.write_text(document + "\n", encoding="utf-8")
    print(f"[SUCCESS] Exported history to {output}")
    return 0


def cmd_clear(args: argparse.Namespace) -> int:
    """Handler for 'pubtrack clear' command."""
    _configure_logger(args)

    try:
        settings = load_settings(args.config)
        tracker, store = open_store(settings, args.state_file)
        store.clear()
        tracker.save(store)
    except PubTrackError as err:
        return _report_error(args, err)

    print(f"[SUCCESS] Cleared all history in {args.state_file}")
    return 0


# -------------------------------
# Parser
# -------------------------------


def _add_common_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Settings YAML file (default: ./pubtrack.yaml)",
    )
    parser.add_argument(
        "--state-file",
        type=Path,
        default=DEFAULT_STATE_FILE,
        help=f"State file for history and transitions (default: {DEFAULT_STATE_FILE})",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Show progress and high-level status updates",
    )
    parser.add_argument(
        "-d",
        "--debug",
        action="store_true",
        help="Show detailed debugging output (implies --verbose)",
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="pubtrack",
        description="pubtrack - track marketplace plugin verification and publish times",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"pubtrack {__version__}",
    )

    subparsers = parser.add_subparsers(
        dest="command",
        help="Available commands",
        required=True,
    )

    # 'poll' command
    parser_poll = subparsers.add_parser(
        "poll",
        help="Poll every tracked plugin once",
        description="Fetch the latest update of each tracked plugin and record stage changes.",
    )
    parser_poll.add_argument(
        "plugins",
        nargs="*",
        help="Plugin ids to poll instead of tracked_plugins from the settings",
    )
    _add_common_arguments(parser_poll)
    parser_poll.set_defaults(func=cmd_poll)

    # 'watch' command
    parser_watch = subparsers.add_parser(
        "watch",
        help="Poll on the configured interval until Ctrl+C",
        description="Run poll cycles every polling_interval_minutes and save state after each.",
    )
    _add_common_arguments(parser_watch)
    parser_watch.set_defaults(func=cmd_watch)

    # 'status' command
    parser_status = subparsers.add_parser(
        "status",
        help="Show the last known status of every plugin",
    )
    _add_common_arguments(parser_status)
    parser_status.set_defaults(func=cmd_status)

    # 'timeline' command
    parser_timeline = subparsers.add_parser(
        "timeline",
        help="Show the stage timeline of a plugin",
        description="Show milestones and phase durations of one or all versions of a plugin.",
    )
    parser_timeline.add_argument("plugin", help="Plugin id")
    parser_timeline.add_argument(
        "--version",
        dest="version",
        default=None,
        help="Only show this version (default: every recorded version)",
    )
    _add_common_arguments(parser_timeline)
    parser_timeline.set_defaults(func=cmd_timeline)

    # 'metrics' command
    parser_metrics = subparsers.add_parser(
        "metrics",
        help="Show poll metrics, trends and phase averages",
    )
    parser_metrics.add_argument(
        "plugin",
        nargs="?",
        default=None,
        help="Plugin id (default: all plugins)",
    )
    parser_metrics.add_argument(
        "--days",
        type=int,
        default=30,
        help="Trailing window for the per-day trend (default: 30)",
    )
    _add_common_arguments(parser_metrics)
    parser_metrics.set_defaults(func=cmd_metrics)

    # 'export' command
    parser_export = subparsers.add_parser(
        "export",
        help="Export poll history and transitions as JSON",
    )
    parser_export.add_argument(
        "--output",
        "-o",
        default=None,
        help="Output file (default: stdout)",
    )
    _add_common_arguments(parser_export)
    parser_export.set_defaults(func=cmd_export)

    # 'clear' command
    parser_clear = subparsers.add_parser(
        "clear",
        help="Remove all recorded history",
    )
    _add_common_arguments(parser_clear)
    parser_clear.set_defaults(func=cmd_clear)

    return parser


def main(argv: list[str] | None = None) -> None:
    """Main entry point for the pubtrack CLI.

    This function is registered as the 'pubtrack' console script in
    pyproject.toml.
    """
    parser = build_parser()
    args = parser.parse_args(argv)
    exit_code = args.func(args)
    sys.exit(exit_code)


if __name__ == "__main__":
    main()
