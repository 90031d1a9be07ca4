"""Demo CLI: run the scripted multi-agent simulation and print its report."""

from __future__ import annotations

import argparse
import sys

from .logging import configure_logging
from .simulation import print_simulation_report


def parse_args(argv: list[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Simulate scripted agents driven by the cognition scheduler."
    )
    parser.add_argument("--agents", type=int, default=3, help="Number of agents to spawn.")
    parser.add_argument("--cycles", type=int, default=12, help="Scheduler cycles to run.")
    parser.add_argument(
        "--cycle-interval", type=float, default=1.0, help="Seconds between scheduler cycles."
    )
    parser.add_argument(
        "--min-interval",
        type=float,
        default=2.0,
        help="Minimum seconds between two successful cycles of one agent.",
    )
    parser.add_argument(
        "--history-length",
        type=int,
        default=6,
        help="Stored turns per agent before summarization kicks in.",
    )
    parser.add_argument("--log-level", default="WARNING", help="Log level (DEBUG, INFO, ...).")
    parser.add_argument("--json-logs", action="store_true", help="Emit logs as JSON lines.")
    args = parser.parse_args(argv)
    if args.agents < 1:
        parser.error("--agents must be at least 1")
    if args.history_length < 3:
        parser.error("--history-length must be at least 3")
    return args


def main(argv: list[str] | None = None) -> int:
    """Main CLI entry point."""
    args = parse_args(sys.argv[1:] if argv is None else argv)
    configure_logging(args.log_level, json_output=args.json_logs)
    print_simulation_report(
        num_agents=args.agents,
        num_cycles=args.cycles,
        cycle_interval=args.cycle_interval,
        min_interval=args.min_interval,
        history_length=args.history_length,
    )
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
