"""Command-line entry point: drive live agents against a configured LLM backend."""

from __future__ import annotations

import argparse
import sys

from npc_cognition.config import load_config
from npc_cognition.executor_adapter import LoggingChatSink, StubCommandExecutor
from npc_cognition.logging import configure_logging
from npc_cognition.models import AgentProfile
from npc_cognition.runtime import AgentService
from npc_cognition.simulation import WORLD_COMMANDS
from npc_cognition.tick_driver import TickDriver


def build_service(config_path: str | None) -> AgentService:
    """Instantiate a service backed by the configured model endpoints."""
    config = load_config(config_path)
    return AgentService(
        config,
        command_executor=StubCommandExecutor(commands=WORLD_COMMANDS),
        chat_sink=LoggingChatSink(),
    )


def parse_args(argv: list[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Run LLM-driven agents in a stub world.")
    parser.add_argument(
        "names",
        nargs="*",
        default=["Alex", "Sam"],
        help="Display names of the agents to spawn.",
    )
    parser.add_argument("--config", default=None, help="Path to a JSON config file.")
    parser.add_argument("--ticks", type=int, default=200, help="World ticks to run.")
    parser.add_argument(
        "--tick-interval", type=float, default=0.05, help="Seconds between world ticks."
    )
    parser.add_argument("--log-level", default="INFO")
    parser.add_argument("--json-logs", action="store_true")
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    args = parse_args(sys.argv[1:] if argv is None else argv)
    configure_logging(args.log_level, json_output=args.json_logs)

    service = build_service(args.config)
    for i, name in enumerate(args.names):
        service.spawn(AgentProfile(id=f"agent-{i + 1}", name=name))

    driver = TickDriver(service.tick, tick_interval=args.tick_interval, max_ticks=args.ticks)
    try:
        with driver:
            driver.join(timeout=args.ticks * args.tick_interval + 5)
    except KeyboardInterrupt:
        pass
    finally:
        service.shutdown()
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
