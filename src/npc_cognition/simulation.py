"""Deterministic multi-agent simulation harness for the scheduler and cognitive loops."""

from __future__ import annotations

import json
import tempfile
import threading
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import pandas as pd
import structlog

from .config import BaseConfig
from .executor_adapter import FailingCommandExecutor, RecordingChatSink
from .llm_client import ScriptedLanguageModel
from .models import AgentProfile, ConversationTurn, Position, Role, WorldState
from .repositories import Database
from .runtime import AgentService

logger = structlog.get_logger(__name__)

WORLD_COMMANDS = ["mine", "craft", "goto", "follow", "idle"]


class ManualClock:
    """Monotonic clock advanced explicitly by the caller."""

    def __init__(self, start: float = 0.0):
        self._now = start
        self._lock = threading.Lock()

    def __call__(self) -> float:
        with self._lock:
            return self._now

    def advance(self, seconds: float) -> float:
        with self._lock:
            self._now += seconds
            return self._now


@dataclass
class AgentRow:
    name: str
    dispatched: int
    succeeded: int
    chat_lines: int
    feedback_turns: int
    stored_turns: int


@dataclass
class CycleRow:
    cycle: int
    time: float
    dispatched: str
    examined: int
    skipped: int


def _scripted_turns(name: str, peer: str, fail_command: str) -> list[str]:
    return [
        json.dumps(
            {
                "thought": "Look around first.",
                "actions": ["mine:stone"],
                "message": f"Morning, {name} here.",
            }
        ),
        "```json\n"
        + json.dumps(
            {
                "actions": [f"sharedbook add {name.lower()}_notes 'Stone is plentiful near spawn'"],
                "message": "Writing that down for everyone.",
            }
        )
        + "\n```",
        json.dumps({"action": [fail_command], "message": ""}),
        "Just enjoying the view.",
        json.dumps(
            {
                "actions": [
                    f"mail send {peer} 'Meet me at the quarry'",
                    f"contact add {peer} friend 'Works the quarry' 0 0.6",
                ],
                "message": f"Sent a note to {peer}.",
            }
        ),
    ]


def _agent_model(name: str, peer: str, fail_command: str) -> ScriptedLanguageModel:
    script = _scripted_turns(name, peer, fail_command)
    state = {"turn": 0}

    def respond(window: list[ConversationTurn]) -> str:
        if len(window) == 1:
            return f"{name} spent earlier cycles mining and talking with {peer}."
        text = script[state["turn"] % len(script)]
        state["turn"] += 1
        return text

    return ScriptedLanguageModel(default=respond)


def _settle(service: AgentService, timeout: float = 10.0) -> None:
    """Wait for queued stimuli so every tick sees a quiet world."""
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if all(rt.loop.is_idle() for rt in service.roster.all()):
            return
        time.sleep(0.005)
    logger.warning("simulation_not_settled", timeout=timeout)


def _world_for(profile: AgentProfile) -> WorldState:
    offset = sum(ord(c) for c in profile.id) % 50
    return WorldState(
        position=Position(x=offset, y=64, z=-offset),
        status={"health": 20, "food": 18},
        inventory={"stone": 3},
        nearby_entities=["sheep"],
    )


def run_simulation(
    num_agents: int = 3,
    num_cycles: int = 12,
    cycle_interval: float = 1.0,
    min_interval: float = 2.0,
    history_length: int = 6,
    fail_command: str = "mine:bedrock",
    database_path: Optional[str | Path] = None,
) -> tuple[list[AgentRow], list[CycleRow]]:
    """Run ``num_cycles`` scheduler cycles over ``num_agents`` scripted agents."""
    with tempfile.TemporaryDirectory() as tmp:
        db_path = Path(database_path) if database_path else Path(tmp) / "simulation.db"
        config = BaseConfig(
            llm_processing_interval=cycle_interval,
            llm_min_interval=min_interval,
            conversation_history_length=history_length,
            database_path=str(db_path),
        )
        names = [f"Agent{i + 1}" for i in range(num_agents)]
        models = {
            name: _agent_model(name, names[(i + 1) % num_agents], fail_command)
            for i, name in enumerate(names)
        }
        clock = ManualClock()
        chat = RecordingChatSink()
        service = AgentService(
            config,
            command_executor=FailingCommandExecutor(
                failing_commands={fail_command}, commands=WORLD_COMMANDS
            ),
            chat_sink=chat,
            llm_factory=lambda backend_name, backend: models[backend_name],
            world_provider=_world_for,
            database=Database(db_path),
            clock=clock,
        )
        for i, name in enumerate(names):
            service.spawn(AgentProfile(id=f"agent-{i + 1}", name=name, backend=name))
        _settle(service)

        cycle_rows: list[CycleRow] = []
        for cycle_no in range(1, num_cycles + 1):
            report = service.tick()
            service.scheduler.wait_for_inflight(timeout=10.0)
            _settle(service)
            if report is not None:
                runtime = service.roster.get(report.dispatched) if report.dispatched else None
                cycle_rows.append(
                    CycleRow(
                        cycle=cycle_no,
                        time=report.timestamp,
                        dispatched=runtime.profile.name if runtime else "-",
                        examined=report.examined,
                        skipped=len(report.skipped),
                    )
                )
            clock.advance(cycle_interval)

        agent_rows: list[AgentRow] = []
        for runtime in service.roster.all():
            entry = service.scheduler.entry(runtime.profile.id)
            turns = runtime.loop.history.turns()
            agent_rows.append(
                AgentRow(
                    name=runtime.profile.name,
                    dispatched=entry.dispatch_count if entry else 0,
                    succeeded=entry.success_count if entry else 0,
                    chat_lines=len(chat.messages_from(runtime.profile.name)),
                    feedback_turns=sum(
                        1
                        for t in turns
                        if t.role == Role.USER and t.content.startswith("Command '")
                    ),
                    stored_turns=len(turns),
                )
            )
        service.shutdown()
        logger.info("simulation_finished", agents=num_agents, cycles=num_cycles)
        return agent_rows, cycle_rows


def print_simulation_report(
    num_agents: int = 3,
    num_cycles: int = 12,
    cycle_interval: float = 1.0,
    min_interval: float = 2.0,
    history_length: int = 6,
) -> None:
    """Run the simulation and print formatted tables."""
    agent_rows, cycle_rows = run_simulation(
        num_agents=num_agents,
        num_cycles=num_cycles,
        cycle_interval=cycle_interval,
        min_interval=min_interval,
        history_length=history_length,
    )
    df_cycles = pd.DataFrame(
        [
            {
                "Cycle": r.cycle,
                "Time": r.time,
                "Dispatched": r.dispatched,
                "Examined": r.examined,
                "Skipped": r.skipped,
            }
            for r in cycle_rows
        ]
    )
    df_agents = pd.DataFrame(
        [
            {
                "Agent": r.name,
                "Dispatched": r.dispatched,
                "Succeeded": r.succeeded,
                "ChatLines": r.chat_lines,
                "FeedbackTurns": r.feedback_turns,
                "StoredTurns": r.stored_turns,
            }
            for r in agent_rows
        ]
    ).sort_values(by="Dispatched", ascending=False)

    print("=== Scheduler Cycles ({} Cycles) ===".format(len(df_cycles)))
    print(df_cycles.to_string(index=False))
    print("\n=== Agent Statistics ===")
    print(df_agents.to_string(index=False))
