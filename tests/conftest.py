"""Shared pytest fixtures."""

import sys
import time
from pathlib import Path

import pytest

# Add src directory to Python path
src_path = Path(__file__).parent.parent / "src"
if str(src_path) not in sys.path:
    sys.path.insert(0, str(src_path))

from npc_cognition.config import BaseConfig
from npc_cognition.executor_adapter import RecordingChatSink, StubCommandExecutor
from npc_cognition.llm_client import ScriptedLanguageModel
from npc_cognition.repositories import Database
from npc_cognition.runtime import AgentService
from npc_cognition.simulation import ManualClock

WORLD_COMMANDS = ["mine", "craft", "goto", "idle"]


def wait_until(predicate, timeout: float = 5.0, interval: float = 0.005) -> bool:
    """Poll ``predicate`` until it holds or ``timeout`` elapses."""
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(interval)
    return predicate()


@pytest.fixture
def database(tmp_path):
    return Database(tmp_path / "test.db")


@pytest.fixture
def config(tmp_path):
    return BaseConfig(
        database_path=str(tmp_path / "test.db"),
        llm_processing_interval=1.0,
        llm_min_interval=2.0,
        conversation_history_length=6,
        shutdown_timeout=2.0,
        command_timeout=2.0,
    )


@pytest.fixture
def clock():
    return ManualClock()


@pytest.fixture
def chat_sink():
    return RecordingChatSink()


@pytest.fixture
def executor():
    return StubCommandExecutor(commands=WORLD_COMMANDS)


@pytest.fixture
def model():
    return ScriptedLanguageModel()


@pytest.fixture
def make_service(config, database, executor, chat_sink, model, clock):
    """Factory building an AgentService; keyword overrides patch the config."""
    created = []

    def factory(command_executor=None, **overrides):
        service = AgentService(
            config.model_copy(update=overrides),
            command_executor=command_executor or executor,
            chat_sink=chat_sink,
            llm_factory=lambda name, backend: model,
            database=database,
            clock=clock,
        )
        created.append(service)
        return service

    yield factory
    for service in created:
        service.shutdown()


@pytest.fixture
def service(make_service):
    return make_service()
