"""In-process world collaborators: stub command executors and chat sinks."""

import threading
from typing import Callable, Iterable, Optional

import structlog

from .errors import CommandExecutionError
from .interfaces import ChatSink, CommandExecutor
from .models import AgentProfile

logger = structlog.get_logger(__name__)


class StubCommandExecutor(CommandExecutor):
    """Stub executor for testing - accepts any known command and records it."""

    def __init__(self, commands: Optional[Iterable[str]] = None):
        """Initialize with the command names the world understands.

        ``None`` accepts every command.
        """
        self.commands = list(commands) if commands is not None else None
        self.executed: list[str] = []
        self.call_count: dict[str, int] = {}
        self._lock = threading.Lock()

    def execute(
        self,
        command: str,
        on_success: Callable[[], None],
        on_error: Callable[[Exception], None],
    ) -> None:
        name = command.split()[0] if command.split() else command
        with self._lock:
            self.executed.append(command)
            self.call_count[name] = self.call_count.get(name, 0) + 1
        if self.commands is not None and name.split(":")[0] not in self.commands:
            on_error(CommandExecutionError(f"Unknown command: {name}", unknown_command=True))
            return
        on_success()

    def available_commands(self) -> list[str]:
        return list(self.commands or [])


class FailingCommandExecutor(StubCommandExecutor):
    """Executor that reports a failure for specific commands."""

    def __init__(
        self,
        failing_commands: Optional[set[str]] = None,
        commands: Optional[Iterable[str]] = None,
        reason: str = "command failed",
    ):
        """Initialize with set of commands that should fail."""
        super().__init__(commands=commands)
        self.failing_commands = failing_commands or set()
        self.reason = reason

    def execute(
        self,
        command: str,
        on_success: Callable[[], None],
        on_error: Callable[[Exception], None],
    ) -> None:
        if command in self.failing_commands:
            with self._lock:
                self.executed.append(command)
            on_error(CommandExecutionError(f"{self.reason}: {command}"))
            return
        super().execute(command, on_success, on_error)


class RecordingChatSink(ChatSink):
    """Keeps every spoken line, for tests and the simulation report."""

    def __init__(self):
        self.lines: list[tuple[str, str]] = []
        self.debug_lines: list[tuple[str, str]] = []
        self._lock = threading.Lock()

    def say(self, agent: AgentProfile, message: str) -> None:
        with self._lock:
            self.lines.append((agent.name, message))

    def debug(self, agent: AgentProfile, message: str) -> None:
        with self._lock:
            self.debug_lines.append((agent.name, message))

    def messages_from(self, agent_name: str) -> list[str]:
        with self._lock:
            return [text for name, text in self.lines if name == agent_name]


class LoggingChatSink(ChatSink):
    """Chat sink that writes speech to the structured log."""

    def say(self, agent: AgentProfile, message: str) -> None:
        logger.info("agent_said", agent_id=agent.id, agent_name=agent.name, message=message)

    def debug(self, agent: AgentProfile, message: str) -> None:
        logger.debug("agent_debug", agent_id=agent.id, agent_name=agent.name, message=message)
