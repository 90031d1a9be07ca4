"""Safe wrapper around the external world-command executor."""

import threading
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FutureTimeoutError
from typing import Callable, Optional

import structlog

from .agent_prompts import command_error_feedback, unknown_command_feedback
from .errors import CommandExecutionError
from .interfaces import CommandExecutor
from .models import CommandFailure

logger = structlog.get_logger(__name__)

NO_OP_COMMANDS = frozenset({"", "idle"})


class CommandRunner:
    """Runs world commands with a timeout and normalised failures."""

    def __init__(self, executor: CommandExecutor, timeout: float = 10.0):
        """Initialize command runner.

        Args:
            executor: The world-side executor to wrap
            timeout: Bound on the synchronous part of one ``execute`` call
        """
        self.executor = executor
        self.timeout = timeout

    def run(
        self,
        command: str,
        on_failure: Callable[[CommandFailure], None],
    ) -> Optional[CommandFailure]:
        """Execute ``command``.

        Returns the failure when it was reported before ``execute`` returned.
        Failures reported later by an asynchronous executor only reach
        ``on_failure``.
        """
        command = command.strip()
        if command.lower() in NO_OP_COMMANDS:
            return None

        lock = threading.Lock()
        state: dict[str, object] = {"returned": False, "failure": None}

        def handle_error(error: Exception) -> None:
            failure = self._to_failure(command, error)
            with lock:
                late = state["returned"]
                if not late:
                    state["failure"] = failure
            if late:
                logger.warning(
                    "command_failed_late",
                    command=command,
                    reason=failure.reason,
                    unknown_command=failure.unknown_command,
                )
                on_failure(failure)

        try:
            self._execute_with_timeout(command, lambda: None, handle_error)
        except Exception as e:
            handle_error(e)

        with lock:
            state["returned"] = True
            failure = state["failure"]
        if failure is not None:
            logger.warning(
                "command_failed",
                command=command,
                reason=failure.reason,
                unknown_command=failure.unknown_command,
            )
            on_failure(failure)
        return failure

    def feedback_for(self, failure: CommandFailure) -> str:
        """Prompt text steering the next model call after ``failure``."""
        if failure.unknown_command:
            return unknown_command_feedback(failure.command, self.available_commands())
        return command_error_feedback(failure.command, failure.reason)

    def available_commands(self) -> list[str]:
        try:
            return list(self.executor.available_commands())
        except Exception as e:
            logger.warning("available_commands_failed", error=str(e))
            return []

    def _execute_with_timeout(
        self,
        command: str,
        on_success: Callable[[], None],
        on_error: Callable[[Exception], None],
    ) -> None:
        pool = ThreadPoolExecutor(max_workers=1, thread_name_prefix="command")
        try:
            future = pool.submit(self.executor.execute, command, on_success, on_error)
            try:
                future.result(timeout=self.timeout)
            except FutureTimeoutError:
                future.cancel()
                raise TimeoutError(f"Command '{command}' timed out after {self.timeout}s")
        finally:
            pool.shutdown(wait=False)

    @staticmethod
    def _to_failure(command: str, error: Exception) -> CommandFailure:
        if isinstance(error, CommandExecutionError):
            return CommandFailure(
                command=command, reason=error.reason, unknown_command=error.unknown_command
            )
        return CommandFailure(command=command, reason=str(error) or type(error).__name__)
