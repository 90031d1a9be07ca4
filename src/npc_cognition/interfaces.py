"""Abstract collaborator contracts consumed by the cognition core."""

from abc import ABC, abstractmethod
from typing import Callable, Optional, Sequence

from .models import AgentProfile, ContextSnapshot, ConversationTurn, ModelReply


class LanguageModelClient(ABC):
    """Synchronous request/response access to a language model backend."""

    @abstractmethod
    def chat(self, messages: Sequence[ConversationTurn]) -> ModelReply:
        """Send an ordered message window and return the generated reply.

        Raises:
            LanguageModelError: backend unreachable, timed out or returned garbage.
        """
        pass


class ContextBuilder(ABC):
    """Builds the world-context block for one agent."""

    @abstractmethod
    def build_context(self, agent: AgentProfile) -> ContextSnapshot:
        """Return a read-only snapshot of the agent's surroundings and memory."""
        pass


class CommandExecutor(ABC):
    """Executes world commands on behalf of an agent."""

    @abstractmethod
    def execute(
        self,
        command: str,
        on_success: Callable[[], None],
        on_error: Callable[[Exception], None],
    ) -> None:
        """Run a command, reporting the outcome through exactly one callback.

        ``on_error`` receives a ``CommandExecutionError`` whose ``unknown_command``
        flag tells whether the command name itself was unrecognised.
        """
        pass

    @abstractmethod
    def available_commands(self) -> list[str]:
        """Names of the commands currently available in the world."""
        pass


class ChatSink(ABC):
    """Downstream sink for public speech."""

    @abstractmethod
    def say(self, agent: AgentProfile, message: str) -> None:
        """Emit a chat line spoken by ``agent``."""
        pass

    def debug(self, agent: AgentProfile, message: str) -> None:
        """Surface a diagnostic line; ignored unless a sink cares."""
        return None


class PeerNotifier(ABC):
    """Lets one agent's action land in another agent's history."""

    @abstractmethod
    def update_state(self, target_agent_id: str, text: str) -> bool:
        """Append ``text`` as a user turn for the target agent, without a model call."""
        pass

    @abstractmethod
    def find_agent(self, name: str) -> Optional[AgentProfile]:
        """Look up a live agent by display name (case-insensitive)."""
        pass

    @abstractmethod
    def send_direct_message(self, from_agent_id: str, to_agent_id: str, text: str) -> None:
        """Deliver durable mail and notify the recipient."""
        pass
