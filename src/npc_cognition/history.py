"""
Per-agent conversation history with rolling summarization.

The history is an append-only log of user and assistant turns. The system
prompt is either regenerated on every read (``fresh``) or kept as a single
stored turn (``stored``). Once the log reaches ``max_history_length`` turns,
the oldest third is folded into one assistant-role summary turn placed where
the originals began.
"""

import json
import threading
from typing import Callable, Optional

import structlog

from .agent_prompts import build_summary_prompt
from .interfaces import LanguageModelClient
from .models import ConversationTurn, Role, SystemPromptPolicy
from .repositories import ConversationRepository

logger = structlog.get_logger(__name__)

EMPTY_MESSAGE_PLACEHOLDER = "[no message]"
SUMMARY_PREFIX = "Summary of earlier conversation: "


def extract_message(content: str) -> str:
    """Return the spoken part of a stored assistant turn.

    Structured turns yield their ``message`` field (or a placeholder when it
    is empty); anything that is not a JSON object is returned unchanged.
    """
    try:
        payload = json.loads(content)
    except (json.JSONDecodeError, TypeError):
        return content
    if not isinstance(payload, dict) or "message" not in payload:
        return content
    message = payload.get("message")
    if not isinstance(message, str) or not message.strip():
        return EMPTY_MESSAGE_PLACEHOLDER
    return message


class ConversationHistory:
    """Durable, ordered turn log for one agent."""

    def __init__(
        self,
        agent_id: str,
        repository: ConversationRepository,
        llm: LanguageModelClient,
        system_prompt_factory: Callable[[], str],
        max_history_length: int = 12,
        policy: SystemPromptPolicy = SystemPromptPolicy.FRESH,
    ):
        if max_history_length < 6:
            raise ValueError("max_history_length must be at least 6")
        self.agent_id = agent_id
        self.repository = repository
        self.llm = llm
        self.system_prompt_factory = system_prompt_factory
        self.max_history_length = max_history_length
        self.policy = policy
        self._lock = threading.RLock()

    def append(self, role: Role, content: str) -> Optional[ConversationTurn]:
        """Persist one turn.

        System turns are dropped under the ``fresh`` policy and replace the
        single stored system turn under ``stored``.
        """
        with self._lock:
            if role == Role.SYSTEM:
                if self.policy == SystemPromptPolicy.FRESH:
                    return None
                return self.repository.replace_system_turn(self.agent_id, content)
            turn = ConversationTurn(agent_id=self.agent_id, role=role, content=content)
            return self.repository.append(turn)

    def set_system_prompt(self, content: Optional[str] = None) -> None:
        """Store the current system prompt; a no-op under the ``fresh`` policy."""
        if self.policy == SystemPromptPolicy.STORED:
            self.append(Role.SYSTEM, content if content is not None else self.system_prompt_factory())

    def system_turn(self) -> ConversationTurn:
        if self.policy == SystemPromptPolicy.STORED:
            stored = self.repository.get_system_turn(self.agent_id)
            if stored is not None:
                return stored
            return self.repository.replace_system_turn(
                self.agent_id, self.system_prompt_factory()
            )
        return ConversationTurn(
            agent_id=self.agent_id,
            role=Role.SYSTEM,
            content=self.system_prompt_factory(),
            timestamp=0,
        )

    def turns(self) -> list[ConversationTurn]:
        """All stored non-system turns, raw, oldest first."""
        return self.repository.select_all(self.agent_id)

    def count(self) -> int:
        return len(self.turns())

    def window(self, max_turns: Optional[int] = None) -> list[ConversationTurn]:
        """System turn followed by up to ``max_turns`` recent turns in order.

        Assistant turns are replayed as their message only.
        """
        limit = max_turns if max_turns is not None else self.max_history_length
        with self._lock:
            recent = self.repository.select_window(self.agent_id, limit)
            replayed = [
                turn.model_copy(update={"content": extract_message(turn.content)})
                if turn.role == Role.ASSISTANT
                else turn
                for turn in recent
            ]
            return [self.system_turn(), *replayed]

    def last_message(self) -> str:
        """Text of the most recently stored turn, message-only for assistant turns."""
        last = self.repository.last_turn(self.agent_id)
        if last is None:
            return ""
        if last.role == Role.ASSISTANT:
            message = extract_message(last.content)
            return "" if message == EMPTY_MESSAGE_PLACEHOLDER else message
        return last.content

    def perform_summarization_if_needed(self) -> bool:
        """Fold the oldest third of the log into one summary turn.

        Returns True when a summary replaced stored turns. Callers run this
        on the agent's own worker, before building a window.
        """
        with self._lock:
            turns = self.turns()
            if len(turns) < self.max_history_length:
                return False
            remove_count = self.max_history_length // 3
            if remove_count == 0 or len(turns) < remove_count + 1:
                return False

            to_summarize = turns[:remove_count]
            conversation = "\n".join(
                f"{turn.role.value}: {turn.content}" for turn in to_summarize
            )
            prompt = ConversationTurn(
                agent_id=self.agent_id,
                role=Role.USER,
                content=build_summary_prompt(conversation),
            )
            reply = self.llm.chat([prompt])
            summary_text = reply.text.strip() or conversation

            first = to_summarize[0]
            summary = ConversationTurn(
                agent_id=self.agent_id,
                role=Role.ASSISTANT,
                content=f"{SUMMARY_PREFIX}{summary_text}",
                timestamp=first.timestamp,
                seq=first.seq,
            )
            self.repository.replace([turn.id for turn in to_summarize], summary)
            logger.info(
                "history_summarized",
                agent_id=self.agent_id,
                removed=remove_count,
                remaining=len(turns) - remove_count + 1,
            )
            return True

    def clear(self) -> None:
        self.repository.delete_by_agent(self.agent_id)
