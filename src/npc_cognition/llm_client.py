"""Language model clients: an OpenAI-compatible HTTP client and a scripted double."""

import json
import threading
from typing import Any, Callable, Iterable, Optional, Sequence, Union

import requests
import structlog

from .config import LLMBackendConfig
from .errors import LanguageModelError
from .interfaces import LanguageModelClient
from .models import ConversationTurn, ModelReply, ToolCall

logger = structlog.get_logger(__name__)


class OpenAICompatibleClient(LanguageModelClient):
    """
    Client for any server exposing ``/chat/completions``.

    Works with OpenAI, vLLM or Ollama's OpenAI compatibility layer.
    """

    def __init__(self, config: LLMBackendConfig, session: Optional[requests.Session] = None):
        self.config = config
        self.session = session or requests.Session()

    def chat(self, messages: Sequence[ConversationTurn]) -> ModelReply:
        payload = {
            "model": self.config.model,
            "messages": [{"role": m.role.value, "content": m.content} for m in messages],
            "temperature": self.config.temperature,
            "stream": False,
        }
        url = f"{self.config.base_url}/chat/completions"
        try:
            response = self.session.post(
                url,
                json=payload,
                headers={"Authorization": f"Bearer {self.config.api_key}"},
                timeout=self.config.timeout,
            )
        except requests.RequestException as e:
            raise LanguageModelError(f"LLM request to {url} failed: {e}") from e

        if response.status_code != 200:
            raise LanguageModelError(
                f"LLM API error: {response.status_code} - {response.text[:500]}"
            )

        try:
            body = response.json()
            message = body["choices"][0]["message"]
        except (ValueError, KeyError, IndexError, TypeError) as e:
            raise LanguageModelError(f"Unexpected LLM response body: {e}") from e

        return ModelReply(
            text=message.get("content") or "",
            tool_calls=self._parse_tool_calls(message.get("tool_calls") or []),
        )

    @staticmethod
    def _parse_tool_calls(raw_calls: Iterable[dict[str, Any]]) -> list[ToolCall]:
        calls = []
        for raw in raw_calls:
            function = raw.get("function") or {}
            name = function.get("name")
            if not name:
                continue
            arguments = function.get("arguments") or {}
            if isinstance(arguments, str):
                try:
                    arguments = json.loads(arguments) if arguments.strip() else {}
                except json.JSONDecodeError:
                    logger.warning("tool_call_arguments_unparsed", tool=name)
                    arguments = {"command": arguments}
            if not isinstance(arguments, dict):
                arguments = {"value": arguments}
            calls.append(ToolCall(name=name, arguments=arguments))
        return calls


ScriptedItem = Union[str, ModelReply, Exception, Callable[[list[ConversationTurn]], Any]]


class ScriptedLanguageModel(LanguageModelClient):
    """Replays canned replies and records every window it was sent.

    Items may be strings, ``ModelReply`` objects, exceptions (raised) or
    callables receiving the window. Once the script runs out, ``default``
    is returned.
    """

    def __init__(self, replies: Optional[Iterable[ScriptedItem]] = None, default: ScriptedItem = ""):
        self._replies = list(replies or [])
        self.default = default
        self.calls: list[list[ConversationTurn]] = []
        self._lock = threading.Lock()

    def queue(self, *replies: ScriptedItem) -> None:
        with self._lock:
            self._replies.extend(replies)

    def chat(self, messages: Sequence[ConversationTurn]) -> ModelReply:
        window = list(messages)
        with self._lock:
            self.calls.append(window)
            item = self._replies.pop(0) if self._replies else self.default
        if callable(item) and not isinstance(item, (ModelReply, Exception)):
            item = item(window)
        if isinstance(item, Exception):
            raise item
        if isinstance(item, ModelReply):
            return item
        return ModelReply(text=str(item))
