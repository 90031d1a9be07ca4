"""Parse raw model text into a structured (thought, actions, message) response."""

import json
import re
import shlex
from typing import Any, Callable, Iterable, Optional

import structlog

from .errors import ModelOutputMalformedError
from .models import StructuredResponse, ToolCall

_FENCE_RE = re.compile(r"^```[a-zA-Z0-9_-]*\s*\n?|\n?```\s*$")

logger = structlog.get_logger(__name__)

COMMAND_TOOL_NAME = "execute_command"


def strip_code_fences(text: str) -> str:
    """Remove a leading ```lang marker and a trailing ``` marker."""
    return _FENCE_RE.sub("", text.strip()).strip()


def _looks_structured(text: str) -> bool:
    return text.startswith("{") or text.startswith("[")


def _as_actions(value: Any) -> list[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [value] if value.strip() else []
    if isinstance(value, list):
        return [str(item) for item in value if str(item).strip()]
    raise ValueError(f"actions must be a string or a list, got {type(value).__name__}")


def _from_payload(payload: Any) -> StructuredResponse:
    if not isinstance(payload, dict):
        raise ValueError("response must be a JSON object")
    actions = payload.get("actions", payload.get("action"))
    message = payload.get("message") or ""
    thought = payload.get("thought") or ""
    return StructuredResponse(
        thought=str(thought),
        actions=_as_actions(actions),
        message=str(message),
    )


def parse_response(text: str) -> StructuredResponse:
    """
    Strict parse first, then retry once with code fences stripped.

    Plain text with no JSON structure becomes the message with no actions.
    Text that looks like JSON but fails both attempts raises
    ``ModelOutputMalformedError``.
    """
    body = (text or "").strip()
    if not body:
        return StructuredResponse()
    try:
        return _from_payload(json.loads(body))
    except (json.JSONDecodeError, ValueError) as first_error:
        cleaned = strip_code_fences(body)
        if not _looks_structured(cleaned):
            return StructuredResponse(message=cleaned)
        try:
            return _from_payload(json.loads(cleaned))
        except (json.JSONDecodeError, ValueError) as second_error:
            raise ModelOutputMalformedError(text, second_error) from first_error


def _quote(value: Any) -> str:
    return shlex.quote(str(value))


def _info_action(op: str, args: dict[str, Any]) -> Optional[str]:
    kind = str(args.get("infoType", "")).lower()
    name = args.get("name")
    if kind not in ("contact", "location") or not name:
        return None
    if op == "remove":
        return f"{kind} remove {_quote(name)}"
    if kind == "location":
        return f"location add {_quote(name)} {_quote(args.get('description') or name)}"
    parts = [
        "contact add",
        _quote(name),
        _quote(args.get("relationship") or "neutral"),
        _quote(args.get("notes") or ""),
    ]
    enmity = args.get("enmityLevel")
    friendship = args.get("friendshipLevel")
    if enmity is not None or friendship is not None:
        parts.append(_quote(0 if enmity is None else enmity))
    if friendship is not None:
        parts.append(_quote(friendship))
    return " ".join(parts)


def _send_message(args: dict[str, Any]) -> Optional[str]:
    recipient = args.get("recipientName")
    content = args.get("content")
    if not recipient or not content:
        return None
    return f"mail send {_quote(recipient)} {_quote(content)}"


def _read_message(args: dict[str, Any]) -> Optional[str]:
    limit = args.get("limit")
    return "mail read" if limit is None else f"mail read {_quote(limit)}"


def _add_page(args: dict[str, Any]) -> Optional[str]:
    title = args.get("pageTitle")
    content = args.get("content")
    if not title or not content:
        return None
    return f"sharedbook add {_quote(title)} {_quote(content)}"


def _remove_page(args: dict[str, Any]) -> Optional[str]:
    title = args.get("pageTitle")
    return f"sharedbook remove {_quote(title)}" if title else None


# Backend tool names mapped onto the built-in action verbs.
TOOL_ACTIONS: dict[str, Callable[[dict[str, Any]], Optional[str]]] = {
    "addOrUpdateInfo": lambda args: _info_action("add", args),
    "removeInfo": lambda args: _info_action("remove", args),
    "sendMessage": _send_message,
    "readMessage": _read_message,
    "addOrUpdatePageToBook": _add_page,
    "removePageFromBook": _remove_page,
}


def tool_calls_to_actions(tool_calls: Iterable[ToolCall]) -> list[str]:
    """Normalise backend-native tool calls into action strings.

    ``execute_command`` yields its command verbatim and the names in
    ``TOOL_ACTIONS`` are rewritten into built-in actions. Any other name is
    treated as an action verb followed by its argument values.
    """
    actions: list[str] = []
    for call in tool_calls:
        if call.name == COMMAND_TOOL_NAME:
            command = str(call.arguments.get("command", "")).strip()
            if command:
                actions.append(command)
            continue
        translate = TOOL_ACTIONS.get(call.name)
        if translate is not None:
            action = translate(call.arguments)
            if action is None:
                logger.warning("tool_call_incomplete", tool=call.name, arguments=call.arguments)
            else:
                actions.append(action)
            continue
        parts = [call.name] + [_quote(value) for value in call.arguments.values()]
        actions.append(" ".join(parts))
    return actions
