"""Centralized prompt definitions loaded from JSON files."""

from __future__ import annotations

import json
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Dict, Iterable

from .models import AgentProfile


@dataclass(frozen=True)
class AgentPrompt:
    """Structured metadata for a prompt template."""

    name: str
    role: str
    instructions: str

    def render(self, **values: str) -> str:
        return self.instructions.format(**values)


PROMPT_FILES: Dict[str, str] = {
    "system": "system.json",
    "summary": "summary.json",
    "command_error": "command_error.json",
    "unknown_command": "unknown_command.json",
    "context_only": "context_only.json",
}

PROMPT_DIR = Path(__file__).with_name("prompts")

CUSTOM_INSTRUCTIONS_HEADER = "=== ADDITIONAL CUSTOM INSTRUCTIONS ==="


@lru_cache(maxsize=None)
def load_prompt(key: str) -> AgentPrompt:
    """Load a prompt from its JSON definition."""
    filename = PROMPT_FILES[key]
    path = PROMPT_DIR / filename
    if not path.exists():
        raise FileNotFoundError(f"Prompt file not found for key '{key}': {path}")
    with path.open("r", encoding="utf-8") as f:
        data = json.load(f)
    return AgentPrompt(**data)


def list_default_prompts() -> Dict[str, AgentPrompt]:
    return {key: load_prompt(key) for key in PROMPT_FILES}


def _bullet_list(items: Iterable[str]) -> str:
    lines = [f'- "{item}"' for item in items]
    return "\n".join(lines) if lines else "- (none)"


def build_system_prompt(
    profile: AgentProfile,
    action_syntax: Iterable[str],
    commands: Iterable[str] = (),
) -> str:
    """Render the system prompt for one agent, appending its custom instructions."""
    prompt = load_prompt("system").render(
        name=profile.name,
        actions=_bullet_list(action_syntax),
        commands=_bullet_list(commands),
    )
    if profile.custom_prompt and profile.custom_prompt.strip():
        prompt += f"\n\n{CUSTOM_INSTRUCTIONS_HEADER}\n{profile.custom_prompt.strip()}"
    return prompt


def build_summary_prompt(conversation: str) -> str:
    return load_prompt("summary").render(conversation=conversation)


def command_error_feedback(command: str, reason: str) -> str:
    return load_prompt("command_error").render(command=command, reason=reason)


def unknown_command_feedback(command: str, commands: Iterable[str]) -> str:
    return load_prompt("unknown_command").render(
        command=command, commands=", ".join(commands)
    )


def context_only_prompt() -> str:
    return load_prompt("context_only").instructions
