"""Registry of recognised action kinds, keyed by their leading verb."""

import re
from dataclasses import dataclass, field
from typing import Callable, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .config import BaseConfig
from .interfaces import PeerNotifier
from .memory import MemoryManager
from .models import AgentProfile, ContextSnapshot
from .repositories import MailRepository, SharedBookRepository


@dataclass
class ActionContext:
    """Collaborators an action handler may touch for one agent."""

    agent: AgentProfile
    memory: MemoryManager
    shared_book: SharedBookRepository
    mail: MailRepository
    peers: PeerNotifier
    config: BaseConfig
    snapshot: Optional[ContextSnapshot] = None
    feedback: Callable[[str], None] = field(default=lambda text: None)


ActionHandler = Callable[[ActionContext, list[str]], str]


class ActionSpec(BaseModel):
    """One registered action kind."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    name: str = Field(..., description="Leading verb, lowercase")
    syntax: list[str] = Field(default_factory=list, description="Syntax lines shown to the model")
    handler: ActionHandler

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        if not re.match(r"^[a-z_][a-z0-9_]*$", v):
            raise ValueError(
                "Action name must be lowercase alphanumeric with underscores, "
                "starting with a letter or underscore"
            )
        return v


class ActionRegistry:
    """Maps action verbs to handlers; unregistered verbs are world commands."""

    def __init__(self):
        self._actions: dict[str, ActionSpec] = {}

    def register(self, spec: ActionSpec) -> None:
        if spec.name in self._actions:
            raise ValueError(f"Action '{spec.name}' is already registered")
        self._actions[spec.name] = spec

    def register_simple(self, name: str, handler: ActionHandler, syntax: list[str]) -> None:
        self.register(ActionSpec(name=name, handler=handler, syntax=syntax))

    def is_registered(self, verb: str) -> bool:
        return verb.lower() in self._actions

    def get(self, verb: str) -> Optional[ActionSpec]:
        return self._actions.get(verb.lower())

    def syntax(self) -> list[str]:
        """Every syntax line, in registration order."""
        return [line for spec in self._actions.values() for line in spec.syntax]
