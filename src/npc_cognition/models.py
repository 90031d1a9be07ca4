"""Shared data models for agents, conversation turns and memory stores."""

import json
import time
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field


def now_ms() -> int:
    """Wall-clock milliseconds, the timestamp unit of every stored row."""
    return int(time.time() * 1000)


class Role(str, Enum):
    """Role of a conversation turn."""
    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"


class SystemPromptPolicy(str, Enum):
    """How the system turn is obtained for a model window."""
    FRESH = "fresh"
    STORED = "stored"


class AgentProfile(BaseModel):
    """One live agent under management."""

    id: str
    name: str
    backend: str = "default"
    custom_prompt: str = ""
    active: bool = True


class ConversationTurn(BaseModel):
    """One logged utterance in an agent's history."""

    agent_id: str
    role: Role
    content: str
    timestamp: int = Field(default_factory=now_ms)
    id: Optional[int] = None
    seq: Optional[int] = None


class ToolCall(BaseModel):
    """Backend-native tool invocation returned alongside generated text."""

    name: str
    arguments: dict[str, Any] = Field(default_factory=dict)


class ModelReply(BaseModel):
    """Raw result of one language model call."""

    text: str = ""
    tool_calls: list[ToolCall] = Field(default_factory=list)

    def has_tool_calls(self) -> bool:
        return bool(self.tool_calls)


class StructuredResponse(BaseModel):
    """Parsed (thought, actions, message) triple of one model call."""

    thought: str = ""
    actions: list[str] = Field(default_factory=list)
    message: str = ""

    def has_message(self) -> bool:
        """True when the message carries something other than whitespace."""
        return bool(self.message.strip())

    def to_json(self) -> str:
        return json.dumps(self.model_dump(), ensure_ascii=False)


class SchedulingEntry(BaseModel):
    """Per-agent bookkeeping held by the scheduler."""

    agent_id: str
    last_success: Optional[float] = None
    dispatch_count: int = 0
    success_count: int = 0


class Position(BaseModel):
    x: int = 0
    y: int = 0
    z: int = 0


class WorldState(BaseModel):
    """World-side half of a context snapshot, supplied by the host world."""

    position: Position = Field(default_factory=Position)
    status: dict[str, Any] = Field(default_factory=dict)
    inventory: dict[str, int] = Field(default_factory=dict)
    nearby_entities: list[str] = Field(default_factory=list)


class Contact(BaseModel):
    """Someone an agent remembers."""

    agent_id: str
    contact_name: str
    contact_id: Optional[str] = None
    relationship: str = "neutral"
    notes: str = ""
    enmity_level: float = Field(default=0.0, ge=0.0, le=1.0)
    friendship_level: float = Field(default=0.0, ge=0.0, le=1.0)
    last_seen: int = Field(default_factory=now_ms)


class LocationMemory(BaseModel):
    """A named place an agent remembers."""

    agent_id: str
    name: str
    position: Position = Field(default_factory=Position)
    description: str = ""
    timestamp: int = Field(default_factory=now_ms)


class MailMessage(BaseModel):
    """Durable point-to-point message between agents."""

    id: Optional[int] = None
    recipient_id: str
    sender_id: str
    sender_name: str
    subject: str = ""
    content: str
    timestamp: int = Field(default_factory=now_ms)
    read: bool = False


class BookPage(BaseModel):
    """A private or shared book page."""

    title: str
    content: str
    author_id: str
    author_name: str = ""
    timestamp: int = Field(default_factory=now_ms)


class ContextSnapshot(BaseModel):
    """Structured world context spliced into the latest user turn."""

    world: WorldState = Field(default_factory=WorldState)
    contacts: list[Contact] = Field(default_factory=list)
    locations: list[LocationMemory] = Field(default_factory=list)
    private_book: list[BookPage] = Field(default_factory=list)
    shared_book: list[BookPage] = Field(default_factory=list)
    unread_mail: list[MailMessage] = Field(default_factory=list)

    def to_prompt_dict(self) -> dict[str, Any]:
        """Compact JSON-ready view used in prompts."""
        return {
            "state": {
                "position": self.world.position.model_dump(),
                **self.world.status,
            },
            "inventory": dict(self.world.inventory),
            "nearbyEntities": list(self.world.nearby_entities),
            "memory": {
                "contacts": [
                    {
                        "name": c.contact_name,
                        "relationship": c.relationship,
                        "notes": c.notes,
                        "enmity": c.enmity_level,
                        "friendship": c.friendship_level,
                    }
                    for c in self.contacts
                ],
                "locations": [
                    {
                        "name": loc.name,
                        "position": loc.position.model_dump(),
                        "description": loc.description,
                    }
                    for loc in self.locations
                ],
                "privateBook": [
                    {"title": p.title, "content": p.content} for p in self.private_book
                ],
                "sharebook": [
                    {"title": p.title, "content": p.content, "author": p.author_name}
                    for p in self.shared_book
                ],
                "mail": [
                    {"from": m.sender_name, "subject": m.subject, "content": m.content}
                    for m in self.unread_mail
                ],
            },
        }


class ActionResult(BaseModel):
    """Outcome of dispatching one action string."""

    action: str
    kind: str
    success: bool
    detail: str = ""


class CommandFailure(BaseModel):
    """Normalised world-command failure."""

    command: str
    reason: str
    unknown_command: bool = False


class CycleReport(BaseModel):
    """What one scheduler cycle did."""

    timestamp: float
    dispatched: Optional[str] = None
    examined: int = 0
    skipped: list[str] = Field(default_factory=list)
    dropped: list[str] = Field(default_factory=list)
