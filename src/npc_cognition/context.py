"""World-context snapshots and their prompt formatting."""

import json
from typing import Callable, Optional

from .config import BaseConfig
from .interfaces import ContextBuilder
from .memory import MemoryManager
from .models import AgentProfile, ContextSnapshot, WorldState
from .repositories import MailRepository, SharedBookRepository

WorldStateProvider = Callable[[AgentProfile], WorldState]

CONTEXT_HEADER = "=== CONTEXT DATA (JSON) ==="
CONTEXT_FOOTER = "=== END CONTEXT ==="


def format_structured(prompt: str, snapshot: ContextSnapshot) -> str:
    """Text instruction followed by the JSON context block."""
    context_json = json.dumps(snapshot.to_prompt_dict(), ensure_ascii=False, separators=(",", ":"))
    return f"{prompt}\n\n{CONTEXT_HEADER}\n{context_json}\n{CONTEXT_FOOTER}"


def empty_world(agent: AgentProfile) -> WorldState:
    return WorldState()


class StoreBackedContextBuilder(ContextBuilder):
    """Merges host-supplied world state with what the agent remembers."""

    def __init__(
        self,
        memory_for: Callable[[str], Optional[MemoryManager]],
        shared_book: SharedBookRepository,
        mail: MailRepository,
        config: BaseConfig,
        world_provider: WorldStateProvider = empty_world,
    ):
        self.memory_for = memory_for
        self.shared_book = shared_book
        self.mail = mail
        self.config = config
        self.world_provider = world_provider

    def build_context(self, agent: AgentProfile) -> ContextSnapshot:
        memory = self.memory_for(agent.id)
        return ContextSnapshot(
            world=self.world_provider(agent),
            contacts=memory.get_contacts() if memory else [],
            locations=memory.get_locations() if memory else [],
            private_book=memory.get_pages() if memory else [],
            shared_book=self.shared_book.select_all(self.config.max_sharebook_pages),
            unread_mail=self.mail.select_by_recipient(
                agent.id, limit=self.config.max_messages, unread_only=True
            ),
        )
