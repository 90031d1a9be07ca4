"""Thread-safe registry of live agents and their runtimes."""

import threading
from dataclasses import dataclass
from typing import Optional

from .event_handler import CognitiveLoop
from .memory import MemoryManager
from .models import AgentProfile


@dataclass
class AgentRuntime:
    """Everything that lives as long as one agent does."""

    profile: AgentProfile
    loop: CognitiveLoop
    memory: MemoryManager


class AgentRoster:
    """Concurrent map from agent id to runtime, in registration order."""

    def __init__(self):
        self._lock = threading.RLock()
        self._agents: dict[str, AgentRuntime] = {}

    def add(self, runtime: AgentRuntime) -> None:
        with self._lock:
            if runtime.profile.id in self._agents:
                raise ValueError(f"Agent '{runtime.profile.id}' is already registered")
            self._agents[runtime.profile.id] = runtime

    def remove(self, agent_id: str) -> Optional[AgentRuntime]:
        with self._lock:
            return self._agents.pop(agent_id, None)

    def get(self, agent_id: str) -> Optional[AgentRuntime]:
        with self._lock:
            return self._agents.get(agent_id)

    def find_by_name(self, name: str) -> Optional[AgentRuntime]:
        wanted = name.lower()
        with self._lock:
            for runtime in self._agents.values():
                if runtime.profile.name.lower() == wanted:
                    return runtime
        return None

    def all(self) -> list[AgentRuntime]:
        with self._lock:
            return list(self._agents.values())

    def live_ids(self) -> list[str]:
        """Ids of active agents, oldest registration first."""
        with self._lock:
            return [agent_id for agent_id, rt in self._agents.items() if rt.profile.active]

    def loop_for(self, agent_id: str) -> Optional[CognitiveLoop]:
        runtime = self.get(agent_id)
        if runtime is None or not runtime.profile.active:
            return None
        return runtime.loop

    def update_profile(self, agent_id: str, **changes) -> AgentProfile:
        """Single mutation path for name, custom prompt, backend and activity."""
        allowed = {"name", "custom_prompt", "backend", "active"}
        unknown = set(changes) - allowed
        if unknown:
            raise ValueError(f"Cannot update agent fields: {', '.join(sorted(unknown))}")
        with self._lock:
            runtime = self._agents.get(agent_id)
            if runtime is None:
                raise KeyError(f"Unknown agent '{agent_id}'")
            profile = runtime.profile.model_copy(update=changes)
            runtime.profile = profile
            runtime.loop.profile = profile
            runtime.memory.agent_name = profile.name
            return profile

    def __len__(self) -> int:
        with self._lock:
            return len(self._agents)

    def __contains__(self, agent_id: str) -> bool:
        with self._lock:
            return agent_id in self._agents
