"""Assembly of stores, loops, coordination and the scheduler into one service."""

import time
from pathlib import Path
from typing import Callable, Optional

import structlog

from .action_registry import ActionContext, ActionRegistry
from .actions import ActionDispatcher, default_action_registry
from .agent_prompts import build_system_prompt
from .command_runner import CommandRunner
from .config import BaseConfig, LLMBackendConfig
from .context import StoreBackedContextBuilder, WorldStateProvider, empty_world
from .coordination import CoordinationService
from .event_handler import CognitiveLoop
from .history import ConversationHistory
from .interfaces import ChatSink, CommandExecutor, LanguageModelClient
from .llm_client import OpenAICompatibleClient
from .memory import MemoryManager
from .models import AgentProfile, ContextSnapshot, CycleReport
from .repositories import (
    ContactRepository,
    ConversationRepository,
    Database,
    LocationRepository,
    MailRepository,
    PrivateBookRepository,
    SharedBookRepository,
)
from .roster import AgentRoster, AgentRuntime
from .scheduler import Scheduler

logger = structlog.get_logger(__name__)

LLMFactory = Callable[[str, LLMBackendConfig], LanguageModelClient]


def default_llm_factory(name: str, backend: LLMBackendConfig) -> LanguageModelClient:
    return OpenAICompatibleClient(backend)


class AgentService:
    """Owns every live agent and drives them through the scheduler."""

    def __init__(
        self,
        config: BaseConfig,
        command_executor: CommandExecutor,
        chat_sink: ChatSink,
        llm_factory: LLMFactory = default_llm_factory,
        world_provider: WorldStateProvider = empty_world,
        database: Optional[Database] = None,
        registry: Optional[ActionRegistry] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.config = config
        self.chat_sink = chat_sink
        self.llm_factory = llm_factory
        self.database = database or Database(Path(config.database_path))
        self.registry = registry or default_action_registry()
        self.command_runner = CommandRunner(command_executor, timeout=config.command_timeout)

        self.conversations = ConversationRepository(self.database)
        self.contacts = ContactRepository(self.database)
        self.locations = LocationRepository(self.database)
        self.private_books = PrivateBookRepository(self.database)
        self.shared_book = SharedBookRepository(self.database)
        self.mail = MailRepository(self.database)

        self.roster = AgentRoster()
        self.coordination = CoordinationService(self.roster, self.mail, chat_sink, config)
        self.context_builder = StoreBackedContextBuilder(
            memory_for=self._memory_for,
            shared_book=self.shared_book,
            mail=self.mail,
            config=config,
            world_provider=world_provider,
        )
        self.scheduler = Scheduler(
            self.roster,
            cycle_interval=config.llm_processing_interval,
            min_interval=config.llm_min_interval,
            clock=clock,
        )
        self._llm_clients: dict[str, LanguageModelClient] = {}

    def llm_for(self, backend_name: str) -> LanguageModelClient:
        """One shared client per backend name."""
        if backend_name not in self._llm_clients:
            self._llm_clients[backend_name] = self.llm_factory(
                backend_name, self.config.backend(backend_name)
            )
        return self._llm_clients[backend_name]

    def spawn(self, profile: AgentProfile) -> AgentRuntime:
        """Register a new agent, introduce it to its peers and add it to the rotation."""
        if profile.id in self.roster:
            raise ValueError(f"Agent '{profile.id}' is already registered")
        llm = self.llm_for(profile.backend)
        memory = MemoryManager(
            profile.id,
            profile.name,
            self.contacts,
            self.locations,
            self.private_books,
            self.config,
        )
        history = ConversationHistory(
            profile.id,
            self.conversations,
            llm,
            system_prompt_factory=lambda: self._system_prompt(profile.id, profile),
            max_history_length=self.config.conversation_history_length,
            policy=self.config.system_prompt_policy,
        )
        dispatcher = ActionDispatcher(
            self.registry,
            self.command_runner,
            stop_on_command_failure=self.config.stop_on_command_failure,
        )

        def make_action_context(
            snapshot: ContextSnapshot, feedback: Callable[[str], None]
        ) -> ActionContext:
            current = self.roster.get(profile.id)
            return ActionContext(
                agent=current.profile if current else profile,
                memory=memory,
                shared_book=self.shared_book,
                mail=self.mail,
                peers=self.coordination,
                config=self.config,
                snapshot=snapshot,
                feedback=feedback,
            )

        loop = CognitiveLoop(
            profile,
            history,
            llm,
            self.context_builder,
            dispatcher,
            make_action_context,
            self.chat_sink,
            queue_capacity=self.config.queue_capacity,
            verbose=self.config.verbose,
        )
        runtime = AgentRuntime(profile=profile, loop=loop, memory=memory)
        self.roster.add(runtime)
        history.set_system_prompt()
        self.coordination.notify_agent_added(profile)
        logger.info("agent_spawned", agent_id=profile.id, agent_name=profile.name)
        return runtime

    def despawn(self, agent_id: str, forget: bool = True) -> bool:
        """Remove an agent, drain its queue and optionally wipe what it stored."""
        runtime = self.roster.remove(agent_id)
        if runtime is None:
            return False
        drained = runtime.loop.stop(self.config.shutdown_timeout)
        if forget:
            runtime.loop.history.clear()
            runtime.memory.cleanup()
            self.mail.delete_by_agent(agent_id)
        self.coordination.notify_agent_removed(runtime.profile.name, agent_id)
        logger.info("agent_despawned", agent_id=agent_id, drained=drained, forgot=forget)
        return True

    def update_agent(self, agent_id: str, **changes) -> AgentProfile:
        return self.roster.update_profile(agent_id, **changes)

    def update_settings(
        self,
        llm_processing_interval: Optional[float] = None,
        llm_min_interval: Optional[float] = None,
    ) -> BaseConfig:
        """Change scheduler pacing at runtime."""
        changes = {
            key: value
            for key, value in (
                ("llm_processing_interval", llm_processing_interval),
                ("llm_min_interval", llm_min_interval),
            )
            if value is not None
        }
        self.config = self.config.model_copy(update=changes)
        self.scheduler.update_settings(
            cycle_interval=llm_processing_interval, min_interval=llm_min_interval
        )
        return self.config

    def tick(self) -> Optional[CycleReport]:
        return self.scheduler.on_tick()

    def shutdown(self) -> None:
        for runtime in self.roster.all():
            runtime.loop.stop(self.config.shutdown_timeout)
        logger.info("agent_service_stopped", agents=len(self.roster))

    def _memory_for(self, agent_id: str) -> Optional[MemoryManager]:
        runtime = self.roster.get(agent_id)
        return runtime.memory if runtime else None

    def _system_prompt(self, agent_id: str, fallback: AgentProfile) -> str:
        runtime = self.roster.get(agent_id)
        profile = runtime.profile if runtime else fallback
        return build_system_prompt(
            profile, self.registry.syntax(), self.command_runner.available_commands()
        )
