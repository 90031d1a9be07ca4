"""NPC Cognition - scheduler, cognitive loop and conversation history for LLM-driven agents"""

from .config import BaseConfig, LLMBackendConfig, load_config
from .models import AgentProfile, ConversationTurn, Role, StructuredResponse, SystemPromptPolicy
from .interfaces import (
    ChatSink,
    CommandExecutor,
    ContextBuilder,
    LanguageModelClient,
    PeerNotifier,
)
from .errors import (
    ActionError,
    CommandExecutionError,
    LanguageModelError,
    ModelOutputMalformedError,
    NpcCognitionError,
    StorageError,
)
from .history import ConversationHistory
from .event_handler import CognitiveLoop
from .scheduler import Scheduler
from .runtime import AgentService
from .tick_driver import TickDriver
from .agent_prompts import AgentPrompt, build_system_prompt, list_default_prompts

__all__ = [
    "BaseConfig",
    "LLMBackendConfig",
    "load_config",
    "AgentProfile",
    "ConversationTurn",
    "Role",
    "StructuredResponse",
    "SystemPromptPolicy",
    "ChatSink",
    "CommandExecutor",
    "ContextBuilder",
    "LanguageModelClient",
    "PeerNotifier",
    "ActionError",
    "CommandExecutionError",
    "LanguageModelError",
    "ModelOutputMalformedError",
    "NpcCognitionError",
    "StorageError",
    "ConversationHistory",
    "CognitiveLoop",
    "Scheduler",
    "AgentService",
    "TickDriver",
    "AgentPrompt",
    "build_system_prompt",
    "list_default_prompts",
]
