"""Configuration models and JSON persistence."""

import json
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, Field, field_validator

from .models import SystemPromptPolicy


class LLMBackendConfig(BaseModel):
    """One language model endpoint an agent can be bound to."""

    base_url: str = "http://localhost:11434/v1"
    model: str = "llama3.1"
    api_key: str = "local"
    temperature: float = Field(default=0.7, ge=0.0, le=2.0)
    timeout: float = Field(default=30.0, gt=0.0)

    @field_validator("base_url")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        return v.rstrip("/")


class BaseConfig(BaseModel):
    """Global tunables shared by the scheduler and every cognitive loop."""

    llm_processing_interval: float = Field(default=5.0, gt=0.0, description="T_cycle in seconds")
    llm_min_interval: float = Field(default=15.0, ge=0.0, description="T_min in seconds")
    conversation_history_length: int = Field(default=12, ge=6, le=500)
    max_contacts: int = Field(default=20, ge=1)
    max_locations: int = Field(default=20, ge=1)
    max_messages: int = Field(default=30, ge=1)
    max_private_pages: int = Field(default=20, ge=1)
    max_sharebook_pages: int = Field(default=50, ge=1)
    queue_capacity: int = Field(default=1, ge=1, le=16)
    shutdown_timeout: float = Field(default=5.0, ge=0.0)
    llm_timeout: float = Field(default=30.0, gt=0.0)
    command_timeout: float = Field(default=10.0, gt=0.0)
    stop_on_command_failure: bool = False
    system_prompt_policy: SystemPromptPolicy = SystemPromptPolicy.FRESH
    verbose: bool = False
    database_path: str = "npc_cognition.db"
    backends: dict[str, LLMBackendConfig] = Field(
        default_factory=lambda: {"default": LLMBackendConfig()}
    )

    def backend(self, name: str) -> LLMBackendConfig:
        """Return the named backend, falling back to ``default``."""
        if name in self.backends:
            return self.backends[name]
        if "default" in self.backends:
            return self.backends["default"]
        raise KeyError(f"No LLM backend configured for '{name}'")

    def save_to_path(self, path: str | Path) -> Path:
        """Persist the config to disk as JSON."""
        target = Path(path)
        target.parent.mkdir(parents=True, exist_ok=True)
        with target.open("w", encoding="utf-8") as f:
            json.dump(self.model_dump(mode="json"), f, indent=2)
        return target


def load_config(path: Optional[str | Path] = None) -> BaseConfig:
    """Load a config from JSON; a missing or unset path yields the defaults."""
    if path is None:
        return BaseConfig()
    source = Path(path)
    if not source.exists():
        return BaseConfig()
    with source.open("r", encoding="utf-8") as f:
        payload = json.load(f)
    return BaseConfig.model_validate(payload)
