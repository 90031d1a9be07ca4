"""Tests for prompt templates."""

from npc_cognition.agent_prompts import (
    CUSTOM_INSTRUCTIONS_HEADER,
    AgentPrompt,
    PROMPT_FILES,
    build_summary_prompt,
    build_system_prompt,
    command_error_feedback,
    context_only_prompt,
    list_default_prompts,
    load_prompt,
    unknown_command_feedback,
)
from npc_cognition.models import AgentProfile


def test_default_prompt_keys_present():
    """Every template ships as a JSON file."""
    prompts = list_default_prompts()
    assert set(prompts) == set(PROMPT_FILES)
    assert all(isinstance(p, AgentPrompt) for p in prompts.values())


def test_load_prompt_is_cached():
    assert load_prompt("system") is load_prompt("system")


def test_system_prompt_lists_actions_and_commands():
    profile = AgentProfile(id="a1", name="Alex")
    prompt = build_system_prompt(profile, ["mail send <agent_name> '<message>'"], ["mine", "craft"])

    assert "You are Alex" in prompt
    assert '- "mail send <agent_name> \'<message>\'"' in prompt
    assert '- "mine"' in prompt
    assert '{"thought": "short reasoning"' in prompt
    assert CUSTOM_INSTRUCTIONS_HEADER not in prompt


def test_system_prompt_appends_custom_instructions():
    profile = AgentProfile(id="a1", name="Alex", custom_prompt="  Speak like a pirate. ")
    prompt = build_system_prompt(profile, [], [])

    assert prompt.endswith(f"{CUSTOM_INSTRUCTIONS_HEADER}\nSpeak like a pirate.")
    assert "- (none)" in prompt


def test_system_prompt_tracks_configuration():
    profile = AgentProfile(id="a1", name="Alex")
    before = build_system_prompt(profile, [], ["mine"])
    after = build_system_prompt(profile, [], ["mine", "fish"])
    assert before != after
    assert '- "fish"' in after


def test_feedback_prompts():
    assert command_error_feedback("mine:bedrock", "too hard") == (
        "Command 'mine:bedrock' failed: too hard"
    )
    assert unknown_command_feedback("dance", ["mine", "craft"]) == (
        "Unknown command 'dance'. Available commands: mine, craft"
    )
    assert context_only_prompt() == "Current state and context. What should I do?"
    assert "user: hello" in build_summary_prompt("user: hello")
