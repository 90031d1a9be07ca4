"""Tests for conversation history windows and summarization."""

import json

import pytest

from npc_cognition.history import (
    EMPTY_MESSAGE_PLACEHOLDER,
    ConversationHistory,
    extract_message,
)
from npc_cognition.llm_client import ScriptedLanguageModel
from npc_cognition.models import Role, SystemPromptPolicy
from npc_cognition.repositories import ConversationRepository


def _history(database, model=None, max_len=6, policy=SystemPromptPolicy.FRESH, prompt="SYSTEM v1"):
    state = {"prompt": prompt}
    history = ConversationHistory(
        "a1",
        ConversationRepository(database),
        model or ScriptedLanguageModel(default="summary text"),
        system_prompt_factory=lambda: state["prompt"],
        max_history_length=max_len,
        policy=policy,
    )
    return history, state


def test_window_round_trip_below_threshold(database):
    history, _ = _history(database)
    for i in range(5):
        history.append(Role.USER if i % 2 == 0 else Role.ASSISTANT, f"turn {i}")

    window = history.window()

    assert window[0].role == Role.SYSTEM
    assert [t.content for t in window[1:]] == [f"turn {i}" for i in range(5)]


def test_fresh_policy_regenerates_system_prompt(database):
    history, state = _history(database)
    history.append(Role.SYSTEM, "ignored")
    history.append(Role.USER, "hello")

    assert history.window()[0].content == "SYSTEM v1"
    state["prompt"] = "SYSTEM v2"
    assert history.window()[0].content == "SYSTEM v2"
    assert history.repository.get_system_turn("a1") is None


def test_stored_policy_keeps_single_system_turn(database):
    history, state = _history(database, policy=SystemPromptPolicy.STORED)
    history.set_system_prompt()
    state["prompt"] = "SYSTEM v2"
    history.append(Role.USER, "hello")

    assert history.window()[0].content == "SYSTEM v1"
    history.set_system_prompt()
    assert history.window()[0].content == "SYSTEM v2"
    assert history.count() == 1


def test_assistant_turns_replay_message_only(database):
    history, _ = _history(database)
    history.append(Role.USER, "what now?")
    history.append(
        Role.ASSISTANT,
        json.dumps({"thought": "secret", "actions": ["mine:stone"], "message": "On it"}),
    )
    history.append(Role.ASSISTANT, json.dumps({"actions": ["goto 1 2 3"], "message": ""}))
    history.append(Role.ASSISTANT, "plain legacy reply")

    contents = [t.content for t in history.window()[1:]]

    assert contents == ["what now?", "On it", EMPTY_MESSAGE_PLACEHOLDER, "plain legacy reply"]
    stored = history.turns()
    assert "secret" in stored[1].content


def test_extract_message_falls_back_to_raw_text():
    assert extract_message("not json") == "not json"
    assert extract_message("[1, 2]") == "[1, 2]"
    assert extract_message('{"other": 1}') == '{"other": 1}'
    assert extract_message('{"message": "hi"}') == "hi"


def test_summarization_scenario_six_to_five(database):
    model = ScriptedLanguageModel(default="They traded iron.")
    history, _ = _history(database, model=model, max_len=6)
    for i in range(6):
        history.append(Role.USER if i % 2 == 0 else Role.ASSISTANT, f"turn {i}")

    assert history.perform_summarization_if_needed() is True

    turns = history.turns()
    assert len(turns) == 5
    assert turns[0].role == Role.ASSISTANT
    assert "They traded iron." in turns[0].content
    assert [t.content for t in turns[1:]] == ["turn 2", "turn 3", "turn 4", "turn 5"]
    assert len(model.calls) == 1
    assert "turn 0" in model.calls[0][0].content
    assert "turn 2" not in model.calls[0][0].content


def test_summarization_is_idempotent_without_new_turns(database):
    model = ScriptedLanguageModel(default="summary")
    history, _ = _history(database, model=model, max_len=6)
    for i in range(6):
        history.append(Role.USER, f"turn {i}")

    assert history.perform_summarization_if_needed() is True
    assert history.perform_summarization_if_needed() is False
    assert len(model.calls) == 1
    assert history.count() == 5


def test_summarization_below_threshold_is_noop(database):
    model = ScriptedLanguageModel(default="summary")
    history, _ = _history(database, model=model, max_len=6)
    for i in range(5):
        history.append(Role.USER, f"turn {i}")

    assert history.perform_summarization_if_needed() is False
    assert model.calls == []


def test_summarization_never_touches_latest_turn(database):
    history, _ = _history(database, max_len=6)
    for i in range(6):
        history.append(Role.USER, f"turn {i}")

    history.perform_summarization_if_needed()

    assert history.turns()[-1].content == "turn 5"


@pytest.mark.parametrize("max_len", [6, 7, 8, 9])
def test_summarization_shrinks_log_at_smallest_lengths(database, max_len):
    model = ScriptedLanguageModel(default="summary")
    history, _ = _history(database, model=model, max_len=max_len)
    for i in range(max_len):
        history.append(Role.USER, f"turn {i}")

    assert history.perform_summarization_if_needed() is True
    assert history.count() < max_len
    assert history.perform_summarization_if_needed() is False
    assert len(model.calls) == 1


@pytest.mark.parametrize("max_len", [3, 4, 5])
def test_history_length_below_six_is_rejected(database, max_len):
    with pytest.raises(ValueError):
        _history(database, max_len=max_len)


def test_last_message_uses_spoken_text(database):
    history, _ = _history(database)
    assert history.last_message() == ""
    history.append(Role.ASSISTANT, json.dumps({"actions": [], "message": "Hello there"}))
    assert history.last_message() == "Hello there"
    history.append(Role.USER, "someone waved")
    assert history.last_message() == "someone waved"
