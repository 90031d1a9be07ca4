"""Tests for built-in memory, mail and book actions."""

import json

import pytest

from npc_cognition.action_registry import ActionRegistry, ActionSpec
from npc_cognition.actions import WORLD_COMMAND, default_action_registry
from npc_cognition.models import AgentProfile, ModelReply, Position, ToolCall, WorldState
from npc_cognition.runtime import AgentService


def _reply(*actions, message=""):
    return json.dumps({"actions": list(actions), "message": message})


def _run(runtime, stimulus="go"):
    runtime.loop.update_state(stimulus).result(timeout=5)
    assert runtime.loop.process_llm().result(timeout=5) is True


def test_registry_rejects_duplicates_and_bad_names():
    registry = default_action_registry()
    with pytest.raises(ValueError):
        registry.register_simple("mail", lambda ctx, args: "", ["mail"])
    with pytest.raises(ValueError):
        ActionSpec(name="Bad-Name", handler=lambda ctx, args: "")
    assert registry.is_registered("SharedBook")
    assert not registry.is_registered("mine:stone")


def test_registry_syntax_lists_every_form():
    syntax = default_action_registry().syntax()
    assert "mail send <agent_name> '<message>'" in syntax
    assert "contact remove <name>" in syntax
    assert len(syntax) == 10


def test_contact_add_clamps_levels_and_remove(service, model):
    runtime = service.spawn(AgentProfile(id="a1", name="Alex"))
    model.queue(
        _reply("contact add Bob rival 'Stole   my  pickaxe' 1.7 -0.2"),
        _reply("contact remove Bob"),
    )

    _run(runtime)
    contact = runtime.memory.get_contact("bob")
    assert contact.relationship == "rival"
    assert contact.notes == "Stole my pickaxe"
    assert contact.enmity_level == 1.0
    assert contact.friendship_level == 0.0

    _run(runtime)
    assert runtime.memory.get_contact("Bob") is None


def test_contact_add_with_bad_level_is_rejected(service, model, executor):
    runtime = service.spawn(AgentProfile(id="a1", name="Alex"))
    model.queue(_reply("contact add Bob friend 'ok' lots", "mine:stone"))

    _run(runtime)

    assert runtime.memory.get_contact("Bob") is None
    assert executor.executed == ["mine:stone"]


def test_location_add_uses_current_position(model, executor, chat_sink, database, config, clock):
    service = AgentService(
        config,
        command_executor=executor,
        chat_sink=chat_sink,
        llm_factory=lambda name, backend: model,
        world_provider=lambda agent: WorldState(position=Position(x=10, y=64, z=-3)),
        database=database,
        clock=clock,
    )
    try:
        runtime = service.spawn(AgentProfile(id="a1", name="Alex"))
        model.queue(_reply("location add quarry 'Big  stone pit'"))
        _run(runtime)
        location = runtime.memory.get_location("quarry")
        assert location.position == Position(x=10, y=64, z=-3)
        assert location.description == "Big stone pit"
    finally:
        service.shutdown()


def test_private_book_add_and_remove(service, model):
    runtime = service.spawn(AgentProfile(id="a1", name="Alex"))
    model.queue(
        _reply("privatebook add goals 'Build a  tower'"),
        _reply("privatebook remove goals"),
    )

    _run(runtime)
    pages = runtime.memory.get_pages()
    assert [(p.title, p.content) for p in pages] == [("goals", "Build a tower")]

    _run(runtime)
    assert runtime.memory.get_pages() == []


def test_shared_book_removal_limited_to_author(service, model):
    alex = service.spawn(AgentProfile(id="a1", name="Alex"))
    sam = service.spawn(AgentProfile(id="a2", name="Sam"))
    model.queue(
        _reply("sharedbook add ores 'Iron to the east'"),
        _reply("sharedbook remove ores"),
    )

    _run(alex)
    _run(sam)

    pages = service.shared_book.select_all(10)
    assert [(p.title, p.author_name) for p in pages] == [("ores", "Alex")]


def test_mail_send_and_read(service, model, chat_sink):
    alex = service.spawn(AgentProfile(id="a1", name="Alex"))
    sam = service.spawn(AgentProfile(id="a2", name="Sam"))
    model.queue(_reply("mail send sam 'Meet me at the quarry'"), _reply("mail read"))

    _run(alex)
    assert ("Alex", "Alex says to Sam: Meet me at the quarry") in chat_sink.lines
    assert len(service.mail.select_by_recipient("a2", unread_only=True)) == 1

    _run(sam, stimulus="check your mail")

    assert service.mail.select_by_recipient("a2", unread_only=True) == []
    contents = [t.content for t in sam.loop.history.turns()]
    assert "Alex says to you: Meet me at the quarry" in contents
    assert any(c.startswith("Mail:\n- from Alex: Meet me at the quarry") for c in contents)


def test_custom_action_kind_can_be_registered(make_service, model, executor):
    registry = default_action_registry()
    seen = []
    registry.register(
        ActionSpec(name="wave", syntax=["wave <name>"], handler=lambda ctx, args: seen.append(args) or "waved")
    )
    service = make_service()
    service.registry = registry
    runtime = service.spawn(AgentProfile(id="a1", name="Alex"))
    model.queue(_reply("wave Sam", "mine:stone"))

    _run(runtime)

    assert seen == [["Sam"]]
    assert executor.executed == ["mine:stone"]


def test_world_command_kind_constant():
    registry = ActionRegistry()
    assert registry.get("mine") is None
    assert WORLD_COMMAND == "world_command"


def test_backend_tool_calls_reach_built_in_actions(service, model, executor, chat_sink):
    alex = service.spawn(AgentProfile(id="a1", name="Alex"))
    service.spawn(AgentProfile(id="a2", name="Sam"))
    model.queue(
        ModelReply(
            text="",
            tool_calls=[
                ToolCall(name="sendMessage", arguments={"recipientName": "Sam", "subject": "hi", "content": "Bring torches"}),
                ToolCall(name="addOrUpdatePageToBook", arguments={"pageTitle": "ores", "content": "Iron east"}),
            ],
        )
    )

    _run(alex)

    assert ("Alex", "Alex says to Sam: Bring torches") in chat_sink.lines
    assert [p.title for p in service.shared_book.select_all(10)] == ["ores"]
    assert executor.executed == []
