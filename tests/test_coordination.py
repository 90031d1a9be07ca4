"""Tests for cross-agent coordination and the agent service lifecycle."""

import pytest

from npc_cognition.models import AgentProfile, Role

from conftest import wait_until


def _user_turns(runtime):
    return [t.content for t in runtime.loop.history.turns() if t.role == Role.USER]


def _settle(service):
    for runtime in service.roster.all():
        assert wait_until(runtime.loop.is_idle)


def test_new_agent_is_announced_and_contacts_are_mutual(service):
    alex = service.spawn(AgentProfile(id="a1", name="Alex"))
    sam = service.spawn(AgentProfile(id="a2", name="Sam"))
    _settle(service)

    assert any("Agent 'Sam' has joined" in text for text in _user_turns(alex))
    assert _user_turns(sam) == []
    assert alex.memory.get_contact("Sam").contact_id == "a2"
    assert sam.memory.get_contact("Alex").relationship == "neutral"


def test_broadcast_skips_excluded_agent(service):
    alex = service.spawn(AgentProfile(id="a1", name="Alex"))
    sam = service.spawn(AgentProfile(id="a2", name="Sam"))
    _settle(service)

    delivered = service.coordination.broadcast("Thunder rolls.", exclude="a2")
    _settle(service)

    assert delivered == 1
    assert "Thunder rolls." in _user_turns(alex)
    assert "Thunder rolls." not in _user_turns(sam)


def test_direct_message_stores_mail_and_notifies(service, chat_sink):
    service.spawn(AgentProfile(id="a1", name="Alex"))
    sam = service.spawn(AgentProfile(id="a2", name="Sam"))
    _settle(service)

    service.coordination.send_direct_message("a1", "a2", "Bring torches")
    _settle(service)

    mail = service.mail.select_by_recipient("a2")
    assert [(m.sender_name, m.content, m.subject) for m in mail] == [
        ("Alex", "Bring torches", "Direct message from Alex")
    ]
    assert ("Alex", "Alex says to Sam: Bring torches") in chat_sink.lines
    assert "Alex says to you: Bring torches" in _user_turns(sam)


def test_update_state_for_unknown_agent_is_false(service):
    assert service.coordination.update_state("nobody", "hello") is False
    assert service.coordination.find_agent("nobody") is None


def test_death_annotates_contacts(service):
    alex = service.spawn(AgentProfile(id="a1", name="Alex"))
    service.spawn(AgentProfile(id="a2", name="Sam"))
    _settle(service)

    service.coordination.notify_agent_death("Sam", "a2")
    _settle(service)

    assert alex.memory.get_contact("Sam").notes.endswith("Died, will respawn.")
    assert any("has died" in text for text in _user_turns(alex))


def test_despawn_drains_cleans_up_and_notifies(service):
    alex = service.spawn(AgentProfile(id="a1", name="Alex"))
    sam = service.spawn(AgentProfile(id="a2", name="Sam"))
    _settle(service)
    sam.memory.write_page("plans", "Build a farm")

    assert service.despawn("a2") is True
    _settle(service)

    assert "a2" not in service.roster
    assert service.roster.live_ids() == ["a1"]
    assert sam.loop.history.turns() == []
    assert sam.memory.get_pages() == []
    assert any("Agent 'Sam' has left the world." == t for t in _user_turns(alex))
    assert "Left the world." in alex.memory.get_contact("Sam").notes
    assert service.despawn("a2") is False


def test_update_agent_flows_to_prompt_and_scheduler(service, model):
    runtime = service.spawn(AgentProfile(id="a1", name="Alex"))

    service.update_agent("a1", name="Alexandra", custom_prompt="Be brief.")
    model.queue('{"actions": [], "message": ""}')
    runtime.loop.update_state("hi").result(timeout=5)
    runtime.loop.process_llm().result(timeout=5)

    system = model.calls[0][0].content
    assert "You are Alexandra" in system
    assert "Be brief." in system

    service.update_agent("a1", active=False)
    assert service.roster.live_ids() == []
    assert service.roster.loop_for("a1") is None
    with pytest.raises(ValueError):
        service.update_agent("a1", id="other")


def test_duplicate_spawn_is_rejected(service):
    service.spawn(AgentProfile(id="a1", name="Alex"))
    with pytest.raises(ValueError):
        service.spawn(AgentProfile(id="a1", name="Alex again"))
