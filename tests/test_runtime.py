"""Tests for the agent service: scheduling through ticks, settings and logging."""

import structlog

from npc_cognition.logging import configure_logging
from npc_cognition.models import AgentProfile

from conftest import wait_until


def test_tick_dispatches_agents_in_rotation(service, model, clock):
    model.default = '{"actions": [], "message": ""}'
    service.spawn(AgentProfile(id="a1", name="Alex"))
    service.spawn(AgentProfile(id="a2", name="Sam"))
    assert wait_until(lambda: all(rt.loop.is_idle() for rt in service.roster.all()))

    first = service.tick()
    service.scheduler.wait_for_inflight(timeout=5)
    assert service.tick() is None
    clock.advance(1.0)
    second = service.tick()
    service.scheduler.wait_for_inflight(timeout=5)

    assert first.dispatched == "a1"
    assert second.dispatched == "a2"
    assert service.scheduler.entry("a1").success_count == 1


def test_inactive_agents_are_not_dispatched(service, model):
    model.default = '{"actions": [], "message": ""}'
    service.spawn(AgentProfile(id="a1", name="Alex", active=False))

    report = service.tick()

    assert report.dispatched is None
    assert model.calls == []


def test_update_settings_changes_scheduler_pacing(service):
    config = service.update_settings(llm_processing_interval=3.0)

    assert config.llm_processing_interval == 3.0
    assert config.llm_min_interval == 2.0
    assert service.scheduler.cycle_interval == 3.0


def test_llm_clients_are_shared_per_backend(service):
    assert service.llm_for("default") is service.llm_for("default")


def test_shutdown_drains_loops(service):
    runtime = service.spawn(AgentProfile(id="a1", name="Alex"))
    runtime.loop.update_state("hello")

    service.shutdown()

    assert wait_until(runtime.loop.is_idle)
    assert runtime.loop.update_state("late") is None


def test_configure_logging_json(capsys):
    try:
        configure_logging("INFO", json_output=True)
        structlog.get_logger("test").info("hello_event", agent_id="a1")
        err = capsys.readouterr().err
        assert '"event": "hello_event"' in err
        assert '"agent_id": "a1"' in err
    finally:
        structlog.reset_defaults()
