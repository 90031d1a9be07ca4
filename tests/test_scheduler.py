"""Tests for the cross-agent scheduler using a simulated clock."""

from concurrent.futures import Future

import pytest

from npc_cognition.scheduler import Scheduler
from npc_cognition.simulation import ManualClock


class FakeLoop:
    """Cognitive loop double with controllable idleness and outcome."""

    def __init__(self, result=True, idle=True, error=None):
        self.result = result
        self.idle = idle
        self.error = error
        self.calls = 0

    def is_idle(self):
        return self.idle

    def process_llm(self):
        self.calls += 1
        if self.error is not None:
            raise self.error
        future = Future()
        future.set_result(self.result)
        return future


class UnsettledLoop(FakeLoop):
    """Reports idle while the future of its last cycle is still unresolved."""

    def __init__(self):
        super().__init__()
        self.futures = []

    def process_llm(self):
        self.calls += 1
        future = Future()
        self.futures.append(future)
        return future


class FakeRoster:
    def __init__(self, **loops):
        self.loops = dict(loops)

    def live_ids(self):
        return list(self.loops)

    def loop_for(self, agent_id):
        return self.loops.get(agent_id)


def _scheduler(roster, cycle_interval=1.0, min_interval=0.0, clock=None):
    return Scheduler(
        roster,
        cycle_interval=cycle_interval,
        min_interval=min_interval,
        clock=clock or ManualClock(),
    )


def test_at_most_one_dispatch_per_cycle_in_rotation_order():
    roster = FakeRoster(a=FakeLoop(), b=FakeLoop(), c=FakeLoop())
    scheduler = _scheduler(roster)

    dispatched = [scheduler.run_cycle(now=float(t)).dispatched for t in range(6)]

    assert dispatched == ["a", "b", "c", "a", "b", "c"]
    assert [loop.calls for loop in roster.loops.values()] == [2, 2, 2]


def test_min_interval_respected_after_success():
    roster = FakeRoster(a=FakeLoop())
    scheduler = _scheduler(roster, min_interval=15.0)

    assert scheduler.run_cycle(now=0.0).dispatched == "a"
    report = scheduler.run_cycle(now=5.0)
    assert report.dispatched is None
    assert report.skipped == ["a"]
    assert scheduler.run_cycle(now=14.9).dispatched is None
    assert scheduler.run_cycle(now=15.0).dispatched == "a"
    assert scheduler.entry("a").last_success == 15.0


def test_failure_does_not_update_last_success():
    loop = FakeLoop(result=False)
    scheduler = _scheduler(FakeRoster(a=loop), min_interval=15.0)

    scheduler.run_cycle(now=0.0)
    assert scheduler.entry("a").last_success is None
    assert scheduler.run_cycle(now=1.0).dispatched == "a"
    assert loop.calls == 2
    assert scheduler.entry("a").success_count == 0


def test_busy_agent_is_skipped_and_requeued():
    roster = FakeRoster(a=FakeLoop(idle=False), b=FakeLoop())
    scheduler = _scheduler(roster)

    report = scheduler.run_cycle(now=0.0)

    assert report.dispatched == "b"
    assert report.skipped == ["a"]
    assert roster.loops["a"].calls == 0
    assert scheduler.rotation() == ["a", "b"]


def test_idle_cycle_examines_each_agent_once():
    roster = FakeRoster(a=FakeLoop(idle=False), b=FakeLoop(idle=False))
    scheduler = _scheduler(roster)

    report = scheduler.run_cycle(now=0.0)

    assert report.dispatched is None
    assert report.examined == 2
    assert scheduler.rotation() == ["a", "b"]


def test_new_agents_join_at_tail_and_departed_are_removed():
    roster = FakeRoster(a=FakeLoop(), b=FakeLoop())
    scheduler = _scheduler(roster)
    assert scheduler.run_cycle(now=0.0).dispatched == "a"

    roster.loops["c"] = FakeLoop()
    del roster.loops["b"]

    assert scheduler.run_cycle(now=1.0).dispatched == "a"
    assert scheduler.rotation() == ["c", "a"]
    assert scheduler.entry("b") is None
    assert scheduler.run_cycle(now=2.0).dispatched == "c"


def test_missing_loop_is_dropped():
    class GhostRoster(FakeRoster):
        def live_ids(self):
            return ["ghost", *self.loops]

    scheduler = _scheduler(GhostRoster(a=FakeLoop()))

    report = scheduler.run_cycle(now=0.0)

    assert report.dropped == ["ghost"]
    assert report.dispatched == "a"


def test_dispatch_exception_does_not_stop_cycle():
    roster = FakeRoster(bad=FakeLoop(error=RuntimeError("boom")), good=FakeLoop())
    scheduler = _scheduler(roster)

    report = scheduler.run_cycle(now=0.0)

    assert report.dispatched == "good"
    assert "bad" in report.skipped
    assert set(scheduler.rotation()) == {"bad", "good"}


def test_on_tick_respects_cycle_interval():
    clock = ManualClock()
    roster = FakeRoster(a=FakeLoop(), b=FakeLoop())
    scheduler = _scheduler(roster, cycle_interval=5.0, clock=clock)

    assert scheduler.on_tick().dispatched == "a"
    clock.advance(3.0)
    assert scheduler.on_tick() is None
    clock.advance(2.0)
    assert scheduler.on_tick().dispatched == "b"


def test_update_settings_at_runtime():
    clock = ManualClock()
    scheduler = _scheduler(FakeRoster(a=FakeLoop()), cycle_interval=5.0, clock=clock)
    scheduler.on_tick()

    scheduler.update_settings(cycle_interval=1.0, min_interval=0.5)
    clock.advance(1.0)

    assert scheduler.on_tick().dispatched == "a"
    with pytest.raises(ValueError):
        scheduler.update_settings(cycle_interval=0)


def test_wait_for_inflight_tracks_pending_futures():
    loop = UnsettledLoop()
    scheduler = _scheduler(FakeRoster(a=loop), min_interval=10.0)
    scheduler.run_cycle(now=0.0)

    assert scheduler.wait_for_inflight(timeout=0.01) is False
    loop.futures[0].set_result(True)
    assert scheduler.wait_for_inflight(timeout=1.0) is True
    assert scheduler.entry("a").last_success == 0.0


def test_idle_agent_with_unrecorded_result_is_not_redispatched():
    loop = UnsettledLoop()
    scheduler = _scheduler(FakeRoster(a=loop), min_interval=1000.0)

    assert scheduler.run_cycle(now=0.0).dispatched == "a"
    for _ in range(50):
        assert scheduler.run_cycle(now=0.0).dispatched is None
    assert loop.calls == 1

    loop.futures[0].set_result(True)

    assert scheduler.entry("a").last_success == 0.0
    assert scheduler.run_cycle(now=1.0).dispatched is None
    assert scheduler.run_cycle(now=1000.0).dispatched == "a"
    assert loop.calls == 2
