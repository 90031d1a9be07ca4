"""Tests for the background tick driver."""

import pytest

from npc_cognition.tick_driver import TickDriver

from conftest import wait_until


def test_stops_after_max_ticks():
    calls = []
    driver = TickDriver(lambda: calls.append(1), tick_interval=0.01, max_ticks=3).start()
    driver.join(timeout=5)
    assert driver.ticks == 3
    assert len(calls) == 3


def test_tick_failures_do_not_stop_the_driver():
    def explode():
        raise RuntimeError("boom")

    with TickDriver(explode, tick_interval=0.01) as driver:
        assert wait_until(lambda: driver.ticks >= 3)


def test_rejects_non_positive_interval():
    with pytest.raises(ValueError):
        TickDriver(lambda: None, tick_interval=0)
