"""
Fair cross-agent scheduler.

Once per ``T_cycle`` the scheduler walks a FIFO rotation of live agents and
advances at most one of them: the first that is idle and whose last
successful cycle is at least ``T_min`` old. Every examined agent goes back
to the tail.
"""

import threading
import time
from collections import deque
from concurrent.futures import Future
from typing import Callable, Optional, Protocol

import structlog

from .models import CycleReport, SchedulingEntry

logger = structlog.get_logger(__name__)


class Schedulable(Protocol):
    """What the scheduler needs from an agent's cognitive loop."""

    def is_idle(self) -> bool: ...

    def process_llm(self) -> Future: ...


class AgentDirectory(Protocol):
    """Live roster view used during reconciliation."""

    def live_ids(self) -> list[str]: ...

    def loop_for(self, agent_id: str) -> Optional[Schedulable]: ...


class Scheduler:
    """Dispatches at most one agent per cycle in round-robin order."""

    def __init__(
        self,
        roster: AgentDirectory,
        cycle_interval: float = 5.0,
        min_interval: float = 15.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Args:
            roster: Source of live agent ids and their loops
            cycle_interval: T_cycle, seconds between dispatch attempts
            min_interval: T_min, seconds between two successful cycles of one agent
            clock: Monotonic time source, injectable for tests
        """
        self.roster = roster
        self.cycle_interval = cycle_interval
        self.min_interval = min_interval
        self.clock = clock
        self._lock = threading.RLock()
        self._settled = threading.Condition(self._lock)
        self._inflight: dict[str, Future] = {}
        self._rotation: deque[str] = deque()
        self._entries: dict[str, SchedulingEntry] = {}
        self._last_cycle: Optional[float] = None
        self.reports: deque[CycleReport] = deque(maxlen=256)

    def update_settings(
        self,
        cycle_interval: Optional[float] = None,
        min_interval: Optional[float] = None,
    ) -> None:
        """Change T_cycle or T_min while running."""
        with self._lock:
            if cycle_interval is not None:
                if cycle_interval <= 0:
                    raise ValueError("cycle_interval must be positive")
                self.cycle_interval = cycle_interval
            if min_interval is not None:
                if min_interval < 0:
                    raise ValueError("min_interval must not be negative")
                self.min_interval = min_interval
        logger.info(
            "scheduler_settings_updated",
            cycle_interval=self.cycle_interval,
            min_interval=self.min_interval,
        )

    def on_tick(self) -> Optional[CycleReport]:
        """World tick hook; runs a cycle when T_cycle has elapsed since the last one."""
        try:
            now = self.clock()
            with self._lock:
                if self._last_cycle is not None and now - self._last_cycle < self.cycle_interval:
                    return None
                self._last_cycle = now
            return self.run_cycle(now)
        except Exception:
            logger.exception("scheduler_tick_failed")
            return None

    def run_cycle(self, now: Optional[float] = None) -> CycleReport:
        """Reconcile the rotation and dispatch at most one eligible agent."""
        now = self.clock() if now is None else now
        report = CycleReport(timestamp=now)
        with self._lock:
            try:
                self._reconcile()
            except Exception:
                logger.exception("roster_reconcile_failed")

            attempts = len(self._rotation)
            while attempts > 0 and self._rotation:
                attempts -= 1
                agent_id = self._rotation.popleft()
                report.examined += 1
                try:
                    loop = self.roster.loop_for(agent_id)
                    if loop is None:
                        self._entries.pop(agent_id, None)
                        report.dropped.append(agent_id)
                        continue
                    if not self._eligible(agent_id, loop, now):
                        self._rotation.append(agent_id)
                        report.skipped.append(agent_id)
                        continue
                    self._dispatch(agent_id, loop, now)
                    self._rotation.append(agent_id)
                    report.dispatched = agent_id
                    break
                except Exception:
                    logger.exception("agent_dispatch_failed", agent_id=agent_id)
                    if agent_id not in self._rotation:
                        self._rotation.append(agent_id)
                    report.skipped.append(agent_id)

        self.reports.append(report)
        if report.dispatched is None:
            logger.debug("scheduler_cycle_idle", examined=report.examined)
        return report

    def entry(self, agent_id: str) -> Optional[SchedulingEntry]:
        with self._lock:
            entry = self._entries.get(agent_id)
            return entry.model_copy() if entry else None

    def rotation(self) -> list[str]:
        with self._lock:
            return list(self._rotation)

    def wait_for_inflight(self, timeout: Optional[float] = None) -> bool:
        """Block until every dispatched cycle has finished and been recorded."""
        with self._settled:
            return self._settled.wait_for(lambda: not self._inflight, timeout=timeout)

    def _reconcile(self) -> None:
        live = self.roster.live_ids()
        live_set = set(live)
        for agent_id in list(self._rotation):
            if agent_id not in live_set:
                self._rotation.remove(agent_id)
                self._entries.pop(agent_id, None)
        for agent_id in live:
            if agent_id not in self._entries:
                self._entries[agent_id] = SchedulingEntry(agent_id=agent_id)
                self._rotation.append(agent_id)
                logger.debug("agent_joined_rotation", agent_id=agent_id)

    def _eligible(self, agent_id: str, loop: Schedulable, now: float) -> bool:
        # An idle loop may still have an unrecorded result pending.
        if agent_id in self._inflight:
            return False
        entry = self._entries[agent_id]
        if entry.last_success is not None and now - entry.last_success < self.min_interval:
            return False
        return loop.is_idle()

    def _dispatch(self, agent_id: str, loop: Schedulable, now: float) -> None:
        entry = self._entries[agent_id]
        entry.dispatch_count += 1
        logger.info("agent_dispatched", agent_id=agent_id, dispatch_count=entry.dispatch_count)
        future = loop.process_llm()
        self._inflight[agent_id] = future
        future.add_done_callback(lambda f: self._on_complete(agent_id, now, f))

    def _on_complete(self, agent_id: str, dispatched_at: float, future: Future) -> None:
        try:
            succeeded = (not future.cancelled()) and future.exception() is None and bool(
                future.result()
            )
        except Exception:
            succeeded = False
        with self._settled:
            entry = self._entries.get(agent_id)
            if entry is not None and succeeded:
                entry.last_success = dispatched_at
                entry.success_count += 1
            if self._inflight.get(agent_id) is future:
                del self._inflight[agent_id]
            self._settled.notify_all()
        logger.debug("agent_cycle_finished", agent_id=agent_id, success=succeeded)
