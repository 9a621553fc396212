# ─────────────────────────────────────────────────────────────────
# timer.py — Sweep Scheduler
#
# A sweep = ping every host, compare with the last snapshot, swap
# in the new snapshot, push everything to the dashboards.
#
# Sweeps start from two places:
#   1. The repeating tick (every `interval` seconds)
#   2. On-demand requests (the "check now" button, POST /api/sweep)
#
# Only ONE sweep ever runs at a time:
#   - a tick that lands on a running sweep is skipped
#   - an on-demand request that lands on a running sweep is parked
#     in a single pending slot and runs right after; any further
#     requests while that slot is full are ignored
#
# A running sweep is never cancelled. stop() halts the ticking and
# waits for the in-flight sweep to finish.
# ─────────────────────────────────────────────────────────────────

import asyncio
import logging
import time
from enum import Enum
from typing import Optional

from alerts import log_sweep, log_transition
from broadcaster import Broadcaster
from database import StateStore
from detector import detect_all
from models import SweepOutcome
from prober import Prober
from registry import HostRegistry

logger = logging.getLogger("timer")

DEFAULT_INTERVAL = 30.0


class SchedulerState(str, Enum):
    IDLE = "idle"
    RUNNING = "running"


class Scheduler:
    def __init__(
        self,
        registry: HostRegistry,
        prober: Prober,
        store: StateStore,
        broadcaster: Broadcaster,
        interval: float = DEFAULT_INTERVAL,
    ):
        self.registry = registry
        self.prober = prober
        self.store = store
        self.broadcaster = broadcaster
        self.interval = interval

        self.monitoring_active = False
        self.sweep_count = 0
        self.last_sweep_duration: Optional[float] = None
        self.last_outcome: Optional[SweepOutcome] = None

        # Mutual exclusion for the sweep body. _running is the gate the
        # triggers look at; it is set synchronously before any await so
        # two triggers in the same loop iteration cannot both pass it.
        self._lock = asyncio.Lock()
        self._running = False
        self._pending = False
        self._stopped = False
        self._tick_task: Optional[asyncio.Task] = None
        self._tasks = set()

    @property
    def state(self) -> SchedulerState:
        return SchedulerState.RUNNING if self._running else SchedulerState.IDLE

    @property
    def pending(self):
        return self._pending

    # ── Lifecycle ─────────────────────────────────────────────────

    async def start(self):
        """Starts ticking. The first sweep runs immediately. Calling start() twice does nothing."""
        if self.monitoring_active:
            return

        self.monitoring_active = True
        self._stopped = False
        self._tick_task = asyncio.create_task(self._tick_loop(), name="sweep-ticker")

        logger.info(
            f"⏱️  Monitoring started — {len(self.registry)} host(s), "
            f"sweep every {self.interval:g}s"
        )

    async def stop(self):
        self.monitoring_active = False
        self._stopped = True
        self._pending = False

        if self._tick_task is not None:
            self._tick_task.cancel()
            try:
                await self._tick_task
            except asyncio.CancelledError:
                pass
            self._tick_task = None

        await self.wait_idle()
        logger.info("Monitoring stopped")

    async def wait_idle(self):
        """Waits until no background sweep (including a pending follow-up) is left."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks))

    # ── Triggers ──────────────────────────────────────────────────

    def request_sweep(self) -> bool:
        """
        On-demand sweep in the background.
        Returns True if a sweep started now, False if it was coalesced into the running one.
        """
        if self._running:
            self._coalesce()
            return False

        self._launch()
        return True

    async def run_sweep(self) -> Optional[SweepOutcome]:
        """Runs a sweep and waits for it. Returns None if one was already running (the request is coalesced)."""
        if self._running:
            self._coalesce()
            return None

        self._running = True
        try:
            return await self._sweep()
        finally:
            self._finish()

    # ── Internals ─────────────────────────────────────────────────

    def _coalesce(self):
        if self._stopped:
            return
        if self._pending:
            logger.info("Sweep already running with one queued — request ignored")
        else:
            self._pending = True
            logger.info("Sweep already running — request queued to run next")

    def _launch(self):
        self._running = True
        task = asyncio.create_task(self._background_sweep())
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _background_sweep(self):
        try:
            await self._sweep()
        finally:
            self._finish()

    def _finish(self):
        self._running = False
        if self._pending and not self._stopped:
            self._pending = False
            self._launch()

    async def _tick_loop(self):
        while self.monitoring_active:
            if self._running:
                logger.info("Previous sweep still running — skipping this tick")
            else:
                self._launch()
            await asyncio.sleep(self.interval)

    async def _sweep(self) -> Optional[SweepOutcome]:
        async with self._lock:
            started = time.monotonic()
            try:
                hosts = self.registry.list()

                # Fan out, then wait for EVERY probe — no partial snapshot is ever published
                results = await self.prober.probe_all(hosts)

                previous, snapshot = self.store.exchange(results)
                transitions = detect_all(previous, results)

                self.broadcaster.publish_sweep(snapshot, transitions)
            except Exception:
                logger.exception("Sweep failed — monitoring continues")
                return None

            duration = time.monotonic() - started
            outcome = SweepOutcome(snapshot=snapshot, transitions=transitions, duration=duration)

            self.sweep_count += 1
            self.last_sweep_duration = duration
            self.last_outcome = outcome

            for event in transitions:
                log_transition(event)
            log_sweep(outcome)

            return outcome
