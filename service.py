# ─────────────────────────────────────────────────────────────────
# service.py — The Monitor Service
#
# Wires registry, prober, store, broadcaster and scheduler together
# and gives route handlers one object to talk to. Built once per
# process in the app lifespan (see main.py) and handed to routes
# through a FastAPI dependency.
# ─────────────────────────────────────────────────────────────────

import logging
from typing import Optional

from broadcaster import Broadcaster, Subscriber
from config import Settings
from database import StateStore
from models import ProbeResult, StateSnapshot, SweepOutcome
from prober import Prober
from registry import HostRegistry
from timer import Scheduler

logger = logging.getLogger("service")


class MonitorService:
    def __init__(self, settings: Settings, probe_fn=None):
        self.settings = settings
        self.registry = HostRegistry.from_mapping(settings.servers)
        self.prober = Prober(
            timeout=settings.probe_timeout,
            max_concurrent=settings.max_concurrent_probes,
            probe_fn=probe_fn,
        )
        self.store = StateStore()
        self.broadcaster = Broadcaster(self.store.read, queue_size=settings.subscriber_queue_size)
        self.scheduler = Scheduler(
            self.registry,
            self.prober,
            self.store,
            self.broadcaster,
            interval=settings.sweep_interval,
        )

    async def start(self):
        await self.scheduler.start()

    async def stop(self):
        await self.scheduler.stop()
        self.broadcaster.close_all()

    # ── Operations used by the routes ─────────────────────────────

    def current_snapshot(self) -> StateSnapshot:
        return self.store.read()

    async def probe_host(self, name: str) -> ProbeResult:
        """
        Pings one host right now, outside the sweep schedule.
        Raises HostNotFoundError for a name that is not configured.
        The result is returned to the caller only; the snapshot is not touched.
        """
        host = self.registry.lookup(name)
        return await self.prober.probe(host)

    def request_sweep(self) -> bool:
        return self.scheduler.request_sweep()

    async def run_sweep(self) -> Optional[SweepOutcome]:
        return await self.scheduler.run_sweep()

    def subscribe(self, user: str) -> Subscriber:
        return self.broadcaster.subscribe(user)

    def unsubscribe(self, subscriber: Subscriber):
        self.broadcaster.unsubscribe(subscriber)

    def status(self) -> dict:
        scheduler = self.scheduler
        return {
            "monitoring_active": scheduler.monitoring_active,
            "state": scheduler.state.value,
            "sweep_pending": scheduler.pending,
            "sweep_count": scheduler.sweep_count,
            "sweep_interval": scheduler.interval,
            "last_sweep_duration": scheduler.last_sweep_duration,
            "subscribers": self.broadcaster.subscriber_count,
            "hosts": len(self.registry),
        }
