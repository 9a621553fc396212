from __future__ import annotations

import asyncio
import sys
from pathlib import Path
from typing import Dict, List, Optional

import pytest

REPO_ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(REPO_ROOT))

from config import Settings  # noqa: E402
from models import Host, ProbeResult  # noqa: E402
from service import MonitorService  # noqa: E402


class FakeNetwork:
    """
    Stands in for the real `ping`. reachable maps address → online.
    Set `gate` to an asyncio.Event to hold every probe until it is set.
    """

    def __init__(self, reachable: Optional[Dict[str, bool]] = None) -> None:
        self.reachable = dict(reachable or {})
        self.calls: List[str] = []
        self.gate: Optional[asyncio.Event] = None
        self.in_flight = 0
        self.max_in_flight = 0

    async def probe(self, host: Host, timeout: float) -> ProbeResult:
        self.calls.append(host.name)
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.gate is not None:
                await self.gate.wait()
            else:
                await asyncio.sleep(0)
        finally:
            self.in_flight -= 1

        online = self.reachable.get(host.address, False)
        return ProbeResult(
            host=host.name,
            address=host.address,
            online=online,
            latency_ms=4 if online else None,
            error=None if online else "no reply",
        )


@pytest.fixture
def network() -> FakeNetwork:
    return FakeNetwork()


@pytest.fixture
def make_service(network):
    def _make(servers: Dict[str, str], **overrides) -> MonitorService:
        settings = Settings(servers=servers, users={"admin": "unused"}, **overrides)
        return MonitorService(settings, probe_fn=network.probe)

    return _make
