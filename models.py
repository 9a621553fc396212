# ─────────────────────────────────────────────────────────────────
# models.py — Data Models (Pydantic Schemas)
#
# Every shape the monitor passes around lives here: hosts, probe
# results, snapshots, transition events and the login request body.
#
# Results, snapshots and events are FROZEN. Once a probe produces
# a result nobody edits it — a new sweep produces new objects and
# the old snapshot is swapped out as a whole.
# ─────────────────────────────────────────────────────────────────

from datetime import datetime, timezone
from enum import Enum
from typing import Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Host(BaseModel):
    """
    One monitored server, e.g.
    {
        "name": "Mail Server",
        "address": "192.168.0.10"
    }
    """

    model_config = ConfigDict(frozen=True)

    name: str = Field(min_length=1)      # unique key, shown on the dashboard
    address: str = Field(min_length=1)   # IP address or hostname to ping


class ProbeResult(BaseModel):
    """
    The outcome of a single reachability check.

    latency_ms is only present when the host answered.
    error carries a short cause ("timeout", "unknown host" ...) when it did not.
    """

    model_config = ConfigDict(frozen=True)

    host: str
    address: str
    online: bool
    latency_ms: Optional[int] = Field(default=None, ge=0)
    timestamp: datetime = Field(default_factory=utcnow)
    error: Optional[str] = None

    @model_validator(mode="after")
    def _latency_only_when_online(self):
        if self.online and self.latency_ms is None:
            raise ValueError("an online result must carry latency_ms")
        if not self.online and self.latency_ms is not None:
            raise ValueError("an offline result cannot carry latency_ms")
        return self


class StateSnapshot(BaseModel):
    """Most recent ProbeResult per host name. timestamp is None before the first sweep."""

    model_config = ConfigDict(frozen=True)

    results: Dict[str, ProbeResult] = Field(default_factory=dict)
    timestamp: Optional[datetime] = None

    def get(self, name: str) -> Optional[ProbeResult]:
        return self.results.get(name)

    def __len__(self):
        return len(self.results)


class Classification(str, Enum):
    RECOVERED = "recovered"   # offline → online
    DOWN = "down"             # online → offline


class TransitionEvent(BaseModel):
    model_config = ConfigDict(frozen=True)

    host: str
    address: str
    previous_online: bool
    new_online: bool
    classification: Classification
    timestamp: datetime
    message: str


class SweepOutcome(BaseModel):
    """What one completed sweep produced, handed back to whoever triggered it."""

    model_config = ConfigDict(frozen=True)

    snapshot: StateSnapshot
    transitions: list[TransitionEvent] = Field(default_factory=list)
    duration: float = 0.0


class LoginRequest(BaseModel):
    """
    Shape of the JSON body for POST /login
    {
        "username": "admin",
        "password": "secret"
    }
    """

    username: str = Field(min_length=1, max_length=50)
    password: str = Field(min_length=1, max_length=100)
