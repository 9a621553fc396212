# ─────────────────────────────────────────────────────────────────
# prober.py — One Reachability Check per Host
#
# A probe is a single ICMP echo sent through the system `ping`
# binary, run as an asyncio subprocess so a sweep can ping many
# hosts at once on the one event loop.
#
# A host that does not answer is a NORMAL outcome. probe() never
# raises for it — it returns a ProbeResult with online=False and
# a short cause in `error`.
# ─────────────────────────────────────────────────────────────────

import asyncio
import logging
import platform
import re
import time
from typing import Iterable, List, Optional

from models import Host, ProbeResult, utcnow

logger = logging.getLogger("prober")

DEFAULT_TIMEOUT = 3.0

# ping gets a slightly shorter deadline than the probe so it can report its own
# failure before we have to kill it
DEADLINE_HEADROOM = 0.2

_LATENCY_RE = re.compile(r"time[=<]\s*([\d.]+)\s*ms", re.IGNORECASE)

_UNKNOWN_HOST_MARKERS = (
    "unknown host",
    "name or service not known",
    "could not find host",
    "cannot resolve",
    "temporary failure in name resolution",
    "no address associated",
)


def ping_deadline(timeout: float) -> float:
    return max(timeout - DEADLINE_HEADROOM, timeout / 2)


def build_ping_command(address: str, timeout: float, system: Optional[str] = None) -> List[str]:
    """Single-echo ping command for the current OS, with ping's own deadline just inside `timeout`."""
    deadline = ping_deadline(timeout)
    system = (system or platform.system()).lower()
    if system == "windows":
        return ["ping", "-n", "1", "-w", str(round(deadline * 1000)), address]
    if system == "darwin":
        return ["ping", "-c", "1", "-W", str(round(deadline * 1000)), address]
    # iputils accepts fractional seconds
    return ["ping", "-c", "1", "-W", f"{deadline:.3g}", address]


def parse_latency(output: str) -> Optional[int]:
    match = _LATENCY_RE.search(output)
    if not match:
        return None
    return int(round(float(match.group(1))))


def describe_failure(returncode: int, output: str) -> str:
    text = output.lower()
    if any(marker in text for marker in _UNKNOWN_HOST_MARKERS):
        return "unknown host"
    if "unreachable" in text:
        return "host unreachable"
    if "permission denied" in text or "operation not permitted" in text:
        return "permission denied"
    if returncode == 1:
        return "no reply"
    return f"ping exited with code {returncode}"


def offline(host: Host, error: str) -> ProbeResult:
    return ProbeResult(host=host.name, address=host.address, online=False, error=error)


async def probe(host: Host, timeout: float = DEFAULT_TIMEOUT) -> ProbeResult:
    """
    Pings `host` once and reports what happened.

    Returns within `timeout` seconds whatever the network does.
    Latency is rounded to the nearest millisecond.
    """

    command = build_ping_command(host.address, timeout)
    started = time.monotonic()

    try:
        process = await asyncio.create_subprocess_exec(
            *command,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
    except FileNotFoundError:
        logger.error("The 'ping' binary was not found on PATH")
        return offline(host, "ping not available")
    except PermissionError:
        return offline(host, "permission denied")
    except OSError as exc:
        return offline(host, f"ping failed to start: {exc}")

    try:
        remaining = max(0.0, timeout - (time.monotonic() - started))
        stdout, stderr = await asyncio.wait_for(process.communicate(), remaining)
    except asyncio.TimeoutError:
        # Slow to time out counts as a failed probe, not a stuck sweep
        try:
            process.kill()
        except ProcessLookupError:
            pass
        await process.wait()
        logger.debug(f"Probe of '{host.name}' ({host.address}) timed out")
        return offline(host, "timeout")

    output = (stdout or b"").decode(errors="replace") + (stderr or b"").decode(errors="replace")

    if process.returncode != 0:
        error = describe_failure(process.returncode, output)
        logger.debug(f"Probe of '{host.name}' ({host.address}) failed: {error}")
        return offline(host, error)

    latency = parse_latency(output)
    if latency is None:
        # Some ping builds omit time= on very fast replies
        latency = int(round((time.monotonic() - started) * 1000))

    return ProbeResult(
        host=host.name,
        address=host.address,
        online=True,
        latency_ms=latency,
        timestamp=utcnow(),
    )


class Prober:
    """Runs probes with a fixed timeout; probe_all caps how many run at the same time."""

    def __init__(self, timeout: float = DEFAULT_TIMEOUT, max_concurrent: int = 32, probe_fn=None):
        self.timeout = timeout
        self.max_concurrent = max_concurrent
        # Tests swap in a fake coroutine function with the same signature as probe()
        self._probe_fn = probe_fn or probe

    async def probe(self, host: Host) -> ProbeResult:
        try:
            return await self._probe_fn(host, self.timeout)
        except Exception as exc:
            logger.exception(f"Unexpected error probing '{host.name}'")
            return offline(host, f"probe error: {exc}")

    async def probe_all(self, hosts: Iterable[Host]) -> List[ProbeResult]:
        """Probes every host and returns once ALL have answered, in the order given."""
        semaphore = asyncio.Semaphore(self.max_concurrent)

        async def bounded(host: Host):
            async with semaphore:
                return await self.probe(host)

        return list(await asyncio.gather(*(bounded(host) for host in hosts)))
