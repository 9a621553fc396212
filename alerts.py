# ─────────────────────────────────────────────────────────────────
# alerts.py — Logging Setup & Transition Logging
#
# Logging is configured once, here. Every other module just asks
# for a named logger: logging.getLogger("timer"), "prober" ...
#
# Host transitions are written to the log from this file:
#   down      → WARNING
#   recovered → INFO
# Pushing them to browsers is the broadcaster's job, not ours.
# ─────────────────────────────────────────────────────────────────

import logging
import os

LOG_FORMAT = "%(asctime)s — %(levelname)s — [%(name)s] — %(message)s"

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format=LOG_FORMAT,
)

logger = logging.getLogger("alerts")


def configure_logging(level: str = "INFO"):
    """Re-applies the level once settings are loaded (LOG_LEVEL may come from .env)."""
    logging.getLogger().setLevel(level.upper())


def log_transition(event):
    """Writes one TransitionEvent to the log at a severity matching its direction."""

    line = (
        f"{event.message}: '{event.host}' ({event.address}) "
        f"{'offline' if not event.previous_online else 'online'} → "
        f"{'online' if event.new_online else 'offline'}"
    )

    if event.new_online:
        logger.info(f"✅ {line}")
    else:
        logger.warning(f"🚨 {line}")


def log_sweep(outcome):
    snapshot = outcome.snapshot
    online = sum(1 for result in snapshot.results.values() if result.online)

    logger.info(
        f"Sweep complete in {outcome.duration:.2f}s — "
        f"{online}/{len(snapshot)} online, {len(outcome.transitions)} transition(s)"
    )
