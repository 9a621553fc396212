# ─────────────────────────────────────────────────────────────────
# database.py — In-Memory State Store
#
# Holds the ONE live snapshot: the latest ProbeResult per host.
# Nothing is persisted — a restart starts from an empty snapshot
# and the first sweep fills it.
#
# The snapshot is never edited in place. A sweep builds a complete
# new StateSnapshot and swap() replaces the reference in a single
# assignment, so a reader sees either the old sweep or the new one,
# never a mix of both.
# ─────────────────────────────────────────────────────────────────

from typing import Iterable

from models import ProbeResult, StateSnapshot, utcnow


class StateStore:
    def __init__(self):
        self._snapshot = StateSnapshot()

    def read(self) -> StateSnapshot:
        """The current snapshot. Safe to hold on to — it will never change underneath you."""
        return self._snapshot

    def swap(self, results: Iterable[ProbeResult]) -> StateSnapshot:
        """
        Replaces the whole snapshot with `results`.
        Hosts missing from `results` are dropped, so the snapshot mirrors exactly one sweep.
        """
        snapshot = StateSnapshot(
            results={result.host: result for result in results},
            timestamp=utcnow(),
        )
        self._snapshot = snapshot
        return snapshot

    def exchange(self, results: Iterable[ProbeResult]):
        """
        Swaps in `results` and returns (previous, current).
        No await between the read and the write, so on the event loop this is one atomic step.
        """
        previous = self._snapshot
        return previous, self.swap(results)
