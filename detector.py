# ─────────────────────────────────────────────────────────────────
# detector.py — Online/Offline Transition Detection
#
# Pure functions: same inputs, same output, no I/O, no state.
# ─────────────────────────────────────────────────────────────────

from typing import Iterable, List, Optional

from models import Classification, ProbeResult, StateSnapshot, TransitionEvent

MESSAGES = {
    Classification.RECOVERED: "Host recovered",
    Classification.DOWN: "Host went down",
}


def detect(previous: Optional[ProbeResult], current: ProbeResult) -> Optional[TransitionEvent]:
    """
    Compares a host's new result with its last stored one.

    Returns None on the first observation (no baseline) or when the
    online flag did not change. Otherwise returns a TransitionEvent:
      offline → online = recovered
      online → offline = down
    """

    if previous is None or previous.online == current.online:
        return None

    classification = Classification.RECOVERED if current.online else Classification.DOWN

    return TransitionEvent(
        host=current.host,
        address=current.address,
        previous_online=previous.online,
        new_online=current.online,
        classification=classification,
        timestamp=current.timestamp,
        message=MESSAGES[classification],
    )


def detect_all(previous: StateSnapshot, results: Iterable[ProbeResult]) -> List[TransitionEvent]:
    events = []
    for result in results:
        event = detect(previous.get(result.host), result)
        if event is not None:
            events.append(event)
    return events
