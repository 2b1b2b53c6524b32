from __future__ import annotations
from typing import List, Sequence

from integrity_core.actions.events import BaseAction
from integrity_app.models import Severity, SuspiciousActivity, TimelineEntry, TimelineRisk

SESSION_STARTED = "Typing session started"
SESSION_COMPLETED = "Typing session completed"

_RISK = {
    Severity.CRITICAL: TimelineRisk.HIGH,
    Severity.HIGH: TimelineRisk.HIGH,
    Severity.MEDIUM: TimelineRisk.MEDIUM,
    Severity.LOW: TimelineRisk.LOW,
}


def build_timeline(actions: Sequence[BaseAction], activities: Sequence[SuspiciousActivity]) -> List[TimelineEntry]:
    """Session boundaries plus every timestamped activity, stably sorted by time."""
    entries: List[TimelineEntry] = []
    if actions:
        entries.append(TimelineEntry(actions[0].timestamp, SESSION_STARTED, TimelineRisk.LOW))
    for a in activities:
        if a.timestamp is None:
            continue
        entries.append(TimelineEntry(a.timestamp, a.description, _RISK[a.severity]))
    if actions:
        entries.append(TimelineEntry(actions[-1].timestamp, SESSION_COMPLETED, TimelineRisk.LOW))
    # sorted() is stable: "started" stays first and "completed" last on ties
    return sorted(entries, key=lambda e: e.timestamp)
