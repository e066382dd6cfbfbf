from __future__ import annotations

from typing import Dict, Iterable, List

from .models import TelemetryEntry


def group_by_session(entries: Iterable[TelemetryEntry]) -> Dict[str, List[TelemetryEntry]]:
    """Partition entries by session id, keeping first-seen session order.

    Entries without a session id are grouped under ``UNKNOWN_SESSION``.
    Arrival order is preserved within each group.
    """
    groups: Dict[str, List[TelemetryEntry]] = {}
    for entry in entries:
        groups.setdefault(entry.session_key, []).append(entry)
    return groups


def active_session_ids(entries: Iterable[TelemetryEntry]) -> List[str]:
    """Distinct reported session ids in first-seen order."""
    return list(dict.fromkeys(e.session_id for e in entries if e.session_id))
