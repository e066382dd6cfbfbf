from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any, List

from cmcd_monitor.core.models import Anomaly, TelemetryEntry


T0 = datetime(2024, 5, 1, 12, 0, 0, tzinfo=timezone.utc)


def entry(offset_sec: float = 0.0, **fields: Any) -> TelemetryEntry:
    return TelemetryEntry(timestamp=T0 + timedelta(seconds=offset_sec), **fields)


def series(session_id: str, **columns: List[Any]) -> List[TelemetryEntry]:
    """One entry per row, e.g. series("s1", bitrate=[1, 2, 3])."""
    length = len(next(iter(columns.values())))
    return [
        entry(i, session_id=session_id, **{k: v[i] for k, v in columns.items()})
        for i in range(length)
    ]


class FakeClock:
    def __init__(self, start: float = 0.0) -> None:
        self.now = start

    def advance(self, seconds: float) -> None:
        self.now += seconds

    def __call__(self) -> float:
        return self.now


class RecordingSink:
    def __init__(self) -> None:
        self.anomalies: List[List[Anomaly]] = []
        self.sessions: List[List[str]] = []

    def on_anomalies(self, anomalies: List[Anomaly]) -> None:
        self.anomalies.append(list(anomalies))

    def on_active_sessions(self, session_ids: List[str]) -> None:
        self.sessions.append(list(session_ids))

    def flat(self) -> List[Anomaly]:
        return [a for batch in self.anomalies for a in batch]
