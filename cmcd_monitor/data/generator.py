from __future__ import annotations

import random
import string
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from ..core.models import TelemetryEntry, utc_now


STREAMING_FORMATS = ["d", "h", "s", "o"]
OBJECT_TYPES = ["m", "a", "v", "av", "i", "c", "tt", "k", "o"]
STREAM_TYPES = ["v", "l"]
PLAYER_STATES = ["playing", "paused", "buffering", "ended"]
BITRATE_LADDER = [300, 500, 1000, 2000, 3000, 4500, 6000, 8000]

PATTERN_KINDS = ("buffer_starvation", "bitrate_oscillation", "startup_delay", "network_drop")


class TelemetryGenerator:
    """Produces plausible CMCD traffic, optionally seeded for repeatability.

    Random entries carry a realistic spread of optional keys; anomaly
    patterns are short per-session sequences that trip one detector each.
    """

    def __init__(self, seed: Optional[int] = None, now: Optional[datetime] = None) -> None:
        self._rng = random.Random(seed)
        self._now = now

    def _base_time(self) -> datetime:
        return self._now if self._now is not None else utc_now()

    def _token(self, length: int) -> str:
        return "".join(self._rng.choice(string.ascii_lowercase + string.digits) for _ in range(length))

    def session_id(self) -> str:
        return f"session-{self._token(8)}"

    def content_id(self) -> str:
        return f"content-{self._token(6)}"

    def _chance(self, probability: float) -> bool:
        return self._rng.random() < probability

    def _random_fields(self, session_id: Optional[str], content_id: Optional[str]) -> Dict[str, Any]:
        br = self._rng.choice(BITRATE_LADDER)
        fields: Dict[str, Any] = {
            "timestamp": self._base_time(),
            "sid": session_id or self.session_id(),
            "cid": content_id or self.content_id(),
            "br": br,
            "bl": self._rng.randint(1000, 10000),
            "sf": self._rng.choice(STREAMING_FORMATS),
            "st": self._rng.choice(STREAM_TYPES),
            "ot": self._rng.choice(OBJECT_TYPES),
        }
        if self._chance(0.7):
            fields["d"] = self._rng.randint(2000, 10000)
        if self._chance(0.5):
            fields["mtp"] = self._rng.randint(max(br - 1000, 300), br + 3000)
        if self._chance(0.2):
            fields["bs"] = True
        if self._chance(0.1):
            fields["su"] = True
        if self._chance(0.5):
            fields["pr"] = self._rng.choice([0, 1, 1.5, 2])
        if self._chance(0.3):
            fields["dl"] = self._rng.randint(500, 5000)
        if self._chance(0.4):
            fields["rtp"] = self._rng.randint(br, br * 3)
        if self._chance(0.8):
            fields["playerState"] = self._rng.choice(PLAYER_STATES)
        return fields

    def random_entry(self, session_id: Optional[str] = None, content_id: Optional[str] = None) -> TelemetryEntry:
        return TelemetryEntry.model_validate(self._random_fields(session_id, content_id))

    def anomaly_pattern(self, kind: Optional[str] = None) -> List[TelemetryEntry]:
        if kind is None:
            kind = self._rng.choice(PATTERN_KINDS)
        if kind not in PATTERN_KINDS:
            raise ValueError(f"Unknown anomaly pattern: {kind}")

        sid = self.session_id()
        cid = self.content_id()
        start = self._base_time()
        rows: List[Dict[str, Any]] = []

        def entry(offset_ms: int, **overrides: Any) -> None:
            fields = self._random_fields(sid, cid)
            fields.update(overrides)
            fields["timestamp"] = start + timedelta(milliseconds=offset_ms)
            rows.append(fields)

        if kind == "buffer_starvation":
            for i in range(3):
                entry(i * 1000, bl=5000 - i * 1500, br=3000, bs=None)
            for i in range(2):
                entry(3000 + i * 1000, bl=0, bs=True, playerState="buffering")
            for i in range(2):
                entry(5000 + i * 1000, bl=(i + 1) * 1000, br=1000, bs=None, playerState="playing")
        elif kind == "bitrate_oscillation":
            for i, level in enumerate([6000, 3000, 6000, 2000, 5000, 2000]):
                entry(i * 1000, br=level, mtp=level + self._rng.randint(-500, 1000))
        elif kind == "startup_delay":
            for i in range(3):
                entry(i * 1500, su=True, dl=5000 - i * 1000, playerState="buffering" if i < 2 else "playing")
        else:
            for i in range(2):
                entry(i * 1000, br=4000, mtp=8000)
            for i in range(3):
                entry(2000 + i * 1000, br=4000, mtp=2500)

        return [TelemetryEntry.model_validate(r) for r in rows]

    def generate(self, count: int = 20) -> List[TelemetryEntry]:
        """``count`` random entries followed by two or three anomaly patterns."""
        entries = [self.random_entry() for _ in range(count)]
        for _ in range(self._rng.randint(2, 3)):
            entries.extend(self.anomaly_pattern())
        return entries
