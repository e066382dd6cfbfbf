from __future__ import annotations

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


UNKNOWN_SESSION = "unknown"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class AnomalyType(str, Enum):
    BUFFERING = "buffering"
    QUALITY_DEGRADATION = "quality_degradation"
    NETWORK_ISSUE = "network_issue"
    PLAYER_ERROR = "player_error"
    PLAYBACK_STALL = "playback_stall"
    STARTUP_DELAY = "startup_delay"
    ABNORMAL_BITRATE = "abnormal_bitrate"
    BANDWIDTH_FLUCTUATION = "bandwidth_fluctuation"
    CDN_ISSUE = "cdn_issue"
    SEGMENT_ERROR = "segment_error"


class Severity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"

    @property
    def rank(self) -> int:
        return _SEVERITY_RANK[self]

    # Ordered by rank, not by the string value
    def __lt__(self, other: object) -> bool:
        if not isinstance(other, Severity):
            return NotImplemented
        return self.rank < other.rank

    def __le__(self, other: object) -> bool:
        if not isinstance(other, Severity):
            return NotImplemented
        return self.rank <= other.rank

    def __gt__(self, other: object) -> bool:
        if not isinstance(other, Severity):
            return NotImplemented
        return self.rank > other.rank

    def __ge__(self, other: object) -> bool:
        if not isinstance(other, Severity):
            return NotImplemented
        return self.rank >= other.rank


_SEVERITY_RANK = {
    Severity.LOW: 0,
    Severity.MEDIUM: 1,
    Severity.HIGH: 2,
    Severity.CRITICAL: 3,
}


class PlayerState(str, Enum):
    PLAYING = "playing"
    PAUSED = "paused"
    BUFFERING = "buffering"
    ENDED = "ended"


class TelemetryEntry(BaseModel):
    """One CMCD report from a playback client.

    Field aliases are the CMCD keys as they appear on the wire; the extended
    and control fields use the camelCase names the player SDK sends. The
    control flags (`is_simulation`, `one_shot`, `force_detection`,
    `anomaly_type`) only steer the processor and never feed a detector rule.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    timestamp: datetime
    session_id: Optional[str] = Field(None, alias="sid")
    content_id: Optional[str] = Field(None, alias="cid")

    # CMCD keys
    bitrate: Optional[float] = Field(None, alias="br", description="Encoded bitrate (kbps)")
    buffer_length: Optional[float] = Field(None, alias="bl", description="Buffer length (ms)")
    buffer_starvation: Optional[bool] = Field(None, alias="bs")
    object_duration: Optional[float] = Field(None, alias="d", description="Object duration (ms)")
    deadline: Optional[float] = Field(None, alias="dl", description="Deadline (ms)")
    measured_throughput: Optional[float] = Field(None, alias="mtp", description="Measured throughput (kbps)")
    requested_max_throughput: Optional[float] = Field(None, alias="rtp", description="Requested max throughput (kbps)")
    next_object_request: Optional[str] = Field(None, alias="nor")
    next_range_request: Optional[str] = Field(None, alias="nrr")
    object_type: Optional[str] = Field(None, alias="ot")
    playback_rate: Optional[float] = Field(None, alias="pr")
    streaming_format: Optional[str] = Field(None, alias="sf")
    stream_type: Optional[str] = Field(None, alias="st")
    startup: Optional[bool] = Field(None, alias="su")
    top_bitrate: Optional[float] = Field(None, alias="tb")
    version: Optional[int] = Field(None, alias="v")

    # Extended analysis fields
    resolution: Optional[str] = None
    player_state: Optional[PlayerState] = Field(None, alias="playerState")
    error_code: Optional[str] = Field(None, alias="errorCode")
    latency: Optional[float] = None
    raw_data: Optional[Dict[str, Any]] = Field(None, alias="rawData")

    # Control metadata
    is_simulation: bool = Field(False, alias="isSimulation")
    one_shot: bool = Field(False, alias="oneShot")
    force_detection: bool = Field(False, alias="forceDetection")
    anomaly_type: Optional[str] = Field(None, alias="anomalyType")

    @property
    def session_key(self) -> str:
        return self.session_id or UNKNOWN_SESSION


class Anomaly(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    id: str
    timestamp: datetime
    type: AnomalyType
    severity: Severity
    message: str
    affected_metrics: List[str] = Field(default_factory=list, alias="affectedMetrics")
    context: Dict[str, Any] = Field(default_factory=dict)
    recommendation: Optional[str] = None

    @classmethod
    def create(
        cls,
        type: AnomalyType,
        severity: Severity,
        message: str,
        affected_metrics: List[str],
        context: Dict[str, Any],
        recommendation: Optional[str] = None,
    ) -> "Anomaly":
        """Build an anomaly stamped with a fresh id and the detection time."""
        return cls(
            id=str(uuid.uuid4()),
            timestamp=utc_now(),
            type=type,
            severity=severity,
            message=message,
            affected_metrics=list(affected_metrics),
            context=context,
            recommendation=recommendation,
        )

    def to_wire(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)
