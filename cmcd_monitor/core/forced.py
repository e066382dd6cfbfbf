"""Deterministic anomalies for forced and simulated traffic.

Demo and test clients set ``forceDetection`` (optionally with an
``anomalyType`` hint) to get an anomaly of a chosen category without
accumulating real evidence. These paths skip every detector threshold,
including the minimum sample size.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence

from .models import Anomaly, AnomalyType, Severity, TelemetryEntry


@dataclass(frozen=True)
class ForcedTemplate:
    type: AnomalyType
    severity: Severity
    affected_metrics: List[str]
    message: str
    recommendation: str


FORCED_ANOMALY_TEMPLATES: Dict[str, ForcedTemplate] = {
    "BUFFERING": ForcedTemplate(
        type=AnomalyType.BUFFERING,
        severity=Severity.HIGH,
        affected_metrics=["bs", "bl"],
        message="Buffering issue detected",
        recommendation="Check network conditions or reduce video quality.",
    ),
    "QUALITY_DEGRADATION": ForcedTemplate(
        type=AnomalyType.QUALITY_DEGRADATION,
        severity=Severity.MEDIUM,
        affected_metrics=["br", "mtp"],
        message="Quality degradation detected",
        recommendation="Bandwidth fluctuation detected. User experience may be impacted.",
    ),
    "NETWORK_ISSUE": ForcedTemplate(
        type=AnomalyType.NETWORK_ISSUE,
        severity=Severity.HIGH,
        affected_metrics=["mtp", "rtp", "bl"],
        message="Network throughput issue detected",
        recommendation="Network conditions deteriorated significantly.",
    ),
    "STARTUP_DELAY": ForcedTemplate(
        type=AnomalyType.STARTUP_DELAY,
        severity=Severity.MEDIUM,
        affected_metrics=["dl", "su"],
        message="Excessive startup delay detected",
        recommendation="Initial buffering is taking longer than expected.",
    ),
    "PLAYBACK_STALL": ForcedTemplate(
        type=AnomalyType.PLAYBACK_STALL,
        severity=Severity.CRITICAL,
        affected_metrics=["bs", "bl", "pr"],
        message="Playback stalled",
        recommendation="Video has stopped playing due to insufficient buffer.",
    ),
}

# Used when the hint names no known category
_UNKNOWN_HINT_TEMPLATE = ForcedTemplate(
    type=AnomalyType.QUALITY_DEGRADATION,
    severity=Severity.MEDIUM,
    affected_metrics=["br", "mtp"],
    message="Simulated quality degradation detected",
    recommendation="This is a simulated anomaly for testing purposes.",
)


def has_forced_entry(entries: Sequence[TelemetryEntry]) -> bool:
    return any(e.force_detection for e in entries)


def _type_hint(entries: Sequence[TelemetryEntry]) -> Optional[str]:
    for e in entries:
        if e.anomaly_type:
            return e.anomaly_type
    return None


def create_forced_anomaly(entries: Sequence[TelemetryEntry]) -> Anomaly:
    """Synthesize the single anomaly for a batch holding a forced entry.

    The batch's last entry supplies the session; the first ``anomalyType``
    hint in the batch, if any, selects the category.
    """
    last = entries[-1]
    hint = _type_hint(entries)
    if hint is None:
        return Anomaly.create(
            type=AnomalyType.QUALITY_DEGRADATION,
            severity=Severity.MEDIUM,
            message="Forced test anomaly for UI verification",
            affected_metrics=["br", "mtp"],
            context={
                "sessionId": last.session_key,
                "note": "This is a forced test anomaly to verify UI functionality",
            },
            recommendation="This is just a test anomaly. No action required.",
        )

    template = FORCED_ANOMALY_TEMPLATES.get(hint, _UNKNOWN_HINT_TEMPLATE)
    return Anomaly.create(
        type=template.type,
        severity=template.severity,
        message=template.message,
        affected_metrics=template.affected_metrics,
        context={
            "sessionId": last.session_key,
            "simulation": any(e.is_simulation for e in entries),
            "requestedType": hint,
        },
        recommendation=template.recommendation,
    )


def create_simulation_fallback(trigger: TelemetryEntry) -> Anomaly:
    """Anomaly emitted when a simulation flush produced nothing."""
    return Anomaly.create(
        type=AnomalyType.QUALITY_DEGRADATION,
        severity=Severity.MEDIUM,
        message="Quality degradation detected (simulation)",
        affected_metrics=["br", "mtp"],
        context={
            "sessionId": trigger.session_key,
            "simulation": True,
            "br": trigger.bitrate,
        },
        recommendation="This is a simulated quality degradation. For testing purposes only.",
    )
