from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, List, Sequence

from ..config import DetectionConfig
from .forced import create_forced_anomaly, has_forced_entry
from .models import Anomaly, AnomalyType, Severity, TelemetryEntry
from .sessions import group_by_session


logger = logging.getLogger(__name__)

DetectorFunc = Callable[[Sequence[TelemetryEntry], DetectionConfig], List[Anomaly]]

# Throughput under this multiple of the bitrate leaves no headroom for the buffer
THROUGHPUT_HEADROOM = 1.5


def _sign(x: float) -> int:
    return (x > 0) - (x < 0)


def detect_buffering_issues(entries: Sequence[TelemetryEntry], config: DetectionConfig) -> List[Anomaly]:
    """Buffer starvation per session, plus low buffer levels per session."""
    anomalies: List[Anomaly] = []

    starved = [e for e in entries if e.buffer_starvation is True]
    for session_id, group in group_by_session(starved).items():
        if len(group) >= 2:
            anomalies.append(Anomaly.create(
                type=AnomalyType.BUFFERING,
                severity=Severity.CRITICAL,
                message=f"Frequent buffering detected in session {session_id}",
                affected_metrics=["bs", "bl"],
                context={
                    "sessionId": session_id,
                    "occurrences": len(group),
                    "timestamps": [e.timestamp for e in group],
                },
                recommendation="Reduce video quality, check network conditions, or increase initial buffer size",
            ))
        else:
            anomalies.append(Anomaly.create(
                type=AnomalyType.BUFFERING,
                severity=Severity.MEDIUM,
                message="Buffer starvation detected",
                affected_metrics=["bs", "bl"],
                context={"sessionId": session_id, "timestamp": group[0].timestamp},
                recommendation="Monitor for additional occurrences. If persistent, adjust ABR algorithm to be more conservative",
            ))

    low = [
        e for e in entries
        if e.buffer_length is not None and e.buffer_length < config.buffering_threshold_ms
    ]
    for session_id, group in group_by_session(low).items():
        anomalies.append(Anomaly.create(
            type=AnomalyType.BUFFERING,
            severity=Severity.LOW,
            message=f"Low buffer level detected in session {session_id}",
            affected_metrics=["bl"],
            context={
                "sessionId": session_id,
                "bufferLevels": [e.buffer_length for e in group],
                "timestamps": [e.timestamp for e in group],
            },
            recommendation="Monitor buffer trend. Consider pre-buffering more content or reducing bitrate",
        ))

    return anomalies


def count_reversals(values: Sequence[float]) -> int:
    """Number of up/down direction flips across consecutive triplets."""
    reversals = 0
    for i in range(2, len(values)):
        d1 = _sign(values[i - 1] - values[i - 2])
        d2 = _sign(values[i] - values[i - 1])
        if d1 != 0 and d2 != 0 and d1 != d2:
            reversals += 1
    return reversals


def detect_bitrate_anomalies(entries: Sequence[TelemetryEntry], config: DetectionConfig) -> List[Anomaly]:
    anomalies: List[Anomaly] = []

    for session_id, group in group_by_session(entries).items():
        with_bitrate = [e for e in group if e.bitrate is not None]
        if len(with_bitrate) < 3:
            continue

        previous = None
        drops = 0
        drop_timestamps = []
        for e in with_bitrate:
            # A zero previous bitrate has no meaningful relative drop
            if previous:
                if (previous - e.bitrate) / previous > config.quality_degradation_threshold:
                    drops += 1
                    drop_timestamps.append(e.timestamp)
            previous = e.bitrate

        if drops > 0:
            anomalies.append(Anomaly.create(
                type=AnomalyType.QUALITY_DEGRADATION,
                severity=Severity.HIGH if drops > 2 else Severity.MEDIUM,
                message=f"Quality degradation detected in session {session_id}",
                affected_metrics=["br", "mtp"],
                context={
                    "sessionId": session_id,
                    "bitrateDrops": drops,
                    "timestamps": drop_timestamps,
                },
                recommendation="Check network conditions, CDN performance, or adjust ABR algorithm",
            ))

        if len(with_bitrate) > 5:
            fluctuations = count_reversals([e.bitrate for e in with_bitrate])
            if fluctuations > 2:
                anomalies.append(Anomaly.create(
                    type=AnomalyType.BANDWIDTH_FLUCTUATION,
                    severity=Severity.MEDIUM,
                    message=f"Bitrate oscillation detected in session {session_id}",
                    affected_metrics=["br", "mtp"],
                    context={"sessionId": session_id, "fluctuations": fluctuations},
                    recommendation="Implement bitrate stabilization algorithms or increase buffer safety factor",
                ))

    return anomalies


def detect_startup_issues(entries: Sequence[TelemetryEntry], config: DetectionConfig) -> List[Anomaly]:
    anomalies: List[Anomaly] = []

    startup = [e for e in entries if e.startup is True]
    for session_id, group in group_by_session(startup).items():
        if len(group) > 2:
            anomalies.append(Anomaly.create(
                type=AnomalyType.STARTUP_DELAY,
                severity=Severity.HIGH,
                message=f"Multiple startup events detected in session {session_id}",
                affected_metrics=["su", "dl"],
                context={
                    "sessionId": session_id,
                    "startupCount": len(group),
                    "timestamps": [e.timestamp for e in group],
                },
                recommendation="Optimize initial segment delivery, reduce initial quality, or pre-buffer more content",
            ))

        long_delays = [
            e.deadline for e in group
            if e.deadline is not None and e.deadline > config.startup_delay_threshold_ms
        ]
        if long_delays:
            anomalies.append(Anomaly.create(
                type=AnomalyType.STARTUP_DELAY,
                severity=Severity.MEDIUM,
                message=f"Long startup delay detected in session {session_id}",
                affected_metrics=["su", "dl"],
                context={"sessionId": session_id, "delays": long_delays},
                recommendation="Optimize initial segment delivery or reduce initial quality",
            ))

    return anomalies


def detect_network_issues(entries: Sequence[TelemetryEntry], config: DetectionConfig) -> List[Anomaly]:
    anomalies: List[Anomaly] = []

    for session_id, group in group_by_session(entries).items():
        throughputs = [e.measured_throughput for e in group if e.measured_throughput is not None]
        if len(throughputs) < 3:
            continue

        max_tp = max(throughputs)
        min_tp = min(throughputs)
        fluctuation = (max_tp - min_tp) / max_tp * 100 if max_tp > 0 else 0.0
        if fluctuation > config.bandwidth_fluctuation_threshold_percent:
            anomalies.append(Anomaly.create(
                type=AnomalyType.NETWORK_ISSUE,
                severity=Severity.HIGH if fluctuation > 50 else Severity.MEDIUM,
                message=f"Network throughput fluctuation detected in session {session_id}",
                affected_metrics=["mtp", "rtp"],
                context={
                    "sessionId": session_id,
                    "fluctuationPercent": fluctuation,
                    "maxThroughput": max_tp,
                    "minThroughput": min_tp,
                },
                recommendation="Check network stability, consider using a more stable connection",
            ))

        starved = [
            e for e in group
            if e.measured_throughput is not None
            and e.bitrate is not None
            and e.measured_throughput < e.bitrate * THROUGHPUT_HEADROOM
        ]
        if len(starved) > 2:
            anomalies.append(Anomaly.create(
                type=AnomalyType.NETWORK_ISSUE,
                severity=Severity.HIGH,
                message=f"Throughput insufficient for selected bitrate in session {session_id}",
                affected_metrics=["mtp", "br"],
                context={
                    "sessionId": session_id,
                    "instances": len(starved),
                    "ratios": [
                        {
                            "throughput": e.measured_throughput,
                            "bitrate": e.bitrate,
                            "ratio": e.measured_throughput / e.bitrate if e.bitrate else None,
                        }
                        for e in starved
                    ],
                },
                recommendation="Reduce video quality, improve network conditions, or implement more conservative ABR",
            ))

    return anomalies


@dataclass
class DetectorSpec:
    key: str
    detect: DetectorFunc


# Execution order is the order anomalies are reported in
DETECTORS: List[DetectorSpec] = [
    DetectorSpec(key="buffering", detect=detect_buffering_issues),
    DetectorSpec(key="bitrate", detect=detect_bitrate_anomalies),
    DetectorSpec(key="startup", detect=detect_startup_issues),
    DetectorSpec(key="network", detect=detect_network_issues),
]


def detect_anomalies(entries: Sequence[TelemetryEntry], config: DetectionConfig) -> List[Anomaly]:
    """Run the detector pipeline over one batch.

    A batch containing a forced entry short-circuits to a single synthesized
    anomaly, ahead of the minimum sample size gate.
    """
    if entries and has_forced_entry(entries):
        logger.info("Forced anomaly detection triggered", extra={"batch_size": len(entries)})
        return [create_forced_anomaly(entries)]

    if len(entries) < config.min_sample_size:
        logger.debug(
            "Not enough logs for anomaly detection. Have %d, need %d",
            len(entries), config.min_sample_size,
        )
        return []

    anomalies: List[Anomaly] = []
    counts = {}
    for spec in DETECTORS:
        found = spec.detect(entries, config)
        counts[spec.key] = len(found)
        anomalies.extend(found)

    logger.debug("Detection results", extra={"counts": counts})
    return anomalies
