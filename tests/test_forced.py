from __future__ import annotations

from cmcd_monitor.core.forced import (
    FORCED_ANOMALY_TEMPLATES,
    create_forced_anomaly,
    create_simulation_fallback,
)
from cmcd_monitor.core.models import AnomalyType, Severity

from .helpers import entry


def test_forced_without_hint_uses_last_entry() -> None:
    batch = [entry(0, session_id="first"), entry(1, session_id="last", force_detection=True)]
    anomaly = create_forced_anomaly(batch)
    assert anomaly.type == AnomalyType.QUALITY_DEGRADATION
    assert anomaly.severity == Severity.MEDIUM
    assert anomaly.affected_metrics == ["br", "mtp"]
    assert anomaly.context["sessionId"] == "last"


def test_startup_delay_hint() -> None:
    batch = [entry(0, session_id="s1", is_simulation=True, force_detection=True, anomaly_type="STARTUP_DELAY")]
    anomaly = create_forced_anomaly(batch)
    assert anomaly.type == AnomalyType.STARTUP_DELAY
    assert anomaly.severity == Severity.MEDIUM
    assert anomaly.affected_metrics == ["dl", "su"]
    assert anomaly.context == {"sessionId": "s1", "simulation": True, "requestedType": "STARTUP_DELAY"}


def test_every_hint_maps_to_its_category() -> None:
    expected = {
        "BUFFERING": (AnomalyType.BUFFERING, Severity.HIGH),
        "QUALITY_DEGRADATION": (AnomalyType.QUALITY_DEGRADATION, Severity.MEDIUM),
        "NETWORK_ISSUE": (AnomalyType.NETWORK_ISSUE, Severity.HIGH),
        "STARTUP_DELAY": (AnomalyType.STARTUP_DELAY, Severity.MEDIUM),
        "PLAYBACK_STALL": (AnomalyType.PLAYBACK_STALL, Severity.CRITICAL),
    }
    assert set(FORCED_ANOMALY_TEMPLATES) == set(expected)
    for hint, (kind, severity) in expected.items():
        anomaly = create_forced_anomaly([entry(0, force_detection=True, anomaly_type=hint)])
        assert (anomaly.type, anomaly.severity) == (kind, severity)
        assert anomaly.context["sessionId"] == "unknown"


def test_unknown_hint_falls_back_to_quality_degradation() -> None:
    anomaly = create_forced_anomaly([entry(0, force_detection=True, anomaly_type="SOMETHING_ELSE")])
    assert anomaly.type == AnomalyType.QUALITY_DEGRADATION
    assert anomaly.message == "Simulated quality degradation detected"
    assert anomaly.context["requestedType"] == "SOMETHING_ELSE"


def test_simulation_fallback() -> None:
    anomaly = create_simulation_fallback(entry(0, session_id="sim", bitrate=3000, is_simulation=True))
    assert anomaly.type == AnomalyType.QUALITY_DEGRADATION
    assert anomaly.severity == Severity.MEDIUM
    assert anomaly.context["sessionId"] == "sim"


def test_anomaly_wire_format() -> None:
    wire = create_forced_anomaly([entry(0, force_detection=True)]).to_wire()
    assert set(wire) == {"id", "timestamp", "type", "severity", "message", "affectedMetrics", "context", "recommendation"}
    assert wire["type"] == "quality_degradation"
    assert wire["severity"] == "medium"
    assert isinstance(wire["timestamp"], str)


def test_severity_rank() -> None:
    ranks = [s.rank for s in (Severity.LOW, Severity.MEDIUM, Severity.HIGH, Severity.CRITICAL)]
    assert ranks == sorted(ranks) and len(set(ranks)) == 4


def test_severity_orders_by_rank() -> None:
    shuffled = [Severity.CRITICAL, Severity.LOW, Severity.HIGH, Severity.MEDIUM]
    assert sorted(shuffled) == [Severity.LOW, Severity.MEDIUM, Severity.HIGH, Severity.CRITICAL]
    assert Severity.LOW < Severity.CRITICAL
    assert Severity.HIGH >= Severity.MEDIUM
    assert max(shuffled) is Severity.CRITICAL
