"""CMCD real-time anomaly monitor package.

Video players attach Common Media Client Data (CMCD, CTA-5004) to their
segment requests. This package buffers that telemetry per playback session,
evaluates it on a fixed cadence against deterministic quality-of-experience
rules, and pushes detected anomalies to connected observers.
"""

__all__ = [
    "config",
    "core",
    "data",
    "web",
    "utils",
]
