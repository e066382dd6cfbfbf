"""Core primitives: telemetry models, buffers, detectors, and the processor.

Detectors are deterministic threshold rules evaluated per playback session
over a batch of recent CMCD entries.
"""
