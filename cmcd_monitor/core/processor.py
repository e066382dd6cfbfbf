from __future__ import annotations

import logging
import threading
import time
from typing import Callable, List, Optional, Protocol, Sequence

from ..config import ConfigStore
from .buffers import RollingWindow, SimulationBatch
from .detectors import detect_anomalies
from .forced import create_simulation_fallback
from .models import Anomaly, TelemetryEntry
from .sessions import active_session_ids


logger = logging.getLogger(__name__)


class AnomalySink(Protocol):
    """Receiver of evaluation output, owned by the transport layer."""

    def on_anomalies(self, anomalies: List[Anomaly]) -> None:
        ...

    def on_active_sessions(self, session_ids: List[str]) -> None:
        ...


class LogProcessor:
    """Single entry point for CMCD telemetry.

    Regular entries go into a bounded rolling window that a background thread
    evaluates every ``interval_ms``. Simulation entries accumulate in a small
    batch that flushes on a forced entry, on size, or on age. One-shot
    entries are evaluated on their own immediately.
    """

    def __init__(
        self,
        store: ConfigStore,
        sink: AnomalySink,
        *,
        capacity: int = 100,
        interval_ms: int = 1000,
        simulation_batch_size: int = 3,
        simulation_flush_ms: int = 3000,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.store = store
        self.sink = sink
        self.interval_ms = interval_ms
        self._window: RollingWindow[TelemetryEntry] = RollingWindow(capacity)
        self._simulation: SimulationBatch[TelemetryEntry] = SimulationBatch(
            max_size=simulation_batch_size, max_age_ms=simulation_flush_ms, clock=clock
        )
        self._lock = threading.Lock()
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def window(self) -> RollingWindow[TelemetryEntry]:
        return self._window

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    def start(self) -> None:
        if self._thread and self._thread.is_alive():
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._run, name="LogProcessor", daemon=True)
        self._thread.start()
        logger.info("Log processing started with interval: %dms", self.interval_ms)

    def stop(self) -> None:
        self._stop.set()
        if self._thread:
            self._thread.join(timeout=5)
            self._thread = None
            logger.info("Log processing stopped")

    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def _run(self) -> None:
        cadence = self.interval_ms / 1000.0
        while not self._stop.wait(timeout=cadence):
            try:
                self.process_buffer()
            except Exception:
                logger.exception("Evaluation tick failed")

    # ------------------------------------------------------------------
    # Ingress
    # ------------------------------------------------------------------
    def submit(self, entry: TelemetryEntry) -> List[Anomaly]:
        """Accept one entry.

        Returns the anomalies emitted as a direct result of this entry
        (simulation flush or one-shot evaluation); regular entries return an
        empty list and are evaluated on the next tick.
        """
        if entry.is_simulation:
            with self._lock:
                self._simulation.add(entry)
                batch = self._simulation.drain() if self._simulation.due(entry.force_detection) else None
            if batch is None:
                return []
            return self._flush_simulation(batch, trigger=entry)

        if entry.one_shot:
            forced = entry.model_copy(update={"force_detection": True})
            return self._evaluate([forced], reason="one_shot")

        with self._lock:
            self._window.add(entry)
        return []

    def flush_simulation(self) -> List[Anomaly]:
        """Flush the simulation batch if its age limit has passed."""
        with self._lock:
            batch = self._simulation.drain() if self._simulation.due() else None
        if not batch:
            return []
        return self._flush_simulation(batch, trigger=batch[-1])

    def _flush_simulation(self, batch: Sequence[TelemetryEntry], trigger: TelemetryEntry) -> List[Anomaly]:
        forced = [e.model_copy(update={"force_detection": True}) for e in batch]
        anomalies = self._evaluate(forced, reason="simulation", emit=False)
        if not anomalies:
            anomalies = [create_simulation_fallback(trigger)]
        self._emit(anomalies)
        return anomalies

    # ------------------------------------------------------------------
    # Evaluation
    # ------------------------------------------------------------------
    def process_buffer(self) -> List[Anomaly]:
        """Evaluate and empty the rolling window. Called on every tick."""
        # Age-triggered simulation flushes ride on the same cadence
        self.flush_simulation()

        with self._lock:
            batch = self._window.swap()
        if not batch:
            return []

        sessions = active_session_ids(batch)
        if sessions:
            self._notify_sessions(sessions)
        return self._evaluate(batch, reason="window")

    def _evaluate(self, batch: Sequence[TelemetryEntry], *, reason: str, emit: bool = True) -> List[Anomaly]:
        config = self.store.get()
        try:
            anomalies = detect_anomalies(batch, config)
        except Exception:
            logger.exception("Error processing log buffer", extra={"reason": reason, "batch_size": len(batch)})
            return []
        if anomalies:
            logger.info(
                "Detected %d anomalies", len(anomalies),
                extra={"reason": reason, "batch_size": len(batch)},
            )
            if emit:
                self._emit(anomalies)
        return anomalies

    def _emit(self, anomalies: List[Anomaly]) -> None:
        try:
            self.sink.on_anomalies(anomalies)
        except Exception:
            logger.exception("Anomaly sink failed")

    def _notify_sessions(self, session_ids: List[str]) -> None:
        try:
            self.sink.on_active_sessions(session_ids)
        except Exception:
            logger.exception("Active session sink failed")
