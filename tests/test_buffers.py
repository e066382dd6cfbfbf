from __future__ import annotations

import pytest

from cmcd_monitor.core.buffers import RollingWindow, SimulationBatch

from .helpers import FakeClock


def test_rolling_window_evicts_oldest() -> None:
    buf: RollingWindow[int] = RollingWindow(capacity=100)
    for i in range(101):
        buf.add(i)
    assert buf.size() == 100
    assert buf.snapshot() == list(range(1, 101))


def test_swap_empties_window() -> None:
    buf: RollingWindow[int] = RollingWindow(capacity=3)
    buf.add(1)
    buf.add(2)
    assert buf.swap() == [1, 2]
    assert len(buf) == 0
    assert buf.swap() == []
    buf.add(3)
    assert buf.snapshot() == [3]
    assert buf.capacity() == 3


def test_rolling_window_rejects_zero_capacity() -> None:
    with pytest.raises(ValueError):
        RollingWindow(capacity=0)


def test_simulation_batch_due_on_size_force_and_age() -> None:
    clock = FakeClock()
    batch: SimulationBatch[str] = SimulationBatch(max_size=3, max_age_ms=3000, clock=clock)
    assert not batch.due()

    batch.add("a")
    assert not batch.due()
    assert batch.due(forced=True)

    batch.add("b")
    batch.add("c")
    assert batch.due()
    assert batch.drain() == ["a", "b", "c"]
    assert batch.size() == 0

    batch.add("d")
    clock.advance(3.0)
    assert not batch.due()
    clock.advance(0.5)
    assert batch.elapsed_ms() == pytest.approx(3500)
    assert batch.due()


def test_drain_resets_flush_time() -> None:
    clock = FakeClock()
    batch: SimulationBatch[str] = SimulationBatch(max_size=3, max_age_ms=3000, clock=clock)
    clock.advance(10)
    batch.add("a")
    assert batch.due()
    batch.drain()
    batch.add("b")
    assert not batch.due()
