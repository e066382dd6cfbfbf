from __future__ import annotations

import pytest

from cmcd_monitor.utils.retry import exponential_backoff, with_retries


def test_exponential_backoff_caps() -> None:
    assert exponential_backoff(1, 0.5, 10.0) == 0.5
    assert exponential_backoff(3, 0.5, 10.0) == 2.0
    assert exponential_backoff(10, 0.5, 10.0) == 10.0


def test_with_retries_recovers() -> None:
    calls = []
    delays = []

    def flaky() -> str:
        calls.append(1)
        if len(calls) < 3:
            raise ConnectionError("down")
        return "ok"

    assert with_retries(flaky, 5, 0.5, 10.0, sleep=delays.append) == "ok"
    assert len(calls) == 3
    assert len(delays) == 2


def test_with_retries_gives_up() -> None:
    def always() -> None:
        raise ConnectionError("down")

    with pytest.raises(ConnectionError):
        with_retries(always, 2, 0.0, 0.0, sleep=lambda s: None)
