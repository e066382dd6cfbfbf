from __future__ import annotations

from cmcd_monitor.core.models import UNKNOWN_SESSION
from cmcd_monitor.core.sessions import active_session_ids, group_by_session

from .helpers import entry


def test_group_by_session_preserves_order() -> None:
    entries = [
        entry(0, session_id="b", bitrate=1),
        entry(1, session_id="a", bitrate=2),
        entry(2, bitrate=3),
        entry(3, session_id="b", bitrate=4),
    ]
    groups = group_by_session(entries)
    assert list(groups) == ["b", "a", UNKNOWN_SESSION]
    assert [e.bitrate for e in groups["b"]] == [1, 4]
    assert [e.bitrate for e in groups[UNKNOWN_SESSION]] == [3]


def test_empty_session_id_is_unknown() -> None:
    groups = group_by_session([entry(0, session_id="")])
    assert list(groups) == [UNKNOWN_SESSION]


def test_active_session_ids_skip_unknown() -> None:
    entries = [entry(0, session_id="x"), entry(1), entry(2, session_id="y"), entry(3, session_id="x")]
    assert active_session_ids(entries) == ["x", "y"]
    assert active_session_ids([entry(0)]) == []


def test_literal_unknown_session_id_is_active() -> None:
    entries = [entry(0, session_id=UNKNOWN_SESSION), entry(1), entry(2, session_id="")]
    assert active_session_ids(entries) == [UNKNOWN_SESSION]
