from __future__ import annotations

import json
from pathlib import Path

import pytest
from typer.testing import CliRunner

import main


runner = CliRunner()


@pytest.fixture(autouse=True)
def quiet_logging(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(main, "setup_logging", lambda level: None)


def test_analyze_reports_anomalies(tmp_path: Path) -> None:
    path = tmp_path / "entries.jsonl"
    rows = [
        {"timestamp": f"2024-05-01T12:00:0{i}Z", "sid": "s1", "mtp": mtp}
        for i, mtp in enumerate([8000, 2000, 8000])
    ]
    path.write_text("\n".join(json.dumps(r) for r in rows) + "\n\n", encoding="utf-8")

    result = runner.invoke(main.app, ["analyze", str(path)])
    assert result.exit_code == 0
    assert '"network_issue"' in result.output


def test_analyze_rejects_bad_lines(tmp_path: Path) -> None:
    path = tmp_path / "entries.jsonl"
    path.write_text('{"sid": "s1"}\n', encoding="utf-8")
    result = runner.invoke(main.app, ["analyze", str(path)])
    assert result.exit_code != 0


def test_send_posts_generated_entries(monkeypatch: pytest.MonkeyPatch) -> None:
    posted = {}

    class FakeResponse:
        def raise_for_status(self) -> None:
            pass

        def json(self) -> dict:
            return {"processed": len(posted["json"])}

    def fake_post(self, url, json=None, timeout=None):  # type: ignore[no-untyped-def]
        posted["url"] = url
        posted["json"] = json
        return FakeResponse()

    monkeypatch.setattr(main.requests.Session, "post", fake_post)
    result = runner.invoke(main.app, ["send", "http://localhost:3000/", "--count", "3", "--seed", "1"])
    assert result.exit_code == 0
    assert posted["url"] == "http://localhost:3000/api/logs"
    assert all("timestamp" in row for row in posted["json"])
    assert f"server processed {len(posted['json'])}" in result.output
