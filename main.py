from __future__ import annotations

import json
from pathlib import Path
from typing import List, Optional

import requests
import typer

from cmcd_monitor.config import load_config
from cmcd_monitor.core.detectors import detect_anomalies
from cmcd_monitor.core.models import TelemetryEntry
from cmcd_monitor.data.generator import TelemetryGenerator
from cmcd_monitor.utils.logging import setup_logging
from cmcd_monitor.utils.retry import with_retries
from cmcd_monitor.web.server import serve as serve_web


app = typer.Typer(add_completion=False)


@app.command()
def serve(
    host: Optional[str] = typer.Option(None),
    port: Optional[int] = typer.Option(None),
    interval_ms: Optional[int] = typer.Option(None, help="Override the window evaluation cadence"),
    config_path: Optional[Path] = typer.Option(None, "--config", help="YAML runtime config"),
) -> None:
    """Accept CMCD telemetry over HTTP and stream detected anomalies."""
    cfg = load_config(config_path)
    setup_logging(cfg.env.LOG_LEVEL)
    if interval_ms is not None:
        cfg.runtime.processing_interval_ms = interval_ms
    serve_web(host=host, port=port, config=cfg)


def _read_entries(path: Path) -> List[TelemetryEntry]:
    entries: List[TelemetryEntry] = []
    with open(path, "r", encoding="utf-8") as fh:
        for lineno, line in enumerate(fh, start=1):
            line = line.strip()
            if not line:
                continue
            try:
                entries.append(TelemetryEntry.model_validate_json(line))
            except ValueError as exc:
                raise typer.BadParameter(f"line {lineno}: {exc}") from exc
    return entries


@app.command()
def analyze(
    path: Path = typer.Argument(..., exists=True, dir_okay=False, help="JSON-lines file of CMCD entries"),
    config_path: Optional[Path] = typer.Option(None, "--config", help="YAML runtime config"),
    log_level: str = typer.Option("WARNING"),
) -> None:
    """Run the detectors once over a file of entries and print the anomalies."""
    cfg = load_config(config_path)
    setup_logging(log_level)
    entries = _read_entries(path)
    anomalies = detect_anomalies(entries, cfg.runtime.detection)
    for anomaly in anomalies:
        typer.echo(json.dumps(anomaly.to_wire(), ensure_ascii=False))
    typer.echo(f"{len(anomalies)} anomalies in {len(entries)} entries", err=True)


@app.command()
def send(
    url: str = typer.Argument(..., help="Base URL of a running server, e.g. http://localhost:3000"),
    count: int = typer.Option(20, help="Random entries before the anomaly patterns"),
    seed: Optional[int] = typer.Option(None),
    log_level: str = typer.Option("INFO"),
) -> None:
    """Generate synthetic traffic and POST it to a running server."""
    cfg = load_config()
    setup_logging(log_level)
    rt = cfg.runtime
    entries = TelemetryGenerator(seed=seed).generate(count)
    payload = [e.model_dump(mode="json", by_alias=True, exclude_none=True) for e in entries]

    session = requests.Session()
    session.headers.update({"User-Agent": "cmcd-monitor-send/0.1"})

    def post() -> dict:
        resp = session.post(url.rstrip("/") + "/api/logs", json=payload, timeout=rt.request_timeout_sec)
        resp.raise_for_status()
        return resp.json()

    result = with_retries(post, rt.max_retries, rt.backoff_base_sec, rt.backoff_cap_sec)
    typer.echo(f"Sent {len(entries)} entries, server processed {result.get('processed')}")


if __name__ == "__main__":
    app()
