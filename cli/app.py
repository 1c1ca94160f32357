from __future__ import annotations

import signal
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Optional

import typer
from pydantic import ValidationError

from cli.client import GatewayClient
from cli.config import CLIConfig, load_config
from cli.render import render_classification, render_reading
from logging_config import configure_logging
from models.records import BiometricReading, Zone
from services.classifier import ClassificationError
from services.worker import build_default_worker, build_zone_classifier
from streams.cancellation import CancellationToken
from streams.errors import StreamError


@dataclass
class CLIState:
    config: CLIConfig
    client: GatewayClient


app = typer.Typer(
    help="Utilities for the heart-rate zone gateway and worker.",
    context_settings={"help_option_names": ["-h", "--help"]},
)


def _get_state(ctx: typer.Context) -> CLIState:
    state = ctx.obj
    if not isinstance(state, CLIState):
        raise typer.Exit(code=1, message="CLI state is uninitialized.")
    return state


def _install_signal_handlers(cancellation: CancellationToken) -> Dict[int, Any]:
    def _cancel(_signum: int, _frame: Any) -> None:
        cancellation.cancel()

    previous: Dict[int, Any] = {}
    for signum in (signal.SIGINT, signal.SIGTERM):
        previous[signum] = signal.signal(signum, _cancel)
    return previous


def _restore_signal_handlers(previous: Dict[int, Any]) -> None:
    for signum, handler in previous.items():
        signal.signal(signum, handler)


@app.callback()
def main(
    ctx: typer.Context,
    base_url: Optional[str] = typer.Option(
        None,
        "--base-url",
        "-b",
        help="Gateway base URL (defaults to API_BASE_URL env or http://localhost:8000).",
    ),
    timeout: Optional[float] = typer.Option(
        None,
        "--timeout",
        help="Seconds to wait for gateway responses.",
    ),
) -> None:
    """Entry point for the CLI."""
    config = load_config(base_url=base_url, request_timeout=timeout)
    client = GatewayClient(config)
    ctx.obj = CLIState(config=config, client=client)
    ctx.call_on_close(client.close)


@app.command("worker")
def worker_command() -> None:
    """Run the zone worker until interrupted; exits non-zero on failure."""
    configure_logging()
    worker = build_default_worker()
    cancellation = CancellationToken()
    previous = _install_signal_handlers(cancellation)
    try:
        worker.run(cancellation)
    except (StreamError, ClassificationError) as exc:
        typer.secho(f"Worker failed: {exc}", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1) from exc
    finally:
        _restore_signal_handlers(previous)
        build_default_worker.cache_clear()
    typer.echo(f"Worker stopped after {worker.messages_handled} messages.")


@app.command("send")
def send_command(
    ctx: typer.Context,
    device_id: str = typer.Option(..., "--device-id", "-d", help="Device identifier."),
    heart_rate: float = typer.Option(..., "--heart-rate", "-r", help="Beats per minute."),
    timestamp: Optional[str] = typer.Option(
        None,
        "--timestamp",
        help="ISO-8601 capture time (defaults to now, UTC).",
    ),
) -> None:
    """Send a single reading through the gateway."""
    state = _get_state(ctx)
    payload = {
        "deviceId": device_id,
        "heartRate": heart_rate,
        "timestamp": timestamp or datetime.now(timezone.utc).isoformat(),
    }
    typer.echo(f"Sending reading to {state.config.base_url} ...")
    accepted = state.client.send_reading(payload)
    typer.secho("Reading accepted.", fg=typer.colors.GREEN)
    render_reading(accepted)


@app.command("classify")
def classify_command(
    heart_rate: float = typer.Argument(..., help="Heart rate in beats per minute."),
    previous_zone: Optional[str] = typer.Option(
        None,
        "--previous-zone",
        "-p",
        help="Last known zone of the device, e.g. Zone2.",
    ),
) -> None:
    """Classify a heart rate with the configured thresholds."""
    previous: Optional[Zone] = None
    if previous_zone is not None:
        try:
            previous = Zone.parse(previous_zone)
        except ValueError as exc:
            raise typer.BadParameter(str(exc), param_hint="--previous-zone") from exc

    classifier = build_zone_classifier()
    try:
        reading = BiometricReading(
            device_id="cli",
            heart_rate=heart_rate,
            timestamp=datetime.now(timezone.utc),
        )
        result = classifier.classify(reading, previous)
    except (ValidationError, ClassificationError) as exc:
        raise typer.BadParameter(str(exc), param_hint="heart_rate") from exc
    render_classification(heart_rate, result, classifier.thresholds.items())
