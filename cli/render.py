from __future__ import annotations

from typing import Any, Dict, Iterable, Optional

import typer

from services.classifier import Classification


def echo_heading(text: str) -> None:
    typer.secho(text, bold=True)


def echo_key_values(pairs: Iterable[tuple[str, Any]]) -> None:
    for key, value in pairs:
        typer.echo(f"{key}: {value}")


def render_reading(payload: Dict[str, Any]) -> None:
    echo_heading("Accepted Reading")
    echo_key_values(
        [
            ("deviceId", payload.get("deviceId")),
            ("heartRate", payload.get("heartRate")),
            ("timestamp", payload.get("timestamp")),
        ]
    )


def render_classification(
    heart_rate: float, result: Classification, thresholds: Iterable[tuple[Any, float]]
) -> None:
    echo_heading("Classification")
    threshold: Optional[float] = result.threshold
    echo_key_values(
        [
            ("heart_rate", heart_rate),
            ("zone", result.zone.label),
            ("threshold", threshold if threshold is not None else "-"),
            ("reached", "yes" if result.reached else "no"),
        ]
    )
    typer.echo()
    echo_heading("Thresholds")
    for zone, lower_bound in thresholds:
        typer.echo(f"  - {zone.label}: >= {lower_bound}")
