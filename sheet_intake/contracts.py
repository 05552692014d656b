"""Versioned JSON payloads written by the sheet-intake CLI."""

from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from sheet_intake import __version__

CONTRACT_VERSIONS = {
    "sheet_intake.check": "1.0.0",
    "sheet_intake.header": "1.0.0",
    "sheet_intake.scan": "1.0.0",
}


def utc_now_iso(now: datetime | None = None) -> str:
    now = now or datetime.now(timezone.utc)
    return now.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def build_contract(name: str) -> dict[str, str]:
    if name not in CONTRACT_VERSIONS:
        known = ", ".join(sorted(CONTRACT_VERSIONS))
        raise ValueError(f"Unknown contract '{name}'. Known contracts: {known}")
    return {"name": name, "version": CONTRACT_VERSIONS[name]}


def contract_payload(name: str, **fields: Any) -> dict[str, Any]:
    """Start a CLI payload stamped with its contract and the tool version."""
    payload: dict[str, Any] = {"contract": build_contract(name), "version": __version__}
    payload.update(fields)
    return payload


def build_run_summary(
    *,
    command: str,
    input_path: Path,
    status: str = "ok",
    output_path: Path | None = None,
    correlation_id: str | None = None,
    metrics: dict[str, Any] | None = None,
    errors: list[str | None] | None = None,
) -> dict[str, Any]:
    errors = [message for message in (errors or []) if message]
    return {
        "tool": "sheet-intake",
        "command": command,
        "status": status,
        "correlation_id": correlation_id,
        "generated_at": utc_now_iso(),
        "input_file": str(input_path),
        "output_file": str(output_path) if output_path else None,
        "errors_count": len(errors),
        "errors": errors,
        "metrics": dict(metrics or {}),
    }
