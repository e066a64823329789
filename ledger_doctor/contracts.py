"""Versioned contracts for the JSON documents ledger-doctor writes."""

from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path
from typing import Any

CONTRACT_VERSIONS = {
    "ledger_doctor.audit": "1.0.0",
    "ledger_doctor.financial_data": "1.0.0",
    "ledger_doctor.reports": "1.0.0",
    "ledger_doctor.run_summary": "1.0.0",
}


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).replace(microsecond=0).isoformat().replace("+00:00", "Z")


def build_contract(name: str) -> dict[str, str]:
    if name not in CONTRACT_VERSIONS:
        raise KeyError(f"Unknown contract: {name}")
    return {"name": name, "version": CONTRACT_VERSIONS[name]}


def with_contract(name: str, payload: dict[str, Any]) -> dict[str, Any]:
    return {"contract": build_contract(name), **payload}


def build_run_summary(
    *,
    command: str,
    input_path: Path,
    status: str = "ok",
    outputs: dict[str, Path] | None = None,
    metrics: dict[str, Any] | None = None,
    warnings: list[str] | None = None,
) -> dict[str, Any]:
    return {
        "contract": build_contract("ledger_doctor.run_summary"),
        "tool": "ledger-doctor",
        "command": command,
        "status": status,
        "generated_at": utc_now_iso(),
        "input_file": str(input_path),
        "outputs": {key: str(path) for key, path in (outputs or {}).items()},
        "warnings_count": len(warnings or []),
        "warnings": list(warnings or []),
        "metrics": metrics or {},
    }
