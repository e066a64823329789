"""
Where finished results go.

The pipeline never writes anywhere by itself; callers hand a store to
``persist_results``. Values are JSON strings, the same shape a browser
key-value store would hold, so the keys below are the contract with
whatever reads them back.
"""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Any, Iterable, Optional, Protocol

from ledger_doctor.normalizer import CanonicalRow, dumps_wire, loads_wire
from ledger_doctor.reports import FinancialReports, generate_reports

logger = logging.getLogger(__name__)

FINANCIAL_DATA_KEY = "financialData"
PROFIT_LOSS_KEY = "profitLossReport"
BALANCE_SHEET_KEY = "balanceSheetReport"
RATIOS_KEY = "ratiosData"
STORE_KEYS = (FINANCIAL_DATA_KEY, PROFIT_LOSS_KEY, BALANCE_SHEET_KEY, RATIOS_KEY)

STORE_DIR_ENV = "LEDGER_DOCTOR_STORE_DIR"


class KeyValueStore(Protocol):
    def get(self, key: str) -> Optional[str]: ...

    def set(self, key: str, value: str) -> None: ...


class MemoryStore:
    def __init__(self) -> None:
        self._values: dict[str, str] = {}

    def get(self, key: str) -> Optional[str]:
        return self._values.get(key)

    def set(self, key: str, value: str) -> None:
        self._values[key] = value

    def keys(self) -> list[str]:
        return list(self._values)


class JsonDirectoryStore:
    """One ``<key>.json`` file per key under ``root``. Last writer wins."""

    def __init__(self, root: Path | str) -> None:
        self.root = Path(root)

    def _path(self, key: str) -> Path:
        if not key or "/" in key or "\\" in key or key.startswith("."):
            raise ValueError(f"Invalid store key: {key!r}")
        return self.root / f"{key}.json"

    def get(self, key: str) -> Optional[str]:
        path = self._path(key)
        if not path.exists():
            return None
        return path.read_text(encoding="utf-8")

    def set(self, key: str, value: str) -> None:
        path = self._path(key)
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = path.with_suffix(".json.tmp")
        tmp_path.write_text(value, encoding="utf-8")
        os.replace(tmp_path, path)


def default_store_dir() -> Optional[Path]:
    override = os.environ.get(STORE_DIR_ENV)
    return Path(override) if override else None


def _json(payload: Any) -> str:
    return json.dumps(payload, ensure_ascii=False)


def persist_results(
    store: KeyValueStore,
    rows: Iterable[CanonicalRow],
    reports: Optional[FinancialReports] = None,
) -> FinancialReports:
    rows = list(rows)
    if reports is None:
        reports = generate_reports(rows)
    store.set(FINANCIAL_DATA_KEY, dumps_wire(rows))
    store.set(PROFIT_LOSS_KEY, _json(reports.profit_loss.to_dict()))
    store.set(BALANCE_SHEET_KEY, _json(reports.balance_sheet.to_dict()))
    store.set(RATIOS_KEY, _json(reports.ratios_data))
    logger.debug("Persisted %d rows and reports", len(rows))
    return reports


def load_financial_data(store: KeyValueStore) -> list[CanonicalRow]:
    raw = store.get(FINANCIAL_DATA_KEY)
    if raw is None:
        return []
    return loads_wire(raw)
