"""Canonical three-field rows and their JSON wire form."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any, Iterable, Mapping, Optional, Union

from ledger_doctor.columns import (
    CANONICAL_COLUMNS,
    ROLE_CREDIT,
    ROLE_DEBIT,
    ROLE_NAME,
    ColumnLayout,
    collect_headers,
    resolve_layout,
    resolve_row,
)

logger = logging.getLogger(__name__)

Amount = Union[float, str]

NAME_KEY = CANONICAL_COLUMNS[ROLE_NAME]
DEBIT_KEY = CANONICAL_COLUMNS[ROLE_DEBIT]
CREDIT_KEY = CANONICAL_COLUMNS[ROLE_CREDIT]
WIRE_KEYS = (NAME_KEY, DEBIT_KEY, CREDIT_KEY)


@dataclass(frozen=True)
class CanonicalRow:
    """
    One ledger line: an account name and its debit and/or credit.

    An absent amount is the empty string, never zero and never NaN.
    """

    name: str
    debit: Amount = ""
    credit: Amount = ""

    def to_wire(self) -> dict[str, Any]:
        return {NAME_KEY: self.name, DEBIT_KEY: self.debit, CREDIT_KEY: self.credit}

    @property
    def debit_value(self) -> float:
        return self.debit if isinstance(self.debit, (int, float)) else 0.0

    @property
    def credit_value(self) -> float:
        return self.credit if isinstance(self.credit, (int, float)) else 0.0


def canonicalize_row(row: Mapping[str, Any], layout: ColumnLayout) -> Optional[CanonicalRow]:
    resolution = resolve_row(row, layout)
    if not resolution.usable:
        return None
    return CanonicalRow(
        name=resolution.name,
        debit="" if resolution.debit is None else resolution.debit,
        credit="" if resolution.credit is None else resolution.credit,
    )


def process_financial_data(
    rows: list[Mapping[str, Any]],
    layout: Optional[ColumnLayout] = None,
) -> list[CanonicalRow]:
    """
    Keep the usable rows as CanonicalRows, in input order.

    Without a layout one is resolved from the rows themselves, so this also
    runs standalone on already-normalized data. Repeated account names stay
    separate entries.
    """
    if layout is None:
        layout = resolve_layout(collect_headers(rows))
    logger.debug("Processing data, raw length: %d", len(rows))
    processed = [canonical for canonical in (canonicalize_row(row, layout) for row in rows) if canonical is not None]
    logger.debug("Processed data length: %d", len(processed))
    return processed


def _wire_amount(value: Any) -> Amount:
    if value is None or value == "":
        return ""
    if isinstance(value, bool):
        raise ValueError(f"Amount must be a number or empty string, got {value!r}")
    if isinstance(value, (int, float)):
        return float(value)
    raise ValueError(f"Amount must be a number or empty string, got {value!r}")


def to_wire(rows: Iterable[CanonicalRow]) -> list[dict[str, Any]]:
    return [row.to_wire() for row in rows]


def from_wire(payload: Iterable[Mapping[str, Any]]) -> list[CanonicalRow]:
    rows = []
    for item in payload:
        missing = [key for key in WIRE_KEYS if key not in item]
        if missing:
            raise ValueError(f"Wire record is missing {', '.join(missing)}: {dict(item)!r}")
        rows.append(CanonicalRow(
            name=str(item[NAME_KEY]),
            debit=_wire_amount(item[DEBIT_KEY]),
            credit=_wire_amount(item[CREDIT_KEY]),
        ))
    return rows


def dumps_wire(rows: Iterable[CanonicalRow], *, indent: Optional[int] = None) -> str:
    return json.dumps(to_wire(rows), indent=indent, ensure_ascii=False)


def loads_wire(text: str) -> list[CanonicalRow]:
    payload = json.loads(text)
    if not isinstance(payload, list):
        raise ValueError(f"Wire payload must be a JSON array, got {type(payload).__name__}")
    return from_wire(payload)
