"""
Header normalization and role resolution for trial-balance rows.

Roles are bound once per file from the header set (``resolve_layout``). The
amount/type fallback is decided per row (``resolve_row``) because the type
indicator is itself row data. Both the validator and the normalizer go
through ``resolve_row`` so they can never disagree about a row.
"""

from __future__ import annotations

import logging
import math
import re
from dataclasses import dataclass, field
from typing import Any, Mapping, Optional

logger = logging.getLogger(__name__)

ROLE_NAME = "name"
ROLE_DEBIT = "debit"
ROLE_CREDIT = "credit"

# Canonical column names, also the wire field names.
CANONICAL_COLUMNS = {
    ROLE_NAME: "Particulars",
    ROLE_DEBIT: "Debit",
    ROLE_CREDIT: "Credit",
}
REQUIRED_COLUMNS = [CANONICAL_COLUMNS[role] for role in (ROLE_NAME, ROLE_DEBIT, ROLE_CREDIT)]

# Exact (case-insensitive) header synonyms. These are the only headers that
# ever bind to a role.
ROLE_SYNONYMS = {
    ROLE_NAME: ("particulars", "account", "description", "item", "account name", "account description"),
    ROLE_DEBIT: ("debit", "dr", "debit amount", "amount (dr)"),
    ROLE_CREDIT: ("credit", "cr", "credit amount", "amount (cr)"),
}

# Substring hints used only to suggest alternatives in warnings.
ROLE_HINTS = {
    ROLE_NAME: ("account", "item", "description", "particular"),
    ROLE_DEBIT: ("dr", "debt", "payment", "expense"),
    ROLE_CREDIT: ("cr", "cred", "receipt", "income"),
}

TYPE_HEADERS = ("type", "dc", "dr/cr")
AMOUNT_MARKER = "amount"
AMOUNT_EXCLUDE = ("cr", "dr")
DEBIT_TYPE_MARKERS = ("dr", "debit")
CREDIT_TYPE_MARKERS = ("cr", "credit")

CURRENCY_PREFIX_RE = re.compile(r"^[\$€£₹¥]\s*")
AMOUNT_RE = re.compile(r"^[+-]?(\d+(\.\d*)?|\.\d+)$")


@dataclass(frozen=True)
class ColumnLayout:
    """Which physical header plays each role in one file."""

    name: Optional[str] = None
    debit: Optional[str] = None
    credit: Optional[str] = None
    amount_columns: tuple[str, ...] = ()
    type_column: Optional[str] = None
    missing: tuple[str, ...] = ()

    @property
    def strict(self) -> bool:
        return not self.missing

    @property
    def has_fallback(self) -> bool:
        return self.name is not None and bool(self.amount_columns)


@dataclass
class RowResolution:
    name: str = ""
    debit: Optional[float] = None
    credit: Optional[float] = None
    source: Optional[str] = None
    problems: list[tuple[str, str]] = field(default_factory=list)

    @property
    def usable(self) -> bool:
        return bool(self.name) and (self.debit is not None or self.credit is not None)


def normalize_column_names(rows: list[Mapping[str, Any]]) -> list[dict[str, Any]]:
    """Trim surrounding whitespace from every key; values and order untouched."""
    return [{str(key).strip(): value for key, value in row.items()} for row in rows]


def collect_headers(rows: list[Mapping[str, Any]]) -> list[str]:
    """Union of keys across rows, in first-seen order."""
    seen: dict[str, None] = {}
    for row in rows:
        for key in row:
            seen.setdefault(key, None)
    return list(seen)


def _match_role(headers: list[str], role: str) -> Optional[str]:
    synonyms = ROLE_SYNONYMS[role]
    # Synonym order is the priority order: "particulars" beats "description".
    lowered = {header: header.lower() for header in headers}
    for synonym in synonyms:
        for header, low in lowered.items():
            if low == synonym:
                return header
    return None


def find_amount_columns(headers: list[str], exclude: tuple[Optional[str], ...] = ()) -> tuple[str, ...]:
    amount_columns = []
    for header in headers:
        if header in exclude:
            continue
        low = header.lower()
        if AMOUNT_MARKER in low and not any(marker in low for marker in AMOUNT_EXCLUDE):
            amount_columns.append(header)
    return tuple(amount_columns)


def find_type_column(headers: list[str]) -> Optional[str]:
    for header in headers:
        if header.lower() in TYPE_HEADERS:
            return header
    return None


def resolve_layout(headers: list[str]) -> ColumnLayout:
    """Bind the name/debit/credit roles for a file from its header set."""
    bound = {role: _match_role(headers, role) for role in ROLE_SYNONYMS}
    missing = tuple(CANONICAL_COLUMNS[role] for role, header in bound.items() if header is None)
    layout = ColumnLayout(
        name=bound[ROLE_NAME],
        debit=bound[ROLE_DEBIT],
        credit=bound[ROLE_CREDIT],
        amount_columns=find_amount_columns(headers, exclude=tuple(bound.values())),
        type_column=find_type_column(headers),
        missing=missing,
    )
    logger.debug("Resolved column layout %s from headers %s", layout, headers)
    return layout


def find_possible_header_matches(headers: list[str], missing_columns: list[str]) -> list[str]:
    roles_by_column = {column: role for role, column in CANONICAL_COLUMNS.items()}
    matches: list[str] = []
    for column in missing_columns:
        role = roles_by_column.get(column)
        if role is None:
            continue
        hints = ROLE_HINTS[role]
        for header in headers:
            if any(hint in header.lower() for hint in hints):
                matches.append(f"{header} (possible match for {column})")
    return matches


def is_blank(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, float) and value != value:
        return True
    return str(value).strip() == ""


def parse_amount(value: Any) -> Optional[float]:
    """
    Parse a ledger amount, or None when it is not a number.

    Accepts thousands separators, a leading currency symbol and accounting
    parentheses for negatives. Never returns NaN or infinity.
    """
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        try:
            number = float(value)
        except OverflowError:
            return None
        return number if math.isfinite(number) else None
    if value is None:
        return None

    text = str(value).strip()
    negative = False
    if text.startswith("(") and text.endswith(")"):
        negative = True
        text = text[1:-1].strip()
    if text[:1] in "+-" and text[1:2] and CURRENCY_PREFIX_RE.match(text[1:]):
        negative = negative or text[0] == "-"
        text = text[1:]
    text = CURRENCY_PREFIX_RE.sub("", text).replace(",", "").replace(" ", "")
    if not AMOUNT_RE.match(text):
        return None
    number = float(text)
    if not math.isfinite(number):
        return None
    return -number if negative else number


def _cell(row: Mapping[str, Any], header: Optional[str]) -> Any:
    if header is None:
        return None
    return row.get(header)


def _strict_amount(resolution: RowResolution, value: Any, column: str) -> Optional[float]:
    if is_blank(value):
        return None
    number = parse_amount(value)
    if number is None:
        resolution.problems.append((
            f'Non-numeric {column} value: "{str(value).strip()}"',
            f"{column} values must be numeric",
        ))
    return number


def resolve_strict(row: Mapping[str, Any], layout: ColumnLayout, resolution: RowResolution) -> None:
    """Fill debit/credit from the file-level Debit and Credit columns."""
    if not layout.strict:
        return
    resolution.debit = _strict_amount(resolution, _cell(row, layout.debit), CANONICAL_COLUMNS[ROLE_DEBIT])
    resolution.credit = _strict_amount(resolution, _cell(row, layout.credit), CANONICAL_COLUMNS[ROLE_CREDIT])
    if resolution.debit is not None or resolution.credit is not None:
        resolution.source = "columns"


def resolve_fallback(row: Mapping[str, Any], layout: ColumnLayout, resolution: RowResolution) -> None:
    """
    Read a single Amount column, steered by a Type column or by its sign.

    With a type column the first amount column is used and its magnitude is
    booked on the side the type names. Without one, exactly one amount column
    must exist: positive (or zero) is a debit, negative a credit.
    """
    if not resolution.name or not layout.amount_columns:
        return
    if layout.type_column is None and len(layout.amount_columns) != 1:
        return

    raw_amount = _cell(row, layout.amount_columns[0])
    if is_blank(raw_amount):
        return
    amount = parse_amount(raw_amount)
    if amount is None:
        resolution.problems.append((
            f'Non-numeric Amount value: "{str(raw_amount).strip()}"',
            "Amount values must be numeric",
        ))
        return

    if layout.type_column is not None:
        kind = str(_cell(row, layout.type_column) or "").strip().lower()
        if any(marker in kind for marker in DEBIT_TYPE_MARKERS):
            resolution.debit = abs(amount)
        elif any(marker in kind for marker in CREDIT_TYPE_MARKERS):
            resolution.credit = abs(amount)
        else:
            resolution.problems.append((
                f'Unrecognized Type value: "{kind}"',
                "Type should say Dr/Debit or Cr/Credit",
            ))
            return
        resolution.source = "type"
        return

    if amount < 0:
        resolution.credit = -amount
    else:
        resolution.debit = amount
    resolution.source = "sign"


def resolve_row(row: Mapping[str, Any], layout: ColumnLayout) -> RowResolution:
    """
    Decide a row's name and amounts.

    Strict columns win whenever they give the row an amount; the amount/type
    fallback is only consulted when they do not.
    """
    resolution = RowResolution()
    raw_name = _cell(row, layout.name)
    if not is_blank(raw_name):
        resolution.name = str(raw_name).strip()

    resolve_strict(row, layout, resolution)
    if resolution.source is None:
        resolve_fallback(row, layout, resolution)

    if not resolution.name:
        resolution.problems.insert(0, (
            "Missing Particulars value",
            "Each row must have an account name in the Particulars column",
        ))
    if resolution.source is None and not any(text.startswith("Non-numeric") for text, _ in resolution.problems):
        resolution.problems.append((
            "Missing both Debit and Credit values",
            "Each row must have either a Debit or Credit value (or both)",
        ))
    return resolution
