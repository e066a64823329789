"""Structural checks over normalized rows, recorded on the audit."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Mapping, Optional

from ledger_doctor.audit import AuditResult
from ledger_doctor.columns import (
    REQUIRED_COLUMNS,
    ColumnLayout,
    collect_headers,
    find_possible_header_matches,
    resolve_layout,
    resolve_row,
)

logger = logging.getLogger(__name__)

NO_DATA_MESSAGE = "File contains no data or is not in the expected format"
NO_VALID_ROWS_MESSAGE = (
    "No valid financial entries found. Each entry must have Particulars and either Debit or Credit value."
)


@dataclass
class ValidationResult:
    valid: bool
    message: str
    layout: Optional[ColumnLayout] = None
    usable_rows: int = 0
    rows: list[Mapping[str, Any]] = field(default_factory=list)


def missing_columns_message(missing: tuple[str, ...] | list[str]) -> str:
    return (
        f"Missing required columns: {', '.join(missing)}. "
        f"Required format is: {', '.join(REQUIRED_COLUMNS)}"
    )


def validate_financial_data(rows: list[Mapping[str, Any]], audit: Optional[AuditResult] = None) -> ValidationResult:
    """
    Resolve the column layout and audit every row.

    The verdict is "at least one row is usable": rows that fail are recorded
    as issues and left for the normalizer to drop. A file whose columns
    cannot be resolved is only rejected when no row is salvaged by the
    amount/type fallback either.
    """
    if not rows:
        if audit is not None:
            audit.add_issue(NO_DATA_MESSAGE, suggestion="Ensure the file contains data rows with proper headers")
        return ValidationResult(valid=False, message=NO_DATA_MESSAGE)

    headers = collect_headers(rows)
    layout = resolve_layout(headers)
    logger.info("Column headers found: %s", headers)

    if layout.missing and audit is not None:
        audit.add_issue(
            f"Missing required columns: {', '.join(layout.missing)}",
            suggestion="Make sure your file has headers for Particulars, Debit, and Credit (case-insensitive)",
        )
        possible = find_possible_header_matches(headers, list(layout.missing))
        if possible:
            audit.add_warning(f"Found possible alternative headers: {', '.join(possible)}")

    usable = 0
    for index, row in enumerate(rows, start=1):
        resolution = resolve_row(row, layout)
        if resolution.usable:
            usable += 1
        # Without a resolvable schema the only rows worth reporting on are the
        # ones the fallback could have rescued.
        if audit is not None and (layout.strict or layout.has_fallback):
            for issue, suggestion in resolution.problems:
                audit.add_issue(issue, row=index, suggestion=suggestion)

    if usable:
        if layout.missing:
            logger.info("Recovered %d rows via the amount/type fallback", usable)
        return ValidationResult(valid=True, message="Data is valid", layout=layout, usable_rows=usable, rows=list(rows))

    if layout.missing:
        return ValidationResult(valid=False, message=missing_columns_message(layout.missing), layout=layout)
    return ValidationResult(valid=False, message=NO_VALID_ROWS_MESSAGE, layout=layout)
