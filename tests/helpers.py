from __future__ import annotations

import io
from typing import Any, Iterable

from openpyxl import Workbook


def workbook_bytes(
    rows: Iterable[Iterable[Any]],
    *,
    title: str = "Trial Balance",
    merge: str | None = None,
    extra_sheets: dict[str, list[list[Any]]] | None = None,
) -> bytes:
    wb = Workbook()
    ws = wb.active
    ws.title = title
    for row in rows:
        ws.append(list(row))
    if merge:
        ws.merge_cells(merge)
    for name, sheet_rows in (extra_sheets or {}).items():
        extra = wb.create_sheet(name)
        for row in sheet_rows:
            extra.append(row)
    buffer = io.BytesIO()
    wb.save(buffer)
    return buffer.getvalue()


CLEAN_CSV = (
    "Particulars,Debit,Credit\n"
    "Cash in Hand,1500,\n"
    "Sales,,4000\n"
    "Purchases,2500,\n"
)
