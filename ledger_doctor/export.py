"""Workbook and CSV writers for canonical rows, plus the sample trial balance."""

from __future__ import annotations

from pathlib import Path
from typing import Iterable

import openpyxl
import pandas as pd
from openpyxl.styles import Alignment, Font, PatternFill
from openpyxl.utils import get_column_letter

from ledger_doctor.columns import REQUIRED_COLUMNS
from ledger_doctor.normalizer import CanonicalRow, to_wire

FORMATTED_SHEET = "Formatted Data"
SAMPLE_SHEET = "Trial Balance"

HEADER_COLOR = "1565C0"
AMOUNT_FORMAT = "#,##0.00"

# (account, debit, credit); blank side is None.
SAMPLE_TRIAL_BALANCE = [
    # Assets
    ("Cash in Hand", 15000, None),
    ("Cash at Bank", 85000, None),
    ("Sundry Debtors", 124000, None),
    ("Inventory", 230000, None),
    ("Equipment", 175000, None),
    ("Furniture and Fixtures", 52000, None),
    ("Computer and IT Equipment", 38500, None),
    ("Prepaid Rent", 24000, None),
    ("Prepaid Insurance", 12000, None),
    ("Investments", 150000, None),
    ("Land", 350000, None),
    ("Buildings", 650000, None),
    ("Vehicles", 95000, None),
    ("Office Supplies", 8500, None),
    # Liabilities
    ("Accounts Payable", None, 95000),
    ("Bank Loan", None, 250000),
    ("Bank Overdraft", None, 15000),
    ("Credit Card Payable", None, 7500),
    ("Sundry Creditors", None, 82000),
    ("Notes Payable", None, 45000),
    ("Interest Payable", None, 12000),
    ("Salary Payable", None, 32000),
    ("Taxes Payable", None, 28500),
    ("Unearned Revenue", None, 18000),
    ("Mortgage Payable", None, 350000),
    # Equity
    ("Capital", None, 500000),
    ("Retained Earnings", None, 247000),
    ("Owner's Drawing", 35000, None),
    # Income
    ("Sales Revenue", None, 785000),
    ("Service Revenue", None, 245000),
    ("Interest Income", None, 12500),
    ("Rental Income", None, 36000),
    ("Commission Income", None, 28000),
    ("Discount Received", None, 7500),
    ("Miscellaneous Income", None, 15000),
    ("Royalty Income", None, 22000),
    # Expenses
    ("Purchases", 450000, None),
    ("Salaries Expense", 245000, None),
    ("Rent Expense", 60000, None),
    ("Utilities Expense", 35000, None),
    ("Insurance Expense", 28000, None),
    ("Depreciation Expense", 45000, None),
    ("Advertising Expense", 32000, None),
    ("Office Supplies Expense", 18500, None),
    ("Telephone Expense", 12000, None),
    ("Internet Expense", 9600, None),
    ("Repair and Maintenance", 24000, None),
    ("Fuel Expense", 18000, None),
    ("Legal Fees", 15000, None),
    ("Accounting Fees", 12000, None),
    ("Bank Charges", 7500, None),
    ("Interest Expense", 22000, None),
    ("Bad Debts", 14000, None),
    ("Staff Training", 9500, None),
    ("Travel Expense", 21000, None),
    ("Entertainment Expense", 13500, None),
    ("Printing and Stationery", 8500, None),
    ("Postage and Courier", 4500, None),
    ("Cleaning Expense", 12000, None),
    ("Security Expense", 18000, None),
    ("Website Maintenance", 7200, None),
    ("Software Subscriptions", 15000, None),
    ("Professional Development", 13000, None),
    ("Donations", 8000, None),
    ("Membership Fees", 5500, None),
    ("Licenses and Permits", 9000, None),
    ("Property Taxes", 24000, None),
    ("Income Taxes", 45000, None),
    ("Medical Insurance", 32000, None),
    ("Retirement Contributions", 25000, None),
    ("Employee Benefits", 28000, None),
    ("Commission Expense", 35000, None),
    ("Freight Expense", 22000, None),
    ("Miscellaneous Expense", 11500, None),
    ("Consulting Fees", 28000, None),
    ("Equipment Rental", 16500, None),
    ("Marketing Expense", 29000, None),
    ("Research and Development", 45000, None),
    ("Uniforms", 7500, None),
    ("Waste Disposal", 6800, None),
    ("Water Expense", 5200, None),
    ("Contract Labor", 32000, None),
    ("Warranty Expense", 12000, None),
    ("Stock (01.01.2023)", 185000, None),
    ("Carriage Inwards", 25000, None),
    ("Carriage Outwards", 18000, None),
    ("Trade Expenses", 24000, None),
    ("Wages", 195000, None),
    ("Heating and Lighting", 22000, None),
]


def _style_sheet(ws, col_widths: list[int]) -> None:
    fill = PatternFill("solid", fgColor=HEADER_COLOR)
    font = Font(bold=True, color="FFFFFF")
    for cell in ws[1]:
        cell.font = font
        cell.fill = fill
        cell.alignment = Alignment(horizontal="center", vertical="center")
    ws.freeze_panes = "A2"
    for i, width in enumerate(col_widths, start=1):
        ws.column_dimensions[get_column_letter(i)].width = width


def _infer_col_widths(rows: list[list], min_width: int = 12, max_width: int = 60) -> list[int]:
    if not rows:
        return []
    widths = [min_width] * len(rows[0])
    for row in rows:
        for i, value in enumerate(row):
            widths[i] = max(widths[i], min(max_width, len(str(value if value is not None else "")) + 2))
    return widths


def _write_ledger_sheet(ws, body: list[list]) -> None:
    table = [list(REQUIRED_COLUMNS)] + body
    for row in table:
        ws.append(row)
    for column in ("B", "C"):
        for cell in ws[column][1:]:
            if isinstance(cell.value, (int, float)):
                cell.number_format = AMOUNT_FORMAT
    _style_sheet(ws, _infer_col_widths(table))


def write_formatted_workbook(rows: Iterable[CanonicalRow], output_path: Path) -> Path:
    """Write canonical rows to a single "Formatted Data" sheet; blank amounts stay empty cells."""
    output_path = Path(output_path)
    wb = openpyxl.Workbook()
    ws = wb.active
    ws.title = FORMATTED_SHEET
    body = [
        [row.name, None if row.debit == "" else row.debit, None if row.credit == "" else row.credit]
        for row in rows
    ]
    _write_ledger_sheet(ws, body)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    wb.save(output_path)
    return output_path


def write_formatted_csv(rows: Iterable[CanonicalRow], output_path: Path) -> Path:
    output_path = Path(output_path)
    frame = pd.DataFrame(to_wire(rows), columns=REQUIRED_COLUMNS)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    frame.to_csv(output_path, index=False, encoding="utf-8")
    return output_path


def write_sample_trial_balance(output_path: Path) -> Path:
    output_path = Path(output_path)
    wb = openpyxl.Workbook()
    ws = wb.active
    ws.title = SAMPLE_SHEET
    _write_ledger_sheet(ws, [list(entry) for entry in SAMPLE_TRIAL_BALANCE])
    output_path.parent.mkdir(parents=True, exist_ok=True)
    wb.save(output_path)
    return output_path
