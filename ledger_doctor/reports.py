"""
Profit & loss, balance sheet and ratio inputs from canonical rows.

Accounts are classified by substring against fixed account-name lists, first
list wins: income (credit side), expense (debit side), asset (debit side),
liability (credit side). Anything unlisted is an asset if it carries only a
debit and a liability if it carries only a credit; otherwise it is left out.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Iterable, Optional

from ledger_doctor.normalizer import CanonicalRow

logger = logging.getLogger(__name__)

INCOME_ACCOUNTS = ("Sales", "Commission Received", "Discount", "Dividend Received", "Accrued Income")
EXPENSE_ACCOUNTS = (
    "Trade Expenses", "Salaries", "Carriage Outwards", "Rent", "Purchases",
    "Insurance", "Carriage Inwards", "Office Expenses", "Electricity Charges",
    "Telephone Expenses", "Printing & Stationery", "Advertising", "Interest Paid",
    "Depreciation", "Bad Debts", "Repairs & Maintenance", "Miscellaneous Expenses",
    "Legal Fees", "Audit Fees", "Travelling Expenses", "Wages",
)
ASSET_ACCOUNTS = (
    "Sundry Debtors", "Stock (01.01.2008)", "Cash in Hand", "Plant & Machinery",
    "Business Premises", "Cash at Bank", "Prepaid Insurance",
)
LIABILITY_ACCOUNTS = ("Bank Overdraft", "Sundry Creditors", "Bills Payable", "Capital", "Loan from Bank")

CURRENT_ASSET_ACCOUNTS = ("Sundry Debtors", "Cash in Hand", "Cash at Bank", "Stock (01.01.2008)")
CURRENT_LIABILITY_ACCOUNTS = ("Sundry Creditors", "Bills Payable", "Bank Overdraft")

CAPITAL_ACCOUNT = "Capital"
NET_PROFIT_LINE = "Net Profit"
NET_LOSS_LINE = "Net Loss"


@dataclass(frozen=True)
class ReportLine:
    name: str
    amount: float

    def to_dict(self) -> dict[str, Any]:
        return {"name": self.name, "amount": self.amount}


def _total(lines: Iterable[ReportLine]) -> float:
    return sum((line.amount for line in lines), 0.0)


def _amount_of(lines: Iterable[ReportLine], name: str) -> float:
    for line in lines:
        if line.name == name:
            return line.amount
    return 0.0


@dataclass
class ProfitLoss:
    incomes: list[ReportLine] = field(default_factory=list)
    expenses: list[ReportLine] = field(default_factory=list)

    @property
    def total_income(self) -> float:
        return _total(self.incomes)

    @property
    def total_expenses(self) -> float:
        return _total(self.expenses)

    @property
    def net_profit(self) -> float:
        return self.total_income - self.total_expenses

    def to_dict(self) -> dict[str, Any]:
        return {
            "incomes": [line.to_dict() for line in self.incomes],
            "expenses": [line.to_dict() for line in self.expenses],
            "netProfit": self.net_profit,
            "totalIncome": self.total_income,
            "totalExpenses": self.total_expenses,
        }


@dataclass
class BalanceSheet:
    assets: list[ReportLine] = field(default_factory=list)
    liabilities: list[ReportLine] = field(default_factory=list)

    @property
    def total_assets(self) -> float:
        return _total(self.assets)

    @property
    def total_liabilities(self) -> float:
        return _total(self.liabilities)

    def to_dict(self) -> dict[str, Any]:
        return {
            "assets": [line.to_dict() for line in self.assets],
            "liabilities": [line.to_dict() for line in self.liabilities],
            "totalAssets": self.total_assets,
            "totalLiabilities": self.total_liabilities,
        }


@dataclass
class FinancialReports:
    profit_loss: ProfitLoss
    balance_sheet: BalanceSheet
    ratios_data: dict[str, float]

    def to_dict(self) -> dict[str, Any]:
        return {
            "profitLoss": self.profit_loss.to_dict(),
            "balanceSheet": self.balance_sheet.to_dict(),
            "ratiosData": dict(self.ratios_data),
            "ratios": compute_ratios(self.ratios_data),
        }


def classify_account(name: str) -> Optional[str]:
    """Return "income", "expense", "asset", "liability" or None for an account name."""
    for category, accounts in (
        ("income", INCOME_ACCOUNTS),
        ("expense", EXPENSE_ACCOUNTS),
        ("asset", ASSET_ACCOUNTS),
        ("liability", LIABILITY_ACCOUNTS),
    ):
        if any(account in name for account in accounts):
            return category
    return None


def build_ratios_data(profit_loss: ProfitLoss, balance_sheet: BalanceSheet) -> dict[str, float]:
    assets = balance_sheet.assets
    liabilities = balance_sheet.liabilities
    capital = _amount_of(liabilities, CAPITAL_ACCOUNT)
    net_profit_line = _amount_of(liabilities, NET_PROFIT_LINE)
    return {
        "sales": profit_loss.total_income,
        "netProfit": profit_loss.net_profit,
        "totalAssets": balance_sheet.total_assets,
        "currentAssets": _total(line for line in assets if line.name in CURRENT_ASSET_ACCOUNTS),
        "currentLiabilities": _total(line for line in liabilities if line.name in CURRENT_LIABILITY_ACCOUNTS),
        "totalLiabilities": balance_sheet.total_liabilities - capital - net_profit_line,
        "equity": capital + net_profit_line,
    }


def generate_reports(rows: Iterable[CanonicalRow]) -> FinancialReports:
    profit_loss = ProfitLoss()
    balance_sheet = BalanceSheet()

    for row in rows:
        name = row.name.strip()
        debit = row.debit_value
        credit = row.credit_value
        category = classify_account(name)
        if category == "income":
            profit_loss.incomes.append(ReportLine(name, credit))
        elif category == "expense":
            profit_loss.expenses.append(ReportLine(name, debit))
        elif category == "asset":
            balance_sheet.assets.append(ReportLine(name, debit))
        elif category == "liability":
            balance_sheet.liabilities.append(ReportLine(name, credit))
        elif debit > 0 and credit == 0:
            balance_sheet.assets.append(ReportLine(name, debit))
        elif credit > 0 and debit == 0:
            balance_sheet.liabilities.append(ReportLine(name, credit))
        else:
            logger.debug("Uncategorized account left out of reports: %s", name)

    net_profit = profit_loss.net_profit
    if net_profit > 0:
        balance_sheet.liabilities.append(ReportLine(NET_PROFIT_LINE, net_profit))
    elif net_profit < 0:
        balance_sheet.assets.append(ReportLine(NET_LOSS_LINE, abs(net_profit)))

    return FinancialReports(
        profit_loss=profit_loss,
        balance_sheet=balance_sheet,
        ratios_data=build_ratios_data(profit_loss, balance_sheet),
    )


def _ratio(numerator: float, denominator: float) -> Optional[float]:
    if not denominator:
        return None
    return numerator / denominator


def compute_ratios(ratios_data: dict[str, float]) -> dict[str, Optional[float]]:
    return {
        "currentRatio": _ratio(ratios_data.get("currentAssets", 0.0), ratios_data.get("currentLiabilities", 0.0)),
        "netProfitMargin": _ratio(ratios_data.get("netProfit", 0.0), ratios_data.get("sales", 0.0)),
        "debtToEquity": _ratio(ratios_data.get("totalLiabilities", 0.0), ratios_data.get("equity", 0.0)),
        "returnOnAssets": _ratio(ratios_data.get("netProfit", 0.0), ratios_data.get("totalAssets", 0.0)),
    }


def _section(title: str, lines: list[ReportLine], total_label: str, total: float) -> list[str]:
    out = [title, "-" * len(title)]
    width = max([len(line.name) for line in lines] + [len(total_label)])
    for line in lines:
        out.append(f"  {line.name:<{width}}  {line.amount:>14,.2f}")
    out.append(f"  {total_label:<{width}}  {total:>14,.2f}")
    return out


def render_reports_text(reports: FinancialReports) -> str:
    profit_loss = reports.profit_loss
    balance_sheet = reports.balance_sheet
    lines = ["Profit & Loss Statement", "=" * 23, ""]
    lines += _section("Income", profit_loss.incomes, "Total Income", profit_loss.total_income)
    lines.append("")
    lines += _section("Expenses", profit_loss.expenses, "Total Expenses", profit_loss.total_expenses)
    lines.append("")
    if profit_loss.net_profit >= 0:
        lines.append(f"Net Profit: {profit_loss.net_profit:,.2f}")
    else:
        lines.append(f"Net Loss: {abs(profit_loss.net_profit):,.2f}")

    lines += ["", "Balance Sheet", "=" * 13, ""]
    lines += _section("Assets", balance_sheet.assets, "Total Assets", balance_sheet.total_assets)
    lines.append("")
    lines += _section(
        "Liabilities & Equity",
        balance_sheet.liabilities,
        "Total Liabilities & Equity",
        balance_sheet.total_liabilities,
    )

    lines += ["", "Ratios", "======"]
    labels = {
        "currentRatio": "Current ratio",
        "netProfitMargin": "Net profit margin",
        "debtToEquity": "Debt to equity",
        "returnOnAssets": "Return on assets",
    }
    for key, value in compute_ratios(reports.ratios_data).items():
        shown = "n/a" if value is None else f"{value:.2f}"
        lines.append(f"  {labels[key]}: {shown}")
    return "\n".join(lines) + "\n"
