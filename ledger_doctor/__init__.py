"""Trial-balance ingestion: CSV/spreadsheet in, canonical Particulars/Debit/Credit rows out."""

__version__ = "0.1.0"

from ledger_doctor.audit import AuditResult, IngestError, Issue
from ledger_doctor.normalizer import CanonicalRow
from ledger_doctor.pipeline import SourceFile, ingest, parse_financial_file
from ledger_doctor.reports import FinancialReports, generate_reports

__all__ = [
    "AuditResult",
    "CanonicalRow",
    "FinancialReports",
    "IngestError",
    "Issue",
    "SourceFile",
    "generate_reports",
    "ingest",
    "parse_financial_file",
]
