import unittest

from ledger_doctor.audit import AuditResult, IngestError
from ledger_doctor.loader import (
    DEFAULT_CSV_SUGGESTION,
    FORMAT_CSV,
    FORMAT_SPREADSHEET,
    decode_csv,
    decode_spreadsheet,
    dedupe_headers,
    detect_format,
    sniff_workbook_engine,
    suggestion_for_csv_error,
)
from tests.helpers import CLEAN_CSV, workbook_bytes


class FormatDetectionTests(unittest.TestCase):
    def test_csv_media_type_or_suffix_routes_to_csv(self):
        self.assertEqual(detect_format("ledger.csv", None), FORMAT_CSV)
        self.assertEqual(detect_format("LEDGER.CSV", "application/octet-stream"), FORMAT_CSV)
        self.assertEqual(detect_format("upload", "text/csv"), FORMAT_CSV)

    def test_everything_else_routes_to_spreadsheet(self):
        self.assertEqual(detect_format("tb.xlsx", None), FORMAT_SPREADSHEET)
        self.assertEqual(detect_format("tb.xls", "application/vnd.ms-excel"), FORMAT_SPREADSHEET)
        self.assertEqual(detect_format("tb.ods", None), FORMAT_SPREADSHEET)
        self.assertEqual(detect_format("download", "application/octet-stream"), FORMAT_SPREADSHEET)
        self.assertEqual(detect_format("notes.txt", "text/plain"), FORMAT_SPREADSHEET)

    def test_unknown_csv_error_code_gets_generic_suggestion(self):
        self.assertEqual(suggestion_for_csv_error("SomethingNew"), DEFAULT_CSV_SUGGESTION)
        self.assertIn("closing quotes", suggestion_for_csv_error("QuoteNotClosed"))

    def test_dedupe_headers_fills_blanks_and_suffixes_repeats(self):
        self.assertEqual(
            dedupe_headers(["Amount", "Amount", "", " "]),
            ["Amount", "Amount_1", "__EMPTY", "__EMPTY_1"],
        )

    def test_dedupe_headers_treats_padded_repeats_as_repeats(self):
        self.assertEqual(
            dedupe_headers(["Debit", " Debit ", " Credit"]),
            ["Debit", "Debit_1", "Credit"],
        )


class CsvDecoderTests(unittest.TestCase):
    def test_clean_csv_produces_rows_keyed_by_header(self):
        audit = AuditResult()
        table = decode_csv(CLEAN_CSV.encode("utf-8"), audit)

        self.assertEqual(table["delimiter"], ",")
        self.assertEqual(table["headers"], ["Particulars", "Debit", "Credit"])
        self.assertEqual(len(table["rows"]), 3)
        self.assertEqual(table["rows"][1], {"Particulars": "Sales", "Debit": "", "Credit": "4000"})
        self.assertEqual(audit.total_rows, 3)
        self.assertEqual(audit.issues, [])
        self.assertEqual(audit.warnings, [])

    def test_semicolon_delimiter_is_detected(self):
        audit = AuditResult()
        table = decode_csv(b"Particulars;Debit;Credit\nRent;1200;\nCapital;;5000\n", audit)

        self.assertEqual(table["delimiter"], ";")
        self.assertEqual(table["rows"][0]["Debit"], "1200")

    def test_blank_lines_are_skipped(self):
        audit = AuditResult()
        table = decode_csv("Particulars,Debit,Credit\n\nRent,100,\n\n\nCapital,,100\n", audit)

        self.assertEqual([row["Particulars"] for row in table["rows"]], ["Rent", "Capital"])
        self.assertEqual(audit.total_rows, 2)

    def test_utf8_bom_is_stripped_from_first_header(self):
        audit = AuditResult()
        table = decode_csv("\ufeffParticulars,Debit,Credit\nRent,100,\n".encode("utf-8"), audit)
        self.assertEqual(table["headers"][0], "Particulars")

    def test_field_count_mismatch_keeps_rows_and_records_issue(self):
        audit = AuditResult()
        table = decode_csv(b"Particulars,Debit,Credit\nCash,100\nCapital,,500\n", audit)

        self.assertEqual(len(table["rows"]), 2)
        self.assertEqual(table["rows"][0], {"Particulars": "Cash", "Debit": "100"})
        self.assertEqual(len(audit.issues), 1)
        issue = audit.issues[0]
        self.assertEqual(issue.row, 1)
        self.assertTrue(issue.issue.startswith("CSV parsing error: Too few fields"))
        self.assertIn("Inconsistent number of columns", issue.suggestion)
        self.assertEqual(
            audit.warnings,
            ["Encountered 1 CSV parsing errors but continuing with 2 valid rows"],
        )

    def test_unclosed_quote_keeps_rows_read_before_it(self):
        audit = AuditResult()
        table = decode_csv(b'Particulars,Debit,Credit\nCash,100,\n"Capital,,500\n', audit)

        self.assertEqual(len(table["rows"]), 1)
        self.assertEqual(table["parse_errors"][0]["code"], "QuoteNotClosed")
        self.assertEqual(audit.issues[0].row, 2)
        self.assertIn("closing quotes", audit.issues[0].suggestion)
        self.assertEqual(len(audit.warnings), 1)

    def test_stray_quote_row_is_reported_and_later_rows_survive(self):
        lines = ["Particulars,Debit,Credit"] + [f"Account {n},{n * 100}," for n in range(1, 11)]
        lines[5] = '"Petty"cash,500,'
        audit = AuditResult()
        table = decode_csv(("\n".join(lines) + "\n").encode("utf-8"), audit)

        self.assertEqual(len(table["rows"]), 10)
        self.assertEqual(table["rows"][4], {"Particulars": "Pettycash", "Debit": "500", "Credit": ""})
        self.assertEqual(table["rows"][9]["Particulars"], "Account 10")
        self.assertEqual(audit.total_rows, 10)
        self.assertEqual([error["code"] for error in table["parse_errors"]], ["InvalidQuotes"])
        self.assertEqual(audit.issues[0].row, 5)
        self.assertIn("properly quoted", audit.issues[0].suggestion)
        self.assertEqual(
            audit.warnings,
            ["Encountered 1 CSV parsing errors but continuing with 10 valid rows"],
        )

    def test_padded_duplicate_headers_keep_both_columns(self):
        audit = AuditResult()
        table = decode_csv(b"Particulars,Debit, Debit ,Credit\nCash,100,5,\n", audit)

        self.assertEqual(table["headers"], ["Particulars", "Debit", "Debit_1", "Credit"])
        self.assertEqual(table["rows"][0]["Debit"], "100")
        self.assertEqual(table["rows"][0]["Debit_1"], "5")

    def test_zero_recovered_rows_with_errors_fails(self):
        audit = AuditResult()
        with self.assertRaises(IngestError) as ctx:
            decode_csv(b'"Particulars,Debit,Credit\n', audit)

        self.assertTrue(str(ctx.exception).startswith("CSV parsing failed:"))
        self.assertIs(ctx.exception.audit, audit)
        self.assertEqual(audit.total_rows, 0)
        self.assertGreaterEqual(len(audit.issues), 1)

    def test_text_content_is_accepted(self):
        audit = AuditResult()
        table = decode_csv(CLEAN_CSV, audit)
        self.assertIsNone(table["detected_encoding"])
        self.assertEqual(len(table["rows"]), 3)


class SpreadsheetDecoderTests(unittest.TestCase):
    def test_first_sheet_is_read_with_text_values(self):
        content = workbook_bytes(
            [
                ["Particulars", "Debit", "Credit"],
                ["Cash at Bank", 85000, None],
                ["Capital", None, 1250.5],
            ],
            extra_sheets={"Notes": [["Ignored", "Sheet"], ["x", "y"]]},
        )
        audit = AuditResult()
        table = decode_spreadsheet(content, audit)

        self.assertEqual(table["detected_format"], "openpyxl")
        self.assertEqual(table["sheet_name"], "Trial Balance")
        self.assertEqual(table["sheet_names"], ["Trial Balance", "Notes"])
        self.assertEqual(table["rows"][0], {"Particulars": "Cash at Bank", "Debit": "85000", "Credit": ""})
        self.assertEqual(table["rows"][1], {"Particulars": "Capital", "Debit": "", "Credit": "1250.5"})
        self.assertEqual(audit.total_rows, 2)
        self.assertEqual(audit.warnings, [])

    def test_merged_cells_add_warning_without_blocking(self):
        content = workbook_bytes(
            [
                ["Particulars", "Debit", "Credit"],
                ["Cash in Hand", 100, None],
                ["Capital", None, 100],
                ["Closing note", None, None],
            ],
            merge="A4:C4",
        )
        audit = AuditResult()
        table = decode_spreadsheet(content, audit)

        self.assertEqual(table["merged_regions"], 1)
        self.assertEqual(audit.warnings, ["Found 1 merged cells which may cause data misalignment"])
        self.assertEqual(len(table["rows"]), 3)

    def test_legacy_binary_string_is_accepted(self):
        content = workbook_bytes([["Particulars", "Debit", "Credit"], ["Rent", 10, None]])
        audit = AuditResult()
        table = decode_spreadsheet(content.decode("latin-1"), audit)
        self.assertEqual(table["rows"][0]["Particulars"], "Rent")

    def test_header_only_sheet_fails_with_no_data_rows(self):
        audit = AuditResult()
        with self.assertRaisesRegex(IngestError, "Excel sheet contains no data rows"):
            decode_spreadsheet(workbook_bytes([["Particulars", "Debit", "Credit"]]), audit)
        self.assertEqual(audit.issues[0].issue, "Excel sheet contains no data rows")

    def test_empty_content_fails_to_read(self):
        audit = AuditResult()
        with self.assertRaisesRegex(IngestError, "Failed to read file data"):
            decode_spreadsheet(b"", audit)

    def test_non_workbook_bytes_fail_after_retry(self):
        audit = AuditResult()
        with self.assertRaisesRegex(IngestError, "Failed to parse Excel file"):
            decode_spreadsheet(b"this is not a workbook at all", audit)
        self.assertEqual(audit.issues[0].issue, "Failed to parse Excel file")

    def test_engine_sniffing_uses_magic_bytes(self):
        self.assertEqual(sniff_workbook_engine(workbook_bytes([["a"]])), "openpyxl")
        self.assertEqual(sniff_workbook_engine(b"\xd0\xcf\x11\xe0\xa1\xb1\x1a\xe1rest"), "xlrd")
        self.assertIsNone(sniff_workbook_engine(b"plain text"))


if __name__ == "__main__":
    unittest.main()
