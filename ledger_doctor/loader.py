"""
Format detection and decoding for trial-balance uploads

Supports: .csv (delimited text) and .xlsx .xlsm .xls .ods (first sheet only)

Public API:
    kind  = detect_format("tb.xlsx", "application/octet-stream")
    table = decode_csv(raw_bytes, audit)
    table = decode_spreadsheet(raw_bytes, audit)

Decoded table dict keys:
    rows              : list of RawRow dicts keyed by header text
    headers           : header names in column order (deduplicated)
    detected_format   : "csv" or the workbook engine that opened the file
    detected_encoding : encoding name for text files; None for workbooks
    delimiter         : delimiter char for text files; None otherwise
    sheet_name        : first sheet name for workbooks; None otherwise
    sheet_names       : all sheet names for workbooks; None otherwise
    merged_regions    : merged-cell region count on the first sheet (workbooks)
    parse_errors      : structural CSV errors: dicts with code, message, row

Both decoders set ``audit.total_rows`` and raise IngestError when nothing can
be recovered.
"""

from __future__ import annotations

import csv
import importlib.util
import io
import logging
import zipfile
from collections import Counter
from datetime import date, datetime, time
from typing import Any, Optional, Union

import chardet
import openpyxl
import pandas as pd

from ledger_doctor.audit import AuditResult, IngestError

logger = logging.getLogger(__name__)

# ── Format groups ──────────────────────────────────────────────────────────────
CSV_MEDIA_TYPE     = "text/csv"
CSV_FORMATS        = {".csv"}
SPREADSHEET_FORMATS = {".xlsx", ".xlsm", ".xls", ".ods"}
SPREADSHEET_MEDIA_TYPES = {
    "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
    "application/vnd.ms-excel.sheet.macroenabled.12",
    "application/vnd.ms-excel",
    "application/vnd.oasis.opendocument.spreadsheet",
    "application/octet-stream",
}
ACCEPTED_FORMATS   = CSV_FORMATS | SPREADSHEET_FORMATS

FORMAT_CSV         = "csv"
FORMAT_SPREADSHEET = "spreadsheet"

OLE_MAGIC = b"\xd0\xcf\x11\xe0\xa1\xb1\x1a\xe1"
ZIP_MAGIC = b"PK\x03\x04"

EMPTY_HEADER = "__EMPTY"

CSV_ERROR_SUGGESTIONS = {
    "QuoteNotClosed": "There is an unclosed quote in your CSV. Check for missing closing quotes.",
    "InvalidQuotes": "Some fields are missing quotes. Ensure text fields with commas are properly quoted.",
    "UndetectableDelimiter": (
        "The delimiter could not be detected. Ensure the file uses a standard delimiter "
        "like comma (,) or semicolon (;)."
    ),
    "TooFewFields": "Inconsistent number of columns. Check for missing commas or extra commas in some rows.",
    "TooManyFields": "Inconsistent number of columns. Check for missing commas or extra commas in some rows.",
}
DEFAULT_CSV_SUGGESTION = "Check the CSV format and ensure it follows standard CSV formatting rules."


def detect_format(name: str, media_type: Optional[str] = None) -> str:
    """
    Route an upload to the CSV or spreadsheet decoder.

    Anything that is not unmistakably CSV is treated as a workbook; the
    spreadsheet decoder fails loudly when the bytes are not one.
    """
    if media_type == CSV_MEDIA_TYPE or (name or "").lower().endswith(".csv"):
        return FORMAT_CSV
    return FORMAT_SPREADSHEET


def suggestion_for_csv_error(code: Optional[str]) -> str:
    return CSV_ERROR_SUGGESTIONS.get(code or "", DEFAULT_CSV_SUGGESTION)


def dedupe_headers(raw_headers: list[str]) -> list[str]:
    """Trim headers, give blank ones a placeholder and suffix repeats with _1, _2, ..."""
    seen: Counter = Counter()
    headers: list[str] = []
    for raw in raw_headers:
        base = raw.strip() or EMPTY_HEADER
        name = base if seen[base] == 0 else f"{base}_{seen[base]}"
        seen[base] += 1
        headers.append(name)
    return headers


def _is_blank_row(values: list[str]) -> bool:
    return not any(str(value).strip() for value in values)


# ══════════════════════════════════════════════════════════════════════════════
# ENCODING DETECTION
# ══════════════════════════════════════════════════════════════════════════════

def _detect_encoding(raw: bytes) -> str:
    result = chardet.detect(raw[:65536])
    detected = result.get("encoding") or "utf-8"
    logger.debug("chardet guessed %s (confidence %.2f)", detected, result.get("confidence") or 0.0)
    return detected


def _read_text_safely(raw: bytes, preferred_encoding: str) -> str:
    """
    Decode raw bytes line-by-line.

    Strategy per line:
      1. Try UTF-8
      2. Try preferred_encoding (chardet result)
      3. Try latin-1
      4. CP1252 with replace (never crashes)

    Also strips embedded null bytes and a leading BOM.
    """
    decoded_lines: list[str] = []
    for raw_line in raw.split(b"\n"):
        decoded: str | None = None
        for enc in ("utf-8", preferred_encoding, "latin-1"):
            if not enc:
                continue
            try:
                decoded = raw_line.decode(enc)
                break
            except (LookupError, UnicodeDecodeError):
                continue
        if decoded is None:
            decoded = raw_line.decode("cp1252", errors="replace")
        decoded_lines.append(decoded.replace("\x00", ""))
    return "\n".join(decoded_lines).lstrip("\ufeff")


# ══════════════════════════════════════════════════════════════════════════════
# DELIMITER DETECTION
# ══════════════════════════════════════════════════════════════════════════════

def _detect_delimiter(text: str) -> tuple[str, bool]:
    """
    Infer the CSV delimiter from sample lines.

    Uses csv.Sniffer first; falls back to scoring each candidate delimiter by
    column-count consistency and column width. Returns (delimiter, detected);
    detected is False when nothing scored and comma was assumed.
    """
    sample_lines = [l for l in text.splitlines() if l.strip()][:50]
    sample = "\n".join(sample_lines[:25])

    if sample:
        try:
            sniffed = csv.Sniffer().sniff(sample, delimiters=",;\t|")
            return sniffed.delimiter, True
        except csv.Error:
            pass

    best_delim  = ","
    best_score  = float("-inf")
    best_width  = 0
    detected    = False
    sample_text = "\n".join(sample_lines)

    for delim in (",", ";", "\t", "|"):
        rows = [
            row
            for row in csv.reader(io.StringIO(sample_text), delimiter=delim)
            if any(cell.strip() for cell in row)
        ]
        if len(rows) < 2:
            continue

        widths       = [len(row) for row in rows]
        mode_width, mode_count = Counter(widths).most_common(1)[0]
        if mode_width == 1:
            continue
        consistency  = mode_count / len(widths)
        score = (mode_width * 2.0) + (consistency * mode_width)
        if len(rows[0]) == mode_width:
            score += 1.0

        if score > best_score or (score == best_score and mode_width > best_width):
            best_score = score
            best_width = mode_width
            best_delim = delim
            detected   = True

    return best_delim, detected


# ══════════════════════════════════════════════════════════════════════════════
# CSV DECODER
# ══════════════════════════════════════════════════════════════════════════════

def _csv_error(code: str, message: str, row: Optional[int]) -> dict[str, Any]:
    return {"code": code, "message": message, "row": row}


def _reparse_leniently(lines: list[str], delimiter: str) -> Optional[list[str]]:
    try:
        return next(csv.reader(lines, delimiter=delimiter), None)
    except csv.Error:
        return None


def _parse_delimited(text: str, delimiter: str) -> tuple[list[str], list[dict[str, str]], list[dict[str, Any]]]:
    """
    First non-blank row is the header; blank rows are skipped.

    A row with a stray quote is recorded as an error and re-read without
    strict quoting, so later rows still come through. An unclosed quote
    swallows the rest of the file and ends the parse.
    """
    pending: list[str] = []

    def feed():
        for line in io.StringIO(text):
            pending.append(line)
            yield line

    reader  = csv.reader(feed(), delimiter=delimiter, strict=True)
    headers: list[str] = []
    records: list[dict[str, str]] = []
    errors:  list[dict[str, Any]] = []
    have_header = False

    while True:
        pending.clear()
        try:
            fields = next(reader)
        except StopIteration:
            break
        except csv.Error as exc:
            row_number = len(records) + 1 if have_header else None
            if "end of data" in str(exc):
                errors.append(_csv_error("QuoteNotClosed", f"Quoted field is malformed: {exc}", row_number))
                break
            errors.append(_csv_error("InvalidQuotes", f"Quoted field is malformed: {exc}", row_number))
            fields = _reparse_leniently(pending, delimiter)
            if fields is None:
                continue

        if _is_blank_row(fields):
            continue
        if not have_header:
            headers = dedupe_headers(fields)
            have_header = True
            continue

        row_number = len(records) + 1
        if len(fields) < len(headers):
            errors.append(_csv_error(
                "TooFewFields",
                f"Too few fields: expected {len(headers)} fields but parsed {len(fields)}",
                row_number,
            ))
        elif len(fields) > len(headers):
            errors.append(_csv_error(
                "TooManyFields",
                f"Too many fields: expected {len(headers)} fields but parsed {len(fields)}",
                row_number,
            ))
        records.append(dict(zip(headers, fields)))

    return headers, records, errors


def decode_csv(content: Union[bytes, bytearray, str], audit: AuditResult) -> dict[str, Any]:
    """
    Parse delimited text into RawRows, tolerating partial structural errors.

    Every parser error is recorded as an Issue with a suggestion keyed by the
    error code. If no row at all could be recovered the parse fails.
    """
    if isinstance(content, str):
        text     = content.lstrip("\ufeff")
        encoding = None
    else:
        raw      = bytes(content)
        encoding = _detect_encoding(raw)
        text     = _read_text_safely(raw, encoding)

    delimiter, detected = _detect_delimiter(text)
    headers, records, errors = _parse_delimited(text, delimiter)

    non_empty_lines = sum(1 for line in text.splitlines() if line.strip())
    if not detected and non_empty_lines > 1:
        errors.insert(0, _csv_error(
            "UndetectableDelimiter",
            f"Unable to auto-detect delimiting character; defaulted to '{delimiter}'",
            None,
        ))

    logger.debug("CSV parse: delimiter=%r rows=%d errors=%d", delimiter, len(records), len(errors))
    audit.total_rows = len(records)

    if errors:
        for error in errors:
            audit.add_issue(
                f"CSV parsing error: {error['message']}",
                row=error["row"],
                suggestion=suggestion_for_csv_error(error["code"]),
            )
        if not records:
            raise IngestError(f"CSV parsing failed: {errors[0]['message']}", audit)
        audit.add_warning(
            f"Encountered {len(errors)} CSV parsing errors but continuing with {len(records)} valid rows"
        )

    return {
        "rows":              records,
        "headers":           headers,
        "detected_format":   FORMAT_CSV,
        "detected_encoding": encoding,
        "delimiter":         delimiter,
        "sheet_name":        None,
        "sheet_names":       None,
        "merged_regions":    0,
        "parse_errors":      errors,
    }


# ══════════════════════════════════════════════════════════════════════════════
# SPREADSHEET DECODER
# ══════════════════════════════════════════════════════════════════════════════

def _workbook_bytes(content: Union[bytes, bytearray, memoryview, str]) -> bytes:
    # Older readers hand over a binary string: one character per byte.
    if isinstance(content, str):
        return content.encode("latin-1")
    return bytes(content)


def sniff_workbook_engine(raw: bytes) -> Optional[str]:
    """Pick the pandas engine from the container's magic bytes."""
    if raw.startswith(OLE_MAGIC):
        return "xlrd"
    if raw.startswith(ZIP_MAGIC):
        try:
            with zipfile.ZipFile(io.BytesIO(raw)) as archive:
                names = set(archive.namelist())
        except zipfile.BadZipFile:
            return None
        if "content.xml" in names:
            return "odf"
        return "openpyxl"
    return None


def _require_engine(engine: Optional[str]) -> None:
    if engine == "xlrd" and importlib.util.find_spec("xlrd") is None:
        raise ImportError(".xls files require xlrd; run: pip install xlrd")
    if engine == "odf" and importlib.util.find_spec("odf") is None:
        raise ImportError(".ods files require odfpy; run: pip install odfpy")


def _cell_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, float) and value != value:
        return ""
    if isinstance(value, bool):
        return "TRUE" if value else "FALSE"
    if isinstance(value, datetime):
        if value.time() == time(0, 0):
            return value.strftime("%Y-%m-%d")
        return value.strftime("%Y-%m-%d %H:%M:%S")
    if isinstance(value, date):
        return value.strftime("%Y-%m-%d")
    if isinstance(value, time):
        return value.strftime("%H:%M:%S")
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value).strip()


# Default read keeps native cell types and formats them ourselves; the lenient
# retry pins the engine from magic bytes and reads every cell as raw text.
WORKBOOK_READ_ATTEMPTS = (
    {"label": "default", "pin_engine": False, "dtype": object},
    {"label": "lenient", "pin_engine": True,  "dtype": str},
)


def _read_first_sheet(raw: bytes, *, engine: Optional[str], dtype: Any) -> tuple[list[str], Optional[pd.DataFrame]]:
    with pd.ExcelFile(io.BytesIO(raw), engine=engine) as xf:
        sheet_names = [str(name) for name in xf.sheet_names]
        if not sheet_names:
            return sheet_names, None
        frame = xf.parse(xf.sheet_names[0], header=None, dtype=dtype, na_filter=False)
    return sheet_names, frame


def open_workbook(content: Union[bytes, bytearray, memoryview, str]) -> dict[str, Any]:
    """
    Open a workbook and read its first sheet as a grid of cells.

    Tries the default options first and retries once with the lenient set.
    Returns dict with: engine, sheet_names, frame (None when there are no
    sheets), attempt.
    """
    raw = _workbook_bytes(content)
    if not raw:
        raise ValueError("Failed to read file data")

    engine = sniff_workbook_engine(raw)
    _require_engine(engine)

    last_error: Exception | None = None
    for attempt in WORKBOOK_READ_ATTEMPTS:
        try:
            sheet_names, frame = _read_first_sheet(
                raw,
                engine=engine if attempt["pin_engine"] else None,
                dtype=attempt["dtype"],
            )
        except Exception as exc:
            logger.debug("Workbook read (%s) failed: %s", attempt["label"], exc)
            last_error = exc
            continue
        return {
            "engine":      engine,
            "sheet_names": sheet_names,
            "frame":       frame,
            "attempt":     attempt["label"],
        }

    raise ValueError(f"Could not open workbook: {last_error}") from last_error


def count_merged_regions(content: Union[bytes, bytearray, memoryview, str], engine: Optional[str]) -> int:
    """Count merged-cell regions on the first sheet."""
    raw = _workbook_bytes(content)

    if engine == "openpyxl":
        # read_only worksheets do not expose merged ranges
        workbook = openpyxl.load_workbook(io.BytesIO(raw))
        try:
            if not workbook.worksheets:
                return 0
            return len(workbook.worksheets[0].merged_cells.ranges)
        finally:
            workbook.close()

    if engine == "xlrd":
        import xlrd

        book = xlrd.open_workbook(file_contents=raw, formatting_info=True, on_demand=True)
        try:
            if book.nsheets == 0:
                return 0
            return len(book.sheet_by_index(0).merged_cells)
        finally:
            book.release_resources()

    if engine == "odf":
        from odf.namespaces import TABLENS
        from odf.opendocument import load
        from odf.table import Table, TableCell

        document = load(io.BytesIO(raw))
        tables = document.spreadsheet.getElementsByType(Table)
        if not tables:
            return 0
        count = 0
        for cell in tables[0].getElementsByType(TableCell):
            columns = int(cell.attributes.get((TABLENS, "number-columns-spanned"), 1))
            rows    = int(cell.attributes.get((TABLENS, "number-rows-spanned"), 1))
            if columns > 1 or rows > 1:
                count += 1
        return count

    return 0


def _frame_to_records(frame: pd.DataFrame) -> tuple[list[str], list[dict[str, str]]]:
    grid = [[_cell_text(value) for value in row] for row in frame.itertuples(index=False, name=None)]
    grid = [row for row in grid if not _is_blank_row(row)]
    if not grid:
        return [], []

    headers = dedupe_headers(grid[0])
    records = []
    for row in grid[1:]:
        padded = row + [""] * (len(headers) - len(row))
        records.append(dict(zip(headers, padded)))
    return headers, records


def decode_spreadsheet(content: Union[bytes, bytearray, memoryview, str, None], audit: AuditResult) -> dict[str, Any]:
    """
    Parse the first sheet of a workbook into RawRows.

    Every cell is converted to text and empty cells default to "" so that
    downstream amount parsing treats CSV and workbook input alike.
    """
    if not content:
        audit.add_issue(
            "Failed to read file data",
            suggestion="The file might be corrupted or empty. Try re-exporting the file.",
        )
        raise IngestError("Failed to read file data", audit)

    try:
        opened = open_workbook(content)
    except ImportError as exc:
        audit.add_issue(str(exc), suggestion="Install the optional reader or save the file as .xlsx or .csv.")
        raise IngestError(str(exc), audit) from exc
    except ValueError as exc:
        audit.add_issue(
            "Failed to parse Excel file",
            suggestion="The file may be corrupted or in an unsupported format. Try saving as .xlsx or .csv.",
        )
        raise IngestError(f"Failed to parse Excel file: {exc}", audit) from exc

    sheet_names = opened["sheet_names"]
    logger.debug("Workbook opened with %s (%s read): %s", opened["engine"], opened["attempt"], sheet_names)

    if not sheet_names or opened["frame"] is None:
        audit.add_issue(
            "Excel file contains no sheets",
            suggestion="The file appears to be empty. Please ensure it contains at least one sheet with data.",
        )
        raise IngestError("Excel file contains no sheets", audit)

    merged = 0
    try:
        merged = count_merged_regions(content, opened["engine"])
    except Exception as exc:
        logger.debug("Merged-cell inspection skipped: %s", exc)
    if merged > 0:
        audit.add_warning(f"Found {merged} merged cells which may cause data misalignment")

    headers, records = _frame_to_records(opened["frame"])
    audit.total_rows = len(records)

    if not records:
        audit.add_issue(
            "Excel sheet contains no data rows",
            suggestion="Ensure your Excel file has data rows with headers matching Particulars, Debit, and Credit",
        )
        raise IngestError("Excel sheet contains no data rows", audit)

    return {
        "rows":              records,
        "headers":           headers,
        "detected_format":   opened["engine"] or FORMAT_SPREADSHEET,
        "detected_encoding": None,
        "delimiter":         None,
        "sheet_name":        sheet_names[0],
        "sheet_names":       sheet_names,
        "merged_regions":    merged,
        "parse_errors":      [],
    }
