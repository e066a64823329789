"""
Upload → canonical rows.

    rows, audit = ingest("trial_balance.xlsx")

    parse_financial_file(upload, on_success, on_error)

``parse_financial_file`` is the continuation-style entry point: exactly one of
``on_success(rows, audit)`` / ``on_error(err)`` is called, exactly once, and
nothing raised inside the pipeline escapes it. ``ingest`` is the same pipeline
for callers that prefer an exception (IngestError) to a callback.

Each call owns its audit and row lists; nothing is shared between calls.
"""

from __future__ import annotations

import logging
import mimetypes
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Optional, Union

from ledger_doctor.audit import AuditResult, IngestError
from ledger_doctor.columns import normalize_column_names
from ledger_doctor.loader import FORMAT_CSV, decode_csv, decode_spreadsheet, detect_format
from ledger_doctor.normalizer import CanonicalRow, process_financial_data
from ledger_doctor.validator import NO_VALID_ROWS_MESSAGE, validate_financial_data

logger = logging.getLogger(__name__)

MAX_SOURCE_BYTES = 25 * 1024 * 1024

SuccessCallback = Callable[[list[CanonicalRow], AuditResult], Any]
ErrorCallback = Callable[[Exception], Any]

mimetypes.add_type("text/csv", ".csv")
mimetypes.add_type("application/vnd.oasis.opendocument.spreadsheet", ".ods")


@dataclass(frozen=True)
class SourceFile:
    """A named blob plus the media type the host declared for it."""

    name: str
    reader: Callable[[], Union[bytes, str]]
    media_type: Optional[str] = None

    @classmethod
    def from_path(cls, path: Union[str, Path]) -> "SourceFile":
        path = Path(path)
        media_type, _ = mimetypes.guess_type(path.name)
        return cls(name=path.name, reader=path.read_bytes, media_type=media_type)

    @classmethod
    def from_bytes(cls, name: str, content: Union[bytes, str], media_type: Optional[str] = None) -> "SourceFile":
        return cls(name=name, reader=lambda: content, media_type=media_type)

    @classmethod
    def from_upload(cls, upload: Any) -> "SourceFile":
        """Wrap a file-like upload: anything with ``name`` and ``getvalue()`` or ``read()``."""
        name = Path(str(getattr(upload, "name", "") or "upload")).name
        media_type = getattr(upload, "type", None) or getattr(upload, "media_type", None)
        if hasattr(upload, "getvalue"):
            reader = upload.getvalue
        elif hasattr(upload, "read"):
            reader = upload.read
        else:
            raise TypeError(f"Cannot read upload of type {type(upload).__name__}")
        return cls(name=name, reader=reader, media_type=media_type)

    def read(self) -> Union[bytes, str]:
        return self.reader()


def as_source(source: Any) -> SourceFile:
    if isinstance(source, SourceFile):
        return source
    if isinstance(source, (str, Path)):
        return SourceFile.from_path(source)
    return SourceFile.from_upload(source)


def read_source(source: SourceFile, audit: AuditResult) -> Union[bytes, str]:
    try:
        content = source.read()
    except OSError as exc:
        audit.add_issue(
            "File reading error",
            suggestion="The file might be corrupted or too large. Try with a smaller file or different format.",
        )
        raise IngestError(f"File reading error: {exc}", audit) from exc

    if content is None:
        audit.add_issue(
            "Failed to read file data",
            suggestion="The file might be corrupted or empty. Try re-exporting the file.",
        )
        raise IngestError("Failed to read file data", audit)
    if len(content) > MAX_SOURCE_BYTES:
        audit.add_issue(
            f"File is larger than {MAX_SOURCE_BYTES // (1024 * 1024)} MB",
            suggestion="Split the trial balance or remove unrelated sheets before uploading.",
        )
        raise IngestError("File is too large to process", audit)
    return content


def ingest(source: Any, audit: Optional[AuditResult] = None) -> tuple[list[CanonicalRow], AuditResult]:
    """
    Run the whole pipeline on one source.

    Raises IngestError (carrying the audit) for every fatal condition,
    including a parseable file with no usable rows. Findings go into
    ``audit`` when one is given, otherwise into a fresh AuditResult.
    """
    source = as_source(source)
    if audit is None:
        audit = AuditResult()
    logger.info("Parsing file: %s Type: %s", source.name, source.media_type)

    content = read_source(source, audit)
    if detect_format(source.name, source.media_type) == FORMAT_CSV:
        table = decode_csv(content, audit)
    else:
        table = decode_spreadsheet(content, audit)

    rows = normalize_column_names(table["rows"])
    validation = validate_financial_data(rows, audit)
    if not validation.valid:
        raise IngestError(validation.message, audit)

    processed = process_financial_data(rows, validation.layout)
    audit.finalize(len(processed))
    if not processed:
        raise IngestError(NO_VALID_ROWS_MESSAGE, audit)
    logger.info("Ingested %d of %d rows from %s", audit.valid_rows, audit.total_rows, source.name)
    return processed, audit


def parse_financial_file(source: Any, on_success: SuccessCallback, on_error: ErrorCallback) -> None:
    audit = AuditResult()
    try:
        rows, audit = ingest(source, audit)
    except IngestError as exc:
        logger.info("File rejected: %s", exc)
        on_error(exc)
        return
    except Exception as exc:
        logger.exception("File parsing error")
        audit.add_issue(
            f"File parsing error: {exc}",
            suggestion="The file format might be unsupported or corrupted. Try saving as CSV.",
        )
        wrapped = IngestError(f"File parsing error: {exc}", audit)
        wrapped.__cause__ = exc
        on_error(wrapped)
        return
    on_success(rows, audit)
