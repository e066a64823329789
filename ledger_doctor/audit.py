"""Per-parse audit trail: row counts, issues and warnings."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Optional


@dataclass(frozen=True)
class Issue:
    issue: str
    row: Optional[int] = None
    suggestion: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {}
        if self.row is not None:
            payload["row"] = self.row
        payload["issue"] = self.issue
        if self.suggestion is not None:
            payload["suggestion"] = self.suggestion
        return payload


@dataclass
class AuditResult:
    """
    Mutable report shared by every stage of one parse.

    ``issues`` may outnumber ``invalid_rows``: a single row can raise several
    issues. ``finalize`` fixes the counts once canonical rows are known.
    """

    total_rows: int = 0
    valid_rows: int = 0
    invalid_rows: int = 0
    issues: list[Issue] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    def add_issue(self, issue: str, *, row: Optional[int] = None, suggestion: Optional[str] = None) -> Issue:
        entry = Issue(issue=issue, row=row, suggestion=suggestion)
        self.issues.append(entry)
        return entry

    def add_warning(self, warning: str) -> None:
        self.warnings.append(warning)

    def finalize(self, valid_rows: int) -> "AuditResult":
        self.valid_rows = valid_rows
        self.invalid_rows = max(0, self.total_rows - valid_rows)
        return self

    def issues_for_row(self, row: int) -> list[Issue]:
        return [entry for entry in self.issues if entry.row == row]

    @property
    def has_findings(self) -> bool:
        return bool(self.issues or self.warnings)

    def to_dict(self) -> dict[str, Any]:
        return {
            "totalRows": self.total_rows,
            "validRows": self.valid_rows,
            "invalidRows": self.invalid_rows,
            "issues": [entry.to_dict() for entry in self.issues],
            "warnings": list(self.warnings),
        }

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> "AuditResult":
        return cls(
            total_rows=int(payload.get("totalRows", 0)),
            valid_rows=int(payload.get("validRows", 0)),
            invalid_rows=int(payload.get("invalidRows", 0)),
            issues=[
                Issue(issue=item["issue"], row=item.get("row"), suggestion=item.get("suggestion"))
                for item in payload.get("issues", [])
            ],
            warnings=list(payload.get("warnings", [])),
        )


def render_audit_text(audit: AuditResult, *, max_issues: int = 20) -> str:
    lines = [
        f"Rows read: {audit.total_rows}",
        f"Valid rows: {audit.valid_rows}",
        f"Invalid rows: {audit.invalid_rows}",
        f"Issues: {len(audit.issues)}",
    ]
    if audit.issues:
        lines.append("Issues found:")
        for entry in audit.issues[:max_issues]:
            prefix = f"row {entry.row}: " if entry.row is not None else ""
            line = f"- {prefix}{entry.issue}"
            if entry.suggestion:
                line += f" ({entry.suggestion})"
            lines.append(line)
        hidden = len(audit.issues) - max_issues
        if hidden > 0:
            lines.append(f"- ... {hidden} more")
    if audit.warnings:
        lines.append("Warnings:")
        lines.extend(f"- {warning}" for warning in audit.warnings)
    return "\n".join(lines) + "\n"


class IngestError(ValueError):
    """Fatal ingestion failure; the message is fit for direct display."""

    def __init__(self, message: str, audit: Optional[AuditResult] = None) -> None:
        super().__init__(message)
        self.audit = audit
