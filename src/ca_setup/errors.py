"""
Issue and report model for CA material validation.

Validation never raises on bad input material. Each check appends a
ValidationIssue to a shared ValidationReport so that a single run shows
every problem. The exception classes at the bottom exist for callers that
prefer to turn a failed report into control flow.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Iterator


class Severity(enum.Enum):
    """How much an issue matters. Only ERROR fails validation."""

    ERROR = "error"
    WARNING = "warning"


class IssueKind(enum.Enum):
    """Closed taxonomy of everything the engine can report."""

    UNREADABLE_SOURCE = "unreadable-source"
    MALFORMED_PEM = "malformed-pem"
    EMPTY_COLLECTION = "empty-collection"
    KEY_CERTIFICATE_MISMATCH = "key-certificate-mismatch"
    CHAIN_LINKAGE_FAILURE = "chain-linkage-failure"
    CRL_ISSUER_MISMATCH = "crl-issuer-mismatch"
    CRL_SIGNATURE_FAILURE = "crl-signature-failure"
    LEAF_VALIDATION_FAILURE = "leaf-validation-failure"
    # warnings
    MISSING_CRL_CHAIN = "missing-crl-chain"
    STALE_CRL = "stale-crl"
    UNMATCHED_CRL = "unmatched-crl"


@dataclass(frozen=True)
class ValidationIssue:
    """
    A single finding produced by one of the checks.

    Attributes:
        severity (Severity): ERROR or WARNING.
        kind (IssueKind): Which check produced the issue.
        message (str): Human readable text, rendered as-is by the CLI.
        subject_path (str): The input file/slot the issue concerns ("" if none).
    """
    severity: Severity
    kind: IssueKind
    message: str
    subject_path: str = ""

    def __str__(self) -> str:
        return self.message


@dataclass
class ValidationReport:
    """
    Ordered, append-only collection of issues for one validation run.
    """
    issues: list[ValidationIssue] = field(default_factory=list)

    def add_error(self, kind: IssueKind, message: str, subject_path: str = "") -> ValidationIssue:
        issue = ValidationIssue(Severity.ERROR, kind, message, subject_path)
        self.issues.append(issue)
        return issue

    def add_warning(self, kind: IssueKind, message: str, subject_path: str = "") -> ValidationIssue:
        issue = ValidationIssue(Severity.WARNING, kind, message, subject_path)
        self.issues.append(issue)
        return issue

    @property
    def errors(self) -> list[ValidationIssue]:
        return [i for i in self.issues if i.severity is Severity.ERROR]

    @property
    def warnings(self) -> list[ValidationIssue]:
        return [i for i in self.issues if i.severity is Severity.WARNING]

    @property
    def is_success(self) -> bool:
        """True when no ERROR issue was collected. Warnings never fail a run."""
        return not self.errors

    def of_kind(self, kind: IssueKind) -> list[ValidationIssue]:
        return [i for i in self.issues if i.kind is kind]

    def raise_for_errors(self) -> None:
        """
        Raise the most specific SetupError for the first error, if any.

        Raises:
            FileNotFound: If the first error is an unreadable source.
            InvalidX509Object: If the first error concerns unparseable material.
            SetupError: For any other error.
        """
        errors = self.errors
        if not errors:
            return
        first = errors[0]
        summary = "; ".join(e.message for e in errors)
        if first.kind is IssueKind.UNREADABLE_SOURCE:
            raise FileNotFound(summary, errors)
        if first.kind in (IssueKind.MALFORMED_PEM, IssueKind.EMPTY_COLLECTION):
            raise InvalidX509Object(summary, errors)
        raise SetupError(summary, errors)

    def __iter__(self) -> Iterator[ValidationIssue]:
        return iter(self.issues)

    def __len__(self) -> int:
        return len(self.issues)


class SetupError(Exception):
    """Raised by ValidationReport.raise_for_errors()."""

    def __init__(self, message: str, issues: list[ValidationIssue] | None = None):
        super().__init__(message)
        self.issues = list(issues or [])


class FileNotFound(SetupError):
    pass


class InvalidX509Object(SetupError):
    pass
