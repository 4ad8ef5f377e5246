"""
Exception hierarchy for dispute-lib.

Exception
└── DisputeLibError
    ├── ValidationError (caller-supplied data violates a precondition)
    │   ├── UnknownLoanError
    │   ├── OutOfRangeIndexError
    │   ├── InvalidDisputeError
    │   └── MalformedEventError
    ├── SnapshotError (persisted snapshot cannot be read or written)
    │   └── SnapshotIntegrityError
    └── FiscalDataError (Fiscal Data API call failed)

ValidationError also subclasses ValueError so callers that only know about
built-in exceptions can still catch bad input.
"""

from typing import Optional


class DisputeLibError(Exception):
    """Base class for all dispute-lib errors."""


class ValidationError(DisputeLibError, ValueError):
    """Caller-supplied data violates a precondition. Nothing was committed."""


class UnknownLoanError(ValidationError):
    """Reconciliation was requested against a loan that does not exist."""

    def __init__(self, loan_id):
        self.loan_id = loan_id
        super().__init__(f"Loan {loan_id} not found")


class OutOfRangeIndexError(ValidationError):
    """Dispute index would leave a gap in the loan's dispute sequence."""

    def __init__(self, loan_id, dispute_index: int, history_length: int):
        self.loan_id = loan_id
        self.dispute_index = dispute_index
        self.history_length = history_length
        super().__init__(
            f"Dispute index {dispute_index} out of range for loan {loan_id}: "
            f"{history_length} dispute(s) on file, next index is {history_length}"
        )


class InvalidDisputeError(ValidationError):
    """Incoming dispute record is not well formed."""


class MalformedEventError(ValidationError):
    """An interaction event is missing required fields or has an unknown type."""

    def __init__(self, message: str, position: Optional[int] = None):
        self.position = position
        if position is not None:
            message = f"Malformed event at position {position}: {message}"
        super().__init__(message)


class SnapshotError(DisputeLibError):
    """Snapshot file could not be loaded or saved."""


class SnapshotIntegrityError(SnapshotError):
    """Snapshot content does not match the expected shape."""

    def __init__(self, source: str, violations: list):
        self.source = source
        self.violations = list(violations)
        super().__init__(
            f"Snapshot {source} failed integrity check: {'; '.join(self.violations)}"
        )


class FiscalDataError(DisputeLibError):
    """Fiscal Data API request failed or the proxy is disabled."""
