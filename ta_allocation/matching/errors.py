"""
Allocation error types.

Data integrity problems (duplicate ids, duplicate tiebreak scores) are logged,
not raised. Instability is only raised when a caller asks for it.
"""

from typing import Optional

from .models import StabilityReport


class AllocationError(Exception):
    """Base exception for allocation failures."""
    pass


class RecordValidationError(AllocationError):
    """Raw records failed schema validation at ingestion."""

    def __init__(self, message: str, errors: Optional[list] = None):
        super().__init__(message)
        self.errors = errors or []


class UnstableMatchingError(AllocationError):
    """A round produced a matching that failed the stability check."""

    def __init__(self, round_number: int, report: StabilityReport):
        super().__init__(
            f"round {round_number} matching is unstable: "
            f"{len(report.blocking_pairs)} blocking pair(s), "
            f"{len(report.invalid_matches)} invalid match(es)"
        )
        self.round_number = round_number
        self.report = report
