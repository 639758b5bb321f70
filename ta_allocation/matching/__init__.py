"""
TA Allocation Matching Layer

Student-proposing deferred acceptance for TA positions, in two rounds:
PhD students first, then everyone left over.

- Compiles ranked preference lists into dense cardinal score maps
- Invalidates MA students in PhD-only positions
- Breaks score ties with per-agent random tiebreak scores
- Verifies every round's matching is stable

Version: allocation_matching_v1
"""

from .models import (
    AllocationRecords,
    AllocationResult,
    MatchPair,
    RoundResult,
    StabilityReport,
    TAType,
)
from .rounds import run_allocation, run_round
from .stability import validate_matching_stability

__all__ = [
    "AllocationRecords",
    "AllocationResult",
    "MatchPair",
    "RoundResult",
    "StabilityReport",
    "TAType",
    "run_allocation",
    "run_round",
    "validate_matching_stability",
]

__version__ = "allocation_matching_v1"
