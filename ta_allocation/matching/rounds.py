"""
Round Orchestrator

Runs the matching pipeline twice:

1. Round 1: PhD students against every course
2. Round 2: every student left unmatched (MA students included) against
   every course left unfilled

Round-1 matches are final; round 2 only sees leftovers, passed forward as
plain id sets.

Version: allocation_matching_v1
"""

from typing import Iterable, List, Optional, Set, Tuple
import logging

from ta_allocation.shared.hashing import hash_pairs

from .compile import build_agent_pool, compile_preferences, find_duplicate_tiebreaks
from .eligibility import validate_degree
from .engine import deferred_acceptance
from .errors import UnstableMatchingError
from .models import (
    AgentPool,
    AllocationRecords,
    AllocationResult,
    MatchPair,
    Role,
    RoundResult,
)
from .report import render_round_report
from .stability import check_matching_stability

logger = logging.getLogger(__name__)


def flatten_matching(students: AgentPool, courses: AgentPool) -> List[MatchPair]:
    """
    Every student (matched, or with no course), then every course left empty.

    Matched courses already appear through their student.
    """
    pairs = [
        MatchPair(
            student_id=student.id,
            course_id=student.match.partner_id if student.match.is_matched else None,
        )
        for student in students
    ]
    pairs.extend(
        MatchPair(course_id=course.id)
        for course in courses
        if not course.match.is_matched
    )
    return pairs


def run_round(
    records: AllocationRecords,
    first_round: bool,
    matched_students: Optional[Set[str]] = None,
    unfilled_courses: Optional[Set[str]] = None,
    verbose: bool = False,
) -> RoundResult:
    """
    One eligibility → compile → validate → match → verify cycle.

    Args:
        records: Raw records for both populations
        first_round: Selects round-1 or round-2 eligibility
        matched_students: Round 2 only, students matched in round 1
        unfilled_courses: Round 2 only, courses left empty in round 1
        verbose: Attach and log the per-agent report

    Returns:
        RoundResult; instability is reported, not raised
    """
    round_number = 1 if first_round else 2

    students = build_agent_pool(records.students, Role.STUDENT, first_round, matched_students, unfilled_courses)
    courses = build_agent_pool(records.courses, Role.COURSE, first_round, matched_students, unfilled_courses)

    warnings = students.warnings + courses.warnings
    warnings += find_duplicate_tiebreaks(students)
    warnings += find_duplicate_tiebreaks(courses)

    compile_preferences(students, records.student_preferences, courses)
    compile_preferences(courses, records.course_preferences, students)

    invalidated = validate_degree(students, courses)
    invalidated += validate_degree(courses, students)

    students.seal()
    courses.seal()

    stats = deferred_acceptance(students, courses)
    stability = check_matching_stability(students, courses)

    if stability.is_stable:
        logger.info(f"Round {round_number}: matching is stable")
    else:
        logger.error(f"Round {round_number}: matching is NOT STABLE")

    report = None
    if verbose:
        report = render_round_report(round_number, students, courses, stability)
        logger.debug("\n" + report)

    pairs = flatten_matching(students, courses)
    logger.info(
        f"Round {round_number}: {len(students)} students, {len(courses)} courses, "
        f"{sum(1 for p in pairs if p.is_match)} matches"
    )

    return RoundResult(
        round_number=round_number,
        pairs=pairs,
        students_considered=len(students),
        courses_considered=len(courses),
        invalidated_pairs=invalidated,
        stats=stats,
        stability=stability,
        is_stable=stability.is_stable,
        warnings=warnings,
        report=report,
    )


def extract_carry_over(pairs: Iterable[MatchPair]) -> Tuple[Set[str], Set[str]]:
    """
    Split a round's outcome into (matched student ids, unfilled course ids).
    """
    matched_students: Set[str] = set()
    unfilled_courses: Set[str] = set()
    for pair in pairs:
        if pair.is_match:
            matched_students.add(pair.student_id)
        elif pair.student_id is None and pair.course_id is not None:
            unfilled_courses.add(pair.course_id)
    return matched_students, unfilled_courses


def merge_rounds(first: RoundResult, second: RoundResult) -> List[MatchPair]:
    """Round-1 matches, then everything round 2 produced."""
    return first.matches + list(second.pairs)


def run_allocation(
    records: AllocationRecords,
    verbose: bool = False,
    require_stable: bool = False,
) -> AllocationResult:
    """
    Run both rounds and merge them.

    Args:
        records: Raw records, used by both rounds
        verbose: Attach per-agent reports to each round
        require_stable: Raise UnstableMatchingError instead of reporting

    Returns:
        AllocationResult with both rounds and the merged pairs
    """
    first = run_round(records, first_round=True, verbose=verbose)
    if require_stable and not first.is_stable:
        raise UnstableMatchingError(first.round_number, first.stability)

    matched_students, unfilled_courses = extract_carry_over(first.pairs)
    second = run_round(
        records,
        first_round=False,
        matched_students=matched_students,
        unfilled_courses=unfilled_courses,
        verbose=verbose,
    )
    if require_stable and not second.is_stable:
        raise UnstableMatchingError(second.round_number, second.stability)

    pairs = merge_rounds(first, second)
    return AllocationResult(
        first_round=first,
        second_round=second,
        pairs=pairs,
        is_stable=first.is_stable and second.is_stable,
        match_hash=hash_pairs(p.as_tuple() for p in pairs),
    )
