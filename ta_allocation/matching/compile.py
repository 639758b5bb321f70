"""
Preference Compiler

Turns raw agent and preference records into per-agent preference maps:

1. Parse and validate raw records (once, here)
2. Filter agents by round eligibility
3. Push ranked preferences into live maps and snapshots
4. Default every unranked pair to 0.0 so each map is dense

Version: allocation_matching_v1
"""

from typing import Any, Dict, Iterable, List, Optional, Set, Tuple
import logging

from pydantic import ValidationError

from .errors import RecordValidationError
from .models import (
    Agent,
    AgentPool,
    AgentRecord,
    AllocationRecords,
    PreferenceRecord,
    Role,
    TAType,
)

logger = logging.getLogger(__name__)

# Score given to pairs nobody ranked: acceptable, tied for worst
UNRANKED_SCORE = 0.0


def parse_records(raw: Dict[str, Any]) -> AllocationRecords:
    """
    Validate the four raw record collections.

    Args:
        raw: dict with students, courses, student_preferences, course_preferences

    Returns:
        AllocationRecords

    Raises:
        RecordValidationError: if any record fails validation
    """
    try:
        return AllocationRecords.model_validate(raw)
    except ValidationError as e:
        raise RecordValidationError(
            f"invalid allocation records: {e.error_count()} error(s)",
            errors=e.errors(include_url=False, include_context=False, include_input=False),
        ) from e


def should_accept(
    role: Role,
    first_round: bool,
    record: AgentRecord,
    matched_students: Optional[Set[str]] = None,
    unfilled_courses: Optional[Set[str]] = None,
) -> bool:
    """
    Decide whether an agent takes part in a round.

    Round 1: PhD students only, every course.
    Round 2: every student not matched in round 1, every course left unfilled.
    """
    if first_round:
        if role is Role.STUDENT:
            return record.ta_type is TAType.PHD
        return True

    if role is Role.STUDENT:
        return record.id not in (matched_students or set())
    return record.id in (unfilled_courses or set())


def build_agent_pool(
    records: Iterable[AgentRecord],
    role: Role,
    first_round: bool,
    matched_students: Optional[Set[str]] = None,
    unfilled_courses: Optional[Set[str]] = None,
) -> AgentPool:
    """Index the eligible agents of one population by id."""
    pool = AgentPool(role)
    for record in records:
        if should_accept(role, first_round, record, matched_students, unfilled_courses):
            pool.add(Agent.from_record(record, role))
    return pool


def find_duplicate_tiebreaks(pool: AgentPool) -> List[str]:
    """
    Report agents whose tiebreak score is not unique in their population.

    Not fatal: the first agent seen with a score keeps priority on exact ties.
    """
    seen: Set[float] = set()
    problems: List[str] = []
    for agent in pool:
        if agent.tiebreak_score in seen:
            message = (
                f"score {agent.tiebreak_score} for {pool.role.value} {agent.id} "
                f"is not a unique tiebreak score"
            )
            logger.warning(message)
            problems.append(message)
        seen.add(agent.tiebreak_score)
    return problems


def _labels(role: Role) -> Tuple[str, str]:
    if role is Role.STUDENT:
        return "student_id", "course_id"
    return "course_id", "student_id"


def push_preferences(
    pool: AgentPool,
    preference_records: Iterable[PreferenceRecord],
    other_pool: AgentPool,
) -> int:
    """
    Store each ranked score under the primary agent, keyed by the ranked agent.

    Records naming an agent outside either pool are dropped; that agent is not
    eligible this round.

    Returns:
        Number of records dropped
    """
    primary_label, secondary_label = _labels(pool.role)
    dropped = 0
    for pref in preference_records:
        primary_id = getattr(pref, primary_label)
        secondary_id = getattr(pref, secondary_label)
        if primary_id in pool and secondary_id in other_pool:
            pool[primary_id].set_preference(secondary_id, pref.score)
        else:
            dropped += 1
    if dropped:
        logger.debug(f"Dropped {dropped} {pool.role.value} preferences naming ineligible agents")
    return dropped


def collect_missing_preferences(pool: AgentPool, other_pool: AgentPool) -> int:
    """
    Give every unranked opposing agent the default score.

    Returns:
        Number of entries filled in
    """
    filled = 0
    for agent in pool:
        for other in other_pool:
            if other.id not in agent.preferences:
                agent.set_preference(other.id, UNRANKED_SCORE)
                filled += 1
    return filled


def compile_preferences(
    pool: AgentPool,
    preference_records: Iterable[PreferenceRecord],
    other_pool: AgentPool,
) -> AgentPool:
    """
    Build dense preference maps for every agent in `pool`.

    After this call each agent has a score for every agent in `other_pool`,
    in both its live map and its snapshot.
    """
    push_preferences(pool, preference_records, other_pool)
    collect_missing_preferences(pool, other_pool)
    return pool
