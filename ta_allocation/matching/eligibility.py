"""
Eligibility Validator

Invalidates preference entries that would put an MA student into a PhD-only
position. Invalid entries are forced to -1.0 in both the live map and the
snapshot, so the engine never proposes along them and the stability check
never counts them.
"""

import logging

from .models import AgentPool, Role, TAType

logger = logging.getLogger(__name__)

INELIGIBLE_SCORE = -1.0


def is_forbidden_pair(student_type: TAType, course_type: TAType) -> bool:
    """MA student in a PhD-only position."""
    return student_type is TAType.MA and course_type is TAType.PHD


def validate_degree(pool: AgentPool, other_pool: AgentPool) -> int:
    """
    Rewrite forbidden pairings in `pool` to INELIGIBLE_SCORE.

    Works for either side: a student pool is checked against course types and
    a course pool against student types.

    Returns:
        Number of entries invalidated
    """
    invalidated = 0
    for agent in pool:
        for other_id in list(agent.preferences):
            other = other_pool[other_id]
            if pool.role is Role.STUDENT:
                forbidden = is_forbidden_pair(agent.ta_type, other.ta_type)
            else:
                forbidden = is_forbidden_pair(other.ta_type, agent.ta_type)
            if forbidden:
                agent.set_preference(other_id, INELIGIBLE_SCORE)
                invalidated += 1

    if invalidated:
        logger.info(f"Invalidated {invalidated} {pool.role.value} preferences on degree level")
    return invalidated
