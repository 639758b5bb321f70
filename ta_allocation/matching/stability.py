"""
Stability Verifier

Independent O(students x courses) check of a finished matching, run against
the sealed preference snapshots rather than the engine's mutated maps.

A matching fails when:
- some student and course, both scoring each other non-negatively, would
  both rather be with each other than with their current match (or lack of one)
- some agent is matched to a partner it scores negatively

The check reports; it never repairs.
"""

import logging

from .models import (
    Agent,
    AgentPool,
    BlockingPair,
    InvalidMatch,
    StabilityReport,
)
from .tiebreak import is_better

logger = logging.getLogger(__name__)


def _would_switch(agent: Agent, candidate_id: str, other_pool: AgentPool) -> bool:
    if not agent.match.is_matched:
        return True
    return is_better(agent.initial_preferences, candidate_id, agent.match.partner_id, other_pool)


def _invalid_matches(pool: AgentPool):
    for agent in pool:
        if not agent.match.is_matched:
            continue
        score = agent.initial_preferences[agent.match.partner_id]
        if score < 0:
            yield InvalidMatch(
                agent_id=agent.id,
                role=agent.role,
                partner_id=agent.match.partner_id,
                score=score,
            )


def check_matching_stability(students: AgentPool, courses: AgentPool) -> StabilityReport:
    """
    Look for blocking pairs and negatively scored matches.

    Args:
        students: Student pool after matching
        courses: Course pool after matching

    Returns:
        StabilityReport listing every violation found
    """
    report = StabilityReport()

    for student in students:
        for course in courses:
            report.pairs_checked += 1
            student_score = student.initial_preferences[course.id]
            course_score = course.initial_preferences[student.id]
            if student_score < 0 or course_score < 0:
                continue

            if _would_switch(student, course.id, courses) and _would_switch(course, student.id, students):
                logger.error(
                    f"student {student.id} and course {course.id} would prefer to pair; match unstable"
                )
                report.blocking_pairs.append(BlockingPair(
                    student_id=student.id,
                    course_id=course.id,
                    student_score=student_score,
                    course_score=course_score,
                ))

    for pool in (students, courses):
        for invalid in _invalid_matches(pool):
            logger.error(
                f"{invalid.role.value} {invalid.agent_id} has negative match "
                f"{invalid.partner_id}; match unstable"
            )
            report.invalid_matches.append(invalid)

    return report


def validate_matching_stability(students: AgentPool, courses: AgentPool) -> bool:
    """Pass/fail form of check_matching_stability."""
    return check_matching_stability(students, courses).is_stable
