"""
Matching Engine - Deferred Acceptance

Student-proposing Gale-Shapley with capacity one on both sides.

Each pass visits every student that is unmatched and still has preferences
left. A visited student proposes to its best remaining course (ties broken by
course tiebreak score); the course holds the best proposal seen so far and
bumps a worse incumbent back to unmatched. The proposed-to entry is removed
from the student's live map whatever the outcome, so every pass that does
anything shrinks the total preference size and the loop terminates.

Version: allocation_matching_v1
"""

import logging

from .models import EXHAUSTED, UNMATCHED, AgentPool, EngineStats, MatchState
from .tiebreak import is_better, retrieve_best_preference

logger = logging.getLogger(__name__)


def deferred_acceptance(students: AgentPool, courses: AgentPool) -> EngineStats:
    """
    Run deferred acceptance to a fixed point.

    Mutates `match` on both pools and the live `preferences` of students.
    Snapshots are left untouched.

    Args:
        students: Compiled and validated student pool
        courses: Compiled and validated course pool

    Returns:
        EngineStats for the run
    """
    stats = EngineStats()

    while True:
        stats.passes += 1
        did_an_action = False

        for student in students:
            preferences = student.preferences
            if not student.match.is_unmatched or not preferences:
                continue

            logger.debug(f"checking {student.id}")
            first_id = max(preferences, key=preferences.get)
            top_score = preferences[first_id]

            if top_score < 0:
                # Only negative entries left: all usable preferences exhausted
                logger.debug(f"  remaining preference ({first_id}) is negative, student is done")
                course_id = first_id
                student.match = EXHAUSTED
                stats.exhausted += 1
            else:
                course_id = retrieve_best_preference(top_score, preferences, courses, starting_id=first_id)
                logger.debug(f"  locating best preference {course_id}")
                course = courses[course_id]

                if course.preferences[student.id] < 0:
                    logger.debug(f"   course {course_id} does not accept {student.id}")
                    stats.ineligible_skips += 1
                else:
                    stats.proposals += 1
                    if course.match.is_unmatched:
                        logger.debug("   course has space")
                        course.match = MatchState.matched(student.id)
                        student.match = MatchState.matched(course_id)
                        stats.acceptances += 1
                    elif is_better(course.preferences, student.id, course.match.partner_id, students):
                        incumbent_id = course.match.partner_id
                        logger.debug(f"   student is better than {incumbent_id}")
                        students[incumbent_id].match = UNMATCHED
                        course.match = MatchState.matched(student.id)
                        student.match = MatchState.matched(course_id)
                        stats.acceptances += 1
                        stats.displacements += 1
                    else:
                        logger.debug("   student is worse")
                        stats.rejections += 1

            del preferences[course_id]
            did_an_action = True

        if not did_an_action:
            break

    logger.info(
        f"Deferred acceptance finished after {stats.passes} passes: "
        f"{stats.proposals} proposals, {stats.displacements} displacements, "
        f"{stats.exhausted} exhausted"
    )
    return stats
