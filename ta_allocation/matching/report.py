"""
Allocation report rendering.

Plain-text, per-agent view of a finished round: what each agent got and the
positively ranked preferences it started with. Reads the final matches and
the sealed snapshots only.
"""

from typing import List, Optional

from ta_allocation.config import ALLOCATION_COURSE_PREFIX

from .models import Agent, AgentPool, StabilityReport

NO_HIRE = "no hire"


def _ranked_positive(agent: Agent) -> List[str]:
    ranked = sorted(agent.initial_preferences.items(), key=lambda item: item[1], reverse=True)
    return [other_id for other_id, score in ranked if score > 0]


def render_student_matching(
    students: AgentPool,
    courses: AgentPool,
    prefix: Optional[str] = None,
) -> str:
    """One block per student, sorted by id."""
    prefix = ALLOCATION_COURSE_PREFIX if prefix is None else prefix
    lines = ["STUDENT MATCHING:"]
    for student in sorted(students, key=lambda a: a.id):
        head = f"{student.id} {student.ta_type.label} "
        if student.match.is_matched:
            course = courses[student.match.partner_id]
            head += f"{prefix} {course.record.course} {course.record.short_title} {course.id}"
        else:
            head += NO_HIRE
        lines.append(head)

        prefs = " ".join(
            f"{courses[course_id].record.course}({course_id})"
            for course_id in _ranked_positive(student)
        )
        lines.append(f"preferences: {prefs}".rstrip())
        lines.append("")
    return "\n".join(lines)


def render_course_matching(courses: AgentPool, prefix: Optional[str] = None) -> str:
    """One block per course, sorted by course label then id."""
    prefix = ALLOCATION_COURSE_PREFIX if prefix is None else prefix
    lines = ["COURSE MATCHING:"]
    for course in sorted(courses, key=lambda a: f"{a.record.course}{a.id}"):
        head = (
            f"{course.id} {prefix} {course.record.course} "
            f"({course.record.short_title}, {course.ta_type.label}) "
        )
        head += course.match.partner_id if course.match.is_matched else NO_HIRE
        lines.append(head)
        lines.append(f"preferences: {' '.join(_ranked_positive(course))}".rstrip())
        lines.append("")
    return "\n".join(lines)


def render_round_report(
    round_number: int,
    students: AgentPool,
    courses: AgentPool,
    stability: StabilityReport,
) -> str:
    """Full verbose report for one round."""
    status = "matching is stable" if stability.is_stable else "matching is NOT STABLE"
    parts = [
        f"ROUND {round_number}",
        f"There are {len(students)} students",
        f"There are {len(courses)} courses",
        status,
        "",
        render_student_matching(students, courses),
        render_course_matching(courses),
    ]
    return "\n".join(parts)
