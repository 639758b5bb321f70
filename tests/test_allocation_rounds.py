"""
Round Orchestrator Tests

Tests validate:
- Round 1 is PhD students against all courses
- Round 2 sees only leftovers and never reassigns round-1 matches
- Merged output shape (matches, unmatched students, unmatched courses)
- Instability is reported, and raised only on request
- Deterministic result hash

Version: allocation_matching_v1
"""

import random

import pytest

from ta_allocation.matching import rounds
from ta_allocation.matching.errors import UnstableMatchingError
from ta_allocation.matching.models import (
    AllocationRecords,
    BlockingPair,
    MatchPair,
    StabilityReport,
)
from ta_allocation.matching.rounds import (
    extract_carry_over,
    merge_rounds,
    run_allocation,
    run_round,
)
from ta_allocation.shared.hashing import hash_pairs


# ============================================================================
# Test Fixtures
# ============================================================================

def make_records(students, courses, student_prefs=(), course_prefs=()) -> AllocationRecords:
    """
    students/courses: (id, ta_type, rand_score)
    student_prefs: (student_id, course_id, score)
    course_prefs: (course_id, student_id, score)
    """
    return AllocationRecords.model_validate({
        "students": [{"id": i, "ta_type": t, "rand_score": r} for i, t, r in students],
        "courses": [
            {"id": i, "ta_type": t, "rand_score": r, "course": "101", "short_title": "Micro"}
            for i, t, r in courses
        ],
        "student_preferences": [
            {"student_allocation_id": s, "course_allocation_id": c, "score": v}
            for s, c, v in student_prefs
        ],
        "course_preferences": [
            {"course_allocation_id": c, "student_allocation_id": s, "score": v}
            for c, s, v in course_prefs
        ],
    })


@pytest.fixture
def scenario_records():
    """S1 PhD, S2 MA, one PhD-only course."""
    return make_records(
        [("S1", "1", 0.9), ("S2", "2", 0.5)],
        [("C1", "1", 0.5)],
        [("S1", "C1", 1.0)],
        [("C1", "S1", 1.0)],
    )


@pytest.fixture
def mixed_records():
    """Two PhD students, two MA students, one PhD-only and two open positions."""
    return make_records(
        [("P1", "1", 0.11), ("P2", "1", 0.12), ("M1", "2", 0.21), ("M2", "2", 0.22)],
        [("C1", "1", 0.31), ("C2", "2", 0.32), ("C3", "2", 0.33)],
        [("P1", "C1", 5.0), ("P2", "C1", 4.0), ("P2", "C2", 3.0),
         ("M1", "C1", 5.0), ("M1", "C2", 2.0), ("M2", "C3", 1.0)],
        [("C1", "P2", 5.0), ("C1", "P1", 1.0), ("C2", "M1", 4.0), ("C3", "M2", -1.0)],
    )


def random_records(seed: int) -> AllocationRecords:
    rng = random.Random(seed)
    n_students, n_courses = rng.randint(2, 10), rng.randint(2, 8)
    s_ticks = rng.sample(range(1, 1000), n_students)
    c_ticks = rng.sample(range(1, 1000), n_courses)
    students = [(f"S{i}", rng.choice("12"), s_ticks[i] / 1000) for i in range(n_students)]
    courses = [(f"C{j}", rng.choice("12"), c_ticks[j] / 1000) for j in range(n_courses)]
    levels = [-1.0, 0.0, 1.0, 2.0, 3.0]
    student_prefs = [(s[0], c[0], rng.choice(levels)) for s in students for c in courses if rng.random() < 0.5]
    course_prefs = [(c[0], s[0], rng.choice(levels)) for c in courses for s in students if rng.random() < 0.5]
    return make_records(students, courses, student_prefs, course_prefs)


# ============================================================================
# Single Round Tests
# ============================================================================

class TestRunRound:
    """Test one eligibility → match → verify cycle."""

    def test_round_one_phd_only(self, scenario_records):
        result = run_round(scenario_records, first_round=True)

        assert result.round_number == 1
        assert result.students_considered == 1
        assert result.courses_considered == 1
        assert [p.as_tuple() for p in result.pairs] == [("S1", "C1")]
        assert result.is_stable

    def test_round_two_leftovers(self, scenario_records):
        result = run_round(
            scenario_records, first_round=False,
            matched_students={"S1"}, unfilled_courses=set(),
        )

        assert result.round_number == 2
        assert result.courses_considered == 0
        assert [p.as_tuple() for p in result.pairs] == [("S2", "none")]

    def test_unmatched_courses_listed(self):
        records = make_records([("S1", "1", 0.5)], [("C1", "1", 0.1), ("C2", "1", 0.2)],
                               [("S1", "C1", 1.0)])

        result = run_round(records, first_round=True)

        assert [p.as_tuple() for p in result.pairs] == [("S1", "C1"), ("none", "C2")]

    def test_degree_invalidations_counted(self, mixed_records):
        result = run_round(mixed_records, first_round=False, unfilled_courses={"C1", "C2", "C3"})

        # M1, M2 against C1, from both sides
        assert result.invalidated_pairs == 4

    def test_warnings_collected(self):
        records = make_records([("S1", "1", 0.5), ("S2", "1", 0.5)], [("C1", "1", 0.1)])

        result = run_round(records, first_round=True)

        assert len(result.warnings) == 1
        assert "not a unique tiebreak score" in result.warnings[0]

    def test_verbose_attaches_report(self, scenario_records):
        quiet = run_round(scenario_records, first_round=True)
        loud = run_round(scenario_records, first_round=True, verbose=True)

        assert quiet.report is None
        assert "STUDENT MATCHING:" in loud.report
        assert "matching is stable" in loud.report


# ============================================================================
# Carry-Over Tests
# ============================================================================

class TestCarryOver:
    """Test the id sets passed from round 1 to round 2."""

    def test_extract(self):
        pairs = [
            MatchPair(student_id="S1", course_id="C1"),
            MatchPair(student_id="S2"),
            MatchPair(course_id="C2"),
        ]

        matched, unfilled = extract_carry_over(pairs)

        assert matched == {"S1"}
        assert unfilled == {"C2"}

    def test_merge_keeps_only_round_one_matches(self):
        records = make_records(
            [("S1", "1", 0.9), ("S2", "1", 0.5)], [("C1", "1", 0.5)],
            [("S1", "C1", 1.0)], [("C1", "S1", 1.0)],
        )
        first = run_round(records, first_round=True)
        second = run_round(records, first_round=False, matched_students={"S1"}, unfilled_courses=set())

        merged = merge_rounds(first, second)

        assert [p.as_tuple() for p in merged] == [("S1", "C1"), ("S2", "none")]

    @pytest.mark.parametrize("seed", range(25))
    def test_round_two_never_reassigns(self, seed):
        result = run_allocation(random_records(seed))
        matched_first, unfilled_first = extract_carry_over(result.first_round.pairs)

        for pair in result.second_round.pairs:
            assert pair.student_id not in matched_first
            if pair.course_id is not None:
                assert pair.course_id in unfilled_first

        students = [p.student_id for p in result.pairs if p.student_id]
        courses = [p.course_id for p in result.pairs if p.course_id]
        assert len(students) == len(set(students))
        assert len(courses) == len(set(courses))
        assert result.is_stable


# ============================================================================
# Full Allocation Tests
# ============================================================================

class TestRunAllocation:
    """Test the two-round allocation end to end."""

    def test_phd_only_scenario(self, scenario_records):
        """S1 takes C1 in round 1; S2 has nothing left in round 2."""
        result = run_allocation(scenario_records)

        assert result.first_round.matches == [MatchPair(student_id="S1", course_id="C1")]
        assert result.as_tuples() == [("S1", "C1"), ("S2", "none")]
        assert ("none", "C1") not in result.as_tuples()
        assert result.is_stable

    def test_mixed_market(self, mixed_records):
        result = run_allocation(mixed_records)
        outcome = dict(
            (p.student_id, p.course_id) for p in result.pairs if p.student_id is not None
        )

        # Round 1: C1 prefers P2; P1 falls to unranked open positions
        assert outcome["P2"] == "C1"
        assert result.first_round.students_considered == 2
        # M1 can never hold the PhD-only C1
        assert outcome["M1"] != "C1"
        # C3 scores M2 negatively
        assert outcome.get("M2") != "C3"

    def test_phd_leftover_retried_in_round_two(self):
        """A PhD student unmatched in round 1 takes part again in round 2."""
        records = make_records(
            [("P1", "1", 0.1), ("M1", "2", 0.2)],
            [("C1", "2", 0.1)],
            [("P1", "C1", -1.0), ("M1", "C1", 1.0)],
        )

        result = run_allocation(records)

        assert result.first_round.matches == []
        assert result.second_round.students_considered == 2
        assert ("M1", "C1") in result.as_tuples()
        assert ("P1", "none") in result.as_tuples()

    def test_hash_deterministic(self, mixed_records):
        first = run_allocation(mixed_records)
        second = run_allocation(mixed_records)

        assert first.match_hash == second.match_hash
        assert first.match_hash == hash_pairs(reversed(first.as_tuples()))
        assert first.match_hash.startswith("sha256:")

    def test_instability_reported_not_raised(self, scenario_records, monkeypatch):
        unstable = StabilityReport(blocking_pairs=[
            BlockingPair(student_id="S1", course_id="C1", student_score=1.0, course_score=1.0)
        ])
        monkeypatch.setattr(rounds, "check_matching_stability", lambda s, c: unstable)

        result = run_allocation(scenario_records)

        assert result.is_stable is False
        assert result.first_round.is_stable is False

    def test_instability_raised_on_request(self, scenario_records, monkeypatch):
        unstable = StabilityReport(blocking_pairs=[
            BlockingPair(student_id="S1", course_id="C1", student_score=1.0, course_score=1.0)
        ])
        monkeypatch.setattr(rounds, "check_matching_stability", lambda s, c: unstable)

        with pytest.raises(UnstableMatchingError) as exc:
            run_allocation(scenario_records, require_stable=True)

        assert exc.value.round_number == 1
        assert exc.value.report.blocking_pairs[0].course_id == "C1"

    def test_empty_records(self):
        result = run_allocation(AllocationRecords())

        assert result.pairs == []
        assert result.is_stable
