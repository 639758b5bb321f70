"""
Allocation Matching Models

Pydantic models for the raw records fed into the allocation, the internal
agent state mutated by deferred acceptance, and the round/allocation results.

Records are validated once, here, at ingestion. Everything downstream works on
typed `Agent` objects owned by an `AgentPool`.

Version: allocation_matching_v1
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from types import MappingProxyType
from typing import Dict, Iterator, List, Mapping, Optional, Tuple, Union
import logging

from pydantic import AliasChoices, BaseModel, Field, field_validator

logger = logging.getLogger(__name__)

# External marker for the empty side of an outcome pair
NONE_ID = "none"

# Width of the outcome table id columns
MAX_ID_LENGTH = 64


class TAType(str, Enum):
    """Degree level of a student, or the level a course position requires."""
    PHD = "1"
    MA = "2"

    @property
    def label(self) -> str:
        return "PhD" if self is TAType.PHD else "MA"


class Role(str, Enum):
    """Which side of the market an agent sits on."""
    STUDENT = "student"
    COURSE = "course"


# ============================================================================
# Raw records
# ============================================================================

class AgentRecord(BaseModel):
    """Fields shared by student and course records."""
    id: str = Field(
        max_length=MAX_ID_LENGTH,
        description="Agent id, stored as-is in the outcome table"
    )
    ta_type: TAType
    rand_score: float = Field(
        allow_inf_nan=False,
        description="Tiebreak score, unique within its population"
    )

    class Config:
        extra = "allow"

    @field_validator("id", mode="before")
    @classmethod
    def _coerce_id(cls, v):
        # upstream serves numeric primary keys
        if isinstance(v, int):
            v = str(v)
        if v == NONE_ID:
            raise ValueError(f"'{NONE_ID}' is reserved for the empty side of an outcome pair")
        return v

    @field_validator("ta_type", mode="before")
    @classmethod
    def _coerce_ta_type(cls, v):
        if isinstance(v, int):
            return str(v)
        return v


class StudentRecord(AgentRecord):
    """A TA candidate."""
    pass


class CourseRecord(AgentRecord):
    """A TA position attached to a course."""
    course: str = Field(
        default="",
        description="Course label e.g. '101'"
    )
    short_title: str = Field(
        default="",
        description="Short course title e.g. 'Principles of Micro'"
    )

    @field_validator("course", mode="before")
    @classmethod
    def _coerce_course(cls, v):
        if isinstance(v, int):
            return str(v)
        return v


class StudentPreferenceRecord(BaseModel):
    """A student's cardinal score for one course."""
    student_id: str = Field(
        validation_alias=AliasChoices("student_id", "student_allocation_id")
    )
    course_id: str = Field(
        validation_alias=AliasChoices("course_id", "course_allocation_id")
    )
    score: float = Field(allow_inf_nan=False)

    class Config:
        extra = "allow"

    @field_validator("student_id", "course_id", mode="before")
    @classmethod
    def _coerce_refs(cls, v):
        if isinstance(v, int):
            return str(v)
        return v


class CoursePreferenceRecord(BaseModel):
    """A course's cardinal score for one student."""
    course_id: str = Field(
        validation_alias=AliasChoices("course_id", "course_allocation_id")
    )
    student_id: str = Field(
        validation_alias=AliasChoices("student_id", "student_allocation_id")
    )
    score: float = Field(allow_inf_nan=False)

    class Config:
        extra = "allow"

    @field_validator("course_id", "student_id", mode="before")
    @classmethod
    def _coerce_refs(cls, v):
        if isinstance(v, int):
            return str(v)
        return v


PreferenceRecord = Union[StudentPreferenceRecord, CoursePreferenceRecord]


class AllocationRecords(BaseModel):
    """The four record collections one allocation consumes."""
    students: List[StudentRecord] = Field(default_factory=list)
    courses: List[CourseRecord] = Field(default_factory=list)
    student_preferences: List[StudentPreferenceRecord] = Field(default_factory=list)
    course_preferences: List[CoursePreferenceRecord] = Field(default_factory=list)


# ============================================================================
# Agent state
# ============================================================================

class MatchStatus(str, Enum):
    UNMATCHED = "unmatched"
    MATCHED = "matched"
    EXHAUSTED = "exhausted"


@dataclass(frozen=True)
class MatchState:
    """
    Tri-state match slot of an agent.

    EXHAUSTED is terminal: the student ran out of acceptable preferences
    ("no hire"). Courses are only ever UNMATCHED or MATCHED.
    """
    status: MatchStatus = MatchStatus.UNMATCHED
    partner_id: Optional[str] = None

    @classmethod
    def matched(cls, partner_id: str) -> "MatchState":
        return cls(MatchStatus.MATCHED, partner_id)

    @property
    def is_matched(self) -> bool:
        return self.status is MatchStatus.MATCHED

    @property
    def is_unmatched(self) -> bool:
        return self.status is MatchStatus.UNMATCHED

    @property
    def is_exhausted(self) -> bool:
        return self.status is MatchStatus.EXHAUSTED


UNMATCHED = MatchState()
EXHAUSTED = MatchState(MatchStatus.EXHAUSTED)


@dataclass
class Agent:
    """A student or a course taking part in one round."""
    id: str
    role: Role
    ta_type: TAType
    tiebreak_score: float
    record: Union[StudentRecord, CourseRecord]
    preferences: Dict[str, float] = field(default_factory=dict)
    initial_preferences: Mapping[str, float] = field(default_factory=dict)
    match: MatchState = UNMATCHED

    @classmethod
    def from_record(cls, record: AgentRecord, role: Role) -> "Agent":
        return cls(
            id=record.id,
            role=role,
            ta_type=record.ta_type,
            tiebreak_score=record.rand_score,
            record=record,
        )

    def set_preference(self, other_id: str, score: float) -> None:
        """Write a score into both the live map and the snapshot."""
        if self.is_sealed:
            raise RuntimeError(f"initial preferences of {self.id} are sealed")
        self.preferences[other_id] = score
        self.initial_preferences[other_id] = score

    def seal(self) -> None:
        """Freeze the snapshot; the live map keeps shrinking during matching."""
        if not self.is_sealed:
            self.initial_preferences = MappingProxyType(dict(self.initial_preferences))

    @property
    def is_sealed(self) -> bool:
        return isinstance(self.initial_preferences, MappingProxyType)


class AgentPool:
    """
    Agents of one population keyed by id.

    Iteration follows insertion order, which keeps a run reproducible for a
    fixed record order.
    """

    def __init__(self, role: Role):
        self.role = role
        self._agents: Dict[str, Agent] = {}
        self.warnings: List[str] = []

    def add(self, agent: Agent) -> None:
        if agent.id in self._agents:
            message = f"{agent.id} exists twice in {self.role.value}s"
            logger.warning(message)
            self.warnings.append(message)
        self._agents[agent.id] = agent

    def seal(self) -> None:
        for agent in self._agents.values():
            agent.seal()

    def ids(self) -> List[str]:
        return list(self._agents)

    def __getitem__(self, agent_id: str) -> Agent:
        return self._agents[agent_id]

    def __contains__(self, agent_id: object) -> bool:
        return agent_id in self._agents

    def __iter__(self) -> Iterator[Agent]:
        return iter(list(self._agents.values()))

    def __len__(self) -> int:
        return len(self._agents)

    def __repr__(self) -> str:
        return f"AgentPool({self.role.value}, {len(self)} agents)"


# ============================================================================
# Results
# ============================================================================

class MatchPair(BaseModel):
    """One outcome row: a matched pair, an unmatched student or an unmatched course."""
    student_id: Optional[str] = None
    course_id: Optional[str] = None

    class Config:
        frozen = True

    @property
    def is_match(self) -> bool:
        return self.student_id is not None and self.course_id is not None

    def as_tuple(self) -> Tuple[str, str]:
        """External shape: missing sides become "none"."""
        return (self.student_id or NONE_ID, self.course_id or NONE_ID)


class EngineStats(BaseModel):
    """Counters collected by one deferred acceptance run."""
    passes: int = 0
    proposals: int = 0
    acceptances: int = 0
    displacements: int = 0
    rejections: int = 0
    ineligible_skips: int = 0
    exhausted: int = 0


class BlockingPair(BaseModel):
    """A student and course who both prefer each other to their current match."""
    student_id: str
    course_id: str
    student_score: float
    course_score: float


class InvalidMatch(BaseModel):
    """An agent matched to a partner it scores negatively."""
    agent_id: str
    role: Role
    partner_id: str
    score: float


class StabilityReport(BaseModel):
    """Outcome of the stability check. Never used to correct a matching."""
    blocking_pairs: List[BlockingPair] = Field(default_factory=list)
    invalid_matches: List[InvalidMatch] = Field(default_factory=list)
    pairs_checked: int = 0

    @property
    def is_stable(self) -> bool:
        return not self.blocking_pairs and not self.invalid_matches

    def __bool__(self) -> bool:
        return self.is_stable


class RoundResult(BaseModel):
    """Output of a single eligibility → compile → match → verify cycle."""
    round_number: int = Field(ge=1, le=2)
    pairs: List[MatchPair]
    students_considered: int
    courses_considered: int
    invalidated_pairs: int = Field(
        default=0,
        description="Preference entries forced to -1.0 by the degree check"
    )
    stats: EngineStats
    stability: StabilityReport
    is_stable: bool
    warnings: List[str] = Field(default_factory=list)
    report: Optional[str] = None

    @property
    def matches(self) -> List[MatchPair]:
        return [p for p in self.pairs if p.is_match]


class AllocationResult(BaseModel):
    """Both rounds plus the merged outcome."""
    first_round: RoundResult
    second_round: RoundResult
    pairs: List[MatchPair]
    is_stable: bool
    match_hash: str
    processed_at: str = Field(
        default_factory=lambda: datetime.utcnow().isoformat()
    )
    version: str = "allocation_matching_v1"

    def as_tuples(self) -> List[Tuple[str, str]]:
        return [p.as_tuple() for p in self.pairs]
