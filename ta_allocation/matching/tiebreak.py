"""
Tie-Break Resolver

Cardinal scores are compared with exact equality. They are upstream values
copied verbatim by the compiler, never computed here.
"""

from typing import Mapping, Optional

from .models import AgentPool


def retrieve_best_preference(
    tier_score: float,
    preferences: Mapping[str, float],
    pool: AgentPool,
    starting_id: Optional[str] = None,
) -> Optional[str]:
    """
    Pick the candidate with the highest tiebreak score among those at `tier_score`.

    Exact tiebreak equality keeps whichever candidate was seen first;
    `starting_id`, when given, is seen first.

    Returns:
        Candidate id, or None if no candidate sits at that tier
    """
    best_id = starting_id
    best_tiebreak = pool[starting_id].tiebreak_score if starting_id is not None else None

    for candidate_id, score in preferences.items():
        if score != tier_score:
            continue
        tiebreak = pool[candidate_id].tiebreak_score
        if best_tiebreak is None or tiebreak > best_tiebreak:
            best_tiebreak = tiebreak
            best_id = candidate_id

    return best_id


def is_better(
    preferences: Mapping[str, float],
    candidate_id: str,
    existing_id: str,
    pool: AgentPool,
) -> bool:
    """True if `candidate_id` ranks strictly above `existing_id`, ties broken by tiebreak score."""
    candidate_score = preferences[candidate_id]
    existing_score = preferences[existing_id]
    return candidate_score > existing_score or (
        candidate_score == existing_score
        and pool[candidate_id].tiebreak_score > pool[existing_id].tiebreak_score
    )
