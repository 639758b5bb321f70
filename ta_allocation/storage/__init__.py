"""Outcome persistence."""

from .outcome_store import OutcomeStoreError, load_matching, save_matching

__all__ = ["OutcomeStoreError", "load_matching", "save_matching"]
