"""Shared utilities"""

from .hashing import canonicalize, canonicalize_and_hash, hash_pairs

__all__ = [
    "canonicalize",
    "canonicalize_and_hash",
    "hash_pairs",
]
