"""
Canonical hashing for allocation outcomes.
Same outcome, same hash, regardless of pair order.
"""

import hashlib
import json
from typing import Any, Iterable, Tuple


def canonicalize(obj: Any) -> str:
    """Compact JSON with sorted keys; same input, same string."""
    return json.dumps(obj, sort_keys=True, separators=(',', ':'), ensure_ascii=True)


def canonicalize_and_hash(obj: Any) -> str:
    """Returns: "sha256:<64-char-hex>" """
    digest = hashlib.sha256(canonicalize(obj).encode('utf-8')).hexdigest()
    return f"sha256:{digest}"


def hash_pairs(pairs: Iterable[Tuple[str, str]]) -> str:
    """Order-independent hash of outcome tuples."""
    return canonicalize_and_hash(sorted(list(p) for p in pairs))
