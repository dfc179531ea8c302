# earnloop/services/weighted.py
from __future__ import annotations

import random
from typing import Sequence, TypeVar

T = TypeVar("T")


def default_rng() -> random.Random:
    # OS CSPRNG; outcomes carry real value
    return random.SystemRandom()


def weighted_pick(entries: Sequence[tuple[T, float]], u: float) -> T:
    """
    Weighted discrete sampling for a given uniform roll u in [0, 1).

    total = sum of weights, r = u * total, returns the first value whose
    cumulative weight exceeds r. Zero-weight entries are never chosen.
    """
    if not entries:
        raise ValueError("weighted_pick: empty table")
    if not 0.0 <= u < 1.0:
        raise ValueError(f"weighted_pick: roll out of range: {u!r}")

    total = 0.0
    for _, w in entries:
        if w < 0:
            raise ValueError("weighted_pick: negative weight")
        total += w
    if total <= 0:
        raise ValueError("weighted_pick: weights must sum to a positive total")

    r = u * total
    cumulative = 0.0
    for value, w in entries:
        cumulative += w
        if w > 0 and cumulative > r:
            return value

    # float rounding can leave r == total; fall back to the last non-zero entry
    for value, w in reversed(entries):
        if w > 0:
            return value
    raise ValueError("weighted_pick: no selectable entry")  # unreachable


def weighted_choice(entries: Sequence[tuple[T, float]], rng: random.Random) -> T:
    return weighted_pick(entries, rng.random())
