from __future__ import annotations

import random
from collections import Counter

import pytest

from earnloop.services.mystery_bag import PRIZES
from earnloop.services.spin import MULTIPLIERS
from earnloop.services.weighted import weighted_choice, weighted_pick


def test_pick_respects_cumulative_boundaries():
    table = [("a", 1), ("b", 3)]
    assert weighted_pick(table, 0.0) == "a"
    assert weighted_pick(table, 0.2499) == "a"
    assert weighted_pick(table, 0.25) == "b"
    assert weighted_pick(table, 0.9999999) == "b"


def test_zero_weight_never_chosen():
    table = [("never", 0), ("x", 1), ("also_never", 0), ("y", 1)]
    for i in range(1000):
        assert weighted_pick(table, i / 1000) in {"x", "y"}


def test_invalid_tables_and_rolls():
    with pytest.raises(ValueError):
        weighted_pick([], 0.5)
    with pytest.raises(ValueError):
        weighted_pick([("a", 0), ("b", 0)], 0.5)
    with pytest.raises(ValueError):
        weighted_pick([("a", -1), ("b", 2)], 0.5)
    with pytest.raises(ValueError):
        weighted_pick([("a", 1)], 1.0)


def test_multiplier_table_distribution():
    # chi-square goodness of fit; 8 degrees of freedom, p=0.001 critical value 26.12
    rng = random.Random(20260318)
    n = 100_000
    counts = Counter(weighted_choice(MULTIPLIERS, rng) for _ in range(n))

    total_weight = sum(w for _, w in MULTIPLIERS)
    chi2 = 0.0
    for value, w in MULTIPLIERS:
        expected = n * w / total_weight
        chi2 += (counts[value] - expected) ** 2 / expected

    assert chi2 < 26.12


def test_tables_sum_to_one_hundred():
    assert sum(w for _, w in MULTIPLIERS) == 100
    assert sum(w for _, w in PRIZES) == 100
