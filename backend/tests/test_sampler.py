# ruff: noqa: S101
from __future__ import annotations

import random
from collections import Counter

import pytest

from skinvault.sampler import distribution_by_weapon, sample_balanced


def _keys(items) -> list[str]:
    return [item["skin_external_id"] for item in items]


def test_even_groups_split_evenly(make_pool) -> None:
    pool = make_pool({"Vandal": 5, "Phantom": 5, "Sheriff": 5})
    for seed in range(20):
        result = sample_balanced(pool, 9, rng=random.Random(seed))
        assert len(result) == 9
        assert distribution_by_weapon(result) == {"Vandal": 3, "Phantom": 3, "Sheriff": 3}


def test_small_pool_returns_everything(make_pool) -> None:
    pool = make_pool({"Vandal": 2, "Ghost": 1, "Odin": 1})
    result = sample_balanced(pool, 10, rng=random.Random(1))
    assert sorted(_keys(result)) == sorted(_keys(pool))


@pytest.mark.parametrize("target", [0, 1, 2, 5, 7, 13, 20, 21, 40])
def test_exact_count_and_no_duplicates(make_pool, target: int) -> None:
    pool = make_pool({"Vandal": 8, "Phantom": 1, "Ghost": 3, "Operator": 9})
    for seed in range(10):
        result = sample_balanced(pool, target, rng=random.Random(seed))
        assert len(result) == min(target, len(pool))
        assert len(set(_keys(result))) == len(result)


def test_every_group_gets_its_floor(make_pool) -> None:
    pool = make_pool({"Vandal": 10, "Phantom": 6, "Ghost": 4, "Classic": 7})
    target = 14  # floor(14 / 4) == 3, every group has at least 3
    for seed in range(25):
        counts = Counter(distribution_by_weapon(sample_balanced(pool, target, rng=random.Random(seed))))
        for weapon in ("Vandal", "Phantom", "Ghost", "Classic"):
            assert counts[weapon] >= 3


def test_remainder_goes_to_first_groups(make_pool) -> None:
    pool = make_pool({"A": 4, "B": 4, "C": 4})
    result = sample_balanced(pool, 8, rng=random.Random(3))
    assert distribution_by_weapon(result) == {"A": 3, "B": 3, "C": 2}


def test_shortfall_is_filled_from_other_groups(make_pool) -> None:
    pool = make_pool({"Ghost": 1, "Vandal": 10})
    result = sample_balanced(pool, 6, rng=random.Random(0))
    assert distribution_by_weapon(result) == {"Ghost": 1, "Vandal": 5}


def test_target_below_group_count_stays_exact(make_pool) -> None:
    pool = make_pool({"A": 2, "B": 2, "C": 2, "D": 2})
    result = sample_balanced(pool, 2, rng=random.Random(5))
    assert len(result) == 2
    assert set(distribution_by_weapon(result)) <= {"A", "B"}


def test_seeded_rng_is_reproducible(make_pool) -> None:
    pool = make_pool({"A": 6, "B": 6})
    first = sample_balanced(pool, 5, rng=random.Random(42))
    second = sample_balanced(pool, 5, rng=random.Random(42))
    assert _keys(first) == _keys(second)


def test_empty_pool_and_zero_target(make_pool) -> None:
    assert sample_balanced([], 5) == []
    assert sample_balanced(make_pool({"A": 3}), 0) == []


def test_negative_target_is_rejected(make_pool) -> None:
    with pytest.raises(ValueError):
        sample_balanced(make_pool({"A": 1}), -1)
