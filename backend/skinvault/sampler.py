import logging
import random
from collections import Counter
from collections.abc import Iterable, Mapping, Sequence
from typing import Any, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T", bound=Mapping[str, Any])


def distribution_by_weapon(items: Iterable[Mapping[str, Any]]) -> dict[str, int]:
    return dict(Counter(item["weapon"] for item in items))


def sample_balanced(
    pool: Sequence[T],
    target_count: int,
    *,
    rng: random.Random | None = None,
) -> list[T]:
    """
    Pick target_count items spread evenly across weapons.

    Each weapon group (in order of first appearance) gets target // W items,
    the first target % W groups one extra, drawn at random without
    replacement. Any shortfall from small groups is filled from the unused
    remainder of the pool regardless of weapon. The result is shuffled and
    holds exactly min(target_count, len(pool)) distinct pool entries.
    """
    if target_count < 0:
        raise ValueError(f"target_count must be >= 0, got {target_count}")
    rng = rng or random.Random()

    # indices, so identical-looking rows are still distinct picks
    groups: dict[str, list[int]] = {}
    for idx, item in enumerate(pool):
        groups.setdefault(item["weapon"], []).append(idx)
    if not groups or target_count == 0:
        return []

    per_weapon, remainder = divmod(target_count, len(groups))
    logger.debug(
        f"Sampling {target_count} of {len(pool)} across {len(groups)} weapons "
        f"({per_weapon} each + {remainder} extra)"
    )

    selected: list[int] = []
    for position, members in enumerate(groups.values()):
        wanted = per_weapon + (1 if position < remainder else 0)
        take = min(wanted, len(members))
        if take:
            selected.extend(rng.sample(members, take))

    if len(selected) < target_count:
        used = set(selected)
        leftovers = [idx for idx in range(len(pool)) if idx not in used]
        shortfall = min(target_count - len(selected), len(leftovers))
        if shortfall:
            selected.extend(rng.sample(leftovers, shortfall))

    rng.shuffle(selected)
    chosen = [pool[idx] for idx in selected[:min(target_count, len(pool))]]
    logger.debug(f"Sampled distribution: {distribution_by_weapon(chosen)}")
    return chosen
