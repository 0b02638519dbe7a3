"""
Availability zone selection for control planes and node pools.

The random source is always passed in so callers (and tests) decide how it
is seeded; nothing here touches module-level random state.
"""

import random
from typing import Sequence


def allocate_zones(n: int, valid: Sequence[str], rng: random.Random) -> list[str]:
    """Pick ``n`` zones from ``valid``, as many distinct as possible, sorted ascending.

    Zones are drawn in whole shuffled rounds of the valid set, so when ``n``
    exceeds the number of valid zones every zone is used before any repeats.
    """
    if n <= 0 or not valid:
        return []
    pool = list(dict.fromkeys(valid))
    chosen: list[str] = []
    while len(chosen) < n:
        round_ = list(pool)
        rng.shuffle(round_)
        chosen.extend(round_[: n - len(chosen)])
    return sorted(chosen)


def allocate_ha_zones(first: str, valid: Sequence[str], rng: random.Random) -> list[str]:
    """Three zones for an HA control plane that keeps ``first`` at index 0.

    Used when scaling a single-zone control plane up: the existing zone must
    stay first so the AZ order check on the update still passes.
    """
    others = [z for z in dict.fromkeys(valid) if z != first]
    rng.shuffle(others)
    if len(others) >= 2:
        return [first, others[0], others[1]]
    if len(others) == 1:
        return [first, others[0], rng.choice([first, others[0]])]
    return [first, first, first]


def zones_are_valid(chosen: Sequence[str], valid: Sequence[str]) -> bool:
    allowed = set(valid)
    return all(z in allowed for z in chosen)


def has_max_distinct_zones(chosen: Sequence[str], valid: Sequence[str]) -> bool:
    """Whether ``chosen`` spreads over as many distinct zones as it can."""
    distinct = len(set(chosen))
    return distinct == len(chosen) or distinct == len(set(valid))


def zone_order_changed(old: Sequence[str], new: Sequence[str]) -> bool:
    """Whether a zone kept across the update moved to a different position.

    The shorter list is compared against the longer one, so growing or
    shrinking is allowed as long as the shared zones keep their index. A zone
    that was replaced outright does not count as a move.
    """
    shorter, longer = (old, new) if len(old) <= len(new) else (new, old)
    for i, zone in enumerate(shorter):
        if zone in longer and longer[i] != zone:
            return True
    return False
