"""Weighted-fair rotation of accounts into primary/hedge groups.

Each emitted group is three accounts: a primary and two hedges. The engine
avoids reusing any unordered account pair across the run and keeps every
account's participation weight roughly level. State lives in an explicit
``RotationState`` returned to the caller, so a run is reproducible with a
seeded random source.
"""

import logging
import random
from dataclasses import dataclass, field
from itertools import combinations

logger = logging.getLogger(__name__)


@dataclass
class RotationConfig:
    primary_weight: float = 1.0
    hedge_weight: float = 0.5
    target_min_weight: float = 8.0  # stop once the lowest weight reaches this...
    floor_weight: float = 6.0  # ...and every account is at least here
    retire_weight: float = 15.0  # accounts at or above this leave the pool
    max_iterations: int = 100_000
    group_size: int = 3

    @property
    def convergence_slack(self) -> float:
        """Largest max-minus-min weight a converged run can end with.

        Converged means every weight is at least ``floor_weight``. An account
        only gains weight while below ``retire_weight``, by at most one
        primary role per group.
        """
        return self.retire_weight + self.primary_weight - self.floor_weight


@dataclass
class RotationGroup:
    primary: str
    hedges: tuple[str, ...]

    @property
    def members(self) -> tuple[str, ...]:
        return (self.primary, *self.hedges)


@dataclass
class RotationState:
    weights: dict[str, float] = field(default_factory=dict)
    used_pairs: dict[str, set[str]] = field(default_factory=dict)

    @classmethod
    def fresh(cls, accounts: list[str]) -> "RotationState":
        return cls(
            weights={name: 0.0 for name in accounts},
            used_pairs={name: set() for name in accounts},
        )

    def is_valid_group(self, members) -> bool:
        return all(b not in self.used_pairs[a] for a, b in combinations(members, 2))

    def record(self, group: RotationGroup, config: RotationConfig):
        self.weights[group.primary] += config.primary_weight
        for name in group.hedges:
            self.weights[name] += config.hedge_weight
        for a, b in combinations(group.members, 2):
            self.used_pairs[a].add(b)
            self.used_pairs[b].add(a)

    def spread(self) -> float:
        if not self.weights:
            return 0.0
        return max(self.weights.values()) - min(self.weights.values())


def _find_group(pool: list[str], state: RotationState, size: int) -> tuple[str, ...] | None:
    for candidate in combinations(pool, size):
        if state.is_valid_group(candidate):
            return candidate
    return None


def generate_groups(
    accounts: list[str],
    rng: random.Random | None = None,
    config: RotationConfig | None = None,
) -> tuple[list[RotationGroup], RotationState]:
    """Emit groups in order until weights converge or no unused-pair group remains.

    Each round takes the first unused-pair triple in ascending weight order,
    so the least-used accounts are grouped first and the lightest member of
    the triple becomes the primary.

    Output order is significant: callers label groups by emission ordinal.
    """
    rng = rng or random.Random()
    config = config or RotationConfig()
    names = list(dict.fromkeys(accounts))
    state = RotationState.fresh(names)
    available = list(names)
    groups: list[RotationGroup] = []

    iteration = 0
    while len(available) >= config.group_size and iteration < config.max_iterations:
        iteration += 1
        lowest = min(state.weights[name] for name in available)
        if lowest >= config.target_min_weight and all(
            w >= config.floor_weight for w in state.weights.values()
        ):
            break

        # Least-used accounts first; the shuffle only breaks ties
        pool = list(available)
        rng.shuffle(pool)
        pool.sort(key=lambda name: state.weights[name])
        members = _find_group(pool, state, config.group_size)
        if members is None:
            logger.info(f"Rotation stopped after {len(groups)} groups: no unused-pair group left")
            break

        group = RotationGroup(primary=members[0], hedges=tuple(members[1:]))
        groups.append(group)
        state.record(group, config)

        for name in group.members:
            if state.weights[name] >= config.retire_weight and name in available:
                available.remove(name)

    logger.info(
        f"Rotation produced {len(groups)} groups for {len(names)} accounts "
        f"(weight spread {state.spread():.1f})"
    )
    return groups, state
