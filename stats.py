"""
Stat model - Campus Loop

The four player attributes, their initial values and clamping rules.
Every stored stat value is clamped after any mutation.
"""

from dataclasses import asdict, dataclass, replace
from math import inf
from typing import Dict, Mapping, Tuple

from game_config import (
    GameConfig,
    LUCK_HARD_MAXIMUM,
    MONEY_HARD_MINIMUM,
    STAT_NAMES,
)


@dataclass(frozen=True)
class StatSet:
    """One value per stat. Immutable; mutations return a new set."""
    intelligence: int
    energy: int
    luck: int
    money: int

    def plus(self, delta: Mapping[str, int]) -> 'StatSet':
        """Add a (partial) delta. Keys other than the four stats are ignored."""
        return replace(self, **{
            name: getattr(self, name) + int(delta.get(name, 0) or 0)
            for name in STAT_NAMES
        })

    def diff(self, before: 'StatSet') -> Dict[str, int]:
        return {name: getattr(self, name) - getattr(before, name) for name in STAT_NAMES}

    def to_dict(self) -> Dict[str, int]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Mapping[str, int]) -> 'StatSet':
        return cls(**{name: int(data[name]) for name in STAT_NAMES})


def stat_bounds(config: GameConfig, name: str) -> Tuple[float, float]:
    """
    Effective [minimum, maximum] for a stat.

    Unconfigured bounds are unbounded. Luck is capped at LUCK_HARD_MAXIMUM and
    money floored at MONEY_HARD_MINIMUM regardless of configuration.
    """
    definition = config.stats[name]
    low = definition.minimum if definition.minimum is not None else -inf
    high = definition.maximum if definition.maximum is not None else inf
    if name == 'luck':
        high = LUCK_HARD_MAXIMUM
    elif name == 'money':
        low = MONEY_HARD_MINIMUM
    return low, high


def initial_stats(config: GameConfig) -> StatSet:
    """Configured initial values, held to the hard luck and money limits."""
    return clamp_stats(config, StatSet(**{name: config.stats[name].initial for name in STAT_NAMES}))


def clamp_stats(config: GameConfig, values: StatSet) -> StatSet:
    """Clamp each stat into its bounds. Pure and idempotent."""
    clamped = {}
    for name in STAT_NAMES:
        low, high = stat_bounds(config, name)
        clamped[name] = int(max(low, min(high, getattr(values, name))))
    return StatSet(**clamped)
