"""
Event resolver - Campus Loop

Maps a tile code to a randomized stat/credit delta plus a message.
Structure is fixed per tile type; magnitudes are drawn uniformly from
inclusive integer ranges on every call.

Dispatch goes through EVENT_RESOLVERS, so a new tile type only needs a
new table entry.
"""

import random
from dataclasses import dataclass, field
from typing import Callable, Dict, Optional

from board import TileType
from game_config import GameConfig, ReferenceLists, TRACKED_QUANTITIES


DEFAULT_FOOD = "the canteen"
DEFAULT_HANGOUT = "the park"


def empty_delta() -> Dict[str, int]:
    return {key: 0 for key in TRACKED_QUANTITIES}


@dataclass(frozen=True)
class EventOutcome:
    """Delta over intelligence/energy/luck/money/credits, plus a message."""
    delta: Dict[str, int] = field(default_factory=empty_delta)
    message: str = ""


Resolver = Callable[[random.Random, ReferenceLists], EventOutcome]


# =============================================================================
# RESOLVERS (one per tile type)
# =============================================================================

def _start(rng: random.Random, refs: ReferenceLists) -> EventOutcome:
    # The reset itself is done by the turn engine
    return EventOutcome(message="Back at the start! Stats reset.")


def _credit(rng: random.Random, refs: ReferenceLists) -> EventOutcome:
    delta = empty_delta()
    delta['credits'] = rng.randint(1, 3)
    delta['energy'] = -rng.randint(1, 5)
    delta['intelligence'] = rng.randint(1, 4)
    return EventOutcome(
        delta=delta,
        message=f"You went to a lecture/lab/seminar. +{delta['credits']} credits.",
    )


def _random_event(rng: random.Random, refs: ReferenceLists) -> EventOutcome:
    delta = empty_delta()
    delta['energy'] = rng.randint(-5, 5)
    delta['intelligence'] = rng.randint(-3, 3)
    delta['luck'] = rng.randint(-5, 5)
    delta['money'] = rng.randint(-50, 50)
    return EventOutcome(delta=delta, message="Surprise event!")


def _food(rng: random.Random, refs: ReferenceLists) -> EventOutcome:
    place = rng.choice(refs.foods) if refs.foods else DEFAULT_FOOD
    delta = empty_delta()
    delta['energy'] = rng.randint(3, 8)
    delta['money'] = -rng.randint(15, 50)
    return EventOutcome(delta=delta, message=f"You ate at {place}.")


def _hangout(rng: random.Random, refs: ReferenceLists) -> EventOutcome:
    activity = rng.choice(refs.hangouts) if refs.hangouts else DEFAULT_HANGOUT
    delta = empty_delta()
    delta['energy'] = rng.randint(2, 6)
    delta['intelligence'] = rng.randint(-2, 2)
    delta['money'] = -rng.randint(0, 40)
    return EventOutcome(delta=delta, message=f"Free time: {activity}.")


def _neutral(rng: random.Random, refs: ReferenceLists) -> EventOutcome:
    return EventOutcome(message="Nothing notable happened.")


def _special(rng: random.Random, refs: ReferenceLists) -> EventOutcome:
    delta = empty_delta()
    delta['luck'] = rng.randint(1, 4)
    return EventOutcome(delta=delta, message="The career fair is waiting for you :)")


EVENT_RESOLVERS: Dict[str, Resolver] = {
    TileType.START.value: _start,
    TileType.CREDIT.value: _credit,
    TileType.RANDOM_EVENT.value: _random_event,
    TileType.FOOD.value: _food,
    TileType.HANGOUT.value: _hangout,
    TileType.NEUTRAL.value: _neutral,
    TileType.SPECIAL.value: _special,
}


def compute_event_outcome(
    tile_type: str,
    config: Optional[GameConfig] = None,
    references: Optional[ReferenceLists] = None,
    rng: Optional[random.Random] = None
) -> EventOutcome:
    """
    Resolve the event for a tile code.

    Args:
        tile_type: Tile code (or TileType)
        config: Used to name unrecognized tiles in the message
        references: Flavor lists for food/hangout messages
        rng: Random source; module-level random if omitted

    Returns:
        EventOutcome with a full five-key delta
    """
    code = tile_type.value if isinstance(tile_type, TileType) else str(tile_type)
    resolver = EVENT_RESOLVERS.get(code)
    if resolver is None:
        label = config.label_for_tile(code) if config else code.upper()
        return EventOutcome(message=f"Unknown tile '{label}'.")
    return resolver(rng or random.Random(), references or ReferenceLists())
