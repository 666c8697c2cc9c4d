"""
State snapshot - Campus Loop

PlayerProgress is the unit of persistence: {level, stats, credits, position}.
Storage goes through an injected SnapshotStore so the engine never touches
a specific medium.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional
import json
import logging

from board import parse_board
from game_config import GameConfig, STAT_NAMES
from stats import StatSet, clamp_stats

logger = logging.getLogger(__name__)

SNAPSHOT_KEY = 'campus_loop_state'
SAVE_DIR = Path("data/savegames")


@dataclass
class PlayerProgress:
    level: int
    stats: StatSet
    credits: int
    position: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            'level': self.level,
            'stats': self.stats.to_dict(),
            'credits': self.credits,
            'position': self.position,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'PlayerProgress':
        return cls(
            level=int(data['level']),
            stats=StatSet.from_dict(data['stats']),
            credits=int(data['credits']),
            position=int(data['position']),
        )

    def copy(self) -> 'PlayerProgress':
        return PlayerProgress(self.level, self.stats, self.credits, self.position)


# =============================================================================
# STORAGE PORT
# =============================================================================

class SnapshotStore(ABC):
    """Single-key, single-writer storage for one snapshot blob."""

    @abstractmethod
    def read(self) -> Optional[str]:
        pass

    @abstractmethod
    def write(self, data: str):
        pass

    @abstractmethod
    def clear(self) -> bool:
        pass


class MemorySnapshotStore(SnapshotStore):
    """Keeps the snapshot in memory. Useful for tests and throwaway games."""

    def __init__(self, data: Optional[str] = None):
        self.data = data
        self.write_count = 0

    def read(self) -> Optional[str]:
        return self.data

    def write(self, data: str):
        self.data = data
        self.write_count += 1

    def clear(self) -> bool:
        existed = self.data is not None
        self.data = None
        return existed


class JsonFileSnapshotStore(SnapshotStore):
    """Stores the snapshot as <save_dir>/<key>.json."""

    def __init__(self, save_dir: Optional[Path] = None, key: str = SNAPSHOT_KEY):
        self.save_dir = Path(save_dir) if save_dir is not None else SAVE_DIR
        self.key = key

    @property
    def path(self) -> Path:
        return self.save_dir / f"{self.key}.json"

    def read(self) -> Optional[str]:
        if not self.path.exists():
            return None
        with open(self.path, 'r', encoding='utf-8') as f:
            return f.read()

    def write(self, data: str):
        self.save_dir.mkdir(parents=True, exist_ok=True)
        with open(self.path, 'w', encoding='utf-8') as f:
            f.write(data)

    def clear(self) -> bool:
        if self.path.exists():
            self.path.unlink()
            return True
        return False


# =============================================================================
# SAVE / LOAD
# =============================================================================

def save_progress(store: SnapshotStore, progress: PlayerProgress):
    """Serialize progress to JSON and write it. Idempotent."""
    store.write(json.dumps(progress.to_dict(), indent=2))


def load_progress(store: SnapshotStore, config: GameConfig) -> Optional[PlayerProgress]:
    """
    Read and sanitize the persisted progress.

    Unreadable or malformed snapshots are treated as absent. Values that
    no longer fit the configuration are clamped rather than rejected:
    level into [initial, maximum], position into the level's path, stats
    through clamp_stats and credits into the level's credit range.

    Raises:
        BoardError: If the persisted level's board cannot be parsed
    """
    try:
        raw = store.read()
    except OSError as e:
        logger.warning(f"Could not read snapshot: {e}")
        return None
    if raw is None:
        return None

    try:
        data = json.loads(raw)
        if not isinstance(data, dict):
            raise ValueError("snapshot is not an object")
        level = int(data['level'])
        credits = int(data.get('credits', config.initial_credits))
        position = int(data.get('position', data.get('pos', 0)))
        stored_stats = data.get('stats') or {}
        stats = StatSet(**{
            name: int(stored_stats.get(name, config.stats[name].initial))
            for name in STAT_NAMES
        })
    except (ValueError, TypeError, KeyError, AttributeError, OverflowError) as e:
        logger.warning(f"Ignoring malformed snapshot: {e}")
        return None

    level = max(config.initial_level, min(config.maximum_level, level))
    board = parse_board(config.level(level).board)

    return PlayerProgress(
        level=level,
        stats=clamp_stats(config, stats),
        credits=clamp_credits(config, level, credits),
        position=board.clamp_position(position),
    )


def clamp_credits(config: GameConfig, level: int, credits: int) -> int:
    """
    Credits range: [0, level threshold] below the final level,
    [0, global cap] at the final level.
    """
    if level < config.maximum_level:
        upper = config.credits_to_advance(level)
    else:
        upper = config.credits_cap
    return max(0, min(upper, int(credits)))
