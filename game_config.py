"""
Game configuration - Campus Loop

Validates an already-parsed configuration mapping (stats, levels, credits,
dice, boxes) and the flavor reference lists. Shape problems are caught
here, at load time, as ConfigError.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Tuple, Union


# =============================================================================
# CONSTANTS - THE LAWS OF THE BOARD
# These override whatever the configuration says.
# =============================================================================

STAT_NAMES: Tuple[str, ...] = ('intelligence', 'energy', 'luck', 'money')
TRACKED_QUANTITIES: Tuple[str, ...] = STAT_NAMES + ('credits',)

LUCK_HARD_MAXIMUM = 1000
MONEY_HARD_MINIMUM = 0

DEFAULT_CREDITS_CAP = 999
DEFAULT_DICE_MINIMUM = 1
DEFAULT_DICE_MAXIMUM = 6

REFERENCE_LIST_NAMES: Tuple[str, ...] = ('classes', 'foods', 'hangouts', 'study', 'transport')
REFERENCE_EXCERPT_SIZE = 20


class ConfigError(Exception):
    """Raised when a required configuration field is missing or malformed."""
    pass


# =============================================================================
# CONFIG DATACLASSES
# =============================================================================

@dataclass(frozen=True)
class StatDefinition:
    name: str
    initial: int
    minimum: Optional[int] = None
    maximum: Optional[int] = None
    label: str = ''


@dataclass(frozen=True)
class LevelDefinition:
    number: int
    label: str
    board: Union[str, Mapping[str, Any]]
    credits_to_advance: Optional[int] = None


@dataclass(frozen=True)
class BoxDefinition:
    code: str
    label: str
    icon: Optional[str] = None


@dataclass(frozen=True)
class ReferenceLists:
    """Named string lists used to flavor event messages and prompts."""
    classes: Tuple[str, ...] = ()
    foods: Tuple[str, ...] = ()
    hangouts: Tuple[str, ...] = ()
    study: Tuple[str, ...] = ()
    transport: Tuple[str, ...] = ()

    @classmethod
    def from_dict(cls, data: Optional[Mapping[str, Any]]) -> 'ReferenceLists':
        """
        Build from a mapping of lists or newline-joined strings.

        Blank entries are dropped, unknown names are ignored.
        """
        data = data or {}
        lists = {}
        for name in REFERENCE_LIST_NAMES:
            raw = data.get(name) or []
            if isinstance(raw, str):
                raw = raw.split('\n')
            lists[name] = tuple(str(item).strip() for item in raw if str(item).strip())
        return cls(**lists)

    def excerpt(self, limit: int = REFERENCE_EXCERPT_SIZE) -> Dict[str, List[str]]:
        return {name: list(getattr(self, name)[:limit]) for name in REFERENCE_LIST_NAMES}


@dataclass(frozen=True)
class GameConfig:
    """Validated game configuration. Build with GameConfig.from_dict()."""

    stats: Dict[str, StatDefinition]
    levels: Dict[int, LevelDefinition]
    initial_level: int
    maximum_level: int
    initial_credits: int = 0
    credits_cap: int = DEFAULT_CREDITS_CAP
    dice_minimum: int = DEFAULT_DICE_MINIMUM
    dice_maximum: int = DEFAULT_DICE_MAXIMUM
    boxes: Dict[str, BoxDefinition] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> 'GameConfig':
        """
        Validate a parsed configuration mapping.

        Accepts the bare shape or the same shape wrapped in a `game` key.

        Raises:
            ConfigError: If a required field is missing or has the wrong type
        """
        if not isinstance(data, Mapping):
            raise ConfigError("Configuration must be a mapping")
        if 'game' in data and isinstance(data['game'], Mapping):
            data = data['game']

        stats = _parse_stats(_section(data, 'stats'))
        levels_section = _section(data, 'levels')
        initial_level = _int(levels_section.get('initial'), 'levels.initial')
        maximum_level = _int(levels_section.get('maximum'), 'levels.maximum')
        if initial_level < 1 or maximum_level < initial_level:
            raise ConfigError(
                f"levels.initial ({initial_level}) must be >= 1 and <= levels.maximum ({maximum_level})"
            )
        levels = _parse_levels(levels_section, initial_level, maximum_level)

        credits_section = data.get('credits') or {}
        initial_credits = _int(credits_section.get('initial', 0), 'credits.initial')
        credits_cap = _int(credits_section.get('maximum', DEFAULT_CREDITS_CAP), 'credits.maximum')
        if initial_credits < 0 or credits_cap < 0:
            raise ConfigError("credits.initial and credits.maximum must be non-negative")

        dice_section = data.get('dice') or {}
        dice_minimum = _int(dice_section.get('minimum', DEFAULT_DICE_MINIMUM), 'dice.minimum')
        dice_maximum = _int(dice_section.get('maximum', DEFAULT_DICE_MAXIMUM), 'dice.maximum')
        if dice_minimum < 0 or dice_maximum < dice_minimum:
            raise ConfigError(f"Invalid dice range [{dice_minimum}, {dice_maximum}]")

        return cls(
            stats=stats,
            levels=levels,
            initial_level=initial_level,
            maximum_level=maximum_level,
            initial_credits=initial_credits,
            credits_cap=credits_cap,
            dice_minimum=dice_minimum,
            dice_maximum=dice_maximum,
            boxes=_parse_boxes(data.get('boxes') or {}),
        )

    def level(self, number: int) -> LevelDefinition:
        try:
            return self.levels[number]
        except KeyError:
            raise ConfigError(f"Level {number} is not defined")

    def credits_to_advance(self, number: int) -> int:
        threshold = self.level(number).credits_to_advance
        return threshold if threshold is not None else self.credits_cap

    def label_for_tile(self, code: str) -> str:
        box = self.boxes.get(code)
        return box.label if box and box.label else code.upper()


# =============================================================================
# SECTION PARSERS
# =============================================================================

def _section(data: Mapping[str, Any], name: str) -> Mapping[str, Any]:
    value = data.get(name)
    if not isinstance(value, Mapping):
        raise ConfigError(f"Missing or malformed '{name}' section")
    return value


def _int(value: Any, name: str) -> int:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ConfigError(f"'{name}' must be a number, got {value!r}")
    return int(value)


def _optional_int(value: Any, name: str) -> Optional[int]:
    return None if value is None else _int(value, name)


def _parse_stats(section: Mapping[str, Any]) -> Dict[str, StatDefinition]:
    stats = {}
    for name in STAT_NAMES:
        entry = section.get(name)
        if not isinstance(entry, Mapping):
            raise ConfigError(f"Missing stat definition 'stats.{name}'")
        definition = StatDefinition(
            name=name,
            initial=_int(entry.get('initial'), f'stats.{name}.initial'),
            minimum=_optional_int(entry.get('minimum'), f'stats.{name}.minimum'),
            maximum=_optional_int(entry.get('maximum'), f'stats.{name}.maximum'),
            label=str(entry.get('label') or name.capitalize()),
        )
        low = definition.minimum if definition.minimum is not None else definition.initial
        high = definition.maximum if definition.maximum is not None else definition.initial
        if not low <= definition.initial <= high:
            raise ConfigError(
                f"stats.{name}.initial ({definition.initial}) is outside [{low}, {high}]"
            )
        stats[name] = definition
    return stats


def _parse_levels(
    section: Mapping[str, Any],
    initial_level: int,
    maximum_level: int
) -> Dict[int, LevelDefinition]:
    # YAML gives int keys, JSON gives string keys
    by_number: Dict[int, Mapping[str, Any]] = {}
    for key, entry in section.items():
        if key in ('initial', 'maximum'):
            continue
        try:
            number = int(key)
        except (TypeError, ValueError):
            continue
        if isinstance(entry, Mapping):
            by_number[number] = entry

    levels = {}
    for number in range(initial_level, maximum_level + 1):
        entry = by_number.get(number)
        if entry is None:
            raise ConfigError(f"Missing level definition 'levels.{number}'")
        board = entry.get('board')
        if not isinstance(board, (str, Mapping)) or not board:
            raise ConfigError(f"Level {number} has no board")
        threshold = _optional_int(entry.get('credits_to_advance'), f'levels.{number}.credits_to_advance')
        if number < maximum_level and threshold is None:
            raise ConfigError(f"Level {number} is missing 'credits_to_advance'")
        if threshold is not None and threshold < 0:
            raise ConfigError(f"levels.{number}.credits_to_advance must be non-negative")
        levels[number] = LevelDefinition(
            number=number,
            label=str(entry.get('label') or f"Level {number}"),
            board=board,
            credits_to_advance=threshold,
        )
    return levels


def _parse_boxes(section: Mapping[str, Any]) -> Dict[str, BoxDefinition]:
    boxes = {}
    for key, entry in section.items():
        if not isinstance(entry, Mapping):
            raise ConfigError(f"Malformed box definition 'boxes.{key}'")
        code = str(entry.get('id') or key)
        boxes[code] = BoxDefinition(
            code=code,
            label=str(entry.get('label') or code.upper()),
            icon=entry.get('icon') or entry.get('emoji'),
        )
    return boxes


# =============================================================================
# BUNDLED SAMPLE - a student's first years on campus
# =============================================================================

SAMPLE_CONFIG: Dict[str, Any] = {
    'game': {
        'stats': {
            'intelligence': {'label': 'Intelligence', 'initial': 50, 'minimum': 0, 'maximum': 100},
            'energy': {'label': 'Energy', 'initial': 80, 'minimum': 0, 'maximum': 100},
            'luck': {'label': 'Luck', 'initial': 10, 'minimum': 0},
            'money': {'label': 'Money', 'initial': 300, 'maximum': 5000},
        },
        'credits': {'initial': 0, 'maximum': 240},
        'dice': {'minimum': 1, 'maximum': 6},
        'levels': {
            'initial': 1,
            'maximum': 3,
            1: {
                'label': 'Year 1',
                'credits_to_advance': 10,
                'board': {
                    'top': 'cnrtc',
                    'right': 'fc',
                    'bottom': 'scfrl',
                    'left': 'tc',
                },
            },
            2: {
                'label': 'Year 2',
                'credits_to_advance': 20,
                'board': (
                    "s.c.f.r\n"
                    ".     .\n"
                    "l     c\n"
                    ".     .\n"
                    "t.n.c.f"
                ),
            },
            3: {
                'label': 'Graduation',
                'board': {
                    'top': 'nnn',
                    'right': 't',
                    'bottom': 'sfl',
                    'left': 'c',
                },
            },
        },
        'boxes': {
            'start': {'id': 's', 'label': 'Start', 'emoji': '🏁'},
            'class': {'id': 'c', 'label': 'Faculty', 'emoji': '🎓'},
            'random': {'id': 'r', 'label': 'Surprise', 'emoji': '🎲'},
            'food': {'id': 'f', 'label': 'Food', 'emoji': '🍕'},
            'hangout': {'id': 't', 'label': 'Hangout', 'emoji': '🎉'},
            'neutral': {'id': 'n', 'label': 'Hallway'},
            'special': {'id': 'l', 'label': 'Career fair', 'emoji': '💼'},
        },
    }
}

SAMPLE_REFERENCES: Dict[str, List[str]] = {
    'classes': ['Linear Algebra', 'Data Structures', 'Operating Systems', 'Computer Networks'],
    'foods': ['Campus canteen', 'Shawarma stand', 'Pizza place', 'Coffee shop'],
    'hangouts': ['the park', 'a board game night', 'the student club', 'a concert'],
    'study': ['library session', 'group project', 'exam revision'],
    'transport': ['tram', 'bike', 'bus'],
}
