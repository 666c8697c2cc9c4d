"""
Board Parser - Campus Loop

Turns a declarative board description into a grid plus the ordered,
cyclic path of landable tiles the token moves along.

Two description shapes are accepted, and both stay supported:
- legacy ASCII art (a multi-line string with corridor markers)
- a four-sided perimeter mapping (top/right/bottom/left strings)
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Tuple, Union


# =============================================================================
# TILE CODES
# =============================================================================

class TileType(str, Enum):
    """Closed set of landable tile codes."""
    START = 's'
    CREDIT = 'c'
    RANDOM_EVENT = 'r'
    FOOD = 'f'
    HANGOUT = 't'
    NEUTRAL = 'n'
    SPECIAL = 'l'


LANDABLE_CODES = frozenset(t.value for t in TileType)
CORRIDOR_MARKERS = frozenset('.><^v')

# Legacy walk neighbour priority: right, left, down, up
NEIGHBOUR_ORDER: Tuple[Tuple[int, int], ...] = ((1, 0), (-1, 0), (0, 1), (0, -1))

BoardDescription = Union[str, Mapping[str, Any]]


class BoardError(Exception):
    """Raised when a board description cannot be turned into a valid path."""
    pass


# =============================================================================
# BOARD MODEL
# =============================================================================

@dataclass(frozen=True)
class Tile:
    """A landable cell on the board cycle."""
    x: int
    y: int
    type: TileType

    def to_dict(self) -> Dict[str, Any]:
        return {'x': self.x, 'y': self.y, 'type': self.type.value}


@dataclass(frozen=True)
class Board:
    """
    Immutable board for one level.

    `grid` is only used for rendering; movement happens along `path`,
    which wraps from the last tile back to the first.
    """
    width: int
    height: int
    grid: Tuple[Tuple[str, ...], ...]
    path: Tuple[Tile, ...]

    def __len__(self) -> int:
        return len(self.path)

    def tile_at(self, index: int) -> Tile:
        return self.path[index % len(self.path)]

    def start_index(self) -> int:
        """Index of the start tile (0 if somehow absent)."""
        for i, tile in enumerate(self.path):
            if tile.type is TileType.START:
                return i
        return 0

    def advance(self, position: int, steps: int = 1) -> int:
        return (position + steps) % len(self.path)

    def clamp_position(self, position: int) -> int:
        return max(0, min(len(self.path) - 1, int(position)))

    def render(self) -> str:
        return "\n".join("".join(row) for row in self.grid)


# =============================================================================
# PARSING
# =============================================================================

def parse_board(description: BoardDescription) -> Board:
    """
    Parse a board description into a Board.

    Args:
        description: ASCII-art string or a mapping with top/right/bottom/left sides

    Returns:
        Board whose path starts on (ASCII) or is rotated to (perimeter) the start tile

    Raises:
        BoardError: If the description is malformed or has no single start tile
    """
    if isinstance(description, str):
        board = _parse_ascii(description)
    elif isinstance(description, Mapping):
        board = _parse_sides(description)
    else:
        raise BoardError(f"Unsupported board description type: {type(description).__name__}")

    _validate_path(board.path)
    return board


def _parse_ascii(text: str) -> Board:
    lines = text.splitlines()
    height = len(lines)
    width = max((len(line) for line in lines), default=0)
    grid = tuple(
        tuple(line[x] if x < len(line) else ' ' for x in range(width))
        for line in lines
    )

    starts = [
        (x, y)
        for y in range(height)
        for x in range(width)
        if grid[y][x] == TileType.START.value
    ]
    if not starts:
        raise BoardError("Start box 's' not found on board")
    if len(starts) > 1:
        raise BoardError(f"Board has {len(starts)} start boxes, expected exactly one")

    walk = _walk_corridors(grid, width, height, starts[0])

    path: List[Tile] = []
    for x, y in walk:
        ch = grid[y][x]
        if ch not in LANDABLE_CODES:
            continue
        if path and path[-1].x == x and path[-1].y == y:
            continue
        path.append(Tile(x, y, TileType(ch)))

    return Board(width=width, height=height, grid=grid, path=tuple(path))


def _walk_corridors(
    grid: Tuple[Tuple[str, ...], ...],
    width: int,
    height: int,
    start: Tuple[int, int]
) -> List[Tuple[int, int]]:
    """
    Greedy walk from the start cell along corridor markers and landable cells.

    Neighbours are tried in NEIGHBOUR_ORDER. The walk ends when it returns
    to start, gets stuck, or exceeds 4x the grid area. Branching corridors
    give a deterministic but otherwise unspecified path.
    """
    def cell(x: int, y: int) -> str:
        if 0 <= y < height and 0 <= x < width:
            return grid[y][x]
        return ' '

    def walkable(ch: str) -> bool:
        return ch in LANDABLE_CODES or ch in CORRIDOR_MARKERS

    walk = [start]
    visited = {start}
    current = start
    guard = width * height * 4

    while guard > 0:
        guard -= 1
        step: Optional[Tuple[int, int]] = None
        for dx, dy in NEIGHBOUR_ORDER:
            candidate = (current[0] + dx, current[1] + dy)
            if not walkable(cell(*candidate)):
                continue
            if candidate == start:
                # Closing the loop needs at least two other cells behind us
                if len(walk) > 2:
                    step = candidate
                    break
                continue
            if candidate in visited:
                continue
            step = candidate
            break

        if step is None or step == start:
            break
        visited.add(step)
        walk.append(step)
        current = step

    return walk


def _parse_sides(sides: Mapping[str, Any]) -> Board:
    """
    Rebuild a rectangle from its four sides, read clockwise from bottom-left.

    bottom: left -> right on the last row
    right:  bottom -> top on the last column (interior rows only)
    top:    right -> left on the first row (raw string is reversed)
    left:   top -> bottom on the first column (interior rows only)
    """
    bottom = _side(sides, 'bottom')
    right = _side(sides, 'right')
    top = _side(sides, 'top')
    left = _side(sides, 'left')

    width = len(bottom) or len(top)
    height = (len(left) or len(right)) + 2
    if not width or not height:
        raise BoardError("Invalid board sides: zero width or height")

    grid = [[' '] * width for _ in range(height)]
    interior = height - 2

    for x in range(width):
        grid[height - 1][x] = bottom[x] if x < len(bottom) else ' '
    for i, ch in enumerate(right[:interior]):
        grid[height - 2 - i][width - 1] = ch
    for x in range(width):
        j = width - 1 - x
        grid[0][x] = top[j] if 0 <= j < len(top) else ' '
    for i, ch in enumerate(left[:interior]):
        grid[1 + i][0] = ch

    path: List[Tile] = []
    for x in range(width):
        _collect(grid, x, height - 1, path)
    for y in range(height - 2, 0, -1):
        _collect(grid, width - 1, y, path)
    for x in range(width - 1, -1, -1):
        _collect(grid, x, 0, path)
    for y in range(1, height - 1):
        _collect(grid, 0, y, path)

    start = next((i for i, t in enumerate(path) if t.type is TileType.START), None)
    if start is None:
        raise BoardError("Start box 's' not found on board sides")
    ordered = path[start:] + path[:start]

    return Board(
        width=width,
        height=height,
        grid=tuple(tuple(row) for row in grid),
        path=tuple(ordered),
    )


def _side(sides: Mapping[str, Any], name: str) -> str:
    value = sides.get(name) or ''
    if not isinstance(value, str):
        raise BoardError(f"Board side '{name}' must be a string, got {type(value).__name__}")
    return value.strip()


def _collect(grid: List[List[str]], x: int, y: int, path: List[Tile]):
    ch = grid[y][x]
    if ch in LANDABLE_CODES:
        path.append(Tile(x, y, TileType(ch)))


def _validate_path(path: Tuple[Tile, ...]):
    """Path must be non-empty with exactly one start tile."""
    if not path:
        raise BoardError("Board has no landable tiles")
    starts = sum(1 for t in path if t.type is TileType.START)
    if starts != 1:
        raise BoardError(f"Board path has {starts} start tiles, expected exactly one")
