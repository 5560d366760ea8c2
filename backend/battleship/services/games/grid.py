"""Board coordinate helpers.

Pure functions over ``Coordinate`` values; nothing here holds state or
raises. Out-of-domain input yields ``False`` or ``None``.
"""
import re
from typing import Iterable, List, NamedTuple, Optional

BOARD_SIZE = 10

HORIZONTAL = 'horizontal'
VERTICAL = 'vertical'
ORIENTATIONS = (HORIZONTAL, VERTICAL)

_LABEL_RE = re.compile(r'^([A-Za-z])(\d{1,2})$')


class Coordinate(NamedTuple):
    x: int
    y: int

    def to_dict(self):
        return {'x': self.x, 'y': self.y}


def is_valid(coord: Coordinate) -> bool:
    return 0 <= coord.x < BOARD_SIZE and 0 <= coord.y < BOARD_SIZE


def equal(a: Coordinate, b: Coordinate) -> bool:
    return a.x == b.x and a.y == b.y


def contains(coord: Coordinate, cells: Iterable[Coordinate]) -> bool:
    return any(equal(coord, c) for c in cells)


def cells_for(start: Coordinate, length: int, orientation: str) -> List[Coordinate]:
    """Cells covered by a ship of ``length`` laid from ``start``.

    Steps +1 in x for horizontal ships and +1 in y for vertical ones.
    Bounds are not checked here.
    """
    if orientation == HORIZONTAL:
        return [Coordinate(start.x + i, start.y) for i in range(length)]
    return [Coordinate(start.x, start.y + i) for i in range(length)]


def all_valid(cells: Iterable[Coordinate]) -> bool:
    return all(is_valid(c) for c in cells)


def overlaps(cells_a: Iterable[Coordinate], cells_b: Iterable[Coordinate]) -> bool:
    cells_b = list(cells_b)
    return any(contains(c, cells_b) for c in cells_a)


def to_display(coord: Coordinate) -> str:
    return f"{chr(ord('A') + coord.x)}{coord.y + 1}"


def from_display(label: str) -> Optional[Coordinate]:
    """Parse ``"B5"`` style labels (case-insensitive) into a coordinate."""
    if not isinstance(label, str):
        return None
    match = _LABEL_RE.match(label.strip())
    if not match:
        return None
    coord = Coordinate(ord(match.group(1).upper()) - ord('A'), int(match.group(2)) - 1)
    return coord if is_valid(coord) else None


def parse_coordinate(value) -> Optional[Coordinate]:
    """Accept ``{"x": .., "y": ..}``, ``[x, y]`` or a display label.

    Returns ``None`` for malformed input. Range is not enforced for the
    numeric forms so callers can report out-of-bounds separately.
    """
    if isinstance(value, str):
        return from_display(value)
    if isinstance(value, dict):
        x, y = value.get('x'), value.get('y')
    elif isinstance(value, (list, tuple)) and len(value) == 2:
        x, y = value
    else:
        return None
    # bool is an int subclass
    if not all(isinstance(v, int) and not isinstance(v, bool) for v in (x, y)):
        return None
    return Coordinate(x, y)
