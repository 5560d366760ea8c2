"""Fleet composition and ship placement validation."""
from collections import Counter
from dataclasses import dataclass
from typing import List, NamedTuple, Sequence

from .errors import PlacementError
from .grid import ORIENTATIONS, Coordinate, all_valid, cells_for, overlaps, parse_coordinate
from .state import Ship


class ShipKind(NamedTuple):
    id: str
    name: str
    length: int


FLEET = (
    ShipKind('carrier', 'Carrier', 5),
    ShipKind('battleship', 'Battleship', 4),
    ShipKind('cruiser', 'Cruiser', 3),
    ShipKind('submarine', 'Submarine', 3),
    ShipKind('destroyer', 'Destroyer', 2),
)
FLEET_BY_ID = {kind.id: kind for kind in FLEET}
TOTAL_SHIP_CELLS = sum(kind.length for kind in FLEET)


@dataclass(frozen=True)
class ShipPlacement:
    id: str
    name: str
    length: int
    start: Coordinate
    orientation: str

    def cells(self) -> List[Coordinate]:
        return cells_for(self.start, self.length, self.orientation)


def validate_fleet(placements: Sequence[ShipPlacement]) -> None:
    """Raise ``PlacementError`` for the first rule the layout breaks.

    Checks run in a fixed order: ship count, fleet identity, then each
    placement in input order (kind, size, bounds, overlap with the ships
    accepted before it). Touching ships are allowed.
    """
    if len(placements) != len(FLEET):
        raise PlacementError(
            f'Expected {len(FLEET)} ships, got {len(placements)}', 'wrong_count'
        )

    if Counter(p.id for p in placements) != Counter(kind.id for kind in FLEET):
        raise PlacementError('Missing or duplicate ships in placement', 'missing_or_duplicate')

    accepted = []
    for placement in placements:
        kind = FLEET_BY_ID.get(placement.id)
        if kind is None:
            raise PlacementError(f'Invalid ship type: {placement.id}', 'invalid_ship_type')
        if placement.length != kind.length:
            raise PlacementError(
                f'Ship {placement.name} should have size {kind.length}, got {placement.length}',
                'wrong_size',
            )
        if placement.orientation not in ORIENTATIONS:
            raise PlacementError(
                f'Ship {placement.name} has invalid orientation {placement.orientation!r}',
                'malformed',
            )
        cells = placement.cells()
        if not all_valid(cells):
            raise PlacementError(f'Ship {placement.name} goes out of bounds', 'out_of_bounds')
        for name, other_cells in accepted:
            if overlaps(cells, other_cells):
                raise PlacementError(f'Ship {placement.name} overlaps with {name}', 'overlap')
        accepted.append((placement.name, cells))


def build_ships(placements: Sequence[ShipPlacement]) -> List[Ship]:
    return [
        Ship(id=p.id, name=p.name, length=p.length, coordinates=p.cells())
        for p in placements
    ]


def parse_placements(payload) -> List[ShipPlacement]:
    """Turn the raw ``place_ships`` payload into placements.

    Accepts either a bare list or ``{"ships": [...]}``. Each entry needs
    ``id``, ``length`` (or ``size``), ``orientation`` and a start coordinate
    under ``start`` / ``start_coordinate`` / ``startCoordinate``.
    """
    if isinstance(payload, dict):
        payload = payload.get('ships')
    if not isinstance(payload, list):
        raise PlacementError('Ship placements must be a list', 'malformed')

    placements = []
    for entry in payload:
        if not isinstance(entry, dict):
            raise PlacementError('Each ship placement must be an object', 'malformed')
        ship_id = entry.get('id')
        length = entry.get('length', entry.get('size'))
        raw_start = entry.get('start', entry.get('start_coordinate', entry.get('startCoordinate')))
        start = parse_coordinate(raw_start)
        if not isinstance(ship_id, str) or start is None:
            raise PlacementError('Ship placement is missing an id or start coordinate', 'malformed')
        if not isinstance(length, int) or isinstance(length, bool):
            raise PlacementError(f'Ship {ship_id} has no valid size', 'malformed')
        kind = FLEET_BY_ID.get(ship_id)
        name = entry.get('name') or (kind.name if kind else ship_id)
        placements.append(ShipPlacement(
            id=ship_id,
            name=str(name),
            length=length,
            start=start,
            orientation=str(entry.get('orientation', '')).lower(),
        ))
    return placements
