"""Typed room aggregate shared by the engine, the directory and the sockets.

A room owns exactly two player slots. Each slot carries the player's
readiness, board and shot counters, so "both players present and ready"
is a property of the room instead of a dictionary size check.

Rooms round-trip through plain dicts (``to_dict``/``from_dict``); the
directory stores those snapshots rather than live objects.
"""
from dataclasses import dataclass, field
from typing import Dict, Iterator, List, Optional

from .grid import Coordinate

WAITING = 'waiting'
SETUP = 'setup'
PLAYING = 'playing'
FINISHED = 'finished'
STATUS_ORDER = (WAITING, SETUP, PLAYING, FINISHED)

HIT = 'hit'
MISS = 'miss'
SUNK = 'sunk'

REASON_ALL_SUNK = 'all_ships_sunk'
REASON_OPPONENT_LEFT = 'opponent_left'
REASON_TIMEOUT = 'timeout'


def _coords(raw) -> List[Coordinate]:
    return [Coordinate(int(c['x']), int(c['y'])) for c in raw]


@dataclass
class Ship:
    id: str
    name: str
    length: int
    coordinates: List[Coordinate]
    hits: int = 0
    is_sunk: bool = False

    def occupies(self, coord: Coordinate) -> bool:
        return coord in self.coordinates

    def register_hit(self) -> bool:
        """Count a hit; returns True when this hit sank the ship."""
        was_sunk = self.is_sunk
        self.hits += 1
        if self.hits >= self.length:
            self.is_sunk = True
        return self.is_sunk and not was_sunk

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'length': self.length,
            'coordinates': [c.to_dict() for c in self.coordinates],
            'hits': self.hits,
            'is_sunk': self.is_sunk,
        }

    @classmethod
    def from_dict(cls, data):
        return cls(
            id=data['id'],
            name=data['name'],
            length=int(data['length']),
            coordinates=_coords(data['coordinates']),
            hits=int(data.get('hits', 0)),
            is_sunk=bool(data.get('is_sunk', False)),
        )


@dataclass
class PlayerBoard:
    ships: List[Ship]
    hits: List[Coordinate] = field(default_factory=list)
    misses: List[Coordinate] = field(default_factory=list)

    def already_attacked(self, coord: Coordinate) -> bool:
        return coord in self.hits or coord in self.misses

    def ship_at(self, coord: Coordinate) -> Optional[Ship]:
        for ship in self.ships:
            if ship.occupies(coord):
                return ship
        return None

    def all_sunk(self) -> bool:
        return bool(self.ships) and all(s.is_sunk for s in self.ships)

    def ships_remaining(self) -> int:
        return sum(1 for s in self.ships if not s.is_sunk)

    def sunk_ships(self) -> List[Ship]:
        return [s for s in self.ships if s.is_sunk]

    def to_dict(self):
        return {
            'ships': [s.to_dict() for s in self.ships],
            'hits': [c.to_dict() for c in self.hits],
            'misses': [c.to_dict() for c in self.misses],
        }

    @classmethod
    def from_dict(cls, data):
        return cls(
            ships=[Ship.from_dict(s) for s in data['ships']],
            hits=_coords(data.get('hits', [])),
            misses=_coords(data.get('misses', [])),
        )


@dataclass
class ShotStats:
    shots: int = 0
    hits: int = 0
    misses: int = 0

    def to_dict(self):
        return {'shots': self.shots, 'hits': self.hits, 'misses': self.misses}


@dataclass
class PlayerSlot:
    player_id: str
    ready: bool = False
    board: Optional[PlayerBoard] = None
    stats: ShotStats = field(default_factory=ShotStats)

    def to_dict(self):
        return {
            'player_id': self.player_id,
            'ready': self.ready,
            'board': self.board.to_dict() if self.board else None,
            'stats': self.stats.to_dict(),
        }

    @classmethod
    def from_dict(cls, data):
        board = data.get('board')
        return cls(
            player_id=data['player_id'],
            ready=bool(data.get('ready', False)),
            board=PlayerBoard.from_dict(board) if board else None,
            stats=ShotStats(**data.get('stats', {})),
        )


@dataclass
class Room:
    code: str
    player1: PlayerSlot
    player2: Optional[PlayerSlot] = None
    status: str = WAITING
    current_turn: Optional[str] = None
    created_at: float = 0.0
    started_at: Optional[float] = None
    ended_at: Optional[float] = None
    match_id: Optional[int] = None
    winner_id: Optional[str] = None
    end_reason: Optional[str] = None

    def slots(self) -> Iterator[PlayerSlot]:
        yield self.player1
        if self.player2 is not None:
            yield self.player2

    def slot_for(self, player_id: str) -> Optional[PlayerSlot]:
        for slot in self.slots():
            if slot.player_id == player_id:
                return slot
        return None

    def has_player(self, player_id: str) -> bool:
        return self.slot_for(player_id) is not None

    @property
    def player_ids(self) -> List[str]:
        return [slot.player_id for slot in self.slots()]

    @property
    def is_full(self) -> bool:
        return self.player2 is not None

    @property
    def both_ready(self) -> bool:
        return (
            self.player2 is not None
            and self.player1.ready and self.player1.board is not None
            and self.player2.ready and self.player2.board is not None
        )

    @property
    def total_shots(self) -> int:
        return sum(slot.stats.shots for slot in self.slots())

    def to_dict(self) -> Dict:
        return {
            'code': self.code,
            'player1': self.player1.to_dict(),
            'player2': self.player2.to_dict() if self.player2 else None,
            'status': self.status,
            'current_turn': self.current_turn,
            'created_at': self.created_at,
            'started_at': self.started_at,
            'ended_at': self.ended_at,
            'match_id': self.match_id,
            'winner_id': self.winner_id,
            'end_reason': self.end_reason,
        }

    @classmethod
    def from_dict(cls, data: Dict) -> 'Room':
        player2 = data.get('player2')
        return cls(
            code=data['code'],
            player1=PlayerSlot.from_dict(data['player1']),
            player2=PlayerSlot.from_dict(player2) if player2 else None,
            status=data.get('status', WAITING),
            current_turn=data.get('current_turn'),
            created_at=data.get('created_at', 0.0),
            started_at=data.get('started_at'),
            ended_at=data.get('ended_at'),
            match_id=data.get('match_id'),
            winner_id=data.get('winner_id'),
            end_reason=data.get('end_reason'),
        )


@dataclass(frozen=True)
class ShotOutcome:
    coordinate: Coordinate
    result: str
    attacker: str
    defender: str
    ship_name: Optional[str] = None
    ship_id: Optional[str] = None

    def to_dict(self):
        payload = {
            'coordinate': self.coordinate.to_dict(),
            'result': self.result,
            'attacker': self.attacker,
            'defender': self.defender,
        }
        if self.ship_name:
            payload['ship_name'] = self.ship_name
            payload['ship_id'] = self.ship_id
        return payload
