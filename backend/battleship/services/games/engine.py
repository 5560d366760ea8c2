"""Authoritative Battleship match state machine.

Every operation takes a ``Room`` snapshot and returns a new one (or raises
a ``GameError``). The input room is never modified, so a failed action
leaves nothing half-applied. Storage and locking belong to the directory.

Lifecycle: waiting -> setup -> playing -> finished. ``forfeit`` is the
only transition allowed to skip ahead.
"""
import copy
import random
import time
from typing import Dict, Optional, Sequence, Tuple

from .errors import StateConflictError, ValidationError
from .fleet import ShipPlacement, build_ships, validate_fleet
from .grid import Coordinate, is_valid
from .state import (
    FINISHED, HIT, MISS, PLAYING, REASON_ALL_SUNK, SETUP, SUNK, WAITING,
    PlayerBoard, PlayerSlot, Room, ShotOutcome, ShotStats,
)


class MatchEngine:
    def __init__(self, rng: Optional[random.Random] = None, clock=time.time):
        self.rng = rng if rng is not None else random.SystemRandom()
        self.clock = clock

    def create_room(self, code: str, player1: str) -> Room:
        return Room(code=code, player1=PlayerSlot(player_id=player1), created_at=self.clock())

    def admit_second_player(self, room: Room, player2: str) -> Room:
        if room.player2 is not None:
            raise StateConflictError('Room is full', 'room_full')
        if room.player1.player_id == player2:
            raise StateConflictError('Cannot join your own room', 'own_room')
        # a one-player room can only leave waiting through forfeit
        if room.status != WAITING:
            raise StateConflictError('Room is not accepting players', 'not_waiting')

        room = copy.deepcopy(room)
        room.player2 = PlayerSlot(player_id=player2)
        room.status = SETUP
        return room

    def place_ships(self, room: Room, player_id: str, placements: Sequence[ShipPlacement]) -> Room:
        slot = room.slot_for(player_id)
        if slot is None:
            raise StateConflictError('You are not in this room', 'not_in_room')
        if slot.ready:
            raise StateConflictError('Ships already placed', 'already_placed')
        if room.status == FINISHED:
            raise StateConflictError('Game is already finished', 'finished')
        validate_fleet(placements)

        room = copy.deepcopy(room)
        slot = room.slot_for(player_id)
        slot.board = PlayerBoard(ships=build_ships(placements))
        slot.ready = True
        slot.stats = ShotStats()

        if room.both_ready:
            room.status = PLAYING
            room.started_at = self.clock()
            room.current_turn = self.rng.choice((room.player1.player_id, room.player2.player_id))
        return room

    def fire_shot(self, room: Room, shooter_id: str, coordinate: Coordinate) -> Tuple[Room, ShotOutcome]:
        if room.status != PLAYING:
            raise StateConflictError('Game is not in playing state', 'not_playing')
        if room.current_turn != shooter_id:
            raise StateConflictError('Not your turn', 'not_your_turn')
        if not is_valid(coordinate):
            raise ValidationError('Coordinate is out of bounds', 'out_of_bounds')
        defender_id = self.opponent_of(room, shooter_id)
        defender = room.slot_for(defender_id) if defender_id else None
        if defender is None or defender.board is None:
            raise StateConflictError('Defender board not found', 'no_board')
        if defender.board.already_attacked(coordinate):
            raise StateConflictError('Coordinate already attacked', 'already_attacked')

        room = copy.deepcopy(room)
        shooter = room.slot_for(shooter_id)
        board = room.slot_for(defender_id).board

        ship = board.ship_at(coordinate)
        if ship is not None:
            board.hits.append(coordinate)
            shooter.stats.hits += 1
            just_sunk = ship.register_hit()
            outcome = ShotOutcome(
                coordinate=coordinate,
                result=SUNK if just_sunk else HIT,
                attacker=shooter_id,
                defender=defender_id,
                ship_name=ship.name,
                ship_id=ship.id,
            )
        else:
            board.misses.append(coordinate)
            shooter.stats.misses += 1
            outcome = ShotOutcome(coordinate=coordinate, result=MISS, attacker=shooter_id, defender=defender_id)
        shooter.stats.shots += 1

        if board.all_sunk():
            room.status = FINISHED
            room.winner_id = shooter_id
            room.ended_at = self.clock()
            room.end_reason = REASON_ALL_SUNK
        # flips even on the winning shot; nothing reads the turn once finished
        room.current_turn = defender_id
        return room, outcome

    def forfeit(self, room: Room, winner_id: str, reason: str) -> Room:
        room = copy.deepcopy(room)
        room.status = FINISHED
        room.winner_id = winner_id
        room.end_reason = reason
        room.ended_at = self.clock()
        return room

    @staticmethod
    def opponent_of(room: Room, player_id: str) -> Optional[str]:
        if room.player2 is None:
            return None
        if room.player1.player_id == player_id:
            return room.player2.player_id
        if room.player2.player_id == player_id:
            return room.player1.player_id
        return None

    @staticmethod
    def summary_stats(room: Room) -> Dict[str, Dict[str, int]]:
        stats = {}
        for slot in room.slots():
            stats[slot.player_id] = {
                'shots': slot.stats.shots,
                'hits': slot.stats.hits,
                'misses': slot.stats.misses,
                'ships_remaining': slot.board.ships_remaining() if slot.board else 0,
            }
        return stats

    def player_view(self, room: Room, player_id: str) -> Dict:
        """What ``player_id`` is allowed to see of the room.

        Own ships in full; of the opponent only the shots taken at them
        and the ships already sunk.
        """
        players = {'player1': _public_slot(room.player1), 'player2': None}
        if room.player2 is not None:
            players['player2'] = _public_slot(room.player2)

        view = {
            'room_code': room.code,
            'status': room.status,
            'current_turn': room.current_turn,
            'winner_id': room.winner_id,
            'players': players,
            'your_board': None,
            'opponent_board': None,
        }

        own = room.slot_for(player_id)
        if own is not None and own.board is not None:
            view['your_board'] = {
                'ships': [s.to_dict() for s in own.board.ships],
                'opponent_hits': [c.to_dict() for c in own.board.hits],
                'opponent_misses': [c.to_dict() for c in own.board.misses],
            }

        opponent_id = self.opponent_of(room, player_id)
        opponent = room.slot_for(opponent_id) if opponent_id else None
        if opponent is not None and opponent.board is not None:
            view['opponent_board'] = {
                'your_hits': [c.to_dict() for c in opponent.board.hits],
                'your_misses': [c.to_dict() for c in opponent.board.misses],
                'sunk_ships': [s.to_dict() for s in opponent.board.sunk_ships()],
            }
        return view


def _public_slot(slot: PlayerSlot) -> Dict:
    return {'id': slot.player_id, 'ready': slot.ready}
