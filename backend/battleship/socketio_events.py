import re
from functools import wraps
from typing import Dict, Iterable, Optional

from flask import current_app, request
from flask_login import current_user
from flask_socketio import emit, join_room, leave_room

from battleship import db, socketio
from battleship.models import User
from battleship.services.games.directory import generate_room_code, open_room
from battleship.services.games.errors import GameError, RoomNotFoundError, StateConflictError, ValidationError
from battleship.services.games.fleet import parse_placements
from battleship.services.games.grid import parse_coordinate, to_display
from battleship.services.games.scheduler import run_background, schedule_room_cleanup, schedule_turn_timer
from battleship.services.games.state import (
    FINISHED, PLAYING, REASON_OPPONENT_LEFT, REASON_TIMEOUT, SUNK, Room,
)

NAMESPACE = '/ws'
ROOM_CODE_RE = re.compile(r'^[A-Z0-9]{6}$')


def _game_channel(room_code: str) -> str:
    return f"game:{room_code}"


def _user_channel(player_id: str) -> str:
    return f"user:{player_id}"


def _reports_errors(action: str):
    """Turn failures into an ``error`` event for the calling socket only."""
    def decorator(handler):
        @wraps(handler)
        def wrapper(self, *args, **kwargs):
            try:
                return handler(self, *args, **kwargs)
            except GameError as exc:
                current_app.logger.info(f"[{action}-rejected] sid={_get_sid()} code={exc.category} msg={exc.message}")
                emit('error', exc.to_dict())
            except Exception:
                current_app.logger.exception(f"[{action}-failed] sid={_get_sid()}")
                emit('error', {'message': f"Failed to {action.replace('_', ' ')}", 'code': 'internal'})
        return wrapper
    return decorator


def _get_sid() -> Optional[str]:
    # request.sid only exists inside a Socket.IO handler
    return getattr(request, 'sid', None)


class GameEvents:
    """Socket.IO adapter between connected players and the game core.

    Built once by the app factory with the directory, engine and summary
    emitter it should use; holds no game state of its own.
    """

    def __init__(self, directory, engine, emitter, recorder, code_factory=None):
        self.directory = directory
        self.engine = engine
        self.emitter = emitter
        self.recorder = recorder
        self.code_factory = code_factory

    # ---- connection lifecycle ----

    def on_connect(self, auth=None):
        if not current_user.is_authenticated:
            current_app.logger.info(f"[connect-refused] sid={_get_sid()} unauthenticated")
            return False
        player_id = str(current_user.id)
        join_room(_user_channel(player_id))
        room_code = self.directory.room_of(player_id)
        if room_code:
            join_room(_game_channel(room_code))
        current_app.logger.info(f"[connect] sid={_get_sid()} player={player_id}")
        emit('connected', {'player_id': player_id, 'username': current_user.username, 'room_code': room_code})

    def on_disconnect(self, reason=None):
        if not current_user.is_authenticated:
            return
        player_id = str(current_user.id)
        current_app.logger.info(f"[disconnect] sid={_get_sid()} player={player_id}")
        try:
            room_code = self.directory.room_of(player_id)
            if room_code:
                self._depart(player_id, room_code)
        except Exception:
            current_app.logger.exception(f"[disconnect-cleanup-failed] player={player_id}")

    def on_ping(self, data=None):
        emit('pong', data or {})

    # ---- rooms ----

    @_reports_errors('create_room')
    def on_create_room(self, data=None):
        player_id = self._require_player()
        if self.directory.room_of(player_id):
            raise StateConflictError('You are already in a room', 'already_in_room')

        cfg = current_app.config
        code_length = int(cfg.get('ROOM_CODE_LENGTH', 6))
        room = open_room(
            self.directory,
            self.engine,
            player_id,
            attempts=int(cfg.get('ROOM_CODE_MAX_ATTEMPTS', 10)),
            code_factory=self.code_factory or (lambda: generate_room_code(code_length)),
        )
        self.directory.assign_player(player_id, room.code)
        join_room(_game_channel(room.code))
        current_app.logger.info(f"[room-created] room={room.code} player={player_id}")
        emit('room_created', {'room_code': room.code})

    @_reports_errors('join_room')
    def on_join_room(self, data=None):
        player_id = self._require_player()
        raw_code = data.get('room_code') if isinstance(data, dict) else data
        room_code = raw_code.strip().upper() if isinstance(raw_code, str) else ''
        if not ROOM_CODE_RE.match(room_code):
            raise ValidationError('Invalid room code format', 'invalid_room_code')
        if self.directory.room_of(player_id):
            raise StateConflictError('You are already in a room', 'already_in_room')

        with self.directory.transaction(room_code) as txn:
            txn.room = self.engine.admit_second_player(txn.room, player_id)

        self.directory.assign_player(player_id, room_code)
        join_room(_game_channel(room_code))
        current_app.logger.info(f"[room-joined] room={room_code} player={player_id}")

        self._broadcast('player_joined', {'player_id': player_id, 'username': current_user.username},
                        room_code, skip_sid=_get_sid())
        emit('game_started', {'room_code': room_code, 'message': 'Game is ready to start!'})
        self._broadcast('game_started', {'room_code': room_code, 'message': 'Opponent joined! Game is ready to start!'},
                        room_code, skip_sid=_get_sid())

    @_reports_errors('leave_room')
    def on_leave_room(self, data=None):
        player_id = self._require_player()
        room_code = self.directory.room_of(player_id)
        if not room_code:
            raise StateConflictError('You are not in a room', 'not_in_room')
        leave_room(_game_channel(room_code))
        self._depart(player_id, room_code)
        emit('left', {'room_code': room_code})

    # ---- gameplay ----

    @_reports_errors('place_ships')
    def on_place_ships(self, data=None):
        player_id, room_code = self._require_room()
        placements = parse_placements(data)

        with self.directory.transaction(room_code) as txn:
            txn.room = self.engine.place_ships(txn.room, player_id, placements)
            room = txn.room

        current_app.logger.info(f"[ships-placed] room={room_code} player={player_id}")
        self._broadcast('ships_placed', {'player_id': player_id, 'ready': True}, room_code)

        if room.status == PLAYING and room.current_turn:
            room = self._start_match(room)
            current_app.logger.info(f"[game-started] room={room_code} first={room.current_turn} match={room.match_id}")
            self._broadcast('both_players_ready', {
                'first_player': room.current_turn,
                'message': 'Both players ready! Game starting...',
            }, room_code)
            self._announce_turn(room)

    @_reports_errors('fire_shot')
    def on_fire_shot(self, data=None):
        player_id, room_code = self._require_room()
        raw = data.get('coordinate', data) if isinstance(data, dict) else data
        coordinate = parse_coordinate(raw)
        if coordinate is None:
            raise ValidationError('Invalid coordinate', 'invalid_coordinate')

        with self.directory.transaction(room_code) as txn:
            txn.room, outcome = self.engine.fire_shot(txn.room, player_id, coordinate)
            room = txn.room

        current_app.logger.info(
            f"[shot] room={room_code} attacker={player_id} at={to_display(coordinate)} result={outcome.result}"
        )
        result = outcome.to_dict()
        result['label'] = to_display(coordinate)
        self._broadcast('shot_result', result, room_code)
        if outcome.result == SUNK:
            self._broadcast('ship_sunk', {'ship_name': outcome.ship_name, 'player_id': outcome.defender}, room_code)

        if room.status == FINISHED:
            self._announce_game_over(room)
        else:
            self._announce_turn(room)

    @_reports_errors('request_game_state')
    def on_request_game_state(self, data=None):
        player_id, room_code = self._require_room()
        room = self.directory.get(room_code)
        if room is None:
            raise RoomNotFoundError()
        view = self.engine.player_view(room, player_id)
        names = _usernames(room.player_ids)
        for key in ('player1', 'player2'):
            if view['players'][key] is not None:
                view['players'][key]['username'] = names.get(view['players'][key]['id'])
        emit('game_state', view)

    # ---- timers ----

    def expire_turn(self, room_code: str, player_id: str, shot_count: int) -> Optional[Room]:
        """Forfeit ``player_id`` if it is still their turn at ``shot_count``."""
        finished = None
        try:
            with self.directory.transaction(room_code) as txn:
                room = txn.room
                if room.status == PLAYING and room.current_turn == player_id and room.total_shots == shot_count:
                    winner_id = self.engine.opponent_of(room, player_id)
                    txn.room = finished = self.engine.forfeit(room, winner_id, REASON_TIMEOUT)
        except RoomNotFoundError:
            return None
        if finished is None:
            current_app.logger.info(f"[timer-abort] room={room_code} player={player_id} turn moved on")
            return None
        current_app.logger.info(f"[turn-timeout] room={room_code} player={player_id}")
        self._announce_game_over(finished)
        return finished

    # ---- helpers ----

    def _require_player(self) -> str:
        if not current_user.is_authenticated:
            raise GameError('User not authenticated', 'unauthenticated')
        return str(current_user.id)

    def _require_room(self):
        player_id = self._require_player()
        room_code = self.directory.room_of(player_id)
        if not room_code:
            raise StateConflictError('Not in a game room', 'not_in_room')
        return player_id, room_code

    def _depart(self, player_id: str, room_code: str) -> None:
        """Remove a player from a room, forfeiting a match in progress."""
        forfeited = None
        try:
            with self.directory.transaction(room_code) as txn:
                room = txn.room
                if room.status == PLAYING:
                    winner_id = self.engine.opponent_of(room, player_id)
                    txn.room = forfeited = self.engine.forfeit(room, winner_id, REASON_OPPONENT_LEFT)
        except RoomNotFoundError:
            pass

        remaining = self.directory.release_player(player_id, room_code)
        current_app.logger.info(f"[room-left] room={room_code} player={player_id} remaining={len(remaining)}")
        self._broadcast('opponent_left', {'message': 'Your opponent has left the game'},
                        room_code, skip_sid=_get_sid())
        if forfeited is not None:
            self._announce_game_over(forfeited, skip_sid=_get_sid())

        if not remaining:
            self.directory.delete(room_code)
            current_app.logger.info(f"[room-deleted] room={room_code} reason=empty")

    def _start_match(self, room: Room) -> Room:
        try:
            match_id = self.recorder.start_match(room)
        except Exception:
            db.session.rollback()
            current_app.logger.exception(f"[match-create-failed] room={room.code}")
            return room
        try:
            with self.directory.transaction(room.code) as txn:
                txn.room.match_id = match_id
                room = txn.room
        except RoomNotFoundError:
            room.match_id = match_id
        return room

    def _announce_turn(self, room: Room) -> None:
        for player_id in room.player_ids:
            socketio.emit('turn_changed', {
                'current_player': room.current_turn,
                'is_your_turn': room.current_turn == player_id,
            }, to=_user_channel(player_id), namespace=NAMESPACE)
        schedule_turn_timer(current_app._get_current_object(), self.expire_turn,
                            room.code, room.current_turn, room.total_shots)

    def _announce_game_over(self, room: Room, skip_sid: Optional[str] = None) -> None:
        app = current_app._get_current_object()
        loser_id = self.engine.opponent_of(room, room.winner_id)
        names = _usernames(room.player_ids)
        self._broadcast('game_over', {
            'winner_id': room.winner_id,
            'winner_username': names.get(room.winner_id),
            'loser_id': loser_id,
            'reason': room.end_reason,
            'stats': self.engine.summary_stats(room),
        }, room.code, skip_sid=skip_sid)
        app.logger.info(f"[game-over] room={room.code} winner={room.winner_id} reason={room.end_reason}")
        run_background(app, self.emitter.emit, room)
        schedule_room_cleanup(app, self.directory, room.code)

    @staticmethod
    def _broadcast(event: str, payload: Dict, room_code: str, skip_sid: Optional[str] = None) -> None:
        socketio.emit(event, payload, to=_game_channel(room_code), skip_sid=skip_sid, namespace=NAMESPACE)


def _usernames(player_ids: Iterable[str]) -> Dict[str, str]:
    ids = [int(pid) for pid in player_ids if str(pid).isdigit()]
    if not ids:
        return {}
    users = User.query.filter(User.id.in_(ids)).all()
    return {str(u.id): u.username for u in users}


def register_socketio_handlers(events: GameEvents) -> None:
    """Register Socket.IO event handlers on namespace '/ws'."""
    socketio.on_event('connect', events.on_connect, namespace=NAMESPACE)
    socketio.on_event('disconnect', events.on_disconnect, namespace=NAMESPACE)
    socketio.on_event('ping', events.on_ping, namespace=NAMESPACE)
    socketio.on_event('create_room', events.on_create_room, namespace=NAMESPACE)
    socketio.on_event('join_room', events.on_join_room, namespace=NAMESPACE)
    socketio.on_event('leave_room', events.on_leave_room, namespace=NAMESPACE)
    socketio.on_event('place_ships', events.on_place_ships, namespace=NAMESPACE)
    socketio.on_event('fire_shot', events.on_fire_shot, namespace=NAMESPACE)
    socketio.on_event('request_game_state', events.on_request_game_state, namespace=NAMESPACE)
