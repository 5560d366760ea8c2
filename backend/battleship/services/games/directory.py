"""In-process room directory with expiry and per-room locking.

Rooms are stored as dict snapshots keyed by code. Reads hand out fresh
``Room`` objects, so nothing outside a transaction can mutate stored
state. ``transaction`` serialises fetch-mutate-store cycles per room code;
different codes never share a lock.
"""
import logging
import random
import string
import threading
import time
from contextlib import contextmanager
from typing import Callable, Dict, Optional, Set, Tuple

from .errors import ResourceExhaustedError, RoomCodeTakenError, RoomNotFoundError
from .state import Room

logger = logging.getLogger(__name__)

ROOM_CODE_ALPHABET = string.ascii_uppercase + string.digits
DEFAULT_TTL_SEC = 3600


def generate_room_code(length: int = 6, rng: Optional[random.Random] = None) -> str:
    rng = rng or random.SystemRandom()
    return ''.join(rng.choice(ROOM_CODE_ALPHABET) for _ in range(length))


class RoomTransaction:
    """Handle yielded by ``RoomDirectory.transaction``.

    Whatever ``room`` holds when the block exits cleanly replaces the
    stored value.
    """

    def __init__(self, code: str, room: Room):
        self.code = code
        self.room = room


class RoomDirectory:
    def __init__(self, ttl: int = DEFAULT_TTL_SEC, clock: Callable[[], float] = time.time):
        self.ttl = ttl
        self.clock = clock
        self._rooms: Dict[str, Tuple[dict, float]] = {}
        self._player_rooms: Dict[str, Tuple[str, float]] = {}
        self._members: Dict[str, Set[str]] = {}
        # guards the dicts above and the lock table, never held across user code
        self._guard = threading.RLock()
        self._key_locks: Dict[str, threading.Lock] = {}

    # ---- rooms ----

    def create(self, room: Room) -> Room:
        with self._guard:
            if self._live_room(room.code) is not None:
                raise RoomCodeTakenError(f'Room code {room.code} is already in use')
            self._rooms[room.code] = (room.to_dict(), self._expiry())
        return room

    def get(self, code: str) -> Optional[Room]:
        with self._guard:
            snapshot = self._live_room(code)
        return Room.from_dict(snapshot) if snapshot is not None else None

    def put(self, room: Room) -> None:
        with self._guard:
            self._store(room.code, room)

    def exists(self, code: str) -> bool:
        with self._guard:
            return self._live_room(code) is not None

    def delete(self, code: str) -> None:
        with self._guard:
            self._rooms.pop(code, None)
            for player_id in self._members.pop(code, set()):
                entry = self._player_rooms.get(player_id)
                if entry and entry[0] == code:
                    del self._player_rooms[player_id]
            lock = self._key_locks.get(code)
            if lock is not None and not lock.locked():
                del self._key_locks[code]

    @contextmanager
    def transaction(self, code: str):
        """Serialised read-modify-write of one room.

        The room is re-fetched after the lock is taken and written back
        (refreshing its TTL) when the block finishes. If the block raises,
        nothing is stored.
        """
        with self._lock_for(code):
            room = self.get(code)
            if room is None:
                raise RoomNotFoundError()
            txn = RoomTransaction(code, room)
            yield txn
            self._replace(code, txn.room)

    # ---- player <-> room indices ----

    def assign_player(self, player_id: str, code: str) -> None:
        with self._guard:
            self._player_rooms[player_id] = (code, self._expiry())
            self._members.setdefault(code, set()).add(player_id)

    def room_of(self, player_id: str) -> Optional[str]:
        """Code of the live room the player is in, dropping stale mappings."""
        with self._guard:
            entry = self._player_rooms.get(player_id)
            if entry is None:
                return None
            code, expires_at = entry
            if expires_at <= self.clock() or self._live_room(code) is None:
                del self._player_rooms[player_id]
                return None
            return code

    def release_player(self, player_id: str, code: str) -> Set[str]:
        """Remove the player from the room's presence set; returns who is left."""
        with self._guard:
            entry = self._player_rooms.get(player_id)
            if entry and entry[0] == code:
                del self._player_rooms[player_id]
            members = self._members.get(code, set())
            members.discard(player_id)
            return set(members)

    def members(self, code: str) -> Set[str]:
        with self._guard:
            return set(self._members.get(code, set()))

    # ---- expiry ----

    def sweep(self) -> int:
        """Purge expired rooms and player mappings; returns rooms removed."""
        now = self.clock()
        with self._guard:
            expired = [code for code, (_, expires_at) in self._rooms.items() if expires_at <= now]
            for code in expired:
                self.delete(code)
            for player_id, (_, expires_at) in list(self._player_rooms.items()):
                if expires_at <= now:
                    del self._player_rooms[player_id]
        if expired:
            logger.info(f"[rooms-expired] count={len(expired)} codes={','.join(expired)}")
        return len(expired)

    def _replace(self, code: str, room: Room) -> None:
        with self._guard:
            if code not in self._rooms:
                # deleted or expired while the transaction ran
                raise RoomNotFoundError()
            self._store(code, room)

    def _store(self, code: str, room: Room) -> None:
        # members stay mapped for as long as their room is written to
        expires_at = self._expiry()
        self._rooms[code] = (room.to_dict(), expires_at)
        for player_id in self._members.get(code, ()):
            entry = self._player_rooms.get(player_id)
            if entry and entry[0] == code:
                self._player_rooms[player_id] = (code, expires_at)

    def _expiry(self) -> float:
        return self.clock() + self.ttl

    def _live_room(self, code: str) -> Optional[dict]:
        entry = self._rooms.get(code)
        if entry is None:
            return None
        snapshot, expires_at = entry
        if expires_at <= self.clock():
            self.delete(code)
            logger.info(f"[room-expired] code={code}")
            return None
        return snapshot

    def _lock_for(self, code: str) -> threading.Lock:
        with self._guard:
            lock = self._key_locks.get(code)
            if lock is None:
                lock = self._key_locks[code] = threading.Lock()
            return lock


def open_room(
    directory: RoomDirectory,
    engine,
    player_id: str,
    attempts: int = 10,
    code_factory: Callable[[], str] = generate_room_code,
) -> Room:
    """Create a room under a fresh code, retrying on collisions."""
    for _ in range(attempts):
        code = code_factory()
        try:
            return directory.create(engine.create_room(code, player_id))
        except RoomCodeTakenError:
            logger.info(f"[room-code-collision] code={code}")
    raise ResourceExhaustedError('Failed to generate unique room code')
