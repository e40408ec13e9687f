"""In-memory room registry. One instance per process, owned by the app."""

import logging
import random
import threading
import time
from typing import Callable, Optional

from exchange.engine import create_room as new_room
from exchange.errors import RoomNotFound
from exchange.ids import generate_room_code, normalize_room_code
from exchange.rules import ROOM_CODE_LENGTH, STEAL_LOCK_THRESHOLD
from exchange.state import Room

logger = logging.getLogger(__name__)


class RoomRegistry:
    """
    Table of active rooms keyed by upper-case room code.

    Rooms are stored as snapshots: callers take `lock(code)`, read the room,
    run an engine transition and `save` the result before releasing the lock.
    """

    def __init__(
        self,
        code_length: int = ROOM_CODE_LENGTH,
        lock_threshold: int = STEAL_LOCK_THRESHOLD,
        rng: Optional[random.Random] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._code_length = code_length
        self._lock_threshold = lock_threshold
        self._rng = rng
        self._clock = clock
        self._rooms: dict[str, Room] = {}
        self._locks: dict[str, threading.Lock] = {}
        self._touched: dict[str, float] = {}
        self._guard = threading.Lock()

    def _insert(self, code: str) -> Room:
        room = new_room(code, lock_threshold=self._lock_threshold)
        self._rooms[code] = room
        self._locks[code] = threading.Lock()
        self._touched[code] = self._clock()
        return room

    def create_room(self) -> Room:
        """Create an empty lobby room under a fresh code."""
        with self._guard:
            code = generate_room_code(self._rooms, length=self._code_length, rng=self._rng)
            room = self._insert(code)
        logger.info("Created room %s", code)
        return room

    def ensure_room(self, code: str) -> Room:
        """Return the room for code, creating an empty one under that code if absent."""
        code = normalize_room_code(code)
        with self._guard:
            room = self._rooms.get(code)
            if room is not None:
                return room
            room = self._insert(code)
        logger.info("Created room %s on first join", code)
        return room

    def find_room(self, code: str) -> Optional[Room]:
        """Case-insensitive lookup; None if absent."""
        return self._rooms.get(normalize_room_code(code))

    def get_room(self, code: str) -> Room:
        room = self.find_room(code)
        if room is None:
            raise RoomNotFound(normalize_room_code(code))
        return room

    def save(self, room: Room) -> None:
        """Store the snapshot produced by a transition."""
        with self._guard:
            if room.code not in self._rooms:
                raise RoomNotFound(room.code)
            self._rooms[room.code] = room
            self._touched[room.code] = self._clock()

    def remove_room(self, code: str) -> None:
        """Drop a room. No-op if absent."""
        code = normalize_room_code(code)
        with self._guard:
            removed = self._rooms.pop(code, None)
            self._locks.pop(code, None)
            self._touched.pop(code, None)
        if removed is not None:
            logger.info("Removed room %s", code)

    def lock(self, code: str) -> threading.Lock:
        """The lock that serializes all operations on one room."""
        code = normalize_room_code(code)
        with self._guard:
            lock = self._locks.get(code)
        if lock is None:
            raise RoomNotFound(code)
        return lock

    def evict_idle(self, grace_seconds: float, now: Optional[float] = None) -> list[str]:
        """Remove rooms nobody is connected to that have been idle for grace_seconds."""
        now = self._clock() if now is None else now
        with self._guard:
            expired = [
                code
                for code, room in self._rooms.items()
                if not room.connected_players() and now - self._touched[code] >= grace_seconds
            ]
            for code in expired:
                del self._rooms[code]
                del self._locks[code]
                del self._touched[code]
        for code in expired:
            logger.info("Evicted idle room %s", code)
        return expired

    def codes(self) -> list[str]:
        return list(self._rooms.keys())

    def __len__(self) -> int:
        return len(self._rooms)

    def __contains__(self, code: str) -> bool:
        return normalize_room_code(code) in self._rooms
