"""Room codes and entity identifiers."""

import random
import uuid
from typing import Container, Optional

from exchange.rules import ROOM_CODE_ALPHABET, ROOM_CODE_LENGTH


def generate_room_code(
    taken: Container[str] = (),
    length: int = ROOM_CODE_LENGTH,
    rng: Optional[random.Random] = None,
) -> str:
    """
    Return a room code not present in `taken`.

    Draws again on collision; the caller must hold whatever lock protects
    `taken` until the code is inserted.
    """
    rng = rng or random.SystemRandom()
    while True:
        code = "".join(rng.choice(ROOM_CODE_ALPHABET) for _ in range(length))
        if code not in taken:
            return code


def normalize_room_code(code: str) -> str:
    """Room codes are case-insensitive; upper case is canonical."""
    return code.strip().upper()


def new_id() -> str:
    """Opaque identifier for players and items."""
    return str(uuid.uuid4())
