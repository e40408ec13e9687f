"""Game rules and constants for the gift exchange."""

from enum import Enum


class Phase(str, Enum):
    """Room lifecycle phase. Only ever advances."""

    LOBBY = "lobby"
    ACTIVE = "active"
    REVEAL = "reveal"
    FINISHED = "finished"


# Phases in the only order a room may move through them
PHASE_ORDER = (Phase.LOBBY, Phase.ACTIVE, Phase.REVEAL, Phase.FINISHED)

# Phases in which item titles and images are public
DISCLOSED_PHASES = (Phase.REVEAL, Phase.FINISHED)

# Number of steals after which an item can no longer be stolen
STEAL_LOCK_THRESHOLD = 3

# Minimum players to start
MIN_PLAYERS = 2

# Room codes avoid look-alike characters (no I, O, 0, 1)
ROOM_CODE_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"
ROOM_CODE_LENGTH = 6
