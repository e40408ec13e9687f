"""Domain errors for the gift exchange.

Every error is caller-local: raising one never leaves a room half-updated,
and the API layer reports it only to the player who sent the event.
"""


class ExchangeError(Exception):
    """Base class for all rejected session events."""

    code = "EXCHANGE_ERROR"

    def __init__(self, message: str | None = None):
        self.message = message or self.__class__.__doc__ or self.code
        super().__init__(f"[{self.code}] {self.message}")


# ============ Room ============

class RoomNotFound(ExchangeError):
    """Room does not exist."""

    code = "ROOM_NOT_FOUND"

    def __init__(self, room_code: str):
        self.room_code = room_code
        super().__init__(f"Room {room_code} not found")


class RoomNotJoinable(ExchangeError):
    """Game already in progress."""

    code = "ROOM_NOT_JOINABLE"


class WrongPhase(ExchangeError):
    """Action not allowed in the current phase."""

    code = "WRONG_PHASE"


# ============ Player ============

class PlayerNotFound(ExchangeError):
    """Player is not in this room."""

    code = "PLAYER_NOT_FOUND"

    def __init__(self, player_id: str):
        self.player_id = player_id
        super().__init__(f"Player {player_id} is not in this room")


class NotInRoom(ExchangeError):
    """Join a room first."""

    code = "NOT_IN_ROOM"


class NotAuthorized(ExchangeError):
    """Only the host can do that."""

    code = "NOT_AUTHORIZED"


# ============ Lobby ============

class DuplicateSubmission(ExchangeError):
    """Already submitted an item."""

    code = "DUPLICATE_SUBMISSION"


class InsufficientPlayers(ExchangeError):
    """Not enough players to start."""

    code = "INSUFFICIENT_PLAYERS"


class IncompleteSubmissions(ExchangeError):
    """Not all players have submitted an item."""

    code = "INCOMPLETE_SUBMISSIONS"


# ============ Turns ============

class NotYourTurn(ExchangeError):
    """Not your turn."""

    code = "NOT_YOUR_TURN"


class PoolEmpty(ExchangeError):
    """No items left in the pool."""

    code = "POOL_EMPTY"


class ItemNotAvailable(ExchangeError):
    """Item is not in the pool."""

    code = "ITEM_NOT_AVAILABLE"


class TargetHasNoItem(ExchangeError):
    """Player has no item to steal."""

    code = "TARGET_HAS_NO_ITEM"


class StealBackForbidden(ExchangeError):
    """Cannot steal back the item that was just stolen."""

    code = "STEAL_BACK_FORBIDDEN"


class ItemLocked(ExchangeError):
    """Item has been stolen too many times and is locked."""

    code = "ITEM_LOCKED"


# ============ Reveal ============

class AlreadyFinished(ExchangeError):
    """All items have already been revealed."""

    code = "ALREADY_FINISHED"


# ============ Boundary ============

class MalformedEvent(ExchangeError):
    """Event could not be parsed."""

    code = "MALFORMED_EVENT"
