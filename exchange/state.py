"""Room state types for the gift exchange."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from exchange.rules import Phase, STEAL_LOCK_THRESHOLD


@dataclass(frozen=True)
class Player:
    """A participant in a room. Never removed while the room exists."""

    id: str
    display_name: str
    avatar_ref: Optional[str] = None
    connected: bool = True
    is_host: bool = False


@dataclass(frozen=True)
class Item:
    """A concealed gift submitted by one player."""

    id: str
    title: str
    image_ref: Optional[str]
    creator_id: str
    revealed: bool = False


@dataclass(frozen=True)
class RevealRecord:
    """One disclosed item, in reveal order."""

    item_id: str
    title: str
    image_ref: Optional[str]
    owner_id: str
    creator_id: str


class EventKind(str, Enum):
    """Type of room event."""

    PLAYER_JOINED = "player_joined"
    PLAYER_RECONNECTED = "player_reconnected"
    PLAYER_DISCONNECTED = "player_disconnected"
    ITEM_SUBMITTED = "item_submitted"
    HOST_CHANGED = "host_changed"
    GAME_STARTED = "game_started"
    ITEM_CLAIMED = "item_claimed"
    ITEM_STOLEN = "item_stolen"
    PHASE_CHANGED = "phase_changed"
    ITEM_REVEALED = "item_revealed"
    GAME_FINISHED = "game_finished"


@dataclass
class Event:
    """A single room event for history and broadcast. Never carries secrets."""

    kind: EventKind
    phase: Phase
    message: str
    player_id: Optional[str] = None
    target_id: Optional[str] = None
    item_id: Optional[str] = None


@dataclass
class Room:
    """Full state of one session."""

    code: str
    players: list[Player] = field(default_factory=list)  # join order
    items: list[Item] = field(default_factory=list)  # submission order
    ownership: dict[str, str] = field(default_factory=dict)  # item id -> holder id
    steal_count: dict[str, int] = field(default_factory=dict)  # item id -> steals
    turn_order: list[str] = field(default_factory=list)
    turn_slots: dict[str, int] = field(default_factory=dict)  # player id -> slot in turn_order
    turn_index: int = 0
    phase: Phase = Phase.LOBBY
    last_stolen_item_id: Optional[str] = None
    last_stolen_from_player_id: Optional[str] = None
    revealed_items: list[RevealRecord] = field(default_factory=list)
    reveal_index: int = 0
    host_id: Optional[str] = None
    lock_threshold: int = STEAL_LOCK_THRESHOLD
    seed: Optional[int] = None
    moves: int = 0  # accepted claims and steals
    events: list[Event] = field(default_factory=list)

    def get_player(self, player_id: str) -> Optional[Player]:
        """Return player by id or None."""
        for p in self.players:
            if p.id == player_id:
                return p
        return None

    def get_item(self, item_id: str) -> Optional[Item]:
        """Return item by id or None."""
        for item in self.items:
            if item.id == item_id:
                return item
        return None

    def item_submitted_by(self, player_id: str) -> Optional[Item]:
        """Return the item this player created, if any."""
        for item in self.items:
            if item.creator_id == player_id:
                return item
        return None

    def item_held_by(self, player_id: str) -> Optional[str]:
        """Return the id of the item this player currently holds, or None."""
        for item_id, owner_id in self.ownership.items():
            if owner_id == player_id:
                return item_id
        return None

    def pool(self) -> list[str]:
        """Ids of unowned items, in submission order."""
        return [item.id for item in self.items if item.id not in self.ownership]

    def current_player_id(self) -> Optional[str]:
        """Whose turn it is, or None outside the active phase."""
        if self.phase != Phase.ACTIVE or not self.turn_order:
            return None
        return self.turn_order[self.turn_index]

    def is_locked(self, item_id: str) -> bool:
        return self.steal_count.get(item_id, 0) >= self.lock_threshold

    def connected_players(self) -> list[Player]:
        return [p for p in self.players if p.connected]
