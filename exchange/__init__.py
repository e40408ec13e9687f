"""Room state machine for the white elephant gift exchange."""

from exchange.engine import (
    create_room,
    join_room,
    reconnect_player,
    disconnect_player,
    transfer_host,
    fail_over_host,
    submit_item,
    start_game,
    claim_from_pool,
    steal_item,
    has_legal_move,
    players_without_item,
    stealable_items,
)
from exchange.registry import RoomRegistry
from exchange.reveal import reveal_next, reveal_order
from exchange.rules import Phase
from exchange.state import Room, Player, Item, RevealRecord, Event, EventKind

__all__ = [
    "create_room",
    "join_room",
    "reconnect_player",
    "disconnect_player",
    "transfer_host",
    "fail_over_host",
    "submit_item",
    "start_game",
    "claim_from_pool",
    "steal_item",
    "has_legal_move",
    "players_without_item",
    "stealable_items",
    "RoomRegistry",
    "reveal_next",
    "reveal_order",
    "Phase",
    "Room",
    "Player",
    "Item",
    "RevealRecord",
    "Event",
    "EventKind",
]
