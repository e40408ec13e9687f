"""Turn engine: pure room transitions, no I/O.

Every transition validates against the given room, then works on a deep copy
and returns it. A rejected event raises before anything is copied, so the
stored room is never left half-updated.
"""

import copy
import dataclasses
import logging
import random
from typing import Iterable, Optional

from exchange.errors import (
    DuplicateSubmission,
    IncompleteSubmissions,
    InsufficientPlayers,
    ItemLocked,
    ItemNotAvailable,
    NotAuthorized,
    NotYourTurn,
    PlayerNotFound,
    PoolEmpty,
    RoomNotJoinable,
    StealBackForbidden,
    TargetHasNoItem,
    WrongPhase,
)
from exchange.ids import new_id
from exchange.rules import MIN_PLAYERS, STEAL_LOCK_THRESHOLD, Phase
from exchange.state import Event, EventKind, Item, Player, Room

logger = logging.getLogger(__name__)


def _emit(room: Room, event: Event) -> None:
    """Append event to room (mutates room)."""
    room.events.append(event)


def _replace_player(room: Room, player_id: str, **changes) -> None:
    """Swap in an updated copy of one player (mutates room)."""
    room.players = [
        dataclasses.replace(p, **changes) if p.id == player_id else p
        for p in room.players
    ]


def _require_player(room: Room, player_id: str) -> Player:
    player = room.get_player(player_id)
    if player is None:
        raise PlayerNotFound(player_id)
    return player


def _require_phase(room: Room, phase: Phase, action: str) -> None:
    if room.phase != phase:
        raise WrongPhase(f"{action} is only allowed in the {phase.value} phase (room is {room.phase.value})")


def _require_turn(room: Room, player_id: str) -> None:
    if room.current_player_id() != player_id:
        raise NotYourTurn()


def create_room(
    code: str,
    lock_threshold: int = STEAL_LOCK_THRESHOLD,
    seed: Optional[int] = None,
) -> Room:
    """Create an empty room in the lobby phase."""
    return Room(code=code, lock_threshold=lock_threshold, seed=seed)


def join_room(
    room: Room,
    display_name: str,
    avatar_ref: Optional[str] = None,
    player_id: Optional[str] = None,
) -> tuple[Room, str]:
    """
    Add a player to the lobby, or reconnect a known one.

    A `player_id` already on the roster is treated as a reconnect and is
    accepted in any phase. Returns (new room, player id).
    """
    if player_id is not None and room.get_player(player_id) is not None:
        return reconnect_player(room, player_id), player_id
    if room.phase != Phase.LOBBY:
        raise RoomNotJoinable()

    room = copy.deepcopy(room)
    new_player_id = new_id()
    is_host = not room.players
    room.players.append(
        Player(
            id=new_player_id,
            display_name=display_name,
            avatar_ref=avatar_ref,
            connected=True,
            is_host=is_host,
        )
    )
    if is_host:
        room.host_id = new_player_id
    _emit(
        room,
        Event(
            kind=EventKind.PLAYER_JOINED,
            phase=room.phase,
            message=f"{display_name} joined.",
            player_id=new_player_id,
        ),
    )
    return room, new_player_id


def reconnect_player(room: Room, player_id: str) -> Room:
    """Mark a known player as connected again. Returns new room."""
    player = _require_player(room, player_id)
    room = copy.deepcopy(room)
    _replace_player(room, player_id, connected=True)
    _emit(
        room,
        Event(
            kind=EventKind.PLAYER_RECONNECTED,
            phase=room.phase,
            message=f"{player.display_name} reconnected.",
            player_id=player_id,
        ),
    )
    return room


def disconnect_player(room: Room, player_id: str) -> Room:
    """
    Mark a player as disconnected. Returns new room.

    The player keeps their roster slot, turn slot and held item.
    """
    player = _require_player(room, player_id)
    room = copy.deepcopy(room)
    _replace_player(room, player_id, connected=False)
    _emit(
        room,
        Event(
            kind=EventKind.PLAYER_DISCONNECTED,
            phase=room.phase,
            message=f"{player.display_name} disconnected.",
            player_id=player_id,
        ),
    )
    return room


def _set_host(room: Room, new_host_id: str) -> Room:
    new_host = _require_player(room, new_host_id)
    room = copy.deepcopy(room)
    previous = room.host_id
    if previous is not None:
        _replace_player(room, previous, is_host=False)
    _replace_player(room, new_host_id, is_host=True)
    room.host_id = new_host_id
    _emit(
        room,
        Event(
            kind=EventKind.HOST_CHANGED,
            phase=room.phase,
            message=f"{new_host.display_name} is now the host.",
            player_id=new_host_id,
            target_id=previous,
        ),
    )
    return room


def transfer_host(room: Room, player_id: str, new_host_id: str) -> Room:
    """Hand host authority to another player. Only the host may do this."""
    _require_player(room, player_id)
    if room.host_id != player_id:
        raise NotAuthorized()
    return _set_host(room, new_host_id)


def fail_over_host(room: Room) -> Room:
    """
    Move host authority to the earliest-joined connected player when the
    host is disconnected. Returns the room unchanged when the host is still
    connected or nobody is.
    """
    host = room.get_player(room.host_id) if room.host_id else None
    if host is not None and host.connected:
        return room
    candidates = room.connected_players()
    if not candidates:
        return room
    return _set_host(room, candidates[0].id)


def submit_item(
    room: Room,
    player_id: str,
    title: str,
    image_ref: Optional[str] = None,
) -> tuple[Room, str]:
    """Store a player's concealed item. Returns (new room, item id)."""
    player = _require_player(room, player_id)
    _require_phase(room, Phase.LOBBY, "Submitting an item")
    if room.item_submitted_by(player_id) is not None:
        raise DuplicateSubmission()

    room = copy.deepcopy(room)
    item_id = new_id()
    room.items.append(Item(id=item_id, title=title, image_ref=image_ref, creator_id=player_id))
    _emit(
        room,
        Event(
            kind=EventKind.ITEM_SUBMITTED,
            phase=room.phase,
            message=f"{player.display_name} wrapped a gift.",
            player_id=player_id,
        ),
    )
    return room, item_id


def shuffle_turn_order(player_ids: Iterable[str], rng: random.Random) -> list[str]:
    """Uniform permutation of player_ids (Fisher-Yates via Random.shuffle)."""
    order = list(player_ids)
    rng.shuffle(order)
    return order


def start_game(
    room: Room,
    player_id: str,
    seed: Optional[int] = None,
    min_players: int = MIN_PLAYERS,
) -> Room:
    """
    Move the room from lobby to active. Host only.

    Shuffles the turn order with `seed` (or the room's seed) so tests can
    assert an exact order.
    """
    _require_player(room, player_id)
    if room.host_id != player_id:
        raise NotAuthorized()
    _require_phase(room, Phase.LOBBY, "Starting the game")
    if len(room.players) < min_players:
        raise InsufficientPlayers(f"Need at least {min_players} players, got {len(room.players)}")
    submitters = [p.id for p in room.players if room.item_submitted_by(p.id) is not None]
    if len(submitters) != len(room.players):
        raise IncompleteSubmissions(
            f"{len(room.players) - len(submitters)} player(s) have not submitted an item"
        )

    room = copy.deepcopy(room)
    if seed is not None:
        room.seed = seed
    room.turn_order = shuffle_turn_order(submitters, random.Random(room.seed))
    room.turn_slots = {pid: slot for slot, pid in enumerate(room.turn_order)}
    room.turn_index = 0
    room.ownership = {}
    room.steal_count = {item.id: 0 for item in room.items}
    room.phase = Phase.ACTIVE
    _emit(
        room,
        Event(
            kind=EventKind.GAME_STARTED,
            phase=Phase.ACTIVE,
            message=f"Game started with {len(room.turn_order)} players.",
            player_id=room.turn_order[0],
        ),
    )
    _emit(
        room,
        Event(
            kind=EventKind.PHASE_CHANGED,
            phase=Phase.ACTIVE,
            message="Gift exchange is on.",
        ),
    )
    logger.info("Room %s started with %d players", room.code, len(room.turn_order))
    return room


def players_without_item(room: Room) -> list[str]:
    """Players in turn order who hold nothing."""
    held_by = set(room.ownership.values())
    return [pid for pid in room.turn_order if pid not in held_by]


def stealable_items(room: Room, player_id: str) -> list[str]:
    """Ids of items player_id could legally steal right now."""
    return [
        item_id
        for item_id, owner_id in room.ownership.items()
        if owner_id != player_id
        and item_id != room.last_stolen_item_id
        and not room.is_locked(item_id)
    ]


def has_legal_move(room: Room, player_id: str) -> bool:
    """True if player_id could claim from the pool or steal something."""
    return bool(room.pool()) or bool(stealable_items(room, player_id))


def _enter_reveal(room: Room) -> None:
    room.phase = Phase.REVEAL
    room.reveal_index = 0
    room.revealed_items = []
    _emit(
        room,
        Event(
            kind=EventKind.PHASE_CHANGED,
            phase=Phase.REVEAL,
            message="Every player holds a gift. Time to unwrap.",
        ),
    )
    logger.info("Room %s entered reveal after %d moves", room.code, room.moves)


def _advance_turn(room: Room) -> None:
    """
    Pass the turn to the next player in turn order who holds nothing, or end
    the active phase when everyone holds an item (mutates room).
    """
    waiting = set(players_without_item(room))
    if not waiting:
        _enter_reveal(room)
        return
    n = len(room.turn_order)
    for step in range(1, n + 1):
        slot = (room.turn_index + step) % n
        if room.turn_order[slot] in waiting:
            room.turn_index = slot
            return
    _enter_reveal(room)


def _move_rng(room: Room) -> random.Random:
    if room.seed is None:
        return random.Random()
    return random.Random(room.seed + room.moves)


def claim_from_pool(room: Room, player_id: str, item_id: Optional[str] = None) -> Room:
    """
    Take an unowned item on one's turn. Returns new room.

    Without `item_id` a pool item is picked uniformly at random.
    """
    player = _require_player(room, player_id)
    _require_phase(room, Phase.ACTIVE, "Claiming an item")
    _require_turn(room, player_id)
    pool = room.pool()
    if not pool:
        raise PoolEmpty()
    if item_id is None:
        item_id = _move_rng(room).choice(pool)
    elif item_id not in pool:
        raise ItemNotAvailable(f"Item {item_id} is not in the pool")

    room = copy.deepcopy(room)
    room.ownership[item_id] = player_id
    room.last_stolen_item_id = None
    room.last_stolen_from_player_id = None
    room.moves += 1
    _emit(
        room,
        Event(
            kind=EventKind.ITEM_CLAIMED,
            phase=Phase.ACTIVE,
            message=f"{player.display_name} took a gift from the pool.",
            player_id=player_id,
            item_id=item_id,
        ),
    )
    logger.debug("Room %s: %s claimed %s", room.code, player_id, item_id)
    _advance_turn(room)
    return room


def steal_item(room: Room, player_id: str, target_player_id: str) -> Room:
    """
    Take the item another player holds. Returns new room.

    The victim acts next unless they have no legal move, in which case the
    turn advances normally.
    """
    thief = _require_player(room, player_id)
    _require_phase(room, Phase.ACTIVE, "Stealing an item")
    _require_turn(room, player_id)
    victim = _require_player(room, target_player_id)
    item_id = room.item_held_by(target_player_id) if target_player_id != player_id else None
    if item_id is None:
        raise TargetHasNoItem()
    if item_id == room.last_stolen_item_id:
        raise StealBackForbidden()
    if room.is_locked(item_id):
        raise ItemLocked(f"Item {item_id} has been stolen {room.steal_count[item_id]} times and is locked")

    room = copy.deepcopy(room)
    room.ownership[item_id] = player_id
    room.steal_count[item_id] = room.steal_count.get(item_id, 0) + 1
    room.last_stolen_item_id = item_id
    room.last_stolen_from_player_id = target_player_id
    room.moves += 1
    _emit(
        room,
        Event(
            kind=EventKind.ITEM_STOLEN,
            phase=Phase.ACTIVE,
            message=f"{thief.display_name} stole a gift from {victim.display_name}.",
            player_id=player_id,
            target_id=target_player_id,
            item_id=item_id,
        ),
    )
    logger.debug("Room %s: %s stole %s from %s", room.code, player_id, item_id, target_player_id)
    if has_legal_move(room, target_player_id):
        room.turn_index = room.turn_slots[target_player_id]
    else:
        _advance_turn(room)
    return room
