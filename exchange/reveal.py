"""Reveal sequencer: discloses items one at a time once trading is over."""

import copy
import dataclasses
import logging

from exchange.errors import AlreadyFinished, WrongPhase
from exchange.rules import Phase
from exchange.state import Event, EventKind, RevealRecord, Room

logger = logging.getLogger(__name__)


def reveal_order(room: Room) -> list[str]:
    """
    Item ids in the order they are revealed: by final owner's slot in the
    turn order. Depends only on ownership and turn order, so replays of the
    same final state reveal in the same order.
    """
    owned = [item.id for item in room.items if item.id in room.ownership]
    return sorted(owned, key=lambda item_id: room.turn_slots[room.ownership[item_id]])


def reveal_next(room: Room) -> tuple[Room, RevealRecord]:
    """Disclose the next item. Returns (new room, reveal record)."""
    if room.phase == Phase.FINISHED:
        raise AlreadyFinished()
    if room.phase != Phase.REVEAL:
        raise WrongPhase(f"Revealing is only allowed in the reveal phase (room is {room.phase.value})")

    order = reveal_order(room)
    item_id = order[room.reveal_index]
    room = copy.deepcopy(room)
    item = room.get_item(item_id)
    owner_id = room.ownership[item_id]
    record = RevealRecord(
        item_id=item_id,
        title=item.title,
        image_ref=item.image_ref,
        owner_id=owner_id,
        creator_id=item.creator_id,
    )
    room.items = [
        dataclasses.replace(i, revealed=True) if i.id == item_id else i
        for i in room.items
    ]
    room.revealed_items.append(record)
    room.reveal_index += 1
    owner = room.get_player(owner_id)
    room.events.append(
        Event(
            kind=EventKind.ITEM_REVEALED,
            phase=Phase.REVEAL,
            message=f"{owner.display_name} unwrapped: {item.title}",
            player_id=owner_id,
            item_id=item_id,
        )
    )

    if room.reveal_index >= len(order):
        room.phase = Phase.FINISHED
        room.events.append(
            Event(
                kind=EventKind.GAME_FINISHED,
                phase=Phase.FINISHED,
                message="All gifts have been revealed.",
            )
        )
        logger.info("Room %s finished", room.code)
    return room, record
