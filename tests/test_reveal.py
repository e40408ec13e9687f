"""Tests for the reveal sequencer."""

import pytest

from exchange.engine import claim_from_pool, create_room, join_room, start_game, steal_item, submit_item
from exchange.errors import AlreadyFinished, WrongPhase
from exchange.reveal import reveal_next, reveal_order
from exchange.rules import Phase
from exchange.state import EventKind


def _finished_trading(seed=5):
    """Three players trade to the reveal phase with one steal along the way."""
    room = create_room("REVEAL")
    ids, items = {}, {}
    for name in ("A", "B", "C"):
        room, pid = join_room(room, name)
        room, item_id = submit_item(room, pid, f"gift-{name}", f"img-{name}")
        ids[name], items[name] = pid, item_id
    room = start_game(room, ids["A"], seed=seed)
    order = list(room.turn_order)
    first, second, third = order
    room = claim_from_pool(room, first, items["A"])
    room = steal_item(room, second, first)
    room = claim_from_pool(room, first, items["B"])
    room = claim_from_pool(room, third, items["C"])
    assert room.phase == Phase.REVEAL
    return room, ids, items


def test_reveal_order_follows_turn_order_of_owners():
    room, _, _ = _finished_trading()
    order = reveal_order(room)
    owners = [room.ownership[item_id] for item_id in order]
    assert owners == room.turn_order


def test_reveal_order_deterministic_across_replays():
    first, _, _ = _finished_trading(seed=9)
    second, _, _ = _finished_trading(seed=9)

    def owner_names(room):
        return [room.get_player(room.ownership[i]).display_name for i in reveal_order(room)]

    assert owner_names(first) == owner_names(second)

    def replay(room):
        names = {p.id: p.display_name for p in room.players}
        shown = []
        for _ in range(3):
            room, record = reveal_next(room)
            shown.append((record.title, names[record.owner_id], names[record.creator_id]))
        return shown

    assert replay(first) == replay(second)


def test_reveal_sequence_ends_finished():
    room, ids, items = _finished_trading()
    seen = []
    for i in range(3):
        room, record = reveal_next(room)
        seen.append(record)
        assert room.reveal_index == i + 1
        assert room.get_item(record.item_id).revealed
    assert room.phase == Phase.FINISHED
    assert [r.item_id for r in room.revealed_items] == [r.item_id for r in seen]
    assert {r.creator_id for r in seen} == set(ids.values())
    assert {r.title for r in seen} == {"gift-A", "gift-B", "gift-C"}
    assert room.events[-1].kind == EventKind.GAME_FINISHED
    with pytest.raises(AlreadyFinished):
        reveal_next(room)


def test_reveal_record_matches_final_owner():
    room, _, items = _finished_trading()
    room, record = reveal_next(room)
    assert record.owner_id == room.ownership[record.item_id]
    assert record.image_ref == room.get_item(record.item_id).image_ref


def test_reveal_before_trading_ends():
    room = create_room("EARLY")
    with pytest.raises(WrongPhase):
        reveal_next(room)


def test_reveal_does_not_mutate_input():
    room, _, _ = _finished_trading()
    after, _ = reveal_next(room)
    assert room.reveal_index == 0
    assert room.revealed_items == []
    assert not any(item.revealed for item in room.items)
    assert after.reveal_index == 1
