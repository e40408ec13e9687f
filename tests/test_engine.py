"""Unit tests for the turn engine."""

import pytest

from exchange.engine import (
    claim_from_pool,
    create_room,
    disconnect_player,
    fail_over_host,
    has_legal_move,
    join_room,
    players_without_item,
    start_game,
    steal_item,
    stealable_items,
    submit_item,
    transfer_host,
)
from exchange.errors import (
    DuplicateSubmission,
    IncompleteSubmissions,
    InsufficientPlayers,
    ItemLocked,
    ItemNotAvailable,
    NotAuthorized,
    NotYourTurn,
    PlayerNotFound,
    RoomNotJoinable,
    StealBackForbidden,
    TargetHasNoItem,
    WrongPhase,
)
from exchange.rules import Phase
from exchange.state import EventKind, Room


def _make_lobby(names=("A", "B", "C"), submit=True):
    """Lobby with one player per name; each submits an item titled 'gift-<name>'."""
    room = create_room("TEST01")
    ids: dict[str, str] = {}
    items: dict[str, str] = {}
    for name in names:
        room, pid = join_room(room, name)
        ids[name] = pid
        if submit:
            room, item_id = submit_item(room, pid, f"gift-{name}", f"img-{name}")
            items[name] = item_id
    return room, ids, items


def _force_order(room: Room, order: list[str]) -> Room:
    """Pin the turn order so tests can script whole games."""
    room.turn_order = list(order)
    room.turn_slots = {pid: slot for slot, pid in enumerate(order)}
    room.turn_index = 0
    return room


def _make_active(names=("A", "B", "C"), seed=7):
    room, ids, items = _make_lobby(names)
    room = start_game(room, ids[names[0]], seed=seed)
    room = _force_order(room, [ids[n] for n in names])
    return room, ids, items


def _assert_injective(room: Room):
    holders = list(room.ownership.values())
    assert len(holders) == len(set(holders))


def test_join_first_player_is_host():
    room, ids, _ = _make_lobby(submit=False)
    assert room.host_id == ids["A"]
    assert [p.display_name for p in room.players] == ["A", "B", "C"]
    assert all(p.connected for p in room.players)
    assert room.get_player(ids["A"]).is_host
    assert not room.get_player(ids["B"]).is_host


def test_join_after_start_rejected():
    room, _, _ = _make_active()
    with pytest.raises(RoomNotJoinable):
        join_room(room, "Late")


def test_rejoin_with_known_id_reconnects_mid_game():
    room, ids, _ = _make_active()
    room = disconnect_player(room, ids["B"])
    assert not room.get_player(ids["B"]).connected
    room2, pid = join_room(room, "B again", player_id=ids["B"])
    assert pid == ids["B"]
    assert len(room2.players) == 3
    assert room2.get_player(ids["B"]).connected
    assert room2.events[-1].kind == EventKind.PLAYER_RECONNECTED


def test_submit_twice_rejected():
    room, ids, _ = _make_lobby()
    with pytest.raises(DuplicateSubmission):
        submit_item(room, ids["A"], "another")


def test_submit_after_start_rejected():
    room, ids, _ = _make_lobby(names=("A", "B"))
    room = start_game(room, ids["A"], seed=1)
    with pytest.raises(WrongPhase):
        submit_item(room, ids["A"], "late gift")


def test_submit_unknown_player():
    room, _, _ = _make_lobby()
    with pytest.raises(PlayerNotFound):
        submit_item(room, "nobody", "gift")


def test_start_requires_host():
    room, ids, _ = _make_lobby()
    with pytest.raises(NotAuthorized):
        start_game(room, ids["B"])


def test_start_requires_two_players():
    room, ids, _ = _make_lobby(names=("A",))
    with pytest.raises(InsufficientPlayers):
        start_game(room, ids["A"])


def test_start_requires_all_submissions():
    room, ids, _ = _make_lobby(names=("A", "B"))
    room, _ = join_room(room, "C")
    with pytest.raises(IncompleteSubmissions):
        start_game(room, ids["A"])


def test_start_twice_rejected():
    room, ids, _ = _make_lobby()
    room = start_game(room, ids["A"], seed=3)
    with pytest.raises(WrongPhase):
        start_game(room, ids["A"])


def test_start_turn_order_is_permutation_of_submitters():
    room, ids, items = _make_lobby(names=("A", "B", "C", "D", "E"))
    started = start_game(room, ids["A"], seed=11)
    assert started.phase == Phase.ACTIVE
    assert sorted(started.turn_order) == sorted(ids.values())
    assert len(started.turn_order) == len(set(started.turn_order))
    assert started.turn_index == 0
    assert started.current_player_id() == started.turn_order[0]
    for pid, slot in started.turn_slots.items():
        assert started.turn_order[slot] == pid
    assert started.steal_count == {item_id: 0 for item_id in items.values()}
    assert room.phase == Phase.LOBBY  # input untouched


def test_turn_order_seeded_shuffle_is_reproducible():
    room, ids, _ = _make_lobby(names=("A", "B", "C", "D", "E", "F"))
    first = start_game(room, ids["A"], seed=42).turn_order
    second = start_game(room, ids["A"], seed=42).turn_order
    assert first == second


def test_claim_not_your_turn():
    room, ids, items = _make_active()
    with pytest.raises(NotYourTurn):
        claim_from_pool(room, ids["B"], items["A"])


def test_claim_outside_active_phase():
    room, ids, items = _make_lobby()
    with pytest.raises(WrongPhase):
        claim_from_pool(room, ids["A"], items["A"])


def test_claim_unavailable_item():
    room, ids, items = _make_active()
    room = claim_from_pool(room, ids["A"], items["A"])
    with pytest.raises(ItemNotAvailable):
        claim_from_pool(room, ids["B"], items["A"])
    with pytest.raises(ItemNotAvailable):
        claim_from_pool(room, ids["B"], "no-such-item")


def test_claim_without_item_id_picks_from_pool():
    room, ids, items = _make_active()
    after = claim_from_pool(room, ids["A"])
    held = after.item_held_by(ids["A"])
    assert held in items.values()
    assert held not in after.pool()
    again = claim_from_pool(room, ids["A"])
    assert again.item_held_by(ids["A"]) == held  # seeded


def test_claim_clears_steal_back_memory_and_advances():
    room, ids, items = _make_active()
    room = claim_from_pool(room, ids["A"], items["A"])
    room = steal_item(room, ids["B"], ids["A"])
    assert room.last_stolen_item_id == items["A"]
    room = claim_from_pool(room, ids["A"], items["B"])
    assert room.last_stolen_item_id is None
    assert room.last_stolen_from_player_id is None
    assert room.current_player_id() == ids["C"]


def test_scenario_three_players():
    room, ids, items = _make_active()
    a, b, c = ids["A"], ids["B"], ids["C"]
    x, y, z = items["A"], items["B"], items["C"]

    room = claim_from_pool(room, a, x)
    assert set(room.pool()) == {y, z}
    assert room.current_player_id() == b
    _assert_injective(room)

    room = steal_item(room, b, a)
    assert room.ownership[x] == b
    assert room.last_stolen_item_id == x
    assert room.last_stolen_from_player_id == a
    assert room.steal_count[x] == 1
    assert room.current_player_id() == a
    _assert_injective(room)

    with pytest.raises(StealBackForbidden):
        steal_item(room, a, b)

    room = claim_from_pool(room, a, y)
    assert room.pool() == [z]
    assert room.current_player_id() == c

    room = claim_from_pool(room, c, z)
    assert room.pool() == []
    assert room.phase == Phase.REVEAL
    assert room.reveal_index == 0
    assert room.revealed_items == []
    assert players_without_item(room) == []
    assert room.current_player_id() is None
    _assert_injective(room)
    assert room.events[-1].kind == EventKind.PHASE_CHANGED


def test_steal_from_player_without_item():
    room, ids, items = _make_active()
    room = claim_from_pool(room, ids["A"], items["A"])
    with pytest.raises(TargetHasNoItem):
        steal_item(room, ids["B"], ids["C"])
    with pytest.raises(TargetHasNoItem):
        steal_item(room, ids["B"], ids["B"])
    with pytest.raises(PlayerNotFound):
        steal_item(room, ids["B"], "ghost")


def test_item_locks_after_three_steals():
    names = ("A", "B", "C", "D", "E")
    room, ids, items = _make_active(names=names)
    a, b, c, d, e = (ids[n] for n in names)
    x = items["A"]

    room = claim_from_pool(room, a, x)
    room = steal_item(room, b, a)  # x: 1
    room = claim_from_pool(room, a, items["B"])
    assert room.current_player_id() == c
    room = steal_item(room, c, b)  # x: 2
    room = claim_from_pool(room, b, items["C"])
    assert room.current_player_id() == d
    room = steal_item(room, d, c)  # x: 3
    assert room.steal_count[x] == 3
    assert room.is_locked(x)
    room = claim_from_pool(room, c, items["D"])
    assert room.current_player_id() == e
    assert x not in stealable_items(room, e)

    with pytest.raises(ItemLocked):
        steal_item(room, e, d)
    assert room.steal_count[x] == 3

    room = claim_from_pool(room, e, items["E"])
    assert room.phase == Phase.REVEAL
    assert max(room.steal_count.values()) == 3


def test_custom_lock_threshold():
    room, ids, items = _make_active()
    room.lock_threshold = 1
    room = claim_from_pool(room, ids["A"], items["A"])
    room = steal_item(room, ids["B"], ids["A"])
    room = claim_from_pool(room, ids["A"], items["B"])
    with pytest.raises(ItemLocked):
        steal_item(room, ids["C"], ids["B"])


def test_has_legal_move_when_pool_empty_and_everything_locked():
    room, ids, items = _make_active(names=("A", "B"))
    room.ownership = {items["A"]: ids["A"], items["B"]: ids["B"]}
    room.steal_count = {items["A"]: 3, items["B"]: 3}
    assert not has_legal_move(room, ids["A"])
    room.steal_count[items["B"]] = 0
    assert has_legal_move(room, ids["A"])
    room.last_stolen_item_id = items["B"]
    assert not has_legal_move(room, ids["A"])


def test_steal_skips_victim_without_legal_move():
    room, ids, items = _make_active(names=("T", "U", "V", "W"))
    # Only V and W still have gifts in play; W's is locked and the pool is empty
    room.items = [item for item in room.items if item.id in (items["V"], items["W"])]
    room.ownership = {items["V"]: ids["V"], items["W"]: ids["W"]}
    room.steal_count = {items["W"]: 3}
    assert room.current_player_id() == ids["T"]

    room = steal_item(room, ids["T"], ids["V"])
    assert room.ownership[items["V"]] == ids["T"]
    assert not has_legal_move(room, ids["V"])
    assert room.phase == Phase.ACTIVE
    assert room.current_player_id() == ids["U"]


def test_rejected_move_leaves_room_untouched():
    room, ids, items = _make_active()
    room = claim_from_pool(room, ids["A"], items["A"])
    snapshot_ownership = dict(room.ownership)
    snapshot_events = len(room.events)
    with pytest.raises(NotYourTurn):
        steal_item(room, ids["C"], ids["A"])
    assert room.ownership == snapshot_ownership
    assert len(room.events) == snapshot_events
    assert room.current_player_id() == ids["B"]


def test_disconnect_during_active_keeps_game_state():
    room, ids, items = _make_active()
    room = claim_from_pool(room, ids["A"], items["A"])
    before = (list(room.turn_order), dict(room.ownership), room.phase, room.turn_index)
    room = disconnect_player(room, ids["B"])
    assert (list(room.turn_order), dict(room.ownership), room.phase, room.turn_index) == before
    assert not room.get_player(ids["B"]).connected
    assert room.current_player_id() == ids["B"]  # turn is not skipped
    room, _ = join_room(room, "B", player_id=ids["B"])
    assert room.get_player(ids["B"]).connected
    assert len(room.players) == 3


def test_transfer_host():
    room, ids, _ = _make_lobby()
    with pytest.raises(NotAuthorized):
        transfer_host(room, ids["B"], ids["B"])
    with pytest.raises(PlayerNotFound):
        transfer_host(room, ids["A"], "ghost")
    room = transfer_host(room, ids["A"], ids["C"])
    assert room.host_id == ids["C"]
    assert room.get_player(ids["C"]).is_host
    assert not room.get_player(ids["A"]).is_host
    with pytest.raises(NotAuthorized):
        start_game(room, ids["A"])
    assert start_game(room, ids["C"], seed=1).phase == Phase.ACTIVE


def test_fail_over_host_picks_earliest_connected():
    room, ids, _ = _make_lobby()
    assert fail_over_host(room) is room  # host still connected
    room = disconnect_player(room, ids["A"])
    room = disconnect_player(room, ids["B"])
    room = fail_over_host(room)
    assert room.host_id == ids["C"]
    assert room.events[-1].kind == EventKind.HOST_CHANGED


def test_events_never_carry_titles_before_reveal():
    room, ids, items = _make_active()
    room = claim_from_pool(room, ids["A"], items["A"])
    room = steal_item(room, ids["B"], ids["A"])
    for event in room.events:
        assert "gift-" not in event.message
