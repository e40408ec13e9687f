"""Pydantic request/response models for the API, and the player-facing room view."""

from pydantic import BaseModel, Field

from api.events import (
    MAX_AVATAR_REF_LENGTH,
    MAX_DISPLAY_NAME_LENGTH,
    ClaimFromPoolEvent,
    DisconnectEvent,
    RevealNextEvent,
    StartGameEvent,
    StealItemEvent,
    SubmitItemEvent,
    TransferHostEvent,
)
from exchange.engine import stealable_items
from exchange.rules import DISCLOSED_PHASES
from exchange.state import Room


class PlayerRequest(BaseModel):
    """Identifies the acting player for HTTP calls (the WebSocket binds this on join)."""

    player_id: str = Field(..., min_length=1)


class JoinRequest(BaseModel):
    """Body for POST /rooms/{code}/join. Send player_id to rejoin after a drop."""

    display_name: str = Field(..., min_length=1, max_length=MAX_DISPLAY_NAME_LENGTH)
    avatar_ref: str | None = Field(default=None, max_length=MAX_AVATAR_REF_LENGTH)
    player_id: str | None = None


class SubmitItemRequest(SubmitItemEvent, PlayerRequest):
    """Body for POST /rooms/{code}/items."""


class StartGameRequest(StartGameEvent, PlayerRequest):
    """Body for POST /rooms/{code}/start."""


class ClaimRequest(ClaimFromPoolEvent, PlayerRequest):
    """Body for POST /rooms/{code}/claim."""


class StealRequest(StealItemEvent, PlayerRequest):
    """Body for POST /rooms/{code}/steal."""


class RevealRequest(RevealNextEvent, PlayerRequest):
    """Body for POST /rooms/{code}/reveal."""


class TransferHostRequest(TransferHostEvent, PlayerRequest):
    """Body for POST /rooms/{code}/host."""


class DisconnectRequest(DisconnectEvent, PlayerRequest):
    """Body for POST /rooms/{code}/disconnect."""


class RoomCheckResponse(BaseModel):
    """Answer to GET /rooms/{code}: whether a room can be found and its phase."""

    exists: bool
    phase: str | None = None


class PlayerPublic(BaseModel):
    id: str
    display_name: str
    avatar_ref: str | None = None
    connected: bool
    is_host: bool
    has_submitted: bool
    holding_item_id: str | None = None


class PoolItemPublic(BaseModel):
    """Unclaimed item: always wrapped."""

    id: str
    wrapped: bool = True


class HeldItemPublic(BaseModel):
    """Item in a player's hands. Contents only shown once revealed."""

    item_id: str
    owner_id: str
    steal_count: int
    locked: bool
    stealable: bool = Field(default=False, description="True if the current player may steal it now")
    wrapped: bool
    title: str | None = None
    image_ref: str | None = None
    creator_id: str | None = Field(default=None, description="Only set once contents are public")


class OwnSubmissionPublic(BaseModel):
    """The viewer's own submitted item, visible to them before reveal."""

    item_id: str
    title: str
    image_ref: str | None = None


class RevealRecordPublic(BaseModel):
    item_id: str
    title: str
    image_ref: str | None = None
    owner_id: str
    owner_name: str
    creator_id: str
    creator_name: str


class RoomView(BaseModel):
    """What one player is allowed to see of a room."""

    code: str
    phase: str
    viewer_id: str | None = None
    host_id: str | None = None
    players: list[PlayerPublic]
    pool: list[PoolItemPublic]
    pool_size: int
    holdings: list[HeldItemPublic]
    total_items: int
    turn_order: list[str]
    turn_index: int
    current_player_id: str | None = None
    last_stolen_item_id: str | None = None
    last_stolen_from_player_id: str | None = None
    steal_lock_threshold: int
    my_submission: OwnSubmissionPublic | None = None
    revealed_items: list[RevealRecordPublic] = Field(default_factory=list)
    reveal_index: int = 0


def room_to_public(
    room: Room,
    viewer_id: str | None = None,
    show_own_submission: bool = True,
) -> RoomView:
    """
    Build the view of `room` for `viewer_id`.

    Titles, images and creators stay hidden until the reveal phase; with
    `show_own_submission` the viewer also sees the item they submitted.
    """
    disclosed = room.phase in DISCLOSED_PHASES
    holder_of = {owner_id: item_id for item_id, owner_id in room.ownership.items()}
    current = room.current_player_id()
    can_steal = set(stealable_items(room, current)) if current else set()

    players_public = [
        PlayerPublic(
            id=p.id,
            display_name=p.display_name,
            avatar_ref=p.avatar_ref,
            connected=p.connected,
            is_host=p.id == room.host_id,
            has_submitted=room.item_submitted_by(p.id) is not None,
            holding_item_id=holder_of.get(p.id),
        )
        for p in room.players
    ]

    holdings_public = []
    for item in room.items:
        owner_id = room.ownership.get(item.id)
        if owner_id is None:
            continue
        holdings_public.append(
            HeldItemPublic(
                item_id=item.id,
                owner_id=owner_id,
                steal_count=room.steal_count.get(item.id, 0),
                locked=room.is_locked(item.id),
                stealable=item.id in can_steal,
                wrapped=not disclosed,
                title=item.title if disclosed else None,
                image_ref=item.image_ref if disclosed else None,
                creator_id=item.creator_id if disclosed else None,
            )
        )

    my_submission = None
    if viewer_id is not None and show_own_submission:
        own = room.item_submitted_by(viewer_id)
        if own is not None:
            my_submission = OwnSubmissionPublic(item_id=own.id, title=own.title, image_ref=own.image_ref)

    names = {p.id: p.display_name for p in room.players}
    revealed_public = [
        RevealRecordPublic(
            item_id=r.item_id,
            title=r.title,
            image_ref=r.image_ref,
            owner_id=r.owner_id,
            owner_name=names.get(r.owner_id, "Unknown"),
            creator_id=r.creator_id,
            creator_name=names.get(r.creator_id, "Unknown"),
        )
        for r in room.revealed_items
    ]

    pool = room.pool()
    return RoomView(
        code=room.code,
        phase=room.phase.value,
        viewer_id=viewer_id,
        host_id=room.host_id,
        players=players_public,
        pool=[PoolItemPublic(id=item_id) for item_id in pool],
        pool_size=len(pool),
        holdings=holdings_public,
        total_items=len(room.items),
        turn_order=list(room.turn_order),
        turn_index=room.turn_index,
        current_player_id=current,
        last_stolen_item_id=room.last_stolen_item_id,
        last_stolen_from_player_id=room.last_stolen_from_player_id,
        steal_lock_threshold=room.lock_threshold,
        my_submission=my_submission,
        revealed_items=revealed_public,
        reveal_index=room.reveal_index,
    )
