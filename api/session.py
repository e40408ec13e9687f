"""Session service: applies inbound events to rooms and fans out the results.

Transport-agnostic. The HTTP routes and the WebSocket endpoint both call
`SessionService.dispatch`, then send `Outcome.reply` to the caller and each
`Delivery` to the matching player's connections.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Optional

from api.events import (
    ClaimFromPoolEvent,
    CreateRoomEvent,
    DisconnectEvent,
    EventType,
    InboundEvent,
    JoinRoomEvent,
    OutboundType,
    RequestStateEvent,
    RevealNextEvent,
    StartGameEvent,
    StealItemEvent,
    SubmitItemEvent,
    TransferHostEvent,
    event_message,
    state_message,
)
from api.models import RevealRecordPublic, room_to_public
from exchange.config import Settings
from exchange.engine import (
    claim_from_pool,
    disconnect_player,
    fail_over_host,
    join_room,
    start_game,
    steal_item,
    submit_item,
    transfer_host,
)
from exchange.errors import ExchangeError, MalformedEvent, NotInRoom, PlayerNotFound
from exchange.ids import normalize_room_code
from exchange.registry import RoomRegistry
from exchange.reveal import reveal_next
from exchange.rules import Phase
from exchange.state import Event, Room

logger = logging.getLogger(__name__)

Transition = Callable[[Room], tuple[Room, Any]]


@dataclass
class SessionContext:
    """Who is sending events: unset until the connection joins a room."""

    room_code: Optional[str] = None
    player_id: Optional[str] = None


@dataclass
class Delivery:
    """One message for one player of the room."""

    player_id: str
    message: dict[str, Any]


@dataclass
class Outcome:
    """Result of one accepted event."""

    reply: dict[str, Any]
    room_code: Optional[str] = None
    player_id: Optional[str] = None
    deliveries: list[Delivery] = field(default_factory=list)


class SessionService:
    """Event-processing boundary around an injected RoomRegistry."""

    def __init__(self, registry: RoomRegistry, settings: Optional[Settings] = None):
        self.registry = registry
        self.settings = settings or Settings()
        self._handlers: dict[str, Callable[[SessionContext, Any], Outcome]] = {
            EventType.CREATE_ROOM.value: self._create_room,
            EventType.JOIN_ROOM.value: self._join_room,
            EventType.SUBMIT_ITEM.value: self._submit_item,
            EventType.START_GAME.value: self._start_game,
            EventType.CLAIM_FROM_POOL.value: self._claim_from_pool,
            EventType.STEAL_ITEM.value: self._steal_item,
            EventType.REVEAL_NEXT.value: self._reveal_next,
            EventType.TRANSFER_HOST.value: self._transfer_host,
            EventType.REQUEST_STATE.value: self._request_state,
            EventType.DISCONNECT.value: self._disconnect,
        }

    def dispatch(self, ctx: SessionContext, event: InboundEvent) -> Outcome:
        """Apply one event. Raises ExchangeError if it is rejected."""
        handler = self._handlers.get(event.type)
        if handler is None:
            raise MalformedEvent(f"Unknown event type: {event.type}")
        try:
            return handler(ctx, event)
        except ExchangeError as e:
            logger.warning("Rejected %s in room %s from %s: %s", event.type, ctx.room_code, ctx.player_id, e.code)
            raise

    def view(self, room_code: str, viewer_id: Optional[str] = None) -> dict[str, Any]:
        """Projected state of a room for one viewer, as JSON-ready dict."""
        room = self.registry.get_room(room_code)
        return self._project(room, viewer_id)

    def _project(self, room: Room, viewer_id: Optional[str]) -> dict[str, Any]:
        return room_to_public(
            room,
            viewer_id=viewer_id,
            show_own_submission=self.settings.show_own_submission,
        ).model_dump(mode="json")

    def _fan_out(self, room: Room, events: list[Event]) -> list[Delivery]:
        """New events, then a fresh view, for every connected member."""
        deliveries: list[Delivery] = []
        for player in room.connected_players():
            for event in events:
                deliveries.append(Delivery(player.id, event_message(event)))
            deliveries.append(Delivery(player.id, state_message(self._project(room, player.id))))
        return deliveries

    def _apply(self, room_code: str, transition: Transition) -> tuple[Room, Any, list[Delivery]]:
        """Run transition under the room's lock and store its result."""
        with self.registry.lock(room_code):
            room = self.registry.get_room(room_code)
            before = len(room.events)
            new_room, result = transition(room)
            if new_room is room:
                return room, result, []
            self.registry.save(new_room)
        return new_room, result, self._fan_out(new_room, new_room.events[before:])

    @staticmethod
    def _require_session(ctx: SessionContext) -> tuple[str, str]:
        if not ctx.room_code or not ctx.player_id:
            raise NotInRoom()
        return normalize_room_code(ctx.room_code), ctx.player_id

    def _ack(self, code: str, player_id: str, deliveries: list[Delivery], **extra) -> Outcome:
        reply = {"type": OutboundType.ACK.value, **extra}
        return Outcome(reply=reply, room_code=code, player_id=player_id, deliveries=deliveries)

    # ============ Handlers ============

    def _create_room(self, ctx: SessionContext, event: CreateRoomEvent) -> Outcome:
        self.registry.evict_idle(self.settings.room_grace_seconds)
        room = self.registry.create_room()
        return Outcome(reply={"type": OutboundType.ROOM_CREATED.value, "room_code": room.code})

    def _join_room(self, ctx: SessionContext, event: JoinRoomEvent) -> Outcome:
        code = normalize_room_code(event.room_code)
        if not code:
            raise MalformedEvent("room_code: must not be blank")
        if self.settings.auto_create_on_join:
            self.registry.ensure_room(code)
        else:
            self.registry.get_room(code)
        room, player_id, deliveries = self._apply(
            code,
            lambda r: join_room(r, event.display_name, event.avatar_ref, player_id=event.player_id),
        )
        logger.info("Player %s joined room %s", player_id, code)
        reply = {
            "type": OutboundType.JOINED.value,
            "room_code": code,
            "player_id": player_id,
            "state": self._project(room, player_id),
        }
        return Outcome(reply=reply, room_code=code, player_id=player_id, deliveries=deliveries)

    def _submit_item(self, ctx: SessionContext, event: SubmitItemEvent) -> Outcome:
        code, player_id = self._require_session(ctx)
        _, item_id, deliveries = self._apply(
            code, lambda r: submit_item(r, player_id, event.title, event.image_ref)
        )
        return self._ack(code, player_id, deliveries, item_id=item_id)

    def _start_game(self, ctx: SessionContext, event: StartGameEvent) -> Outcome:
        code, player_id = self._require_session(ctx)
        room, _, deliveries = self._apply(
            code,
            lambda r: (start_game(r, player_id, seed=event.seed, min_players=self.settings.min_players), None),
        )
        return self._ack(code, player_id, deliveries, turn_order=list(room.turn_order))

    def _claim_from_pool(self, ctx: SessionContext, event: ClaimFromPoolEvent) -> Outcome:
        code, player_id = self._require_session(ctx)
        room, _, deliveries = self._apply(
            code, lambda r: (claim_from_pool(r, player_id, item_id=event.item_id), None)
        )
        return self._ack(code, player_id, deliveries, item_id=room.item_held_by(player_id), phase=room.phase.value)

    def _steal_item(self, ctx: SessionContext, event: StealItemEvent) -> Outcome:
        code, player_id = self._require_session(ctx)
        room, _, deliveries = self._apply(
            code, lambda r: (steal_item(r, player_id, event.target_player_id), None)
        )
        return self._ack(code, player_id, deliveries, item_id=room.last_stolen_item_id, phase=room.phase.value)

    def _reveal_next(self, ctx: SessionContext, event: RevealNextEvent) -> Outcome:
        code, player_id = self._require_session(ctx)

        def transition(room: Room) -> tuple[Room, Any]:
            if room.get_player(player_id) is None:
                raise PlayerNotFound(player_id)
            return reveal_next(room)

        room, record, deliveries = self._apply(code, transition)
        names = {p.id: p.display_name for p in room.players}
        reveal = RevealRecordPublic(
            item_id=record.item_id,
            title=record.title,
            image_ref=record.image_ref,
            owner_id=record.owner_id,
            owner_name=names.get(record.owner_id, "Unknown"),
            creator_id=record.creator_id,
            creator_name=names.get(record.creator_id, "Unknown"),
        )
        reply = {
            "type": OutboundType.REVEALED.value,
            "reveal": reveal.model_dump(mode="json"),
            "finished": room.phase == Phase.FINISHED,
        }
        return Outcome(reply=reply, room_code=code, player_id=player_id, deliveries=deliveries)

    def _transfer_host(self, ctx: SessionContext, event: TransferHostEvent) -> Outcome:
        code, player_id = self._require_session(ctx)
        _, _, deliveries = self._apply(
            code, lambda r: (transfer_host(r, player_id, event.new_host_id), None)
        )
        return self._ack(code, player_id, deliveries, host_id=event.new_host_id)

    def _request_state(self, ctx: SessionContext, event: RequestStateEvent) -> Outcome:
        code, player_id = self._require_session(ctx)
        room = self.registry.get_room(code)
        if room.get_player(player_id) is None:
            raise PlayerNotFound(player_id)
        reply = state_message(self._project(room, player_id), kind=OutboundType.STATE)
        return Outcome(reply=reply, room_code=code, player_id=player_id)

    def _disconnect(self, ctx: SessionContext, event: DisconnectEvent) -> Outcome:
        code, player_id = self._require_session(ctx)

        def transition(room: Room) -> tuple[Room, Any]:
            player = room.get_player(player_id)
            if player is None:
                raise PlayerNotFound(player_id)
            if not player.connected:
                return room, None
            room = disconnect_player(room, player_id)
            if self.settings.host_failover and room.host_id == player_id:
                room = fail_over_host(room)
            return room, None

        _, _, deliveries = self._apply(code, transition)
        logger.info("Player %s disconnected from room %s", player_id, code)
        return self._ack(code, player_id, deliveries)
