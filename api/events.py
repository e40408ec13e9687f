"""Session event models: the closed set of inbound events and outbound messages."""

from enum import Enum
from typing import Annotated, Any, Literal, Optional, Union

from pydantic import BaseModel, Field, TypeAdapter, ValidationError

from exchange.errors import ExchangeError, MalformedEvent
from exchange.state import Event

# Payload limits (avoid abuse)
MAX_ROOM_CODE_LENGTH = 12
MAX_DISPLAY_NAME_LENGTH = 50
MAX_TITLE_LENGTH = 120
MAX_AVATAR_REF_LENGTH = 2048
MAX_IMAGE_REF_LENGTH = 10_000_000  # data URLs of captured photos


class EventType(str, Enum):
    """Inbound event types."""

    CREATE_ROOM = "create_room"
    JOIN_ROOM = "join_room"
    SUBMIT_ITEM = "submit_item"
    START_GAME = "start_game"
    CLAIM_FROM_POOL = "claim_from_pool"
    STEAL_ITEM = "steal_item"
    REVEAL_NEXT = "reveal_next"
    TRANSFER_HOST = "transfer_host"
    REQUEST_STATE = "request_state"
    DISCONNECT = "disconnect"


class OutboundType(str, Enum):
    """Outbound message types."""

    ROOM_CREATED = "room_created"
    JOINED = "joined"
    ACK = "ack"
    REVEALED = "revealed"
    STATE = "state"
    ROOM_UPDATE = "room_update"
    EVENT = "event"
    ERROR = "error"


class CreateRoomEvent(BaseModel):
    type: Literal["create_room"] = "create_room"


class JoinRoomEvent(BaseModel):
    """Join a room, or reconnect when player_id was issued by an earlier join."""

    type: Literal["join_room"] = "join_room"
    room_code: str = Field(..., min_length=1, max_length=MAX_ROOM_CODE_LENGTH)
    display_name: str = Field(..., min_length=1, max_length=MAX_DISPLAY_NAME_LENGTH)
    avatar_ref: Optional[str] = Field(default=None, max_length=MAX_AVATAR_REF_LENGTH)
    player_id: Optional[str] = Field(default=None, description="Previously issued id, for reconnects")


class SubmitItemEvent(BaseModel):
    type: Literal["submit_item"] = "submit_item"
    title: str = Field(..., min_length=1, max_length=MAX_TITLE_LENGTH)
    image_ref: Optional[str] = Field(default=None, max_length=MAX_IMAGE_REF_LENGTH)


class StartGameEvent(BaseModel):
    type: Literal["start_game"] = "start_game"
    seed: Optional[int] = Field(default=None, description="Fixes the turn order shuffle")


class ClaimFromPoolEvent(BaseModel):
    type: Literal["claim_from_pool"] = "claim_from_pool"
    item_id: Optional[str] = Field(default=None, description="Pool item to take; random if omitted")


class StealItemEvent(BaseModel):
    type: Literal["steal_item"] = "steal_item"
    target_player_id: str = Field(..., min_length=1)


class RevealNextEvent(BaseModel):
    type: Literal["reveal_next"] = "reveal_next"


class TransferHostEvent(BaseModel):
    type: Literal["transfer_host"] = "transfer_host"
    new_host_id: str = Field(..., min_length=1)


class RequestStateEvent(BaseModel):
    type: Literal["request_state"] = "request_state"


class DisconnectEvent(BaseModel):
    type: Literal["disconnect"] = "disconnect"


InboundEvent = Annotated[
    Union[
        CreateRoomEvent,
        JoinRoomEvent,
        SubmitItemEvent,
        StartGameEvent,
        ClaimFromPoolEvent,
        StealItemEvent,
        RevealNextEvent,
        TransferHostEvent,
        RequestStateEvent,
        DisconnectEvent,
    ],
    Field(discriminator="type"),
]

_inbound_adapter = TypeAdapter(InboundEvent)


def parse_event(data: Union[str, bytes, dict[str, Any]]) -> InboundEvent:
    """
    Parse a raw event (JSON text or decoded dict) into its event model.

    Raises MalformedEvent for unknown types, missing fields or bad JSON.
    """
    try:
        if isinstance(data, (str, bytes)):
            return _inbound_adapter.validate_json(data)
        return _inbound_adapter.validate_python(data)
    except ValidationError as e:
        problems = "; ".join(
            f"{'.'.join(str(part) for part in err['loc']) or 'event'}: {err['msg']}"
            for err in e.errors()
        )
        raise MalformedEvent(problems or "Invalid event")


def error_message(error: ExchangeError) -> dict[str, Any]:
    """Reply sent only to the caller whose event was rejected."""
    return {"type": OutboundType.ERROR.value, "code": error.code, "message": error.message}


def event_message(event: Event) -> dict[str, Any]:
    """Broadcast form of one room event."""
    return {
        "type": OutboundType.EVENT.value,
        "event": {
            "kind": event.kind.value,
            "phase": event.phase.value,
            "message": event.message,
            "player_id": event.player_id,
            "target_id": event.target_id,
            "item_id": event.item_id,
        },
    }


def state_message(state: dict[str, Any], kind: OutboundType = OutboundType.ROOM_UPDATE) -> dict[str, Any]:
    """Projected room view, wrapped for the wire."""
    return {"type": kind.value, "state": state}
