"""FastAPI app: HTTP routes and a WebSocket endpoint over the session service."""

import logging
from collections import defaultdict
from typing import Any, Optional

from fastapi import FastAPI, Request, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from api.events import (
    CreateRoomEvent,
    DisconnectEvent,
    InboundEvent,
    JoinRoomEvent,
    error_message,
    parse_event,
)
from api.models import (
    ClaimRequest,
    DisconnectRequest,
    JoinRequest,
    RevealRequest,
    RoomCheckResponse,
    RoomView,
    StartGameRequest,
    StealRequest,
    SubmitItemRequest,
    TransferHostRequest,
)
from api.session import Outcome, SessionContext, SessionService
from exchange.config import Settings, load_settings
from exchange.errors import ExchangeError
from exchange.registry import RoomRegistry

logger = logging.getLogger(__name__)

# Error code -> HTTP status; anything not listed is a state conflict (409)
ERROR_STATUS = {
    "ROOM_NOT_FOUND": 404,
    "PLAYER_NOT_FOUND": 404,
    "NOT_AUTHORIZED": 403,
    "NOT_YOUR_TURN": 403,
    "NOT_IN_ROOM": 403,
    "MALFORMED_EVENT": 422,
}


class ConnectionManager:
    """Tracks which WebSockets belong to which (room, player) and sends to them."""

    def __init__(self):
        self._sockets: dict[tuple[str, str], set[WebSocket]] = defaultdict(set)
        self._bound: dict[WebSocket, tuple[str, str]] = {}

    def connect(self, websocket: WebSocket, room_code: str, player_id: str) -> Optional[tuple[str, str]]:
        """Bind a socket to a player. Returns the previous binding if that player has no sockets left."""
        key = (room_code, player_id)
        previous = self.disconnect(websocket)
        self._sockets[key].add(websocket)
        self._bound[websocket] = key
        logger.info("Player %s connected to room %s", player_id, room_code)
        return previous if previous != key else None

    def disconnect(self, websocket: WebSocket) -> Optional[tuple[str, str]]:
        """Unbind a socket. Returns its (room, player) if that player has no sockets left."""
        key = self._bound.pop(websocket, None)
        if key is None:
            return None
        sockets = self._sockets.get(key)
        if sockets is not None:
            sockets.discard(websocket)
            if sockets:
                return None
            del self._sockets[key]
        return key

    def connection_count(self) -> int:
        return len(self._bound)

    async def deliver(self, outcome: Outcome) -> None:
        """Send every delivery of an outcome to the target player's sockets."""
        if not outcome.room_code:
            return
        for delivery in outcome.deliveries:
            for websocket in list(self._sockets.get((outcome.room_code, delivery.player_id), ())):
                try:
                    await websocket.send_json(delivery.message)
                except Exception as e:
                    logger.warning("Delivery to %s in room %s failed: %s", delivery.player_id, outcome.room_code, e)
                    self.disconnect(websocket)


def create_app(
    registry: Optional[RoomRegistry] = None,
    settings: Optional[Settings] = None,
) -> FastAPI:
    """Build the app around an explicitly owned registry (a fresh one by default)."""
    settings = settings or load_settings()
    registry = registry or RoomRegistry(
        code_length=settings.room_code_length,
        lock_threshold=settings.steal_lock_threshold,
    )
    sessions = SessionService(registry, settings)
    manager = ConnectionManager()

    app = FastAPI(title="White Elephant API", version="0.1.0")
    app.state.registry = registry
    app.state.sessions = sessions
    app.state.connections = manager

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(ExchangeError)
    async def exchange_error_handler(request: Request, exc: ExchangeError):
        return JSONResponse(status_code=ERROR_STATUS.get(exc.code, 409), content=error_message(exc))

    async def run(room_code: Optional[str], player_id: Optional[str], event: InboundEvent) -> dict[str, Any]:
        outcome = sessions.dispatch(SessionContext(room_code=room_code, player_id=player_id), event)
        await manager.deliver(outcome)
        return outcome.reply

    async def mark_offline(room_code: str, player_id: str) -> None:
        """Last socket of a player closed: tell the room they are gone."""
        try:
            outcome = sessions.dispatch(SessionContext(room_code, player_id), DisconnectEvent())
        except ExchangeError:
            return
        await manager.deliver(outcome)

    @app.get("/health", tags=["System"], summary="Health check")
    def health():
        return {"status": "ok", "rooms": len(registry), "connections": manager.connection_count()}

    @app.post("/rooms", response_model=dict, tags=["Rooms"], summary="Create room")
    async def create_room():
        """Create an empty room. Returns its code."""
        return await run(None, None, CreateRoomEvent())

    @app.get("/rooms", response_model=list[str], tags=["Rooms"], summary="List room codes")
    def list_rooms():
        return registry.codes()

    @app.get("/rooms/{code}", response_model=RoomCheckResponse, tags=["Rooms"], summary="Check room")
    def check_room(code: str):
        """Whether a room exists, and its phase."""
        room = registry.find_room(code)
        if room is None:
            return RoomCheckResponse(exists=False)
        return RoomCheckResponse(exists=True, phase=room.phase.value)

    @app.delete("/rooms/{code}", tags=["Rooms"], summary="Remove room")
    def remove_room(code: str):
        registry.remove_room(code)
        return {"status": "ok"}

    @app.get("/rooms/{code}/state", response_model=RoomView, tags=["Rooms"], summary="Get room view")
    def get_state(code: str, player_id: Optional[str] = None):
        """Room as seen by player_id (or by an onlooker when omitted)."""
        return sessions.view(code, player_id)

    @app.post("/rooms/{code}/join", response_model=dict, tags=["Lobby"], summary="Join or rejoin room")
    async def join(code: str, body: JoinRequest):
        event = JoinRoomEvent(room_code=code, **body.model_dump())
        return await run(code, body.player_id, event)

    @app.post("/rooms/{code}/items", response_model=dict, tags=["Lobby"], summary="Submit item")
    async def submit(code: str, body: SubmitItemRequest):
        return await run(code, body.player_id, body)

    @app.post("/rooms/{code}/start", response_model=dict, tags=["Lobby"], summary="Start game")
    async def start(code: str, body: StartGameRequest):
        return await run(code, body.player_id, body)

    @app.post("/rooms/{code}/host", response_model=dict, tags=["Lobby"], summary="Transfer host")
    async def host(code: str, body: TransferHostRequest):
        return await run(code, body.player_id, body)

    @app.post("/rooms/{code}/claim", response_model=dict, tags=["Turns"], summary="Claim from pool")
    async def claim(code: str, body: ClaimRequest):
        return await run(code, body.player_id, body)

    @app.post("/rooms/{code}/steal", response_model=dict, tags=["Turns"], summary="Steal item")
    async def steal(code: str, body: StealRequest):
        return await run(code, body.player_id, body)

    @app.post("/rooms/{code}/reveal", response_model=dict, tags=["Reveal"], summary="Reveal next item")
    async def reveal(code: str, body: RevealRequest):
        return await run(code, body.player_id, body)

    @app.post("/rooms/{code}/disconnect", response_model=dict, tags=["Lobby"], summary="Mark player offline")
    async def disconnect(code: str, body: DisconnectRequest):
        return await run(code, body.player_id, body)

    @app.websocket("/ws")
    async def websocket_endpoint(websocket: WebSocket):
        """One JSON event per message in; replies and room broadcasts out."""
        await websocket.accept()
        ctx = SessionContext()
        try:
            while True:
                raw = await websocket.receive_text()
                try:
                    event = parse_event(raw)
                    outcome = sessions.dispatch(ctx, event)
                except ExchangeError as e:
                    await websocket.send_json(error_message(e))
                    continue
                if outcome.player_id and (outcome.room_code, outcome.player_id) != (ctx.room_code, ctx.player_id):
                    ctx = SessionContext(room_code=outcome.room_code, player_id=outcome.player_id)
                    left = manager.connect(websocket, ctx.room_code, ctx.player_id)
                else:
                    left = None
                await websocket.send_json(outcome.reply)
                await manager.deliver(outcome)
                if left is not None and left[0] in registry:
                    await mark_offline(*left)
        except WebSocketDisconnect:
            logger.info("WebSocket closed for %s in room %s", ctx.player_id, ctx.room_code)
        finally:
            gone = manager.disconnect(websocket)
            if gone is not None and gone[0] in registry:
                await mark_offline(*gone)

    return app


_settings = load_settings()
logging.basicConfig(level=_settings.log_level)
app = create_app(settings=_settings)

if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8000)
