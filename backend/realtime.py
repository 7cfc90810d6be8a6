"""Room-scoped real-time notifications over WebSockets.

Clients connect to ``/api/ws`` and send ``{"action": "join", "room": "admin"}``
(or ``"leave"``). Server pushes arrive as ``{"event": ..., "data": ...}``.
Workflow code never touches the hub directly; it receives a notifier through
the ``get_notifier`` dependency and only emits after its changes are committed.
"""
import asyncio
import logging
import threading
from typing import Any, Dict, Optional, Protocol, Set

from fastapi import APIRouter, Request, WebSocket, WebSocketDisconnect
from fastapi.encoders import jsonable_encoder

logger = logging.getLogger(__name__)

ADMIN_ROOM = "admin"
ROOM_PREFIXES = ("subevent:", "panel:", "round:", "participant:")


def subevent_room(sub_event_id: int) -> str:
    return f"subevent:{sub_event_id}"


def panel_room(panel_id: int) -> str:
    return f"panel:{panel_id}"


def round_room(round_id: int) -> str:
    return f"round:{round_id}"


def participant_room(participant_id: int) -> str:
    return f"participant:{participant_id}"


def is_valid_room(room: Optional[str]) -> bool:
    if not room:
        return False
    if room == ADMIN_ROOM:
        return True
    return any(room.startswith(prefix) and len(room) > len(prefix) for prefix in ROOM_PREFIXES)


class Notifier(Protocol):
    def emit(self, event: str, data: Any = None, room: Optional[str] = None) -> None:
        ...


class _Connection:
    def __init__(self, websocket: WebSocket, loop: asyncio.AbstractEventLoop):
        self.websocket = websocket
        self.loop = loop
        self.queue: asyncio.Queue = asyncio.Queue()

    def push(self, message: dict) -> None:
        self.loop.call_soon_threadsafe(self.queue.put_nowait, message)


class ConnectionHub:
    def __init__(self):
        self._lock = threading.Lock()
        self._connections: Set[_Connection] = set()
        self._rooms: Dict[str, Set[_Connection]] = {}

    def register(self, websocket: WebSocket) -> _Connection:
        connection = _Connection(websocket, asyncio.get_running_loop())
        with self._lock:
            self._connections.add(connection)
        return connection

    def unregister(self, connection: _Connection) -> None:
        with self._lock:
            self._connections.discard(connection)
            for room in list(self._rooms):
                members = self._rooms[room]
                members.discard(connection)
                if not members:
                    del self._rooms[room]

    def join(self, connection: _Connection, room: str) -> None:
        with self._lock:
            self._rooms.setdefault(room, set()).add(connection)

    def leave(self, connection: _Connection, room: str) -> None:
        with self._lock:
            members = self._rooms.get(room)
            if members:
                members.discard(connection)
                if not members:
                    del self._rooms[room]

    def room_size(self, room: str) -> int:
        with self._lock:
            return len(self._rooms.get(room, ()))

    def emit(self, event: str, data: Any = None, room: Optional[str] = None) -> None:
        message = {"event": event, "data": jsonable_encoder(data) if data is not None else {}}
        with self._lock:
            if room is None:
                targets = list(self._connections)
            else:
                targets = list(self._rooms.get(room, ()))
        for connection in targets:
            try:
                connection.push(message)
            except RuntimeError:
                # Event loop already closed; the socket is going away.
                self.unregister(connection)
        logger.debug("Emitted %s to %s (%d connections)", event, room or "all", len(targets))


def get_notifier(request: Request) -> Notifier:
    return request.app.state.hub


router = APIRouter()


async def _pump(connection: _Connection) -> None:
    while True:
        message = await connection.queue.get()
        await connection.websocket.send_json(message)


@router.websocket("/ws")
async def realtime_socket(websocket: WebSocket):
    hub: ConnectionHub = websocket.app.state.hub
    await websocket.accept()
    connection = hub.register(websocket)
    sender = asyncio.create_task(_pump(connection))
    try:
        while True:
            try:
                payload = await websocket.receive_json()
            except ValueError:
                logger.debug("Ignoring malformed socket frame")
                continue
            action = payload.get("action") if isinstance(payload, dict) else None
            room = payload.get("room") if isinstance(payload, dict) else None
            if action not in {"join", "leave"} or not is_valid_room(room):
                logger.debug("Ignoring socket message %r", payload)
                continue
            if action == "join":
                hub.join(connection, room)
                connection.push({"event": "joined", "room": room})
            else:
                hub.leave(connection, room)
                connection.push({"event": "left", "room": room})
    except WebSocketDisconnect:
        pass
    finally:
        sender.cancel()
        hub.unregister(connection)
