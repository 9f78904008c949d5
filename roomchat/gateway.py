"""
Realtime fan-out gateway.

Bridges socket events to the room registry and message log, then broadcasts
the resulting entity to every connection subscribed to the room's channel
(channel key = room id).

Frames in both directions are JSON objects:

    {"event": "<name>", "data": <payload>}

The originating connection always gets a direct reply, either
{"event": "ack", "ack": <event>, "data": ...} or
{"event": "error", "ack": <event>, "data": {"status": ..., "detail": ...}}.
Errors are never broadcast. Broadcast is best-effort: there is no
acknowledgment wait and no replay for clients that were not connected.
"""

import asyncio
import json
import logging
import uuid
from typing import Any, Awaitable, Callable, Dict, List, Optional, Set

from fastapi.websockets import WebSocket, WebSocketDisconnect, WebSocketState
from pydantic import ValidationError as PayloadError

from roomchat.errors import ChatError, Forbidden
from roomchat.logging_utils import connection_id_ctx
from roomchat.messages import MessageLog
from roomchat.metrics import record_broadcast, record_socket_event, socket_connections
from roomchat.models import Message
from roomchat.rooms import RoomRegistry
from roomchat.schemas import (
    CreateMessageRequest,
    DeleteMessagePayload,
    EditMessagePayload,
    JoinRoomPayload,
    MessageResponse,
    ReceiptPayload,
)

logger = logging.getLogger(__name__)


# Outbound broadcast event names
RECEIVE_MESSAGE = "receive-message"
DELIVERY_UPDATE = "message-delivery-update"
READ_UPDATE = "message-read-update"
MESSAGE_EDITED = "message-edited"
MESSAGE_DELETED = "message-deleted"


def serialize_message(message: Message) -> Dict[str, Any]:
    return MessageResponse.model_validate(message).model_dump(mode="json", by_alias=True)


async def safe_send_json(websocket: WebSocket, data: Dict[str, Any]) -> bool:
    """
    Send a frame, reporting failure instead of raising.

    Returns:
        True if the frame was handed to the socket, False otherwise
    """
    if websocket.application_state != WebSocketState.CONNECTED:
        return False
    try:
        await websocket.send_json(data)
        return True
    except (WebSocketDisconnect, RuntimeError) as e:
        logger.debug(f"Failed to send websocket frame: {e}")
        return False


class Connection:
    """One accepted socket and the channels it is subscribed to."""

    def __init__(self, websocket: WebSocket):
        self.id = uuid.uuid4().hex
        self.websocket = websocket
        self.channels: Set[str] = set()

    def __repr__(self) -> str:
        return f"Connection({self.id})"


class RoomGateway:
    """
    Channel registry plus event dispatcher.

    Subscription is independent of room membership unless
    `enforce_membership` is set, in which case join-room requires the
    supplied username to be a member of an existing room.
    """

    def __init__(self, rooms: RoomRegistry, messages: MessageLog, enforce_membership: bool = False):
        self.rooms = rooms
        self.messages = messages
        self.enforce_membership = enforce_membership
        self._channels: Dict[str, Set[Connection]] = {}
        self._connections: Set[Connection] = set()
        self._handlers: Dict[str, Callable[[Connection, Any], Awaitable[Any]]] = {
            "join-room": self._on_join_room,
            "leave-room": self._on_leave_room,
            "send-message": self._on_send_message,
            "message-delivered": self._on_message_delivered,
            "message-read": self._on_message_read,
            "edit-message": self._on_edit_message,
            "delete-message": self._on_delete_message,
        }

    # =========================================================================
    # Connection and channel bookkeeping
    # =========================================================================

    async def connect(self, websocket: WebSocket) -> Connection:
        await websocket.accept()
        connection = Connection(websocket)
        self._connections.add(connection)
        socket_connections.inc()
        logger.info(f"Socket connected: {connection.id}")
        return connection

    def disconnect(self, connection: Connection) -> None:
        for room_id in list(connection.channels):
            self.unsubscribe(connection, room_id)
        if connection not in self._connections:
            return
        self._connections.discard(connection)
        socket_connections.dec()
        logger.info(f"Socket disconnected: {connection.id}")

    def subscribe(self, connection: Connection, room_id: str) -> None:
        if connection not in self._connections:
            logger.debug(f"Ignoring subscribe from dropped socket {connection.id}")
            return
        self._channels.setdefault(room_id, set()).add(connection)
        connection.channels.add(room_id)

    def unsubscribe(self, connection: Connection, room_id: str) -> None:
        subscribers = self._channels.get(room_id)
        if subscribers is not None:
            subscribers.discard(connection)
            if not subscribers:
                del self._channels[room_id]
        connection.channels.discard(room_id)

    def subscribers(self, room_id: str) -> List[Connection]:
        return list(self._channels.get(room_id, ()))

    async def broadcast(self, room_id: str, event: str, data: Any) -> None:
        """
        Push an event to every connection on a room channel concurrently.

        Connections whose send fails are dropped.
        """
        connections = self.subscribers(room_id)
        record_broadcast(event)
        if not connections:
            return

        frame = {"event": event, "data": data}
        results = await asyncio.gather(
            *[safe_send_json(conn.websocket, frame) for conn in connections],
            return_exceptions=True
        )

        failed = [conn for conn, ok in zip(connections, results) if ok is not True]
        for conn in failed:
            logger.warning(f"Dropping unreachable socket {conn.id} from room {room_id}")
            self.disconnect(conn)
        logger.debug(f"Broadcast {event} to {len(connections) - len(failed)} sockets in {room_id}")

    # =========================================================================
    # Event dispatch
    # =========================================================================

    async def handle(self, connection: Connection, frame: Any) -> Dict[str, Any]:
        """
        Run one inbound frame and build the direct reply for its sender.

        Returns:
            ack or error frame; never raises for chat or payload errors
        """
        event = frame.get("event") if isinstance(frame, dict) else None
        handler = self._handlers.get(event) if isinstance(event, str) else None
        if handler is None:
            logger.warning(f"Unknown socket event: {event!r}")
            record_socket_event("unknown", "error")
            return self._error(event, 422, f"Unknown event: {event}")

        try:
            result = await handler(connection, frame.get("data"))
        except ChatError as e:
            logger.info(f"{event} rejected: {e.detail}")
            record_socket_event(event, "error")
            return self._error(event, e.status_code, e.detail)
        except PayloadError as e:
            logger.info(f"{event} payload invalid: {e.error_count()} errors")
            record_socket_event(event, "error")
            return self._error(event, 422, str(e))

        record_socket_event(event, "ok")
        return {"event": "ack", "ack": event, "data": result}

    @staticmethod
    def _error(event: Optional[str], status: int, detail: str) -> Dict[str, Any]:
        return {"event": "error", "ack": event, "data": {"status": status, "detail": detail}}

    async def serve(self, websocket: WebSocket) -> None:
        """Accept a socket and process its frames until it disconnects."""
        connection = await self.connect(websocket)
        token = connection_id_ctx.set(connection.id)
        try:
            while True:
                raw = await websocket.receive_text()
                try:
                    frame = json.loads(raw)
                except json.JSONDecodeError as e:
                    logger.warning(f"Invalid JSON frame: {e}")
                    reply = self._error(None, 422, f"Invalid JSON: {e}")
                else:
                    reply = await self.handle(connection, frame)
                await safe_send_json(websocket, reply)
        except WebSocketDisconnect:
            logger.debug(f"Client closed socket {connection.id}")
        finally:
            self.disconnect(connection)
            connection_id_ctx.reset(token)

    # =========================================================================
    # Event handlers
    # =========================================================================

    async def _on_join_room(self, connection: Connection, data: Any) -> Dict[str, Any]:
        payload = self._channel_payload(data)
        if self.enforce_membership:
            self.rooms.get_room(payload.room_id)
            if not self.rooms.is_member(payload.room_id, payload.username):
                raise Forbidden("Only room members can subscribe to this room")
        self.subscribe(connection, payload.room_id)
        logger.info(f"Client {connection.id} joined room {payload.room_id}")
        return {"event": "joined", "roomId": payload.room_id}

    async def _on_leave_room(self, connection: Connection, data: Any) -> Dict[str, Any]:
        payload = self._channel_payload(data)
        self.unsubscribe(connection, payload.room_id)
        logger.info(f"Client {connection.id} left room {payload.room_id}")
        return {"event": "left", "roomId": payload.room_id}

    @staticmethod
    def _channel_payload(data: Any) -> JoinRoomPayload:
        # Browser clients send the bare room id
        if isinstance(data, str):
            return JoinRoomPayload(room_id=data)
        return JoinRoomPayload.model_validate(data)

    async def _on_send_message(self, connection: Connection, data: Any) -> Dict[str, Any]:
        payload = CreateMessageRequest.model_validate(data)
        message = self.messages.create_message(
            room_id=payload.room_id,
            text=payload.text,
            sender=payload.sender,
            reply_to=payload.reply_to.to_snapshot() if payload.reply_to else None,
        )
        body = serialize_message(message)
        await self.broadcast(message.room_id, RECEIVE_MESSAGE, body)
        return body

    async def _on_message_delivered(self, connection: Connection, data: Any) -> Optional[Dict[str, Any]]:
        payload = ReceiptPayload.model_validate(data)
        message = self.messages.mark_delivered(payload.message_id, payload.room_id, payload.username)
        if message is None:
            return None
        body = serialize_message(message)
        await self.broadcast(payload.room_id, DELIVERY_UPDATE, body)
        return body

    async def _on_message_read(self, connection: Connection, data: Any) -> Optional[Dict[str, Any]]:
        payload = ReceiptPayload.model_validate(data)
        message = self.messages.mark_read(payload.message_id, payload.room_id, payload.username)
        if message is None:
            return None
        body = serialize_message(message)
        await self.broadcast(payload.room_id, READ_UPDATE, body)
        return body

    async def _on_edit_message(self, connection: Connection, data: Any) -> Dict[str, Any]:
        payload = EditMessagePayload.model_validate(data)
        message = self.messages.edit_message(
            payload.message_id, payload.room_id, payload.sender, payload.text
        )
        body = serialize_message(message)
        await self.broadcast(payload.room_id, MESSAGE_EDITED, body)
        return body

    async def _on_delete_message(self, connection: Connection, data: Any) -> Dict[str, Any]:
        payload = DeleteMessagePayload.model_validate(data)
        self.messages.delete_message(payload.message_id, payload.room_id, payload.sender)
        await self.broadcast(
            payload.room_id,
            MESSAGE_DELETED,
            {"messageId": payload.message_id, "roomId": payload.room_id},
        )
        return {"success": True}
