"""
Client-side view state fed by the realtime gateway.

`ClientState` mirrors what a browser keeps: the room list and a per-room
list of message payloads, merged from pushed events by message id.
`RoomViewport` derives the UI-only scroll state (auto-scroll vs. unread
badge) and never touches message payloads.
"""

import logging
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)

# Distance in pixels under which the view counts as scrolled to the bottom
NEAR_BOTTOM_THRESHOLD = 150


class ClientState:
    """
    Rooms and per-room message lists, as camelCase wire dicts.

    Events for rooms that were never loaded start an empty list instead
    of failing, so a late history fetch can still fill it in.
    """

    def __init__(self):
        self.rooms: List[Dict[str, Any]] = []
        self.messages: Dict[str, List[Dict[str, Any]]] = {}
        self._reducers = {
            "receive-message": self._on_receive,
            "message-delivery-update": self._on_replace,
            "message-read-update": self._on_replace,
            "message-edited": self._on_edited,
            "message-deleted": self._on_deleted,
        }

    def set_rooms(self, rooms: List[Dict[str, Any]]) -> None:
        self.rooms = list(rooms)

    def find_room(self, room_id: str) -> Optional[Dict[str, Any]]:
        for room in self.rooms:
            if room.get("id") == room_id:
                return room
        return None

    def load_history(self, room_id: str, messages: List[Dict[str, Any]]) -> None:
        """Replace a room's list with a freshly fetched history."""
        self.messages[room_id] = list(messages)

    def room_messages(self, room_id: str) -> List[Dict[str, Any]]:
        return self.messages.get(room_id, [])

    def apply(self, event: str, payload: Any) -> bool:
        """
        Merge one pushed event.

        Returns:
            True if the event was understood and applied
        """
        reducer = self._reducers.get(event)
        if reducer is None or not isinstance(payload, dict) or not payload.get("roomId"):
            logger.debug(f"Ignoring event {event!r}")
            return False
        reducer(payload)
        return True

    def _on_receive(self, message: Dict[str, Any]) -> None:
        sequence = self.messages.setdefault(message["roomId"], [])
        for index, existing in enumerate(sequence):
            if existing.get("id") == message.get("id"):
                sequence[index] = message
                return
        sequence.append(message)

    def _on_replace(self, message: Dict[str, Any]) -> None:
        sequence = self.messages.setdefault(message["roomId"], [])
        self.messages[message["roomId"]] = [
            message if existing.get("id") == message.get("id") else existing
            for existing in sequence
        ]

    def _on_edited(self, message: Dict[str, Any]) -> None:
        # Same as the browser client, which sets the flag locally too
        self._on_replace({**message, "isEdited": True})

    def _on_deleted(self, payload: Dict[str, Any]) -> None:
        sequence = self.messages.setdefault(payload["roomId"], [])
        self.messages[payload["roomId"]] = [
            existing for existing in sequence if existing.get("id") != payload.get("messageId")
        ]


class RoomViewport:
    """Scroll position bookkeeping for the open room's message pane."""

    def __init__(self, threshold: int = NEAR_BOTTOM_THRESHOLD):
        self.threshold = threshold
        self.unread_count = 0
        self.show_new_messages_badge = False
        self._seen_length = 0

    @staticmethod
    def distance_from_bottom(scroll_top: float, client_height: float, scroll_height: float) -> float:
        return scroll_height - (scroll_top + client_height)

    def is_near_bottom(self, scroll_top: float, client_height: float, scroll_height: float) -> bool:
        return self.distance_from_bottom(scroll_top, client_height, scroll_height) < self.threshold

    def on_messages_changed(
        self,
        message_count: int,
        scroll_top: float,
        client_height: float,
        scroll_height: float,
    ) -> bool:
        """
        Account for a new render of the message list.

        Returns:
            True if the view should auto-scroll to the bottom
        """
        auto_scroll = False
        if message_count > self._seen_length:
            arrived = message_count - self._seen_length
            if self.is_near_bottom(scroll_top, client_height, scroll_height):
                auto_scroll = True
                self.mark_seen()
            else:
                self.show_new_messages_badge = True
                self.unread_count += arrived
        self._seen_length = message_count
        return auto_scroll

    def mark_seen(self) -> None:
        self.show_new_messages_badge = False
        self.unread_count = 0

    def switch_room(self, message_count: int) -> None:
        self.mark_seen()
        self._seen_length = message_count
