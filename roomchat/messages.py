"""
Message log: ordered per-room histories with receipts.

The log is keyed by room id only and never consults the room registry.
A room with no history simply has no key; reads treat that as empty.
"""

import logging
import threading
from typing import Dict, List, Optional, Tuple

from roomchat.errors import Forbidden, NotFound, ValidationError
from roomchat.models import Message, ReplySnapshot
from roomchat.utils import IdGenerator, iso_timestamp, utc_now

logger = logging.getLogger(__name__)


class MessageLog:
    """
    Owns every room's message sequence.

    Appends happen under a single lock, so concurrent sends to one room
    land in a deterministic order and ids increase along the sequence.
    Returned messages are detached snapshots.
    """

    def __init__(self, ids: Optional[IdGenerator] = None):
        self._rooms: Dict[str, List[Message]] = {}
        self._lock = threading.RLock()
        self._ids = ids or IdGenerator()

    def _find(self, message_id: str, room_id: str) -> Optional[Message]:
        for message in self._rooms.get(room_id, ()):
            if message.id == message_id:
                return message
        return None

    def _locate(self, message_id: str, room_id: str) -> Tuple[List[Message], int]:
        room_messages = self._rooms.get(room_id)
        if room_messages is None:
            raise NotFound("Room not found")
        for index, message in enumerate(room_messages):
            if message.id == message_id:
                return room_messages, index
        raise NotFound("Message not found")

    def list_messages(self, room_id: str) -> List[Message]:
        with self._lock:
            return [message.snapshot() for message in self._rooms.get(room_id, ())]

    def create_message(
        self,
        room_id: str,
        text: str,
        sender: str,
        reply_to: Optional[ReplySnapshot] = None,
    ) -> Message:
        """
        Append a new message to a room's history.

        Args:
            room_id: Room the message belongs to
            text: Message body, trimmed before storing
            sender: Username of the author
            reply_to: Quoted message, stored by value

        Returns:
            Snapshot of the stored message

        Raises:
            ValidationError: if the text is empty after trimming
        """
        clean_text = (text or "").strip()
        if not clean_text:
            raise ValidationError("Message text must not be empty")

        with self._lock:
            created_at = utc_now()
            message = Message(
                id=self._ids.next_id(),
                room_id=room_id,
                text=clean_text,
                sender=sender,
                timestamp=iso_timestamp(created_at),
                created_at=created_at,
                reply_to=reply_to,
            )
            self._rooms.setdefault(room_id, []).append(message)
            logger.info(f"Message created: id={message.id}, room={room_id}, sender={sender}")
            logger.debug(f"Message details: text_length={len(clean_text)}, reply_to={reply_to}")
            return message.snapshot()

    def mark_delivered(self, message_id: str, room_id: str, username: str) -> Optional[Message]:
        """
        Record that a message reached a recipient.

        Returns:
            The message, unchanged when `username` is the sender,
            or None if the room or message is unknown
        """
        with self._lock:
            message = self._find(message_id, room_id)
            if message is None:
                logger.debug(f"Delivery mark skipped, unknown message {message_id} in {room_id}")
                return None
            if message.sender != username and username not in message.delivered_to:
                message.delivered_to.append(username)
                logger.debug(f"Message {message_id} delivered to {username}")
            return message.snapshot()

    def mark_read(self, message_id: str, room_id: str, username: str) -> Optional[Message]:
        """
        Record the first time a recipient read a message.

        Returns:
            The message, unchanged when `username` is the sender or has
            already read it, or None if the room or message is unknown
        """
        with self._lock:
            message = self._find(message_id, room_id)
            if message is None:
                logger.debug(f"Read mark skipped, unknown message {message_id} in {room_id}")
                return None
            if message.sender != username and username not in message.read_by:
                message.read_by[username] = utc_now()
                logger.debug(f"Message {message_id} read by {username}")
            return message.snapshot()

    def edit_message(self, message_id: str, room_id: str, sender: str, text: str) -> Message:
        """
        Replace the text of a message.

        Raises:
            NotFound: if the room or message is unknown
            Forbidden: if `sender` is not the message's author
            ValidationError: if the new text is empty after trimming
        """
        with self._lock:
            room_messages, index = self._locate(message_id, room_id)
            message = room_messages[index]
            if message.sender != sender:
                logger.warning(f"Edit refused: {sender} is not the sender of {message_id}")
                raise Forbidden("You can only edit your own messages")

            clean_text = (text or "").strip()
            if not clean_text:
                raise ValidationError("Message text must not be empty")

            message.text = clean_text
            message.is_edited = True
            message.edited_at = utc_now()
            logger.info(f"Message edited: id={message_id}, room={room_id}")
            return message.snapshot()

    def delete_message(self, message_id: str, room_id: str, sender: str) -> None:
        """
        Remove a message from its room's history.

        Raises:
            NotFound: if the room or message is unknown
            Forbidden: if `sender` is not the message's author
        """
        with self._lock:
            room_messages, index = self._locate(message_id, room_id)
            if room_messages[index].sender != sender:
                logger.warning(f"Delete refused: {sender} is not the sender of {message_id}")
                raise Forbidden("You can only delete your own messages")
            del room_messages[index]
            logger.info(f"Message deleted: id={message_id}, room={room_id}")

    def delete_room_history(self, room_id: str) -> None:
        with self._lock:
            dropped = self._rooms.pop(room_id, None)
        if dropped is not None:
            logger.info(f"Dropped {len(dropped)} messages for room {room_id}")
