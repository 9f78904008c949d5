"""
Room registry: room identity, admin, membership and join requests.

Per (room, username) pair the registry keeps a three-way partition:
non-member, pending, member. Transitions are request (non-member -> pending),
approve (pending -> member), decline (pending -> non-member) and
kick (member -> non-member, never for the admin).
"""

import logging
import threading
from typing import Callable, Dict, List, Optional

from roomchat.errors import NotFound, ValidationError
from roomchat.models import Room
from roomchat.utils import IdGenerator, utc_now

logger = logging.getLogger(__name__)


class RoomRegistry:
    """
    Owns every Room in the process.

    Returned rooms are detached snapshots; mutate only through the methods.
    """

    def __init__(
        self,
        on_room_deleted: Optional[Callable[[str], None]] = None,
        ids: Optional[IdGenerator] = None,
    ):
        self._rooms: Dict[str, Room] = {}
        self._lock = threading.RLock()
        self._ids = ids or IdGenerator()
        self._on_room_deleted = on_room_deleted

    def _get(self, room_id: str) -> Room:
        room = self._rooms.get(room_id)
        if room is None:
            logger.debug(f"Room lookup failed: {room_id}")
            raise NotFound(f"Room with ID {room_id} not found")
        return room

    def create_room(self, name: str, creator: Optional[str] = None) -> Room:
        """
        Create a room administered by its creator.

        Args:
            name: Room name, trimmed before storing
            creator: Username of the creator, or None for an unowned room

        Returns:
            Snapshot of the new room

        Raises:
            ValidationError: if the name is empty after trimming
        """
        clean_name = (name or "").strip()
        if not clean_name:
            raise ValidationError("Room name must not be empty")

        with self._lock:
            room = Room(
                id=self._ids.next_id(),
                name=clean_name,
                admin=creator or None,
                created_at=utc_now(),
                members_list=[creator] if creator else [],
            )
            self._rooms[room.id] = room
            logger.info(f"Room created: id={room.id}, name={clean_name}, admin={room.admin}")
            return room.snapshot()

    def list_rooms(self) -> List[Room]:
        with self._lock:
            return [room.snapshot() for room in self._rooms.values()]

    def get_room(self, room_id: str) -> Room:
        with self._lock:
            return self._get(room_id).snapshot()

    def delete_room(self, room_id: str) -> None:
        """
        Remove a room and drop its message history.

        Raises:
            NotFound: if the room does not exist
        """
        with self._lock:
            self._get(room_id)
            del self._rooms[room_id]
            logger.info(f"Room deleted: {room_id}")
            if self._on_room_deleted is not None:
                self._on_room_deleted(room_id)

    def request_join(self, room_id: str, username: str) -> None:
        """Queue a membership request. Members and repeat requests are no-ops."""
        with self._lock:
            room = self._get(room_id)
            if username in room.members_list:
                logger.debug(f"Join request ignored, already a member: {username} in {room_id}")
                return
            if username not in room.pending_requests:
                room.pending_requests.append(username)
                logger.info(f"Join request queued: {username} for {room_id}")

    def approve_join(self, room_id: str, username: str) -> None:
        with self._lock:
            room = self._get(room_id)
            if username not in room.pending_requests:
                return
            room.pending_requests.remove(username)
            if username not in room.members_list:
                room.members_list.append(username)
            logger.info(f"Join request approved: {username} for {room_id}")

    def decline_join(self, room_id: str, username: str) -> None:
        with self._lock:
            room = self._get(room_id)
            if username not in room.pending_requests:
                return
            room.pending_requests.remove(username)
            logger.info(f"Join request declined: {username} for {room_id}")

    def list_requests(self, room_id: str) -> List[str]:
        with self._lock:
            return list(self._get(room_id).pending_requests)

    def list_members(self, room_id: str) -> List[str]:
        with self._lock:
            return list(self._get(room_id).members_list)

    def is_member(self, room_id: str, username: Optional[str]) -> bool:
        """
        Check membership without raising.

        Returns:
            False for unknown rooms or a missing username
        """
        with self._lock:
            room = self._rooms.get(room_id)
            return room is not None and username is not None and username in room.members_list

    def kick_member(self, room_id: str, username: str) -> None:
        """Remove a member. The admin cannot be kicked; non-members are ignored."""
        with self._lock:
            room = self._get(room_id)
            if room.admin is not None and room.admin == username:
                logger.warning(f"Refusing to kick admin {username} from {room_id}")
                return
            if username in room.members_list:
                room.members_list.remove(username)
                logger.info(f"Member kicked: {username} from {room_id}")
