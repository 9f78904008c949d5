"""
In-memory domain entities for rooms and messages.

These are the records owned by the stores in rooms.py and messages.py.
For Pydantic request/response schemas, see schemas.py.
"""

import copy
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional


@dataclass
class Room:
    """
    A named channel with an admin, a member list and a join-request queue.

    `members_list` and `pending_requests` are kept disjoint by RoomRegistry.
    """
    id: str
    name: str
    admin: Optional[str]
    created_at: datetime
    members_list: List[str] = field(default_factory=list)
    pending_requests: List[str] = field(default_factory=list)

    @property
    def members(self) -> int:
        # Always derived, never stored
        return len(self.members_list)

    def snapshot(self) -> "Room":
        return copy.deepcopy(self)


@dataclass(frozen=True)
class ReplySnapshot:
    """Quoted message captured by value when the reply is sent."""
    message_id: str
    text: str
    sender: str


@dataclass
class Message:
    """
    A chat message in a room's ordered history.

    `sender` is the sole authorization key for edit and delete.
    `delivered_to` and `read_by` never contain the sender.
    """
    id: str
    room_id: str
    text: str
    sender: str
    timestamp: str
    created_at: datetime
    is_edited: bool = False
    edited_at: Optional[datetime] = None
    delivered_to: List[str] = field(default_factory=list)
    # username -> first read instant, insertion ordered
    read_by: Dict[str, datetime] = field(default_factory=dict)
    reply_to: Optional[ReplySnapshot] = None

    def snapshot(self) -> "Message":
        return copy.deepcopy(self)
