"""
Pydantic schemas for request/response validation.

This module contains:
- Request models for the HTTP API
- Payload models for inbound socket events
- Response models for rooms, messages and envelopes

Wire fields are camelCase (roomId, membersList, readBy, ...); Python
attributes stay snake_case. Both spellings are accepted on input.
"""

from datetime import datetime
from typing import Any, List, Optional

from pydantic import BaseModel, Field, field_validator
from pydantic.alias_generators import to_camel

from roomchat.models import ReplySnapshot


class CamelModel(BaseModel):
    """Base model serializing to camelCase and readable from domain objects."""
    model_config = {
        "alias_generator": to_camel,
        "populate_by_name": True,
        "from_attributes": True,
    }


# =============================================================================
# Request Models
# =============================================================================

class CreateRoomRequest(CamelModel):
    """
    Body of POST /rooms.

    Emptiness of `name` is checked by the registry so the same rule
    applies to every caller.
    """
    name: str = Field(..., description="Room name")
    creator: Optional[str] = Field(None, description="Username of the creator, becomes admin")


class JoinRequestBody(CamelModel):
    username: str = Field(..., min_length=1, description="Username asking to join")


class ReplyToPayload(CamelModel):
    """Quoted message as the client saw it when replying."""
    message_id: str = Field(..., description="ID of the quoted message")
    text: str = Field(..., description="Quoted text")
    sender: str = Field(..., description="Author of the quoted message")

    def to_snapshot(self) -> ReplySnapshot:
        return ReplySnapshot(message_id=self.message_id, text=self.text, sender=self.sender)


class CreateMessageRequest(CamelModel):
    """Body of POST /messages and payload of the send-message socket event."""
    room_id: str = Field(..., min_length=1, description="Target room")
    text: str = Field(..., description="Message text, trimmed on store")
    sender: str = Field(..., min_length=1, description="Author username")
    reply_to: Optional[ReplyToPayload] = Field(None, description="Quoted message snapshot")

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "roomId": "1736935200000000000",
                    "text": "Hello",
                    "sender": "alice",
                }
            ]
        }
    }


class EditMessageRequest(CamelModel):
    """Body of PUT /messages/{messageId}."""
    room_id: str = Field(..., min_length=1)
    sender: str = Field(..., min_length=1)
    text: str = Field(..., description="Replacement text")


class DeleteMessageRequest(CamelModel):
    """Body of DELETE /messages/{messageId}."""
    room_id: str = Field(..., min_length=1)
    sender: str = Field(..., min_length=1)


# =============================================================================
# Socket Event Payloads
# =============================================================================

class JoinRoomPayload(CamelModel):
    """join-room / leave-room payload. A bare room id string is also accepted."""
    room_id: str = Field(..., min_length=1)
    username: Optional[str] = None


class ReceiptPayload(CamelModel):
    """message-delivered / message-read payload."""
    message_id: str = Field(..., min_length=1)
    room_id: str = Field(..., min_length=1)
    username: str = Field(..., min_length=1)


class EditMessagePayload(EditMessageRequest):
    message_id: str = Field(..., min_length=1)


class DeleteMessagePayload(DeleteMessageRequest):
    message_id: str = Field(..., min_length=1)


# =============================================================================
# Response Models
# =============================================================================

class RoomResponse(CamelModel):
    """
    A room as exposed over HTTP.
    `members` is derived from `membersList` on every read.
    """
    id: str
    name: str
    admin: Optional[str] = None
    members_list: List[str] = Field(default_factory=list)
    members: int = Field(..., ge=0, description="Number of members")
    pending_requests: List[str] = Field(default_factory=list)
    created_at: datetime


class ReadReceiptResponse(CamelModel):
    username: str
    read_at: datetime


class ReplyToResponse(CamelModel):
    message_id: str
    text: str
    sender: str


class MessageResponse(CamelModel):
    """
    A message as exposed over HTTP and pushed over the socket.
    """
    id: str
    room_id: str
    text: str
    sender: str
    timestamp: str
    created_at: datetime
    is_edited: bool = False
    edited_at: Optional[datetime] = None
    delivered_to: List[str] = Field(default_factory=list)
    read_by: List[ReadReceiptResponse] = Field(default_factory=list)
    reply_to: Optional[ReplyToResponse] = None

    @field_validator("read_by", mode="before")
    @classmethod
    def receipts_from_mapping(cls, v: Any) -> Any:
        """The store keeps username -> readAt; the wire carries a list."""
        if isinstance(v, dict):
            return [{"username": name, "read_at": read_at} for name, read_at in v.items()]
        return v


class SuccessResponse(CamelModel):
    success: bool = True
    message: Optional[str] = Field(None, description="Human readable outcome")


class ErrorResponse(CamelModel):
    """Response model for error responses."""
    success: bool = False
    detail: str = Field(..., description="Error description")


class RoomsListResponse(CamelModel):
    success: bool = True
    rooms: List[RoomResponse] = Field(default_factory=list)


class RoomEnvelope(CamelModel):
    success: bool = True
    room: RoomResponse


class RequestsListResponse(CamelModel):
    success: bool = True
    requests: List[str] = Field(default_factory=list)


class MembersListResponse(CamelModel):
    success: bool = True
    members: List[str] = Field(default_factory=list)


class MessagesListResponse(CamelModel):
    success: bool = True
    messages: List[MessageResponse] = Field(default_factory=list)


class MessageEnvelope(CamelModel):
    success: bool = True
    message: MessageResponse


class HealthResponse(BaseModel):
    """Response model for health check endpoints."""
    status: str = Field(..., description="Health status")
    reason: Optional[str] = Field(None, description="Reason if not ready")
