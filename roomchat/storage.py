"""
Process-wide chat state and its FastAPI dependencies.

State lives only in memory and is created by the application lifespan,
so every app instance (and every test client) starts empty.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from fastapi import Request

from roomchat.config import Settings
from roomchat.gateway import RoomGateway
from roomchat.messages import MessageLog
from roomchat.rooms import RoomRegistry
from roomchat.utils import IdGenerator

logger = logging.getLogger(__name__)


@dataclass
class ChatStore:
    """Registry, log and gateway wired together for one running app."""
    rooms: RoomRegistry
    messages: MessageLog
    gateway: RoomGateway


def init_store(settings: Settings) -> ChatStore:
    """
    Build empty stores and the gateway on top of them.
    Called during application startup.
    """
    ids = IdGenerator()
    messages = MessageLog(ids=ids)
    # Deleting a room drops its history; the log never sees the registry
    rooms = RoomRegistry(on_room_deleted=messages.delete_room_history, ids=ids)
    gateway = RoomGateway(
        rooms,
        messages,
        enforce_membership=settings.ENFORCE_CHANNEL_MEMBERSHIP,
    )
    logger.info(
        "Chat store initialized",
        extra={"enforce_channel_membership": settings.ENFORCE_CHANNEL_MEMBERSHIP},
    )
    return ChatStore(rooms=rooms, messages=messages, gateway=gateway)


def get_store(request: Request) -> ChatStore:
    return request.app.state.store


def get_rooms(request: Request) -> RoomRegistry:
    return get_store(request).rooms


def get_messages(request: Request) -> MessageLog:
    return get_store(request).messages


def check_store_health(store: Optional[ChatStore]) -> bool:
    """
    Check that the lifespan created the stores.

    The stores live in process memory, so ready means initialized.

    Returns:
        True if the stores exist, False otherwise.
    """
    if store is None:
        logger.error("Chat store not initialized")
        return False
    return True
