import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Response, Request, Depends, WebSocket, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from roomchat.config import settings
from roomchat.errors import ChatError
from roomchat.logging_utils import setup_logging, RequestLoggingMiddleware, log_chat_data
from roomchat.messages import MessageLog
from roomchat.metrics import get_metrics, get_metrics_content_type
from roomchat.rooms import RoomRegistry
from roomchat.storage import init_store, get_rooms, get_messages, check_store_health
from roomchat.schemas import (
    HealthResponse,
    ErrorResponse,
    SuccessResponse,
    CreateRoomRequest,
    JoinRequestBody,
    RoomResponse,
    RoomsListResponse,
    RoomEnvelope,
    RequestsListResponse,
    MembersListResponse,
    CreateMessageRequest,
    EditMessageRequest,
    DeleteMessageRequest,
    MessageResponse,
    MessagesListResponse,
    MessageEnvelope,
)


# Setup structured JSON logging
setup_logging(settings.LOG_LEVEL)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Lifespan context manager for startup and shutdown events.
    - Startup: Create empty room registry, message log and gateway
    - Shutdown: Drop all in-memory state
    """
    app.state.store = init_store(settings)
    yield
    app.state.store = None
    logger.info("Chat store discarded")


app = FastAPI(
    title="Room Chat API",
    description="Rooms with admin-approved membership, ordered message logs and realtime fan-out",
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(RequestLoggingMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_methods=["GET", "POST", "PUT", "DELETE"],
    allow_headers=["*"],
    allow_credentials=True,
)

ERROR_RESPONSES = {
    403: {"model": ErrorResponse, "description": "Not the message sender"},
    404: {"model": ErrorResponse, "description": "Room or message not found"},
}


@app.exception_handler(ChatError)
async def chat_error_handler(request: Request, exc: ChatError) -> JSONResponse:
    """Translate store rejections into JSON error responses."""
    logger.info(f"{request.method} {request.url.path} rejected: {exc.detail}")
    return JSONResponse(
        status_code=exc.status_code,
        content=ErrorResponse(detail=exc.detail).model_dump(),
    )


# =============================================================================
# Health Check Routes
# =============================================================================

@app.get("/health/live", response_model=HealthResponse)
async def health_live() -> HealthResponse:
    """
    Liveness probe - always returns 200 once the app is running.
    """
    return HealthResponse(status="ok")


@app.get("/health/ready", response_model=HealthResponse)
async def health_ready(request: Request, response: Response) -> HealthResponse:
    """
    Readiness probe - returns 200 only once the in-memory stores exist.
    Otherwise returns 503 (Service Unavailable).
    """
    if not check_store_health(getattr(request.app.state, "store", None)):
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
        return HealthResponse(
            status="not_ready",
            reason="Chat store not initialized"
        )

    return HealthResponse(status="ready")


# =============================================================================
# Room Routes
# =============================================================================

@app.get("/rooms", response_model=RoomsListResponse)
async def list_rooms(rooms: RoomRegistry = Depends(get_rooms)) -> RoomsListResponse:
    """
    List all rooms. `members` is recomputed from `membersList` on each call.
    """
    result = rooms.list_rooms()
    logger.info(f"GET /rooms: returned {len(result)} rooms")
    return RoomsListResponse(rooms=[RoomResponse.model_validate(room) for room in result])


@app.post(
    "/rooms",
    response_model=RoomEnvelope,
    status_code=status.HTTP_201_CREATED,
    responses={422: {"model": ErrorResponse, "description": "Empty room name"}},
)
async def create_room(
    request: Request,
    body: CreateRoomRequest,
    rooms: RoomRegistry = Depends(get_rooms),
) -> RoomEnvelope:
    """
    Create a room. The creator becomes its admin and first member.
    """
    room = rooms.create_room(body.name, body.creator)
    log_chat_data(request, room_id=room.id, result="created")
    return RoomEnvelope(room=RoomResponse.model_validate(room))


@app.get("/rooms/{room_id}", response_model=RoomEnvelope, responses=ERROR_RESPONSES)
async def get_room(room_id: str, rooms: RoomRegistry = Depends(get_rooms)) -> RoomEnvelope:
    return RoomEnvelope(room=RoomResponse.model_validate(rooms.get_room(room_id)))


@app.delete("/rooms/{room_id}", response_model=SuccessResponse, responses=ERROR_RESPONSES)
async def delete_room(
    request: Request,
    room_id: str,
    rooms: RoomRegistry = Depends(get_rooms),
) -> SuccessResponse:
    """
    Delete a room together with its whole message history.
    """
    rooms.delete_room(room_id)
    log_chat_data(request, room_id=room_id, result="deleted")
    return SuccessResponse(message="Room deleted successfully")


@app.post("/rooms/{room_id}/join-request", response_model=SuccessResponse, responses=ERROR_RESPONSES)
async def request_join(
    request: Request,
    room_id: str,
    body: JoinRequestBody,
    rooms: RoomRegistry = Depends(get_rooms),
) -> SuccessResponse:
    """
    Ask to join a room. Idempotent; members are left untouched.
    """
    rooms.request_join(room_id, body.username)
    log_chat_data(request, room_id=room_id, result="join_requested")
    return SuccessResponse(message="Join request submitted")


@app.get("/rooms/{room_id}/requests", response_model=RequestsListResponse, responses=ERROR_RESPONSES)
async def list_requests(room_id: str, rooms: RoomRegistry = Depends(get_rooms)) -> RequestsListResponse:
    return RequestsListResponse(requests=rooms.list_requests(room_id))


@app.post(
    "/rooms/{room_id}/requests/{username}/approve",
    response_model=SuccessResponse,
    responses=ERROR_RESPONSES,
)
async def approve_request(
    request: Request,
    room_id: str,
    username: str,
    rooms: RoomRegistry = Depends(get_rooms),
) -> SuccessResponse:
    rooms.approve_join(room_id, username)
    log_chat_data(request, room_id=room_id, result="approved")
    return SuccessResponse(message="Request approved")


@app.post(
    "/rooms/{room_id}/requests/{username}/decline",
    response_model=SuccessResponse,
    responses=ERROR_RESPONSES,
)
async def decline_request(
    request: Request,
    room_id: str,
    username: str,
    rooms: RoomRegistry = Depends(get_rooms),
) -> SuccessResponse:
    rooms.decline_join(room_id, username)
    log_chat_data(request, room_id=room_id, result="declined")
    return SuccessResponse(message="Request declined")


@app.get("/rooms/{room_id}/members", response_model=MembersListResponse, responses=ERROR_RESPONSES)
async def list_members(room_id: str, rooms: RoomRegistry = Depends(get_rooms)) -> MembersListResponse:
    return MembersListResponse(members=rooms.list_members(room_id))


@app.post(
    "/rooms/{room_id}/members/{username}/kick",
    response_model=SuccessResponse,
    responses=ERROR_RESPONSES,
)
async def kick_member(
    request: Request,
    room_id: str,
    username: str,
    rooms: RoomRegistry = Depends(get_rooms),
) -> SuccessResponse:
    """
    Remove a member from a room. Kicking the admin is silently ignored.
    """
    rooms.kick_member(room_id, username)
    log_chat_data(request, room_id=room_id, result="kicked")
    return SuccessResponse(message="Member kicked")


# =============================================================================
# Message Routes
# =============================================================================

@app.get("/messages/{room_id}", response_model=MessagesListResponse)
async def list_messages(room_id: str, messages: MessageLog = Depends(get_messages)) -> MessagesListResponse:
    """
    Full ordered history of a room. Unknown rooms have an empty history.

    Reconnecting clients use this to catch up; the socket never replays.
    """
    history = messages.list_messages(room_id)
    logger.info(f"GET /messages/{room_id}: returned {len(history)} messages")
    return MessagesListResponse(messages=[MessageResponse.model_validate(m) for m in history])


@app.post(
    "/messages",
    response_model=MessageEnvelope,
    status_code=status.HTTP_201_CREATED,
    responses={422: {"model": ErrorResponse, "description": "Empty message text"}},
)
async def create_message(
    request: Request,
    body: CreateMessageRequest,
    messages: MessageLog = Depends(get_messages),
) -> MessageEnvelope:
    message = messages.create_message(
        room_id=body.room_id,
        text=body.text,
        sender=body.sender,
        reply_to=body.reply_to.to_snapshot() if body.reply_to else None,
    )
    log_chat_data(request, room_id=body.room_id, message_id=message.id, result="created")
    return MessageEnvelope(message=MessageResponse.model_validate(message))


@app.put("/messages/{message_id}", response_model=MessageEnvelope, responses=ERROR_RESPONSES)
async def edit_message(
    request: Request,
    message_id: str,
    body: EditMessageRequest,
    messages: MessageLog = Depends(get_messages),
) -> MessageEnvelope:
    """
    Replace a message's text. Only the original sender may edit.
    """
    message = messages.edit_message(message_id, body.room_id, body.sender, body.text)
    log_chat_data(request, room_id=body.room_id, message_id=message_id, result="edited")
    return MessageEnvelope(message=MessageResponse.model_validate(message))


@app.delete("/messages/{message_id}", response_model=SuccessResponse, responses=ERROR_RESPONSES)
async def delete_message(
    request: Request,
    message_id: str,
    body: DeleteMessageRequest,
    messages: MessageLog = Depends(get_messages),
) -> SuccessResponse:
    """
    Delete a message. Only the original sender may delete.
    """
    messages.delete_message(message_id, body.room_id, body.sender)
    log_chat_data(request, room_id=body.room_id, message_id=message_id, result="deleted")
    return SuccessResponse(message="Message deleted successfully")


# =============================================================================
# Realtime Route
# =============================================================================

@app.websocket("/ws")
async def realtime(websocket: WebSocket) -> None:
    """
    Realtime channel. See roomchat.gateway for the event contract.
    """
    await websocket.app.state.store.gateway.serve(websocket)


# =============================================================================
# Metrics Route
# =============================================================================

@app.get("/metrics")
async def metrics() -> Response:
    """
    Expose Prometheus-style metrics.
    """
    return Response(
        content=get_metrics(),
        media_type=get_metrics_content_type()
    )


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host=settings.HOST, port=settings.PORT)
