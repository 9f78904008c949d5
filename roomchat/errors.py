"""
Error taxonomy for the room and message stores.

Every failure is a rejected operation reported to the immediate caller.
The HTTP layer maps `status_code` onto the response; the socket gateway
turns it into an error acknowledgment for the originating connection.
"""


class ChatError(Exception):
    """Base class for rejected chat operations."""
    status_code = 400

    def __init__(self, detail: str):
        super().__init__(detail)
        self.detail = detail


class ValidationError(ChatError):
    """Bad input shape or content, e.g. an empty room name."""
    status_code = 422


class NotFound(ChatError):
    """Referenced room or message does not exist."""
    status_code = 404


class Forbidden(ChatError):
    """Caller is not the sender of the message it tries to change."""
    status_code = 403
