"""Exception hierarchy for the quiz client.

Validation and protocol errors are local and never stop the session;
transport and room-lookup errors end it.
"""


class QuizClientError(Exception):
    """Base class for every error raised by flagquiz."""


class InvalidRequestError(QuizClientError):
    """A locally built request failed validation (bad index, empty answer...)."""


class MalformedEventError(QuizClientError):
    """An inbound frame was missing required fields or had the wrong types."""

    def __init__(self, kind: str | None, detail: str):
        super().__init__(f"Malformed {kind or 'untyped'} event: {detail}")
        self.kind = kind
        self.detail = detail


class TransportClosedError(QuizClientError):
    """The WebSocket connection is gone. Fatal to the session."""


class RoomLookupError(QuizClientError):
    """The room HTTP API refused or failed a request made at join time."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class RoomNotFoundError(RoomLookupError):
    """The requested room does not exist (or the game already ended)."""


class RoomJoinError(RoomLookupError):
    """The server rejected a join (name taken, room full, game started)."""
