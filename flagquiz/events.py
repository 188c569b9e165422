"""Typed inbound events and outbound requests for the room WebSocket.

Inbound frames are parsed into a closed set of pydantic models, one per
event kind, plus two fallbacks: ``ServerError`` for the server's bare
``{"error": ...}`` frames and ``UnknownEvent`` for kinds this client does
not know yet. Outbound requests are validated locally before they are
serialised with ``to_wire()``.
"""

from __future__ import annotations

from typing import Annotated, Any, ClassVar, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, StrictInt, ValidationError

from .errors import InvalidRequestError, MalformedEventError
from .ws_constants import (
    EVT_PLAYER_JOINED,
    EVT_PLAYER_LEFT,
    EVT_COUNTDOWN,
    EVT_GAME_STARTED,
    EVT_NEW_QUESTION,
    EVT_ANSWER_RESULT,
    EVT_SCORE,
    EVT_FINISHED_GAME,
    EVT_TIME_OVER,
    EVT_ALL_PLAYERS_FINISHED,
    EVT_SERVER_ERROR,
    REQ_JOIN_ROOM,
    REQ_LOAD_GAME,
    REQ_GET_NEW_QUESTION,
    REQ_VALIDATE_ANSWER,
    REQ_CLEAN_ROOM,
    REQ_LEAVE,
)


# ---------------------------------------------------------------------------
# Inbound (server -> client)
# ---------------------------------------------------------------------------

class _Inbound(BaseModel):
    model_config = ConfigDict(extra="ignore", frozen=True)


class PlayerJoined(_Inbound):
    kind: Literal["playerJoined"] = EVT_PLAYER_JOINED
    id: str = Field(min_length=1)
    username: str = Field(min_length=1)
    score: Annotated[StrictInt, Field(ge=0)] | None = None


class PlayerLeft(_Inbound):
    kind: Literal["playerLeft"] = EVT_PLAYER_LEFT
    id: str = Field(min_length=1)
    username: str


class Countdown(_Inbound):
    kind: Literal["countdown"] = EVT_COUNTDOWN
    count: StrictInt = Field(ge=0)


class GameStarted(_Inbound):
    kind: Literal["gameStarted"] = EVT_GAME_STARTED


class NewQuestion(_Inbound):
    kind: Literal["new_question"] = EVT_NEW_QUESTION
    flag_url: str
    options: list[str] | None = None


class AnswerResult(_Inbound):
    kind: Literal["answer_result"] = EVT_ANSWER_RESULT
    chosen_answer: str
    correct_answer: str


class Score(_Inbound):
    kind: Literal["score"] = EVT_SCORE
    username: str = Field(min_length=1)
    score: StrictInt = Field(ge=0)


class FinishedGame(_Inbound):
    kind: Literal["finished_game"] = EVT_FINISHED_GAME
    username: str = Field(min_length=1)


class TimeOver(_Inbound):
    kind: Literal["time_over"] = EVT_TIME_OVER


class AllPlayersFinished(_Inbound):
    kind: Literal["all_players_finished"] = EVT_ALL_PLAYERS_FINISHED


class ServerError(_Inbound):
    kind: Literal["error"] = EVT_SERVER_ERROR
    message: str


class UnknownEvent(_Inbound):
    kind: str
    raw: dict[str, Any] = Field(default_factory=dict)


InboundEvent = Union[
    PlayerJoined,
    PlayerLeft,
    Countdown,
    GameStarted,
    NewQuestion,
    AnswerResult,
    Score,
    FinishedGame,
    TimeOver,
    AllPlayersFinished,
    ServerError,
    UnknownEvent,
]

_INBOUND_MODELS: dict[str, type[_Inbound]] = {
    EVT_PLAYER_JOINED: PlayerJoined,
    EVT_PLAYER_LEFT: PlayerLeft,
    EVT_COUNTDOWN: Countdown,
    EVT_GAME_STARTED: GameStarted,
    EVT_NEW_QUESTION: NewQuestion,
    EVT_ANSWER_RESULT: AnswerResult,
    EVT_SCORE: Score,
    EVT_FINISHED_GAME: FinishedGame,
    EVT_TIME_OVER: TimeOver,
    EVT_ALL_PLAYERS_FINISHED: AllPlayersFinished,
}

_NO_PAYLOAD = {EVT_GAME_STARTED, EVT_TIME_OVER, EVT_ALL_PLAYERS_FINISHED}


def _payload_for(kind: str, frame: dict) -> Any:
    data = frame.get("data")
    if kind in _NO_PAYLOAD:
        return {}
    if kind == EVT_COUNTDOWN:
        # The server sends the count as the bare data value
        return {"count": data}
    if kind == EVT_FINISHED_GAME:
        # username travels at the top level of this one frame
        username = frame.get("username")
        if username is None and isinstance(data, dict):
            username = data.get("username")
        return {"username": username}
    return data


def _summarize(exc: ValidationError) -> str:
    parts = []
    for err in exc.errors():
        loc = ".".join(str(p) for p in err.get("loc", ())) or "payload"
        parts.append(f"{loc}: {err.get('msg')}")
    return "; ".join(parts)


def parse_event(frame: Any) -> InboundEvent:
    """Turn one decoded JSON frame into a typed event.

    Raises MalformedEventError when a known kind is missing required fields.
    Unknown kinds are returned as UnknownEvent so the caller can log and
    carry on.
    """
    if not isinstance(frame, dict):
        raise MalformedEventError(None, "frame is not a JSON object")

    kind = frame.get("event")
    if kind is None:
        if "error" in frame:
            return ServerError(message=str(frame["error"]))
        raise MalformedEventError(None, "missing event kind")
    if not isinstance(kind, str):
        raise MalformedEventError(None, f"event kind must be a string, got {type(kind).__name__}")

    model = _INBOUND_MODELS.get(kind)
    if model is None:
        return UnknownEvent(kind=kind, raw=frame)

    payload = _payload_for(kind, frame)
    if not isinstance(payload, dict):
        raise MalformedEventError(kind, "data must be an object")
    try:
        return model.model_validate(payload)
    except ValidationError as e:
        raise MalformedEventError(kind, _summarize(e)) from e


# ---------------------------------------------------------------------------
# Outbound (client -> server)
# ---------------------------------------------------------------------------

class OutboundRequest(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: ClassVar[str]

    def to_wire(self) -> dict:
        return {"event": self.kind}


class JoinRoom(OutboundRequest):
    kind: ClassVar[str] = REQ_JOIN_ROOM
    username: str = Field(min_length=1)
    room_id: str = Field(min_length=1)

    def to_wire(self) -> dict:
        return {"event": self.kind, "username": self.username, "roomID": self.room_id}


class LoadGame(OutboundRequest):
    kind: ClassVar[str] = REQ_LOAD_GAME


class GetNewQuestion(OutboundRequest):
    kind: ClassVar[str] = REQ_GET_NEW_QUESTION
    room_id: str = Field(min_length=1)
    player_id: str = Field(min_length=1)
    question_number: StrictInt = Field(ge=0)

    def to_wire(self) -> dict:
        return {
            "event": self.kind,
            "data": {
                "roomID": self.room_id,
                "playerID": self.player_id,
                "question_number": self.question_number,
            },
        }


class ValidateAnswer(OutboundRequest):
    kind: ClassVar[str] = REQ_VALIDATE_ANSWER
    question_index: StrictInt = Field(ge=0)
    answer: str = Field(min_length=1)

    def to_wire(self) -> dict:
        return {
            "event": self.kind,
            "data": {"question_index": self.question_index, "answer": self.answer},
        }


class CleanRoom(OutboundRequest):
    kind: ClassVar[str] = REQ_CLEAN_ROOM


class Leave(OutboundRequest):
    kind: ClassVar[str] = REQ_LEAVE


def _check_index(index: Any, num_questions: int) -> None:
    if isinstance(index, bool) or not isinstance(index, int):
        raise InvalidRequestError(f"Question index must be an integer, got {index!r}")
    if index < 0 or index >= num_questions:
        raise InvalidRequestError(
            f"Question index {index} out of range for {num_questions} questions"
        )


def build_question_request(
    room_id: str, username: str, index: Any, num_questions: int
) -> GetNewQuestion:
    """Validate and build a get_new_question request."""
    _check_index(index, num_questions)
    try:
        return GetNewQuestion(room_id=room_id, player_id=username, question_number=index)
    except ValidationError as e:
        raise InvalidRequestError(_summarize(e)) from e


def build_answer_request(index: Any, answer: Any, num_questions: int) -> ValidateAnswer:
    """Validate and build a validate_answer request."""
    _check_index(index, num_questions)
    if not isinstance(answer, str) or not answer.strip():
        raise InvalidRequestError(f"Invalid answer: {answer!r}")
    return ValidateAnswer(question_index=index, answer=answer)
