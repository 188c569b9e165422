"""HTTP client for the room API: create, join-check, details, single-player questions.

Simple request/response calls made outside the WebSocket session. Every
failure surfaces as a ``RoomLookupError`` (or subclass) carrying a message
fit for the join-time error modal.
"""

from __future__ import annotations

import logging

import httpx
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .config import (
    BASE_URL,
    HTTP_TIMEOUT,
    NUM_QUESTIONS_RANGE,
    TIME_LIMIT_RANGE,
    USERNAME_MAX_LEN,
    USERNAME_MIN_LEN,
)
from .errors import InvalidRequestError, RoomJoinError, RoomLookupError, RoomNotFoundError
from .session_state import GameMode, Player, Room

logger = logging.getLogger(__name__)

ROOM_NOT_FOUND_MESSAGE = "Room not found or has ended."


# ---------------------------------------------------------------------------
# Response models
# ---------------------------------------------------------------------------

class PlayerSnapshot(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str
    username: str
    score: int | None = None


class RoomDetails(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    code: str
    host: str
    num_questions: int = Field(alias="numQuestions", ge=0)
    time_limit: int = Field(alias="timeLimit", ge=0)
    gamemode: GameMode
    players: list[PlayerSnapshot] | None = None

    def to_room(self) -> Room:
        return Room(
            code=self.code,
            host=self.host,
            num_questions=self.num_questions,
            time_limit=self.time_limit,
            game_mode=self.gamemode,
        )

    def roster(self) -> list[Player]:
        return [
            Player(id=p.id, username=p.username, score=p.score or 0)
            for p in self.players or []
        ]


class JoinAccepted(BaseModel):
    """Join-check response. Carries no game mode, unlike RoomDetails."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    code: str
    host: str
    num_questions: int = Field(alias="numQuestions")
    time_limit: int = Field(alias="timeLimit")


class SinglePlayerQuestion(BaseModel):
    """Single-player question. Unlike multiplayer, the answer key is sent to the client."""

    model_config = ConfigDict(extra="ignore")

    flag_url: str
    options: list[str] = Field(default_factory=list)
    answer: str


# ---------------------------------------------------------------------------
# Local validation
# ---------------------------------------------------------------------------

def validate_username(username: str | None) -> str:
    name = (username or "").strip()
    if not (USERNAME_MIN_LEN <= len(name) <= USERNAME_MAX_LEN):
        raise InvalidRequestError(
            f"Username must be between {USERNAME_MIN_LEN} and {USERNAME_MAX_LEN} characters."
        )
    return name


def validate_room_id(room_id: str | None) -> str:
    code = (room_id or "").strip()
    if not code:
        raise InvalidRequestError("Room ID is required")
    return code


def validate_room_settings(time_limit: int, num_questions: int, game_mode: str) -> GameMode:
    lo, hi = TIME_LIMIT_RANGE
    if not (lo <= time_limit <= hi):
        raise InvalidRequestError(f"time limit must be between {lo} and {hi} minutes")
    lo, hi = NUM_QUESTIONS_RANGE
    if not (lo <= num_questions <= hi):
        raise InvalidRequestError(f"number of questions must be between {lo} and {hi}")
    try:
        return GameMode(game_mode)
    except ValueError:
        raise InvalidRequestError(f"Unknown game type: {game_mode!r}") from None


def _error_message(response: httpx.Response, default: str) -> str:
    try:
        body = response.json()
    except ValueError:
        return default
    if isinstance(body, dict) and body.get("error"):
        return str(body["error"])
    return default


# ---------------------------------------------------------------------------
# Client
# ---------------------------------------------------------------------------

class RoomsAPI:
    """Thin async wrapper over the room endpoints.

    Pass an ``httpx.AsyncClient`` to share a connection pool (or an
    in-process ASGI transport in tests); otherwise one is created and
    closed by ``aclose()``.
    """

    def __init__(
        self,
        base_url: str = BASE_URL,
        *,
        client: httpx.AsyncClient | None = None,
        timeout: float = HTTP_TIMEOUT,
    ):
        self.base_url = base_url.rstrip("/")
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(base_url=self.base_url, timeout=timeout)

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> "RoomsAPI":
        return self

    async def __aexit__(self, *exc) -> None:
        await self.aclose()

    async def _request(self, method: str, path: str, *, failure: str, **kwargs) -> httpx.Response:
        try:
            return await self._client.request(method, path, **kwargs)
        except httpx.HTTPError as e:
            logger.error("%s %s failed: %s", method, path, e)
            raise RoomLookupError(failure) from e

    async def get_room(self, room_id: str) -> RoomDetails:
        """GET /api/room/{id} -- the join-time room lookup."""
        room_id = validate_room_id(room_id)
        response = await self._request(
            "GET", f"/api/room/{room_id}", failure="Failed to fetch room details."
        )
        if response.status_code == 404:
            raise RoomNotFoundError(ROOM_NOT_FOUND_MESSAGE, 404)
        if response.is_error:
            raise RoomLookupError(
                _error_message(response, "Failed to fetch room details."), response.status_code
            )
        try:
            return RoomDetails.model_validate(response.json())
        except (ValueError, ValidationError) as e:
            logger.warning("Malformed room details for %s: %s", room_id, e)
            raise RoomLookupError("Failed to fetch room details.") from e

    async def join_room(self, username: str, room_id: str) -> JoinAccepted:
        """POST /api/joinroom -- checks the name is free and the room still open."""
        payload = {"username": validate_username(username), "roomID": validate_room_id(room_id)}
        response = await self._request(
            "POST", "/api/joinroom", json=payload, failure="Failed to join the room."
        )
        if response.status_code == 404:
            raise RoomNotFoundError(_error_message(response, "Room not found"), 404)
        if response.is_error:
            raise RoomJoinError(
                _error_message(response, "Unknown error."), response.status_code
            )
        try:
            return JoinAccepted.model_validate(response.json())
        except (ValueError, ValidationError) as e:
            raise RoomLookupError("Failed to join the room.") from e

    async def create_room(
        self, host: str, *, num_questions: int, time_limit: int, game_mode: str
    ) -> RoomDetails:
        """POST /api/createroom -- returns the new room, including its code."""
        mode = validate_room_settings(time_limit, num_questions, game_mode)
        payload = {
            "timeLimit": time_limit,
            "numQuestions": num_questions,
            "gameType": mode.value,
            "hostUsername": validate_username(host),
        }
        response = await self._request(
            "POST", "/api/createroom", json=payload, failure="Failed to create the room."
        )
        if response.is_error:
            raise RoomLookupError(_error_message(response, "Unknown error."), response.status_code)
        try:
            details = RoomDetails.model_validate(response.json())
        except (ValueError, ValidationError) as e:
            raise RoomLookupError("Failed to create the room.") from e
        logger.info("Created room %s for host %s", details.code, details.host)
        return details

    async def fetch_singleplayer_questions(
        self, num_questions: int, game_mode: str
    ) -> list[SinglePlayerQuestion]:
        """GET /api/singleplayer -- the count and mode travel as headers."""
        if num_questions <= 0:
            raise InvalidRequestError("Please enter a valid number of questions.")
        try:
            mode = GameMode(game_mode)
        except ValueError:
            raise InvalidRequestError(f"Unknown game type: {game_mode!r}") from None
        headers = {"X-Num-Questions": str(num_questions), "game-type": mode.value}
        response = await self._request(
            "GET", "/api/singleplayer", headers=headers,
            failure="Failed to fetch questions.",
        )
        if response.is_error:
            raise RoomLookupError("Failed to fetch questions.", response.status_code)
        try:
            body = response.json()
            return [SinglePlayerQuestion.model_validate(q) for q in body]
        except (ValueError, TypeError, ValidationError) as e:
            raise RoomLookupError("Failed to fetch questions.") from e
