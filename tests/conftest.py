"""Shared fixtures for the flagquiz test suite."""

import asyncio
import sys
from pathlib import Path

import pytest
from fastapi import FastAPI, Header
from fastapi.responses import JSONResponse
from httpx import ASGITransport, AsyncClient

# Ensure the project root is on sys.path so the 'flagquiz' package resolves
PROJECT_ROOT = Path(__file__).resolve().parent.parent
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from flagquiz.dispatcher import ProtocolDispatcher  # noqa: E402
from flagquiz.rooms_api import RoomsAPI  # noqa: E402
from flagquiz.session_state import GameMode, Player, Room, SessionState  # noqa: E402

ROOM_CODE = "ABC123"


# ---------------------------------------------------------------------------
# Fake transport: records sent frames, replays scripted inbound frames
# ---------------------------------------------------------------------------

class FakeTransport:
    def __init__(self, frames=()):
        self.frames = list(frames)
        self.sent: list[dict] = []
        self.is_open = True
        self.connected = False
        self.closed = False
        self._on_message = None
        self._on_close = None

    def on_message(self, handler):
        self._on_message = handler

    def on_close(self, handler):
        self._on_close = handler

    async def connect(self):
        self.connected = True
        self.is_open = True

    async def send(self, message: dict) -> bool:
        if not self.is_open:
            return False
        self.sent.append(message)
        return True

    async def run(self):
        for frame in self.frames:
            await self._on_message(frame)
        await self._fire_close()

    async def close(self):
        await self._fire_close()

    async def _fire_close(self):
        if self.closed:
            return
        self.closed = True
        self.is_open = False
        if self._on_close is not None:
            await self._on_close()


def sent_events(transport: FakeTransport, kind: str) -> list[dict]:
    """All frames of a given event kind sent through a FakeTransport."""
    return [m for m in transport.sent if m.get("event") == kind]


def question_numbers(transport: FakeTransport) -> list[int]:
    return [m["data"]["question_number"] for m in sent_events(transport, "get_new_question")]


# ---------------------------------------------------------------------------
# State factories
# ---------------------------------------------------------------------------

def make_room(*, num_questions=3, game_mode=GameMode.MCQ, time_limit=5, host="alice", code=ROOM_CODE):
    return Room(
        code=code,
        host=host,
        num_questions=num_questions,
        time_limit=time_limit,
        game_mode=game_mode,
    )


def make_state(*, username="alice", room=None, players=(("p1", "alice"), ("p2", "bob"))):
    """A SessionState already past the room lookup (phase Waiting)."""
    state = SessionState(username=username, room_id=ROOM_CODE)
    state.rng.seed(1234)
    state.load_room(room or make_room(), [Player(id=i, username=n) for i, n in players])
    return state


async def wait_until(predicate, timeout: float = 2.0):
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not reached in time")
        await asyncio.sleep(0.005)


async def drain_holds(dispatcher: ProtocolDispatcher):
    """Wait for every pending hold window to run (or be cancelled)."""
    pending = list(dispatcher.pending_holds.values())
    if pending:
        await asyncio.gather(*pending, return_exceptions=True)
    await asyncio.sleep(0)


@pytest.fixture
async def make_dispatcher():
    """Factory for dispatchers over a FakeTransport; tears them all down afterwards.

    Hold windows default to zero and the game timer to a tick so long it
    never fires, so tests only see the timing they ask for.
    """
    created: list[ProtocolDispatcher] = []

    def _make(*, state=None, renderer=None, hold=0.0, tick_seconds=3600.0, countdown_clear_delay=0.0, **state_kwargs):
        transport = FakeTransport()
        dispatcher = ProtocolDispatcher(
            state or make_state(**state_kwargs),
            transport,
            renderer=renderer,
            hold_seconds={GameMode.MCQ: hold, GameMode.MAP: hold},
            countdown_clear_delay=countdown_clear_delay,
            tick_seconds=tick_seconds,
        )
        created.append(dispatcher)
        return dispatcher, transport

    yield _make

    for dispatcher in created:
        await dispatcher.teardown()
    await asyncio.sleep(0)


# ---------------------------------------------------------------------------
# In-process stand-in for the room HTTP API
# ---------------------------------------------------------------------------

def room_payload(code=ROOM_CODE, *, host="alice", num_questions=3, time_limit=5, gamemode="MCQ", players=None):
    return {
        "code": code,
        "host": host,
        "numQuestions": num_questions,
        "timeLimit": time_limit,
        "gamemode": gamemode,
        "players": players if players is not None else [
            {"id": "p1", "username": "alice", "score": 0},
            {"id": "p2", "username": "brian", "score": 0},
        ],
    }


def make_room_api_app(rooms: dict[str, dict]) -> FastAPI:
    app = FastAPI()

    @app.get("/api/room/{room_id}")
    async def get_room(room_id: str):
        room = rooms.get(room_id)
        if room is None:
            return JSONResponse(status_code=404, content={"error": "Room not found"})
        return room

    @app.post("/api/joinroom")
    async def join_room(body: dict):
        room = rooms.get(body.get("roomID"))
        if room is None:
            return JSONResponse(status_code=404, content={"error": "Room not found"})
        taken = {p["username"].lower() for p in room["players"]}
        if body.get("username", "").lower() in taken:
            return JSONResponse(
                status_code=409,
                content={"error": f"Username '{body['username']}' is already taken. Please choose another username."},
            )
        return {k: room[k] for k in ("code", "host", "players", "timeLimit", "numQuestions")}

    @app.post("/api/createroom")
    async def create_room(body: dict):
        code = "NEW001"
        rooms[code] = room_payload(
            code,
            host=body["hostUsername"],
            num_questions=body["numQuestions"],
            time_limit=body["timeLimit"],
            gamemode=body["gameType"],
            players=[],
        )
        return rooms[code]

    @app.get("/api/singleplayer")
    async def singleplayer(x_num_questions: str = Header(), game_type: str = Header()):
        n = int(x_num_questions)
        return [
            {"flag_url": f"/flags/{i}.png", "options": ["France", "Spain", "Italy", "Chad"], "answer": "France"}
            for i in range(n)
        ]

    return app


@pytest.fixture
def rooms():
    return {ROOM_CODE: room_payload()}


@pytest.fixture
async def rooms_api(rooms):
    transport = ASGITransport(app=make_room_api_app(rooms))
    async with AsyncClient(transport=transport, base_url="http://testserver") as ac:
        yield RoomsAPI("http://testserver", client=ac)
