"""Tests for flagquiz.rooms_api against an in-process stand-in server."""

import httpx
import pytest

from flagquiz.errors import InvalidRequestError, RoomJoinError, RoomLookupError, RoomNotFoundError
from flagquiz.rooms_api import (
    ROOM_NOT_FOUND_MESSAGE,
    RoomsAPI,
    validate_room_id,
    validate_room_settings,
    validate_username,
)
from flagquiz.session_state import GameMode
from tests.conftest import ROOM_CODE, room_payload


# ------------------------------------------------------------------
# Local validation
# ------------------------------------------------------------------


@pytest.mark.parametrize("name", ["bob", "", "   ", None, "x" * 21])
def test_username_length_is_enforced(name):
    with pytest.raises(InvalidRequestError):
        validate_username(name)


def test_username_is_trimmed():
    assert validate_username("  alice  ") == "alice"


def test_room_id_required():
    with pytest.raises(InvalidRequestError):
        validate_room_id("  ")
    assert validate_room_id(" ABC123 ") == "ABC123"


@pytest.mark.parametrize("time_limit,num_questions,mode", [
    (2, 10, "MCQ"),
    (11, 10, "MCQ"),
    (5, 9, "MCQ"),
    (5, 26, "MCQ"),
    (5, 10, "TRIVIA"),
])
def test_room_settings_out_of_range(time_limit, num_questions, mode):
    with pytest.raises(InvalidRequestError):
        validate_room_settings(time_limit, num_questions, mode)


def test_room_settings_accepts_map_mode():
    assert validate_room_settings(3, 25, "MAP") is GameMode.MAP


# ------------------------------------------------------------------
# Room details
# ------------------------------------------------------------------


@pytest.mark.asyncio
async def test_get_room(rooms_api):
    details = await rooms_api.get_room(ROOM_CODE)
    room = details.to_room()
    assert room.code == ROOM_CODE
    assert room.host == "alice"
    assert room.num_questions == 3
    assert room.time_limit == 5
    assert room.game_mode is GameMode.MCQ
    assert [p.username for p in details.roster()] == ["alice", "brian"]


@pytest.mark.asyncio
async def test_get_room_without_players(rooms_api, rooms):
    rooms["EMPTY1"] = room_payload("EMPTY1")
    rooms["EMPTY1"].pop("players")
    details = await rooms_api.get_room("EMPTY1")
    assert details.roster() == []


@pytest.mark.asyncio
async def test_get_missing_room(rooms_api):
    with pytest.raises(RoomNotFoundError) as exc_info:
        await rooms_api.get_room("NOPE00")
    assert exc_info.value.message == ROOM_NOT_FOUND_MESSAGE
    assert exc_info.value.status_code == 404


@pytest.mark.asyncio
async def test_get_room_with_malformed_body(rooms_api, rooms):
    rooms["BAD001"] = {"code": "BAD001"}
    with pytest.raises(RoomLookupError):
        await rooms_api.get_room("BAD001")


@pytest.mark.asyncio
async def test_network_failure_becomes_lookup_error():
    def refuse(request):
        raise httpx.ConnectError("connection refused", request=request)

    async with httpx.AsyncClient(
        transport=httpx.MockTransport(refuse), base_url="http://testserver"
    ) as client:
        api = RoomsAPI("http://testserver", client=client)
        with pytest.raises(RoomLookupError) as exc_info:
            await api.get_room(ROOM_CODE)
    assert exc_info.value.message == "Failed to fetch room details."


# ------------------------------------------------------------------
# Join check
# ------------------------------------------------------------------


@pytest.mark.asyncio
async def test_join_room(rooms_api):
    accepted = await rooms_api.join_room("carol", ROOM_CODE)
    assert accepted.code == ROOM_CODE
    assert accepted.num_questions == 3


@pytest.mark.asyncio
async def test_join_room_name_taken(rooms_api):
    with pytest.raises(RoomJoinError) as exc_info:
        await rooms_api.join_room("Alice", ROOM_CODE)
    assert exc_info.value.status_code == 409
    assert "already taken" in exc_info.value.message


@pytest.mark.asyncio
async def test_join_missing_room(rooms_api):
    with pytest.raises(RoomNotFoundError):
        await rooms_api.join_room("carol", "NOPE00")


@pytest.mark.asyncio
async def test_join_rejects_bad_username_locally(rooms_api):
    with pytest.raises(InvalidRequestError):
        await rooms_api.join_room("al", ROOM_CODE)


# ------------------------------------------------------------------
# Create room and single player
# ------------------------------------------------------------------


@pytest.mark.asyncio
async def test_create_room(rooms_api, rooms):
    details = await rooms_api.create_room("dave", num_questions=10, time_limit=3, game_mode="MAP")
    assert details.code == "NEW001"
    assert details.host == "dave"
    assert details.gamemode is GameMode.MAP
    assert "NEW001" in rooms


@pytest.mark.asyncio
async def test_create_room_validates_settings_first(rooms_api, rooms):
    with pytest.raises(InvalidRequestError):
        await rooms_api.create_room("dave", num_questions=5, time_limit=3, game_mode="MCQ")
    assert "NEW001" not in rooms


@pytest.mark.asyncio
async def test_fetch_singleplayer_questions(rooms_api):
    questions = await rooms_api.fetch_singleplayer_questions(4, "MCQ")
    assert len(questions) == 4
    assert questions[0].answer == "France"
    assert "France" in questions[0].options


@pytest.mark.parametrize("num,mode", [(0, "MCQ"), (-2, "MCQ"), (5, "TRIVIA")])
@pytest.mark.asyncio
async def test_fetch_singleplayer_rejects_bad_input(rooms_api, num, mode):
    with pytest.raises(InvalidRequestError):
        await rooms_api.fetch_singleplayer_questions(num, mode)


@pytest.mark.asyncio
async def test_owned_client_is_closed():
    api = RoomsAPI("http://testserver")
    async with api:
        pass
    assert api._client.is_closed
