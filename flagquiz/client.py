"""Multiplayer session wiring: room lookup, transport, dispatcher, user actions.

``MultiplayerClient.run()`` is the whole lifecycle of one room visit:

1. check the join and look the room up over HTTP (failure -> blocking
   room error, stop);
2. open the WebSocket, which sends ``joinRoom`` on open;
3. feed frames to the dispatcher until the socket closes;
4. tear everything down. There is no reconnect; a new visit needs a new
   client.
"""

import logging

from .config import WS_URL
from .dispatcher import ProtocolDispatcher, Renderer
from .errors import RoomLookupError, TransportClosedError
from .events import JoinRoom, Leave
from .rooms_api import RoomsAPI, validate_room_id, validate_username
from .session_state import SessionState
from .transport import WebSocketTransport

logger = logging.getLogger(__name__)


class MultiplayerClient:
    """One player's view of one room."""

    def __init__(
        self,
        room_id: str,
        username: str,
        *,
        renderer: Renderer | None = None,
        api: RoomsAPI | None = None,
        transport=None,
        ws_url: str = WS_URL,
        join_check: bool = True,
        **dispatcher_options,
    ):
        self.username = validate_username(username)
        self.room_id = validate_room_id(room_id)
        self.state = SessionState(username=self.username, room_id=self.room_id)

        self._owns_api = api is None
        self.api = api or RoomsAPI()
        self.transport = transport or WebSocketTransport(
            ws_url, JoinRoom(username=self.username, room_id=self.room_id)
        )
        self.dispatcher = ProtocolDispatcher(
            self.state, self.transport, renderer=renderer, **dispatcher_options
        )
        self.transport.on_message(self.dispatcher.handle)
        self.transport.on_close(self.dispatcher.connection_closed)
        self.join_check = join_check
        self._closed = False

    async def load_room(self) -> bool:
        """Check the join is allowed, then fetch room details.

        The join check rejects names already in use and rooms that no longer
        take players. Either failure is shown and False returned.
        """
        try:
            if self.join_check:
                await self.api.join_room(self.username, self.room_id)
            details = await self.api.get_room(self.room_id)
        except RoomLookupError as e:
            logger.warning("Room lookup for %s failed: %s", self.room_id, e.message)
            await self.dispatcher.room_lookup_failed(e.message)
            return False
        await self.dispatcher.load_room(details.to_room(), details.roster())
        return True

    async def run(self) -> bool:
        """Join the room and process events until the connection ends.

        Returns False when the session never got going (room lookup or
        connection failure), True once the connection has been used and
        closed.
        """
        try:
            if not await self.load_room():
                return False
            try:
                await self.transport.connect()
            except TransportClosedError as e:
                logger.error("Could not join room %s: %s", self.room_id, e)
                await self.dispatcher.connection_closed()
                return False
            await self.transport.run()
            return True
        finally:
            await self.close()

    # ------------------------------------------------------------------
    # User actions
    # ------------------------------------------------------------------

    async def start_game(self) -> bool:
        return await self.dispatcher.start_game()

    async def answer(self, text: str) -> bool:
        return await self.dispatcher.submit_answer(text)

    async def leave(self) -> None:
        """Tell the server we are going, then close."""
        if self.transport.is_open:
            await self.transport.send(Leave().to_wire())
        await self.close()

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        await self.dispatcher.teardown()
        await self.transport.close()
        if self._owns_api:
            await self.api.aclose()
