"""WebSocket transport adapter: connection lifecycle and JSON framing only.

No game logic lives here. The one protocol detail the transport knows is
that the first frame after a successful open is the ``joinRoom`` request.
There is no reconnection: once the socket closes the session is over.
"""

import json
import logging
from typing import Any, Awaitable, Callable, Protocol

from websockets.asyncio.client import connect
from websockets.exceptions import ConnectionClosed, WebSocketException

from .errors import TransportClosedError
from .events import JoinRoom

logger = logging.getLogger(__name__)

MessageHandler = Callable[[Any], Awaitable[None]]
CloseHandler = Callable[[], Awaitable[None]]


class Transport(Protocol):
    """What the dispatcher and client need from a connection."""

    @property
    def is_open(self) -> bool: ...

    async def send(self, message: dict) -> bool: ...

    async def close(self) -> None: ...


class WebSocketTransport:
    """Owns one WebSocket connection to the room server.

    Inbound frames are decoded and delivered to the single registered
    message handler in receipt order; the next frame is not read until the
    handler returns.
    """

    def __init__(self, url: str, join: JoinRoom):
        self.url = url
        self.join = join
        self._ws = None
        self._open = False
        self._closed = False
        self._on_message: MessageHandler | None = None
        self._on_close: CloseHandler | None = None

    # ------------------------------------------------------------------
    # Registration
    # ------------------------------------------------------------------

    def on_message(self, handler: MessageHandler) -> None:
        if self._on_message is not None:
            logger.warning("Replacing existing message handler")
        self._on_message = handler

    def on_close(self, handler: CloseHandler) -> None:
        self._on_close = handler

    @property
    def is_open(self) -> bool:
        return self._open

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def connect(self) -> None:
        """Open the socket and send the join request. Raises TransportClosedError on failure."""
        if self._closed:
            raise TransportClosedError("Transport already closed")
        try:
            self._ws = await connect(self.url)
        except (OSError, WebSocketException) as e:
            logger.error("WebSocket connection to %s failed: %s", self.url, e)
            self._closed = True
            raise TransportClosedError(f"Could not connect to {self.url}") from e

        self._open = True
        logger.info("WebSocket connection established: %s", self.url)
        if not await self.send(self.join.to_wire()):
            await self._close_socket()
            await self._handle_closed()
            raise TransportClosedError("Connection closed before joinRoom was sent")

    async def send(self, message: dict) -> bool:
        """Send JSON to the server, return False if the socket is not open."""
        if not self._open or self._ws is None:
            logger.warning("Dropping %s: WebSocket is not open", message.get("event"))
            return False
        try:
            await self._ws.send(json.dumps(message))
            return True
        except ConnectionClosed:
            logger.warning("Dropping %s: connection closed during send", message.get("event"))
            self._open = False
            return False

    async def run(self) -> None:
        """Read frames until the connection closes, then fire the close handler."""
        if self._ws is None:
            raise TransportClosedError("run() called before connect()")
        try:
            async for data in self._ws:
                try:
                    frame = json.loads(data)
                except (json.JSONDecodeError, ValueError, TypeError) as e:
                    logger.warning("Malformed JSON from server: %s", e)
                    continue

                if self._on_message is None:
                    logger.debug("No message handler registered, dropping frame")
                    continue
                await self._on_message(frame)
        except ConnectionClosed as e:
            logger.warning("WebSocket connection lost: %s", e)
        finally:
            await self._handle_closed()

    async def close(self) -> None:
        if self._open:
            await self._close_socket()
        await self._handle_closed()

    async def _close_socket(self) -> None:
        if self._ws is None:
            return
        try:
            await self._ws.close()
        except WebSocketException:
            logger.exception("Error closing WebSocket")

    async def _handle_closed(self) -> None:
        if self._closed:
            return
        self._open = False
        self._closed = True
        logger.info("WebSocket connection closed.")
        if self._on_close is not None:
            try:
                await self._on_close()
            except Exception:
                logger.exception("Close handler failed")
