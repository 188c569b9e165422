"""Protocol dispatcher: applies server events and user actions to SessionState.

The dispatcher is the only writer to the session. Every mutation (an
inbound frame, a user action, a timer tick, a hold-window expiry) runs
under one asyncio lock, so no two mutations ever interleave. After each
mutation the view is re-projected and handed to the renderer only when it
changed.

Follow-up requests are emitted in exactly two places: after
``gameStarted`` (first question) and when an answer's hold window ends
(next question). Hold windows are tasks keyed by question index so the
terminal transition can cancel them.
"""

import asyncio
import inspect
import logging
from typing import Any, Callable

from .config import COUNTDOWN_CLEAR_DELAY, MAP_HOLD_SECONDS, MCQ_HOLD_SECONDS, TICK_SECONDS
from .errors import InvalidRequestError, MalformedEventError
from .events import (
    CleanRoom,
    InboundEvent,
    LoadGame,
    UnknownEvent,
    build_answer_request,
    build_question_request,
    parse_event,
)
from .projection import View, project
from .session_state import GameMode, Phase, Player, Room, SessionState, TerminalCause
from .timer import TimerCoordinator, task_done_callback
from .transport import Transport
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
)

logger = logging.getLogger(__name__)

Renderer = Callable[[View], Any]

OVERLAY_TIME_OVER = "Game over"
OVERLAY_ALL_FINISHED = "Game has ended"

DEFAULT_HOLD_SECONDS = {
    GameMode.MCQ: MCQ_HOLD_SECONDS,
    GameMode.MAP: MAP_HOLD_SECONDS,
}


class ProtocolDispatcher:
    """Maps inbound events to session mutations and outbound requests.

    Each event kind is handled by a ``handle_<kind>`` method, keeping
    ``dispatch()`` thin and each handler focused on one transition.
    """

    def __init__(
        self,
        state: SessionState,
        transport: Transport,
        *,
        renderer: Renderer | None = None,
        hold_seconds: dict[GameMode, float] | None = None,
        countdown_clear_delay: float = COUNTDOWN_CLEAR_DELAY,
        tick_seconds: float = TICK_SECONDS,
    ):
        self.state = state
        self.transport = transport
        self.renderer = renderer
        self.hold_seconds = dict(DEFAULT_HOLD_SECONDS)
        if hold_seconds:
            self.hold_seconds.update(hold_seconds)
        self.countdown_clear_delay = countdown_clear_delay
        self.timer = TimerCoordinator(
            self._on_timer_tick, self._on_timer_expired, tick_seconds=tick_seconds
        )

        self._lock = asyncio.Lock()
        self._holds: dict[int, asyncio.Task] = {}
        self._held_indices: set[int] = set()
        self._countdown_clear: asyncio.Task | None = None
        self._last_view: View | None = None
        self._cleanup_sent = False
        self._torn_down = False

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @property
    def pending_holds(self) -> dict[int, asyncio.Task]:
        return dict(self._holds)

    @property
    def cleanup_sent(self) -> bool:
        return self._cleanup_sent

    async def _render(self) -> None:
        view = project(self.state)
        if view == self._last_view:
            return
        self._last_view = view
        if self.renderer is None:
            return
        try:
            result = self.renderer(view)
            if inspect.isawaitable(result):
                await result
        except Exception:
            logger.exception("Renderer failed")

    async def refresh(self) -> None:
        """Push the current view to the renderer if it changed."""
        async with self._lock:
            await self._render()

    async def load_room(self, room: Room, roster: list[Player]) -> None:
        """AwaitingRoomInfo -> Waiting, from the join-time room lookup."""
        async with self._lock:
            self.state.load_room(room, roster)
            await self._render()

    async def room_lookup_failed(self, message: str) -> None:
        async with self._lock:
            self.state.fail_room_lookup(message)
            await self._render()

    async def _send(self, request) -> bool:
        return await self.transport.send(request.to_wire())

    async def _request_question(self, index: Any) -> bool:
        if self.state.is_finished:
            logger.debug("Game over, not requesting question %s", index)
            return False
        try:
            request = build_question_request(
                self.state.room_id, self.state.username, index, self.state.num_questions
            )
            self.state.advance_question(index)
        except InvalidRequestError as e:
            logger.warning("Question request dropped: %s", e)
            return False
        return await self._send(request)

    async def _request_answer(self, index: Any, answer: Any) -> bool:
        if self.state.phase is not Phase.IN_PROGRESS:
            logger.warning("Answer dropped: game is not in progress (phase=%s)", self.state.phase.value)
            return False
        if self.state.input_disabled:
            logger.debug("Answer dropped: already answered question %d", self.state.current_question_index)
            return False
        try:
            request = build_answer_request(index, answer, self.state.num_questions)
        except InvalidRequestError as e:
            logger.warning("Answer request dropped: %s", e)
            return False
        self.state.mark_answer_submitted()
        return await self._send(request)

    def _schedule_hold(self, index: int) -> None:
        mode = self.state.room.game_mode if self.state.room else GameMode.MCQ
        delay = self.hold_seconds[mode]
        self._held_indices.add(index)
        task = asyncio.ensure_future(self._hold_then_advance(index, delay))
        task.add_done_callback(task_done_callback)
        self._holds[index] = task

    async def _hold_then_advance(self, index: int, delay: float) -> None:
        await asyncio.sleep(delay)
        async with self._lock:
            self._holds.pop(index, None)
            if self._torn_down or self.state.is_finished:
                return
            if self.state.has_next_question(index):
                await self._request_question(index + 1)
            else:
                logger.info("Answered the last question (%d), waiting for the game to end", index)
            await self._render()

    def _cancel_holds(self) -> None:
        for index, task in list(self._holds.items()):
            if task is not asyncio.current_task():
                task.cancel()
                logger.debug("Cancelled pending hold for question %d", index)
        self._holds.clear()

    async def _clear_countdown_later(self) -> None:
        await asyncio.sleep(self.countdown_clear_delay)
        async with self._lock:
            if self._torn_down:
                return
            if self.state.clear_countdown():
                await self._render()

    def _stop_background(self) -> None:
        self.timer.stop()
        self._cancel_holds()
        if self._countdown_clear is not None and self._countdown_clear is not asyncio.current_task():
            self._countdown_clear.cancel()
        self._countdown_clear = None

    async def _enter_terminal(self, cause: TerminalCause) -> bool:
        if not self.state.finish(cause):
            return False
        self._stop_background()
        self.state.leaderboard_open = True
        if cause is TerminalCause.TIME_OVER:
            self.state.set_remaining(0)
            self.state.overlay = OVERLAY_TIME_OVER
        else:
            self.state.overlay = OVERLAY_ALL_FINISHED
            if not self._cleanup_sent:
                self._cleanup_sent = True
                await self._send(CleanRoom())
        return True

    # ------------------------------------------------------------------
    # Event handlers
    # ------------------------------------------------------------------

    async def handle_player_joined(self, event) -> None:
        if not self.state.upsert_player(event.id, event.username, event.score):
            logger.debug("playerJoined for %s was a no-op", event.id)

    async def handle_player_left(self, event) -> None:
        self.state.remove_player(event.id, event.username)

    async def handle_countdown(self, event) -> None:
        if not self.state.set_countdown(event.count):
            logger.debug("Ignoring countdown %d in phase %s", event.count, self.state.phase.value)
            return
        if event.count == 0 and self._countdown_clear is None:
            self._countdown_clear = asyncio.ensure_future(self._clear_countdown_later())
            self._countdown_clear.add_done_callback(task_done_callback)

    async def handle_game_started(self, event) -> None:
        if not self.state.start_game():
            logger.debug("Duplicate gameStarted ignored (phase=%s)", self.state.phase.value)
            return
        self.timer.start(self.state.remaining_seconds)
        await self._request_question(0)

    async def handle_new_question(self, event) -> None:
        self.state.set_question(event.flag_url, event.options)

    async def handle_answer_result(self, event) -> None:
        feedback = self.state.record_result(event.chosen_answer, event.correct_answer)
        logger.debug(
            "Answer for question %d: chose %r, correct %r",
            feedback.question_index, feedback.chosen_answer, feedback.correct_answer,
        )
        if self.state.is_finished:
            return
        index = feedback.question_index
        if index < 0 or index in self._held_indices:
            logger.debug("Hold for question %d already scheduled", index)
            return
        self._schedule_hold(index)

    async def handle_score(self, event) -> None:
        self.state.update_score(event.username, event.score)

    async def handle_finished_game(self, event) -> None:
        self.state.mark_completed(event.username)
        if event.username == self.state.username:
            self.state.overlay = None
            self.state.leaderboard_open = True

    async def handle_time_over(self, event) -> None:
        await self._enter_terminal(TerminalCause.TIME_OVER)

    async def handle_all_players_finished(self, event) -> None:
        await self._enter_terminal(TerminalCause.ALL_PLAYERS_FINISHED)

    async def handle_server_error(self, event) -> None:
        logger.warning("Server reported an error: %s", event.message)
        self.state.last_server_error = event.message

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------

    # Dispatch table: event kind -> handler method name
    _HANDLERS = {
        EVT_PLAYER_JOINED: "handle_player_joined",
        EVT_PLAYER_LEFT: "handle_player_left",
        EVT_COUNTDOWN: "handle_countdown",
        EVT_GAME_STARTED: "handle_game_started",
        EVT_NEW_QUESTION: "handle_new_question",
        EVT_ANSWER_RESULT: "handle_answer_result",
        EVT_SCORE: "handle_score",
        EVT_FINISHED_GAME: "handle_finished_game",
        EVT_TIME_OVER: "handle_time_over",
        EVT_ALL_PLAYERS_FINISHED: "handle_all_players_finished",
        EVT_SERVER_ERROR: "handle_server_error",
    }

    async def handle(self, frame: Any) -> None:
        """Transport callback: one decoded frame in, at most one render out."""
        try:
            event = parse_event(frame)
        except MalformedEventError as e:
            logger.warning("Dropping frame: %s", e)
            return
        await self.dispatch(event)

    async def dispatch(self, event: InboundEvent) -> None:
        if isinstance(event, UnknownEvent):
            logger.warning("Unhandled WebSocket event: %s", event.kind)
            return
        handler_name = self._HANDLERS.get(event.kind)
        if not handler_name:
            logger.warning("No handler for event kind %s", event.kind)
            return

        async with self._lock:
            if self._torn_down:
                logger.debug("Session torn down, dropping %s", event.kind)
                return
            try:
                await getattr(self, handler_name)(event)
            except Exception:
                logger.exception("Unexpected error handling event kind=%s", event.kind)
            await self._render()

    async def _on_timer_tick(self, remaining: int) -> None:
        async with self._lock:
            if self._torn_down or self.state.is_finished:
                return
            self.state.set_remaining(remaining)
            await self._render()

    async def _on_timer_expired(self) -> None:
        async with self._lock:
            if self._torn_down:
                return
            await self._enter_terminal(TerminalCause.TIME_OVER)
            await self._render()

    # ------------------------------------------------------------------
    # User actions
    # ------------------------------------------------------------------

    async def start_game(self) -> bool:
        """Host's start button: ask the server to begin the countdown."""
        async with self._lock:
            if not self.state.is_host:
                logger.warning("Only the game host can start the game")
                return False
            if self.state.phase is not Phase.WAITING:
                logger.warning("Cannot start the game in phase %s", self.state.phase.value)
                return False
            if not self.transport.is_open:
                logger.error("WebSocket is not open. Cannot start the game.")
                return False
            return await self._send(LoadGame())

    async def submit_answer(self, answer: Any) -> bool:
        """Answer the current question (option text or clicked region name)."""
        async with self._lock:
            sent = await self._request_answer(self.state.current_question_index, answer)
            await self._render()
            return sent

    async def request_answer(self, index: Any, answer: Any) -> bool:
        async with self._lock:
            sent = await self._request_answer(index, answer)
            await self._render()
            return sent

    async def request_question(self, index: Any) -> bool:
        async with self._lock:
            sent = await self._request_question(index)
            await self._render()
            return sent

    async def toggle_leaderboard(self) -> None:
        async with self._lock:
            self.state.leaderboard_open = not self.state.leaderboard_open
            await self._render()

    async def dismiss_overlay(self) -> None:
        async with self._lock:
            self.state.overlay = None
            await self._render()

    # ------------------------------------------------------------------
    # Teardown
    # ------------------------------------------------------------------

    async def connection_closed(self) -> None:
        """Transport close callback. Loss of connection is terminal; nothing is retried."""
        async with self._lock:
            if self._torn_down:
                return
            if not self.state.is_finished:
                logger.error("Connection lost mid-session; the game cannot continue")
                self.state.disconnected = True
            self._stop_background()
            await self._render()
            self._torn_down = True

    async def teardown(self) -> None:
        async with self._lock:
            self._stop_background()
            self._torn_down = True
