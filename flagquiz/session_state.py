"""Session state for one multiplayer room: the single source of truth.

Only the dispatcher writes to a ``SessionState``. Every mutator keeps the
invariants below and reports whether anything actually changed, so
duplicate deliveries of the same logical event are no-ops:

- ``current_question_index`` never decreases and stays below
  ``room.num_questions``.
- a player's score never decreases.
- the first terminal cause wins; later ones are ignored.
"""

from __future__ import annotations

import logging
import random
from dataclasses import dataclass, field
from enum import Enum
from typing import Iterable

from .errors import InvalidRequestError
from .ws_constants import MODE_MAP, MODE_MCQ

logger = logging.getLogger(__name__)


class Phase(str, Enum):
    AWAITING_ROOM_INFO = "awaiting_room_info"
    WAITING = "waiting"
    COUNTDOWN = "countdown"
    IN_PROGRESS = "in_progress"
    FINISHED = "finished"


class TerminalCause(str, Enum):
    TIME_OVER = "time_over"
    ALL_PLAYERS_FINISHED = "all_players_finished"


class GameMode(str, Enum):
    MCQ = MODE_MCQ
    MAP = MODE_MAP


@dataclass(frozen=True)
class Room:
    code: str
    host: str
    num_questions: int
    time_limit: int  # minutes
    game_mode: GameMode


@dataclass
class Player:
    id: str
    username: str
    score: int = 0
    completed: bool = False


@dataclass(frozen=True)
class Question:
    display_mode: GameMode
    flag_url: str
    options: tuple[str, ...] | None = None


@dataclass(frozen=True)
class AnswerFeedback:
    """Transient result of the last answer. Display only, never merged into scores."""

    question_index: int
    chosen_answer: str
    correct_answer: str

    @property
    def is_correct(self) -> bool:
        return self.chosen_answer == self.correct_answer


@dataclass
class SessionState:
    username: str
    room_id: str
    phase: Phase = Phase.AWAITING_ROOM_INFO
    room: Room | None = None
    players: dict[str, Player] = field(default_factory=dict)
    current_question_index: int = -1
    current_question: Question | None = None
    remaining_seconds: int = 0
    is_host: bool = False
    local_player_id: str | None = None
    countdown: int | None = None
    countdown_visible: bool = False
    input_disabled: bool = False
    last_result: AnswerFeedback | None = None
    terminal_cause: TerminalCause | None = None
    overlay: str | None = None
    leaderboard_open: bool = False
    room_error: str | None = None
    last_server_error: str | None = None
    disconnected: bool = False
    rng: random.Random = field(default_factory=random.Random, repr=False, compare=False)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    @property
    def is_finished(self) -> bool:
        return self.phase is Phase.FINISHED

    @property
    def num_questions(self) -> int:
        return self.room.num_questions if self.room else 0

    def find_player_by_username(self, username: str) -> Player | None:
        for player in self.players.values():
            if player.username == username:
                return player
        return None

    def is_me(self, player: Player) -> bool:
        if self.local_player_id is not None:
            return player.id == self.local_player_id
        return player.username == self.username

    def has_next_question(self, index: int) -> bool:
        return index + 1 < self.num_questions

    # ------------------------------------------------------------------
    # Room & roster
    # ------------------------------------------------------------------

    def load_room(self, room: Room, players: Iterable[Player] = ()) -> None:
        """Populate the room from the join-time lookup and seed the roster."""
        if self.phase is not Phase.AWAITING_ROOM_INFO:
            raise RuntimeError(f"Room already loaded (phase={self.phase.value})")
        self.room = room
        self.is_host = self.username == room.host
        self.remaining_seconds = room.time_limit * 60
        for p in players:
            self.upsert_player(p.id, p.username, p.score)
        self.room_error = None
        self.phase = Phase.WAITING
        logger.info(
            "Loaded room %s (%s, %d questions, %d min, host=%s, players=%d)",
            room.code, room.game_mode.value, room.num_questions, room.time_limit,
            room.host, len(self.players),
        )

    def fail_room_lookup(self, message: str) -> None:
        self.room_error = message

    def upsert_player(self, player_id: str, username: str, score: int | None = None) -> bool:
        """Add a player or correct an existing entry's name. Never lowers a score."""
        existing = self.players.get(player_id)
        changed = False
        if existing is None:
            self.players[player_id] = Player(id=player_id, username=username, score=score or 0)
            changed = True
        else:
            if existing.username != username:
                existing.username = username
                changed = True
            if score is not None and score > existing.score:
                existing.score = score
                changed = True

        if self.local_player_id is None and username == self.username:
            self.local_player_id = player_id
            changed = True
        return changed

    def remove_player(self, player_id: str, username: str) -> bool:
        """Remove a player, unless the recorded name no longer matches (stale leave)."""
        existing = self.players.get(player_id)
        if existing is None:
            return False
        if existing.username != username:
            logger.debug(
                "Ignoring stale leave for %s: recorded %r, event %r",
                player_id, existing.username, username,
            )
            return False
        del self.players[player_id]
        return True

    def update_score(self, username: str, score: int) -> bool:
        player = self.find_player_by_username(username)
        if player is None:
            logger.debug("Score for unknown player %r ignored", username)
            return False
        if score <= player.score:
            return False
        player.score = score
        return True

    def mark_completed(self, username: str) -> bool:
        player = self.find_player_by_username(username)
        if player is None or player.completed:
            return False
        player.completed = True
        return True

    # ------------------------------------------------------------------
    # Phase machine
    # ------------------------------------------------------------------

    def set_countdown(self, count: int) -> bool:
        if self.phase not in (Phase.WAITING, Phase.COUNTDOWN):
            return False
        if self.phase is Phase.COUNTDOWN and self.countdown == count and self.countdown_visible:
            return False
        self.phase = Phase.COUNTDOWN
        self.countdown = count
        self.countdown_visible = True
        return True

    def clear_countdown(self) -> bool:
        if not self.countdown_visible:
            return False
        self.countdown_visible = False
        return True

    def start_game(self) -> bool:
        if self.phase not in (Phase.WAITING, Phase.COUNTDOWN):
            return False
        self.phase = Phase.IN_PROGRESS
        self.countdown_visible = False
        if self.room:
            self.remaining_seconds = self.room.time_limit * 60
        logger.info("Game started in room %s", self.room_id)
        return True

    def advance_question(self, index: int) -> bool:
        """Move the cursor to ``index`` ahead of requesting it."""
        if index < 0 or index >= self.num_questions:
            raise InvalidRequestError(
                f"Question index {index} out of range for {self.num_questions} questions"
            )
        if index < self.current_question_index:
            raise InvalidRequestError(
                f"Question index {index} is behind the current index {self.current_question_index}"
            )
        if index == self.current_question_index:
            return False
        self.current_question_index = index
        return True

    def set_question(self, flag_url: str, options: list[str] | None) -> None:
        mode = self.room.game_mode if self.room else GameMode.MCQ
        shuffled = None
        if options is not None:
            shuffled = list(options)
            self.rng.shuffle(shuffled)
            shuffled = tuple(shuffled)
        self.current_question = Question(display_mode=mode, flag_url=flag_url, options=shuffled)
        self.input_disabled = False
        self.last_result = None

    def mark_answer_submitted(self) -> None:
        self.input_disabled = True

    def record_result(self, chosen: str, correct: str) -> AnswerFeedback:
        self.last_result = AnswerFeedback(
            question_index=self.current_question_index,
            chosen_answer=chosen,
            correct_answer=correct,
        )
        self.input_disabled = True
        return self.last_result

    def set_remaining(self, seconds: int) -> bool:
        seconds = max(0, seconds)
        if seconds == self.remaining_seconds:
            return False
        self.remaining_seconds = seconds
        return True

    def finish(self, cause: TerminalCause) -> bool:
        """Enter the terminal phase. Returns False if a cause was already recorded."""
        if self.terminal_cause is not None:
            logger.debug(
                "Ignoring terminal cause %s, already finished by %s",
                cause.value, self.terminal_cause.value,
            )
            return False
        self.terminal_cause = cause
        self.phase = Phase.FINISHED
        self.countdown_visible = False
        self.input_disabled = True
        logger.info("Session finished: %s", cause.value)
        return True
