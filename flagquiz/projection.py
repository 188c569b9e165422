"""Render-ready view derived from SessionState.

Pure functions only: ``project()`` reads the state and never mutates it,
so the dispatcher can call it after every event and compare the result
with the previous view to decide whether the renderer needs a call.
"""

from __future__ import annotations

from dataclasses import dataclass

from .session_state import AnswerFeedback, GameMode, Phase, SessionState, TerminalCause

START_TEXT = "START!"


@dataclass(frozen=True)
class LeaderboardRow:
    rank: int
    player_id: str
    username: str
    score: int
    is_me: bool
    completed: bool


@dataclass(frozen=True)
class View:
    phase: Phase
    terminal_cause: TerminalCause | None
    room_code: str | None
    host: str | None
    game_mode: GameMode | None
    player_names: tuple[str, ...]
    leaderboard: tuple[LeaderboardRow, ...]
    show_waiting_room: bool
    show_start_button: bool
    countdown_text: str | None
    progress_label: str | None
    show_mcq: bool
    show_map: bool
    flag_url: str | None
    options: tuple[str, ...]
    input_enabled: bool
    feedback: AnswerFeedback | None
    timer_text: str
    overlay: str | None
    leaderboard_open: bool
    room_error: str | None
    server_error: str | None
    disconnected: bool

    @property
    def player_count(self) -> int:
        return len(self.player_names)


def format_clock(seconds: int) -> str:
    """Seconds -> ``M:SS``."""
    seconds = max(0, seconds)
    return f"{seconds // 60}:{seconds % 60:02d}"


def progress_label(index: int, total: int) -> str:
    return f"Question {index + 1} of {total}"


def build_leaderboard(state: SessionState) -> tuple[LeaderboardRow, ...]:
    """Descending by score; ties keep roster (insertion) order."""
    ordered = sorted(state.players.values(), key=lambda p: -p.score)
    return tuple(
        LeaderboardRow(
            rank=i + 1,
            player_id=p.id,
            username=p.username,
            score=p.score,
            is_me=state.is_me(p),
            completed=p.completed,
        )
        for i, p in enumerate(ordered)
    )


def _countdown_text(state: SessionState) -> str | None:
    if not state.countdown_visible or state.countdown is None:
        return None
    return START_TEXT if state.countdown == 0 else str(state.countdown)


def project(state: SessionState) -> View:
    room = state.room
    question = state.current_question
    in_game = state.phase is Phase.IN_PROGRESS and question is not None

    label = None
    if room is not None and state.current_question_index >= 0:
        label = progress_label(state.current_question_index, room.num_questions)

    return View(
        phase=state.phase,
        terminal_cause=state.terminal_cause,
        room_code=room.code if room else None,
        host=room.host if room else None,
        game_mode=room.game_mode if room else None,
        player_names=tuple(p.username for p in state.players.values()),
        leaderboard=build_leaderboard(state),
        show_waiting_room=state.phase is Phase.WAITING,
        show_start_button=state.phase is Phase.WAITING and state.is_host,
        countdown_text=_countdown_text(state),
        progress_label=label,
        show_mcq=in_game and question.display_mode is GameMode.MCQ,
        show_map=in_game and question.display_mode is GameMode.MAP,
        flag_url=question.flag_url if question else None,
        options=(question.options or ()) if question else (),
        input_enabled=in_game and not state.input_disabled,
        feedback=state.last_result,
        timer_text=format_clock(state.remaining_seconds),
        overlay=state.overlay,
        leaderboard_open=state.leaderboard_open,
        room_error=state.room_error,
        server_error=state.last_server_error,
        disconnected=state.disconnected,
    )
