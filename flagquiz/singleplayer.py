"""Single-player game loop.

The question list comes with its answer keys, so answers are checked
locally; nothing goes over the WebSocket.
"""

from __future__ import annotations

import logging
import random
from dataclasses import dataclass, field

from .errors import InvalidRequestError
from .projection import progress_label
from .rooms_api import RoomsAPI, SinglePlayerQuestion
from .session_state import GameMode

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SinglePlayerAnswer:
    question_index: int
    chosen_answer: str
    correct_answer: str

    @property
    def is_correct(self) -> bool:
        return self.chosen_answer == self.correct_answer


@dataclass
class SinglePlayerGame:
    questions: list[SinglePlayerQuestion]
    game_mode: GameMode = GameMode.MCQ
    index: int = 0
    score: int = 0
    answers: list[SinglePlayerAnswer] = field(default_factory=list)
    rng: random.Random = field(default_factory=random.Random, repr=False)

    def __post_init__(self):
        if not self.questions:
            raise InvalidRequestError("A game needs at least one question")

    @property
    def total(self) -> int:
        return len(self.questions)

    @property
    def finished(self) -> bool:
        return self.index >= self.total

    @property
    def current(self) -> SinglePlayerQuestion | None:
        return None if self.finished else self.questions[self.index]

    @property
    def progress(self) -> str:
        return progress_label(min(self.index, self.total - 1), self.total)

    @property
    def summary(self) -> str:
        return f"Your score: {self.score}/{self.total}"

    def shuffled_options(self) -> list[str]:
        question = self.current
        if question is None or self.game_mode is not GameMode.MCQ:
            return []
        options = list(question.options)
        self.rng.shuffle(options)
        return options

    def answer(self, choice: str) -> SinglePlayerAnswer:
        """Check ``choice`` against the current question and move on."""
        question = self.current
        if question is None:
            raise InvalidRequestError("The game is already over")
        if not choice or not choice.strip():
            raise InvalidRequestError(f"Invalid answer: {choice!r}")

        result = SinglePlayerAnswer(self.index, choice, question.answer)
        self.answers.append(result)
        if result.is_correct:
            self.score += 1
        self.index += 1
        if self.finished:
            logger.info("Single-player game over: %s", self.summary)
        return result


async def start_singleplayer_game(
    api: RoomsAPI, num_questions: int, game_mode: str, *, seed: int | None = None
) -> SinglePlayerGame:
    """Fetch a question list and wrap it in a fresh game."""
    questions = await api.fetch_singleplayer_questions(num_questions, game_mode)
    logger.info("Starting single-player game: %d %s questions", len(questions), game_mode)
    return SinglePlayerGame(questions, game_mode=GameMode(game_mode), rng=random.Random(seed))
