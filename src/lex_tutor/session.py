"""Study session state machine and the generation coordinator that feeds it.

A ``StudySession`` walks one generated item sequence (cards, questions or
lesson steps) and is either active or finished/closed. ``StudySessionEngine``
owns at most one session, requests its content from the gateway, and guards
against overlapping or stale generation requests.
"""
import random
from dataclasses import dataclass
from typing import Callable, Iterable, Optional, Sequence

from loguru import logger

from lex_tutor.errors import GenerationFailed, SessionBusy
from lex_tutor.models import StudyFile
from lex_tutor.schemas import SHUFFLED_MODES, STUDY_MODES, RecallStep, parse_study_items

QuizCompleteCallback = Callable[[str, int, int], None]
CompleteCallback = Callable[[str, str], None]


@dataclass(frozen=True)
class AnswerState:
    selected: str
    correct: bool


class StudySession:
    """Live state of one flashcards / quiz / learn / memory palace run."""

    def __init__(
        self,
        mode: str,
        topic: str,
        items: Sequence,
        rng: Optional[random.Random] = None,
        on_quiz_complete: Optional[QuizCompleteCallback] = None,
        on_complete: Optional[CompleteCallback] = None,
        auto_advance: bool = True,
    ):
        if mode not in STUDY_MODES:
            raise ValueError(f"Unknown study mode '{mode}'")
        self.mode = mode
        self.topic = topic
        ordered = list(items)
        if mode in SHUFFLED_MODES:
            # Shuffled once; the order is fixed for the lifetime of the session.
            (rng or random.Random()).shuffle(ordered)
        self.items = tuple(ordered)
        self.on_quiz_complete = on_quiz_complete
        self.on_complete = on_complete
        self.auto_advance = auto_advance

        self.index = 0
        self.score = 0
        self.answers: dict[int, AnswerState] = {}
        self.flipped: set[int] = set()
        self.finished = False
        self.closed = False
        self._reported = False

    @property
    def total(self) -> int:
        return len(self.items)

    @property
    def active(self) -> bool:
        return not (self.finished or self.closed)

    @property
    def current_item(self):
        if not self.active or not self.items:
            return None
        return self.items[self.index]

    @property
    def is_last(self) -> bool:
        return self.index >= self.total - 1

    @property
    def current_answer(self) -> Optional[AnswerState]:
        return self.answers.get(self.index)

    def flip(self) -> bool:
        """Turn the current flashcard over. Returns True when the back is showing."""
        if self.mode != "flashcards" or self.current_item is None:
            return False
        self.flipped ^= {self.index}
        return self.index in self.flipped

    def is_flipped(self) -> bool:
        return self.index in self.flipped

    def prev(self) -> None:
        if not self.active:
            return
        self.index = max(0, self.index - 1)

    def next(self) -> None:
        if not self.active:
            return
        if self.index < self.total - 1:
            self.index += 1
            return
        if self.mode == "quiz":
            self._finish()
        else:
            self.closed = True
            if self.on_complete:
                self.on_complete(self.mode, self.topic)

    def select(self, option: str) -> Optional[AnswerState]:
        """Answer the current question. The first selection per step is final."""
        item = self.current_item
        if item is None:
            return None
        if self.mode == "quiz":
            question = item
        elif self.mode == "memory_palace" and isinstance(item, RecallStep):
            question = item.recall_question
        else:
            return None

        if self.index in self.answers:
            return self.answers[self.index]

        state = AnswerState(selected=option, correct=option == question.correct_answer)
        self.answers[self.index] = state
        if self.mode == "quiz":
            if state.correct:
                self.score += 1
            if self.auto_advance:
                self.next()
        return state

    def close(self) -> None:
        self.closed = True

    def _finish(self) -> None:
        self.finished = True
        if not self._reported:
            self._reported = True
            if self.on_quiz_complete:
                self.on_quiz_complete(self.topic, self.score, self.total)


class StudySessionEngine:
    """Requests study content and hosts the resulting session.

    Each request takes a generation token. ``close()`` bumps the token, so a
    response that arrives for a closed request is dropped without touching
    any state.
    """

    def __init__(
        self,
        gateway,
        on_quiz_complete: Optional[QuizCompleteCallback] = None,
        on_complete: Optional[CompleteCallback] = None,
        rng: Optional[random.Random] = None,
        auto_advance: bool = True,
    ):
        self.gateway = gateway
        self.on_quiz_complete = on_quiz_complete
        self.on_complete = on_complete
        self.rng = rng
        self.auto_advance = auto_advance
        self.session: Optional[StudySession] = None
        self.busy = False
        self._token = 0

    async def start(
        self,
        mode: str,
        topic: str,
        files: Iterable[StudyFile] = (),
        custom_instructions: str = "",
    ) -> Optional[StudySession]:
        if self.busy:
            raise SessionBusy()
        if mode not in STUDY_MODES:
            raise GenerationFailed(f"Unknown study mode '{mode}'")

        self.close()
        self.busy = True
        token = self._token
        logger.info(f"Generating {mode} for '{topic}'")
        try:
            payload = await self.gateway.generate(mode, topic, list(files), custom_instructions)
        except Exception as e:
            if token != self._token:
                logger.info(f"Ignoring failure of a cancelled {mode} request: {e}")
                return None
            if isinstance(e, GenerationFailed):
                raise
            logger.exception(f"Gateway error while generating {mode}")
            raise GenerationFailed(f"Failed to generate study aids. Details: {e}") from e
        finally:
            if token == self._token:
                self.busy = False

        if token != self._token:
            logger.info(f"Discarding {mode} content for '{topic}': request was cancelled")
            return None

        items = parse_study_items(mode, payload)
        self.session = StudySession(
            mode,
            topic,
            items,
            rng=self.rng,
            on_quiz_complete=self.on_quiz_complete,
            on_complete=self.on_complete,
            auto_advance=self.auto_advance,
        )
        return self.session

    def close(self) -> None:
        """Close the current session and invalidate any in-flight request."""
        if self.session is not None:
            self.session.close()
        self.session = None
        self._token += 1
        self.busy = False
