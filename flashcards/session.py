"""
Study session orchestration.

A StudySession walks an ordered card sequence in one of five interaction
types, picks how each card is asked, scores the response, pushes SM-2
updates through the repository and emits a summary when done. Timed
transitions (feedback display, match clears) run as asyncio tasks tagged
with the session epoch so reset() can drop them safely.
"""

import asyncio
import logging
import random
import time
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Callable, Dict, List, Optional, Sequence, Tuple, Union

from flashcards.card_types import (
    FLASHCARD_RATING_QUALITY,
    FlashcardRating,
    QuestionType,
    SessionState,
    StudyInteractionType,
)
from flashcards.distractors.service import DistractorProvider, build_options
from flashcards.match import MatchEngine, MatchOutcome
from flashcards.models import Card, CardProgress, StudySessionSummary, ValidationResult, utcnow
from flashcards.scheduler import (
    PASSING_QUALITY,
    calculate_next_review,
    quality_to_difficulty,
    validate_quality,
)
from flashcards.validator import generate_multiple_choice_options, validate_answer

logger = logging.getLogger("flashcards.session")

STREAK_TO_CHANGE_LEVEL = 2
CHOICE_CORRECT_QUALITY = 4
CHOICE_WRONG_QUALITY = 2
OPTION_COUNT = 4

# Easiest to hardest question type in learn mode
_LEVELS = [QuestionType.MULTIPLE_CHOICE, QuestionType.FLASHCARD, QuestionType.WRITTEN]


class SessionStateError(RuntimeError):
    """An operation was called that the session's current state does not allow."""


@dataclass(frozen=True)
class SessionTiming:
    """Pause lengths in seconds. A value <= 0 makes the transition immediate."""
    written_feedback_delay_s: float = 2.0
    choice_feedback_delay_s: float = 1.0
    match_mismatch_delay_s: float = 0.5
    match_complete_delay_s: float = 2.0

    @classmethod
    def immediate(cls) -> 'SessionTiming':
        return cls(0.0, 0.0, 0.0, 0.0)

    @classmethod
    def from_settings(cls, settings) -> 'SessionTiming':
        return cls(
            written_feedback_delay_s=settings.written_feedback_delay_s,
            choice_feedback_delay_s=settings.choice_feedback_delay_s,
            match_mismatch_delay_s=settings.match_mismatch_delay_s,
            match_complete_delay_s=settings.match_complete_delay_s,
        )


@dataclass(frozen=True)
class Question:
    card_id: str
    question_type: QuestionType
    front: str
    back: Optional[str] = None  # only once revealed or answered
    options: Optional[List[str]] = None
    option_source: Optional[str] = None
    front_image: Optional[str] = None
    back_image: Optional[str] = None

    def to_dict(self) -> Dict:
        return {
            'card_id': self.card_id,
            'question_type': self.question_type.value,
            'front': self.front,
            'back': self.back,
            'options': list(self.options) if self.options is not None else None,
            'option_source': self.option_source,
            'front_image': self.front_image,
            'back_image': self.back_image,
        }


@dataclass(frozen=True)
class SessionProgress:
    position: int
    total: int
    cards_studied: int
    correct_answers: int

    @property
    def accuracy(self) -> float:
        if not self.cards_studied:
            return 0.0
        return self.correct_answers / self.cards_studied

    def to_dict(self) -> Dict:
        return {
            'position': self.position,
            'total': self.total,
            'cards_studied': self.cards_studied,
            'correct_answers': self.correct_answers,
            'accuracy': round(self.accuracy, 4),
        }


@dataclass(frozen=True)
class AnswerFeedback:
    is_correct: bool
    quality: int
    correct_answer: str
    similarity: Optional[float] = None  # None for self-ratings

    def to_dict(self) -> Dict:
        return {
            'is_correct': self.is_correct,
            'quality': self.quality,
            'correct_answer': self.correct_answer,
            'similarity': self.similarity,
        }


def advance_progress(progress: CardProgress, is_correct: bool) -> CardProgress:
    """
    Learn-mode step for one card.

    Two correct answers move the card one level harder; the correct streak
    is kept after escalation and only cleared when the card regresses. Two
    incorrect answers move it one level easier and clear both streaks.
    """
    level = _LEVELS.index(progress.current_question_type)
    if is_correct:
        streak = progress.correct_streak + 1
        if streak >= STREAK_TO_CHANGE_LEVEL:
            level = min(level + 1, len(_LEVELS) - 1)
        return replace(progress, correct_streak=streak, current_question_type=_LEVELS[level])

    streak = progress.incorrect_streak + 1
    if streak >= STREAK_TO_CHANGE_LEVEL:
        return CardProgress(
            correct_streak=0,
            incorrect_streak=0,
            current_question_type=_LEVELS[max(level - 1, 0)],
        )
    return replace(progress, incorrect_streak=streak)


def written_quality(result: ValidationResult) -> int:
    """Quality for a typed answer: near-exact 5, accepted 4, rejected 2."""
    if not result.is_correct:
        return 2
    return 5 if result.similarity > 0.95 else 4


def _rating_quality(rating: Union[FlashcardRating, str, int]) -> int:
    if isinstance(rating, FlashcardRating):
        return FLASHCARD_RATING_QUALITY[rating]
    if isinstance(rating, str):
        return FLASHCARD_RATING_QUALITY[FlashcardRating(rating)]
    validate_quality(rating)
    return rating


class StudySession:
    """
    One study session over an ordered card sequence.

    Lifecycle: ready -> (start) -> active <-> feedback -> complete.
    reset() returns to ready from any state. Answer operations raise
    SessionStateError outside the active state or when they do not fit
    the current question type.
    """

    def __init__(
        self,
        deck_id: str,
        cards: Sequence[Card],
        interaction_type,
        repository,
        distractors: Optional[DistractorProvider] = None,
        timing: Optional[SessionTiming] = None,
        rng: Optional[random.Random] = None,
        clock: Callable[[], datetime] = utcnow,
        timer: Callable[[], float] = time.monotonic,
    ):
        self.deck_id = deck_id
        self.interaction_type = StudyInteractionType(interaction_type)
        self.repository = repository
        self.timing = timing or SessionTiming()
        self.rng = rng
        self.clock = clock
        self.timer = timer
        self._initial_cards = list(cards)
        self._deck_answers = [c.back for c in self._initial_cards]
        if distractors is None and self.interaction_type == StudyInteractionType.AI_QUIZ:
            # No generator: every card gets local fallback options
            distractors = DistractorProvider(
                repository, None, deck_id=deck_id, deck_answers=self._deck_answers, rng=rng,
            )
        self.distractors = distractors

        self._epoch = 0
        self._tasks: List[asyncio.Task] = []
        self._clear_task: Optional[asyncio.Task] = None
        self._clear_state()

    def _clear_state(self) -> None:
        self.cards: List[Card] = list(self._initial_cards)
        self.state = SessionState.READY
        self.index = 0
        self.cards_studied = 0
        self.correct_answers = 0
        self.start_time: Optional[datetime] = None
        self.card_progress: Dict[str, CardProgress] = {}
        self.match: Optional[MatchEngine] = None
        self.feedback: Optional[AnswerFeedback] = None
        self.summary: Optional[StudySessionSummary] = None
        self._question_type: Optional[QuestionType] = None
        self._revealed = False
        self._options: Optional[List[str]] = None
        self._option_source: Optional[str] = None
        # (cards_studied, correct_answers) of a completion whose summary save failed
        self._pending_completion: Optional[Tuple[int, int]] = None

    # -- lifecycle ---------------------------------------------------------

    async def start(self) -> None:
        if self.state != SessionState.READY:
            raise SessionStateError(f"Session already started (state={self.state.value})")
        self.start_time = self.clock()

        if not self.cards:
            logger.info("Session for deck %s has no cards; nothing to study", self.deck_id)
            self.state = SessionState.COMPLETE
            return

        self.state = SessionState.ACTIVE
        logger.info(
            "Started %s session for deck %s with %d card(s)",
            self.interaction_type.value, self.deck_id, len(self.cards),
        )
        if self.interaction_type == StudyInteractionType.MATCH:
            self.match = MatchEngine(self.cards, rng=self.rng, clock=self.timer)
            return
        await self._prepare_question()

    def reset(self) -> None:
        """Drop all session state and pending timers. Stored card updates stay."""
        self._epoch += 1
        self._cancel_tasks()
        self._clear_state()
        logger.debug("Session for deck %s reset (epoch %d)", self.deck_id, self._epoch)

    async def finish(self) -> Optional[StudySessionSummary]:
        """
        Retry saving the summary after every card was answered.

        Completing a session stores its summary; if that store failed the
        session stays active with no cards left and this call saves it
        again. Returns the summary of an already complete session.
        """
        if self.state == SessionState.COMPLETE:
            return self.summary
        if self._pending_completion is None:
            raise SessionStateError("Session still has cards to study")
        await self._complete(*self._pending_completion)
        return self.summary

    def close(self) -> None:
        """Cancel pending timers without touching state."""
        self._epoch += 1
        self._cancel_tasks()

    async def wait_for_advance(self) -> None:
        """
        Wait until every scheduled transition has run.

        Re-raises the failure of a delayed transition, e.g. a repository
        error while storing the answered card.
        """
        while self._tasks:
            task = self._tasks[0]
            await asyncio.wait([task])
            if task in self._tasks:
                self._tasks.remove(task)
            if not task.cancelled() and task.exception() is not None:
                raise task.exception()

    # -- read model --------------------------------------------------------

    def current_card(self) -> Optional[Card]:
        if self.interaction_type == StudyInteractionType.MATCH:
            return None
        if self.state == SessionState.COMPLETE or self.index >= len(self.cards):
            return None
        return self.cards[self.index]

    def current_question(self) -> Optional[Question]:
        card = self.current_card()
        if card is None or self._question_type is None:
            return None
        show_back = self._revealed or self.state == SessionState.FEEDBACK
        return Question(
            card_id=card.id,
            question_type=self._question_type,
            front=card.front,
            back=card.back if show_back else None,
            options=list(self._options) if self._options is not None else None,
            option_source=self._option_source,
            front_image=card.front_image,
            back_image=card.back_image if show_back else None,
        )

    def progress(self) -> SessionProgress:
        total = len(self.cards)
        if self.match is not None:
            total = self.match.pair_count
        return SessionProgress(
            position=min(self.index + 1, total),
            total=total,
            cards_studied=self.cards_studied,
            correct_answers=self.correct_answers,
        )

    # -- answers -----------------------------------------------------------

    def reveal(self) -> Question:
        """Flip the current flashcard."""
        self._require(QuestionType.FLASHCARD)
        self._revealed = True
        return self.current_question()

    async def rate(self, rating: Union[FlashcardRating, str, int]) -> AnswerFeedback:
        """Self-rate the current flashcard: a FlashcardRating or a raw 0-5 quality."""
        card = self._require(QuestionType.FLASHCARD)
        quality = _rating_quality(rating)
        is_correct = quality >= PASSING_QUALITY
        self.feedback = AnswerFeedback(is_correct=is_correct, quality=quality, correct_answer=card.back)
        await self._record_and_advance(self._epoch, quality, is_correct)
        return self.feedback

    async def submit_written(self, text: str) -> AnswerFeedback:
        card = self._require(QuestionType.WRITTEN)
        result = validate_answer(text, card.back, card.answer_validation)
        quality = written_quality(result)
        self.feedback = AnswerFeedback(
            is_correct=result.is_correct,
            quality=quality,
            correct_answer=card.back,
            similarity=result.similarity,
        )
        await self._show_feedback(self.timing.written_feedback_delay_s, quality, result.is_correct)
        return self.feedback

    async def choose_option(self, option: str) -> AnswerFeedback:
        card = self._require(QuestionType.MULTIPLE_CHOICE)
        if self._options is None:
            raise SessionStateError("Options are not ready yet")
        if option not in self._options:
            raise ValueError(f"Not one of the offered options: {option!r}")
        is_correct = option.strip().lower() == card.back.strip().lower()
        quality = CHOICE_CORRECT_QUALITY if is_correct else CHOICE_WRONG_QUALITY
        self.feedback = AnswerFeedback(
            is_correct=is_correct,
            quality=quality,
            correct_answer=card.back,
            similarity=1.0 if is_correct else 0.0,
        )
        await self._show_feedback(self.timing.choice_feedback_delay_s, quality, is_correct)
        return self.feedback

    async def regenerate_options(self) -> Question:
        """Ask for a fresh set of ai-quiz distractors for the current card."""
        if self.interaction_type != StudyInteractionType.AI_QUIZ:
            raise SessionStateError("Only ai-quiz sessions have generated options")
        card = self._require(QuestionType.MULTIPLE_CHOICE)
        epoch, index = self._epoch, self.index
        result = await self.distractors.get_confusing_options(card, regenerate=True)
        if epoch != self._epoch or index != self.index:
            return self.current_question()
        self._options = build_options(card.back, result.options, self.rng)
        self._option_source = result.source.value
        return self.current_question()

    async def select_match_tile(self, side, index: int) -> MatchOutcome:
        if self.interaction_type != StudyInteractionType.MATCH:
            raise SessionStateError("Tile selection is only available in match sessions")
        self._require_active()

        if self._clear_task is not None and not self._clear_task.done():
            self._clear_task.cancel()
        self._clear_task = None

        outcome = self.match.select(side, index)
        if outcome == MatchOutcome.MISMATCHED:
            self._clear_task = await self._schedule(self.timing.match_mismatch_delay_s, self._clear_wrong)
        elif outcome == MatchOutcome.COMPLETE:
            self.state = SessionState.FEEDBACK
            logger.info(
                "Matched %d pair(s) in %.1fs for deck %s",
                self.match.pair_count, self.match.elapsed_seconds, self.deck_id,
            )
            await self._schedule(self.timing.match_complete_delay_s, self._finish_match)
        return outcome

    # -- internals ---------------------------------------------------------

    def _require_active(self) -> None:
        if self.state == SessionState.COMPLETE:
            raise SessionStateError("Session is complete; reset() to study again")
        if self._pending_completion is not None:
            raise SessionStateError("Session summary was not saved; call finish() to retry")
        if self.state != SessionState.ACTIVE:
            raise SessionStateError(f"Session is not accepting answers (state={self.state.value})")

    def _require(self, question_type: QuestionType) -> Card:
        self._require_active()
        card = self.current_card()
        if card is None or self._question_type != question_type:
            current = self._question_type.value if self._question_type else None
            raise SessionStateError(
                f"Current question is {current}, not {question_type.value}")
        return card

    def _question_type_for(self, card: Card) -> QuestionType:
        if self.interaction_type == StudyInteractionType.FLASHCARDS:
            return QuestionType.FLASHCARD
        if self.interaction_type == StudyInteractionType.TEST:
            return QuestionType.WRITTEN
        if self.interaction_type == StudyInteractionType.AI_QUIZ:
            return QuestionType.MULTIPLE_CHOICE
        progress = self.card_progress.get(card.id, CardProgress())
        return progress.current_question_type

    async def _prepare_question(self) -> None:
        card = self.cards[self.index]
        self._question_type = self._question_type_for(card)
        self._revealed = False
        self._options = None
        self._option_source = None
        if self._question_type != QuestionType.MULTIPLE_CHOICE:
            return

        if self.interaction_type == StudyInteractionType.AI_QUIZ:
            epoch, index = self._epoch, self.index
            result = await self.distractors.get_confusing_options(card)
            # Results arriving after a reset or advance belong to an old question
            if epoch != self._epoch or index != self.index:
                return
            self._options = build_options(card.back, result.options, self.rng)
            self._option_source = result.source.value
        else:
            self._options = generate_multiple_choice_options(
                card.back, self._deck_answers, count=OPTION_COUNT, rng=self.rng)

    async def _show_feedback(self, delay: float, quality: int, is_correct: bool) -> None:
        self.state = SessionState.FEEDBACK
        epoch = self._epoch
        await self._schedule(delay, lambda: self._record_and_advance(epoch, quality, is_correct))

    async def _record_and_advance(self, epoch: int, quality: int, is_correct: bool) -> None:
        if epoch != self._epoch:
            return
        card = self.cards[self.index]
        now = self.clock()
        update = calculate_next_review(card, quality, now=now)
        fields = update.to_fields()
        fields['difficulty'] = quality_to_difficulty(quality)
        fields['last_review_date'] = now
        try:
            stored = self.repository.update_card(self.deck_id, card.id, fields)
        except Exception:
            # The question stays open so the answer can be retried
            if self.state == SessionState.FEEDBACK:
                self.state = SessionState.ACTIVE
            raise
        if epoch != self._epoch:
            return

        self.cards[self.index] = stored
        # reset() restarts from these, so they must carry the stored schedule
        self._initial_cards = [stored if c.id == stored.id else c for c in self._initial_cards]
        self.cards_studied += 1
        if quality >= PASSING_QUALITY:
            self.correct_answers += 1
        if self.interaction_type == StudyInteractionType.LEARN:
            previous = self.card_progress.get(card.id, CardProgress())
            self.card_progress[card.id] = advance_progress(previous, is_correct)
        logger.debug("Card %s graded quality=%d interval=%d", card.id, quality, update.interval)
        await self._advance()

    async def _advance(self) -> None:
        self.index += 1
        if self.index >= len(self.cards):
            self._question_type = None
            await self._complete(self.cards_studied, self.correct_answers)
            return
        self.state = SessionState.ACTIVE
        await self._prepare_question()

    async def _clear_wrong(self) -> None:
        if self.match is not None:
            self.match.clear_wrong()

    async def _finish_match(self) -> None:
        pairs = self.match.pair_count
        self.cards_studied = pairs
        self.correct_answers = pairs
        await self._complete(pairs, pairs)

    async def _complete(self, cards_studied: int, correct_answers: int) -> None:
        summary = StudySessionSummary(
            deck_id=self.deck_id,
            start_time=self.start_time,
            end_time=self.clock(),
            cards_studied=cards_studied,
            correct_answers=correct_answers,
            interaction_type=self.interaction_type.value,
        )
        try:
            self.repository.save_study_session_summary(summary)
        except Exception:
            self._pending_completion = (cards_studied, correct_answers)
            if self.state == SessionState.FEEDBACK:
                self.state = SessionState.ACTIVE
            logger.warning("Summary for deck %s not saved; finish() retries it", self.deck_id)
            raise
        self._pending_completion = None
        self.summary = summary
        self.state = SessionState.COMPLETE
        logger.info(
            "Completed session for deck %s: %d/%d correct",
            self.deck_id, correct_answers, cards_studied,
        )

    async def _schedule(self, delay: float, action) -> Optional[asyncio.Task]:
        """Run `action` after `delay` seconds, or inline when delay <= 0."""
        if delay <= 0:
            await action()
            return None
        epoch = self._epoch

        async def _later():
            await asyncio.sleep(delay)
            if epoch == self._epoch:
                await action()

        task = asyncio.ensure_future(_later())
        self._tasks.append(task)
        task.add_done_callback(self._task_done)
        return task

    def _task_done(self, task: asyncio.Task) -> None:
        if task.cancelled():
            if task in self._tasks:
                self._tasks.remove(task)
            return
        if task.exception() is not None:
            # Kept in _tasks so wait_for_advance() can re-raise it
            logger.error("Scheduled transition failed for deck %s: %s", self.deck_id, task.exception())
            return
        if task in self._tasks:
            self._tasks.remove(task)

    def _cancel_tasks(self) -> None:
        for task in self._tasks:
            task.cancel()
        self._tasks = []
        self._clear_task = None
