"""Enumerations shared by the scheduler, validator and study session."""

from enum import Enum


class AnswerValidation(str, Enum):
    """How strictly a written answer is compared to the card's back."""
    EXACT = "exact"
    CASE_INSENSITIVE = "case-insensitive"
    TYPO_TOLERANT = "typo-tolerant"
    KEYWORD = "keyword"
    FLEXIBLE = "flexible"


class StudyMode(str, Enum):
    """Which cards enter a session and in what order."""
    DUE = "due"
    DIFFICULT = "difficult"
    UNKNOWN = "unknown"
    RANDOM = "random"
    SEQUENTIAL = "sequential"


class StudyInteractionType(str, Enum):
    """How each card is presented during a session."""
    LEARN = "learn"  # adaptive: multiple choice -> flashcard -> written
    FLASHCARDS = "flashcards"
    TEST = "test"
    MATCH = "match"
    AI_QUIZ = "ai-quiz"


class QuestionType(str, Enum):
    MULTIPLE_CHOICE = "multiple-choice"
    WRITTEN = "written"
    FLASHCARD = "flashcard"


class Difficulty(str, Enum):
    """Display label derived from the last quality rating."""
    UNKNOWN = "unknown"
    HARD = "hard"
    MEDIUM = "medium"
    EASY = "easy"


class FlashcardRating(str, Enum):
    """Simplified self-rating buttons shown after flipping a flashcard."""
    DIDNT_KNOW = "didnt-know"
    HARD = "hard"
    EASY = "easy"


class OptionSource(str, Enum):
    """Where a set of multiple-choice distractors came from."""
    CACHED = "cached"
    GENERATED = "generated"
    FALLBACK = "fallback"


class SessionState(str, Enum):
    READY = "ready"
    ACTIVE = "active"
    FEEDBACK = "feedback"  # answer shown, waiting for auto-advance
    COMPLETE = "complete"


class MatchSide(str, Enum):
    FRONT = "front"
    BACK = "back"


# Quality (0-5) fed to the scheduler for each simplified flashcard button.
FLASHCARD_RATING_QUALITY = {
    FlashcardRating.DIDNT_KNOW: 1,
    FlashcardRating.HARD: 3,
    FlashcardRating.EASY: 5,
}
