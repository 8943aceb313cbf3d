"""Data models for the study engine: cards, per-session progress and summaries."""

import uuid
from dataclasses import dataclass, field, asdict
from datetime import datetime, timezone
from typing import Dict, List, Optional

from flashcards.card_types import AnswerValidation, Difficulty, QuestionType


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def parse_timestamp(value) -> Optional[datetime]:
    """Accept a datetime or ISO string; naive values are taken as UTC."""
    if value is None or value == '':
        return None
    if isinstance(value, datetime):
        dt = value
    else:
        dt = datetime.fromisoformat(str(value))
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def _format_timestamp(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None


def make_card_id() -> str:
    return str(uuid.uuid4())


_TIMESTAMP_FIELDS = ('next_review_date', 'last_review_date', 'created_at', 'updated_at')


@dataclass
class Card:
    """
    A flashcard snapshot with SM-2 scheduling metadata.

    The repository owns the stored card; the study engine only reads
    snapshots and hands back partial updates.
    """
    id: str = field(default_factory=make_card_id)
    deck_id: str = ''
    front: str = ''
    back: str = ''
    front_image: Optional[str] = None
    back_image: Optional[str] = None

    # SM-2 scheduling fields
    ease_factor: float = 2.5
    interval: int = 0
    repetitions: int = 0
    next_review_date: datetime = field(default_factory=utcnow)
    last_review_date: Optional[datetime] = None

    difficulty: str = Difficulty.UNKNOWN.value
    answer_validation: str = AnswerValidation.FLEXIBLE.value
    ai_generated_options: Optional[List[str]] = None

    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)

    def to_dict(self) -> Dict:
        d = asdict(self)
        for name in _TIMESTAMP_FIELDS:
            d[name] = _format_timestamp(d[name])
        d['difficulty'] = Difficulty(self.difficulty).value
        d['answer_validation'] = AnswerValidation(self.answer_validation).value
        return d

    @classmethod
    def from_dict(cls, data: Dict) -> 'Card':
        data = dict(data)  # shallow copy
        known = cls.__dataclass_fields__
        data = {k: v for k, v in data.items() if k in known}
        for name in _TIMESTAMP_FIELDS:
            if name in data:
                data[name] = parse_timestamp(data[name])
        for name in ('next_review_date', 'created_at', 'updated_at'):
            if name in data and data[name] is None:
                del data[name]
        if data.get('answer_validation') is None:
            data.pop('answer_validation', None)
        if data.get('difficulty') is None:
            data.pop('difficulty', None)
        return cls(**data)


@dataclass(frozen=True)
class ScheduleUpdate:
    """Scheduling fields produced by one SM-2 step."""
    ease_factor: float
    interval: int
    repetitions: int
    next_review_date: datetime

    def to_fields(self) -> Dict:
        return {
            'ease_factor': self.ease_factor,
            'interval': self.interval,
            'repetitions': self.repetitions,
            'next_review_date': self.next_review_date,
        }


@dataclass(frozen=True)
class ValidationResult:
    is_correct: bool
    similarity: float

    def to_dict(self) -> Dict:
        return {'is_correct': self.is_correct, 'similarity': self.similarity}


@dataclass(frozen=True)
class CardProgress:
    """
    Adaptive learn-mode progress for one card within one session.

    Frozen: every transition builds a new value, so the orchestrator's
    progress map never shares mutable state.
    """
    correct_streak: int = 0
    incorrect_streak: int = 0
    current_question_type: QuestionType = QuestionType.MULTIPLE_CHOICE


@dataclass
class StudySessionSummary:
    """Emitted once when a session completes."""
    deck_id: str
    start_time: datetime
    end_time: datetime
    cards_studied: int
    correct_answers: int
    interaction_type: Optional[str] = None

    @property
    def accuracy(self) -> float:
        if not self.cards_studied:
            return 0.0
        return self.correct_answers / self.cards_studied

    def to_dict(self) -> Dict:
        return {
            'deck_id': self.deck_id,
            'start_time': _format_timestamp(self.start_time),
            'end_time': _format_timestamp(self.end_time),
            'cards_studied': self.cards_studied,
            'correct_answers': self.correct_answers,
            'interaction_type': self.interaction_type,
        }

    @classmethod
    def from_dict(cls, data: Dict) -> 'StudySessionSummary':
        return cls(
            deck_id=data['deck_id'],
            start_time=parse_timestamp(data['start_time']),
            end_time=parse_timestamp(data['end_time']),
            cards_studied=int(data.get('cards_studied', 0)),
            correct_answers=int(data.get('correct_answers', 0)),
            interaction_type=data.get('interaction_type'),
        )
