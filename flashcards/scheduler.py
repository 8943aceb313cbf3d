"""SM-2 spaced repetition scheduler and study-order helpers."""

import math
import random
from datetime import datetime, timedelta
from typing import Dict, List, Optional, Sequence, TypeVar

from flashcards.card_types import Difficulty, StudyMode
from flashcards.models import Card, ScheduleUpdate, utcnow

T = TypeVar('T')

MIN_EASE_FACTOR = 1.3
PASSING_QUALITY = 3
MASTERED_REPETITIONS = 5


def _round_half_up(value: float) -> int:
    # Intervals are non-negative, so floor(x + 0.5) rounds halves upward.
    return int(math.floor(value + 0.5))


def validate_quality(quality: int) -> None:
    if isinstance(quality, bool) or not isinstance(quality, int):
        raise ValueError(f"Quality must be an integer 0-5, got {quality!r}")
    if not (0 <= quality <= 5):
        raise ValueError(f"Quality must be 0-5, got {quality}")


def calculate_next_review(
    card: Card,
    quality: int,
    now: Optional[datetime] = None,
) -> ScheduleUpdate:
    """
    SM-2 spaced repetition step.

    Args:
        card:    Card snapshot (ease_factor, interval, repetitions are read)
        quality: Recall grade 0-5 (0=blackout, 5=perfect)
        now:     Grading time; the next review is counted from here

    Returns:
        ScheduleUpdate with ease_factor, interval, repetitions, next_review_date
    """
    validate_quality(quality)

    if quality < PASSING_QUALITY:
        # Failed recall: start the card over
        repetitions = 0
        interval = 0
    else:
        if card.repetitions == 0:
            interval = 1
        elif card.repetitions == 1:
            interval = 6
        else:
            interval = _round_half_up(card.interval * card.ease_factor)
        repetitions = card.repetitions + 1

    # EF' = EF + (0.1 - (5-q) * (0.08 + (5-q) * 0.02)), on success and failure alike
    ease_factor = card.ease_factor + (0.1 - (5 - quality) * (0.08 + (5 - quality) * 0.02))
    ease_factor = max(MIN_EASE_FACTOR, ease_factor)

    if now is None:
        now = utcnow()

    return ScheduleUpdate(
        ease_factor=ease_factor,
        interval=interval,
        repetitions=repetitions,
        next_review_date=now + timedelta(days=interval),
    )


def is_due(card: Card, now: Optional[datetime] = None) -> bool:
    if now is None:
        now = utcnow()
    return card.next_review_date <= now


def is_unknown(card: Card) -> bool:
    """Never successfully reviewed and never graded at all."""
    return card.repetitions == 0 and card.last_review_date is None


def get_due_cards(cards: Sequence[Card], now: Optional[datetime] = None) -> List[Card]:
    if now is None:
        now = utcnow()
    return [c for c in cards if is_due(c, now)]


def get_unknown_cards(cards: Sequence[Card]) -> List[Card]:
    return [c for c in cards if is_unknown(c)]


def difficulty_score(card: Card) -> float:
    """Lower score = harder card."""
    return card.ease_factor * (card.repetitions + 1)


def sort_by_difficulty(cards: Sequence[Card], ascending: bool = False) -> List[Card]:
    """
    Sort cards by difficulty.

    ascending=True runs from easiest to hardest (highest score first);
    ascending=False puts the hardest cards (lowest score) first.
    Ties keep their input order in both directions.
    """
    if ascending:
        return sorted(cards, key=lambda c: -difficulty_score(c))
    return sorted(cards, key=difficulty_score)


def quality_to_difficulty(quality: int) -> Difficulty:
    validate_quality(quality)
    if quality <= 1:
        return Difficulty.HARD
    if quality <= 3:
        return Difficulty.MEDIUM
    return Difficulty.EASY


def shuffle(items: Sequence[T], rng=None) -> List[T]:
    """Return a uniformly shuffled copy (Fisher-Yates)."""
    if rng is None:
        rng = random
    result = list(items)
    for i in range(len(result) - 1, 0, -1):
        j = rng.randrange(i + 1)
        result[i], result[j] = result[j], result[i]
    return result


def get_study_order(
    cards: Sequence[Card],
    mode,
    rng=None,
    now: Optional[datetime] = None,
) -> List[Card]:
    """
    Order cards for a study session.

    Modes:
        due:        due cards first, each group by next_review_date ascending
        difficult:  hardest first (see sort_by_difficulty)
        unknown:    unknown cards by created_at, then known cards as given
        random:     uniform permutation
        sequential: created_at ascending
    """
    mode = StudyMode(mode)
    if now is None:
        now = utcnow()

    if mode == StudyMode.DUE:
        return sorted(cards, key=lambda c: (not is_due(c, now), c.next_review_date))

    if mode == StudyMode.DIFFICULT:
        return sort_by_difficulty(cards, ascending=False)

    if mode == StudyMode.UNKNOWN:
        unknown = sorted(get_unknown_cards(cards), key=lambda c: c.created_at)
        known = [c for c in cards if not is_unknown(c)]
        return unknown + known

    if mode == StudyMode.RANDOM:
        return shuffle(cards, rng)

    return sorted(cards, key=lambda c: c.created_at)


def prepare_study_cards(
    cards: Sequence[Card],
    mode,
    rng=None,
    now: Optional[datetime] = None,
) -> List[Card]:
    """Filter a deck for the chosen mode, then order it for the session."""
    mode = StudyMode(mode)
    if now is None:
        now = utcnow()
    if mode == StudyMode.DUE:
        cards = get_due_cards(cards, now)
    elif mode == StudyMode.UNKNOWN:
        cards = get_unknown_cards(cards)
    return get_study_order(cards, mode, rng=rng, now=now)


def get_study_stats(cards: Sequence[Card], now: Optional[datetime] = None) -> Dict[str, int]:
    """Deck statistics. 'due' is counted independently of the other buckets."""
    if now is None:
        now = utcnow()
    return {
        'total': len(cards),
        'due': sum(1 for c in cards if is_due(c, now)),
        'new': sum(1 for c in cards if is_unknown(c)),
        'learning': sum(1 for c in cards if 0 < c.repetitions < MASTERED_REPETITIONS),
        'mastered': sum(1 for c in cards if c.repetitions >= MASTERED_REPETITIONS),
    }
