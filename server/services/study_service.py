"""Study engine service wrappers -- all return JSON-serializable dicts."""

import random
from typing import Dict, Optional

from flashcards.card_types import AnswerValidation, StudyMode
from flashcards.models import Card
from flashcards.scheduler import get_study_order, get_study_stats
from flashcards.storage import CardRepository
from flashcards.validator import get_validation_description, validate_answer


class DeckNotFoundError(KeyError):
    """No cards exist for the requested deck."""


def _card_to_summary(card: Card) -> Dict:
    """Convert a Card to a JSON-safe summary dict."""
    return {
        'id': card.id,
        'front': card.front,
        'back': card.back,
        'ease_factor': card.ease_factor,
        'interval': card.interval,
        'repetitions': card.repetitions,
        'next_review_date': card.next_review_date.isoformat(),
        'difficulty': card.difficulty,
    }


def load_deck(repository: CardRepository, deck_id: str):
    cards = repository.get_cards_for_deck(deck_id)
    if not cards:
        raise DeckNotFoundError(f"Deck not found: {deck_id}")
    return cards


def get_deck_stats(repository: CardRepository, deck_id: str) -> Dict:
    cards = load_deck(repository, deck_id)
    stats = get_study_stats(cards)
    return {
        'deck_id': deck_id,
        **stats,
        'sessions': len(repository.get_study_sessions(deck_id)),
    }


def get_deck_order(repository: CardRepository, deck_id: str, mode: str, seed: Optional[int] = None) -> Dict:
    """Order the whole deck for a mode (no filtering)."""
    mode = StudyMode(mode)
    cards = load_deck(repository, deck_id)
    rng = random.Random(seed) if seed is not None else None
    ordered = get_study_order(cards, mode, rng=rng)
    return {
        'deck_id': deck_id,
        'mode': mode.value,
        'cards': [_card_to_summary(c) for c in ordered],
    }


def list_validation_types() -> Dict:
    return {
        'types': [
            {'value': v.value, 'description': get_validation_description(v)}
            for v in AnswerValidation
        ],
    }


def check_answer(user_answer: str, correct_answer: str, validation: str) -> Dict:
    return validate_answer(user_answer, correct_answer, validation).to_dict()
