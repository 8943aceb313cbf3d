"""SQLAlchemy-backed CardRepository used by the API server."""

import logging
from typing import Dict, Iterable, List, Optional

from sqlalchemy import select

from flashcards.config import Settings
from flashcards.models import Card, StudySessionSummary, parse_timestamp
from flashcards.storage import CardRepository, apply_card_fields
from server.db.models import CardRow, StudySessionRow
from server.db.session import get_db

logger = logging.getLogger("flashcards.server")

_CARD_COLUMNS = (
    'id', 'deck_id', 'front', 'back', 'front_image', 'back_image',
    'ease_factor', 'interval', 'repetitions', 'next_review_date', 'last_review_date',
    'difficulty', 'answer_validation', 'ai_generated_options', 'created_at', 'updated_at',
)


def _row_to_card(row: CardRow) -> Card:
    # SQLite hands back naive datetimes; parse_timestamp pins them to UTC
    return Card(
        id=row.id,
        deck_id=row.deck_id,
        front=row.front,
        back=row.back,
        front_image=row.front_image,
        back_image=row.back_image,
        ease_factor=row.ease_factor,
        interval=row.interval,
        repetitions=row.repetitions,
        next_review_date=parse_timestamp(row.next_review_date),
        last_review_date=parse_timestamp(row.last_review_date),
        difficulty=row.difficulty,
        answer_validation=row.answer_validation,
        ai_generated_options=list(row.ai_generated_options) if row.ai_generated_options is not None else None,
        created_at=parse_timestamp(row.created_at),
        updated_at=parse_timestamp(row.updated_at),
    )


def _copy_card_to_row(card: Card, row: CardRow) -> None:
    for name in _CARD_COLUMNS:
        value = getattr(card, name)
        if isinstance(value, list):
            value = list(value)
        setattr(row, name, value)


def _row_to_summary(row: StudySessionRow) -> StudySessionSummary:
    return StudySessionSummary(
        deck_id=row.deck_id,
        start_time=parse_timestamp(row.start_time),
        end_time=parse_timestamp(row.end_time),
        cards_studied=row.cards_studied,
        correct_answers=row.correct_answers,
        interaction_type=row.interaction_type,
    )


class SqlCardRepository(CardRepository):
    """Cards and session summaries in the `cards` / `study_sessions` tables."""

    def __init__(self, settings: Settings):
        self.settings = settings

    def add_cards(self, deck_id: str, cards: Iterable[Card]) -> List[Card]:
        added = []
        with get_db(self.settings) as db:
            for card in cards:
                stored = Card.from_dict(card.to_dict())
                stored.deck_id = deck_id
                row = db.get(CardRow, stored.id)
                if row is None:
                    row = CardRow(id=stored.id)
                    db.add(row)
                _copy_card_to_row(stored, row)
                added.append(stored)
        logger.debug("Stored %d card(s) in deck %s", len(added), deck_id)
        return added

    def get_cards_for_deck(self, deck_id: str) -> List[Card]:
        with get_db(self.settings) as db:
            rows = db.scalars(
                select(CardRow).where(CardRow.deck_id == deck_id).order_by(CardRow.created_at, CardRow.id)
            ).all()
            return [_row_to_card(r) for r in rows]

    def get_card(self, deck_id: str, card_id: str) -> Optional[Card]:
        with get_db(self.settings) as db:
            row = db.get(CardRow, card_id)
            if row is None or row.deck_id != deck_id:
                return None
            return _row_to_card(row)

    def update_card(self, deck_id: str, card_id: str, fields: Dict) -> Card:
        with get_db(self.settings) as db:
            row = db.get(CardRow, card_id)
            if row is None or row.deck_id != deck_id:
                raise KeyError(f"Card {card_id} not found in deck {deck_id}")
            updated = apply_card_fields(_row_to_card(row), fields)
            _copy_card_to_row(updated, row)
        return updated

    def save_study_session_summary(self, summary: StudySessionSummary) -> None:
        with get_db(self.settings) as db:
            db.add(StudySessionRow(
                deck_id=summary.deck_id,
                start_time=summary.start_time,
                end_time=summary.end_time,
                cards_studied=summary.cards_studied,
                correct_answers=summary.correct_answers,
                interaction_type=summary.interaction_type,
            ))

    def get_study_sessions(self, deck_id: str) -> List[StudySessionSummary]:
        with get_db(self.settings) as db:
            rows = db.scalars(
                select(StudySessionRow).where(StudySessionRow.deck_id == deck_id).order_by(StudySessionRow.id)
            ).all()
            return [_row_to_summary(r) for r in rows]

