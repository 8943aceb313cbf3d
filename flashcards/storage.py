"""Card repository contract and a JSONL-backed implementation."""

import json
import logging
from abc import ABC, abstractmethod
from datetime import datetime, timedelta
from pathlib import Path
from typing import Dict, Iterable, List, Optional

from flashcards.models import Card, StudySessionSummary, parse_timestamp, utcnow
from flashcards.session_log import log_session, read_session_log

logger = logging.getLogger("flashcards.storage")

# Fields callers may never overwrite through update_card
_PROTECTED_FIELDS = frozenset({'id', 'deck_id', 'created_at', 'updated_at'})


class CardRepository(ABC):
    """Persistence collaborator used by the study session."""

    @abstractmethod
    def get_cards_for_deck(self, deck_id: str) -> List[Card]:
        ...

    @abstractmethod
    def get_card(self, deck_id: str, card_id: str) -> Optional[Card]:
        ...

    @abstractmethod
    def update_card(self, deck_id: str, card_id: str, fields: Dict) -> Card:
        """
        Apply a partial update and return the stored card.

        id and created_at never change; updated_at is advanced.
        Raises KeyError if the card does not exist in the deck.
        """
        ...

    @abstractmethod
    def save_study_session_summary(self, summary: StudySessionSummary) -> None:
        ...

    @abstractmethod
    def get_study_sessions(self, deck_id: str) -> List[StudySessionSummary]:
        ...

    @abstractmethod
    def add_cards(self, deck_id: str, cards: Iterable[Card]) -> List[Card]:
        ...


def _advance_timestamp(previous: Optional[datetime]) -> datetime:
    # Two writes inside one clock tick must still move updated_at forward.
    now = utcnow()
    if previous is not None and now <= previous:
        now = previous + timedelta(microseconds=1)
    return now


def apply_card_fields(card: Card, fields: Dict) -> Card:
    """Return a new Card with fields merged in; unknown keys raise KeyError."""
    data = card.to_dict()
    for key, value in fields.items():
        if key not in Card.__dataclass_fields__:
            raise KeyError(f"Unknown card field: {key}")
        if key in _PROTECTED_FIELDS:
            continue
        if key in ('next_review_date', 'last_review_date'):
            value = parse_timestamp(value)
            value = value.isoformat() if value is not None else None
        elif hasattr(value, 'value'):  # enum members
            value = value.value
        elif isinstance(value, list):
            value = list(value)
        data[key] = value
    updated = Card.from_dict(data)
    updated.updated_at = _advance_timestamp(card.updated_at)
    return updated


class DeckStore(CardRepository):
    """
    JSONL-backed card storage.

    Loads entire file into memory on init (fine for <10k cards).
    Writes are atomic: the whole file is rewritten via temp file + rename.
    Session summaries go to a separate append-only log.
    """

    def __init__(self, db_path, session_log_path=None):
        self.db_path = Path(db_path)
        if session_log_path is None:
            session_log_path = self.db_path.parent / 'session_log.jsonl'
        self.session_log_path = Path(session_log_path)
        self._cards: Dict[str, Card] = {}
        self._load()

    def _load(self) -> None:
        if not self.db_path.exists():
            return
        with open(self.db_path, 'r', encoding='utf-8') as f:
            for line in f:
                line = line.strip()
                if not line:
                    continue
                card = Card.from_dict(json.loads(line))
                self._cards[card.id] = card

    def _save(self) -> None:
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.db_path.with_suffix(self.db_path.suffix + '.tmp')
        with open(tmp, 'w', encoding='utf-8') as f:
            for card in self._cards.values():
                f.write(json.dumps(card.to_dict(), ensure_ascii=False) + '\n')
        tmp.replace(self.db_path)

    def add_cards(self, deck_id: str, cards: Iterable[Card]) -> List[Card]:
        """Batch insert -- single save at the end. Existing ids are replaced."""
        added = []
        for card in cards:
            stored = Card.from_dict(card.to_dict())
            stored.deck_id = deck_id
            self._cards[stored.id] = stored
            added.append(stored)
        self._save()
        logger.debug("Stored %d card(s) in deck %s", len(added), deck_id)
        return added

    def get_cards_for_deck(self, deck_id: str) -> List[Card]:
        return [Card.from_dict(c.to_dict()) for c in self._cards.values() if c.deck_id == deck_id]

    def get_card(self, deck_id: str, card_id: str) -> Optional[Card]:
        card = self._cards.get(card_id)
        if card is None or card.deck_id != deck_id:
            return None
        return Card.from_dict(card.to_dict())

    def update_card(self, deck_id: str, card_id: str, fields: Dict) -> Card:
        card = self._cards.get(card_id)
        if card is None or card.deck_id != deck_id:
            raise KeyError(f"Card {card_id} not found in deck {deck_id}")
        updated = apply_card_fields(card, fields)
        self._cards[card_id] = updated
        self._save()
        return Card.from_dict(updated.to_dict())

    def save_study_session_summary(self, summary: StudySessionSummary) -> None:
        log_session(self.session_log_path, summary)

    def get_study_sessions(self, deck_id: str) -> List[StudySessionSummary]:
        return read_session_log(self.session_log_path, deck_id=deck_id)

    def deck_ids(self) -> List[str]:
        return sorted({c.deck_id for c in self._cards.values()})

    def count(self) -> int:
        return len(self._cards)
