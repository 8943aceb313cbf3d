"""Tests for flashcards/storage.py and flashcards/session_log.py -- JSONL card storage."""

import json
import sys
import tempfile
from datetime import datetime, timedelta, timezone
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

import pytest
from flashcards.card_types import Difficulty
from flashcards.models import Card, StudySessionSummary
from flashcards.session_log import log_session, read_session_log
from flashcards.storage import DeckStore, apply_card_fields

NOW = datetime(2024, 1, 15, 8, 0, tzinfo=timezone.utc)


def _make_card(card_id='c1', front='What is X?', back='X is a thing.'):
    return Card(id=card_id, front=front, back=back, created_at=NOW - timedelta(days=3),
                updated_at=NOW - timedelta(days=3))


def test_add_and_get():
    with tempfile.TemporaryDirectory() as tmp:
        store = DeckStore(Path(tmp) / 'cards.jsonl')
        store.add_cards('deck', [_make_card()])
        card = store.get_card('deck', 'c1')
        assert card is not None
        assert card.deck_id == 'deck'
        assert card.front == 'What is X?'
        assert store.get_card('other-deck', 'c1') is None


def test_get_returns_copies():
    with tempfile.TemporaryDirectory() as tmp:
        store = DeckStore(Path(tmp) / 'cards.jsonl')
        store.add_cards('deck', [_make_card()])
        card = store.get_card('deck', 'c1')
        card.back = 'mutated'
        assert store.get_card('deck', 'c1').back == 'X is a thing.'


def test_update_card_applies_fields_and_advances_updated_at():
    with tempfile.TemporaryDirectory() as tmp:
        store = DeckStore(Path(tmp) / 'cards.jsonl')
        original = store.add_cards('deck', [_make_card()])[0]
        stored = store.update_card('deck', 'c1', {
            'ease_factor': 2.6,
            'interval': 1,
            'repetitions': 1,
            'next_review_date': NOW + timedelta(days=1),
            'last_review_date': NOW,
            'difficulty': Difficulty.EASY,
        })
        assert stored.ease_factor == 2.6
        assert stored.interval == 1
        assert stored.difficulty == 'easy'
        assert stored.next_review_date == NOW + timedelta(days=1)
        assert stored.created_at == original.created_at
        assert stored.updated_at > original.updated_at


def test_update_card_ignores_protected_fields():
    with tempfile.TemporaryDirectory() as tmp:
        store = DeckStore(Path(tmp) / 'cards.jsonl')
        original = store.add_cards('deck', [_make_card()])[0]
        stored = store.update_card('deck', 'c1', {
            'id': 'hijack',
            'deck_id': 'elsewhere',
            'created_at': NOW,
            'interval': 6,
        })
        assert stored.id == 'c1'
        assert stored.deck_id == 'deck'
        assert stored.created_at == original.created_at
        assert stored.interval == 6


def test_update_card_unknown_field_raises():
    with tempfile.TemporaryDirectory() as tmp:
        store = DeckStore(Path(tmp) / 'cards.jsonl')
        store.add_cards('deck', [_make_card()])
        with pytest.raises(KeyError):
            store.update_card('deck', 'c1', {'lapses': 3})


def test_update_missing_card_raises():
    with tempfile.TemporaryDirectory() as tmp:
        store = DeckStore(Path(tmp) / 'cards.jsonl')
        store.add_cards('deck', [_make_card()])
        with pytest.raises(KeyError):
            store.update_card('deck', 'nonexistent', {'interval': 1})
        with pytest.raises(KeyError):
            store.update_card('other-deck', 'c1', {'interval': 1})


def test_repeated_updates_keep_updated_at_increasing():
    card = _make_card()
    card.updated_at = datetime.now(timezone.utc) + timedelta(hours=1)
    first = apply_card_fields(card, {'interval': 1})
    second = apply_card_fields(first, {'interval': 2})
    assert card.updated_at < first.updated_at < second.updated_at


def test_persistence_across_reloads():
    with tempfile.TemporaryDirectory() as tmp:
        path = Path(tmp) / 'cards.jsonl'
        store = DeckStore(path)
        store.add_cards('deck', [_make_card('c1'), _make_card('c2', front='Y?', back='Y')])
        store.update_card('deck', 'c2', {'ai_generated_options': ['a', 'b', 'c']})

        reloaded = DeckStore(path)
        assert reloaded.count() == 2
        assert reloaded.deck_ids() == ['deck']
        assert reloaded.get_card('deck', 'c2').ai_generated_options == ['a', 'b', 'c']


def test_file_is_one_json_object_per_line():
    with tempfile.TemporaryDirectory() as tmp:
        path = Path(tmp) / 'cards.jsonl'
        DeckStore(path).add_cards('deck', [_make_card('c1'), _make_card('c2')])
        lines = path.read_text(encoding='utf-8').strip().split('\n')
        assert len(lines) == 2
        assert {json.loads(line)['id'] for line in lines} == {'c1', 'c2'}


def test_cards_for_deck_filters():
    with tempfile.TemporaryDirectory() as tmp:
        store = DeckStore(Path(tmp) / 'cards.jsonl')
        store.add_cards('a', [_make_card('a1')])
        store.add_cards('b', [_make_card('b1'), _make_card('b2')])
        assert sorted(c.id for c in store.get_cards_for_deck('b')) == ['b1', 'b2']
        assert store.get_cards_for_deck('missing') == []


# ============================================================================
# Session log
# ============================================================================

def _summary(deck_id='deck', studied=4, correct=3):
    return StudySessionSummary(
        deck_id=deck_id,
        start_time=NOW,
        end_time=NOW + timedelta(minutes=5),
        cards_studied=studied,
        correct_answers=correct,
        interaction_type='test',
    )


def test_log_session_writes_record():
    with tempfile.TemporaryDirectory() as tmp:
        log_path = Path(tmp) / 'logs' / 'session_log.jsonl'
        record = log_session(log_path, _summary())
        assert log_path.exists()
        assert record['accuracy'] == 0.75
        assert record['duration_seconds'] == 300.0
        assert record['interaction_type'] == 'test'


def test_read_session_log_filters_by_deck():
    with tempfile.TemporaryDirectory() as tmp:
        log_path = Path(tmp) / 'session_log.jsonl'
        log_session(log_path, _summary('a'))
        log_session(log_path, _summary('b', studied=2, correct=2))
        log_session(log_path, _summary('a', studied=1, correct=0))
        assert len(read_session_log(log_path)) == 3
        records = read_session_log(log_path, deck_id='a')
        assert [r.cards_studied for r in records] == [4, 1]
        assert records[0].start_time == NOW


def test_read_missing_log_is_empty():
    with tempfile.TemporaryDirectory() as tmp:
        assert read_session_log(Path(tmp) / 'nope.jsonl') == []


def test_store_saves_summaries_next_to_cards():
    with tempfile.TemporaryDirectory() as tmp:
        store = DeckStore(Path(tmp) / 'cards.jsonl')
        store.save_study_session_summary(_summary())
        assert store.session_log_path == Path(tmp) / 'session_log.jsonl'
        assert store.get_study_sessions('deck')[0].correct_answers == 3
