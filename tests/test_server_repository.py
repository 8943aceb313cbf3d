"""Tests for server/repository.py -- SQLAlchemy card repository."""

import asyncio
import sys
import tempfile
from datetime import datetime, timedelta, timezone
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

import pytest
from flashcards.config import Settings
from flashcards.models import Card, StudySessionSummary
from flashcards.session import SessionTiming, StudySession
from server.db.session import get_engine, init_db, reset_engine
from server.repository import SqlCardRepository

NOW = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def repo():
    with tempfile.TemporaryDirectory() as tmp:
        reset_engine()
        settings = Settings(data_root=Path(tmp), database_url='sqlite://')
        init_db(settings)
        try:
            yield SqlCardRepository(settings)
        finally:
            reset_engine()


def _card(card_id, back='answer', days_old=5):
    return Card(
        id=card_id,
        front=f'question {card_id}',
        back=back,
        next_review_date=NOW,
        created_at=NOW - timedelta(days=days_old),
        updated_at=NOW - timedelta(days=days_old),
    )


def test_add_and_get_roundtrip(repo):
    repo.add_cards('deck', [_card('a')])
    card = repo.get_card('deck', 'a')
    assert card.front == 'question a'
    assert card.deck_id == 'deck'
    assert card.next_review_date == NOW
    assert card.next_review_date.tzinfo is not None
    assert card.ai_generated_options is None


def test_get_card_wrong_deck_is_none(repo):
    repo.add_cards('deck', [_card('a')])
    assert repo.get_card('other', 'a') is None
    assert repo.get_card('deck', 'missing') is None


def test_cards_for_deck_ordered_by_creation(repo):
    repo.add_cards('deck', [_card('new', days_old=1), _card('old', days_old=9)])
    repo.add_cards('other', [_card('x')])
    assert [c.id for c in repo.get_cards_for_deck('deck')] == ['old', 'new']


def test_update_card_keeps_created_at(repo):
    original = repo.add_cards('deck', [_card('a')])[0]
    stored = repo.update_card('deck', 'a', {
        'repetitions': 2,
        'interval': 6,
        'last_review_date': NOW,
        'ai_generated_options': ['b', 'c', 'd'],
    })
    assert stored.repetitions == 2
    assert stored.created_at == original.created_at
    assert stored.updated_at > original.updated_at

    reloaded = repo.get_card('deck', 'a')
    assert reloaded.interval == 6
    assert reloaded.last_review_date == NOW
    assert reloaded.ai_generated_options == ['b', 'c', 'd']
    assert reloaded.created_at == original.created_at


def test_update_missing_card_raises(repo):
    repo.add_cards('deck', [_card('a')])
    with pytest.raises(KeyError):
        repo.update_card('deck', 'missing', {'interval': 1})
    with pytest.raises(KeyError):
        repo.update_card('other', 'a', {'interval': 1})


def test_add_existing_id_replaces(repo):
    repo.add_cards('deck', [_card('a', back='first')])
    repo.add_cards('deck', [_card('a', back='second')])
    cards = repo.get_cards_for_deck('deck')
    assert len(cards) == 1
    assert cards[0].back == 'second'


def test_session_summaries(repo):
    for studied in (3, 5):
        repo.save_study_session_summary(StudySessionSummary(
            deck_id='deck',
            start_time=NOW,
            end_time=NOW + timedelta(minutes=2),
            cards_studied=studied,
            correct_answers=studied - 1,
            interaction_type='learn',
        ))
    sessions = repo.get_study_sessions('deck')
    assert [s.cards_studied for s in sessions] == [3, 5]
    assert sessions[0].end_time == NOW + timedelta(minutes=2)
    assert sessions[0].interaction_type == 'learn'
    assert repo.get_study_sessions('other') == []


def test_study_session_against_sql_repository(repo):
    cards = repo.add_cards('deck', [_card('a', back='Paris'), _card('b', back='Rome', days_old=4)])
    session = StudySession('deck', cards, 'test', repo, timing=SessionTiming.immediate(), clock=lambda: NOW)

    async def run():
        await session.start()
        await session.submit_written('Paris')
        await session.submit_written('Oslo')

    asyncio.run(run())
    assert repo.get_card('deck', 'a').repetitions == 1
    assert repo.get_card('deck', 'a').next_review_date == NOW + timedelta(days=1)
    assert repo.get_card('deck', 'b').difficulty == 'medium'
    summary = repo.get_study_sessions('deck')[0]
    assert (summary.cards_studied, summary.correct_answers) == (2, 1)


# ============================================================================
# Engine lifecycle
# ============================================================================

def test_reset_engine_empties_in_memory_database(repo):
    repo.add_cards('deck', [_card('a')])
    reset_engine()
    init_db(repo.settings)
    assert repo.get_card('deck', 'a') is None


def test_engine_follows_database_url(repo):
    repo.add_cards('deck', [_card('a')])
    with tempfile.TemporaryDirectory() as tmp:
        # Missing parent directories are created for file databases
        db_file = Path(tmp) / 'nested' / 'cards.db'
        file_settings = Settings(data_root=Path(tmp), database_url=f'sqlite:///{db_file}')
        init_db(file_settings)
        file_repo = SqlCardRepository(file_settings)
        assert file_repo.get_card('deck', 'a') is None
        file_repo.add_cards('deck', [_card('b')])
        assert db_file.exists()
        assert get_engine(file_settings).url.database == str(db_file)
        reset_engine()
