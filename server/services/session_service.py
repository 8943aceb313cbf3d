"""Live study sessions for the API -- creation, views and answer actions."""

import logging
import random
from typing import Dict, Optional

from flashcards.card_types import StudyInteractionType, StudyMode
from flashcards.distractors import DistractorGenerator, DistractorProvider
from flashcards.scheduler import prepare_study_cards
from flashcards.session import SessionTiming, StudySession
from flashcards.storage import CardRepository
from server.runtime import SessionRegistry
from server.services.study_service import load_deck

logger = logging.getLogger("flashcards.server")


class SessionNotFoundError(KeyError):
    """No live session with the requested id."""


def session_view(session_id: str, session: StudySession) -> Dict:
    question = session.current_question()
    return {
        'session_id': session_id,
        'deck_id': session.deck_id,
        'interaction_type': session.interaction_type.value,
        'state': session.state.value,
        'question': question.to_dict() if question is not None else None,
        'progress': session.progress().to_dict(),
        'feedback': session.feedback.to_dict() if session.feedback is not None else None,
        'match': session.match.to_dict() if session.match is not None else None,
        'summary': _summary_dict(session),
    }


def _summary_dict(session: StudySession) -> Optional[Dict]:
    if session.summary is None:
        return None
    d = session.summary.to_dict()
    d['accuracy'] = round(session.summary.accuracy, 4)
    return d


async def create_session(
    repository: CardRepository,
    registry: SessionRegistry,
    deck_id: str,
    interaction_type: str,
    mode: str,
    generator: Optional[DistractorGenerator] = None,
    concurrency: int = 2,
    seed: Optional[int] = None,
) -> Dict:
    """
    Build, start and register a session.

    HTTP sessions use immediate timing: the client paces feedback itself.
    """
    interaction = StudyInteractionType(interaction_type)
    mode = StudyMode(mode)
    cards = prepare_study_cards(load_deck(repository, deck_id), mode)
    rng = random.Random(seed) if seed is not None else None

    distractors = None
    if interaction == StudyInteractionType.AI_QUIZ:
        distractors = DistractorProvider(
            repository,
            generator,
            deck_id=deck_id,
            deck_answers=[c.back for c in cards],
            rng=rng,
            concurrency=concurrency,
        )

    session = StudySession(
        deck_id,
        cards,
        interaction,
        repository,
        distractors=distractors,
        timing=SessionTiming.immediate(),
        rng=rng,
    )
    await session.start()
    session_id = registry.add(session)
    logger.info("Created %s session %s for deck %s (%d cards)",
                interaction.value, session_id, deck_id, len(cards))
    return session_view(session_id, session)


def get_live_session(registry: SessionRegistry, session_id: str) -> StudySession:
    session = registry.get(session_id)
    if session is None:
        raise SessionNotFoundError(f"Session not found: {session_id}")
    return session


async def rate(session: StudySession, rating: Optional[str], quality: Optional[int]) -> None:
    if rating is None and quality is None:
        raise ValueError("Either rating or quality is required")
    await session.rate(rating if rating is not None else quality)


async def select_tile(session: StudySession, side: str, index: int) -> str:
    outcome = await session.select_match_tile(side, index)
    return outcome.value
