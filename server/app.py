"""FastAPI application -- routes for flashcard study sessions."""

import logging
import sys
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from pathlib import Path

_project_root = str(Path(__file__).resolve().parent.parent)
if _project_root not in sys.path:
    sys.path.insert(0, _project_root)

from fastapi import Depends, FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware

from flashcards.card_types import StudyMode
from flashcards.config import Settings
from flashcards.session import SessionStateError
from flashcards.storage import CardRepository
from server.dependencies import get_repository, get_runtime, get_session_registry
from server.runtime import Runtime, SessionRegistry
from server.schemas import (
    ChoiceRequest,
    CreateSessionRequest,
    DeckOrderResponse,
    DeckStatsResponse,
    MatchSelectRequest,
    MatchSelectResponse,
    RateRequest,
    SessionView,
    ValidateAnswerRequest,
    ValidateAnswerResponse,
    ValidationTypesResponse,
    WrittenAnswerRequest,
)
from server.services import session_service, study_service
from server.services.session_service import SessionNotFoundError
from server.services.study_service import DeckNotFoundError

logger = logging.getLogger("flashcards.server")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan: create tables; sessions live in memory only."""
    from server.db.session import init_db
    init_db(Settings())
    ts = datetime.now(timezone.utc).isoformat()
    logger.info("[%s] Startup: begin", ts)
    yield
    ts_end = datetime.now(timezone.utc).isoformat()
    logger.info("[%s] Shutdown: complete", ts_end)


app = FastAPI(title="Flashcards", version="0.1.0", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:3000"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _not_found(e: KeyError) -> HTTPException:
    return HTTPException(status_code=404, detail=e.args[0] if e.args else "Not found")


# ---- Health (no dependencies, always fast) ----

@app.get("/health")
def health():
    """Minimal health check. No deps. Always returns immediately."""
    return {"ok": True}


# ---- Answer validation ----

@app.get("/validation-types", response_model=ValidationTypesResponse)
def validation_types():
    return study_service.list_validation_types()


@app.post("/answers/validate", response_model=ValidateAnswerResponse)
def answers_validate(body: ValidateAnswerRequest):
    """Score a free-text answer against a reference answer."""
    try:
        return study_service.check_answer(body.user_answer, body.correct_answer, body.validation)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


# ---- Decks ----

@app.get("/decks/{deck_id}/stats", response_model=DeckStatsResponse)
def deck_stats(deck_id: str, repository: CardRepository = Depends(get_repository)):
    try:
        return study_service.get_deck_stats(repository, deck_id)
    except DeckNotFoundError as e:
        raise _not_found(e)


@app.get("/decks/{deck_id}/order", response_model=DeckOrderResponse)
def deck_order(
    deck_id: str,
    mode: str = StudyMode.DUE.value,
    seed: int | None = None,
    repository: CardRepository = Depends(get_repository),
):
    """Whole deck in the order a session of this mode would use."""
    try:
        return study_service.get_deck_order(repository, deck_id, mode, seed=seed)
    except DeckNotFoundError as e:
        raise _not_found(e)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


@app.post("/decks/{deck_id}/sessions", response_model=SessionView)
async def create_session(
    deck_id: str,
    body: CreateSessionRequest,
    runtime: Runtime = Depends(get_runtime),
    repository: CardRepository = Depends(get_repository),
):
    """Start a study session over a deck. Returns the first question."""
    try:
        return await session_service.create_session(
            repository,
            runtime.sessions,
            deck_id,
            body.interaction_type,
            body.mode,
            generator=runtime.get_generator(),
            concurrency=runtime.settings.llm_concurrency,
            seed=body.seed,
        )
    except DeckNotFoundError as e:
        raise _not_found(e)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


# ---- Sessions ----

@app.get("/sessions/{session_id}", response_model=SessionView)
def get_session(session_id: str, registry: SessionRegistry = Depends(get_session_registry)):
    try:
        session = session_service.get_live_session(registry, session_id)
    except SessionNotFoundError as e:
        raise _not_found(e)
    return session_service.session_view(session_id, session)


async def _run_action(registry: SessionRegistry, session_id: str, action):
    """Look up a session, apply `action`, map session errors to HTTP codes."""
    try:
        session = session_service.get_live_session(registry, session_id)
    except SessionNotFoundError as e:
        raise _not_found(e)
    try:
        result = await action(session)
        await session.wait_for_advance()
    except SessionStateError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except KeyError as e:
        raise _not_found(e)
    return session, result


@app.post("/sessions/{session_id}/reveal", response_model=SessionView)
async def session_reveal(session_id: str, registry: SessionRegistry = Depends(get_session_registry)):
    async def action(session):
        return session.reveal()
    session, _ = await _run_action(registry, session_id, action)
    return session_service.session_view(session_id, session)


@app.post("/sessions/{session_id}/rate", response_model=SessionView)
async def session_rate(
    session_id: str,
    body: RateRequest,
    registry: SessionRegistry = Depends(get_session_registry),
):
    """Self-rate a flashcard: rating (didnt-know/hard/easy) or raw quality 0-5."""
    async def action(session):
        return await session_service.rate(session, body.rating, body.quality)
    session, _ = await _run_action(registry, session_id, action)
    return session_service.session_view(session_id, session)


@app.post("/sessions/{session_id}/written", response_model=SessionView)
async def session_written(
    session_id: str,
    body: WrittenAnswerRequest,
    registry: SessionRegistry = Depends(get_session_registry),
):
    async def action(session):
        return await session.submit_written(body.text)
    session, _ = await _run_action(registry, session_id, action)
    return session_service.session_view(session_id, session)


@app.post("/sessions/{session_id}/choice", response_model=SessionView)
async def session_choice(
    session_id: str,
    body: ChoiceRequest,
    registry: SessionRegistry = Depends(get_session_registry),
):
    async def action(session):
        return await session.choose_option(body.option)
    session, _ = await _run_action(registry, session_id, action)
    return session_service.session_view(session_id, session)


@app.post("/sessions/{session_id}/match", response_model=MatchSelectResponse)
async def session_match(
    session_id: str,
    body: MatchSelectRequest,
    registry: SessionRegistry = Depends(get_session_registry),
):
    async def action(session):
        return await session_service.select_tile(session, body.side, body.index)
    session, outcome = await _run_action(registry, session_id, action)
    return {"outcome": outcome, "session": session_service.session_view(session_id, session)}


@app.post("/sessions/{session_id}/regenerate-options", response_model=SessionView)
async def session_regenerate_options(session_id: str, registry: SessionRegistry = Depends(get_session_registry)):
    async def action(session):
        return await session.regenerate_options()
    session, _ = await _run_action(registry, session_id, action)
    return session_service.session_view(session_id, session)


@app.post("/sessions/{session_id}/finish", response_model=SessionView)
async def session_finish(session_id: str, registry: SessionRegistry = Depends(get_session_registry)):
    """Save the summary of a session whose last answer could not be recorded as complete."""
    async def action(session):
        return await session.finish()
    session, _ = await _run_action(registry, session_id, action)
    return session_service.session_view(session_id, session)


@app.post("/sessions/{session_id}/reset", response_model=SessionView)
async def session_reset(session_id: str, registry: SessionRegistry = Depends(get_session_registry)):
    """Discard progress and start the same card sequence over."""
    async def action(session):
        session.reset()
        await session.start()
    session, _ = await _run_action(registry, session_id, action)
    return session_service.session_view(session_id, session)


@app.delete("/sessions/{session_id}")
def delete_session(session_id: str, registry: SessionRegistry = Depends(get_session_registry)):
    if registry.remove(session_id) is None:
        raise HTTPException(status_code=404, detail=f"Session not found: {session_id}")
    return {"ok": True}
