"""Pydantic request/response schemas for the flashcards API."""

from typing import Any, Dict, List, Optional
from pydantic import BaseModel, Field


# ---- Answer validation ----

class ValidationTypeInfo(BaseModel):
    value: str
    description: str


class ValidationTypesResponse(BaseModel):
    types: List[ValidationTypeInfo]


class ValidateAnswerRequest(BaseModel):
    user_answer: str = Field(..., max_length=5000)
    correct_answer: str = Field(..., max_length=5000)
    validation: str = "flexible"


class ValidateAnswerResponse(BaseModel):
    is_correct: bool
    similarity: float


# ---- Decks ----

class DeckStatsResponse(BaseModel):
    deck_id: str
    total: int
    due: int
    new: int
    learning: int
    mastered: int
    sessions: int


class CardSummary(BaseModel):
    id: str
    front: str
    back: str
    ease_factor: float
    interval: int
    repetitions: int
    next_review_date: str
    difficulty: str


class DeckOrderResponse(BaseModel):
    deck_id: str
    mode: str
    cards: List[CardSummary]


# ---- Sessions ----

class CreateSessionRequest(BaseModel):
    interaction_type: str = "flashcards"
    mode: str = "due"
    seed: Optional[int] = None


class QuestionSchema(BaseModel):
    card_id: str
    question_type: str
    front: str
    back: Optional[str] = None
    options: Optional[List[str]] = None
    option_source: Optional[str] = None
    front_image: Optional[str] = None
    back_image: Optional[str] = None


class ProgressSchema(BaseModel):
    position: int
    total: int
    cards_studied: int
    correct_answers: int
    accuracy: float


class SessionView(BaseModel):
    session_id: str
    deck_id: str
    interaction_type: str
    state: str
    question: Optional[QuestionSchema] = None
    progress: ProgressSchema
    feedback: Optional[Dict[str, Any]] = None
    match: Optional[Dict[str, Any]] = None
    summary: Optional[Dict[str, Any]] = None


class RateRequest(BaseModel):
    rating: Optional[str] = Field(default=None, pattern="^(didnt-know|hard|easy)$")
    quality: Optional[int] = Field(default=None, ge=0, le=5)


class WrittenAnswerRequest(BaseModel):
    text: str = Field(..., max_length=5000)


class ChoiceRequest(BaseModel):
    option: str = Field(..., max_length=5000)


class MatchSelectRequest(BaseModel):
    side: str = Field(..., pattern="^(front|back)$")
    index: int = Field(..., ge=0)


class MatchSelectResponse(BaseModel):
    outcome: str
    session: SessionView
