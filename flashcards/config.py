"""Configuration for the flashcards study engine, CLI and API server."""

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional


def _env_float(name: str, current: float) -> float:
    raw = os.environ.get(name)
    if raw is None:
        return current
    try:
        return float(raw)
    except ValueError:
        return current


def _env_int(name: str, current: int) -> int:
    raw = os.environ.get(name)
    if raw is None:
        return current
    try:
        return int(raw)
    except ValueError:
        return current


@dataclass
class Settings:
    """
    Paths, distractor-generation options and session timing.

    Defaults resolve relative to the project root.
    Every field is overridable at construction for testing.
    """
    data_root: Optional[Path] = None
    study_db_path: Optional[Path] = None
    session_log_path: Optional[Path] = None
    database_url: Optional[str] = None

    # Distractor generation (confusing wrong answers for ai-quiz)
    llm_enabled: bool = False
    llm_provider: str = "ollama"  # ollama | openai
    llm_model: Optional[str] = None
    llm_base_url: Optional[str] = None
    llm_api_key: Optional[str] = None
    llm_timeout_s: int = 20
    llm_temperature: float = 0.8
    llm_concurrency: int = 2

    # Session pacing, in seconds. <= 0 advances immediately.
    written_feedback_delay_s: float = 2.0
    choice_feedback_delay_s: float = 1.0
    match_mismatch_delay_s: float = 0.5
    match_complete_delay_s: float = 2.0

    # API session registry: completed sessions and idle sessions are dropped
    # after this many seconds without a request. <= 0 keeps them.
    completed_session_ttl_s: float = 300.0
    session_idle_ttl_s: float = 6 * 3600.0

    def __post_init__(self):
        project_root = Path(__file__).resolve().parent.parent

        if self.data_root is None:
            env_root = os.environ.get("FLASHCARDS_DATA_ROOT")
            self.data_root = Path(env_root) if env_root else project_root / "flashcards_data"
        self.data_root = Path(self.data_root)

        if self.study_db_path is None:
            self.study_db_path = self.data_root / 'cards.jsonl'
        self.study_db_path = Path(self.study_db_path)

        if self.session_log_path is None:
            self.session_log_path = self.data_root / 'session_log.jsonl'
        self.session_log_path = Path(self.session_log_path)

        if self.database_url is None:
            self.database_url = os.environ.get("DATABASE_URL", "sqlite:///./flashcards.db")

        # Distractor generation env overrides
        if os.environ.get("FLASHCARDS_LLM_ENABLED", "").lower() in ("1", "true", "yes"):
            self.llm_enabled = True
        if os.environ.get("FLASHCARDS_LLM_PROVIDER"):
            self.llm_provider = os.environ["FLASHCARDS_LLM_PROVIDER"]
        if os.environ.get("FLASHCARDS_LLM_MODEL"):
            self.llm_model = os.environ["FLASHCARDS_LLM_MODEL"]
        if os.environ.get("FLASHCARDS_LLM_BASE_URL"):
            self.llm_base_url = os.environ["FLASHCARDS_LLM_BASE_URL"]
        if self.llm_api_key is None:
            self.llm_api_key = os.environ.get("OPENAI_API_KEY")
        self.llm_timeout_s = _env_int("FLASHCARDS_LLM_TIMEOUT_S", self.llm_timeout_s)
        self.llm_concurrency = _env_int("FLASHCARDS_LLM_CONCURRENCY", self.llm_concurrency)

        if self.llm_model is None:
            self.llm_model = "gpt-4o-mini" if self.llm_provider == "openai" else "qwen2.5:7b-instruct"
        if self.llm_base_url is None:
            self.llm_base_url = (
                "https://api.openai.com" if self.llm_provider == "openai"
                else "http://localhost:11434"
            )

        self.written_feedback_delay_s = _env_float(
            "FLASHCARDS_WRITTEN_FEEDBACK_DELAY_S", self.written_feedback_delay_s)
        self.choice_feedback_delay_s = _env_float(
            "FLASHCARDS_CHOICE_FEEDBACK_DELAY_S", self.choice_feedback_delay_s)
        self.match_mismatch_delay_s = _env_float(
            "FLASHCARDS_MATCH_MISMATCH_DELAY_S", self.match_mismatch_delay_s)
        self.match_complete_delay_s = _env_float(
            "FLASHCARDS_MATCH_COMPLETE_DELAY_S", self.match_complete_delay_s)

        self.completed_session_ttl_s = _env_float(
            "FLASHCARDS_COMPLETED_SESSION_TTL_S", self.completed_session_ttl_s)
        self.session_idle_ttl_s = _env_float(
            "FLASHCARDS_SESSION_IDLE_TTL_S", self.session_idle_ttl_s)
