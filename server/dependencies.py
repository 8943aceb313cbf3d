"""FastAPI dependency factories."""

import sys
from functools import lru_cache
from pathlib import Path

_project_root = str(Path(__file__).resolve().parent.parent)
if _project_root not in sys.path:
    sys.path.insert(0, _project_root)

from fastapi import Depends

from flashcards.config import Settings
from flashcards.storage import CardRepository
from server.runtime import Runtime, SessionRegistry, runtime_from_settings

# Process-wide Runtime cache (keyed by settings identity for override support)
_runtime: Runtime | None = None
_runtime_settings_id: object | None = None


@lru_cache()
def get_settings() -> Settings:
    """Singleton Settings -- override via app.dependency_overrides in tests."""
    return Settings()


def get_runtime(settings: Settings = Depends(get_settings)) -> Runtime:
    """Process-wide Runtime cache for the repository, generator and live sessions."""
    global _runtime, _runtime_settings_id
    # Recreate if settings were overridden (e.g. in tests)
    if _runtime is None or _runtime_settings_id is not settings:
        if _runtime is not None:
            _runtime.sessions.clear()
        _runtime = runtime_from_settings(settings)
        _runtime_settings_id = settings
    return _runtime


def get_repository(runtime: Runtime = Depends(get_runtime)) -> CardRepository:
    """Cached card repository from Runtime (process-wide)."""
    return runtime.get_repository()


def get_session_registry(runtime: Runtime = Depends(get_runtime)) -> SessionRegistry:
    return runtime.sessions
