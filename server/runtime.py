from __future__ import annotations

import logging
import threading
import time
import uuid
from typing import TYPE_CHECKING, Callable, Dict, List, Optional, Tuple

from flashcards.card_types import SessionState
from flashcards.distractors import DistractorGenerator, build_generator
from flashcards.session import StudySession
from server.repository import SqlCardRepository

if TYPE_CHECKING:
    from flashcards.config import Settings

logger = logging.getLogger("flashcards.server")


class SessionRegistry:
   """
   Live study sessions keyed by id.

   The registry itself is guarded by a lock; sessions are only ever driven
   from the app's event loop. Completed sessions are dropped once they have
   gone `completed_ttl_s` without a request, and any session after
   `idle_ttl_s`. A ttl <= 0 disables that rule.
   """

   def __init__(
      self,
      completed_ttl_s: float = 300.0,
      idle_ttl_s: float = 6 * 3600.0,
      clock: Callable[[], float] = time.monotonic,
   ):
      self.completed_ttl_s = completed_ttl_s
      self.idle_ttl_s = idle_ttl_s
      self.clock = clock
      self._lock = threading.Lock()
      # id -> (session, clock value of the last add/get)
      self._sessions: Dict[str, Tuple[StudySession, float]] = {}

   def add(self, session: StudySession) -> str:
      session_id = uuid.uuid4().hex
      with self._lock:
         expired = self._prune_locked()
         self._sessions[session_id] = (session, self.clock())
      self._close_all(expired)
      return session_id

   def get(self, session_id: str) -> Optional[StudySession]:
      with self._lock:
         expired = self._prune_locked()
         entry = self._sessions.get(session_id)
         if entry is not None:
            self._sessions[session_id] = (entry[0], self.clock())
      self._close_all(expired)
      return entry[0] if entry is not None else None

   def remove(self, session_id: str) -> Optional[StudySession]:
      with self._lock:
         entry = self._sessions.pop(session_id, None)
      if entry is None:
         return None
      entry[0].close()
      return entry[0]

   def prune(self) -> int:
      """Drop expired sessions now. Returns how many were dropped."""
      with self._lock:
         expired = self._prune_locked()
      self._close_all(expired)
      return len(expired)

   def ids(self) -> List[str]:
      with self._lock:
         return list(self._sessions)

   def clear(self) -> None:
      with self._lock:
         sessions = [session for session, _ in self._sessions.values()]
         self._sessions.clear()
      self._close_all(sessions)

   def _expired(self, session: StudySession, idle: float) -> bool:
      if 0 < self.idle_ttl_s <= idle:
         return True
      return session.state == SessionState.COMPLETE and 0 < self.completed_ttl_s <= idle

   def _prune_locked(self) -> List[StudySession]:
      now = self.clock()
      expired_ids = [
         session_id for session_id, (session, touched) in self._sessions.items()
         if self._expired(session, now - touched)
      ]
      expired = [self._sessions.pop(session_id)[0] for session_id in expired_ids]
      if expired:
         logger.info("Evicted %d expired study session(s)", len(expired))
      return expired

   @staticmethod
   def _close_all(sessions: List[StudySession]) -> None:
      for session in sessions:
         session.close()


class Runtime:
   """
   Process-wide runtime cache for the API server.

   - Card repository: built once; tables created on first use
   - Distractor generator: built from settings once (None when disabled)
   - Session registry: live sessions between requests
   """

   def __init__(self, settings: "Settings"):
      self.settings = settings

      self._repo_lock = threading.Lock()
      self._generator_lock = threading.Lock()

      self._repository: Optional[SqlCardRepository] = None
      self._generator: Optional[DistractorGenerator] = None
      self._generator_built = False
      self.sessions = SessionRegistry(
         completed_ttl_s=settings.completed_session_ttl_s,
         idle_ttl_s=settings.session_idle_ttl_s,
      )

   # ----------------------------
   # Repository
   # ----------------------------
   def get_repository(self) -> SqlCardRepository:
      if self._repository is not None:
         return self._repository
      with self._repo_lock:
         if self._repository is None:
               from server.db.session import init_db
               init_db(self.settings)
               self._repository = SqlCardRepository(self.settings)
      return self._repository

   # ----------------------------
   # Distractor generator
   # ----------------------------
   def get_generator(self) -> Optional[DistractorGenerator]:
      """Configured generator, or None if generation is disabled."""
      if self._generator_built:
         return self._generator
      with self._generator_lock:
         if not self._generator_built:
               self._generator = build_generator(self.settings)
               self._generator_built = True
               if self._generator is not None:
                  logger.info("Distractor generation via %s", self._generator.name)
      return self._generator


def runtime_from_settings(settings: "Settings") -> Runtime:
    """Build Runtime from Settings. Used by get_runtime dependency."""
    return Runtime(settings)
