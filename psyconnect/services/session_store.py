"""In-process home for live conversations.

Conversation state is never written to the database; it lives here until the
session is deleted, goes idle for longer than a session token lives, or the
process restarts. A session accepts one turn at a time: ``claim`` marks it
busy and a second claim fails with SessionBusy.
"""
from __future__ import annotations

import logging
import threading
import time
import uuid
from contextlib import contextmanager
from typing import Callable, Dict, Iterator, Optional, Set

from ..conversation.state import ConversationState
from ..core.config import settings
from ..core.errors import SessionBusy

logger = logging.getLogger(__name__)


class SessionStore:
    def __init__(self, ttl_seconds: Optional[int] = None, clock: Callable[[], float] = time.monotonic) -> None:
        self._states: Dict[str, ConversationState] = {}
        self._seen: Dict[str, float] = {}
        self._busy: Set[str] = set()
        self._lock = threading.Lock()
        self._ttl = ttl_seconds if ttl_seconds is not None else settings.SESSION_TOKEN_TTL_SECONDS
        self._clock = clock

    def create(self) -> ConversationState:
        state = ConversationState(session_id=str(uuid.uuid4()))
        with self._lock:
            self._evict_expired()
            self._states[state.session_id] = state
            self._seen[state.session_id] = self._clock()
        return state

    def get(self, session_id: str) -> Optional[ConversationState]:
        with self._lock:
            self._evict_expired()
            state = self._states.get(session_id)
            if state is not None:
                self._seen[session_id] = self._clock()
            return state

    def save(self, state: ConversationState) -> bool:
        """Store a new version of a live session.

        Returns False, and stores nothing, when the session was deleted or
        expired while the caller was working on it.
        """
        with self._lock:
            if state.session_id not in self._states:
                logger.info("session %s is gone; dropping late save", state.session_id)
                return False
            self._states[state.session_id] = state
            self._seen[state.session_id] = self._clock()
            return True

    def delete(self, session_id: str) -> bool:
        with self._lock:
            self._seen.pop(session_id, None)
            return self._states.pop(session_id, None) is not None

    def purge_expired(self) -> int:
        with self._lock:
            return self._evict_expired()

    def __len__(self) -> int:
        return len(self._states)

    def _evict_expired(self) -> int:
        # caller holds the lock; a session mid-turn is never evicted
        if self._ttl <= 0:
            return 0
        cutoff = self._clock() - self._ttl
        stale = [sid for sid, seen in self._seen.items() if seen < cutoff and sid not in self._busy]
        for sid in stale:
            self._states.pop(sid, None)
            self._seen.pop(sid, None)
        if stale:
            logger.info("evicted %d idle sessions", len(stale))
        return len(stale)

    @contextmanager
    def claim(self, session_id: str) -> Iterator[None]:
        with self._lock:
            if session_id in self._busy:
                raise SessionBusy(session_id)
            self._busy.add(session_id)
        try:
            yield
        finally:
            with self._lock:
                self._busy.discard(session_id)


store = SessionStore()
