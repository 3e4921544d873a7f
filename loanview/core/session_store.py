# ==============================================
# File: loanview/core/session_store.py
# Description: In-memory interview sessions keyed by conversation id
# ==============================================

from typing import Callable, Dict, Optional
import logging
import threading
import time

from loanview.core.interview import InterviewSession, InterviewStatus

logger = logging.getLogger(__name__)


class SessionStore:
    """
    Interview sessions for one engine instance.

    A session only lives while its interview is in progress: the assembler
    discards it as soon as it completes or is cancelled. Sessions idle for
    longer than ttl_seconds are dropped the next time the store is touched.

    Uses in-memory storage (could be moved to Redis/database for production)
    """

    def __init__(self, ttl_seconds: float = 1800, clock: Callable[[], float] = time.monotonic):
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._sessions: Dict[str, InterviewSession] = {}
        self._lock = threading.Lock()

    def _evict_expired(self) -> None:
        if not self.ttl_seconds or self.ttl_seconds <= 0:
            return
        now = self._clock()
        expired = [
            sid for sid, session in self._sessions.items()
            if now - session.last_active > self.ttl_seconds
        ]
        for sid in expired:
            del self._sessions[sid]
        if expired:
            logger.info(f"Evicted {len(expired)} idle interview session(s)")

    def get(self, session_id: str) -> Optional[InterviewSession]:
        """Return the in-progress session for a conversation (refreshing its idle timer), if any"""
        with self._lock:
            self._evict_expired()
            session = self._sessions.get(session_id)
            if session is not None:
                session.last_active = self._clock()
            return session

    def start(self, session_id: str) -> InterviewSession:
        """Create a fresh session, replacing any previous one for this conversation"""
        with self._lock:
            self._evict_expired()
            session = InterviewSession(
                session_id=session_id,
                status=InterviewStatus.NOT_STARTED,
                last_active=self._clock(),
            )
            self._sessions[session_id] = session
            logger.info(f"Started interview session for {session_id}")
            return session

    def discard(self, session_id: str) -> None:
        with self._lock:
            if self._sessions.pop(session_id, None) is not None:
                logger.info(f"Discarded interview session for {session_id}")

    def active_count(self) -> int:
        with self._lock:
            self._evict_expired()
            return len(self._sessions)
