"""
Signed-in sessions, keyed by opaque bearer token.

A user holds at most one session: signing in again closes the previous
one and invalidates its token, so store listeners do not pile up.
"""

from __future__ import annotations

import logging
import secrets
import threading
from typing import Callable, Dict, Optional

from moments.orchestrator import DailyViewSession
from shared.types import User

logger = logging.getLogger(__name__)

SessionFactory = Callable[[User], DailyViewSession]


class SessionRegistry:
    def __init__(self, factory: SessionFactory):
        self.factory = factory
        self._sessions: Dict[str, DailyViewSession] = {}
        # user id -> token of that user's current session
        self._tokens: Dict[str, str] = {}
        self._lock = threading.Lock()

    def open(self, user: User) -> tuple[str, DailyViewSession]:
        """Creates and initializes a session for a freshly signed-in user."""
        session = self.factory(user)
        token = secrets.token_urlsafe(32)
        with self._lock:
            previous_token = self._tokens.get(user.id)
            previous = self._sessions.pop(previous_token, None) if previous_token else None
            self._sessions[token] = session
            self._tokens[user.id] = token
        if previous is not None:
            logger.info("[%s] Replacing previous session", user.id)
            previous.close()

        try:
            session.initialize()
        except Exception:
            logger.exception("[%s] Session failed to initialize", user.id)
            self.close(token)
            raise
        return token, session

    def get(self, token: str) -> Optional[DailyViewSession]:
        with self._lock:
            return self._sessions.get(token)

    def close(self, token: str) -> bool:
        with self._lock:
            session = self._sessions.pop(token, None)
            if session is not None and self._tokens.get(session.user.id) == token:
                del self._tokens[session.user.id]
        if session is None:
            return False
        session.close()
        return True

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)

    def reset(self) -> None:
        with self._lock:
            sessions, self._sessions = list(self._sessions.values()), {}
            self._tokens = {}
        for session in sessions:
            session.close()
