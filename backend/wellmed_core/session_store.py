from __future__ import annotations

import asyncio
import logging
import time
from typing import Callable, Iterable, Protocol

from .models import Message, MessageLog, Session
from .prompts import PERSONA_PROMPT

logger = logging.getLogger(__name__)


class SessionBackend(Protocol):
    def get(self, session_id: str) -> Session | None: ...

    def put(self, session: Session) -> None: ...

    def delete(self, session_id: str) -> None: ...

    def items(self) -> Iterable[tuple[str, Session]]: ...


class InMemorySessionBackend:
    def __init__(self) -> None:
        self._sessions: dict[str, Session] = {}

    def get(self, session_id: str) -> Session | None:
        return self._sessions.get(session_id)

    def put(self, session: Session) -> None:
        self._sessions[session.id] = session

    def delete(self, session_id: str) -> None:
        self._sessions.pop(session_id, None)

    def items(self) -> list[tuple[str, Session]]:
        return list(self._sessions.items())


class SessionStore:
    """Keyed registry of conversations for the lifetime of the process.

    Sessions are created lazily with the persona message as the first log entry.
    With ``ttl_seconds`` set, idle sessions are dropped on the next write.
    """

    def __init__(
        self,
        backend: SessionBackend | None = None,
        *,
        persona_prompt: str = PERSONA_PROMPT,
        ttl_seconds: int = 0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._backend = backend if backend is not None else InMemorySessionBackend()
        self._persona_prompt = persona_prompt
        self._ttl_seconds = max(0, ttl_seconds)
        self._clock = clock
        self._locks: dict[str, asyncio.Lock] = {}

    def get(self, session_id: str) -> Session | None:
        session = self._backend.get(session_id)
        if session is None:
            return None
        if self._is_expired(session, self._clock()):
            self._evict(session_id)
            return None
        return session

    def get_or_create(self, session_id: str) -> Session:
        now = self._clock()
        self._evict_expired(now)
        session = self._backend.get(session_id)
        if session is None:
            session = Session(
                id=session_id,
                log=MessageLog([Message(role="system", content=self._persona_prompt, kind="persona")]),
                last_access=now,
            )
            self._backend.put(session)
            logger.debug("session created: %s", session_id)
        session.last_access = now
        return session

    def set_document_context(self, session_id: str, text: str) -> Session:
        session = self.get_or_create(session_id)
        session.document_context = text
        logger.info("document context set for session %s (%s chars)", session_id, len(text or ""))
        return session

    def lock_for(self, session_id: str) -> asyncio.Lock:
        lock = self._locks.get(session_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[session_id] = lock
        return lock

    def session_ids(self) -> list[str]:
        return sorted(session_id for session_id, _ in self._backend.items())

    def __len__(self) -> int:
        return len(self.session_ids())

    def _is_expired(self, session: Session, now: float) -> bool:
        return bool(self._ttl_seconds) and now - session.last_access > self._ttl_seconds

    def _evict_expired(self, now: float) -> None:
        if not self._ttl_seconds:
            return
        expired = [session_id for session_id, session in self._backend.items() if self._is_expired(session, now)]
        for session_id in expired:
            self._evict(session_id)

    def _evict(self, session_id: str) -> None:
        self._backend.delete(session_id)
        lock = self._locks.get(session_id)
        if lock is not None and not lock.locked():
            self._locks.pop(session_id, None)
        logger.info("session evicted after idle timeout: %s", session_id)
