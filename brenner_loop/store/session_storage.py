"""Session persistence collaborator and an in-memory reference implementation.

Design notes:
    - The core reaches storage only through the ``SessionStorage`` protocol:
      save / load / list / delete, plus change notification callbacks.
    - Failures surface as ``StorageError`` carrying a ``StorageErrorCode``.
    - ``list`` skips entries it cannot parse; ``load`` reports them.
    - ``InMemorySessionStorage`` keeps each session as JSON text; dates are
      ISO-8601 strings at rest and aware datetimes after load.
    - An asyncio.Lock guards all mutations; subscribers are notified after
      the lock is released.
"""

from __future__ import annotations

import asyncio
import logging
from enum import Enum
from typing import Callable, Literal, Optional, Protocol

from pydantic import ValidationError

from brenner_loop.domain.session import ResearchSession

logger = logging.getLogger(__name__)

ChangeEvent = Literal["save", "delete", "clear"]
ChangeListener = Callable[[ChangeEvent, Optional[str]], None]


class StorageErrorCode(str, Enum):
    SESSION_NOT_FOUND = "SESSION_NOT_FOUND"
    PARSE_ERROR = "PARSE_ERROR"
    VALIDATION_ERROR = "VALIDATION_ERROR"
    QUOTA_EXCEEDED = "QUOTA_EXCEEDED"


class StorageError(Exception):
    """Raised when a storage operation fails.

    Attributes:
        code: Machine-readable failure category.
        session_id: The session involved, when there is one.
    """

    def __init__(self, code: StorageErrorCode, message: str, session_id: Optional[str] = None) -> None:
        self.code = code
        self.session_id = session_id
        super().__init__(message)


class SessionStorage(Protocol):
    """Protocol for session persistence backends."""

    async def save(self, session: ResearchSession) -> None: ...

    async def load(self, session_id: str) -> Optional[ResearchSession]: ...

    async def list(self) -> list[ResearchSession]: ...

    async def delete(self, session_id: str) -> None: ...

    def subscribe(self, listener: ChangeListener) -> Callable[[], None]:
        """Register *listener*; return a function that unregisters it."""
        ...


class InMemorySessionStorage:
    """Async-safe, in-memory SessionStorage.

    Args:
        max_sessions: Optional quota; saving a new session beyond it raises
            ``StorageError`` with ``QUOTA_EXCEEDED``.
    """

    def __init__(self, max_sessions: Optional[int] = None) -> None:
        self._data: dict[str, str] = {}
        self._lock = asyncio.Lock()
        self._listeners: list[ChangeListener] = []
        self._max_sessions = max_sessions

    # ── Notifications ────────────────────────────────────────────────────

    def subscribe(self, listener: ChangeListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self, event: ChangeEvent, session_id: Optional[str]) -> None:
        for listener in list(self._listeners):
            listener(event, session_id)

    # ── Persistence ──────────────────────────────────────────────────────

    def _decode(self, session_id: str, raw: str) -> ResearchSession:
        try:
            return ResearchSession.model_validate_json(raw)
        except ValidationError as exc:
            logger.warning("Corrupted session %s in storage: %s", session_id, exc)
            raise StorageError(
                StorageErrorCode.PARSE_ERROR,
                f"Stored session {session_id} could not be parsed",
                session_id,
            ) from exc

    async def save(self, session: ResearchSession) -> None:
        try:
            validated = ResearchSession.model_validate(session.model_dump())
        except ValidationError as exc:
            raise StorageError(
                StorageErrorCode.VALIDATION_ERROR,
                f"Session {session.id} failed validation",
                session.id,
            ) from exc

        async with self._lock:
            is_new = validated.id not in self._data
            if is_new and self._max_sessions is not None and len(self._data) >= self._max_sessions:
                raise StorageError(
                    StorageErrorCode.QUOTA_EXCEEDED,
                    f"Storage quota of {self._max_sessions} sessions exceeded",
                    validated.id,
                )
            self._data[validated.id] = validated.model_dump_json()

        logger.info("Saved session %s", validated.id)
        self._notify("save", validated.id)

    async def load(self, session_id: str) -> Optional[ResearchSession]:
        async with self._lock:
            raw = self._data.get(session_id)
        if raw is None:
            return None
        return self._decode(session_id, raw)

    async def list(self) -> list[ResearchSession]:
        """All readable sessions, most recently updated first.

        Entries that cannot be parsed are logged and left out; ``load`` still
        raises PARSE_ERROR for them.
        """
        async with self._lock:
            items = list(self._data.items())
        sessions: list[ResearchSession] = []
        for sid, raw in items:
            try:
                sessions.append(self._decode(sid, raw))
            except StorageError:
                logger.warning("Skipping unreadable session %s in listing", sid)
        sessions.sort(key=lambda s: s.updated_at, reverse=True)
        return sessions

    async def delete(self, session_id: str) -> None:
        async with self._lock:
            if session_id not in self._data:
                raise StorageError(
                    StorageErrorCode.SESSION_NOT_FOUND,
                    f"Session not found: {session_id}",
                    session_id,
                )
            del self._data[session_id]

        logger.info("Deleted session %s", session_id)
        self._notify("delete", session_id)

    async def clear(self) -> None:
        async with self._lock:
            self._data.clear()
        logger.info("Cleared session storage")
        self._notify("clear", None)

    # ── Introspection ────────────────────────────────────────────────────

    @property
    def count(self) -> int:
        return len(self._data)

    def put_raw(self, session_id: str, raw: str) -> None:
        """Write raw text under *session_id*, bypassing validation.

        Mirrors external writers (another tab, a migration) that may leave
        data this process cannot parse.
        """
        self._data[session_id] = raw
