"""
Session store — per-session conversation state kept behind a small interface
(get / create / update / evict) so the in-memory map can be swapped for a
networked store without touching the controller.
"""

import abc
import time
import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional

from honeypot.models import MessageItem


logger = logging.getLogger(__name__)


class SessionState(str, Enum):
    """NEW -> ACTIVE -> REPORT_PENDING -> REPORTED. REPORTED is absorbing."""
    NEW = "new"
    ACTIVE = "active"
    REPORT_PENDING = "report_pending"
    REPORTED = "reported"


@dataclass
class Session:
    """Per-session state tracking."""
    session_id: str
    created_at: float = field(default_factory=time.time)
    last_seen: float = field(default_factory=time.time)
    state: SessionState = SessionState.NEW
    messages: List[MessageItem] = field(default_factory=list)
    used_phrases: List[str] = field(default_factory=list)
    language: str = "en"

    @property
    def turn_count(self) -> int:
        """Number of scammer messages seen so far."""
        return sum(1 for m in self.messages if m.sender == "scammer")

    @property
    def total_messages(self) -> int:
        return len(self.messages)

    @property
    def report_claimed(self) -> bool:
        return self.state in (SessionState.REPORT_PENDING, SessionState.REPORTED)

    def engagement_seconds(self, now: Optional[float] = None) -> int:
        return int((now or time.time()) - self.created_at)

    def append(self, sender: str, text: str) -> None:
        self.messages.append(MessageItem(sender=sender, text=text))

    def remember_phrase(self, phrase: str) -> None:
        if phrase not in self.used_phrases:
            self.used_phrases.append(phrase)

    def transcript(self) -> str:
        return "\n".join(f"{m.sender}: {m.text}" for m in self.messages)

    def scammer_text(self) -> str:
        return "\n".join(m.text for m in self.messages if m.sender == "scammer")


class SessionStore(abc.ABC):
    """Storage interface used by the turn controller."""

    @abc.abstractmethod
    async def get(self, session_id: str) -> Optional[Session]: ...

    @abc.abstractmethod
    async def create(self, session_id: str) -> Session: ...

    @abc.abstractmethod
    async def get_or_create(self, session_id: str) -> Session: ...

    @abc.abstractmethod
    async def update(self, session: Session) -> None: ...

    @abc.abstractmethod
    async def evict(self, session_id: str) -> None: ...

    @abc.abstractmethod
    async def claim_report(self, session_id: str) -> bool:
        """Atomically move a session to REPORT_PENDING. True only for the first caller."""

    @abc.abstractmethod
    async def set_state(self, session_id: str, state: SessionState) -> None: ...

    @abc.abstractmethod
    async def evict_idle(self, max_idle_seconds: float, now: Optional[float] = None) -> int: ...

    @abc.abstractmethod
    async def count(self) -> int: ...


class InMemorySessionStore(SessionStore):
    """Process-local store. Every mutation happens under one asyncio lock."""

    def __init__(self):
        self._sessions: Dict[str, Session] = {}
        self._lock = asyncio.Lock()

    async def get(self, session_id: str) -> Optional[Session]:
        return self._sessions.get(session_id)

    async def create(self, session_id: str) -> Session:
        async with self._lock:
            session = Session(session_id=session_id)
            self._sessions[session_id] = session
            return session

    async def get_or_create(self, session_id: str) -> Session:
        async with self._lock:
            session = self._sessions.get(session_id)
            if session is None:
                session = Session(session_id=session_id)
                self._sessions[session_id] = session
                logger.info("🆕 Session created: %s", session_id)
            return session

    async def update(self, session: Session) -> None:
        async with self._lock:
            session.last_seen = time.time()
            self._sessions[session.session_id] = session

    async def evict(self, session_id: str) -> None:
        async with self._lock:
            self._sessions.pop(session_id, None)

    async def claim_report(self, session_id: str) -> bool:
        async with self._lock:
            session = self._sessions.get(session_id)
            if session is None or session.report_claimed:
                return False
            session.state = SessionState.REPORT_PENDING
            return True

    async def set_state(self, session_id: str, state: SessionState) -> None:
        async with self._lock:
            session = self._sessions.get(session_id)
            if session is not None:
                session.state = state

    async def evict_idle(self, max_idle_seconds: float, now: Optional[float] = None) -> int:
        now = now or time.time()
        async with self._lock:
            stale = [sid for sid, s in self._sessions.items() if now - s.last_seen > max_idle_seconds]
            for sid in stale:
                del self._sessions[sid]
        return len(stale)

    async def count(self) -> int:
        return len(self._sessions)


async def sweep_forever(store: SessionStore, interval_seconds: float, max_idle_seconds: float) -> None:
    """Periodically drop sessions idle longer than max_idle_seconds."""
    while True:
        await asyncio.sleep(interval_seconds)
        try:
            evicted = await store.evict_idle(max_idle_seconds)
            if evicted:
                logger.info("🧹 Evicted %d idle sessions", evicted)
        except Exception:
            logger.exception("Session sweep failed")
