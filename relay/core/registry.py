"""Live connection tracking.

The registry owns one Session per open socket and keeps a secondary index of
sessions per user id. Both maps are mutated under a single lock, so the group
index never disagrees with the set of live sessions.
"""
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional, Set
from uuid import uuid4
import logging
import threading

from starlette.websockets import WebSocket

from ..errors import DuplicateSessionError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Session:
    session_id: str
    connection: WebSocket
    user_id: Optional[str] = None
    connected_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class GroupIndex:
    """
    Addressable groups of sessions.
    groups: { user_id: {session_id, ...} }
    """

    def __init__(self):
        self.groups: Dict[str, Set[str]] = {}
        self._lock = threading.Lock()

    def add_to_group(self, user_id: str, session_id: str) -> None:
        with self._lock:
            self.groups.setdefault(user_id, set()).add(session_id)

    def remove_from_group(self, user_id: str, session_id: str) -> None:
        with self._lock:
            members = self.groups.get(user_id)
            if not members:
                return
            members.discard(session_id)
            if not members:
                self.groups.pop(user_id, None)

    def sessions_for(self, user_id: str) -> Set[str]:
        with self._lock:
            return set(self.groups.get(user_id, ()))

    def __contains__(self, user_id: str) -> bool:
        with self._lock:
            return user_id in self.groups

    def __len__(self) -> int:
        with self._lock:
            return len(self.groups)


def new_session_id() -> str:
    return uuid4().hex


class ConnectionRegistry:
    """Tracks every live connection. One instance per running application."""

    def __init__(self, groups: Optional[GroupIndex] = None, id_factory: Callable[[], str] = new_session_id):
        self.sessions: Dict[str, Session] = {}
        self.groups = groups if groups is not None else GroupIndex()
        self._new_id = id_factory
        self._lock = threading.RLock()

    def connect(self, connection: WebSocket, user_id: Optional[str] = None) -> str:
        session_id = self._new_id()
        user_id = user_id or None
        with self._lock:
            if session_id in self.sessions:
                raise DuplicateSessionError(session_id)
            self.sessions[session_id] = Session(session_id=session_id, connection=connection, user_id=user_id)
            if user_id is not None:
                self.groups.add_to_group(user_id, session_id)
        logger.info(f"Session connected: {session_id}")
        if user_id is not None:
            logger.info(f"User {user_id} joined personal group with session {session_id}")
        return session_id

    def disconnect(self, session_id: str) -> Optional[Session]:
        """Remove a session. Unknown ids are ignored."""
        with self._lock:
            session = self.sessions.pop(session_id, None)
            if session is None:
                return None
            if session.user_id is not None:
                self.groups.remove_from_group(session.user_id, session_id)
        return session

    def is_live(self, session_id: str) -> bool:
        with self._lock:
            return session_id in self.sessions

    def get(self, session_id: str) -> Optional[Session]:
        with self._lock:
            return self.sessions.get(session_id)

    def count(self) -> int:
        with self._lock:
            return len(self.sessions)

    def list_session_ids(self) -> List[str]:
        with self._lock:
            return list(self.sessions)

    def sessions_for_user(self, user_id: str) -> List[str]:
        with self._lock:
            return [sid for sid in self.groups.sessions_for(user_id) if sid in self.sessions]

    async def close_all(self, code: int = 1001) -> int:
        """Drop every session and close its connection. Returns how many were closed."""
        with self._lock:
            sessions = list(self.sessions.values())
            for session in sessions:
                self.disconnect(session.session_id)
        for session in sessions:
            try:
                await session.connection.close(code=code)
            except Exception as e:
                logger.warning(f"Failed to close session {session.session_id}: {e}")
        return len(sessions)
