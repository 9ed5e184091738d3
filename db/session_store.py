from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, Optional
import logging
import secrets

from config import SESSION_CONFIG
from db.base_operations import BaseOperations
from db.query_builder import eq
from schemas import AdminSession

logger = logging.getLogger(__name__)

ADMIN_SESSIONS = 'admin_sessions'


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SessionStore:
    """Server-side admin sessions keyed by the opaque id carried in the cookie."""

    def get(self, sid: str) -> Optional[Dict[str, Any]]:
        raise NotImplementedError

    def set(self, admin: Dict[str, Any]) -> str:
        """Open a session for ``admin`` and return its id."""
        raise NotImplementedError

    def touch(self, sid: str) -> None:
        """Push expiry forward by one TTL (sliding expiry)."""
        raise NotImplementedError

    def destroy(self, sid: str) -> None:
        raise NotImplementedError


class SupabaseSessionStore(SessionStore, BaseOperations):
    """Sessions persisted in the admin_sessions table"""

    def __init__(self, supabase, ttl_seconds: Optional[int] = None, clock: Callable[[], datetime] = _utcnow):
        BaseOperations.__init__(self, supabase)
        self.ttl = timedelta(seconds=ttl_seconds or SESSION_CONFIG['ttl_seconds'])
        self.clock = clock

    def get(self, sid: str) -> Optional[Dict[str, Any]]:
        if not sid:
            return None
        row = self._find_one(ADMIN_SESSIONS, eq('id', sid))
        if not row:
            return None
        if datetime.fromisoformat(str(row['expires_at'])) <= self.clock():
            logger.info(f"Session for admin {row.get('admin_id')} expired")
            self.destroy(sid)
            return None
        return row

    def set(self, admin: Dict[str, Any]) -> str:
        now = self.clock()
        session = AdminSession(
            id=secrets.token_urlsafe(32),
            admin_id=admin['id'],
            role=admin['role'],
            expires_at=now + self.ttl,
            last_accessed=now,
        )
        self._insert(ADMIN_SESSIONS, session.to_record())
        return session.id

    def touch(self, sid: str) -> None:
        now = self.clock()
        self._update(ADMIN_SESSIONS, sid, {
            'expires_at': (now + self.ttl).isoformat(),
            'last_accessed': now.isoformat(),
        })

    def destroy(self, sid: str) -> None:
        if sid:
            self._run(self.supabase.table(ADMIN_SESSIONS).delete().eq('id', sid))
