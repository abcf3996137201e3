"""Single-use OAuth `state` nonce stores.

The Google callback is an unauthenticated redirect target, so the user who
started the flow is recovered from the `state` nonce. Entries are:
- single-use: `pop()` atomically reads and deletes;
- short-lived: expired entries are never returned and are swept on `put()`.

`InMemoryStateStore` is process-local (single worker only).
`DatabaseStateStore` shares state across workers through the `oauth_states` table.
"""

import logging
import os
import secrets
import threading
import time
from datetime import datetime, timedelta
from typing import Callable, Dict, Optional, Tuple

from sqlalchemy.orm import Session

from todocal.database.models import OAuthStateDB
from todocal.models.constants import OAUTH_STATE_TTL_SECONDS

logger = logging.getLogger(__name__)


def generate_state() -> str:
    """Generate an unguessable state nonce."""
    return secrets.token_urlsafe(32)


def state_ttl_seconds() -> int:
    return int(os.getenv("OAUTH_STATE_TTL_SECONDS", str(OAUTH_STATE_TTL_SECONDS)))


class InMemoryStateStore:
    """Lock-protected dict of nonce -> (user_id, expiry on the monotonic clock)."""

    def __init__(self, ttl_seconds: Optional[int] = None, clock: Callable[[], float] = time.monotonic):
        self.ttl_seconds = ttl_seconds if ttl_seconds is not None else state_ttl_seconds()
        self._clock = clock
        self._entries: Dict[str, Tuple[str, float]] = {}
        self._lock = threading.Lock()

    def put(self, nonce: str, user_id: str) -> None:
        with self._lock:
            self._evict_expired()
            self._entries[nonce] = (user_id, self._clock() + self.ttl_seconds)

    def pop(self, nonce: str) -> Optional[str]:
        """Consume a nonce. Returns the user ID, or None if unknown/used/expired."""
        with self._lock:
            entry = self._entries.pop(nonce, None)
        if entry is None:
            return None
        user_id, expiry = entry
        if self._clock() >= expiry:
            return None
        return user_id

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def _evict_expired(self) -> None:
        now = self._clock()
        expired = [k for k, (_, exp) in self._entries.items() if now >= exp]
        for k in expired:
            del self._entries[k]


class DatabaseStateStore:
    """Nonce store backed by the `oauth_states` table."""

    def __init__(
        self,
        db: Session,
        ttl_seconds: Optional[int] = None,
        clock: Callable[[], datetime] = datetime.utcnow,
    ):
        self.db = db
        self.ttl_seconds = ttl_seconds if ttl_seconds is not None else state_ttl_seconds()
        self._clock = clock

    def put(self, nonce: str, user_id: str) -> None:
        now = self._clock()
        try:
            self._evict_expired(now)
            self.db.add(OAuthStateDB(nonce=nonce, user_id=user_id, created_at=now))
            self.db.commit()
        except Exception as e:
            self.db.rollback()
            logger.error(f"Failed to store OAuth state {nonce[:8]}...: {type(e).__name__}: {str(e)}")
            raise

    def pop(self, nonce: str) -> Optional[str]:
        """Consume a nonce. Returns the user ID, or None if unknown/used/expired.

        Only the caller whose DELETE removes the row wins, so concurrent
        callbacks with the same state cannot both succeed.
        """
        row = self.db.query(OAuthStateDB).filter(OAuthStateDB.nonce == nonce).first()
        if row is None:
            return None
        user_id, created_at = row.user_id, row.created_at
        try:
            deleted = (
                self.db.query(OAuthStateDB)
                .filter(OAuthStateDB.nonce == nonce)
                .delete(synchronize_session=False)
            )
            self.db.commit()
        except Exception as e:
            self.db.rollback()
            logger.error(f"Failed to consume OAuth state {nonce[:8]}...: {type(e).__name__}: {str(e)}")
            raise
        # The identity map still holds the bulk-deleted row.
        self.db.expunge(row)
        if deleted != 1:
            return None
        if self._clock() >= created_at + timedelta(seconds=self.ttl_seconds):
            return None
        return user_id

    def _evict_expired(self, now: datetime) -> None:
        cutoff = now - timedelta(seconds=self.ttl_seconds)
        (
            self.db.query(OAuthStateDB)
            .filter(OAuthStateDB.created_at <= cutoff)
            .delete(synchronize_session=False)
        )


_memory_store = InMemoryStateStore()


def get_memory_state_store() -> InMemoryStateStore:
    """Process-wide in-memory store."""
    return _memory_store


def build_state_store(db: Session):
    """Select the nonce store from OAUTH_STATE_STORE (`database` or `memory`)."""
    backend = os.getenv("OAUTH_STATE_STORE", "database").strip().lower()
    if backend == "memory":
        return get_memory_state_store()
    return DatabaseStateStore(db)
