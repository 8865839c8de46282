"""Session snapshot stores.

A store maps session id -> JSON snapshot with an expiry. Writes replace the
whole snapshot at once, so readers never observe half an update.
"""

import json
import threading
import time
from typing import Any, Callable, Dict, Iterator, Optional, Protocol, Tuple

from quiz_engine import db
from quiz_engine.models import SessionSnapshot


class SessionStore(Protocol):
    def get(self, session_id: str) -> Optional[Dict[str, Any]]:
        ...

    def put(self, session_id: str, snapshot: Dict[str, Any], ttl_sec: int) -> None:
        ...

    def delete(self, session_id: str) -> None:
        ...

    def scan(self, user_id: Optional[str] = None) -> Iterator[Dict[str, Any]]:
        ...

    def sweep(self) -> int:
        ...


class MemorySessionStore:
    def __init__(self, clock: Callable[[], float] = time.time):
        self.clock = clock
        self._lock = threading.Lock()
        # session_id -> (payload, expires_at, user_id)
        self._rows: Dict[str, Tuple[str, float, Optional[str]]] = {}

    def get(self, session_id):
        with self._lock:
            row = self._rows.get(session_id)
        if not row or row[1] < self.clock():
            return None
        return json.loads(row[0])

    def put(self, session_id, snapshot, ttl_sec):
        payload = json.dumps(snapshot)
        expires_at = self.clock() + ttl_sec
        with self._lock:
            self._rows[session_id] = (payload, expires_at, snapshot.get('user_id'))

    def delete(self, session_id):
        with self._lock:
            self._rows.pop(session_id, None)

    def scan(self, user_id=None):
        now = self.clock()
        with self._lock:
            rows = list(self._rows.values())
        for payload, expires_at, owner in rows:
            if expires_at < now:
                continue
            if user_id is not None and owner != user_id:
                continue
            yield json.loads(payload)

    def sweep(self):
        now = self.clock()
        with self._lock:
            stale = [sid for sid, row in self._rows.items() if row[1] < now]
            for sid in stale:
                del self._rows[sid]
        return len(stale)

    def __len__(self):
        with self._lock:
            return len(self._rows)


class SqlSessionStore:
    """Keeps snapshots in the ``session_snapshot`` table.

    Must be used inside an application context.
    """

    def __init__(self, clock: Callable[[], float] = time.time):
        self.clock = clock

    def get(self, session_id):
        row = db.session.get(SessionSnapshot, session_id)
        if not row or row.expires_at < self.clock():
            return None
        return row.snapshot()

    def put(self, session_id, snapshot, ttl_sec):
        now = self.clock()
        try:
            row = db.session.get(SessionSnapshot, session_id)
            if row is None:
                row = SessionSnapshot(session_id=session_id, created_at=snapshot.get('created_at') or now)
            row.user_id = snapshot.get('user_id')
            row.status = snapshot.get('status')
            row.data = json.dumps(snapshot)
            row.updated_at = now
            row.expires_at = now + ttl_sec
            db.session.add(row)
            db.session.commit()
        except Exception:
            db.session.rollback()
            raise

    def delete(self, session_id):
        try:
            SessionSnapshot.query.filter_by(session_id=session_id).delete()
            db.session.commit()
        except Exception:
            db.session.rollback()
            raise

    def scan(self, user_id=None):
        query = SessionSnapshot.query.filter(SessionSnapshot.expires_at >= self.clock())
        if user_id is not None:
            query = query.filter_by(user_id=user_id)
        for row in query.order_by(SessionSnapshot.updated_at.desc()).all():
            yield row.snapshot()

    def sweep(self):
        try:
            deleted = SessionSnapshot.query.filter(SessionSnapshot.expires_at < self.clock()).delete()
            db.session.commit()
        except Exception:
            db.session.rollback()
            raise
        return deleted
