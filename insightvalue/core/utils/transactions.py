"""Unit-of-work helpers: atomic writes and per-insight write serialization."""

from __future__ import annotations

import logging
from contextlib import contextmanager
from threading import Lock
from typing import Dict, Hashable, Iterator, List

from sqlalchemy.exc import SQLAlchemyError

from insightvalue.core.errors import InfrastructureError
from insightvalue.extensions import db

logger = logging.getLogger(__name__)


class KeyedLocks:
    """One lock per key, held only while some thread uses or waits on it.

    Each entry carries a count of holders and waiters and is dropped when that
    count returns to zero, so the table only grows with concurrent keys.
    """

    def __init__(self) -> None:
        self._guard = Lock()
        self._locks: Dict[Hashable, List] = {}

    def _acquire_entry(self, key: Hashable) -> Lock:
        with self._guard:
            entry = self._locks.get(key)
            if entry is None:
                entry = self._locks[key] = [Lock(), 0]
            entry[1] += 1
            return entry[0]

    def _release_entry(self, key: Hashable) -> None:
        with self._guard:
            entry = self._locks[key]
            entry[1] -= 1
            if entry[1] == 0:
                del self._locks[key]

    def active_count(self) -> int:
        with self._guard:
            return len(self._locks)

    @contextmanager
    def hold(self, key: Hashable) -> Iterator[None]:
        lock = self._acquire_entry(key)
        try:
            with lock:
                yield
        finally:
            self._release_entry(key)


insight_write_locks = KeyedLocks()


@contextmanager
def atomic() -> Iterator[None]:
    """Commit the session on success, roll back everything on failure."""
    try:
        yield
        db.session.commit()
    except SQLAlchemyError as exc:
        db.session.rollback()
        logger.exception("Storage failure; transaction rolled back")
        raise InfrastructureError("Storage operation failed.") from exc
    except Exception:
        db.session.rollback()
        raise
