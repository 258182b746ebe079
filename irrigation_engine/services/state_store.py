"""Shared durable key/value state store.

Every client session and the hardware bridge see the same store. It offers
read, write, compare-and-set and change subscriptions; there are no
transactions spanning several keys.
"""
import json
import logging
import threading
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from irrigation_engine.exceptions import StoreUnavailable
from irrigation_engine.models.state_entry import StateEntry

logger = logging.getLogger(__name__)

ChangeCallback = Callable[[str, Any], None]


def _encode(value: Any) -> str:
    """Canonical JSON so equal values compare equal as text."""
    return json.dumps(value, sort_keys=True)


class StateStore(ABC):
    """Abstract store with in-process change notification."""

    def __init__(self):
        self._subscribers: Dict[str, List[ChangeCallback]] = {}
        self._seen_versions: Dict[str, int] = {}
        self._lock = threading.RLock()

    @abstractmethod
    def _read(self, key: str) -> Optional[Tuple[str, int]]:
        """Return (encoded value, version) or None when the key is absent."""
        pass

    @abstractmethod
    def _write(self, key: str, encoded: str) -> int:
        """Write a value and return its new version."""
        pass

    @abstractmethod
    def _compare_and_write(self, key: str, expected: Optional[str], encoded: str) -> Optional[int]:
        """Write only if the current value equals ``expected`` (None = absent)."""
        pass

    @abstractmethod
    def _read_versions(self, keys: Iterable[str]) -> Dict[str, int]:
        """Return current versions for the keys that exist."""
        pass

    def get(self, key: str, default: Any = None) -> Any:
        """
        Read the current value of a key.

        Raises:
            StoreUnavailable: if the backend cannot be reached
        """
        row = self._read(key)
        if row is None:
            return default
        return json.loads(row[0])

    def set(self, key: str, value: Any):
        """
        Write a value and notify local subscribers.

        Raises:
            StoreUnavailable: if the backend cannot be reached
        """
        version = self._write(key, _encode(value))
        self._notify(key, value, version)

    def compare_and_set(self, key: str, expected: Any, value: Any) -> bool:
        """
        Atomically replace ``expected`` with ``value``.

        Args:
            key: Store key
            expected: Value that must currently be stored; None means the key must be absent
            value: New value

        Returns:
            True if the write happened, False if another writer got there first
        """
        expected_encoded = None if expected is None else _encode(expected)
        version = self._compare_and_write(key, expected_encoded, _encode(value))
        if version is None:
            return False
        self._notify(key, value, version)
        return True

    def subscribe(self, key: str, callback: ChangeCallback) -> Callable[[], None]:
        """
        Register a callback for changes to ``key``.

        Local writes notify immediately; writes by other processes are
        picked up by ``poll_changes``.

        Returns:
            Function that removes the subscription
        """
        with self._lock:
            self._subscribers.setdefault(key, []).append(callback)

        def unsubscribe():
            with self._lock:
                callbacks = self._subscribers.get(key, [])
                if callback in callbacks:
                    callbacks.remove(callback)

        return unsubscribe

    def poll_changes(self) -> int:
        """
        Deliver notifications for subscribed keys changed by other writers.

        Returns:
            Number of keys whose subscribers were notified
        """
        with self._lock:
            keys = [key for key, callbacks in self._subscribers.items() if callbacks]
        if not keys:
            return 0

        changed = 0
        for key, version in self._read_versions(keys).items():
            if self._seen_versions.get(key) == version:
                continue
            row = self._read(key)
            if row is None:
                continue
            self._notify(key, json.loads(row[0]), row[1])
            changed += 1
        return changed

    def _notify(self, key: str, value: Any, version: int):
        with self._lock:
            self._seen_versions[key] = version
            callbacks = list(self._subscribers.get(key, []))

        for callback in callbacks:
            try:
                callback(key, value)
            except Exception:
                logger.exception(f"Subscriber for '{key}' raised during change notification")


class SqlStateStore(StateStore):
    """State store persisted in the SQL database through SQLAlchemy."""

    def __init__(self, db_session_factory: Callable):
        """
        Initialize SQL-backed store.

        Args:
            db_session_factory: Function that returns a database session generator
        """
        super().__init__()
        self.db_session_factory = db_session_factory

    def _read(self, key: str) -> Optional[Tuple[str, int]]:
        db = None
        try:
            db = next(self.db_session_factory())
            entry = db.query(StateEntry).filter_by(key=key).first()
            if entry is None:
                return None
            return entry.value, entry.version
        except SQLAlchemyError as e:
            raise StoreUnavailable('read', key, e) from e
        finally:
            if db:
                db.close()

    def _write(self, key: str, encoded: str) -> int:
        db = None
        try:
            db = next(self.db_session_factory())
            if self._bump(db, key, encoded) == 0:
                db.add(StateEntry(key=key, value=encoded, version=1))
                try:
                    db.commit()
                    return 1
                except IntegrityError:
                    # Another writer created the key first
                    db.rollback()
                    self._bump(db, key, encoded)
            db.commit()
            return db.query(StateEntry.version).filter_by(key=key).scalar()
        except SQLAlchemyError as e:
            if db:
                db.rollback()
            raise StoreUnavailable('write', key, e) from e
        finally:
            if db:
                db.close()

    @staticmethod
    def _bump(db, key: str, encoded: str) -> int:
        """Replace the value and increment the version in one UPDATE; returns rows updated."""
        return db.query(StateEntry).filter(StateEntry.key == key).update({
            StateEntry.value: encoded,
            StateEntry.version: StateEntry.version + 1
        }, synchronize_session=False)

    def _compare_and_write(self, key: str, expected: Optional[str], encoded: str) -> Optional[int]:
        db = None
        try:
            db = next(self.db_session_factory())
            if expected is None:
                db.add(StateEntry(key=key, value=encoded, version=1))
                try:
                    db.commit()
                except IntegrityError:
                    db.rollback()
                    return None
                return 1

            updated = db.query(StateEntry).filter(
                StateEntry.key == key, StateEntry.value == expected
            ).update({
                StateEntry.value: encoded,
                StateEntry.version: StateEntry.version + 1
            }, synchronize_session=False)
            db.commit()
            if updated == 0:
                return None
            return db.query(StateEntry.version).filter_by(key=key).scalar()
        except SQLAlchemyError as e:
            if db:
                db.rollback()
            raise StoreUnavailable('compare-and-set', key, e) from e
        finally:
            if db:
                db.close()

    def _read_versions(self, keys: Iterable[str]) -> Dict[str, int]:
        db = None
        try:
            db = next(self.db_session_factory())
            rows = db.query(StateEntry.key, StateEntry.version).filter(StateEntry.key.in_(list(keys))).all()
            return {row.key: row.version for row in rows}
        except SQLAlchemyError as e:
            raise StoreUnavailable('version poll', None, e) from e
        finally:
            if db:
                db.close()


class InMemoryStateStore(StateStore):
    """In-process store for development and testing."""

    def __init__(self):
        """Initialize an empty, available store."""
        super().__init__()
        self._data: Dict[str, Tuple[str, int]] = {}
        self.available = True

    def set_available(self, available: bool):
        """Simulate the backend going away or coming back."""
        self.available = available

    def _check_available(self, operation: str, key: Optional[str] = None):
        if not self.available:
            raise StoreUnavailable(operation, key)

    def _read(self, key: str) -> Optional[Tuple[str, int]]:
        self._check_available('read', key)
        with self._lock:
            return self._data.get(key)

    def _write(self, key: str, encoded: str) -> int:
        self._check_available('write', key)
        with self._lock:
            version = self._data.get(key, ('', 0))[1] + 1
            self._data[key] = (encoded, version)
            return version

    def _compare_and_write(self, key: str, expected: Optional[str], encoded: str) -> Optional[int]:
        self._check_available('compare-and-set', key)
        with self._lock:
            current = self._data.get(key)
            current_encoded = current[0] if current else None
            if current_encoded != expected:
                return None
            version = (current[1] if current else 0) + 1
            self._data[key] = (encoded, version)
            return version

    def _read_versions(self, keys: Iterable[str]) -> Dict[str, int]:
        self._check_available('version poll')
        with self._lock:
            return {key: self._data[key][1] for key in keys if key in self._data}

    def write_external(self, key: str, value: Any):
        """Write as another process would: no local notification until ``poll_changes``."""
        self._check_available('write', key)
        self._write(key, _encode(value))
