"""
Baseline Storage Layer

RESPONSIBILITY: Durable per-unit baselines behind a key-value boundary
ALLOWED INPUTS: FeatureVector appends keyed by unit
OUTPUTS: Baseline records, aggregate FeatureVectors

WHAT THIS LAYER MUST NOT DO:
============================
- Interpret features or make drift decisions
- Modify samples in place (baselines grow by append only)
- Delete a baseline except through an explicit reset

BOUNDARY ENFORCEMENT:
=====================
- Backends store plain JSON-compatible dicts; the Baseline contract is
  serialized here and nowhere else
- Every append is written through immediately
- One writer per unit key at a time (per-key lock)
"""

from __future__ import annotations
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional
import json
import logging
import os
import sqlite3
import tempfile
import threading

from ..config import StorageConfig
from ..contracts import (
    Baseline, FeatureVector, PersistenceFailure, utc_now
)


logger = logging.getLogger(__name__)

BASELINE_PREFIX = "baseline:"


# =============================================================================
# KEY-VALUE INTERFACE (Dependency Inversion)
# =============================================================================

class KeyValueStore:
    """
    Abstract durable key-value backend.

    Implementations can use different storage systems (memory, file,
    database) while keeping the same get/put semantics. Every failure is
    raised as PersistenceFailure.
    """

    def get(self, key: str) -> Optional[Dict[str, Any]]:
        """Return the stored document, or None when the key is absent."""
        raise NotImplementedError

    def put(self, key: str, value: Dict[str, Any]) -> None:
        """Store a document, replacing any previous value."""
        raise NotImplementedError

    def delete(self, key: str) -> None:
        """Remove a key. Missing keys are not an error."""
        raise NotImplementedError

    def keys(self, prefix: str = "") -> List[str]:
        """All keys starting with prefix, sorted."""
        raise NotImplementedError


# =============================================================================
# IN-MEMORY BACKEND (Reference Implementation)
# =============================================================================

class InMemoryKeyValueStore(KeyValueStore):
    """
    In-memory backend.

    Values are round-tripped through JSON on write so the in-memory store
    behaves exactly like the durable ones. Suitable for testing.
    """

    def __init__(self):
        self._data: Dict[str, str] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            raw = self._data.get(key)
        return json.loads(raw) if raw is not None else None

    def put(self, key: str, value: Dict[str, Any]) -> None:
        try:
            raw = json.dumps(value)
        except (TypeError, ValueError) as exc:
            raise PersistenceFailure(key, "put", str(exc)) from exc
        with self._lock:
            self._data[key] = raw

    def delete(self, key: str) -> None:
        with self._lock:
            self._data.pop(key, None)

    def keys(self, prefix: str = "") -> List[str]:
        with self._lock:
            return sorted(k for k in self._data if k.startswith(prefix))


# =============================================================================
# JSON FILE BACKEND
# =============================================================================

class JsonFileKeyValueStore(KeyValueStore):
    """
    Single JSON document on disk, read at construction.

    Writes replace the file atomically (temp file + os.replace), so a crash
    mid-write leaves the previous version intact.
    """

    def __init__(self, path: Path):
        self._path = Path(path)
        self._lock = threading.Lock()
        self._data: Dict[str, Any] = self._load()

    def _load(self) -> Dict[str, Any]:
        if not self._path.exists():
            return {}
        try:
            with self._path.open('r', encoding='utf-8') as f:
                data = json.load(f)
        except (OSError, ValueError) as exc:
            raise PersistenceFailure(str(self._path), "load", str(exc)) from exc
        if not isinstance(data, dict):
            raise PersistenceFailure(str(self._path), "load", "root is not an object")
        return data

    def _flush(self, key: str) -> None:
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(
                prefix=self._path.name, suffix='.tmp', dir=str(self._path.parent)
            )
            try:
                with os.fdopen(fd, 'w', encoding='utf-8') as f:
                    json.dump(self._data, f, sort_keys=True)
                os.replace(tmp_path, self._path)
            except BaseException:
                if os.path.exists(tmp_path):
                    os.unlink(tmp_path)
                raise
        except (OSError, TypeError, ValueError) as exc:
            raise PersistenceFailure(key, "write", str(exc)) from exc

    def get(self, key: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            value = self._data.get(key)
            # Copy so callers never hold a reference into the live document
            return json.loads(json.dumps(value)) if value is not None else None

    def put(self, key: str, value: Dict[str, Any]) -> None:
        with self._lock:
            previous = self._data.get(key)
            self._data[key] = value
            try:
                self._flush(key)
            except PersistenceFailure:
                if previous is None:
                    self._data.pop(key, None)
                else:
                    self._data[key] = previous
                raise

    def delete(self, key: str) -> None:
        with self._lock:
            if key not in self._data:
                return
            previous = self._data.pop(key)
            try:
                self._flush(key)
            except PersistenceFailure:
                self._data[key] = previous
                raise

    def keys(self, prefix: str = "") -> List[str]:
        with self._lock:
            return sorted(k for k in self._data if k.startswith(prefix))


# =============================================================================
# SQLITE BACKEND
# =============================================================================

class SqliteKeyValueStore(KeyValueStore):
    """
    SQLite-backed store. One row per key, committed per write.
    """

    def __init__(self, db_path: Path):
        self._db_path = Path(db_path)
        self._lock = threading.Lock()
        self._init_db()

    def _init_db(self):
        """Initialize database schema."""
        try:
            self._db_path.parent.mkdir(parents=True, exist_ok=True)
            with self._get_conn() as conn:
                conn.executescript('''
                    CREATE TABLE IF NOT EXISTS kv (
                        key TEXT PRIMARY KEY,
                        value TEXT NOT NULL,
                        updated_at TEXT NOT NULL
                    );
                ''')
        except (OSError, sqlite3.Error) as exc:
            raise PersistenceFailure(str(self._db_path), "init", str(exc)) from exc

    @contextmanager
    def _get_conn(self) -> Iterator[sqlite3.Connection]:
        """Get database connection."""
        conn = sqlite3.connect(self._db_path)
        conn.row_factory = sqlite3.Row
        try:
            yield conn
            conn.commit()
        finally:
            conn.close()

    def get(self, key: str) -> Optional[Dict[str, Any]]:
        try:
            with self._lock, self._get_conn() as conn:
                row = conn.execute('SELECT value FROM kv WHERE key = ?', (key,)).fetchone()
        except sqlite3.Error as exc:
            raise PersistenceFailure(key, "get", str(exc)) from exc
        if row is None:
            return None
        try:
            return json.loads(row['value'])
        except ValueError as exc:
            raise PersistenceFailure(key, "get", f"corrupt value: {exc}") from exc

    def put(self, key: str, value: Dict[str, Any]) -> None:
        try:
            raw = json.dumps(value, sort_keys=True)
            with self._lock, self._get_conn() as conn:
                conn.execute('''
                    INSERT OR REPLACE INTO kv (key, value, updated_at)
                    VALUES (?, ?, ?)
                ''', (key, raw, utc_now().isoformat()))
        except (sqlite3.Error, TypeError, ValueError) as exc:
            raise PersistenceFailure(key, "put", str(exc)) from exc

    def delete(self, key: str) -> None:
        try:
            with self._lock, self._get_conn() as conn:
                conn.execute('DELETE FROM kv WHERE key = ?', (key,))
        except sqlite3.Error as exc:
            raise PersistenceFailure(key, "delete", str(exc)) from exc

    def keys(self, prefix: str = "") -> List[str]:
        try:
            with self._lock, self._get_conn() as conn:
                rows = conn.execute('SELECT key FROM kv ORDER BY key').fetchall()
        except sqlite3.Error as exc:
            raise PersistenceFailure(prefix or "*", "keys", str(exc)) from exc
        return [row['key'] for row in rows if row['key'].startswith(prefix)]


def build_kv_store(config: Optional[StorageConfig] = None) -> KeyValueStore:
    """Construct the backend named by config.backend."""
    config = config or StorageConfig()

    if config.backend == "memory":
        return InMemoryKeyValueStore()
    if config.backend == "json":
        return JsonFileKeyValueStore(Path(config.path or "signalvault.json"))
    if config.backend == "sqlite":
        return SqliteKeyValueStore(Path(config.path or "signalvault.db"))

    raise ValueError(f"Unknown storage backend: {config.backend!r}")


# =============================================================================
# BASELINE STORE
# =============================================================================

class BaselineStore:
    """
    Exclusive owner of persisted Baseline records.

    Baselines are keyed by unit and independent; the per-unit lock gives
    each unit a single writer without blocking other units.
    """

    def __init__(
        self,
        kv_store: Optional[KeyValueStore] = None,
        max_samples: Optional[int] = None
    ):
        self._kv = kv_store if kv_store is not None else InMemoryKeyValueStore()
        self._max_samples = max_samples
        self._locks: Dict[str, threading.Lock] = {}
        self._locks_guard = threading.Lock()

    @staticmethod
    def _key(unit_id: str) -> str:
        return f"{BASELINE_PREFIX}{unit_id}"

    def lock_for(self, unit_id: str) -> threading.Lock:
        """The writer lock for one unit."""
        with self._locks_guard:
            lock = self._locks.get(unit_id)
            if lock is None:
                lock = self._locks[unit_id] = threading.Lock()
            return lock

    @contextmanager
    def exclusive(self, unit_id: str) -> Iterator[None]:
        """Hold the unit's writer lock for a whole read-then-append cycle."""
        with self.lock_for(unit_id):
            yield

    def get(self, unit_id: str) -> Optional[Baseline]:
        data = self._kv.get(self._key(unit_id))
        if data is None:
            return None
        try:
            return Baseline.from_dict(data)
        except (KeyError, TypeError, ValueError) as exc:
            raise PersistenceFailure(self._key(unit_id), "decode", str(exc)) from exc

    def get_aggregate(self, unit_id: str) -> Optional[FeatureVector]:
        """Mean of all retained samples, or None when the unit has no history."""
        baseline = self.get(unit_id)
        if baseline is None:
            return None
        return baseline.aggregate()

    def append(
        self,
        unit_id: str,
        vector: FeatureVector,
        now: Optional[datetime] = None
    ) -> Baseline:
        """
        Append one sample, creating the baseline if absent.

        Callers that already hold exclusive(unit_id) must use
        append_locked() instead; the lock is not re-entrant.
        """
        with self.lock_for(unit_id):
            return self.append_locked(unit_id, vector, now)

    def append_locked(
        self,
        unit_id: str,
        vector: FeatureVector,
        now: Optional[datetime] = None
    ) -> Baseline:
        now = now or utc_now()
        baseline = self.get(unit_id) or Baseline.create(unit_id, now)
        updated = baseline.with_sample(vector, now=now, max_samples=self._max_samples)
        self._kv.put(self._key(unit_id), updated.to_dict())
        logger.debug("Baseline %s now holds %d samples", unit_id, updated.sample_count)
        return updated

    def put(self, baseline: Baseline) -> None:
        """Store a whole baseline (restore from export)."""
        with self.lock_for(baseline.unit_id):
            self._kv.put(self._key(baseline.unit_id), baseline.to_dict())

    def reset(self, unit_id: str) -> None:
        """Explicitly discard a unit's history."""
        with self.lock_for(unit_id):
            self._kv.delete(self._key(unit_id))
        logger.info("Baseline reset for unit %s", unit_id)

    def units(self) -> List[str]:
        return [k[len(BASELINE_PREFIX):] for k in self._kv.keys(BASELINE_PREFIX)]


__all__ = [
    'KeyValueStore', 'InMemoryKeyValueStore', 'JsonFileKeyValueStore',
    'SqliteKeyValueStore', 'build_kv_store', 'BaselineStore', 'BASELINE_PREFIX',
]
