"""Sample Store for On-Device Personalization.

Append-only log of (waveform, transcript) pairs in SQLite:
- Writes: a single writer thread drains a FIFO queue, so inserts are
  totally ordered and never interleave. Callers get a Future and return
  immediately.
- Reads: every call opens its own connection. The WAL journal gives each
  read a committed snapshot while the writer keeps appending.

Samples flow:
    Session end → insert() → write queue → writer thread → whisper_data
    Adaptation job → sample_batch(n) → newest n rows, most recent first

The log is never updated or pruned here.
"""

import atexit
import logging
import queue
import sqlite3
import threading
from concurrent.futures import Future
from contextlib import contextmanager
from pathlib import Path
from typing import Optional, List, Dict, Any, Callable

from ..errors import StorageError, InitializationError
from ..types import Sample

logger = logging.getLogger(__name__)


SCHEMA = """
-- Captured voice samples (id is never reused)
CREATE TABLE IF NOT EXISTS whisper_data (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    wave BLOB NOT NULL,
    text TEXT NOT NULL
);
"""

# Queue marker that stops the writer thread
_STOP = object()


# =============================================================================
# SAMPLE STORE
# =============================================================================

class SampleStore:
    """Durable sample log with a serialized writer."""

    def __init__(self, db_path: str, flush_timeout: float = 5.0):
        """Open (or create) the sample database and start the writer.

        Args:
            db_path: Path to the SQLite database file
            flush_timeout: Seconds to wait for queued inserts at interpreter exit

        Raises:
            StorageError: The database cannot be opened or initialized
        """
        self.db_path = Path(db_path)
        self.flush_timeout = flush_timeout

        self._queue: "queue.Queue" = queue.Queue()
        self._state_lock = threading.Lock()
        self._closed = False

        try:
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
            self._conn = self._open_writer_connection()
        except (OSError, sqlite3.Error) as e:
            raise StorageError(f"Cannot open sample database {self.db_path}: {e}") from e

        self._writer = threading.Thread(
            target=self._run_writer,
            name="whisperkey-writer",
            daemon=True,
        )
        self._writer.start()

        atexit.register(self._close_at_exit)
        logger.debug(f"Sample store opened at {self.db_path}")

    def _open_writer_connection(self) -> sqlite3.Connection:
        """Connection owned by the writer thread once it starts."""
        conn = sqlite3.connect(self.db_path, check_same_thread=False)
        try:
            conn.execute("PRAGMA journal_mode=WAL")
            conn.execute("PRAGMA synchronous=FULL")
            conn.executescript(SCHEMA)
            conn.commit()
        except sqlite3.Error:
            conn.close()
            raise
        return conn

    @contextmanager
    def _connect(self):
        """Context manager for a read-only connection."""
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        try:
            yield conn
        finally:
            conn.close()

    @property
    def closed(self) -> bool:
        return self._closed

    # =========================================================================
    # WRITES
    # =========================================================================

    def insert(self, waveform: bytes, transcript: str) -> "Future[int]":
        """Queue a sample for writing.

        Never blocks on I/O. The returned future resolves to the assigned
        id once the row is committed, or raises StorageError if the write
        was rejected (the sample is dropped and no id is consumed).

        Raises:
            ValueError: waveform or transcript is None, or transcript is not str
            StorageError: the store has been closed
        """
        if waveform is None:
            raise ValueError("waveform is required")
        if transcript is None:
            raise ValueError("transcript is required (empty string is allowed)")
        if not isinstance(transcript, str):
            raise ValueError(f"transcript must be str, got {type(transcript).__name__}")

        future: "Future[int]" = Future()
        item = (bytes(waveform), transcript, future)

        with self._state_lock:
            if self._closed:
                raise StorageError("Sample store is closed")
            self._queue.put(item)

        return future

    def _run_writer(self):
        """Drain the write queue in submission order."""
        while True:
            item = self._queue.get()
            try:
                if item is _STOP:
                    break

                if isinstance(item, threading.Event):
                    item.set()
                    continue

                waveform, transcript, future = item
                if not future.set_running_or_notify_cancel():
                    continue

                try:
                    sample_id = self._write_sample(waveform, transcript)
                except Exception as e:
                    logger.warning(f"Sample insert rejected: {e}")
                    future.set_exception(StorageError(f"Insert rejected: {e}"))
                else:
                    logger.debug(f"Stored sample {sample_id} ({len(waveform)} bytes)")
                    future.set_result(sample_id)
            finally:
                self._queue.task_done()

        self._conn.close()
        logger.debug("Sample writer stopped")

    def _write_sample(self, waveform: bytes, transcript: str) -> int:
        """Append one row. Rolls back on failure."""
        with self._conn:
            cursor = self._conn.execute(
                "INSERT INTO whisper_data (wave, text) VALUES (?, ?)",
                (sqlite3.Binary(waveform), transcript),
            )
        return cursor.lastrowid

    def flush(self, timeout: Optional[float] = None) -> bool:
        """Wait until every insert queued before this call was attempted.

        Returns:
            True if drained, False on timeout
        """
        marker = threading.Event()

        with self._state_lock:
            if self._closed:
                self._writer.join(timeout)
                return not self._writer.is_alive()
            self._queue.put(marker)

        return marker.wait(timeout)

    def close(self, timeout: Optional[float] = None) -> bool:
        """Write everything already queued, then stop the writer.

        Returns:
            True if the writer finished within timeout
        """
        with self._state_lock:
            if not self._closed:
                self._closed = True
                self._queue.put(_STOP)

        self._writer.join(timeout)
        atexit.unregister(self._close_at_exit)
        return not self._writer.is_alive()

    def _close_at_exit(self):
        pending = self._queue.qsize()
        if not self.close(self.flush_timeout):
            logger.warning(f"Sample writer did not drain within {self.flush_timeout}s ({pending} queued)")

    # =========================================================================
    # READS
    # =========================================================================

    def sample_batch(self, n: int) -> List[Sample]:
        """Get the n most recently inserted samples, most recent first.

        Returns fewer than n if the store holds fewer, and an empty list
        for an empty store.
        """
        if n < 0:
            raise ValueError(f"Batch size must be >= 0, got {n}")
        if n == 0:
            return []

        try:
            with self._connect() as conn:
                rows = conn.execute("""
                    SELECT id, wave, text FROM whisper_data
                    ORDER BY id DESC
                    LIMIT ?
                """, (n,)).fetchall()
        except sqlite3.Error as e:
            raise StorageError(f"Cannot read samples: {e}") from e

        return [self._row_to_sample(row) for row in rows]

    def get_sample(self, sample_id: int) -> Optional[Sample]:
        """Get a specific sample."""
        try:
            with self._connect() as conn:
                row = conn.execute(
                    "SELECT id, wave, text FROM whisper_data WHERE id = ?",
                    (sample_id,)
                ).fetchone()
        except sqlite3.Error as e:
            raise StorageError(f"Cannot read sample {sample_id}: {e}") from e

        if row:
            return self._row_to_sample(row)
        return None

    def count(self) -> int:
        """Number of committed samples."""
        return self.get_stats()["total"]

    def latest_id(self) -> Optional[int]:
        """Largest committed id, or None for an empty store."""
        return self.get_stats()["latest_id"]

    def get_stats(self) -> Dict[str, Any]:
        """Get sample store statistics."""
        try:
            with self._connect() as conn:
                row = conn.execute("""
                    SELECT COUNT(*), MAX(id), COALESCE(SUM(LENGTH(wave)), 0)
                    FROM whisper_data
                """).fetchone()
        except sqlite3.Error as e:
            raise StorageError(f"Cannot read sample stats: {e}") from e

        return {
            "total": row[0],
            "latest_id": row[1],
            "total_bytes": row[2],
            "pending_writes": self._queue.qsize(),
            "db_path": str(self.db_path),
        }

    def _row_to_sample(self, row) -> Sample:
        """Convert database row to Sample."""
        return Sample(
            id=row["id"],
            waveform=bytes(row["wave"]),
            transcript=row["text"],
        )


# =============================================================================
# SHARED HANDLE
# =============================================================================

def _default_store_factory() -> SampleStore:
    from ..config import get_config
    config = get_config()
    return SampleStore(str(config.db_path), flush_timeout=config.flush_timeout)


class StoreHandle:
    """Lazily constructs one SampleStore and hands it to every caller.

    Construction runs at most once. A failed construction is remembered and
    every later get() raises InitializationError instead of retrying.
    """

    def __init__(self, factory: Optional[Callable[[], SampleStore]] = None):
        self._factory = factory or _default_store_factory
        self._lock = threading.Lock()
        self._store: Optional[SampleStore] = None
        self._error: Optional[BaseException] = None

    def get(self) -> SampleStore:
        store = self._store
        if store is not None:
            return store

        with self._lock:
            if self._store is not None:
                return self._store

            if self._error is not None:
                raise InitializationError(
                    f"Sample store failed to initialize: {self._error}"
                ) from self._error

            try:
                store = self._factory()
            except Exception as e:
                self._error = e
                logger.error(f"Sample store initialization failed: {e}")
                raise InitializationError(f"Sample store failed to initialize: {e}") from e

            self._store = store
            return store

    @property
    def initialized(self) -> bool:
        return self._store is not None

    def close(self, timeout: Optional[float] = None):
        """Close the store if it was ever constructed."""
        with self._lock:
            store = self._store
        if store is not None:
            store.close(timeout)


# =============================================================================
# CONVENIENCE
# =============================================================================

_store_handle = StoreHandle()


def get_sample_store() -> SampleStore:
    """Get the process-wide sample store, creating it on first use."""
    return _store_handle.get()


def reset_sample_store(factory: Optional[Callable[[], SampleStore]] = None):
    """Close and replace the process-wide store handle (for testing)."""
    global _store_handle
    old = _store_handle
    _store_handle = StoreHandle(factory)
    old.close()
