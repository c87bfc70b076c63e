"""Tests for the sample store and its shared handle."""

import sqlite3
import threading
import time

import pytest

from whisperkey.errors import StorageError, InitializationError
from whisperkey.learning import SampleStore, StoreHandle, get_sample_store, reset_sample_store


# =============================================================================
# INSERT & SAMPLE
# =============================================================================

def test_sample_batch_returns_most_recent_first(store, insert_all):
    insert_all(store, [(b"wav1", "hello"), (b"wav2", "world"), (b"wav3", "test")])

    batch = store.sample_batch(2)

    assert [s.as_pair() for s in batch] == [(b"wav3", "test"), (b"wav2", "world")]
    assert [s.id for s in batch] == [3, 2]


def test_sample_batch_with_fewer_samples_than_requested(store, insert_all):
    insert_all(store, [(b"a", "one"), (b"b", "two")])

    batch = store.sample_batch(8)

    assert [s.id for s in batch] == [2, 1]


def test_sample_batch_on_empty_store(store):
    assert store.sample_batch(8) == []
    assert store.count() == 0
    assert store.latest_id() is None


def test_sample_batch_rejects_negative_size(store):
    assert store.sample_batch(0) == []
    with pytest.raises(ValueError):
        store.sample_batch(-1)


def test_ids_start_at_one_and_increase(store, insert_all):
    ids = insert_all(store, [(bytes([i]), f"t{i}") for i in range(5)])
    assert ids == [1, 2, 3, 4, 5]


def test_empty_transcript_allowed_but_none_rejected(store, insert_all):
    (sample_id,) = insert_all(store, [(b"\x00\x01", "")])
    assert store.get_sample(sample_id).transcript == ""

    with pytest.raises(ValueError):
        store.insert(b"\x00", None)
    with pytest.raises(ValueError):
        store.insert(None, "text")


def test_non_str_transcript_rejected(store):
    with pytest.raises(ValueError):
        store.insert(b"\x00", b"bytes text")
    with pytest.raises(ValueError):
        store.insert(b"\x00", 42)

    store.flush(timeout=5)
    assert store.count() == 0


def test_insert_does_not_wait_for_write(store, monkeypatch):
    release = threading.Event()
    original = store._write_sample

    def slow_write(waveform, transcript):
        release.wait(5)
        return original(waveform, transcript)

    monkeypatch.setattr(store, "_write_sample", slow_write)

    start = time.monotonic()
    future = store.insert(b"wav", "queued")
    assert time.monotonic() - start < 1.0
    assert not future.done()

    release.set()
    assert future.result(timeout=5) == 1


def test_samples_survive_reopen(tmp_path, insert_all):
    db_path = str(tmp_path / "durable.db")

    first = SampleStore(db_path)
    insert_all(first, [(b"wav1", "hello"), (b"wav2", "world")])
    first.close(timeout=5)

    second = SampleStore(db_path)
    try:
        assert [s.transcript for s in second.sample_batch(8)] == ["world", "hello"]
        (new_id,) = insert_all(second, [(b"wav3", "again")])
        assert new_id == 3
    finally:
        second.close(timeout=5)


def test_stats(store, insert_all):
    insert_all(store, [(b"1234", "a"), (b"56", "b")])
    stats = store.get_stats()

    assert stats["total"] == 2
    assert stats["latest_id"] == 2
    assert stats["total_bytes"] == 6
    assert stats["db_path"].endswith("whisper.db")


# =============================================================================
# CONCURRENCY
# =============================================================================

def test_concurrent_inserts_get_unique_gapless_ids(store):
    threads_count, per_thread = 8, 25
    barrier = threading.Barrier(threads_count)
    results = {}

    def worker(n):
        barrier.wait()
        futures = [store.insert(f"{n}-{i}".encode(), f"{n}-{i}") for i in range(per_thread)]
        results[n] = [f.result(timeout=10) for f in futures]

    threads = [threading.Thread(target=worker, args=(n,)) for n in range(threads_count)]
    for t in threads:
        t.start()
    for t in threads:
        t.join(10)

    all_ids = sorted(i for ids in results.values() for i in ids)
    assert all_ids == list(range(1, threads_count * per_thread + 1))

    # Each caller's inserts keep their submission order
    for ids in results.values():
        assert ids == sorted(ids)

    # Every id maps to the row its caller submitted
    for n, ids in results.items():
        for i, sample_id in enumerate(ids):
            assert store.get_sample(sample_id).transcript == f"{n}-{i}"


def test_reads_during_writes_see_complete_rows(store):
    stop = threading.Event()
    errors = []

    def reader():
        while not stop.is_set():
            batch = store.sample_batch(8)
            ids = [s.id for s in batch]
            if ids and ids != list(range(ids[0], ids[0] - len(ids), -1)):
                errors.append(f"non-contiguous batch {ids}")
            for s in batch:
                if s.waveform != s.transcript.encode():
                    errors.append(f"corrupt sample {s.id}")

    readers = [threading.Thread(target=reader) for _ in range(3)]
    for t in readers:
        t.start()

    futures = [store.insert(f"sample-{i}".encode(), f"sample-{i}") for i in range(200)]
    for f in futures:
        f.result(timeout=10)

    stop.set()
    for t in readers:
        t.join(5)

    assert errors == []
    assert store.count() == 200


# =============================================================================
# FAILURES & SHUTDOWN
# =============================================================================

def test_rejected_write_consumes_no_id(store, insert_all):
    conn = sqlite3.connect(store.db_path)
    conn.execute("""
        CREATE TRIGGER reject_outage BEFORE INSERT ON whisper_data
        WHEN NEW.text = 'outage'
        BEGIN SELECT RAISE(ABORT, 'disk full'); END
    """)
    conn.commit()
    conn.close()

    ok = store.insert(b"a", "before")
    failed = store.insert(b"b", "outage")
    after = store.insert(b"c", "after")

    assert ok.result(timeout=5) == 1
    with pytest.raises(StorageError):
        failed.result(timeout=5)
    assert after.result(timeout=5) == 2
    assert [s.transcript for s in store.sample_batch(8)] == ["after", "before"]


def test_writer_survives_unexpected_errors(store, monkeypatch):
    original = store._write_sample
    calls = []

    def flaky(waveform, transcript):
        calls.append(transcript)
        if len(calls) == 1:
            raise sqlite3.OperationalError("database is locked")
        return original(waveform, transcript)

    monkeypatch.setattr(store, "_write_sample", flaky)

    with pytest.raises(StorageError):
        store.insert(b"x", "lost").result(timeout=5)
    assert store.insert(b"y", "kept").result(timeout=5) == 1


def test_close_drains_queued_inserts(tmp_path):
    store = SampleStore(str(tmp_path / "drain.db"))
    futures = [store.insert(b"w", f"t{i}") for i in range(50)]

    assert store.close(timeout=10)
    assert all(f.done() for f in futures)
    assert store.count() == 50

    with pytest.raises(StorageError):
        store.insert(b"w", "late")


def test_flush_waits_for_prior_inserts(store):
    futures = [store.insert(b"w", f"t{i}") for i in range(20)]
    assert store.flush(timeout=5)
    assert all(f.done() for f in futures)


def test_unopenable_database_raises_storage_error(tmp_path):
    blocker = tmp_path / "not_a_dir"
    blocker.write_text("file")

    with pytest.raises(StorageError):
        SampleStore(str(blocker / "whisper.db"))


# =============================================================================
# STORE HANDLE
# =============================================================================

def test_handle_constructs_once_under_concurrent_get(tmp_path):
    constructed = []
    lock = threading.Lock()

    def factory():
        time.sleep(0.05)  # widen the race window
        with lock:
            constructed.append(1)
        return SampleStore(str(tmp_path / "shared.db"))

    handle = StoreHandle(factory)
    callers = 16
    barrier = threading.Barrier(callers)
    seen = []

    def caller():
        barrier.wait()
        seen.append(handle.get())

    threads = [threading.Thread(target=caller) for _ in range(callers)]
    for t in threads:
        t.start()
    for t in threads:
        t.join(10)

    try:
        assert len(constructed) == 1
        assert len(seen) == callers
        assert all(s is seen[0] for s in seen)
    finally:
        handle.close(timeout=5)


def test_handle_failure_reaches_every_caller_without_retry():
    attempts = []

    def broken():
        attempts.append(1)
        raise StorageError("cannot open backend")

    handle = StoreHandle(broken)

    for _ in range(3):
        with pytest.raises(InitializationError):
            handle.get()

    assert len(attempts) == 1
    assert not handle.initialized


def test_handle_failure_under_concurrent_get():
    attempts = []
    callers = 8
    barrier = threading.Barrier(callers)
    outcomes = []

    def broken():
        attempts.append(1)
        time.sleep(0.05)
        raise StorageError("cannot open backend")

    handle = StoreHandle(broken)

    def caller():
        barrier.wait()
        try:
            handle.get()
            outcomes.append("store")
        except InitializationError:
            outcomes.append("error")

    threads = [threading.Thread(target=caller) for _ in range(callers)]
    for t in threads:
        t.start()
    for t in threads:
        t.join(10)

    assert len(attempts) == 1
    assert outcomes == ["error"] * callers


def test_global_store_uses_configured_path(isolated_config):
    store = get_sample_store()
    assert store is get_sample_store()
    assert store.db_path == isolated_config.db_path

    reset_sample_store()
    assert store.closed
    assert get_sample_store() is not store
