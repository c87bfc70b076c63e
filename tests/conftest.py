"""Shared fixtures - every test gets its own data directory."""

from pathlib import Path

import pytest

from whisperkey.config import Config, set_config
from whisperkey.learning import SampleStore, reset_sample_store


@pytest.fixture(autouse=True)
def isolated_config(tmp_path: Path):
    config = Config(data_dir=tmp_path / "data")
    set_config(config)
    reset_sample_store()
    yield config
    reset_sample_store()
    set_config(None)


@pytest.fixture
def store(tmp_path: Path):
    store = SampleStore(str(tmp_path / "whisper.db"))
    yield store
    store.close(timeout=5)


@pytest.fixture
def insert_all():
    """Insert pairs in order and wait for every id."""
    def _insert_all(store, pairs):
        futures = [store.insert(wave, text) for wave, text in pairs]
        return [f.result(timeout=5) for f in futures]
    return _insert_all
