"""Shared test fixtures and configuration."""

from collections.abc import Iterator
import os
from pathlib import Path

import pytest

from search_core.concurrency import WorkerPool
from search_core.config import Settings
from search_core.search.analyzers import Normalizer
from search_core.search.indexer import Indexer, tokenize_fields
from search_core.search.sqlite_store import SqliteIndexStore


# Test environment that overrides config values read from the process environment
TEST_ENV = {
    "SEARCH_CORE_LOG_LEVEL": "debug",
    "SEARCH_CORE_LOG_JSON": "false",
    "SEARCH_CORE_MAX_WORKERS": "4",
}

# Small corpus used by resolver and end-to-end tests
SMALL_CORPUS = {
    "https://example.com/cat": "the cat sat",
    "https://example.com/pets": "cats and dogs",
    "https://example.com/dog": "the dog ran",
}


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch):
    """Strip stray SEARCH_CORE_* variables and set test defaults."""
    for key in list(os.environ):
        if key.startswith("SEARCH_CORE_"):
            monkeypatch.delenv(key, raising=False)
    for key, value in TEST_ENV.items():
        monkeypatch.setenv(key, value)


@pytest.fixture
def db_path(tmp_path: Path) -> Path:
    return tmp_path / "index" / "search_index.db"


@pytest.fixture
def settings(db_path: Path) -> Settings:
    return Settings(database_path=db_path, _env_file=None)


@pytest.fixture
def normalizer() -> Normalizer:
    return Normalizer()


@pytest.fixture
def pool() -> Iterator[WorkerPool]:
    with WorkerPool(4, name="test-pool") as worker_pool:
        yield worker_pool


@pytest.fixture
def store(db_path: Path) -> Iterator[SqliteIndexStore]:
    index_store = SqliteIndexStore(db_path)
    yield index_store
    index_store.close()


@pytest.fixture
def corpus_ids(store: SqliteIndexStore, pool: WorkerPool, normalizer: Normalizer) -> dict[str, int]:
    """Index the small corpus into ``store`` (IDF computed) and map URL to document id."""
    documents = [tokenize_fields(url, "", [("content", text)], normalizer) for url, text in SMALL_CORPUS.items()]
    doc_ids = Indexer(store, pool).index_batch(documents)
    store.recompute_idf()
    return dict(zip(SMALL_CORPUS, doc_ids, strict=True))
