"""SQLite-backed inverted index and link store.

Single writer connection, thread-local read connections:
- WAL mode so readers see the last committed snapshot without blocking
- Every write runs in one explicit transaction and rolls back fully on failure
- Per-document locks serialize writers touching the same document
- ``exclusive()`` gives corpus-wide passes (IDF, PageRank) a quiescent snapshot
"""

from __future__ import annotations

from collections import defaultdict
from collections.abc import Iterable, Iterator, Mapping, Sequence
from contextlib import ExitStack, contextmanager
import logging
import math
from pathlib import Path
import sqlite3
import threading
from typing import Any

from search_core.domain.search import TermStats
from search_core.errors import TransientStoreError, UnknownDocumentError
from search_core.observability.metrics import ERROR_COUNT, INDEX_DOC_COUNT
from search_core.search.models import Posting, PreparedDocument, StoredDocument
from search_core.search.phrase import DEFAULT_MAX_GAP, matches_phrase
from search_core.search.sqlite_pragmas import apply_read_pragmas, apply_write_pragmas, optimize_for_lookups


logger = logging.getLogger(__name__)

# Stays well below SQLITE_MAX_VARIABLE_NUMBER on every supported build.
_IN_CLAUSE_CHUNK = 500

_SCHEMA = """
    CREATE TABLE IF NOT EXISTS documents (
        id INTEGER PRIMARY KEY,
        url TEXT NOT NULL UNIQUE,
        title TEXT NOT NULL DEFAULT '',
        page_rank REAL NOT NULL DEFAULT 0.0
    );

    CREATE TABLE IF NOT EXISTS postings (
        id INTEGER PRIMARY KEY,
        term TEXT NOT NULL,
        doc_id INTEGER NOT NULL REFERENCES documents(id),
        frequency REAL NOT NULL,
        importance REAL NOT NULL DEFAULT 1.0,
        idf REAL NOT NULL DEFAULT 0.0,
        UNIQUE (term, doc_id)
    );

    CREATE TABLE IF NOT EXISTS positions (
        posting_id INTEGER NOT NULL REFERENCES postings(id) ON DELETE CASCADE,
        position INTEGER NOT NULL,
        PRIMARY KEY (posting_id, position)
    ) WITHOUT ROWID;

    CREATE TABLE IF NOT EXISTS link_edges (
        from_doc_id INTEGER NOT NULL REFERENCES documents(id),
        to_doc_id INTEGER NOT NULL REFERENCES documents(id),
        PRIMARY KEY (from_doc_id, to_doc_id)
    ) WITHOUT ROWID;

    CREATE INDEX IF NOT EXISTS idx_postings_doc ON postings(doc_id);
"""


def _chunked(values: Sequence[Any], size: int = _IN_CLAUSE_CHUNK) -> Iterator[Sequence[Any]]:
    for start in range(0, len(values), size):
        yield values[start : start + size]


def _placeholders(count: int) -> str:
    return ", ".join("?" for _ in range(count))


class _ReadConnectionPool:
    """Thread-local read-only connections."""

    def __init__(self, db_path: Path) -> None:
        self.db_path = db_path
        self._local = threading.local()
        self._all: list[sqlite3.Connection] = []
        self._lock = threading.Lock()

    def get(self) -> sqlite3.Connection:
        conn = getattr(self._local, "connection", None)
        if conn is None:
            conn = sqlite3.connect(self.db_path, check_same_thread=False, isolation_level=None)
            apply_read_pragmas(conn)
            self._local.connection = conn
            with self._lock:
                self._all.append(conn)
        return conn

    def close_all(self) -> None:
        with self._lock:
            connections, self._all = self._all, []
        for conn in connections:
            conn.close()
        self._local = threading.local()


class SqliteIndexStore:
    """Durable postings, documents and link edges behind one API."""

    def __init__(self, db_path: str | Path) -> None:
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._write_lock = threading.RLock()
        self._doc_locks: dict[int, threading.Lock] = {}
        self._doc_locks_guard = threading.Lock()
        self._closed = False
        with self._translate_errors("open"):
            self._writer = sqlite3.connect(self.db_path, check_same_thread=False, isolation_level=None)
            apply_write_pragmas(self._writer)
            self._writer.executescript(_SCHEMA)
        self._readers = _ReadConnectionPool(self.db_path)
        logger.debug("Opened index store at %s", self.db_path)

    def __enter__(self) -> SqliteIndexStore:
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    # ------------------------------------------------------------------
    # Locking and transactions
    # ------------------------------------------------------------------

    @contextmanager
    def exclusive(self) -> Iterator[None]:
        """Block every writer for the duration of the block."""
        with self._write_lock:
            yield

    def _get_or_create_lock(self, doc_id: int) -> threading.Lock:
        with self._doc_locks_guard:
            lock = self._doc_locks.get(doc_id)
            if lock is None:
                lock = threading.Lock()
                self._doc_locks[doc_id] = lock
            return lock

    @contextmanager
    def _document_locks(self, doc_ids: Iterable[int]) -> Iterator[None]:
        with ExitStack() as stack:
            for doc_id in sorted(set(doc_ids)):
                stack.enter_context(self._get_or_create_lock(doc_id))
            yield

    @contextmanager
    def _translate_errors(self, operation: str) -> Iterator[None]:
        try:
            yield
        except sqlite3.Error as exc:
            ERROR_COUNT.labels(error_type=type(exc).__name__, component="index_store").inc()
            logger.error("Index store %s failed: %s", operation, exc)
            raise TransientStoreError(f"Index store {operation} failed: {exc}") from exc

    @contextmanager
    def _transaction(self, operation: str) -> Iterator[sqlite3.Connection]:
        with self._translate_errors(operation), self._write_lock:
            conn = self._writer
            conn.execute("BEGIN IMMEDIATE")
            try:
                yield conn
                conn.execute("COMMIT")
            except BaseException:
                if conn.in_transaction:
                    conn.execute("ROLLBACK")
                raise

    def _read(self) -> sqlite3.Connection:
        if self._closed:
            raise TransientStoreError(f"Index store at {self.db_path} is closed")
        return self._readers.get()

    @contextmanager
    def _read_snapshot(self, operation: str) -> Iterator[sqlite3.Connection]:
        """Run several SELECTs against one WAL snapshot."""
        with self._translate_errors(operation):
            conn = self._read()
            conn.execute("BEGIN")
            try:
                yield conn
            finally:
                if conn.in_transaction:
                    conn.execute("COMMIT")

    # ------------------------------------------------------------------
    # Documents
    # ------------------------------------------------------------------

    def ensure_document(self, url: str, title: str = "") -> int:
        """Return the id for ``url``, creating the document on first sight."""
        with self._transaction("ensure_document") as conn:
            doc_id = self._upsert_document(conn, url, title)
        self._refresh_document_gauge()
        return doc_id

    @staticmethod
    def _upsert_document(conn: sqlite3.Connection, url: str, title: str) -> int:
        conn.execute(
            "INSERT INTO documents (url, title) VALUES (?, ?) ON CONFLICT(url) DO UPDATE SET title = excluded.title",
            (url, title or ""),
        )
        return int(conn.execute("SELECT id FROM documents WHERE url = ?", (url,)).fetchone()[0])

    def get_document(self, doc_id: int) -> StoredDocument | None:
        with self._translate_errors("get_document"):
            row = self._read().execute(
                "SELECT id, url, title, page_rank FROM documents WHERE id = ?", (doc_id,)
            ).fetchone()
        if row is None:
            return None
        return StoredDocument(id=row[0], url=row[1], title=row[2], page_rank=row[3])

    def document_ids(self) -> list[int]:
        with self._translate_errors("document_ids"):
            return [row[0] for row in self._read().execute("SELECT id FROM documents ORDER BY id")]

    def document_count(self) -> int:
        with self._translate_errors("document_count"):
            return int(self._read().execute("SELECT COUNT(*) FROM documents").fetchone()[0])

    def _missing_documents(self, conn: sqlite3.Connection, doc_ids: Iterable[int]) -> set[int]:
        wanted = sorted(set(doc_ids))
        found: set[int] = set()
        for chunk in _chunked(wanted):
            query = f"SELECT id FROM documents WHERE id IN ({_placeholders(len(chunk))})"
            found.update(row[0] for row in conn.execute(query, tuple(chunk)))
        return set(wanted) - found

    def _refresh_document_gauge(self) -> None:
        INDEX_DOC_COUNT.labels(store=self.db_path.name).set(self.document_count())

    # ------------------------------------------------------------------
    # Postings
    # ------------------------------------------------------------------

    def insert_batch(self, doc_id: int, postings: Sequence[Posting]) -> int:
        """Upsert every posting of one document atomically.

        Raises:
            UnknownDocumentError: ``doc_id`` is not in the store; nothing is written.
        """
        with self._transaction("insert_batch") as conn, self._document_locks([doc_id]):
            missing = self._missing_documents(conn, [doc_id])
            if missing:
                raise UnknownDocumentError(missing)
            written = self._write_postings(conn, doc_id, postings)
        logger.debug("Wrote %d postings for document %d", written, doc_id)
        return written

    def insert_documents(self, documents: Sequence[PreparedDocument]) -> list[int]:
        """Create documents and write all of their postings in a single transaction.

        Returns the document ids in input order. Any failure rolls back the
        whole batch, including documents created by it.
        """
        if not documents:
            return []
        with self._transaction("insert_documents") as conn:
            doc_ids = [self._upsert_document(conn, doc.url, doc.title) for doc in documents]
            with self._document_locks(doc_ids):
                for doc_id, doc in zip(doc_ids, documents, strict=True):
                    self._write_postings(conn, doc_id, doc.postings)
        self._refresh_document_gauge()
        return doc_ids

    @staticmethod
    def _write_postings(conn: sqlite3.Connection, doc_id: int, postings: Sequence[Posting]) -> int:
        for posting in postings:
            conn.execute(
                "INSERT INTO postings (term, doc_id, frequency, importance) VALUES (?, ?, ?, ?) "
                "ON CONFLICT(term, doc_id) DO UPDATE SET "
                "frequency = excluded.frequency, importance = excluded.importance",
                (posting.term, doc_id, float(posting.frequency), float(posting.importance)),
            )
            posting_id = conn.execute(
                "SELECT id FROM postings WHERE term = ? AND doc_id = ?", (posting.term, doc_id)
            ).fetchone()[0]
            conn.execute("DELETE FROM positions WHERE posting_id = ?", (posting_id,))
            if posting.positions:
                conn.executemany(
                    "INSERT OR IGNORE INTO positions (posting_id, position) VALUES (?, ?)",
                    [(posting_id, int(position)) for position in posting.positions],
                )
        return len(postings)

    def recompute_idf(self) -> int:
        """Set ``idf = -ln(df / N)`` on every posting; returns the number of postings updated."""
        with self.exclusive(), self._transaction("recompute_idf") as conn:
            total_docs = int(conn.execute("SELECT COUNT(*) FROM documents").fetchone()[0])
            if total_docs == 0:
                return 0
            frequencies = conn.execute("SELECT term, COUNT(*) FROM postings GROUP BY term").fetchall()
            updates = [(-math.log(df / total_docs), term) for term, df in frequencies]
            cursor = conn.executemany("UPDATE postings SET idf = ? WHERE term = ?", updates)
            updated = cursor.rowcount
        logger.info("Recomputed IDF for %d terms over %d documents", len(updates), total_docs)
        return updated

    def lookup(self, stems: Iterable[str], doc_ids: Iterable[int] | None = None) -> dict[int, dict[str, TermStats]]:
        """Return ``doc_id -> stem -> TermStats`` for every document containing any stem."""
        terms = sorted(set(stems))
        allowed = set(doc_ids) if doc_ids is not None else None
        results: dict[int, dict[str, TermStats]] = defaultdict(dict)
        if not terms or allowed == set():
            return {}
        with self._read_snapshot("lookup") as conn:
            for chunk in _chunked(terms):
                query = (
                    "SELECT doc_id, term, frequency, idf, importance FROM postings "
                    f"WHERE term IN ({_placeholders(len(chunk))})"
                )
                for doc_id, term, frequency, idf, importance in conn.execute(query, tuple(chunk)):
                    if allowed is not None and doc_id not in allowed:
                        continue
                    results[doc_id][term] = TermStats(frequency=frequency, idf=idf, importance=importance)
        return dict(results)

    def phrase_lookup(self, ordered_stems: Sequence[str], max_gap: int | None = None) -> set[int]:
        """Return documents where ``ordered_stems`` appear as a bounded-gap phrase."""
        if not ordered_stems:
            return set()
        gap = DEFAULT_MAX_GAP if max_gap is None else max_gap
        distinct = sorted(set(ordered_stems))
        placeholders = _placeholders(len(distinct))

        with self._read_snapshot("phrase_lookup") as conn:
            candidates = {
                row[0]
                for row in conn.execute(
                    f"SELECT doc_id FROM postings WHERE term IN ({placeholders}) "
                    "GROUP BY doc_id HAVING COUNT(DISTINCT term) = ?",
                    (*distinct, len(distinct)),
                )
            }
            if not candidates:
                return set()

            positions: dict[int, dict[str, list[int]]] = defaultdict(lambda: defaultdict(list))
            rows = conn.execute(
                "SELECT p.doc_id, p.term, pos.position FROM postings p "
                "JOIN positions pos ON pos.posting_id = p.id "
                f"WHERE p.term IN ({placeholders}) ORDER BY p.doc_id, p.term, pos.position",
                tuple(distinct),
            )
            for doc_id, term, position in rows:
                if doc_id in candidates:
                    positions[doc_id][term].append(position)

        return {
            doc_id
            for doc_id, by_term in positions.items()
            if matches_phrase([by_term.get(stem, []) for stem in ordered_stems], gap)
        }

    def vocabulary(self) -> dict[str, int]:
        """Return every indexed term with its document frequency."""
        with self._translate_errors("vocabulary"):
            return {
                term: int(df) for term, df in self._read().execute("SELECT term, COUNT(*) FROM postings GROUP BY term")
            }

    # ------------------------------------------------------------------
    # PageRank and links
    # ------------------------------------------------------------------

    def page_ranks(self, doc_ids: Iterable[int]) -> dict[int, float]:
        wanted = sorted(set(doc_ids))
        ranks: dict[int, float] = {}
        with self._translate_errors("page_ranks"):
            conn = self._read()
            for chunk in _chunked(wanted):
                query = f"SELECT id, page_rank FROM documents WHERE id IN ({_placeholders(len(chunk))})"
                ranks.update((row[0], float(row[1])) for row in conn.execute(query, tuple(chunk)))
        return ranks

    def write_page_ranks(self, ranks: Mapping[int, float]) -> int:
        if not ranks:
            return 0
        with self._transaction("write_page_ranks") as conn:
            conn.executemany(
                "UPDATE documents SET page_rank = ? WHERE id = ?",
                [(float(rank), doc_id) for doc_id, rank in ranks.items()],
            )
        return len(ranks)

    def add_links(self, edges: Iterable[tuple[int, int]]) -> int:
        """Insert link edges, ignoring duplicates; returns the number of new edges.

        Raises:
            UnknownDocumentError: an endpoint is not in the store; nothing is written.
        """
        unique = sorted({(int(source), int(target)) for source, target in edges})
        if not unique:
            return 0
        with self._transaction("add_links") as conn:
            missing = self._missing_documents(conn, {node for edge in unique for node in edge})
            if missing:
                raise UnknownDocumentError(missing)
            before = conn.total_changes
            conn.executemany("INSERT OR IGNORE INTO link_edges (from_doc_id, to_doc_id) VALUES (?, ?)", unique)
            inserted = conn.total_changes - before
        logger.debug("Added %d link edges (%d submitted)", inserted, len(unique))
        return inserted

    def link_edges(self) -> list[tuple[int, int]]:
        with self._translate_errors("link_edges"):
            return [
                (row[0], row[1])
                for row in self._read().execute(
                    "SELECT from_doc_id, to_doc_id FROM link_edges ORDER BY from_doc_id, to_doc_id"
                )
            ]

    def close(self) -> None:
        with self._write_lock:
            if self._closed:
                return
            self._closed = True
            self._readers.close_all()
            with self._translate_errors("close"):
                try:
                    optimize_for_lookups(self._writer)
                finally:
                    self._writer.close()
        logger.debug("Closed index store at %s", self.db_path)
