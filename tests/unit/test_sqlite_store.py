"""Unit tests for the SQLite index store."""

import math
import sqlite3

import pytest

from search_core.errors import TransientStoreError, UnknownDocumentError
from search_core.search import sqlite_store as sqlite_store_module
from search_core.search.models import Posting, PreparedDocument
from search_core.search.sqlite_pragmas import WRITE_WAL_AUTOCHECKPOINT_PAGES
from search_core.search.sqlite_store import SqliteIndexStore


def _posting(term, frequency=1.0, importance=1.0, positions=()):
    return Posting(term=term, frequency=frequency, importance=importance, positions=tuple(positions))


@pytest.mark.unit
class TestDocuments:
    def test_ensure_document_is_idempotent_and_updates_title(self, store):
        first = store.ensure_document("https://example.com/a", "Old")
        second = store.ensure_document("https://example.com/a", "New")

        assert first == second
        assert store.get_document(first).title == "New"
        assert store.document_count() == 1

    def test_get_document_unknown(self, store):
        assert store.get_document(404) is None

    def test_document_ids_are_sorted(self, store):
        ids = [store.ensure_document(f"https://example.com/{n}") for n in range(3)]

        assert store.document_ids() == sorted(ids)

    def test_schema_tables_exist(self, store, db_path):
        with sqlite3.connect(db_path) as conn:
            tables = {row[0] for row in conn.execute("SELECT name FROM sqlite_master WHERE type = 'table'")}

        assert {"documents", "postings", "positions", "link_edges"} <= tables


@pytest.mark.unit
class TestInsertBatch:
    def test_postings_are_visible_to_lookup(self, store):
        doc_id = store.ensure_document("https://example.com/a")

        written = store.insert_batch(doc_id, [_posting("search", 2, 5.0, [0, 4]), _posting("engine", 1)])

        assert written == 2
        stats = store.lookup({"search", "engine", "missing"})
        assert set(stats) == {doc_id}
        assert stats[doc_id]["search"].frequency == 2
        assert stats[doc_id]["search"].importance == 5.0
        assert stats[doc_id]["search"].idf == 0.0

    def test_upsert_replaces_values_and_positions(self, store):
        doc_id = store.ensure_document("https://example.com/a")
        store.insert_batch(doc_id, [_posting("search", 1, 1.0, [0])])

        store.insert_batch(doc_id, [_posting("search", 3, 4.0, [7, 8, 9])])

        stats = store.lookup({"search"})[doc_id]["search"]
        assert (stats.frequency, stats.importance) == (3, 4.0)
        assert store.phrase_lookup(["search"]) == {doc_id}
        with sqlite3.connect(store.db_path) as conn:
            positions = [row[0] for row in conn.execute("SELECT position FROM positions ORDER BY position")]
        assert positions == [7, 8, 9]

    def test_unknown_document_writes_nothing(self, store):
        with pytest.raises(UnknownDocumentError) as exc_info:
            store.insert_batch(999, [_posting("search")])

        assert exc_info.value.doc_ids == frozenset({999})
        assert store.lookup({"search"}) == {}

    def test_failure_mid_batch_rolls_back(self, store):
        doc_id = store.ensure_document("https://example.com/a")
        broken = Posting(term="engine", frequency=None)  # type: ignore[arg-type]

        with pytest.raises(TypeError):
            store.insert_batch(doc_id, [_posting("search"), broken])

        assert store.lookup({"search", "engine"}) == {}

    def test_concurrent_batches_for_distinct_documents(self, store, pool):
        doc_ids = [store.ensure_document(f"https://example.com/{n}") for n in range(12)]

        pool.run_all([lambda doc_id=doc_id: store.insert_batch(doc_id, [_posting("shared")]) for doc_id in doc_ids])

        assert set(store.lookup({"shared"})) == set(doc_ids)


@pytest.mark.unit
class TestInsertDocuments:
    def test_creates_documents_and_postings(self, store):
        ids = store.insert_documents(
            [
                PreparedDocument("https://example.com/a", "A", (_posting("alpha"),)),
                PreparedDocument("https://example.com/b", "B", (_posting("alpha"), _posting("beta"))),
            ]
        )

        assert len(ids) == 2
        assert store.document_count() == 2
        assert set(store.lookup({"alpha"})) == set(ids)

    def test_whole_batch_rolls_back(self, store):
        broken = Posting(term="beta", frequency="many")  # type: ignore[arg-type]

        with pytest.raises(ValueError):
            store.insert_documents(
                [
                    PreparedDocument("https://example.com/a", "A", (_posting("alpha"),)),
                    PreparedDocument("https://example.com/b", "B", (broken,)),
                ]
            )

        assert store.document_count() == 0
        assert store.vocabulary() == {}

    def test_empty_batch(self, store):
        assert store.insert_documents([]) == []


@pytest.mark.unit
class TestRecomputeIdf:
    def test_idf_is_negative_log_document_ratio(self, store):
        ids = [store.ensure_document(f"https://example.com/{n}") for n in range(3)]
        store.insert_batch(ids[0], [_posting("rare"), _posting("common")])
        store.insert_batch(ids[1], [_posting("common")])
        store.insert_batch(ids[2], [_posting("common")])

        updated = store.recompute_idf()

        assert updated == 4
        stats = store.lookup({"rare", "common"})
        assert stats[ids[0]]["rare"].idf == pytest.approx(-math.log(1 / 3))
        assert stats[ids[1]]["common"].idf == pytest.approx(0.0)

    def test_empty_store(self, store):
        assert store.recompute_idf() == 0


@pytest.mark.unit
class TestPhraseLookup:
    def test_bounded_gap_policy(self, store):
        tight = store.ensure_document("https://example.com/tight")
        loose = store.ensure_document("https://example.com/loose")
        for doc_id, last in ((tight, 7), (loose, 9)):
            store.insert_batch(
                doc_id,
                [
                    _posting("alpha", positions=[5]),
                    _posting("beta", positions=[6]),
                    _posting("gamma", positions=[last]),
                ],
            )

        assert store.phrase_lookup(["alpha", "beta", "gamma"]) == {tight}
        assert store.phrase_lookup(["alpha", "beta", "gamma"], max_gap=3) == {tight, loose}

    def test_later_position_in_window_continues_phrase(self, store):
        doc_id = store.ensure_document("https://example.com/a")
        store.insert_batch(
            doc_id,
            [
                _posting("alpha", positions=[0]),
                _posting("beta", 2, positions=[1, 2]),
                _posting("gamma", positions=[4]),
            ],
        )

        assert store.phrase_lookup(["alpha", "beta", "gamma"], max_gap=2) == {doc_id}

    def test_reads_share_one_snapshot(self, store):
        doc_id = store.ensure_document("https://example.com/a")
        store.insert_batch(doc_id, [_posting("alpha", positions=[0]), _posting("beta", positions=[1])])
        statements = []
        reader = store._read()
        reader.set_trace_callback(statements.append)
        try:
            assert store.phrase_lookup(["alpha", "beta"]) == {doc_id}
        finally:
            reader.set_trace_callback(None)

        assert statements[0] == "BEGIN"
        assert statements[-1] == "COMMIT"
        assert sum(statement.startswith("SELECT") for statement in statements) == 2
        assert not reader.in_transaction

    def test_snapshot_closes_when_no_candidates(self, store):
        store.ensure_document("https://example.com/a")

        assert store.phrase_lookup(["alpha", "beta"]) == set()
        assert not store._read().in_transaction

    def test_requires_every_stem(self, store):
        doc_id = store.ensure_document("https://example.com/a")
        store.insert_batch(doc_id, [_posting("alpha", positions=[0])])

        assert store.phrase_lookup(["alpha", "beta"]) == set()
        assert store.phrase_lookup([]) == set()

    def test_repeated_stem_in_phrase(self, store):
        doc_id = store.ensure_document("https://example.com/a")
        store.insert_batch(doc_id, [_posting("very", 2, positions=[0, 1]), _posting("good", positions=[2])])

        assert store.phrase_lookup(["very", "very", "good"]) == {doc_id}


@pytest.mark.unit
class TestLinksAndRanks:
    def test_add_links_deduplicates(self, store):
        a = store.ensure_document("https://example.com/a")
        b = store.ensure_document("https://example.com/b")

        assert store.add_links([(a, b), (a, b), (b, a), (a, a)]) == 3
        assert store.add_links([(a, b)]) == 0
        assert store.link_edges() == sorted([(a, b), (b, a), (a, a)])

    def test_add_links_unknown_endpoint(self, store):
        a = store.ensure_document("https://example.com/a")

        with pytest.raises(UnknownDocumentError):
            store.add_links([(a, 77)])
        assert store.link_edges() == []

    def test_page_rank_roundtrip(self, store):
        a = store.ensure_document("https://example.com/a")
        b = store.ensure_document("https://example.com/b")

        store.write_page_ranks({a: 0.25, b: 0.75})

        assert store.page_ranks([a, b, 12345]) == {a: 0.25, b: 0.75}
        assert store.get_document(b).page_rank == 0.75


@pytest.mark.unit
class TestVocabulary:
    def test_vocabulary_counts_documents_per_term(self, store):
        ids = [store.ensure_document(f"https://example.com/{n}") for n in range(3)]
        store.insert_batch(ids[0], [_posting("search"), _posting("seal")])
        store.insert_batch(ids[1], [_posting("search"), _posting("season")])
        store.insert_batch(ids[2], [_posting("search"), _posting("season")])

        assert store.vocabulary() == {"search": 3, "seal": 1, "season": 2}


@pytest.mark.unit
class TestErrors:
    def test_closed_store_raises_transient_error(self, db_path):
        store = SqliteIndexStore(db_path)
        store.close()

        with pytest.raises(TransientStoreError) as exc_info:
            store.ensure_document("https://example.com/a")

        assert isinstance(exc_info.value.__cause__, sqlite3.Error)

    def test_close_is_idempotent(self, db_path):
        store = SqliteIndexStore(db_path)
        store.close()
        store.close()


@pytest.mark.unit
class TestPragmas:
    def test_writer_uses_batch_insert_profile(self, store):
        writer = store._writer

        assert writer.execute("PRAGMA journal_mode").fetchone()[0] == "wal"
        assert writer.execute("PRAGMA foreign_keys").fetchone()[0] == 1
        assert writer.execute("PRAGMA wal_autocheckpoint").fetchone()[0] == WRITE_WAL_AUTOCHECKPOINT_PAGES

    def test_readers_are_query_only(self, store):
        reader = store._read()

        assert reader.execute("PRAGMA query_only").fetchone()[0] == 1
        with pytest.raises(sqlite3.OperationalError):
            reader.execute("INSERT INTO documents (url) VALUES ('https://example.com/x')")

    def test_close_optimizes_once(self, db_path, monkeypatch):
        optimized = []
        monkeypatch.setattr(sqlite_store_module, "optimize_for_lookups", optimized.append)
        store = SqliteIndexStore(db_path)
        writer = store._writer

        store.close()
        store.close()

        assert optimized == [writer]
