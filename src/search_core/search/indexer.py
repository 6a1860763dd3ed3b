"""Indexing pipeline entry: tokenized documents in, postings written atomically.

Tokenization (HTML parsing, field extraction) belongs to the caller. The
``tokenize_fields`` helper covers the common case of plain-text fields run
through a ``Normalizer``; anything producing ``TokenizedDocument`` works.
"""

from __future__ import annotations

from collections import defaultdict
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from functools import partial
import logging

from search_core.concurrency import WorkerPool
from search_core.observability.metrics import INDEX_BATCH_LATENCY, track_latency
from search_core.observability.tracing import create_span
from search_core.search.analyzers import Normalizer
from search_core.search.models import Posting, PreparedDocument
from search_core.search.sqlite_store import SqliteIndexStore


logger = logging.getLogger(__name__)

FIELD_WEIGHTS: dict[str, float] = {
    "title": 5.0,
    "h1": 4.0,
    "h2": 3.0,
    "h3": 2.5,
    "h4": 2.0,
    "h5": 1.8,
    "h6": 1.5,
    "content": 1.0,
}


@dataclass(frozen=True)
class TokenOccurrence:
    """One stemmed token at a position, weighted by the field it came from."""

    stem: str
    field_weight: float
    position: int


@dataclass(frozen=True)
class TokenizedDocument:
    url: str
    title: str = ""
    tokens: tuple[TokenOccurrence, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class IndexingSummary:
    """Outcome of an ``index_corpus`` run."""

    documents_indexed: int
    batches: int
    idf_postings_updated: int


def tokenize_fields(
    url: str,
    title: str,
    fields: Sequence[tuple[str, str]],
    normalizer: Normalizer,
) -> TokenizedDocument:
    """Tokenize ``title`` and each ``(field_name, text)`` pair in order.

    Positions run continuously across fields. Field names must be keys of
    ``FIELD_WEIGHTS``.
    """
    tokens: list[TokenOccurrence] = []
    offset = 0
    for field_name, text in (("title", title), *fields):
        try:
            weight = FIELD_WEIGHTS[field_name]
        except KeyError as exc:
            raise ValueError(f"Unknown field '{field_name}'; expected one of {sorted(FIELD_WEIGHTS)}") from exc
        pairs = normalizer.tokenize_positions(text or "")
        for stem, position in pairs:
            tokens.append(TokenOccurrence(stem=stem, field_weight=weight, position=offset + position))
        if pairs:
            offset += pairs[-1][1] + 1
    return TokenizedDocument(url=url, title=title, tokens=tuple(tokens))


def build_postings(document: TokenizedDocument) -> tuple[Posting, ...]:
    """Collapse token occurrences into one posting per stem.

    Frequency is the occurrence count, importance the highest field weight
    the stem was seen in, positions sorted and unique.
    """
    counts: dict[str, int] = defaultdict(int)
    importance: dict[str, float] = {}
    positions: dict[str, set[int]] = defaultdict(set)
    for token in document.tokens:
        counts[token.stem] += 1
        importance[token.stem] = max(importance.get(token.stem, 0.0), token.field_weight)
        positions[token.stem].add(token.position)
    return tuple(
        Posting(
            term=stem,
            frequency=float(counts[stem]),
            importance=importance[stem],
            positions=tuple(sorted(positions[stem])),
        )
        for stem in sorted(counts)
    )


def prepare_document(document: TokenizedDocument) -> PreparedDocument:
    return PreparedDocument(url=document.url, title=document.title, postings=build_postings(document))


class Indexer:
    """Turn tokenized documents into postings and write them batch by batch."""

    def __init__(self, store: SqliteIndexStore, pool: WorkerPool) -> None:
        self._store = store
        self._pool = pool

    def index_batch(self, documents: Sequence[TokenizedDocument]) -> list[int]:
        """Build postings per document in parallel, then write the batch atomically.

        Returns document ids in input order. IDF values are not refreshed here;
        call ``SqliteIndexStore.recompute_idf`` (or use ``index_corpus``) once
        the corpus is loaded.
        """
        if not documents:
            return []
        with (
            create_span("index.batch", attributes={"index.batch_size": len(documents)}),
            track_latency(INDEX_BATCH_LATENCY, operation="batch"),
        ):
            prepared = self._pool.run_all([partial(prepare_document, document) for document in documents])
            doc_ids = self._store.insert_documents(prepared)
        logger.info(
            "Indexed batch of %d documents (%d postings)",
            len(doc_ids),
            sum(len(doc.postings) for doc in prepared),
        )
        return doc_ids

    def index_corpus(self, batches: Iterable[Sequence[TokenizedDocument]]) -> IndexingSummary:
        """Index every batch, then recompute IDF once for the whole corpus."""
        indexed = 0
        batch_count = 0
        for batch in batches:
            indexed += len(self.index_batch(batch))
            batch_count += 1
        with track_latency(INDEX_BATCH_LATENCY, operation="recompute_idf"):
            updated = self._store.recompute_idf()
        return IndexingSummary(documents_indexed=indexed, batches=batch_count, idf_postings_updated=updated)
