"""Blended ranking: term relevance plus PageRank, with deterministic ordering."""

from __future__ import annotations

from collections.abc import Collection, Sequence
import logging

from search_core.concurrency import WorkerPool
from search_core.domain.search import DocumentMatch, QueryResult, RankedDocument, RankedPage
from search_core.observability.metrics import RANK_LATENCY, track_latency
from search_core.observability.tracing import create_span
from search_core.search.sqlite_store import SqliteIndexStore


logger = logging.getLogger(__name__)

DEFAULT_TFIDF_WEIGHT = 0.7
DEFAULT_PAGERANK_WEIGHT = 0.3
DEFAULT_PARALLEL_THRESHOLD = 1000
DEFAULT_MAX_PAGE_SIZE = 100


def relevance(match: DocumentMatch, query_stems: Collection[str] | None = None) -> float:
    """Sum of ``frequency * idf * importance`` over the matched terms."""
    total = 0.0
    for term, stats in match.per_term_stats.items():
        if query_stems is not None and term not in query_stems:
            continue
        frequency, idf = stats.as_pair()
        total += frequency * idf * stats.importance
    return total


class Ranker:
    """Scores matched documents and orders them by ``(-score, doc_id)``.

    Candidate sets at or above ``parallel_threshold`` are split into
    contiguous chunks scored on the worker pool; the final order does not
    depend on how the work was split. Page ranks are re-read from the store
    when one is given, otherwise taken from the matches.
    """

    def __init__(
        self,
        store: SqliteIndexStore | None,
        pool: WorkerPool,
        *,
        tfidf_weight: float = DEFAULT_TFIDF_WEIGHT,
        pagerank_weight: float = DEFAULT_PAGERANK_WEIGHT,
        parallel_threshold: int = DEFAULT_PARALLEL_THRESHOLD,
        max_page_size: int = DEFAULT_MAX_PAGE_SIZE,
    ) -> None:
        self._store = store
        self._pool = pool
        self.tfidf_weight = tfidf_weight
        self.pagerank_weight = pagerank_weight
        self.parallel_threshold = max(1, parallel_threshold)
        self.max_page_size = max(1, max_page_size)

    @classmethod
    def from_settings(cls, settings, store: SqliteIndexStore, pool: WorkerPool) -> Ranker:
        return cls(
            store,
            pool,
            tfidf_weight=settings.tfidf_weight,
            pagerank_weight=settings.pagerank_weight,
            parallel_threshold=settings.parallel_rank_threshold,
            max_page_size=settings.max_page_size,
        )

    def score(
        self,
        match: DocumentMatch,
        query_stems: Collection[str] | None = None,
        page_rank: float | None = None,
    ) -> float:
        rank = match.page_rank if page_rank is None else page_rank
        return self.tfidf_weight * relevance(match, query_stems) + self.pagerank_weight * rank

    def rank(self, query_result: QueryResult, query_stems: Collection[str] | None = None) -> list[RankedDocument]:
        """Return every matched document with its score, best first, ties by ascending id."""
        matches = query_result.documents
        if not matches:
            return []

        mode = "parallel" if len(matches) >= self.parallel_threshold else "serial"
        with (
            create_span("rank", attributes={"rank.candidates": len(matches), "rank.mode": mode}),
            track_latency(RANK_LATENCY, mode=mode),
        ):
            page_ranks = self._store.page_ranks(match.doc_id for match in matches) if self._store is not None else {}
            stems = frozenset(query_stems) if query_stems is not None else None
            scores: dict[int, float] = {}

            def score_chunk(chunk: Sequence[DocumentMatch]) -> int:
                for match in chunk:
                    scores[match.doc_id] = self.score(match, stems, page_ranks.get(match.doc_id, match.page_rank))
                return len(chunk)

            if mode == "parallel":
                self._pool.map_chunks(matches, self._pool.max_workers, score_chunk)
            else:
                score_chunk(matches)

            ordered = sorted(scores.items(), key=lambda item: (-item[1], item[0]))
        logger.debug("Ranked %d documents (%s)", len(ordered), mode)
        return [RankedDocument(doc_id=doc_id, score=score) for doc_id, score in ordered]

    def paginate(self, ranked: Sequence[RankedDocument], page: int = 0, size: int = 10) -> RankedPage:
        """Slice ``ranked`` at ``offset = page * size``; pages past the end are empty."""
        size = min(max(1, size), self.max_page_size)
        page = max(0, page)
        offset = page * size
        return RankedPage(items=list(ranked[offset : offset + size]), total=len(ranked), page=page, size=size)

