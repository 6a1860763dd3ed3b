"""Service facade wiring the store, resolver, ranker, PageRank and suggestions."""

from __future__ import annotations

from collections.abc import Iterable, Sequence
import logging

from search_core.concurrency import WorkerPool
from search_core.config import Settings
from search_core.domain.search import SearchPage
from search_core.observability.context import operation_context
from search_core.observability.logging import configure_logging
from search_core.observability.tracing import create_span
from search_core.ranking.pagerank import PageRankEngine, PageRankResult
from search_core.ranking.ranker import Ranker
from search_core.search.analyzers import Normalizer
from search_core.search.indexer import Indexer, IndexingSummary, TokenizedDocument, tokenize_fields
from search_core.search.query_resolver import QueryResolver
from search_core.search.sqlite_store import SqliteIndexStore
from search_core.search.suggestions import SuggestionIndex


logger = logging.getLogger(__name__)


class SearchService:
    """Entry point for indexing, searching and suggestions.

    The service owns the worker pool and the store; ``close`` releases both.
    """

    def __init__(
        self,
        *,
        settings: Settings,
        store: SqliteIndexStore,
        pool: WorkerPool,
        normalizer: Normalizer,
    ) -> None:
        self.settings = settings
        self.store = store
        self.pool = pool
        self.normalizer = normalizer
        self.indexer = Indexer(store, pool)
        self.resolver = QueryResolver(
            store,
            normalizer,
            pool,
            phrase_max_gap=settings.phrase_max_gap,
            cache_size=settings.query_cache_size,
        )
        self.ranker = Ranker.from_settings(settings, store, pool)
        self.pagerank = PageRankEngine.from_settings(settings)
        self.suggestions = SuggestionIndex(top_n=settings.suggestion_limit)
        self._suggestions_stale = True

    @classmethod
    def from_settings(cls, settings: Settings | None = None, *, configure_logs: bool = False) -> SearchService:
        settings = settings or Settings()
        if configure_logs:
            configure_logging(settings.log_level, settings.log_json)
        store = SqliteIndexStore(settings.database_path)
        pool = WorkerPool(settings.max_workers)
        return cls(settings=settings, store=store, pool=pool, normalizer=Normalizer.from_settings(settings))

    def __enter__(self) -> SearchService:
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    def tokenize(self, url: str, title: str, fields: Sequence[tuple[str, str]] = ()) -> TokenizedDocument:
        return tokenize_fields(url, title, fields, self.normalizer)

    def index(
        self,
        documents: Sequence[TokenizedDocument] | Iterable[Sequence[TokenizedDocument]],
    ) -> IndexingSummary:
        """Index a batch (or an iterable of batches), then refresh IDF once.

        A flat sequence of documents is treated as a single batch.
        """
        batches: Iterable[Sequence[TokenizedDocument]]
        if isinstance(documents, Sequence) and all(isinstance(doc, TokenizedDocument) for doc in documents):
            batches = [documents]
        else:
            batches = documents
        with operation_context("index"):
            summary = self.indexer.index_corpus(batches)
            self.resolver.clear_cache()
            self._suggestions_stale = True
            logger.info(
                "Indexed %d documents in %d batches (%d postings re-weighted)",
                summary.documents_indexed,
                summary.batches,
                summary.idf_postings_updated,
            )
        return summary

    def add_links(self, edges: Iterable[tuple[int, int]]) -> int:
        return self.store.add_links(edges)

    def refresh_page_ranks(self) -> PageRankResult:
        with operation_context("pagerank"):
            result = self.pagerank.run(self.store)
            self.resolver.clear_cache()
        return result

    def search(self, query: str, page: int = 0, size: int = 10) -> SearchPage:
        """Resolve, rank and page ``query``."""
        with (
            operation_context("search", query=query, page=page),
            create_span("search", attributes={"search.page": page, "search.size": size}),
        ):
            result = self.resolver.resolve(query)
            ranked = self.ranker.rank(result)
            paged = self.ranker.paginate(ranked, page, size)
        return SearchPage(
            items=paged.items,
            total=paged.total,
            page=paged.page,
            size=paged.size,
            query_words=result.query_words,
        )

    def suggest(self, prefix: str, limit: int | None = None) -> list[str]:
        if self._suggestions_stale:
            self.suggestions.rebuild(self.store.vocabulary())
            self._suggestions_stale = False
        return self.suggestions.suggest(prefix, limit)

    def close(self) -> None:
        self.pool.close()
        self.store.close()
