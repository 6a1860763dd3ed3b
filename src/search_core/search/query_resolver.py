"""Resolve boolean and phrase queries to matching documents with term stats."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from functools import partial
import logging

from search_core.concurrency import WorkerPool
from search_core.domain.search import DocumentMatch, QueryResult, TermStats
from search_core.errors import EmptyInput, MalformedQuery
from search_core.observability.metrics import QUERY_CACHE, QUERY_LATENCY, track_latency
from search_core.observability.tracing import create_span
from search_core.search.analyzers import NormalizedText, Normalizer
from search_core.search.cache import LRUCache
from search_core.search.phrase import DEFAULT_MAX_GAP
from search_core.search.query_parser import BinaryNode, Operator, PhraseNode, QueryNode, parse_query
from search_core.search.sqlite_store import SqliteIndexStore


logger = logging.getLogger(__name__)

DocStats = dict[int, dict[str, TermStats]]


@dataclass(frozen=True)
class _BoundSide:
    """A sub-expression after normalization."""

    phrase: bool
    normalized: NormalizedText

    @property
    def cache_key(self) -> str:
        if self.phrase:
            return 'phrase("' + " ".join(self.normalized.ordered_stems) + '")'
        return "terms(" + ",".join(sorted(self.normalized.stems)) + ")"


def merge_and(left: Mapping[int, Mapping[str, TermStats]], right: Mapping[int, Mapping[str, TermStats]]) -> DocStats:
    """Documents on both sides; stats merged with right overwriting left."""
    return {doc_id: {**stats, **right[doc_id]} for doc_id, stats in left.items() if doc_id in right}


def merge_or(left: Mapping[int, Mapping[str, TermStats]], right: Mapping[int, Mapping[str, TermStats]]) -> DocStats:
    """Documents on either side; stats merged with right overwriting left."""
    merged: DocStats = {doc_id: dict(stats) for doc_id, stats in left.items()}
    for doc_id, stats in right.items():
        merged.setdefault(doc_id, {}).update(stats)
    return merged


def merge_not(left: Mapping[int, Mapping[str, TermStats]], right: Mapping[int, Mapping[str, TermStats]]) -> DocStats:
    """Left documents absent from the right side; left stats only."""
    return {doc_id: dict(stats) for doc_id, stats in left.items() if doc_id not in right}


_COMBINERS = {
    Operator.AND: merge_and,
    Operator.OR: merge_or,
    Operator.NOT: merge_not,
}


class QueryResolver:
    """Turns query text into a ``QueryResult``.

    Both sides of a binary query are resolved concurrently on the worker pool
    and joined before combining. Results are cached by the canonical form of
    the normalized expression; callers always receive deep copies.
    """

    def __init__(
        self,
        store: SqliteIndexStore,
        normalizer: Normalizer,
        pool: WorkerPool,
        *,
        phrase_max_gap: int = DEFAULT_MAX_GAP,
        cache_size: int = 256,
    ) -> None:
        self._store = store
        self._normalizer = normalizer
        self._pool = pool
        self._phrase_max_gap = phrase_max_gap
        self._cache: LRUCache[str, QueryResult] = LRUCache(cache_size)

    def resolve(self, query: str | None) -> QueryResult:
        """Resolve ``query``; empty or unparseable queries give an empty result."""
        try:
            expression = parse_query(query)
        except EmptyInput:
            return QueryResult.empty()
        except MalformedQuery as exc:
            logger.info("Malformed query treated as empty: %s", exc)
            return QueryResult.empty()

        sides = self._bind(expression)
        query_words = _dedupe([word for side in sides for word in side.normalized.original_words])
        if all(side.normalized.is_empty() for side in sides):
            return QueryResult.empty(query_words)

        operator = expression.op if isinstance(expression, BinaryNode) else None
        key = self._cache_key(operator, sides)
        cached = self._cache.get(key)
        if cached is not None:
            QUERY_CACHE.labels(result="hit").inc()
            return cached.model_copy(update={"query_words": query_words}, deep=True)
        QUERY_CACHE.labels(result="miss").inc()

        label = operator.value if operator else ("PHRASE" if sides[0].phrase else "TERMS")
        with (
            create_span("query.resolve", attributes={"query.operator": label}) as span,
            track_latency(QUERY_LATENCY, operator=label),
        ):
            if operator is None:
                doc_stats = self._resolve_side(sides[0])
            else:
                left, right = self._pool.run_all([partial(self._resolve_side, side) for side in sides])
                doc_stats = _COMBINERS[operator](left, right)
            result = self._build_result(doc_stats, query_words)
            span.set_attribute("query.documents", len(result.documents))

        self._cache.put(key, result)
        logger.debug("Resolved %s query to %d documents", label, len(result.documents))
        return result.model_copy(deep=True)

    def clear_cache(self) -> None:
        """Drop every cached result, e.g. after a bulk load."""
        self._cache.clear()

    def _bind(self, expression: QueryNode) -> list[_BoundSide]:
        nodes = [expression.left, expression.right] if isinstance(expression, BinaryNode) else [expression]
        return [
            _BoundSide(phrase=isinstance(node, PhraseNode), normalized=self._normalizer.normalize(node.text))
            for node in nodes
        ]

    @staticmethod
    def _cache_key(operator: Operator | None, sides: list[_BoundSide]) -> str:
        if operator is None:
            return sides[0].cache_key
        return f"{operator.value}({sides[0].cache_key}, {sides[1].cache_key})"

    def _resolve_side(self, side: _BoundSide) -> DocStats:
        try:
            return self._lookup_side(side)
        except EmptyInput:
            return {}

    def _lookup_side(self, side: _BoundSide) -> DocStats:
        normalized = side.normalized
        if normalized.is_empty():
            raise EmptyInput("Sub-expression has no searchable terms")
        if not side.phrase:
            return self._store.lookup(normalized.stems)
        doc_ids = self._store.phrase_lookup(normalized.ordered_stems, self._phrase_max_gap)
        if not doc_ids:
            return {}
        return self._store.lookup(normalized.stems, doc_ids=doc_ids)

    def _build_result(self, doc_stats: DocStats, query_words: list[str]) -> QueryResult:
        ranks = self._store.page_ranks(doc_stats) if doc_stats else {}
        documents = [
            DocumentMatch(doc_id=doc_id, per_term_stats=doc_stats[doc_id], page_rank=ranks.get(doc_id, 0.0))
            for doc_id in sorted(doc_stats)
        ]
        return QueryResult(documents=documents, query_words=query_words)


def _dedupe(words: list[str]) -> list[str]:
    return list(dict.fromkeys(words))
