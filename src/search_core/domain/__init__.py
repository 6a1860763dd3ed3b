"""Domain layer - immutable value objects exchanged between the core components.

The resolver, ranker and service facade pass these models between each other;
nothing here depends on the store or the worker pool.
"""

from search_core.domain.search import (
    DocumentMatch,
    QueryResult,
    RankedDocument,
    RankedPage,
    SearchPage,
    TermStats,
)


__all__ = [
    "DocumentMatch",
    "QueryResult",
    "RankedDocument",
    "RankedPage",
    "SearchPage",
    "TermStats",
]
