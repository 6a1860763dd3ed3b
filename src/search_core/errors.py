"""Exception taxonomy for the index/query/rank core.

Store and concurrency failures propagate to the caller. Query syntax problems
and empty input are raised internally and resolved to empty results by the
query resolver. ``ConvergenceNotReached`` is never raised; it travels on the
PageRank result as a warning.
"""

from __future__ import annotations


class SearchCoreError(Exception):
    """Base class for all search core errors."""


class TransientStoreError(SearchCoreError):
    """I/O failure while reading from or writing to the index store."""


class UnknownDocumentError(SearchCoreError):
    """A posting or link referenced a document id the store does not know."""

    def __init__(self, doc_ids: set[int]) -> None:
        self.doc_ids = frozenset(doc_ids)
        super().__init__(f"Unknown document id(s): {sorted(self.doc_ids)}")


class MalformedQuery(SearchCoreError):
    """The boolean or phrase syntax of a query could not be parsed."""


class EmptyInput(SearchCoreError):
    """A query or sub-expression produced no usable terms."""


class InterruptedOperation(SearchCoreError):
    """A parallel sub-task was interrupted or cancelled."""


class ConvergenceNotReached(SearchCoreError):
    """PageRank hit its iteration cap before the epsilon threshold."""

    def __init__(self, iterations: int, max_delta: float, epsilon: float) -> None:
        self.iterations = iterations
        self.max_delta = max_delta
        self.epsilon = epsilon
        super().__init__(
            f"PageRank did not converge after {iterations} iterations (max delta {max_delta:.3g} >= {epsilon:g})"
        )
