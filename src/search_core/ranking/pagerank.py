"""PageRank by power iteration over the link graph.

    rank[i] = (1 - d) / N + d * sum(rank[j] / outdegree(j) for j -> i) + d * dangling_mass / N

Every iteration reads an immutable snapshot of the previous ranks, so the
update is synchronous. Mass held by nodes without outgoing edges is spread
uniformly, which keeps the ranks summing to one.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
import logging

from search_core.errors import ConvergenceNotReached
from search_core.observability.metrics import PAGERANK_ITERATIONS
from search_core.observability.tracing import create_span
from search_core.ranking.link_graph import LinkGraph
from search_core.search.sqlite_store import SqliteIndexStore


logger = logging.getLogger(__name__)

DEFAULT_DAMPING = 0.85
DEFAULT_EPSILON = 1e-5
DEFAULT_MAX_ITERATIONS = 100


@dataclass(frozen=True)
class PageRankResult:
    ranks: Mapping[int, float] = field(default_factory=dict)
    iterations: int = 0
    converged: bool = True
    max_delta: float = 0.0
    warning: ConvergenceNotReached | None = None


class PageRankEngine:
    """Computes PageRank and writes it onto the store's documents."""

    def __init__(
        self,
        damping: float = DEFAULT_DAMPING,
        epsilon: float = DEFAULT_EPSILON,
        max_iterations: int = DEFAULT_MAX_ITERATIONS,
    ) -> None:
        if not 0.0 < damping < 1.0:
            raise ValueError("damping must be between 0 and 1")
        if epsilon <= 0.0:
            raise ValueError("epsilon must be positive")
        if max_iterations < 1:
            raise ValueError("max_iterations must be at least 1")
        self.damping = damping
        self.epsilon = epsilon
        self.max_iterations = max_iterations

    @classmethod
    def from_settings(cls, settings) -> PageRankEngine:
        return cls(
            damping=settings.damping_factor,
            epsilon=settings.convergence_epsilon,
            max_iterations=settings.max_iterations,
        )

    def compute(self, graph: LinkGraph) -> PageRankResult:
        """Run power iteration until the max per-node delta drops below epsilon.

        Hitting the iteration cap is not an error: the last ranks are returned
        with ``converged=False`` and a ``ConvergenceNotReached`` warning.
        """
        nodes = graph.nodes
        count = len(nodes)
        if count == 0:
            return PageRankResult()

        index = {node: position for position, node in enumerate(nodes)}
        out_degree = [graph.out_degree(node) for node in nodes]
        inbound = [[index[source] for source in sources] for sources in graph.inlinks().values()]
        dangling = [index[node] for node in graph.dangling_nodes()]

        damping = self.damping
        teleport = (1.0 - damping) / count
        ranks: tuple[float, ...] = tuple(1.0 / count for _ in nodes)
        max_delta = 0.0
        iterations = 0
        converged = False

        while iterations < self.max_iterations:
            previous = ranks
            dangling_share = damping * sum(previous[position] for position in dangling) / count
            base = teleport + dangling_share
            ranks = tuple(
                base + damping * sum(previous[source] / out_degree[source] for source in sources)
                for sources in inbound
            )
            iterations += 1
            max_delta = max(abs(new - old) for new, old in zip(ranks, previous, strict=True))
            if max_delta < self.epsilon:
                converged = True
                break

        warning = None
        if not converged:
            warning = ConvergenceNotReached(iterations, max_delta, self.epsilon)
            logger.warning("%s", warning)

        return PageRankResult(
            ranks=dict(zip(nodes, ranks, strict=True)),
            iterations=iterations,
            converged=converged,
            max_delta=max_delta,
            warning=warning,
        )

    def run(self, store: SqliteIndexStore) -> PageRankResult:
        """Compute PageRank over the store's link graph and persist it on each document."""
        with create_span("pagerank.run") as span, store.exclusive():
            graph = LinkGraph.build(store.document_ids(), store.link_edges())
            span.set_attribute("pagerank.nodes", len(graph))
            span.set_attribute("pagerank.edges", graph.edge_count)
            result = self.compute(graph)
            store.write_page_ranks(result.ranks)
            span.set_attribute("pagerank.iterations", result.iterations)
            span.set_attribute("pagerank.converged", result.converged)

        PAGERANK_ITERATIONS.labels(converged=str(result.converged).lower()).observe(result.iterations)
        logger.info(
            "PageRank over %d documents: %d iterations, converged=%s, max delta %.3g",
            len(graph),
            result.iterations,
            result.converged,
            result.max_delta,
        )
        return result
