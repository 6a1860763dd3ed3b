"""Immutable directed link graph."""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from types import MappingProxyType


@dataclass(frozen=True)
class LinkGraph:
    """Deduplicated adjacency over document ids.

    Nodes are every known document plus any edge endpoint. Self-loops are
    ordinary edges.
    """

    nodes: tuple[int, ...]
    outlinks: Mapping[int, frozenset[int]]

    @classmethod
    def build(cls, node_ids: Iterable[int], edges: Iterable[tuple[int, int]]) -> LinkGraph:
        nodes: set[int] = set(node_ids)
        adjacency: dict[int, set[int]] = {}
        for source, target in edges:
            nodes.add(source)
            nodes.add(target)
            adjacency.setdefault(source, set()).add(target)
        outlinks = {node: frozenset(adjacency.get(node, ())) for node in sorted(nodes)}
        return cls(nodes=tuple(sorted(nodes)), outlinks=MappingProxyType(outlinks))

    def __len__(self) -> int:
        return len(self.nodes)

    @property
    def edge_count(self) -> int:
        return sum(len(targets) for targets in self.outlinks.values())

    def out_degree(self, node: int) -> int:
        return len(self.outlinks.get(node, ()))

    def dangling_nodes(self) -> list[int]:
        """Nodes with no outgoing edges."""
        return [node for node in self.nodes if not self.outlinks[node]]

    def inlinks(self) -> dict[int, list[int]]:
        """Reverse adjacency: node -> sorted sources linking to it."""
        reverse: dict[int, list[int]] = {node: [] for node in self.nodes}
        for source in self.nodes:
            for target in self.outlinks[source]:
                reverse[target].append(source)
        for sources in reverse.values():
            sources.sort()
        return reverse
