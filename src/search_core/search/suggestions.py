"""Prefix suggestions over the index vocabulary.

Each trie node keeps the best ``top_n`` terms below it, ordered by document
frequency (descending) and then alphabetically, so a lookup costs one walk
down the prefix.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
import logging
import threading

from search_core.search.sqlite_store import SqliteIndexStore


logger = logging.getLogger(__name__)

DEFAULT_TOP_N = 10


def _rank_key(entry: tuple[str, int]) -> tuple[int, str]:
    term, frequency = entry
    return (-frequency, term)


@dataclass
class _TrieNode:
    children: dict[str, _TrieNode] = field(default_factory=dict)
    top: list[tuple[str, int]] = field(default_factory=list)
    terminal: bool = False


class SuggestionIndex:
    """Trie keeping the most frequent terms for every prefix."""

    def __init__(self, top_n: int = DEFAULT_TOP_N) -> None:
        if top_n < 1:
            raise ValueError("top_n must be at least 1")
        self.top_n = top_n
        self._root = _TrieNode()
        self._lock = threading.Lock()
        self._size = 0

    def __len__(self) -> int:
        return self._size

    @classmethod
    def from_store(cls, store: SqliteIndexStore, top_n: int = DEFAULT_TOP_N) -> SuggestionIndex:
        index = cls(top_n)
        index.rebuild(store.vocabulary())
        return index

    def rebuild(self, vocabulary: Mapping[str, int]) -> None:
        """Replace the trie contents with ``vocabulary`` (term -> document frequency)."""
        root = _TrieNode()
        for term, frequency in vocabulary.items():
            self._insert(root, term.lower(), int(frequency))
        with self._lock:
            self._root = root
            self._size = len(vocabulary)
        logger.debug("Suggestion index rebuilt with %d terms", len(vocabulary))

    def insert(self, term: str, frequency: int) -> None:
        with self._lock:
            if self._insert(self._root, term.lower(), frequency):
                self._size += 1

    def _insert(self, root: _TrieNode, term: str, frequency: int) -> bool:
        node = root
        for char in term:
            node = node.children.setdefault(char, _TrieNode())
            self._update_top(node, term, frequency)
        is_new = not node.terminal
        node.terminal = True
        return is_new

    def _update_top(self, node: _TrieNode, term: str, frequency: int) -> None:
        entries = [entry for entry in node.top if entry[0] != term]
        entries.append((term, frequency))
        entries.sort(key=_rank_key)
        node.top = entries[: self.top_n]

    def suggest(self, prefix: str, limit: int | None = None) -> list[str]:
        """Return up to ``limit`` terms starting with ``prefix``; unknown prefixes give ``[]``."""
        prefix = prefix.strip().lower()
        if not prefix:
            return []
        with self._lock:
            node = self._root
            for char in prefix:
                node = node.children.get(char)
                if node is None:
                    return []
            top = list(node.top)
        count = self.top_n if limit is None else max(0, min(limit, self.top_n))
        return [term for term, _ in top[:count]]
