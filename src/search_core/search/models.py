"""Search data models."""

from dataclasses import dataclass, field


@dataclass(frozen=True)
class Posting:
    """A posting represents a term occurrence in a document."""

    term: str
    frequency: float = 0.0
    importance: float = 1.0
    positions: tuple[int, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class PreparedDocument:
    """A document with its postings, ready for a batch write."""

    url: str
    title: str
    postings: tuple[Posting, ...] = ()


@dataclass(frozen=True)
class StoredDocument:
    """A row of the ``documents`` table."""

    id: int
    url: str
    title: str
    page_rank: float = 0.0
