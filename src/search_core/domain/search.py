"""Domain models for query resolution and ranking.

Value objects are immutable (frozen=True) and carry no infrastructure
dependencies. The resolver produces a ``QueryResult``; the ranker turns it
into ``RankedDocument`` rows and pages them.
"""

from pydantic import BaseModel, ConfigDict, Field


class TermStats(BaseModel):
    """Per-(term, document) statistics used for scoring."""

    model_config = ConfigDict(frozen=True)

    frequency: float = 0.0
    idf: float = 0.0
    importance: float = 1.0

    def as_pair(self) -> list[float]:
        """Expose the stats as the ``[frequency, idf]`` pair collaborators expect."""
        return [self.frequency, self.idf]


class DocumentMatch(BaseModel):
    """A document that satisfied a query, with the stats of every matched term."""

    model_config = ConfigDict(frozen=True)

    doc_id: int
    per_term_stats: dict[str, TermStats] = Field(default_factory=dict)
    page_rank: float = 0.0


class QueryResult(BaseModel):
    """Value object returned by the query resolver.

    Always a container: a query that matches nothing yields no documents,
    never ``None``. ``query_words`` are the original words in query order.
    """

    model_config = ConfigDict(frozen=True)

    documents: list[DocumentMatch] = Field(default_factory=list)
    query_words: list[str] = Field(default_factory=list)

    @classmethod
    def empty(cls, query_words: list[str] | None = None) -> "QueryResult":
        return cls(documents=[], query_words=list(query_words or []))

    @property
    def doc_ids(self) -> set[int]:
        return {match.doc_id for match in self.documents}


class RankedDocument(BaseModel):
    """A scored document id."""

    model_config = ConfigDict(frozen=True)

    doc_id: int
    score: float


class RankedPage(BaseModel):
    """One page of a ranked list plus the total number of ranked documents."""

    model_config = ConfigDict(frozen=True)

    items: list[RankedDocument] = Field(default_factory=list)
    total: int = 0
    page: int = 0
    size: int = 10


class SearchPage(BaseModel):
    """Response of :meth:`SearchService.search`."""

    model_config = ConfigDict(frozen=True)

    items: list[RankedDocument] = Field(default_factory=list)
    total: int = 0
    page: int = 0
    size: int = 10
    query_words: list[str] = Field(default_factory=list)
