"""Text normalization for indexing and querying.

Analyzers follow a composable tokenizer/filter design: a tokenizer yields
``Token`` objects and each filter transforms the stream. The ``Normalizer``
wires the standard pipeline (letters-only tokenizer, lowercase, length bounds,
stopwords, suffix stripping) and memoizes results per instance.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Iterator, Mapping, MutableMapping, Sequence
from dataclasses import dataclass, field
import re
from types import MappingProxyType
from typing import Any, Protocol

from search_core.search.cache import LRUCache


@dataclass
class Token:
    """Represents a token emitted by analyzers."""

    text: str
    position: int
    start_char: int
    end_char: int
    original: str = ""
    attributes: MutableMapping[str, Any] = field(default_factory=dict)

    def copy_with(self, **updates: Any) -> Token:
        data = {
            "text": self.text,
            "position": self.position,
            "start_char": self.start_char,
            "end_char": self.end_char,
            "original": self.original,
            "attributes": dict(self.attributes),
        }
        data.update(updates)
        return Token(**data)


class Tokenizer(Protocol):
    """Protocol implemented by tokenizers."""

    def __call__(self, text: str) -> Iterator[Token]:  # pragma: no cover - interface definition
        ...


class TokenFilter(Protocol):
    """Protocol implemented by token filters."""

    def __call__(self, tokens: Iterable[Token]) -> Iterator[Token]:  # pragma: no cover - interface definition
        ...


class RegexTokenizer:
    """Regex-based tokenizer; the default pattern keeps runs of letters only."""

    def __init__(self, pattern: str = r"[^\W\d_]+", flags: int = re.UNICODE) -> None:
        self.pattern = re.compile(pattern, flags)

    def __call__(self, text: str) -> Iterator[Token]:
        for position, match in enumerate(self.pattern.finditer(text)):
            word = match.group(0)
            yield Token(
                text=word,
                position=position,
                start_char=match.start(),
                end_char=match.end(),
                original=word,
            )


class LowercaseFilter:
    """Filter that lowercases token text."""

    def __call__(self, tokens: Iterable[Token]) -> Iterator[Token]:
        for token in tokens:
            if token.text.islower():
                yield token
            else:
                lowered = token.text.lower()
                yield token.copy_with(text=lowered, original=lowered)


class LengthFilter:
    """Drops tokens shorter than ``min_length`` or longer than ``max_length``."""

    def __init__(self, min_length: int = 2, max_length: int = 45) -> None:
        self.min_length = min_length
        self.max_length = max_length

    def __call__(self, tokens: Iterable[Token]) -> Iterator[Token]:
        for token in tokens:
            if self.min_length <= len(token.text) <= self.max_length:
                yield token


class RenumberFilter:
    """Assigns consecutive positions to the tokens that reached this point."""

    def __call__(self, tokens: Iterable[Token]) -> Iterator[Token]:
        for position, token in enumerate(tokens):
            token.position = position
            yield token


DEFAULT_STOPWORDS = [
    "a",
    "an",
    "and",
    "are",
    "as",
    "at",
    "be",
    "but",
    "by",
    "for",
    "if",
    "in",
    "into",
    "is",
    "it",
    "no",
    "not",
    "of",
    "on",
    "or",
    "such",
    "that",
    "the",
    "their",
    "then",
    "there",
    "these",
    "they",
    "this",
    "to",
    "was",
    "will",
    "with",
]

_SUFFIX_RULES: tuple[tuple[str, str], ...] = (
    ("ization", "ize"),
    ("ational", "ate"),
    ("fulness", "ful"),
    ("ousness", "ous"),
    ("iveness", "ive"),
    ("tional", "tion"),
    ("biliti", "ble"),
    ("lessli", "less"),
    ("entli", "ent"),
    ("enci", "ence"),
    ("anci", "ance"),
    ("izer", "ize"),
    ("abli", "able"),
    ("alli", "al"),
    ("ator", "ate"),
    ("alism", "al"),
    ("aliti", "al"),
    ("ousli", "ous"),
    ("ration", "rate"),
    ("ation", "ate"),
    ("ness", ""),
    ("ment", ""),
    ("ance", "an"),
    ("ence", "en"),
    ("able", ""),
    ("ible", ""),
    ("ies", "y"),
)

# Every rewrite either shortens the word or, at equal length, turns a trailing
# "i" into "e" (enci, anci, abli), so repeated stripping reaches a fixed point.
_SIMPLE_SUFFIXES: tuple[str, ...] = ("ingly", "edly", "ing", "ed", "ly", "es", "s")


class SuffixStemmer:
    """Deterministic suffix-stripping stemmer.

    Stripping repeats until the word stops changing, which makes the stemmer
    idempotent: ``stem(stem(w)) == stem(w)``. A rule only applies when the
    remaining stem keeps at least ``min_stem_length`` letters.
    """

    def __init__(self, min_stem_length: int = 4) -> None:
        self.min_stem_length = min_stem_length

    def __call__(self, word: str) -> str:
        current = word.lower()
        while True:
            stemmed = self._stem_once(current)
            if stemmed == current:
                return current
            current = stemmed

    def _stem_once(self, lower: str) -> str:
        candidate = self._strip_complex_suffix(lower)
        if candidate:
            return candidate
        fallback = self._strip_simple_suffix(lower)
        if fallback:
            return fallback
        return lower

    def _strip_complex_suffix(self, lower: str) -> str | None:
        for suffix, replacement in _SUFFIX_RULES:
            if lower.endswith(suffix):
                candidate = lower[: -len(suffix)] + replacement
                if len(candidate) >= self.min_stem_length:
                    return candidate
        return None

    def _strip_simple_suffix(self, lower: str) -> str | None:
        if lower.endswith("ss"):
            return None
        for suffix in _SIMPLE_SUFFIXES:
            if lower.endswith(suffix):
                candidate = lower[: -len(suffix)]
                if len(candidate) >= self.min_stem_length:
                    return candidate
        return None


class StopFilter:
    """Removes stopwords from the stream."""

    def __init__(self, stopwords: Sequence[str] | None = None) -> None:
        vocab = stopwords if stopwords is not None else DEFAULT_STOPWORDS
        self.stopwords = {word.lower() for word in vocab}

    def __call__(self, tokens: Iterable[Token]) -> Iterator[Token]:
        for token in tokens:
            if token.text.lower() not in self.stopwords:
                yield token


class StemFilter:
    """Applies a stemmer to every token, keeping the pre-stem word in ``original``."""

    def __init__(self, stemmer: Callable[[str], str]) -> None:
        self._stem = stemmer

    def __call__(self, tokens: Iterable[Token]) -> Iterator[Token]:
        for token in tokens:
            yield token.copy_with(text=self._stem(token.text))


class AnalyzerPipeline:
    """Composable analyzer pipeline (tokenizer + filters)."""

    def __init__(self, tokenizer: Tokenizer, filters: Sequence[TokenFilter] | None = None) -> None:
        self.tokenizer = tokenizer
        self.filters = list(filters or [])

    def __call__(self, text: str) -> list[Token]:
        stream: Iterable[Token] = self.tokenizer(text)
        for token_filter in self.filters:
            stream = token_filter(stream)
        return list(stream)


@dataclass(frozen=True)
class NormalizedText:
    """Immutable result of normalizing one piece of text."""

    stems: frozenset[str]
    stem_to_original: Mapping[str, str]
    ordered_stems: tuple[str, ...]

    @classmethod
    def empty(cls) -> NormalizedText:
        return cls(frozenset(), MappingProxyType({}), ())

    def is_empty(self) -> bool:
        return not self.stems

    @property
    def original_words(self) -> list[str]:
        """Original words in first-occurrence order."""
        seen: set[str] = set()
        words: list[str] = []
        for stem in self.ordered_stems:
            if stem in seen:
                continue
            seen.add(stem)
            words.append(self.stem_to_original[stem])
        return words


class Normalizer:
    """Maps raw text to canonical stems.

    Positions count every token that passes the length bounds, so a dropped
    stopword still leaves a gap between its neighbours. The normalization of
    each distinct input string is memoized in an LRU owned by this instance.
    """

    def __init__(
        self,
        *,
        drop_stopwords: bool = True,
        stopwords: Sequence[str] | None = None,
        min_token_length: int = 2,
        max_token_length: int = 45,
        min_stem_length: int = 4,
        cache_size: int = 4096,
    ) -> None:
        self.stemmer = SuffixStemmer(min_stem_length=min_stem_length)
        filters: list[TokenFilter] = [
            LowercaseFilter(),
            LengthFilter(min_token_length, max_token_length),
            RenumberFilter(),
        ]
        if drop_stopwords:
            filters.append(StopFilter(stopwords))
        filters.append(StemFilter(self.stemmer))
        self.pipeline = AnalyzerPipeline(RegexTokenizer(), filters)
        self._cache: LRUCache[str, NormalizedText] = LRUCache(cache_size)

    @classmethod
    def from_settings(cls, settings) -> Normalizer:
        return cls(
            drop_stopwords=settings.drop_stopwords,
            min_token_length=settings.min_token_length,
            max_token_length=settings.max_token_length,
            min_stem_length=settings.min_stem_length,
            cache_size=settings.normalizer_cache_size,
        )

    def stem(self, word: str) -> str:
        return self.stemmer(word)

    def analyze(self, text: str) -> list[Token]:
        """Return stemmed tokens with positions and original words."""
        if not text:
            return []
        return self.pipeline(text)

    def tokenize_positions(self, text: str) -> list[tuple[str, int]]:
        return [(token.text, token.position) for token in self.analyze(text)]

    def normalize(self, text: str) -> NormalizedText:
        if not text or not text.strip():
            return NormalizedText.empty()

        cached = self._cache.get(text)
        if cached is not None:
            return cached

        stem_to_original: dict[str, str] = {}
        ordered: list[str] = []
        for token in self.analyze(text):
            ordered.append(token.text)
            stem_to_original.setdefault(token.text, token.original)

        result = NormalizedText(
            stems=frozenset(ordered),
            stem_to_original=MappingProxyType(stem_to_original),
            ordered_stems=tuple(ordered),
        )
        self._cache.put(text, result)
        return result
