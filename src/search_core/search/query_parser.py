"""Parser for the single-operator query grammar.

A query is one sub-expression, or two joined by exactly one of the
upper-case operators ``AND``, ``OR``, ``NOT``. A sub-expression is either a
quoted phrase or a bag of loose words. Operators inside quotes are plain
phrase text.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
import re

from search_core.errors import EmptyInput, MalformedQuery


_OPERATOR_PATTERN = re.compile(r"\b(AND|OR|NOT)\b")
_PHRASE_PATTERN = re.compile(r'^"([^"]*)"$')


class Operator(str, Enum):
    AND = "AND"
    OR = "OR"
    NOT = "NOT"


@dataclass(frozen=True)
class TermsNode:
    """Loose words; matches documents containing any of their stems."""

    text: str


@dataclass(frozen=True)
class PhraseNode:
    """Quoted phrase; matches documents where the words appear in order."""

    text: str


@dataclass(frozen=True)
class BinaryNode:
    op: Operator
    left: TermsNode | PhraseNode
    right: TermsNode | PhraseNode


QueryNode = TermsNode | PhraseNode | BinaryNode


def parse_query(query: str | None) -> QueryNode:
    """Parse ``query`` into an expression tree.

    Raises:
        EmptyInput: the query is empty or whitespace.
        MalformedQuery: unbalanced quotes, more than one operator, an operator
            with an empty side, or a side mixing a phrase with loose words.
    """
    if query is None or not query.strip():
        raise EmptyInput("Query is empty")
    if query.count('"') % 2:
        raise MalformedQuery(f"Unbalanced quotes in query: {query!r}")

    operators = [match for match in _OPERATOR_PATTERN.finditer(query) if query.count('"', 0, match.start()) % 2 == 0]
    if not operators:
        return _parse_side(query)
    if len(operators) > 1:
        raise MalformedQuery(f"Only one operator is supported, found {len(operators)}: {query!r}")

    match = operators[0]
    left_text = query[: match.start()].strip()
    right_text = query[match.end() :].strip()
    if not left_text or not right_text:
        raise MalformedQuery(f"Operator {match.group(1)} needs a sub-expression on both sides: {query!r}")
    return BinaryNode(op=Operator(match.group(1)), left=_parse_side(left_text), right=_parse_side(right_text))


def _parse_side(text: str) -> TermsNode | PhraseNode:
    text = text.strip()
    if '"' not in text:
        return TermsNode(text)
    phrase = _PHRASE_PATTERN.match(text)
    if phrase is None:
        raise MalformedQuery(f"A phrase cannot be mixed with loose words: {text!r}")
    return PhraseNode(phrase.group(1))
