"""Unit tests for the single-operator query parser."""

import pytest

from search_core.errors import EmptyInput, MalformedQuery
from search_core.search.query_parser import BinaryNode, Operator, PhraseNode, TermsNode, parse_query


@pytest.mark.unit
class TestParseQuery:
    def test_loose_words(self):
        assert parse_query("search engine") == TermsNode("search engine")

    def test_phrase(self):
        assert parse_query(' "search engine" ') == PhraseNode("search engine")

    @pytest.mark.parametrize("op", ["AND", "OR", "NOT"])
    def test_binary_operators(self, op):
        node = parse_query(f'cats {op} "good dogs"')

        assert node == BinaryNode(op=Operator(op), left=TermsNode("cats"), right=PhraseNode("good dogs"))

    def test_lowercase_operator_is_a_word(self):
        assert parse_query("cats and dogs") == TermsNode("cats and dogs")

    def test_operator_inside_quotes_is_phrase_text(self):
        assert parse_query('"salt AND pepper" OR spice') == BinaryNode(
            op=Operator.OR, left=PhraseNode("salt AND pepper"), right=TermsNode("spice")
        )

    def test_operator_must_be_whole_word(self):
        assert parse_query("ANDROID phones") == TermsNode("ANDROID phones")

    @pytest.mark.parametrize(
        "query",
        [
            "cats AND dogs OR birds",
            "AND dogs",
            "cats NOT",
            '"unbalanced phrase',
            'cats "and dogs"',
            '"cats" dogs AND birds',
        ],
    )
    def test_malformed(self, query):
        with pytest.raises(MalformedQuery):
            parse_query(query)

    @pytest.mark.parametrize("query", [None, "", "   "])
    def test_empty(self, query):
        with pytest.raises(EmptyInput):
            parse_query(query)
