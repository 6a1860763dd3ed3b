"""Unit tests for bounded-gap phrase matching."""

import pytest

from search_core.search.phrase import DEFAULT_MAX_GAP, matches_phrase, positions_within


@pytest.mark.unit
class TestPositionsWithin:
    def test_returns_every_position_in_window(self):
        assert list(positions_within([3, 5, 6, 8], anchor=4, max_gap=2)) == [5, 6]

    def test_position_must_be_strictly_after_anchor(self):
        assert not positions_within([4], anchor=4, max_gap=2)

    def test_position_beyond_window(self):
        assert not positions_within([7], anchor=4, max_gap=2)


@pytest.mark.unit
class TestMatchesPhrase:
    """Consecutive phrase words must move forward within the gap."""

    def test_adjacent_positions_match(self):
        assert matches_phrase([[5], [6], [7]])

    def test_gap_larger_than_max_does_not_match(self):
        assert DEFAULT_MAX_GAP == 2
        assert not matches_phrase([[5], [6], [9]])

    def test_wider_gap_is_configurable(self):
        assert matches_phrase([[5], [6], [9]], max_gap=3)

    def test_single_gap_tolerates_one_elided_word(self):
        assert matches_phrase([[1], [3]], max_gap=2)
        assert not matches_phrase([[1], [3]], max_gap=1)

    def test_reverse_order_does_not_match(self):
        assert not matches_phrase([[7], [6]])

    def test_later_anchor_can_complete_phrase(self):
        assert matches_phrase([[1, 10], [11]], max_gap=1)

    def test_later_candidate_in_window_can_continue_chain(self):
        assert matches_phrase([[0], [1, 2], [4]], max_gap=2)
        assert matches_phrase([[1], [2, 3], [5]], max_gap=2)
        assert not matches_phrase([[0], [1, 2], [5]], max_gap=2)

    def test_long_phrase_with_many_candidates(self):
        words = 12
        position_lists = [[3 * index, 3 * index + 1] for index in range(words)]

        assert matches_phrase(position_lists, max_gap=2)
        assert not matches_phrase([*position_lists, [3 * words + 5]], max_gap=2)

    def test_repeated_word_needs_distinct_positions(self):
        assert matches_phrase([[4, 5], [4, 5]], max_gap=1)
        assert not matches_phrase([[4], [4]], max_gap=1)

    def test_single_word_phrase(self):
        assert matches_phrase([[0]])
        assert not matches_phrase([[]])

    def test_empty_inputs(self):
        assert not matches_phrase([])
        assert not matches_phrase([[1], []])

    def test_rejects_non_positive_gap(self):
        with pytest.raises(ValueError):
            matches_phrase([[1], [2]], max_gap=0)
