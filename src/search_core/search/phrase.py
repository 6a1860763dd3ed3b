"""Bounded-gap phrase matching.

A phrase ``w1 .. wk`` matches a document when there is a chain of positions
``p1 < p2 < .. < pk`` with ``pi`` a position of ``wi`` and every step
``p(i+1) - pi`` at most ``max_gap``. Any position inside the window may
continue the chain, not only the earliest one. ``max_gap=1`` means strictly
adjacent words.
"""

from __future__ import annotations

from bisect import bisect_right
from collections.abc import Sequence


DEFAULT_MAX_GAP = 2


def positions_within(positions: Sequence[int], anchor: int, max_gap: int) -> Sequence[int]:
    """Return the positions ``q`` with ``anchor < q <= anchor + max_gap``.

    ``positions`` must be sorted ascending.
    """
    start = bisect_right(positions, anchor)
    stop = bisect_right(positions, anchor + max_gap, lo=start)
    return positions[start:stop]


def matches_phrase(position_lists: Sequence[Sequence[int]], max_gap: int = DEFAULT_MAX_GAP) -> bool:
    """Check whether sorted position lists (one per phrase word, in order) form a phrase.

    Args:
        position_lists: Sorted positions of each phrase word within one document.
        max_gap: Largest allowed forward distance between consecutive words.

    Returns:
        True when some chain of positions, one per word, completes the phrase.
    """
    if max_gap < 1:
        raise ValueError("max_gap must be at least 1")
    if not position_lists or any(not positions for positions in position_lists):
        return False

    last = len(position_lists) - 1
    # (word index, position) pairs already expanded.
    expanded: set[tuple[int, int]] = set()
    stack = [(0, position) for position in reversed(position_lists[0])]
    while stack:
        depth, anchor = stack.pop()
        if depth == last:
            return True
        if (depth, anchor) in expanded:
            continue
        expanded.add((depth, anchor))
        following = positions_within(position_lists[depth + 1], anchor, max_gap)
        stack.extend((depth + 1, position) for position in reversed(following))
    return False
