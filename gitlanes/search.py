"""Fuzzy filtering of ref labels for the search overlay."""

from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

from .git_data import GitRef, RefGroup


@dataclass(frozen=True)
class Match:
    """How one name matched a query.

    ``run`` is the longest contiguous block of query characters found in the
    name, ``start`` the offset of the first matched character.
    """

    run: int
    start: int
    positions: Tuple[int, ...]


@dataclass(frozen=True)
class SearchResult:
    group_index: int
    group: RefGroup
    ref: GitRef
    match: Match

    @property
    def sort_key(self) -> Tuple[int, int, int, int]:
        return (-self.match.run, self.match.start, len(self.ref.name), self.group_index)


def _leftmost(query: str, name: str, begin: int = 0) -> Optional[List[int]]:
    positions: List[int] = []
    cursor = begin
    for char in query:
        found = name.find(char, cursor)
        if found < 0:
            return None
        positions.append(found)
        cursor = found + 1
    return positions


def fuzzy_match(query: str, name: str) -> Optional[Match]:
    """Match ``query`` as an ordered, case-insensitive subsequence of ``name``.

    Among all alignments the one with the longest contiguous run wins; ties
    go to the alignment that starts earliest.
    """
    needle = query.lower()
    haystack = name.lower()
    if not needle:
        return Match(run=0, start=0, positions=())
    if _leftmost(needle, haystack) is None:
        return None

    size = len(needle)
    # prefix_end[i]: smallest index after greedily matching needle[:i]
    prefix_end = [0] * (size + 1)
    cursor = 0
    for i, char in enumerate(needle):
        found = haystack.find(char, cursor)
        prefix_end[i + 1] = found + 1
        cursor = found + 1
    # suffix_start[j]: largest index where needle[j:] still fits
    suffix_start = [len(haystack)] * (size + 1)
    cursor = len(haystack)
    for j in range(size - 1, -1, -1):
        found = haystack.rfind(needle[j], 0, cursor)
        suffix_start[j] = found
        cursor = found

    best: Optional[Tuple[int, int, int, int]] = None  # (run, start, i, at)
    for i in range(size):
        for j in range(size, i, -1):
            run = j - i
            if best is not None and run < best[0]:
                break
            # The earliest occurrence leaves the most room for the tail.
            at = haystack.find(needle[i:j], prefix_end[i])
            if at < 0 or at + run > suffix_start[j]:
                continue
            start = at if i == 0 else haystack.find(needle[0])
            if best is None or (run, -start) > (best[0], -best[1]):
                best = (run, start, i, at)
    assert best is not None
    run, start, i, at = best
    head = _leftmost(needle[:i], haystack) or []
    tail = _leftmost(needle[i + run:], haystack, at + run) or []
    positions = tuple(head) + tuple(range(at, at + run)) + tuple(tail)
    return Match(run=run, start=start, positions=positions)


def _best_member(query: str, group: RefGroup) -> Optional[Tuple[GitRef, Match]]:
    best: Optional[Tuple[GitRef, Match]] = None
    for ref in group.refs:
        match = fuzzy_match(query, ref.name)
        if match is None:
            continue
        if best is None or (-match.run, match.start, len(ref.name)) < (
            -best[1].run,
            best[1].start,
            len(best[0].name),
        ):
            best = (ref, match)
    return best


def search_groups(query: str, groups: Sequence[RefGroup]) -> List[SearchResult]:
    """Rank ref groups against ``query``; an empty query keeps every group in order."""
    results: List[SearchResult] = []
    for index, group in enumerate(groups):
        if not query:
            results.append(
                SearchResult(index, group, group.primary, Match(run=0, start=0, positions=()))
            )
            continue
        best = _best_member(query, group)
        if best is not None:
            results.append(SearchResult(index, group, best[0], best[1]))
    if query:
        results.sort(key=lambda result: result.sort_key)
    return results
