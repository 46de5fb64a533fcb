"""Cursor, viewport and pane state driven by key presses.

Nothing here touches the terminal: the app feeds key actions in and reads
the resulting selection and scroll offsets back out when it redraws.
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass, field, replace
from typing import Dict, List, Optional

from .git_data import GitCommit, GitRef, RefGroup
from .graph import GraphRow
from .search import SearchResult, search_groups
from .snapshot import RepoSnapshot

logger = logging.getLogger(__name__)


class Pane(enum.Enum):
    BRANCH_LIST = "branches"
    COMMIT_GRAPH = "graph"
    SEARCH = "search"
    HELP = "help"


@dataclass
class ListCursor:
    """Selected index and first visible row of one list."""

    selected: int = 0
    offset: int = 0

    def move(self, delta: int, length: int) -> bool:
        return self.jump(self.selected + delta, length)

    def jump(self, index: int, length: int) -> bool:
        previous = self.selected
        self.selected = max(0, min(length - 1, index)) if length > 0 else 0
        return self.selected != previous

    def scroll_into_view(self, length: int, height: int, margin: int) -> None:
        if length <= 0:
            self.selected = self.offset = 0
            return
        height = max(1, height)
        margin = max(0, min(margin, (height - 1) // 2))
        if self.selected < self.offset + margin:
            self.offset = self.selected - margin
        elif self.selected > self.offset + height - 1 - margin:
            self.offset = self.selected - (height - 1 - margin)
        self.offset = max(0, min(self.offset, max(0, length - height)))


@dataclass
class SearchState:
    """Live query, ranked results and the cursor over them."""

    groups: List[RefGroup] = field(default_factory=list)
    query: str = ""
    results: List[SearchResult] = field(default_factory=list)
    cursor: ListCursor = field(default_factory=ListCursor)

    def edit(self, query: str) -> None:
        self.query = query
        self.results = search_groups(query, self.groups)
        # Every edit re-ranks, so the cursor goes back to the best match.
        self.cursor = ListCursor()

    @property
    def current(self) -> Optional[SearchResult]:
        if not self.results:
            return None
        return self.results[self.cursor.selected]


@dataclass(frozen=True)
class _SavedView:
    pane: Pane
    graph: ListCursor
    label_index: int
    oid: Optional[str] = None
    uncommitted: bool = False
    ref_name: Optional[str] = None


class ViewState:
    def __init__(
        self,
        snapshot: Optional[RepoSnapshot] = None,
        *,
        page_size: int = 10,
        scroll_margin: int = 2,
    ) -> None:
        self.snapshot = snapshot
        self.page_size = max(1, page_size)
        self.scroll_margin = max(0, scroll_margin)
        self.pane = Pane.COMMIT_GRAPH
        self.graph = ListCursor()
        self.branches = ListCursor()
        self.label_index = 0
        self.search: Optional[SearchState] = None
        self.heights: Dict[Pane, int] = {
            Pane.COMMIT_GRAPH: 20,
            Pane.BRANCH_LIST: 20,
            Pane.SEARCH: 10,
        }
        self._saved: Optional[_SavedView] = None
        self._pane_before_help = Pane.COMMIT_GRAPH

    # -- data ----------------------------------------------------------------

    @property
    def rows(self) -> List[GraphRow]:
        return self.snapshot.layout.rows if self.snapshot else []

    @property
    def branch_refs(self) -> List[GitRef]:
        return list(self.snapshot.branch_refs) if self.snapshot else []

    @property
    def selected_row(self) -> Optional[GraphRow]:
        rows = self.rows
        if not rows:
            return None
        return rows[self.graph.selected]

    @property
    def selected_commit(self) -> Optional[GitCommit]:
        row = self.selected_row
        return row.commit if row else None

    @property
    def selected_group(self) -> Optional[RefGroup]:
        row = self.selected_row
        if row is None or self.snapshot is None:
            return None
        return self.snapshot.group_for(row.oid)

    @property
    def selected_ref(self) -> Optional[GitRef]:
        """The ref an operation should act on in the focused pane."""
        if self.pane is Pane.BRANCH_LIST:
            refs = self.branch_refs
            return refs[self.branches.selected] if refs else None
        group = self.selected_group
        if group is None:
            return None
        return group.refs[self.label_index % len(group)]

    def _length(self, pane: Pane) -> int:
        if pane is Pane.COMMIT_GRAPH:
            return len(self.rows)
        if pane is Pane.BRANCH_LIST:
            return len(self.branch_refs)
        if pane is Pane.SEARCH and self.search is not None:
            return len(self.search.results)
        return 0

    def _cursor(self, pane: Pane) -> Optional[ListCursor]:
        if pane is Pane.COMMIT_GRAPH:
            return self.graph
        if pane is Pane.BRANCH_LIST:
            return self.branches
        if pane is Pane.SEARCH and self.search is not None:
            return self.search.cursor
        return None

    def _scroll(self, pane: Pane) -> None:
        cursor = self._cursor(pane)
        if cursor is not None:
            cursor.scroll_into_view(
                self._length(pane), self.heights.get(pane, 1), self.scroll_margin
            )

    def set_viewport(self, pane: Pane, height: int) -> None:
        self.heights[pane] = max(1, height)
        self._scroll(pane)

    # -- movement ------------------------------------------------------------

    def _jump(self, pane: Pane, index: int) -> None:
        cursor = self._cursor(pane)
        if cursor is None:
            return
        changed = cursor.jump(index, self._length(pane))
        if pane is Pane.COMMIT_GRAPH and changed:
            self.label_index = 0
        self._scroll(pane)

    def jump_to_row(self, index: int) -> None:
        self._jump(Pane.COMMIT_GRAPH, index)

    def move(self, delta: int) -> None:
        cursor = self._cursor(self.pane)
        if cursor is not None:
            self._jump(self.pane, cursor.selected + delta)

    def page(self, direction: int, half: bool = False) -> None:
        step = max(1, self.page_size // 2) if half else self.page_size
        self.move(step if direction > 0 else -step)

    def home(self) -> None:
        self._jump(self.pane, 0)

    def end(self) -> None:
        self._jump(self.pane, self._length(self.pane) - 1)

    def jump_to_head(self) -> bool:
        if self.snapshot is None:
            return False
        row = self.snapshot.layout.row_of(self.snapshot.head_oid)
        if row is None:
            return False
        self._jump(Pane.COMMIT_GRAPH, row)
        return True

    def _labelled_rows(self) -> List[int]:
        if self.snapshot is None:
            return []
        return [
            index
            for index, row in enumerate(self.rows)
            if self.snapshot.group_for(row.oid) is not None
        ]

    def next_labelled(self) -> bool:
        for index in self._labelled_rows():
            if index > self.graph.selected:
                self._jump(Pane.COMMIT_GRAPH, index)
                return True
        return False

    def prev_labelled(self) -> bool:
        for index in reversed(self._labelled_rows()):
            if index < self.graph.selected:
                self._jump(Pane.COMMIT_GRAPH, index)
                return True
        return False

    def cycle_label(self, delta: int) -> None:
        group = self.selected_group
        if group is None:
            return
        self.label_index = (self.label_index + delta) % len(group)

    # -- panes ---------------------------------------------------------------

    def focus(self, pane: Pane) -> None:
        if pane not in (Pane.BRANCH_LIST, Pane.COMMIT_GRAPH):
            raise ValueError(f"cannot focus {pane.name} directly")
        if self.pane in (Pane.BRANCH_LIST, Pane.COMMIT_GRAPH):
            self.pane = pane

    def open_help(self) -> None:
        if self.pane is Pane.HELP:
            return
        self._pane_before_help = self.pane
        self.pane = Pane.HELP

    def close_help(self) -> None:
        if self.pane is Pane.HELP:
            self.pane = self._pane_before_help

    def select_branch(self) -> Optional[GitRef]:
        """Jump the graph to the ref highlighted in the branch list."""
        refs = self.branch_refs
        if not refs or self.snapshot is None:
            return None
        ref = refs[self.branches.selected]
        row = self.snapshot.layout.row_of(ref.target)
        if row is None:
            return None
        self._jump(Pane.COMMIT_GRAPH, row)
        group = self.snapshot.group_for(ref.target)
        self.label_index = group.refs.index(ref) if group else 0
        self.pane = Pane.COMMIT_GRAPH
        return ref

    # -- search overlay ------------------------------------------------------

    def _graph_member(self) -> Optional[GitRef]:
        group = self.selected_group
        return group.refs[self.label_index % len(group)] if group else None

    def begin_search(self) -> SearchState:
        row = self.selected_row
        member = self._graph_member()
        self._saved = _SavedView(
            self.pane,
            replace(self.graph),
            self.label_index,
            oid=row.oid if row else None,
            uncommitted=bool(row and row.is_uncommitted),
            ref_name=member.name if member else None,
        )
        self.pane = Pane.SEARCH
        self.search = SearchState(groups=list(self.snapshot.groups if self.snapshot else ()))
        self.search.edit("")
        return self.search

    def search_edit(self, query: str, preview: bool = True) -> None:
        if self.search is None:
            return
        self.search.edit(query)
        self._scroll(Pane.SEARCH)
        if preview:
            self._preview()

    def search_move(self, delta: int, preview: bool = True) -> None:
        if self.search is None:
            return
        self._jump(Pane.SEARCH, self.search.cursor.selected + delta)
        if preview:
            self._preview()

    def _preview(self) -> Optional[SearchResult]:
        result = self.search.current if self.search else None
        if result is None or self.snapshot is None:
            return None
        row = self.snapshot.layout.row_of(result.group.target)
        if row is not None:
            self._jump(Pane.COMMIT_GRAPH, row)
            self.label_index = result.group.refs.index(result.ref)
        return result

    def confirm_search(self) -> Optional[SearchResult]:
        if self.search is None:
            return None
        result = self._preview()
        if result is None:
            self.cancel_search()
            return None
        self.search = None
        self._saved = None
        self.pane = Pane.COMMIT_GRAPH
        return result

    def cancel_search(self) -> None:
        saved = self._saved
        self.search = None
        self._saved = None
        if saved is None:
            return
        self.pane = saved.pane
        self.graph = replace(saved.graph)
        self.label_index = saved.label_index
        self._scroll(Pane.COMMIT_GRAPH)

    # -- refresh -------------------------------------------------------------

    def _resolve_row(self, oid: Optional[str], uncommitted: bool) -> int:
        if uncommitted and self.snapshot.dirty:
            return 0
        row = self.snapshot.layout.row_of(oid)
        return row if row is not None else 0

    def _member_index(self, row: int, ref_name: Optional[str]) -> int:
        rows = self.rows
        if ref_name is None or not rows:
            return 0
        group = self.snapshot.group_for(rows[row].oid)
        names = [ref.name for ref in group.refs] if group else []
        return names.index(ref_name) if ref_name in names else 0

    def load(self, snapshot: RepoSnapshot) -> None:
        """Swap in a new snapshot, keeping the selection on the same commit."""
        previous_row = self.selected_row
        previous_ref = self._graph_member() if self.pane is not Pane.BRANCH_LIST else None
        previous_branch = self.branch_refs[self.branches.selected] if self.branch_refs else None
        self.snapshot = snapshot

        self.graph.selected = self._resolve_row(
            previous_row.oid if previous_row else None,
            bool(previous_row and previous_row.is_uncommitted),
        )
        self.graph.jump(self.graph.selected, len(self.rows))
        self.label_index = self._member_index(
            self.graph.selected, previous_ref.name if previous_ref else None
        )

        if self._saved is not None:
            # The pre-search selection follows its commit too.
            saved = self._saved
            restored = replace(saved.graph, selected=self._resolve_row(saved.oid, saved.uncommitted))
            restored.jump(restored.selected, len(self.rows))
            self._saved = replace(
                saved,
                graph=restored,
                label_index=self._member_index(restored.selected, saved.ref_name),
            )

        refs = self.branch_refs
        names = [ref.name for ref in refs]
        if previous_branch is not None and previous_branch.name in names:
            self.branches.selected = names.index(previous_branch.name)
        self.branches.jump(self.branches.selected, len(refs))

        if self.search is not None:
            self.search.groups = list(snapshot.groups)
            self.search.edit(self.search.query)
        for pane in (Pane.COMMIT_GRAPH, Pane.BRANCH_LIST, Pane.SEARCH):
            self._scroll(pane)
        logger.debug("view reloaded at row %d", self.graph.selected)
