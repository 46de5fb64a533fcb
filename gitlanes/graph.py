"""Lane layout for the commit graph.

Commits arrive children-first. Every lane waits for one commit hash; when a
commit shows up, the lanes waiting for it resolve into its node, and the
node's parents decide which lanes continue, open or close. Each row records
the lanes before and after it, which is all the glyph table needs.
"""

from __future__ import annotations

import enum
import heapq
import logging
from dataclasses import dataclass, field, replace
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from .config import PALETTE
from .git_data import GitCommit

logger = logging.getLogger(__name__)


class Glyph(enum.Enum):
    EMPTY = " "
    PIPE = "│"
    NODE = "●"
    HEAD = "◉"
    ROOT = "○"
    UNCOMMITTED = "◌"
    HORIZONTAL = "─"
    CROSS = "┼"
    MERGE_RIGHT = "╯"
    MERGE_LEFT = "╰"
    TEE_UP = "┴"
    BRANCH_RIGHT = "╮"
    BRANCH_LEFT = "╭"
    TEE_DOWN = "┬"
    JOIN_RIGHT = "┤"
    JOIN_LEFT = "├"


class Edge(enum.Enum):
    CONVERGE = "converge"
    DIVERGE = "diverge"
    LINK = "link"


# (edge, side, is_outermost) -> glyph drawn in the lane's own column
_EDGE_GLYPHS: Dict[Tuple[Edge, str, bool], Glyph] = {
    (Edge.CONVERGE, "right", True): Glyph.MERGE_RIGHT,
    (Edge.CONVERGE, "right", False): Glyph.TEE_UP,
    (Edge.CONVERGE, "left", True): Glyph.MERGE_LEFT,
    (Edge.CONVERGE, "left", False): Glyph.TEE_UP,
    (Edge.DIVERGE, "right", True): Glyph.BRANCH_RIGHT,
    (Edge.DIVERGE, "right", False): Glyph.TEE_DOWN,
    (Edge.DIVERGE, "left", True): Glyph.BRANCH_LEFT,
    (Edge.DIVERGE, "left", False): Glyph.TEE_DOWN,
    (Edge.LINK, "right", True): Glyph.JOIN_RIGHT,
    (Edge.LINK, "right", False): Glyph.CROSS,
    (Edge.LINK, "left", True): Glyph.JOIN_LEFT,
    (Edge.LINK, "left", False): Glyph.CROSS,
}


@dataclass(frozen=True)
class Lane:
    lane_id: int
    column: int
    color: int
    expected_oid: str


@dataclass(frozen=True)
class Cell:
    glyph: Glyph = Glyph.EMPTY
    color: Optional[int] = None


EMPTY_CELL = Cell()


@dataclass(frozen=True)
class GraphRow:
    commit: Optional[GitCommit]
    node_column: int
    node_color: int
    cells: Tuple[Cell, ...]
    lanes_before: Tuple[Lane, ...] = ()
    lanes_after: Tuple[Lane, ...] = ()
    converged: Tuple[int, ...] = ()
    diverged: Tuple[int, ...] = ()
    linked: Tuple[int, ...] = ()
    is_head: bool = False
    is_uncommitted: bool = False

    @property
    def oid(self) -> Optional[str]:
        return self.commit.oid if self.commit else None

    @property
    def graph_text(self) -> str:
        return "".join(cell.glyph.value for cell in self.cells)


@dataclass
class GraphLayout:
    rows: List[GraphRow] = field(default_factory=list)
    width: int = 0
    lane_colors: Dict[int, int] = field(default_factory=dict)
    allocated: int = 0
    freed: int = 0
    open_lanes: Tuple[Lane, ...] = ()
    _row_index: Dict[str, int] = field(default_factory=dict, repr=False)

    def row_of(self, oid: Optional[str]) -> Optional[int]:
        if oid is None:
            return None
        return self._row_index.get(oid)

    def __len__(self) -> int:
        return len(self.rows)


class _LaneTable:
    """Dense column array plus a min-heap of reclaimable columns."""

    def __init__(self, palette_size: int) -> None:
        self.slots: List[Optional[Lane]] = []
        self.colors: Dict[int, int] = {}
        self.freed = 0
        self._palette_size = max(1, palette_size)
        self._free: List[int] = []
        self._pending: List[int] = []
        self._next_id = 0

    def active(self) -> Tuple[Lane, ...]:
        return tuple(lane for lane in self.slots if lane is not None)

    def expecting(self, oid: str) -> List[int]:
        return [
            lane.column
            for lane in self.slots
            if lane is not None and lane.expected_oid == oid
        ]

    def allocate(self, expected_oid: str) -> Lane:
        if self._free:
            column = heapq.heappop(self._free)
        else:
            column = len(self.slots)
            self.slots.append(None)
        lane = Lane(
            lane_id=self._next_id,
            column=column,
            color=self._next_id % self._palette_size,
            expected_oid=expected_oid,
        )
        self._next_id += 1
        self.colors[lane.lane_id] = lane.color
        self.slots[column] = lane
        return lane

    def retarget(self, column: int, expected_oid: str) -> None:
        lane = self.slots[column]
        assert lane is not None
        self.slots[column] = replace(lane, expected_oid=expected_oid)

    def vacate(self, column: int) -> None:
        # Columns only become reusable once the row is finished, so a lane
        # opened on the same row never lands on a column that is closing.
        self.slots[column] = None
        self._pending.append(column)
        self.freed += 1

    def end_row(self) -> None:
        for column in self._pending:
            heapq.heappush(self._free, column)
        self._pending.clear()

    @property
    def allocated(self) -> int:
        return self._next_id


def build_graph(
    commits: Sequence[GitCommit],
    *,
    palette_size: int = len(PALETTE),
    head_oid: Optional[str] = None,
    dirty: bool = False,
) -> GraphLayout:
    """Assign lanes and connector glyphs to an ordered commit sequence."""
    table = _LaneTable(palette_size)
    rows: List[GraphRow] = []
    width = 0

    for commit in commits:
        before = table.active()
        matches = table.expecting(commit.oid)
        if matches:
            node_column = matches[0]
            converged = matches[1:]
            for column in converged:
                table.vacate(column)
        else:
            node_column = table.allocate(commit.oid).column
            converged = []
        drawing = table.slots[node_column]
        assert drawing is not None

        diverged: List[int] = []
        linked: List[int] = []
        if commit.parent_oids:
            table.retarget(node_column, commit.parent_oids[0])
            for parent in commit.parent_oids[1:]:
                waiting = table.expecting(parent)
                if not waiting:
                    diverged.append(table.allocate(parent).column)
                elif waiting[0] != node_column and waiting[0] not in linked:
                    linked.append(waiting[0])
        else:
            table.vacate(node_column)
        table.end_row()

        after = table.active()
        is_head = head_oid is not None and commit.oid == head_oid
        if is_head:
            node_glyph = Glyph.HEAD
        elif commit.is_root:
            node_glyph = Glyph.ROOT
        else:
            node_glyph = Glyph.NODE
        cells = _draw_cells(
            node_column,
            node_glyph,
            drawing.color,
            before,
            after,
            converged,
            diverged,
            linked,
        )
        width = max(width, (len(cells) + 1) // 2)
        rows.append(
            GraphRow(
                commit=commit,
                node_column=node_column,
                node_color=drawing.color,
                cells=cells,
                lanes_before=before,
                lanes_after=after,
                converged=tuple(converged),
                diverged=tuple(diverged),
                linked=tuple(linked),
                is_head=is_head,
            )
        )

    if dirty:
        rows.insert(0, _uncommitted_row(rows, head_oid))
        width = max(width, rows[0].node_column + 1)

    layout = GraphLayout(
        rows=rows,
        width=width,
        lane_colors=dict(table.colors),
        allocated=table.allocated,
        freed=table.freed,
        open_lanes=table.active(),
    )
    layout._row_index = {
        row.commit.oid: index for index, row in enumerate(rows) if row.commit is not None
    }
    if layout.open_lanes:
        logger.debug("%d lanes left open below the loaded window", len(layout.open_lanes))
    return layout


def _uncommitted_row(rows: Sequence[GraphRow], head_oid: Optional[str]) -> GraphRow:
    column, color = 0, 0
    for row in rows:
        if row.commit is not None and row.commit.oid == head_oid:
            column, color = row.node_column, row.node_color
            break
    cells = [EMPTY_CELL] * (2 * column + 1)
    cells[2 * column] = Cell(Glyph.UNCOMMITTED, color)
    return GraphRow(
        commit=None,
        node_column=column,
        node_color=color,
        cells=tuple(cells),
        is_uncommitted=True,
    )


def _draw_cells(
    node_column: int,
    node_glyph: Glyph,
    node_color: int,
    before: Iterable[Lane],
    after: Iterable[Lane],
    converged: Sequence[int],
    diverged: Sequence[int],
    linked: Sequence[int],
) -> Tuple[Cell, ...]:
    before_by_column = {lane.column: lane for lane in before}
    after_by_column = {lane.column: lane for lane in after}
    columns = set(before_by_column) | set(after_by_column) | {node_column}
    cells: List[Cell] = [EMPTY_CELL] * (2 * max(columns) + 1)

    special = {node_column, *converged, *diverged, *linked}
    for column, lane in after_by_column.items():
        previous = before_by_column.get(column)
        if column in special or previous is None or previous.lane_id != lane.lane_id:
            continue
        cells[2 * column] = Cell(Glyph.PIPE, lane.color)
    cells[2 * node_column] = Cell(node_glyph, node_color)

    edges: List[Tuple[int, Edge, int]] = []
    edges.extend((column, Edge.CONVERGE, before_by_column[column].color) for column in converged)
    edges.extend((column, Edge.DIVERGE, after_by_column[column].color) for column in diverged)
    edges.extend((column, Edge.LINK, node_color) for column in linked)
    if not edges:
        return tuple(cells)

    outermost = {
        "right": max((c for c, _, _ in edges if c > node_column), default=None),
        "left": min((c for c, _, _ in edges if c < node_column), default=None),
    }
    # Farthest edges first so nearer ones paint over the shared span.
    edges.sort(key=lambda edge: abs(edge[0] - node_column), reverse=True)
    for column, edge, color in edges:
        side = "right" if column > node_column else "left"
        low, high = sorted((column, node_column))
        for index in range(2 * low + 1, 2 * high):
            if index % 2:
                cells[index] = Cell(Glyph.HORIZONTAL, color)
            elif cells[index].glyph in (Glyph.PIPE, Glyph.CROSS):
                cells[index] = Cell(Glyph.CROSS, color)
            elif cells[index].glyph is Glyph.EMPTY:
                cells[index] = Cell(Glyph.HORIZONTAL, color)
        glyph = _EDGE_GLYPHS[(edge, side, column == outermost[side])]
        cells[2 * column] = Cell(glyph, color)
    return tuple(cells)


def render_plain(
    layout: GraphLayout, labels: Optional[Mapping[str, str]] = None
) -> List[str]:
    """Render the layout as plain text lines, one per row."""
    labels = labels or {}
    graph_width = max(1, 2 * layout.width - 1)
    lines: List[str] = []
    for row in layout.rows:
        graph = row.graph_text.ljust(graph_width)
        if row.commit is None:
            lines.append(f"{graph}  uncommitted changes")
            continue
        label = labels.get(row.commit.oid)
        suffix = f" [{label}]" if label else ""
        lines.append(f"{graph}  {row.commit.short_oid} {row.commit.title}{suffix}".rstrip())
    return lines
