from __future__ import annotations

import random
import unittest

from fakes import commit

from gitlanes.graph import Glyph, build_graph, render_plain


class LinearHistoryTests(unittest.TestCase):
    def setUp(self) -> None:
        self.commits = [commit("c", "b"), commit("b", "a"), commit("a")]

    def test_single_lane_uses_head_node_and_root_glyphs(self) -> None:
        layout = build_graph(self.commits, head_oid="c")

        self.assertEqual([row.graph_text for row in layout.rows], ["◉", "●", "○"])
        self.assertEqual({row.node_column for row in layout.rows}, {0})
        self.assertEqual(layout.width, 1)
        self.assertEqual(layout.allocated, 1)
        self.assertEqual(layout.freed, 1)
        self.assertEqual(layout.open_lanes, ())

    def test_row_lookup_by_oid(self) -> None:
        layout = build_graph(self.commits)

        self.assertEqual(layout.row_of("b"), 1)
        self.assertIsNone(layout.row_of("missing"))
        self.assertIsNone(layout.row_of(None))

    def test_empty_history_has_no_rows(self) -> None:
        layout = build_graph([])

        self.assertEqual(len(layout), 0)
        self.assertEqual(layout.width, 0)


class BranchAndMergeTests(unittest.TestCase):
    def test_merge_opens_lane_and_root_closes_it(self) -> None:
        commits = [
            commit("m", "b", "f"),
            commit("f", "a"),
            commit("b", "a"),
            commit("a"),
        ]
        layout = build_graph(commits)

        self.assertEqual(
            [row.graph_text for row in layout.rows],
            ["●─╮", "│ ●", "● │", "○─╯"],
        )
        merge, feature, _, root = layout.rows
        self.assertEqual(merge.diverged, (1,))
        self.assertEqual(feature.node_column, 1)
        self.assertEqual(feature.node_color, 1)
        self.assertEqual(root.converged, (1,))
        self.assertEqual(layout.allocated, 2)
        self.assertEqual(layout.freed, 2)

    def test_second_parent_already_awaited_is_linked(self) -> None:
        commits = [commit("x", "b"), commit("m", "a", "b"), commit("a"), commit("b")]
        layout = build_graph(commits)

        self.assertEqual(
            [row.graph_text for row in layout.rows],
            ["●", "├─●", "│ ○", "○"],
        )
        self.assertEqual(layout.rows[1].linked, (0,))
        self.assertEqual(layout.allocated, 2)

    def test_edge_crossing_a_pass_through_lane(self) -> None:
        commits = [commit("a1", "b1"), commit("a2", "b2"), commit("b1", "c1", "c2")]
        layout = build_graph(commits)

        self.assertEqual(layout.rows[2].graph_text, "●─┼─╮")
        self.assertEqual(layout.rows[2].cells[2].glyph, Glyph.CROSS)
        self.assertEqual(len(layout.open_lanes), 3)
        self.assertEqual(layout.width, 3)


class ColumnReuseTests(unittest.TestCase):
    def test_column_freed_by_root_is_reused_on_a_later_row(self) -> None:
        commits = [commit("d", "c"), commit("x"), commit("y", "c"), commit("c")]
        layout = build_graph(commits)

        self.assertEqual(
            [row.graph_text for row in layout.rows],
            ["●", "│ ○", "│ ●", "○─╯"],
        )
        self.assertEqual(layout.rows[2].node_column, 1)
        self.assertEqual(layout.rows[2].node_color, 2)
        self.assertEqual(layout.allocated, 3)
        self.assertEqual(layout.width, 2)

    def test_column_freed_on_a_row_is_not_reused_on_that_row(self) -> None:
        commits = [
            commit("s", "m"),
            commit("t", "m"),
            commit("m", "p", "q"),
            commit("p"),
            commit("q"),
        ]
        layout = build_graph(commits)

        merge = layout.rows[2]
        self.assertEqual(merge.converged, (1,))
        self.assertEqual(merge.diverged, (2,))
        self.assertEqual(merge.graph_text, "●─┴─╮")
        self.assertEqual(layout.rows[3].graph_text, "○   │")
        self.assertEqual(layout.rows[4].graph_text, "    ○")

    def test_lane_colors_cycle_through_the_palette(self) -> None:
        commits = [commit("d", "c"), commit("x"), commit("y", "c"), commit("c")]
        layout = build_graph(commits, palette_size=2)

        self.assertEqual(layout.rows[2].node_color, 0)
        self.assertEqual(layout.lane_colors, {0: 0, 1: 1, 2: 0})


def _random_history(size: int = 60, seed: int = 7):
    """Children-first history where every parent appears later in the list."""
    rng = random.Random(seed)
    commits = []
    for index in range(size - 1):
        upper = min(size - 1, index + 6)
        parents = [f"c{rng.randint(index + 1, upper)}"]
        if rng.random() < 0.25 and upper > index + 1:
            extra = f"c{rng.randint(index + 1, upper)}"
            if extra not in parents:
                parents.append(extra)
        commits.append(commit(f"c{index}", *parents))
    commits.append(commit(f"c{size - 1}"))
    return commits


class LayoutPropertyTests(unittest.TestCase):
    def test_layout_is_deterministic(self) -> None:
        commits = _random_history()

        first = build_graph(commits)
        second = build_graph(commits)

        self.assertEqual(
            [(row.node_column, row.node_color, row.cells) for row in first.rows],
            [(row.node_column, row.node_color, row.cells) for row in second.rows],
        )

    def test_active_lanes_never_share_a_column(self) -> None:
        for seed in range(5):
            layout = build_graph(_random_history(seed=seed))
            for row in layout.rows:
                for lanes in (row.lanes_before, row.lanes_after):
                    columns = [lane.column for lane in lanes]
                    self.assertEqual(len(columns), len(set(columns)), row.oid)

    def test_every_lane_closes_over_full_history(self) -> None:
        for seed in range(5):
            layout = build_graph(_random_history(seed=seed))

            self.assertEqual(layout.allocated, layout.freed)
            self.assertEqual(layout.open_lanes, ())

    def test_truncated_parent_leaves_lane_open(self) -> None:
        layout = build_graph([commit("c", "b"), commit("b", "a")])

        self.assertEqual(len(layout), 2)
        self.assertEqual([lane.expected_oid for lane in layout.open_lanes], ["a"])
        self.assertEqual(layout.freed, 0)

    def test_lane_color_is_fixed_for_its_lifetime(self) -> None:
        layout = build_graph(_random_history())

        for row in layout.rows:
            for lane in (*row.lanes_before, *row.lanes_after):
                self.assertEqual(layout.lane_colors[lane.lane_id], lane.color)

    def test_diverge_merge_scenario(self) -> None:
        commits = [commit("D", "B", "C"), commit("C", "A"), commit("B", "A"), commit("A")]
        layout = build_graph(commits)
        merge, c_row, b_row, root = layout.rows

        self.assertEqual(merge.lanes_before, ())
        self.assertEqual(len(merge.lanes_after), 2)
        self.assertEqual(len(c_row.lanes_after), 2)
        self.assertEqual(len(b_row.lanes_after), 2)
        self.assertEqual({lane.expected_oid for lane in b_row.lanes_after}, {"A"})
        self.assertEqual(root.converged, (1,))
        self.assertEqual(root.lanes_after, ())


class UncommittedRowTests(unittest.TestCase):
    def test_dirty_tree_adds_row_above_head(self) -> None:
        commits = [commit("b", "a"), commit("a")]
        layout = build_graph(commits, head_oid="b", dirty=True)

        self.assertTrue(layout.rows[0].is_uncommitted)
        self.assertIsNone(layout.rows[0].commit)
        self.assertEqual(layout.rows[0].graph_text, "◌")
        self.assertEqual(layout.rows[1].graph_text, "◉")
        self.assertEqual(layout.row_of("b"), 1)

    def test_uncommitted_row_follows_head_column(self) -> None:
        commits = [commit("m", "b", "f"), commit("f", "a"), commit("b", "a"), commit("a")]
        layout = build_graph(commits, head_oid="f", dirty=True)

        row = layout.rows[0]
        self.assertEqual(row.node_column, 1)
        self.assertEqual(row.node_color, 1)
        self.assertEqual(row.graph_text, "  ◌")


class RenderPlainTests(unittest.TestCase):
    def test_lines_carry_graph_oid_title_and_label(self) -> None:
        layout = build_graph(
            [commit("c", "b"), commit("b", "a"), commit("a")], head_oid="c", dirty=True
        )
        lines = render_plain(layout, {"c": "main +1"})

        self.assertEqual(
            lines,
            [
                "◌  uncommitted changes",
                "◉  c commit c [main +1]",
                "●  b commit b",
                "○  a commit a",
            ],
        )

    def test_graph_column_is_padded_to_layout_width(self) -> None:
        layout = build_graph([commit("m", "b", "f"), commit("f", "a")])
        lines = render_plain(layout)

        self.assertEqual(lines[0], "●─╮  m commit m")
        self.assertEqual(lines[1], "│ ●  f commit f")


if __name__ == "__main__":
    unittest.main()
