from __future__ import annotations

import logging
from typing import List, Optional

from rich.console import Group
from rich.table import Table
from rich.text import Text
from textual import events
from textual.app import App, ComposeResult
from textual.binding import Binding
from textual.containers import Container, Horizontal, Vertical
from textual.message import Message
from textual.screen import ModalScreen
from textual.widget import Widget
from textual.widgets import Button, Footer, Header, Input, Static

from .config import Settings, lane_color
from .git_data import DiffStat, GitError, GitRepository, RefKind
from .graph import GraphRow
from .navigation import Pane, ViewState
from .operations import (
    Operation,
    OperationDispatcher,
    OperationRejected,
    OperationResult,
    plan_checkout,
    plan_create_branch,
    plan_delete_branch,
    plan_fetch,
    plan_merge,
    plan_rebase,
)
from .snapshot import RepoSnapshot, load_snapshot

logger = logging.getLogger(__name__)


DEFAULT_CSS = """
Screen {
    layout: vertical;
}
#body {
    height: 1fr;
}
#branch-panel {
    width: 32;
    border: solid $surface 10%;
}
#graph-panel {
    width: 1fr;
    border: solid $surface 10%;
}
#branch-panel.focused, #graph-panel.focused {
    border: solid $accent;
}
#detail-panel {
    height: 12;
    border: solid $surface 10%;
    padding: 0 1;
}
.prompt-modal {
    width: 60%;
    max-width: 80;
    height: auto;
    padding: 1 2;
    border: solid $accent 30%;
    background: $surface;
}
BranchNameScreen, ConfirmScreen, SearchScreen, HelpScreen {
    align: center middle;
}
.prompt-buttons {
    height: auto;
    align-horizontal: right;
}
#search-results {
    height: 12;
}
"""

_REF_STYLES = {
    RefKind.LOCAL: "bold green",
    RefKind.REMOTE: "bold red",
    RefKind.TAG: "bold yellow",
}

HELP_SECTIONS = [
    (
        "Navigation",
        [
            ("j / ↓", "Move down"),
            ("k / ↑", "Move up"),
            ("Ctrl+d / Ctrl+u", "Half page down / up"),
            ("PgDn / PgUp", "Page down / up"),
            ("g / Home", "Go to top"),
            ("G / End", "Go to bottom"),
            ("@", "Jump to HEAD"),
            ("] / Tab", "Next commit with a label"),
            ("[ / S-Tab", "Previous commit with a label"),
            ("h / ←, l / →", "Cycle labels on this commit"),
            ("1 / 2", "Focus branch list / commit graph"),
        ],
    ),
    (
        "Branch operations",
        [
            ("Enter", "Checkout (graph) or jump to branch (branch list)"),
            ("b", "Create branch at the selected commit"),
            ("d", "Delete the selected local branch"),
            ("m", "Merge the selected branch into HEAD"),
            ("r", "Rebase HEAD onto the selected branch"),
            ("f", "Fetch origin"),
        ],
    ),
    (
        "Other",
        [
            ("/", "Search branches and tags"),
            ("R", "Refresh"),
            ("?", "Toggle this help"),
            ("q / Esc", "Quit"),
        ],
    ),
]


def format_row(
    row: GraphRow,
    graph_width: int,
    label: Optional[Text] = None,
    *,
    selected: bool = False,
) -> Text:
    """Build the styled line for one graph row."""
    text = Text(no_wrap=True, overflow="ellipsis")
    for cell in row.cells:
        style = lane_color(cell.color) if cell.color is not None else ""
        text.append(cell.glyph.value, style=style)
    text.append(" " * max(0, 2 * graph_width - 1 - len(row.cells)))
    text.append("  ")
    if row.commit is None:
        text.append("Uncommitted changes", style="italic yellow")
    else:
        commit = row.commit
        text.append(commit.short_oid, style="yellow")
        text.append(" ")
        if label is not None:
            text.append_text(label)
            text.append(" ")
        text.append(commit.title, style="bold" if row.is_head else "")
        text.append(f"  {commit.author_name}", style="dim")
        text.append(f"  {commit.authored_at.strftime('%Y-%m-%d')}", style="dim")
    if selected:
        text.stylize("reverse")
    return text


def format_diff_stat(stat: DiffStat) -> Table:
    table = Table.grid(padding=(0, 1))
    table.add_column(justify="right", style="green")
    table.add_column(justify="right", style="red")
    table.add_column(overflow="ellipsis", no_wrap=True)
    for item in stat.files:
        table.add_row(f"+{item.added}", f"-{item.deleted}", item.path)
    return table


class GraphView(Widget):
    """Visible slice of the commit graph."""

    DEFAULT_CSS = """
    GraphView {
        height: 1fr;
    }
    """

    def __init__(self, view: ViewState, **kwargs) -> None:
        super().__init__(**kwargs)
        self.view = view

    def on_resize(self, event: events.Resize) -> None:
        self.view.set_viewport(Pane.COMMIT_GRAPH, event.size.height)

    def _label(self, row: GraphRow, selected: bool) -> Optional[Text]:
        snapshot = self.view.snapshot
        group = snapshot.group_for(row.oid) if snapshot else None
        if group is None:
            return None
        ref = group.refs[self.view.label_index % len(group)] if selected else group.primary
        label = Text(f"({ref.name}", style=_REF_STYLES[ref.kind])
        if len(group) > 1:
            label.append(f" +{len(group) - 1}", style="dim")
        label.append(")", style=_REF_STYLES[ref.kind])
        return label

    def render(self) -> Text:
        rows = self.view.rows
        if not rows:
            return Text("No commits found.", style="italic")
        snapshot = self.view.snapshot
        width = snapshot.layout.width if snapshot else 1
        start = self.view.graph.offset
        height = max(1, self.size.height)
        lines: List[Text] = []
        for index in range(start, min(len(rows), start + height)):
            row = rows[index]
            selected = index == self.view.graph.selected
            lines.append(
                format_row(row, width, self._label(row, selected), selected=selected)
            )
        return Text("\n").join(lines)


class BranchListView(Widget):
    """Every ref, in graph order."""

    DEFAULT_CSS = """
    BranchListView {
        height: 1fr;
    }
    """

    def __init__(self, view: ViewState, **kwargs) -> None:
        super().__init__(**kwargs)
        self.view = view

    def on_resize(self, event: events.Resize) -> None:
        self.view.set_viewport(Pane.BRANCH_LIST, event.size.height)

    def render(self) -> Text:
        refs = self.view.branch_refs
        if not refs:
            return Text("No branches.", style="italic")
        start = self.view.branches.offset
        height = max(1, self.size.height)
        focused = self.view.pane is Pane.BRANCH_LIST
        lines: List[Text] = []
        for index in range(start, min(len(refs), start + height)):
            ref = refs[index]
            line = Text(no_wrap=True, overflow="ellipsis")
            line.append("* " if ref.is_head else "  ")
            line.append(ref.name, style=_REF_STYLES[ref.kind])
            if index == self.view.branches.selected:
                line.stylize("reverse" if focused else "underline")
            lines.append(line)
        return Text("\n").join(lines)


class SearchInput(Input):
    class EmptyBackspace(Message):
        """Backspace pressed while the query is already empty."""

    def action_delete_left(self) -> None:
        if not self.value:
            self.post_message(self.EmptyBackspace())
            return
        super().action_delete_left()


class SearchScreen(ModalScreen[bool]):
    """Fuzzy ref search; dismisses with True when a match is confirmed."""

    BINDINGS = [
        Binding("escape", "cancel", "Cancel"),
        Binding("up", "move(-1)", "Up", show=False, priority=True),
        Binding("down", "move(1)", "Down", show=False, priority=True),
        Binding("ctrl+k", "move(-1)", "Up", show=False, priority=True),
        Binding("ctrl+j", "move(1)", "Down", show=False, priority=True),
        Binding("tab", "quiet_move(1)", "Next", show=False, priority=True),
        Binding("shift+tab", "quiet_move(-1)", "Previous", show=False, priority=True),
    ]

    def __init__(self, view: ViewState) -> None:
        super().__init__()
        self.view = view

    def compose(self) -> ComposeResult:
        with Container(classes="prompt-modal"):
            with Vertical():
                yield Static("Search branches and tags:")
                yield SearchInput(placeholder="name", id="search-input")
                yield Static(id="search-results")

    def on_mount(self) -> None:
        self.query_one(SearchInput).focus()
        results = self.query_one("#search-results", Static)
        self.view.set_viewport(Pane.SEARCH, results.size.height or 12)
        self._render_results()

    def _render_results(self) -> None:
        state = self.view.search
        results = self.query_one("#search-results", Static)
        if state is None or not state.results:
            results.update(Text("No matches", style="italic dim"))
            return
        start = state.cursor.offset
        height = self.view.heights.get(Pane.SEARCH, 12)
        lines: List[Text] = []
        for index in range(start, min(len(state.results), start + height)):
            result = state.results[index]
            line = Text(result.ref.name, style=_REF_STYLES[result.ref.kind], no_wrap=True)
            for position in result.match.positions:
                line.stylize("bold underline", position, position + 1)
            if len(result.group) > 1:
                line.append(f"  +{len(result.group) - 1}", style="dim")
            if index == state.cursor.selected:
                line.stylize("reverse")
            lines.append(line)
        results.update(Text("\n").join(lines))

    def _changed(self) -> None:
        self._render_results()
        self.app.refresh_views()

    def on_input_changed(self, event: Input.Changed) -> None:
        self.view.search_edit(event.value)
        self._changed()

    def on_input_submitted(self, event: Input.Submitted) -> None:
        self.dismiss(True)

    def on_search_input_empty_backspace(self, event: SearchInput.EmptyBackspace) -> None:
        self.dismiss(False)

    def action_cancel(self) -> None:
        self.dismiss(False)

    def action_move(self, delta: int) -> None:
        self.view.search_move(delta)
        self._changed()

    def action_quiet_move(self, delta: int) -> None:
        self.view.search_move(delta, preview=False)
        self._render_results()


class HelpScreen(ModalScreen[None]):
    BINDINGS = [
        Binding("escape", "close", "Close"),
        Binding("q", "close", "Close", show=False),
        Binding("question_mark", "close", "Close", show=False),
    ]

    def compose(self) -> ComposeResult:
        table = Table.grid(padding=(0, 2))
        table.add_column(style="bold cyan", no_wrap=True)
        table.add_column()
        for title, entries in HELP_SECTIONS:
            table.add_row(Text(title, style="bold yellow"), "")
            for keys, description in entries:
                table.add_row(f"  {keys}", description)
            table.add_row("", "")
        with Container(classes="prompt-modal"):
            yield Static(table)

    def action_close(self) -> None:
        self.dismiss(None)


class BranchNameScreen(ModalScreen[Optional[str]]):
    """Modal dialog asking for a new branch name."""

    BINDINGS = [Binding("escape", "cancel", "Cancel")]

    def __init__(self, start_point: str) -> None:
        super().__init__()
        self._start_point = start_point

    def compose(self) -> ComposeResult:
        with Container(classes="prompt-modal"):
            with Vertical() as body:
                body.styles.height = "auto"
                yield Static(f"New branch at {self._start_point}:")
                yield Input(placeholder="branch-name", id="branch-input")
                with Horizontal(classes="prompt-buttons") as buttons:
                    buttons.styles.margin_top = 1
                    yield Button("Cancel", id="cancel")
                    yield Button("Create", id="confirm", variant="primary")

    def on_mount(self) -> None:
        self.query_one(Input).focus()

    def on_button_pressed(self, event: Button.Pressed) -> None:
        if event.button.id == "cancel":
            self.dismiss(None)
        else:
            value = self.query_one(Input).value.strip()
            self.dismiss(value or None)

    def on_input_submitted(self, event: Input.Submitted) -> None:
        self.dismiss(event.value.strip() or None)

    def action_cancel(self) -> None:
        self.dismiss(None)


class ConfirmScreen(ModalScreen[bool]):
    BINDINGS = [
        Binding("y", "answer(True)", "Yes"),
        Binding("n", "answer(False)", "No"),
        Binding("escape", "answer(False)", "No", show=False),
    ]

    def __init__(self, message: str) -> None:
        super().__init__()
        self._message = message

    def compose(self) -> ComposeResult:
        with Container(classes="prompt-modal"):
            with Vertical() as body:
                body.styles.height = "auto"
                yield Static(self._message)
                with Horizontal(classes="prompt-buttons") as buttons:
                    buttons.styles.margin_top = 1
                    yield Button("No", id="no")
                    yield Button("Yes", id="yes", variant="warning")

    def on_mount(self) -> None:
        # Enter confirms.
        self.query_one("#yes", Button).focus()

    def on_button_pressed(self, event: Button.Pressed) -> None:
        self.dismiss(event.button.id == "yes")

    def action_answer(self, answer: bool) -> None:
        self.dismiss(answer)


class GitLanesApp(App):
    """Textual application presenting the lane graph of a repository."""

    CSS = DEFAULT_CSS
    BINDINGS = [
        Binding("q", "quit", "Quit"),
        Binding("escape", "quit", "Quit", show=False),
        Binding("question_mark", "help", "Help", key_display="?"),
        Binding("slash", "search", "Search", key_display="/"),
        Binding("j,down", "move(1)", "Down", show=False),
        Binding("k,up", "move(-1)", "Up", show=False),
        Binding("ctrl+d", "page(1, True)", "Half page down", show=False),
        Binding("ctrl+u", "page(-1, True)", "Half page up", show=False),
        Binding("pagedown", "page(1)", "Page down", show=False),
        Binding("pageup", "page(-1)", "Page up", show=False),
        Binding("g,home", "home", "Top", show=False),
        Binding("G,end", "end", "Bottom", show=False),
        Binding("at", "jump_head", "HEAD", key_display="@"),
        Binding("right_square_bracket", "next_labelled", "Next label", show=False),
        Binding("left_square_bracket", "prev_labelled", "Previous label", show=False),
        Binding("tab", "next_labelled", "Next label", show=False, priority=True),
        Binding("shift+tab", "prev_labelled", "Previous label", show=False, priority=True),
        Binding("h,left", "cycle_label(-1)", "Previous ref", show=False),
        Binding("l,right", "cycle_label(1)", "Next ref", show=False),
        Binding("1", "focus_pane('branches')", "Branches", show=False),
        Binding("2", "focus_pane('graph')", "Graph", show=False),
        Binding("enter", "activate", "Checkout"),
        Binding("b", "create_branch", "Branch"),
        Binding("d", "delete_branch", "Delete"),
        Binding("m", "merge", "Merge"),
        Binding("r", "rebase", "Rebase"),
        Binding("f", "fetch", "Fetch"),
        Binding("R", "refresh", "Refresh"),
    ]

    # Actions that only make sense while no dialog is open.
    _MAIN_ACTIONS = {
        "help", "search", "move", "page", "home", "end", "jump_head",
        "next_labelled", "prev_labelled", "cycle_label", "focus_pane",
        "activate", "create_branch", "delete_branch", "merge", "rebase",
        "fetch", "refresh",
    }

    def __init__(
        self,
        repo: GitRepository,
        snapshot: RepoSnapshot,
        *,
        settings: Optional[Settings] = None,
    ) -> None:
        super().__init__()
        self.repo = repo
        self.settings = settings or Settings()
        self.view = ViewState(
            page_size=self.settings.page_size,
            scroll_margin=self.settings.scroll_margin,
        )
        self.view.load(snapshot)
        self.dispatcher = OperationDispatcher(repo, self._load_snapshot)
        self.title = "gitlanes"
        self._update_subtitle()

    def _load_snapshot(self) -> RepoSnapshot:
        return load_snapshot(self.repo, self.settings)

    def compose(self) -> ComposeResult:
        self._branch_panel = Container(id="branch-panel")
        self._graph_panel = Container(id="graph-panel")
        self._branch_list = BranchListView(self.view, id="branch-list")
        self._graph = GraphView(self.view, id="graph")
        self._detail_panel = Static(id="detail-panel")
        yield Header(show_clock=False)
        with Horizontal(id="body"):
            with self._branch_panel:
                yield self._branch_list
            with self._graph_panel:
                yield self._graph
        yield self._detail_panel
        yield Footer()

    def on_mount(self) -> None:
        self.set_interval(self.settings.poll_interval, self._poll_operation)
        self.refresh_views()

    def check_action(self, action: str, parameters: tuple[object, ...]) -> bool | None:
        if action in self._MAIN_ACTIONS:
            return len(self.screen_stack) == 1
        return True

    # -- drawing -------------------------------------------------------------

    def _update_subtitle(self) -> None:
        snapshot = self.view.snapshot
        if snapshot is None:
            return
        where = snapshot.head_branch or (
            f"detached at {snapshot.head_oid[:7]}" if snapshot.head_oid else "no commits"
        )
        suffix = f" (first {len(snapshot.commits)} commits)" if snapshot.truncated else ""
        self.sub_title = f"{snapshot.path} [{where}]{suffix}"

    def refresh_views(self) -> None:
        focused = self.view.pane
        self._branch_panel.set_class(focused is Pane.BRANCH_LIST, "focused")
        self._graph_panel.set_class(focused is Pane.COMMIT_GRAPH, "focused")
        self._graph.refresh()
        self._branch_list.refresh()
        self._detail_panel.update(self._detail())

    def _detail(self) -> Group | Text:
        row = self.view.selected_row
        if row is None:
            return Text("No commits found.", style="italic")
        try:
            if row.commit is None:
                stat = self.repo.working_tree_diff_stat(self.settings.diff_file_cap)
                header = Text("Uncommitted changes", style="bold yellow")
            else:
                commit = row.commit
                parent = commit.parent_oids[0] if commit.parent_oids else None
                stat = self.repo.diff_stat(commit.oid, parent, self.settings.diff_file_cap)
                header = Text()
                header.append(f"commit {commit.oid}\n", style="yellow")
                header.append(f"author: {commit.author_name} <{commit.author_email}>\n")
                header.append(f"date:   {commit.authored_at.strftime('%Y-%m-%d %H:%M:%S')}\n")
                if commit.is_merge:
                    parents = " ".join(oid[:7] for oid in commit.parent_oids)
                    header.append(f"merge:  {parents} (diff against first parent)\n", style="dim")
                group = self.view.selected_group
                if group is not None:
                    header.append("refs:   ")
                    for index, ref in enumerate(group.refs):
                        style = _REF_STYLES[ref.kind]
                        if index == self.view.label_index % len(group):
                            style += " reverse"
                        header.append(ref.name, style=style)
                        header.append(" ")
                    header.append("\n")
                header.append(commit.title, style="italic")
        except GitError as err:
            return Text(f"Unable to load diff: {err}", style="bold red")
        summary = Text.assemble(
            (f"{stat.total_files} files ", ""),
            (f"+{stat.added}", "green"),
            (" ", ""),
            (f"-{stat.deleted}", "red"),
        )
        if stat.truncated:
            summary.append(f"  (showing {len(stat.files)} of {stat.total_files})", style="dim")
        return Group(header, summary, format_diff_stat(stat))

    # -- navigation actions --------------------------------------------------

    def action_move(self, delta: int) -> None:
        self.view.move(delta)
        self.refresh_views()

    def action_page(self, direction: int, half: bool = False) -> None:
        self.view.page(direction, half=half)
        self.refresh_views()

    def action_home(self) -> None:
        self.view.home()
        self.refresh_views()

    def action_end(self) -> None:
        self.view.end()
        self.refresh_views()

    def action_jump_head(self) -> None:
        if not self.view.jump_to_head():
            self._show_status("HEAD is not in the loaded history", severity="warning")
        self.refresh_views()

    def action_next_labelled(self) -> None:
        self.view.next_labelled()
        self.refresh_views()

    def action_prev_labelled(self) -> None:
        self.view.prev_labelled()
        self.refresh_views()

    def action_cycle_label(self, delta: int) -> None:
        self.view.cycle_label(delta)
        self.refresh_views()

    def action_focus_pane(self, name: str) -> None:
        self.view.focus(Pane(name))
        self.refresh_views()

    # -- overlays ------------------------------------------------------------

    def action_help(self) -> None:
        self.view.open_help()
        self.push_screen(HelpScreen(), self._help_closed)

    def _help_closed(self, _: None) -> None:
        self.view.close_help()
        self.refresh_views()

    def action_search(self) -> None:
        if self.view.snapshot is None or not self.view.snapshot.groups:
            self._show_status("No branches or tags to search", severity="warning")
            return
        self.view.begin_search()
        self.push_screen(SearchScreen(self.view), self._search_closed)

    def _search_closed(self, confirmed: Optional[bool]) -> None:
        if confirmed:
            result = self.view.confirm_search()
            if result is None:
                self._show_status("No matching branch", severity="warning")
        else:
            self.view.cancel_search()
        self.refresh_views()

    # -- operations ----------------------------------------------------------

    def _submit(self, operation: Operation) -> None:
        if not self.dispatcher.submit(operation):
            pending = self.dispatcher.pending
            busy = pending.describe().lower() if pending else "another operation"
            self._show_status(f"Still {busy}; try again when it finishes", severity="warning")
            return
        self._show_status(f"{operation.describe()}…")

    def _plan(self, planner, *args) -> Optional[Operation]:
        try:
            return planner(*args)
        except OperationRejected as err:
            self._show_status(str(err), severity="warning")
            return None

    def _confirm_then_submit(self, operation: Optional[Operation], question: str) -> None:
        if operation is None:
            return

        def answered(yes: Optional[bool]) -> None:
            if yes:
                self._submit(operation)

        self.push_screen(ConfirmScreen(question), answered)

    def _head_branch(self) -> Optional[str]:
        return self.view.snapshot.head_branch if self.view.snapshot else None

    def action_activate(self) -> None:
        if self.view.pane is Pane.BRANCH_LIST:
            if self.view.select_branch() is None:
                self._show_status("Branch is outside the loaded history", severity="warning")
            self.refresh_views()
            return
        operation = self._plan(plan_checkout, self.view.selected_ref, self.view.selected_commit)
        if operation is not None:
            self._submit(operation)

    def action_create_branch(self) -> None:
        commit = self.view.selected_commit
        if commit is None:
            self._show_status("Select a commit to branch from", severity="warning")
            return

        def named(name: Optional[str]) -> None:
            if name:
                operation = self._plan(plan_create_branch, name, commit)
                if operation is not None:
                    self._submit(operation)

        self.push_screen(BranchNameScreen(commit.short_oid), named)

    def action_delete_branch(self) -> None:
        operation = self._plan(plan_delete_branch, self.view.selected_ref, self._head_branch())
        if operation is not None:
            self._confirm_then_submit(operation, f"Delete branch '{operation.target}'?")

    def action_merge(self) -> None:
        operation = self._plan(plan_merge, self.view.selected_ref, self._head_branch())
        if operation is not None:
            self._confirm_then_submit(
                operation, f"Merge '{operation.target}' into the current branch?"
            )

    def action_rebase(self) -> None:
        operation = self._plan(plan_rebase, self.view.selected_ref, self._head_branch())
        if operation is not None:
            self._confirm_then_submit(
                operation, f"Rebase the current branch onto '{operation.target}'?"
            )

    def action_fetch(self) -> None:
        self._submit(plan_fetch())

    def action_refresh(self) -> None:
        try:
            snapshot = self._load_snapshot()
        except GitError as err:
            self._show_status(f"Refresh failed: {err}", severity="error")
            return
        self._apply_snapshot(snapshot)
        self._show_status("Refreshed")

    def _apply_snapshot(self, snapshot: RepoSnapshot) -> None:
        self.view.load(snapshot)
        self._update_subtitle()
        self.refresh_views()

    def _poll_operation(self) -> None:
        result = self.dispatcher.poll()
        if result is not None:
            self._finish_operation(result)

    def _finish_operation(self, result: OperationResult) -> None:
        operation = result.operation
        if not result.ok:
            self._show_status(f"{operation.kind.value} failed: {result.error}", severity="error")
            return
        if result.snapshot is not None:
            self._apply_snapshot(result.snapshot)
        self._show_status(f"Done: {operation.kind.value} {operation.target}")

    def action_quit(self) -> None:
        self.dispatcher.abandon()
        self.exit()

    def _show_status(self, message: str, *, severity: str = "information") -> None:
        self.notify(message, severity=severity, timeout=5)


class LanesTUI:
    """Public interface wrapping the textual application."""

    def __init__(
        self,
        repo: GitRepository,
        snapshot: RepoSnapshot,
        *,
        settings: Optional[Settings] = None,
    ) -> None:
        self._app = GitLanesApp(repo, snapshot, settings=settings)

    def run(self) -> None:
        self._app.run()
