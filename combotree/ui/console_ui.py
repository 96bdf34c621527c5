"""
Rich console presentation for combotree.

This module is the terminal presentation layer: it reads session state and
turns it into Rich renderables. It never mutates the session.

- ConsoleUI: status lines and session printing for the CLI
- render_tree / render_matrix: list and diagram views of the tree
- render_summary / render_detail / render_filters: side panels
- ConsoleSink: ChangeSink that refreshes a Rich Live view
"""

from datetime import datetime
from typing import TYPE_CHECKING

from rich.console import Console, Group
from rich.live import Live
from rich.panel import Panel
from rich.table import Table
from rich.text import Text
from rich.tree import Tree

from combotree.core.status import SummaryCounts, aggregate_status, badge_text
from combotree.core.types import Status

if TYPE_CHECKING:
    from combotree.core.tree import LeafNode, Node
    from combotree.session import LeafDetail, Session


STATUS_STYLES = {
    "untested": "dim",
    "running": "bold yellow",
    "pass": "green",
    "fail": "red",
    "skipped": "blue",
    "partial": "magenta",
}

STATUS_DOT = "●"
REMARK_MARK = "✎"


def status_text(status: Status) -> Text:
    return Text(status.value.upper(), style=STATUS_STYLES[status.value])


class ConsoleUI:
    """CLI console output: one-line status messages and session views."""

    def __init__(self, console: Console | None = None):
        self.console = console or Console()

    # ============= Status Indicators =============

    def print_success(self, message: str) -> None:
        self.console.print(f"[bold green]✓ {message}[/bold green]")

    def print_error(self, message: str) -> None:
        self.console.print(f"[bold red]✗ {message}[/bold red]")

    def print_warning(self, message: str) -> None:
        self.console.print(f"[bold yellow]⚠ {message}[/bold yellow]")

    # ============= Session views =============

    def print_session(self, session: "Session", visible_only: bool = True) -> None:
        """Print filters, tree (or matrix) and summary."""
        self.console.print(render_view(session, visible_only=visible_only))

    def print_detail(self, detail: "LeafDetail | None") -> None:
        if detail is None:
            self.console.print("[dim]Select a leaf to see its details[/dim]")
            return
        self.console.print(render_detail(detail))


# ============= Renderables =============


def _node_label(session: "Session", node: "Node") -> Text:
    status = aggregate_status(node)
    label = Text()
    if node.id == session.selected_id:
        label.append("▶ ", style="bold cyan")
    label.append(f"{STATUS_DOT} ", style=STATUS_STYLES[status.value])
    if node.is_leaf:
        label.append(node.label)
        if len(node.results) > 1:
            parts = [f"{k}:{v.value}" for k, v in node.results.items()]
            label.append(f"  [{', '.join(parts)}]", style="dim")
        if node.remark:
            label.append(f" {REMARK_MARK}", style="italic cyan")
    else:
        label.append(node.label, style="bold")
        label.append(f"  {badge_text(node)}", style=STATUS_STYLES[status.value])
    return label


def render_tree(session: "Session", visible_only: bool = True) -> Tree:
    """List view: nested tree with status dots and badges.

    Nodes hidden by the filters are omitted; collapsed nodes are shown
    without their children.
    """
    tree = session.tree
    visible = session.visible_ids() if visible_only else None
    root = Tree(_node_label(session, tree.root), guide_style="dim")

    def add(parent: Tree, node: "Node") -> None:
        for child in node.children:
            if visible is not None and child.id not in visible:
                continue
            branch = parent.add(_node_label(session, child))
            if not child.is_leaf and child.id in session.expanded_ids:
                add(branch, child)

    if tree.root.id in session.expanded_ids:
        add(root, tree.root)
    return root


def render_matrix(session: "Session", visible_only: bool = True) -> Table:
    """Diagram view: one row per leaf, one column per dimension and result key."""
    tree = session.tree
    schema = session.schema
    table = Table(show_lines=False, header_style="bold")
    for dim in schema.dimensions:
        table.add_column(dim.name)
    keys = schema.effective_result_keys()
    for key in keys:
        table.add_column(key, justify="center")
    table.add_column("", justify="center")

    leaves: list["LeafNode"] = tree.leaves
    if visible_only:
        leaves = [leaf for leaf in leaves if session.filters.is_leaf_visible(leaf)]
    for leaf in leaves:
        cells = [Text(v) for v in leaf.path]
        cells += [status_text(leaf.results[k]) for k in keys]
        cells.append(Text(REMARK_MARK if leaf.remark else "", style="italic cyan"))
        style = "reverse" if leaf.id == session.selected_id else None
        table.add_row(*cells, style=style)
    return table


def render_summary(counts: SummaryCounts) -> Table:
    table = Table(show_header=False, box=None, padding=(0, 2))
    table.add_column("Label", style="dim")
    table.add_column("Value")
    table.add_row("total", str(counts.total))
    table.add_row("pass", f"[green]{counts.passed}[/green]")
    table.add_row("fail", f"[red]{counts.failed}[/red]")
    table.add_row("skipped", f"[blue]{counts.skipped}[/blue]")
    table.add_row("untested", f"[dim]{counts.untested}[/dim]")
    if counts.running:
        table.add_row("running", f"[yellow]{counts.running}[/yellow]")
    if counts.partial:
        table.add_row("partial", f"[magenta]{counts.partial}[/magenta]")
    table.add_row("done", f"[bold]{counts.percent_done}%[/bold]")
    return table


def render_filters(session: "Session") -> Table:
    table = Table(show_header=False, box=None, padding=(0, 1))
    table.add_column("Dimension", style="bold")
    table.add_column("Values")
    for dim in session.schema.dimensions:
        active = set(session.filters.active(dim.key))
        chips = Text()
        for value in dim.values:
            if value in active:
                chips.append(f"[{value}] ", style="bold cyan")
            else:
                chips.append(f" {value}  ", style="dim strike")
        table.add_row(f"{dim.name}:", chips)
    return table


def _format_ts(ts: float | None) -> str:
    return datetime.fromtimestamp(ts).strftime("%H:%M:%S") if ts else "-"


def render_detail(detail: "LeafDetail") -> Panel:
    body = Table(show_header=False, box=None, padding=(0, 2))
    body.add_column("Label", style="dim")
    body.add_column("Value")
    for name, value in detail.meta:
        body.add_row(name, value)
    body.add_row("", "")
    for key, status in detail.results.items():
        body.add_row(key, status_text(status))
    body.add_row("started", _format_ts(detail.started_at))
    body.add_row("finished", _format_ts(detail.finished_at))
    if detail.duration is not None:
        body.add_row("duration", f"{detail.duration:.2f}s")
    if detail.remark:
        body.add_row("remark", Text(detail.remark, style="italic"))

    parts = [body]
    if detail.log:
        parts.append(Text("\n".join(detail.log[-10:]), style="dim"))

    breadcrumb = " › ".join(detail.breadcrumb)
    style = STATUS_STYLES[detail.status.value]
    return Panel(
        Group(*parts),
        title=f"[bold]{breadcrumb}[/bold]  [{style}]{detail.status.value.upper()}[/{style}]",
        border_style="cyan",
    )


def render_view(session: "Session", visible_only: bool = True) -> Group:
    """Filters + tree (list mode) or matrix (diagram mode) + summary."""
    main = (
        render_matrix(session, visible_only)
        if session.view_mode == "diagram"
        else render_tree(session, visible_only)
    )
    return Group(
        render_filters(session),
        Text(""),
        main,
        Text(""),
        Panel(render_summary(session.summary()), title="Summary", border_style="dim", expand=False),
    )


# ============= Live sink =============


class ConsoleSink:
    """ChangeSink that redraws a Rich Live view of the session on each change."""

    def __init__(self, session: "Session", console: Console | None = None, refresh_per_second: int = 8):
        self.session = session
        self.console = console or Console()
        self.live = Live(
            render_view(session),
            console=self.console,
            refresh_per_second=refresh_per_second,
            transient=False,
        )

    def __enter__(self) -> "ConsoleSink":
        self.live.start()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self._refresh()
        self.live.stop()
        return False

    def render_node(self, node_id: str) -> None:
        self._refresh()

    def render_ancestors_of(self, leaf: "LeafNode") -> None:
        self._refresh()

    def update_summary(self) -> None:
        self._refresh()

    def update_detail(self, node_id: str) -> None:
        if node_id == self.session.selected_id:
            self._refresh()

    def _refresh(self) -> None:
        self.live.update(render_view(self.session))
