"""
Command line interface for combotree.

Usage:
    combotree                 # Interactive menu (default)
    combotree show            # Print filters, tree and summary
    combotree run             # Run the simulated task over a subtree
    combotree export          # Write a report of the (fresh) tree
"""

import argparse
import asyncio
import sys
from pathlib import Path

import questionary
from rich.console import Console
from rich.panel import Panel

from combotree.core.config import DEFAULT_CONFIG_PATH, Config, load_config
from combotree.core.errors import FilterError
from combotree.core.types import ROOT_ID, Status
from combotree.engine.tasks import SimulatedTask
from combotree.export import write_report
from combotree.rich_logger import setup_rich_logger
from combotree.session import Session
from combotree.ui.console_ui import ConsoleSink, ConsoleUI
from combotree.ui.sinks import CompositeSink, ProgressWriter, StopAfterSink
from combotree.utils.logger import create_logger

console = Console()
ui = ConsoleUI(console)


# ============= Helpers =============


def load_settings(config_path: str | None) -> Config:
    """Explicit config file, else ./combotree.yaml if present, else defaults."""
    if config_path is not None:
        return load_config(config_path)
    if Path(DEFAULT_CONFIG_PATH).exists():
        return load_config(DEFAULT_CONFIG_PATH)
    return Config()


def parse_filter(expr: str) -> tuple[str, list[str]]:
    """Parse 'DIM=V1,V2' into ('DIM', ['V1', 'V2'])."""
    key, sep, values = expr.partition("=")
    parsed = [v.strip() for v in values.split(",") if v.strip()]
    if not sep or not key.strip() or not parsed:
        raise FilterError(f"Filter must look like DIM=V1,V2, got {expr!r}")
    return key.strip(), parsed


def apply_filters(session: Session, exprs: list[str]) -> None:
    """Narrow each named dimension to exactly the listed values."""
    for expr in exprs:
        key, values = parse_filter(expr)
        for value in values:
            session.set_filter_value(key, value, True)
        for value in session.schema.dimension(key).values:
            if value not in values:
                session.set_filter_value(key, value, False)


async def run_until_done(session: Session, handle, stop_after: int | None = None):
    """Wait for a run; request a stop once `stop_after` leaves have finished."""
    if stop_after is None:
        return await handle

    sink = session.sink
    watcher = StopAfterSink(session, handle, stop_after)
    session.sink = CompositeSink(sink, watcher)
    try:
        watcher.update_summary()
        return await handle
    finally:
        session.sink = sink


# ============= Commands =============


def cmd_show(config_path: str | None, filters: list[str], show_all: bool, diagram: bool):
    """Print the current tree with filters applied."""
    session = Session.create(settings=load_settings(config_path))
    apply_filters(session, filters)
    if diagram:
        session.set_view_mode("diagram")

    console.print()
    console.print(Panel.fit(
        f"[bold]combotree[/bold]  {session.tree.leaf_count} combinations "
        f"over {len(session.schema.dimensions)} dimensions",
        style="cyan",
    ))
    ui.print_session(session, visible_only=not show_all)
    return 0


async def _run(
    settings: Config,
    node: str,
    limit: int | None,
    key: str | None,
    filters: list[str],
    stop_after: int | None,
    export: str | None,
    progress_file: str | None,
    live: bool,
    quiet: bool = False,
    plain: bool = False,
) -> int:
    if quiet or plain:
        logger = create_logger(silent=quiet)
    else:
        logger = setup_rich_logger(console=console)
    session = Session.create(logger=logger, settings=settings)
    apply_filters(session, filters)

    sinks = []
    progress_file = progress_file or settings.progress_file
    if progress_file:
        sinks.append(ProgressWriter(progress_file, session))
    console_sink = ConsoleSink(session, console=console) if live else None
    if console_sink is not None:
        sinks.append(console_sink)
    session.sink = CompositeSink(*sinks)

    task = SimulatedTask(settings.simulation, sink=session.sink)
    handle = session.run_subtree(
        node,
        concurrency_limit=limit,
        task=task,
        result_key=key,
        only_visible=bool(filters),
    )
    if handle is None:
        return 1

    if console_sink is not None:
        with console_sink:
            result = await run_until_done(session, handle, stop_after)
    else:
        result = await run_until_done(session, handle, stop_after)

    if not live:
        ui.print_session(session)
    if export:
        fmt = "csv" if export.endswith(".csv") else "json"
        path = write_report(session, export, format=fmt)
        ui.print_success(f"Report written to {path}")
    return 1 if result.failed else 0


def cmd_run(
    config_path: str | None,
    node: str,
    limit: int | None,
    key: str | None,
    seed: int | None,
    filters: list[str],
    stop_after: int | None,
    export: str | None,
    progress_file: str | None,
    live: bool,
    quiet: bool = False,
    plain: bool = False,
):
    """Run the simulated task over a subtree and report the outcome."""
    settings = load_settings(config_path)
    if seed is not None:
        settings.simulation = settings.simulation.model_copy(update={"seed": seed})
    return asyncio.run(
        _run(settings, node, limit, key, filters, stop_after, export, progress_file, live, quiet, plain)
    )


def cmd_export(config_path: str | None, output: str, fmt: str):
    """Write a report for a freshly built tree (a results template)."""
    session = Session.create(settings=load_settings(config_path))
    path = write_report(session, output, format=fmt)
    ui.print_success(f"Report written to {path}")
    return 0


# ============= Interactive Menu =============


def _ask_node(session: Session, message: str, leaves_only: bool = False) -> str | None:
    nodes = session.tree.leaves if leaves_only else list(session.tree.nodes.values())
    visible = session.visible_ids()
    choices = [
        questionary.Choice(
            ("  " * node.depth) + (node.label if node.id != ROOT_ID else "root"),
            value=node.id,
        )
        for node in nodes
        if node.id in visible
    ]
    return questionary.select(message, choices=choices).ask()


def _interactive_mark(session: Session):
    node_id = _ask_node(session, "Mark which node?")
    if node_id is None:
        return
    status = questionary.select(
        "Status:",
        choices=[
            questionary.Choice(s.value, value=s)
            for s in (Status.PASS, Status.FAIL, Status.SKIPPED, Status.UNTESTED)
        ],
    ).ask()
    if status is None:
        return
    session.mark_status(node_id, status)
    ui.print_success(f"{node_id} -> {status.value}")


def _interactive_remark(session: Session):
    leaf_id = _ask_node(session, "Remark on which leaf?", leaves_only=True)
    if leaf_id is None:
        return
    current = session.tree.leaf(leaf_id).remark
    text = questionary.text("Remark:", default=current).ask()
    if text is not None:
        session.set_remark(leaf_id, text)


def _interactive_filter(session: Session):
    dim_key = questionary.select(
        "Filter which dimension?",
        choices=[questionary.Choice(d.name, value=d.key) for d in session.schema.dimensions],
    ).ask()
    if dim_key is None:
        return
    dim = session.schema.dimension(dim_key)
    active = set(session.filters.active(dim_key))
    chosen = questionary.checkbox(
        f"Values of {dim.name}:",
        choices=[questionary.Choice(v, value=v, checked=v in active) for v in dim.values],
    ).ask()
    if not chosen:
        ui.print_warning("At least one value must stay selected")
        return
    apply_filters(session, [f"{dim_key}={','.join(chosen)}"])


def _interactive_run(session: Session):
    node_id = _ask_node(session, "Run which subtree?")
    if node_id is None:
        return
    limit_str = questionary.text(
        "Concurrency limit (0 = unbounded):",
        default=str(session.settings.concurrency_limit),
    ).ask()
    if limit_str is None:
        return
    only_visible = session.filters.is_filtered() and questionary.confirm(
        "Only visible leaves?", default=True
    ).ask()

    try:
        limit = int(limit_str or 0)
    except ValueError:
        ui.print_error(f"Not a number: {limit_str!r}")
        return

    async def go():
        handle = session.run_subtree(node_id, concurrency_limit=limit, only_visible=bool(only_visible))
        if handle is not None:
            await handle

    try:
        asyncio.run(go())
    except KeyboardInterrupt:
        console.print("\n[dim]Interrupted; in-flight leaves were recorded as FAIL[/dim]")


def _interactive_export(session: Session):
    fmt = questionary.select("Format:", choices=["json", "csv"]).ask()
    if fmt is None:
        return
    output = questionary.text("Output path:", default=f"combotree_report.{fmt}").ask()
    if output:
        path = write_report(session, output, format=fmt)
        ui.print_success(f"Report written to {path}")


def interactive_menu(config_path: str | None = None):
    """Main interactive menu with arrow key navigation."""
    logger = setup_rich_logger(console=console)
    session = Session.create(logger=logger, settings=load_settings(config_path))

    console.print()
    console.print(Panel.fit(
        "[bold cyan]combotree[/bold cyan] Combination Test Tracker\n"
        "[dim]Use arrow keys to navigate, Enter to select[/dim]",
    ))

    while True:
        choice = questionary.select(
            "What would you like to do?",
            choices=[
                questionary.Choice("View Tree", value="tree"),
                questionary.Choice("Toggle List/Diagram", value="mode"),
                questionary.Choice("Select Leaf", value="select"),
                questionary.Separator(),
                questionary.Choice("Mark Node", value="mark"),
                questionary.Choice("Edit Remark", value="remark"),
                questionary.Choice("Filter", value="filter"),
                questionary.Separator(),
                questionary.Choice("Run Subtree", value="run"),
                questionary.Choice("Export Report", value="export"),
                questionary.Separator(),
                questionary.Choice("Exit", value="exit"),
            ],
            use_shortcuts=True,
        ).ask()

        if choice is None or choice == "exit":
            console.print("[dim]Goodbye![/dim]")
            break

        console.print()

        if choice == "tree":
            ui.print_session(session)

        elif choice == "mode":
            session.set_view_mode("diagram" if session.view_mode == "list" else "list")
            ui.print_session(session)

        elif choice == "select":
            leaf_id = _ask_node(session, "Select a leaf:", leaves_only=True)
            if leaf_id is not None:
                session.select(leaf_id)
                ui.print_detail(session.detail())

        elif choice == "mark":
            _interactive_mark(session)

        elif choice == "remark":
            _interactive_remark(session)

        elif choice == "filter":
            _interactive_filter(session)

        elif choice == "run":
            _interactive_run(session)

        elif choice == "export":
            _interactive_export(session)

        console.print()


# ============= Main Entry Point =============


def build_parser():
    parser = argparse.ArgumentParser(
        prog="combotree",
        description="Track test status over every combination of a set of dimensions",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  combotree                                  # Interactive menu
  combotree show --filter env=local
  combotree run --limit 3 --seed 7
  combotree run --node local.docker --stop-after 2 --export report.json
  combotree export --output report.csv --format csv
        """
    )
    config_help = f"YAML config (default: ./{DEFAULT_CONFIG_PATH} if present)"
    parser.add_argument("--config", help=config_help)

    # Subcommands accept --config too without clobbering the top-level value
    config_parent = argparse.ArgumentParser(add_help=False)
    config_parent.add_argument("--config", default=argparse.SUPPRESS, help=config_help)

    subparsers = parser.add_subparsers(dest="command")

    # show
    show_parser = subparsers.add_parser("show", parents=[config_parent], help="Print the tree and summary")
    show_parser.add_argument("--filter", action="append", default=[], metavar="DIM=V1,V2",
                             help="Only show these values of a dimension (repeatable)")
    show_parser.add_argument("--all", action="store_true", help="Ignore filters")
    show_parser.add_argument("--diagram", action="store_true", help="Matrix view")

    # run
    run_parser = subparsers.add_parser("run", parents=[config_parent], help="Run the simulated task over a subtree")
    run_parser.add_argument("--node", default=ROOT_ID, help="Subtree root id (default: whole tree)")
    run_parser.add_argument("--limit", type=int, help="Concurrency limit, 0 = unbounded")
    run_parser.add_argument("--key", help="Run a single result key")
    run_parser.add_argument("--seed", type=int, help="Seed for the simulated task")
    run_parser.add_argument("--filter", action="append", default=[], metavar="DIM=V1,V2",
                            help="Only run visible leaves (repeatable)")
    run_parser.add_argument("--stop-after", type=int, help="Request a stop after N leaves finish")
    run_parser.add_argument("--export", help="Write a report (.json or .csv) when done")
    run_parser.add_argument("--progress-file", help="JSON progress file for a dashboard")
    run_parser.add_argument("--live", action="store_true", help="Live tree view while running")
    run_parser.add_argument("--quiet", action="store_true", help="No per-leaf event log")
    run_parser.add_argument("--plain", action="store_true", help="Plain-text event log (no Rich)")

    # export
    export_parser = subparsers.add_parser("export", parents=[config_parent], help="Write a report")
    export_parser.add_argument("--output", required=True, help="Output path")
    export_parser.add_argument("--format", choices=["json", "csv"], default="json")

    return parser


def main(argv: list[str] | None = None):
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        # No command = interactive mode
        if args.command is None:
            try:
                interactive_menu(args.config)
            except KeyboardInterrupt:
                console.print("\n[dim]Interrupted[/dim]")
            return 0

        if args.command == "show":
            return cmd_show(
                config_path=args.config,
                filters=args.filter,
                show_all=args.all,
                diagram=args.diagram,
            )

        elif args.command == "run":
            return cmd_run(
                config_path=args.config,
                node=args.node,
                limit=args.limit,
                key=args.key,
                seed=args.seed,
                filters=args.filter,
                stop_after=args.stop_after,
                export=args.export,
                progress_file=args.progress_file,
                live=args.live,
                quiet=args.quiet,
                plain=args.plain,
            )

        elif args.command == "export":
            return cmd_export(
                config_path=args.config,
                output=args.output,
                fmt=args.format,
            )

    except FileNotFoundError as e:
        ui.print_error(f"File not found: {e.filename}")
        return 1
    except (KeyError, ValueError) as e:
        # SchemaError, FilterError and pydantic ValidationError are ValueErrors
        ui.print_error(str(e))
        return 1

    return 0


if __name__ == "__main__":
    sys.exit(main())
