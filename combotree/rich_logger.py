"""
Rich logging handler for combotree.

The scheduler and session log named events ("run_start", "leaf_finish",
...) with extra fields. This handler renders those events with Rich
console output, keeping execution logic separate from presentation.
"""

import logging

from rich.console import Console

from combotree.ui.console_ui import STATUS_STYLES


class RichHandler(logging.Handler):
    """
    Logging handler that formats run events with Rich console output.

    Dispatches on the event name (record.msg); anything else is printed
    dimmed as a plain message.
    """

    def __init__(self, console: Console | None = None, show_leaf_start: bool = False):
        super().__init__()
        self.console = console or Console()
        self.show_leaf_start = show_leaf_start

    def emit(self, record: logging.LogRecord):
        try:
            if record.msg == "run_start":
                self._handle_run_start(record)
            elif record.msg == "leaf_start":
                self._handle_leaf_start(record)
            elif record.msg == "leaf_finish":
                self._handle_leaf_finish(record)
            elif record.msg == "task_error":
                self._handle_task_error(record)
            elif record.msg == "leaf_aborted":
                self._handle_leaf_aborted(record)
            elif record.msg in ("run_complete", "run_stopped", "run_failed"):
                self._handle_run_end(record)
            elif record.msg == "run_rejected":
                self._handle_run_rejected(record)
            else:
                self.console.print(f"[dim]{record.getMessage()}[/dim]")
        except Exception:
            # Don't let logging errors crash the application
            self.handleError(record)

    def _handle_run_start(self, record: logging.LogRecord):
        queued = getattr(record, "queued", "?")
        workers = getattr(record, "workers", "?")
        key = getattr(record, "result_key", None)
        scope = f" [dim](result key: {key})[/dim]" if key else ""
        self.console.rule(f"[bold]Run: {queued} leaves, {workers} workers[/bold]{scope}", style="blue")

    def _handle_leaf_start(self, record: logging.LogRecord):
        if not self.show_leaf_start:
            return
        leaf_id = getattr(record, "leaf_id", "?")
        worker = getattr(record, "worker", "?")
        self.console.print(f"[yellow]▶[/yellow] {leaf_id} [dim](worker {worker})[/dim]")

    def _handle_leaf_finish(self, record: logging.LogRecord):
        leaf_id = getattr(record, "leaf_id", "?")
        status = getattr(record, "status", "?")
        duration = getattr(record, "duration", None)
        style = STATUS_STYLES.get(status, "white")
        symbol = "✓" if status == "pass" else "✗"
        timing = f" [dim]{duration:.2f}s[/dim]" if duration is not None else ""
        self.console.print(f"[{style}]{symbol}[/{style}] {leaf_id}{timing}")

    def _handle_task_error(self, record: logging.LogRecord):
        leaf_id = getattr(record, "leaf_id", "?")
        error = getattr(record, "error", "")
        self.console.print(f"[bold red]⚠ task error on {leaf_id}:[/bold red] {error}")

    def _handle_leaf_aborted(self, record: logging.LogRecord):
        leaf_id = getattr(record, "leaf_id", "?")
        error = getattr(record, "error", "")
        self.console.print(f"[red]✗[/red] {leaf_id} [dim]aborted ({error})[/dim]")

    def _handle_run_end(self, record: logging.LogRecord):
        passed = getattr(record, "passed", 0)
        failed = getattr(record, "failed", 0)
        not_dispatched = getattr(record, "not_dispatched", 0)
        elapsed = getattr(record, "elapsed", 0.0)
        if record.msg == "run_failed":
            error = getattr(record, "error", "")
            self.console.print(f"\n[bold red]✗ FAILED[/bold red] {error}")
        elif record.msg == "run_stopped":
            self.console.print(
                f"\n[bold yellow]■ STOPPED[/bold yellow] {not_dispatched} leaves not dispatched"
            )
        else:
            self.console.print("\n[bold green]✓ DONE[/bold green]")
        self.console.print(
            f"  [green]{passed} pass[/green]  [red]{failed} fail[/red]  [dim]{elapsed:.1f}s[/dim]"
        )

    def _handle_run_rejected(self, record: logging.LogRecord):
        self.console.print("[yellow]⚠ A run is already in progress[/yellow]")


def setup_rich_logger(console: Console | None = None, show_leaf_start: bool = False) -> logging.Logger:
    """
    Create the `combotree` logger configured with RichHandler.

    Usage:
        logger = setup_rich_logger()
        session = Session.create(logger=logger)
    """
    logger = logging.getLogger("combotree")
    logger.setLevel(logging.INFO)

    # Remove existing handlers to avoid duplicates
    logger.handlers.clear()

    logger.addHandler(RichHandler(console=console, show_leaf_start=show_leaf_start))

    # Prevent propagation to root logger
    logger.propagate = False

    return logger
