"""
Bounded-concurrency execution engine for leaf tasks.

Architecture:
    Scheduler.start(leaves, limit, task)
        └── RunHandle (awaitable, request_stop(), cancel())
            └── run coroutine
                ├── worker 0 ─┐
                ├── worker 1 ─┼── dequeue from one shared FIFO queue
                └── ...      ─┘   (min(limit, queue length) workers)

Each worker loops: dequeue a leaf, skip it if SKIPPED, mark it RUNNING,
await the task, record the terminal status, notify the sink. Dequeues
happen on the event loop thread with get_nowait(), so no leaf is ever
handed to two workers or dropped.

Stopping is cooperative: request_stop() only prevents new dequeues.
In-flight tasks always run to completion. There is no timeout; a hung
task blocks its worker and the whole run. cancel() cancels the run task;
leaves cut short that way (or by a failing sink) are recorded as FAIL
and the run ends with a "run_failed" event.

Only one run may be active per process.

Usage:
    scheduler = Scheduler(sink=sink)
    handle = scheduler.start(tree.leaves, concurrency_limit=2, task=task)
    ...
    handle.request_stop()
    result = await handle
"""

import asyncio
import inspect
import logging
import threading
import time
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Sequence, Union

from combotree.core.errors import SchedulerBusyError
from combotree.core.status import derived_leaf_status
from combotree.core.tree import LeafNode
from combotree.core.types import TERMINAL_STATUSES, ResultKey, Status
from combotree.ui.sinks import ChangeSink, NullSink

# Task collaborator: coroutine function, or a plain callable run in a thread
LeafTask = Callable[[LeafNode], Union[Status, Awaitable[Status]]]


@dataclass
class RunResult:
    """Outcome of one scheduler run."""

    completed: list[str] = field(default_factory=list)
    passed: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)
    # Leaves cut short by cancellation or a sink error; also in `failed`
    aborted: list[str] = field(default_factory=list)
    not_dispatched: list[str] = field(default_factory=list)
    stopped: bool = False
    max_in_flight: int = 0
    elapsed: float = 0.0


class RunHandle:
    """Awaitable handle on an active run, with a cooperative stop signal."""

    def __init__(self, leaf_ids: list[str], n_workers: int, result_key: ResultKey | None):
        self.leaf_ids = leaf_ids
        self.n_workers = n_workers
        self.result_key = result_key
        self.result = RunResult()
        self.in_flight = 0
        # threading.Event so request_stop() is safe from any thread
        self._stop = threading.Event()
        self._task: asyncio.Task | None = None

    def request_stop(self) -> None:
        """Stop dispatching new leaves; in-flight leaves finish normally."""
        self._stop.set()

    def cancel(self) -> None:
        """Cancel the run now; in-flight leaves are recorded as FAIL."""
        self._stop.set()
        if self._task is not None:
            self._task.cancel()

    @property
    def stopping(self) -> bool:
        return self._stop.is_set()

    @property
    def done(self) -> bool:
        return self._task is not None and self._task.done()

    async def wait(self) -> RunResult:
        return await self._task

    def __await__(self):
        return self.wait().__await__()


class Scheduler:
    """Runs a leaf task over a FIFO queue of leaves with bounded concurrency."""

    # Process-wide: at most one run at a time
    _active: RunHandle | None = None

    def __init__(self, sink: ChangeSink | None = None, logger: logging.Logger | None = None):
        self.sink = sink or NullSink()
        self.logger = logger or logging.getLogger(__name__)

    @classmethod
    def is_busy(cls) -> bool:
        return cls._active is not None and not cls._active.done

    @classmethod
    def active_run(cls) -> RunHandle | None:
        return cls._active if cls.is_busy() else None

    def start(
        self,
        leaves: Sequence[LeafNode],
        concurrency_limit: int,
        task: LeafTask,
        result_key: ResultKey | None = None,
    ) -> RunHandle:
        """
        Start a run on the current event loop.

        Args:
            leaves: Leaves to run, in dispatch order
            concurrency_limit: Max concurrent tasks; 0 means unbounded
            task: Leaf task resolving to Status.PASS or Status.FAIL
            result_key: Run a single result key instead of the whole leaf

        Returns:
            RunHandle to await or stop

        Raises:
            SchedulerBusyError: another run is active
            ValueError: negative concurrency limit
            KeyError: result_key missing from a leaf
        """
        if Scheduler.is_busy():
            raise SchedulerBusyError("A run is already in progress")
        if concurrency_limit < 0:
            raise ValueError(f"concurrency_limit must be >= 0, got {concurrency_limit}")
        if result_key is not None:
            for leaf in leaves:
                if result_key not in leaf.results:
                    raise KeyError(f"Leaf {leaf.id!r} has no result key {result_key!r}")

        loop = asyncio.get_running_loop()
        queue: asyncio.Queue[LeafNode] = asyncio.Queue()
        for leaf in leaves:
            if not self._is_skipped(leaf, result_key):
                queue.put_nowait(leaf)

        queued = queue.qsize()
        limit = concurrency_limit or queued
        n_workers = min(limit, queued)

        handle = RunHandle(
            leaf_ids=[leaf.id for leaf in leaves],
            n_workers=n_workers,
            result_key=result_key,
        )
        Scheduler._active = handle
        handle._task = loop.create_task(self._run(handle, queue, n_workers, task))
        return handle

    # ============= Run loop =============

    async def _run(
        self,
        handle: RunHandle,
        queue: asyncio.Queue,
        n_workers: int,
        task: LeafTask,
    ) -> RunResult:
        self.logger.info(
            "run_start",
            extra={
                "queued": queue.qsize(),
                "workers": n_workers,
                "result_key": handle.result_key,
            },
        )
        started = time.monotonic()
        errors: list[BaseException] = []
        try:
            outcomes = await asyncio.gather(
                *(self._worker(i, handle, queue, task) for i in range(n_workers)),
                return_exceptions=True,
            )
            errors = [o for o in outcomes if isinstance(o, BaseException)]
        except BaseException as e:
            errors = [e]
            raise
        finally:
            while not queue.empty():
                handle.result.not_dispatched.append(queue.get_nowait().id)
            handle.result.stopped = handle.stopping
            handle.result.elapsed = time.monotonic() - started
            if Scheduler._active is handle:
                Scheduler._active = None
            self._log_run_end(handle, errors)
            self.sink.update_summary()

        if errors:
            raise errors[0]
        return handle.result

    def _log_run_end(self, handle: RunHandle, errors: list[BaseException]) -> None:
        extra = {
            "completed": len(handle.result.completed),
            "passed": len(handle.result.passed),
            "failed": len(handle.result.failed),
            "not_dispatched": len(handle.result.not_dispatched),
            "elapsed": handle.result.elapsed,
        }
        if errors:
            err = errors[0]
            extra["error"] = f"{type(err).__name__}: {err}" if str(err) else type(err).__name__
            self.logger.error("run_failed", extra=extra)
        elif handle.stopping:
            self.logger.info("run_stopped", extra=extra)
        else:
            self.logger.info("run_complete", extra=extra)

    async def _worker(
        self,
        worker_id: int,
        handle: RunHandle,
        queue: asyncio.Queue,
        task: LeafTask,
    ) -> None:
        while not handle.stopping:
            try:
                leaf = queue.get_nowait()
            except asyncio.QueueEmpty:
                return

            # Leaf may have been skipped while it waited in the queue
            if self._is_skipped(leaf, handle.result_key):
                continue

            self._begin(leaf, handle)
            try:
                self._notify_start(leaf, worker_id)
                status = await self._invoke(task, leaf)
            except BaseException as e:
                # Cancelled or a sink failed: the leaf must not stay RUNNING
                self._record(leaf, handle, Status.FAIL)
                handle.result.aborted.append(leaf.id)
                self.logger.warning(
                    "leaf_aborted",
                    extra={"leaf_id": leaf.id, "error": type(e).__name__},
                )
                raise
            self._record(leaf, handle, status)
            self._notify_finish(leaf, status)

    def _begin(self, leaf: LeafNode, handle: RunHandle) -> None:
        self._set_status(leaf, handle.result_key, Status.RUNNING)
        leaf.started_at = time.time()
        leaf.finished_at = None
        handle.in_flight += 1
        handle.result.max_in_flight = max(handle.result.max_in_flight, handle.in_flight)

    def _notify_start(self, leaf: LeafNode, worker_id: int) -> None:
        self.logger.info("leaf_start", extra={"leaf_id": leaf.id, "worker": worker_id})
        self.sink.render_node(leaf.id)
        self.sink.render_ancestors_of(leaf)

    def _record(self, leaf: LeafNode, handle: RunHandle, status: Status) -> None:
        self._set_status(leaf, handle.result_key, status)
        leaf.finished_at = time.time()
        handle.in_flight -= 1

        handle.result.completed.append(leaf.id)
        if status == Status.PASS:
            handle.result.passed.append(leaf.id)
        else:
            handle.result.failed.append(leaf.id)

    def _notify_finish(self, leaf: LeafNode, status: Status) -> None:
        self.logger.info(
            "leaf_finish",
            extra={"leaf_id": leaf.id, "status": status.value, "duration": leaf.duration},
        )
        self.sink.render_node(leaf.id)
        self.sink.render_ancestors_of(leaf)
        self.sink.update_detail(leaf.id)
        self.sink.update_summary()

    async def _invoke(self, task: LeafTask, leaf: LeafNode) -> Status:
        """Run the task and coerce its outcome to PASS or FAIL."""
        try:
            if _is_async_callable(task):
                outcome = await task(leaf)
            else:
                outcome = await asyncio.to_thread(task, leaf)
                if inspect.isawaitable(outcome):
                    outcome = await outcome
        except Exception as e:
            self.logger.error(
                "task_error",
                extra={"leaf_id": leaf.id, "error": f"{type(e).__name__}: {e}"},
                exc_info=True,
            )
            return Status.FAIL

        try:
            status = Status(outcome)
        except ValueError:
            status = None
        if status not in TERMINAL_STATUSES:
            self.logger.warning(
                "task_error",
                extra={"leaf_id": leaf.id, "error": f"non-terminal outcome {outcome!r}"},
            )
            return Status.FAIL
        return status

    @staticmethod
    def _set_status(leaf: LeafNode, key: ResultKey | None, status: Status) -> None:
        if key is None:
            leaf.set_all(status)
        else:
            leaf.results[key] = status

    @staticmethod
    def _is_skipped(leaf: LeafNode, key: ResultKey | None) -> bool:
        if key is None:
            return derived_leaf_status(leaf) == Status.SKIPPED
        return leaf.results[key] == Status.SKIPPED


def _is_async_callable(task: LeafTask) -> bool:
    if inspect.iscoroutinefunction(task):
        return True
    call = getattr(task, "__call__", None)
    return inspect.iscoroutinefunction(call)
