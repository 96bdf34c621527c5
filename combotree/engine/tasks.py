"""
Leaf task collaborators.

A leaf task takes a LeafNode and resolves to Status.PASS or Status.FAIL.
It must not raise: any underlying fault should be mapped to FAIL before
returning (the scheduler records a raising task as FAIL as a last resort).

SimulatedTask is the built-in stand-in for a real test runner: a random
delay, a few streamed log lines, and a stochastic verdict.
"""

import asyncio
import random
import time

from combotree.core.config import SimulationArgs
from combotree.core.tree import LeafNode
from combotree.core.types import Status
from combotree.ui.sinks import ChangeSink, NullSink

_STEP_MESSAGES = (
    "preparing {path}",
    "executing checks",
    "collecting results",
    "tearing down",
)


class SimulatedTask:
    """Sleep, stream log lines into leaf.log, then pass with probability pass_rate."""

    def __init__(
        self,
        args: SimulationArgs | None = None,
        sink: ChangeSink | None = None,
        rng: random.Random | None = None,
    ):
        self.args = args or SimulationArgs()
        self.sink = sink or NullSink()
        self.rng = rng or random.Random(self.args.seed)

    async def __call__(self, leaf: LeafNode) -> Status:
        delay = self.rng.uniform(self.args.min_delay, self.args.max_delay)
        n_lines = self.args.log_lines

        if n_lines == 0:
            await asyncio.sleep(delay)
        for i in range(n_lines):
            await asyncio.sleep(delay / n_lines)
            message = _STEP_MESSAGES[i % len(_STEP_MESSAGES)].format(path=" / ".join(leaf.path))
            self._emit(leaf, f"[{i + 1}/{n_lines}] {message}")

        passed = self.rng.random() < self.args.pass_rate
        status = Status.PASS if passed else Status.FAIL
        self._emit(leaf, f"finished: {status.value.upper()} in {delay:.2f}s")
        return status

    def _emit(self, leaf: LeafNode, line: str) -> None:
        leaf.log.append(f"{time.strftime('%H:%M:%S')} {line}")
        self.sink.update_detail(leaf.id)
