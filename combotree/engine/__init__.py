"""Execution engine: bounded-concurrency scheduler and leaf tasks."""

from combotree.engine.scheduler import LeafTask, RunHandle, RunResult, Scheduler
from combotree.engine.tasks import SimulatedTask

__all__ = ["LeafTask", "RunHandle", "RunResult", "Scheduler", "SimulatedTask"]
