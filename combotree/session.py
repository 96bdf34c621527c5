"""
Session: the explicit context object every operation goes through.

A session owns the current schema, the combination tree, the visibility
filters, the viewing state (selection, expanded nodes, view mode), the
change sink and the scheduler. It is created at startup and replaces its
tree wholesale on rebuild. It is driven from a single control flow; the
scheduler's workers are the only other writers, and they only touch the
leaves they dequeued.
"""

import logging
from dataclasses import dataclass, field
from typing import Iterable, Literal

from combotree.core.config import Config, config
from combotree.core.errors import SchedulerBusyError
from combotree.core.filters import FilterState
from combotree.core.schema import DimensionSchema
from combotree.core.status import (
    SummaryCounts,
    aggregate_one_result,
    aggregate_status,
    badge_text,
    derived_leaf_status,
    summary_counts,
)
from combotree.core.tree import (
    CombinationTree,
    LeafNode,
    build_tree,
    carry_over,
    iter_leaves,
    reshape_results,
)
from combotree.core.types import (
    MARKABLE_STATUSES,
    ROOT_ID,
    ResultDimension,
    ResultKey,
    Status,
)
from combotree.engine.scheduler import LeafTask, RunHandle, Scheduler
from combotree.engine.tasks import SimulatedTask
from combotree.ui.sinks import ChangeSink, NullSink

ViewMode = Literal["list", "diagram"]


@dataclass
class LeafDetail:
    """Everything a detail panel shows for one leaf."""

    id: str
    breadcrumb: tuple[str, ...]
    meta: list[tuple[str, str]]
    results: dict[ResultKey, Status]
    status: Status
    remark: str
    started_at: float | None
    finished_at: float | None
    duration: float | None
    log: list[str] = field(default_factory=list)
    # Mark actions; the one matching the current status is disabled
    actions: dict[Status, bool] = field(default_factory=dict)


class Session:
    """State and operations of one combination-tracking session."""

    def __init__(
        self,
        schema: DimensionSchema,
        tree: CombinationTree,
        sink: ChangeSink | None = None,
        logger: logging.Logger | None = None,
        settings: Config | None = None,
    ):
        self.schema = schema
        self.tree = tree
        self.settings = settings or config
        self.logger = logger or logging.getLogger(__name__)
        self.filters = FilterState.for_schema(schema)
        self.scheduler = Scheduler(logger=self.logger)
        self.sink = sink or NullSink()

        # Viewing state (never mutates the tree)
        self.selected_id: str | None = None
        self.expanded_ids: set[str] = {n.id for n in tree.internal_nodes()}
        self.view_mode: ViewMode = "list"

        self._handle: RunHandle | None = None

    @classmethod
    def create(
        cls,
        schema: DimensionSchema | None = None,
        sink: ChangeSink | None = None,
        logger: logging.Logger | None = None,
        settings: Config | None = None,
    ) -> "Session":
        """Build a fresh tree from `schema` (or the configured schema)."""
        settings = settings or config
        schema = schema or settings.dimension_schema()
        tree = build_tree(schema)
        return cls(schema, tree, sink=sink, logger=logger, settings=settings)

    @property
    def sink(self) -> ChangeSink:
        return self._sink

    @sink.setter
    def sink(self, sink: ChangeSink) -> None:
        self._sink = sink
        self.scheduler.sink = sink

    @property
    def is_running(self) -> bool:
        return self._handle is not None and Scheduler.active_run() is self._handle

    # ============= Schema / rebuild =============

    def rebuild_tree(self, schema: DimensionSchema) -> CombinationTree:
        """
        Replace the tree with one built from `schema`.

        If the dimensions are unchanged, leaf state is carried over and
        reshaped to the new result keys; otherwise all leaf state is
        discarded. On SchemaError the current tree stays in place.

        Raises:
            SchemaError: schema cannot be built
            SchedulerBusyError: a run is in progress
        """
        self._ensure_idle("rebuild the tree")
        new_tree = build_tree(schema)

        if schema.same_structure(self.schema):
            carried = carry_over(self.tree, new_tree)
            self.logger.info(f"Rebuilt tree, carried over {carried} leaves")
        else:
            self.logger.info(f"Rebuilt tree with new structure ({new_tree.leaf_count} leaves)")

        self.schema = schema
        self.tree = new_tree
        self.filters = FilterState.for_schema(schema)
        self.expanded_ids = {n.id for n in new_tree.internal_nodes()}
        if self.selected_id not in new_tree.nodes:
            self.selected_id = None
        self._refresh_all()
        return new_tree

    def set_result_dimensions(self, result_dimensions: Iterable[ResultDimension]) -> None:
        """Reshape every leaf in place to the new result keys."""
        self._ensure_idle("change result dimensions")
        schema = self.schema.with_result_dimensions(tuple(result_dimensions))
        reshape_results(self.tree.leaves, schema.effective_result_keys())
        self.schema = schema
        self.tree.schema = schema
        self.filters.schema = schema
        self._refresh_all()

    def add_result_dimension(self, name: str, key: str) -> None:
        self.set_result_dimensions(
            list(self.schema.result_dimensions) + [ResultDimension(name=name, key=key)]
        )

    def remove_result_dimension(self, key: str) -> None:
        remaining = [rd for rd in self.schema.result_dimensions if rd.key != key]
        if len(remaining) == len(self.schema.result_dimensions):
            raise KeyError(f"Unknown result dimension key: {key!r}")
        self.set_result_dimensions(remaining)

    # ============= Status mutation =============

    def mark_status(self, node_id: str, status: Status | str) -> None:
        """Set every result key of every leaf under node_id."""
        status = self._markable(status)
        node = self.tree.get(node_id)
        for leaf in iter_leaves(node):
            leaf.set_all(status)
            self._leaf_changed(leaf)
        self.sink.update_detail(node_id)
        self.sink.update_summary()

    def mark_one_result(self, leaf_id: str, key: str, status: Status | str) -> None:
        """Set a single result key on a single leaf."""
        status = self._markable(status)
        leaf = self.tree.leaf(leaf_id)
        if key not in leaf.results:
            raise KeyError(f"Leaf {leaf_id!r} has no result key {key!r}")
        leaf.results[ResultKey(key)] = status
        self._leaf_changed(leaf)
        self.sink.update_detail(leaf_id)
        self.sink.update_summary()

    def skip_subtree(self, node_id: str) -> None:
        self.mark_status(node_id, Status.SKIPPED)

    def reset_subtree(self, node_id: str) -> None:
        """UNTESTED on every key; clears timestamps and logs."""
        node = self.tree.get(node_id)
        for leaf in iter_leaves(node):
            leaf.reset()
            self._leaf_changed(leaf)
        self.sink.update_detail(node_id)
        self.sink.update_summary()

    def set_remark(self, leaf_id: str, text: str) -> None:
        leaf = self.tree.leaf(leaf_id)
        leaf.remark = text
        self.sink.render_node(leaf_id)
        self.sink.update_detail(leaf_id)

    # ============= Filters =============

    def set_filter_value(self, dimension_key: str, value: str, included: bool) -> bool:
        """Include/exclude a filter value; refusing to empty a dimension."""
        changed = self.filters.set_value(dimension_key, value, included)
        if changed:
            self.sink.render_node(ROOT_ID)
        return changed

    def visible_ids(self) -> set[str]:
        return self.filters.visible_ids(self.tree)

    # ============= Execution =============

    def run_subtree(
        self,
        node_id: str,
        concurrency_limit: int | None = None,
        task: LeafTask | None = None,
        result_key: str | None = None,
        only_visible: bool = False,
    ) -> RunHandle | None:
        """Run every leaf under node_id. Returns None if a run is active."""
        leaves = self.tree.leaves_under(node_id)
        return self._start_run(leaves, concurrency_limit, task, result_key, only_visible)

    def run_selected(
        self,
        leaf_ids: Iterable[str],
        concurrency_limit: int | None = None,
        task: LeafTask | None = None,
        result_key: str | None = None,
        only_visible: bool = False,
    ) -> RunHandle | None:
        """Run the given leaves in order (duplicates dropped)."""
        leaves = [self.tree.leaf(i) for i in dict.fromkeys(leaf_ids)]
        return self._start_run(leaves, concurrency_limit, task, result_key, only_visible)

    def request_stop(self) -> bool:
        """Stop dispatching new leaves. Returns False when nothing is running."""
        if not self.is_running:
            return False
        self._handle.request_stop()
        self.logger.info("Stop requested")
        return True

    def _start_run(
        self,
        leaves: list[LeafNode],
        concurrency_limit: int | None,
        task: LeafTask | None,
        result_key: str | None,
        only_visible: bool,
    ) -> RunHandle | None:
        if only_visible:
            leaves = [leaf for leaf in leaves if self.filters.is_leaf_visible(leaf)]
        if concurrency_limit is None:
            concurrency_limit = self.settings.concurrency_limit
        if task is None:
            task = SimulatedTask(self.settings.simulation, sink=self.sink)
        key = ResultKey(result_key) if result_key is not None else None

        try:
            handle = self.scheduler.start(leaves, concurrency_limit, task, result_key=key)
        except SchedulerBusyError:
            self.logger.warning("run_rejected", extra={"leaves": len(leaves)})
            return None
        self._handle = handle
        return handle

    # ============= Derived views =============

    def summary(self) -> SummaryCounts:
        return summary_counts(self.tree.leaves)

    def aggregate(self, node_id: str) -> Status:
        return aggregate_status(self.tree.get(node_id))

    def aggregate_one(self, node_id: str, key: str) -> Status:
        return aggregate_one_result(self.tree.get(node_id), ResultKey(key))

    def badge(self, node_id: str) -> str:
        return badge_text(self.tree.get(node_id))

    def detail(self, node_id: str | None = None) -> LeafDetail | None:
        """Detail of a leaf (defaults to the selection); None for internal nodes."""
        node_id = node_id or self.selected_id
        if node_id is None:
            return None
        node = self.tree.get(node_id)
        if not node.is_leaf:
            return None

        status = derived_leaf_status(node)
        return LeafDetail(
            id=node.id,
            breadcrumb=node.path,
            meta=[(dim.name, value) for dim, value in self.tree.dimension_values(node)],
            results=dict(node.results),
            status=status,
            remark=node.remark,
            started_at=node.started_at,
            finished_at=node.finished_at,
            duration=node.duration,
            log=list(node.log),
            actions={s: s != status for s in (Status.PASS, Status.FAIL, Status.SKIPPED, Status.UNTESTED)},
        )

    # ============= Viewing state =============

    def select(self, node_id: str) -> None:
        self.tree.get(node_id)
        previous = self.selected_id
        self.selected_id = node_id
        if previous is not None and previous in self.tree.nodes:
            self.sink.render_node(previous)
        self.sink.render_node(node_id)
        self.sink.update_detail(node_id)

    def set_expanded(self, node_id: str, expanded: bool) -> None:
        node = self.tree.get(node_id)
        if node.is_leaf:
            return
        if expanded:
            self.expanded_ids.add(node_id)
        else:
            self.expanded_ids.discard(node_id)
        self.sink.render_node(node_id)

    def toggle_expanded(self, node_id: str) -> None:
        self.set_expanded(node_id, node_id not in self.expanded_ids)

    def expand_all(self) -> None:
        self.expanded_ids = {n.id for n in self.tree.internal_nodes()}
        self.sink.render_node(ROOT_ID)

    def collapse_all(self) -> None:
        self.expanded_ids = {ROOT_ID}
        self.sink.render_node(ROOT_ID)

    def set_view_mode(self, mode: ViewMode) -> None:
        if mode not in ("list", "diagram"):
            raise ValueError(f"Unknown view mode: {mode!r}")
        self.view_mode = mode
        self.sink.render_node(ROOT_ID)

    # ============= Helpers =============

    def _leaf_changed(self, leaf: LeafNode) -> None:
        self.sink.render_node(leaf.id)
        self.sink.render_ancestors_of(leaf)

    def _refresh_all(self) -> None:
        for leaf in self.tree.leaves:
            self._leaf_changed(leaf)
        self.sink.update_summary()

    def _ensure_idle(self, action: str) -> None:
        if Scheduler.is_busy():
            raise SchedulerBusyError(f"Cannot {action} while a run is in progress")

    @staticmethod
    def _markable(status: Status | str) -> Status:
        status = Status(status)
        if status not in MARKABLE_STATUSES:
            raise ValueError(f"Status {status.value!r} cannot be set directly")
        return status
