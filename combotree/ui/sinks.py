"""
Change notification sinks.

The core never renders anything; after each mutation it calls a sink so the
presentation layer can reflect the current state. Display sinks must be
idempotent and must never drive state; StopAfterSink only requests a stop.

- ChangeSink: the protocol the core calls
- NullSink: default, does nothing
- CompositeSink: fans notifications out to several sinks
- ProgressWriter: writes summary progress to a JSON file for a dashboard to poll
- StopAfterSink: requests a stop once a run has finished N leaves
"""

import json
import logging
from collections import deque
from pathlib import Path
from typing import TYPE_CHECKING, Protocol

from combotree.core.status import derived_leaf_status
from combotree.core.types import TERMINAL_STATUSES, Status

if TYPE_CHECKING:
    from combotree.core.tree import LeafNode
    from combotree.engine.scheduler import RunHandle
    from combotree.session import Session

logger = logging.getLogger(__name__)


class ChangeSink(Protocol):
    """Notifications the core emits after any status or remark mutation."""

    def render_node(self, node_id: str) -> None: ...

    def render_ancestors_of(self, leaf: "LeafNode") -> None: ...

    def update_summary(self) -> None: ...

    def update_detail(self, node_id: str) -> None: ...


class NullSink:
    """Sink used when no presentation layer is attached."""

    def render_node(self, node_id: str) -> None:
        pass

    def render_ancestors_of(self, leaf: "LeafNode") -> None:
        pass

    def update_summary(self) -> None:
        pass

    def update_detail(self, node_id: str) -> None:
        pass


class CompositeSink:
    """Forward every notification to each wrapped sink in order."""

    def __init__(self, *sinks: ChangeSink):
        self.sinks = list(sinks)

    def render_node(self, node_id: str) -> None:
        for sink in self.sinks:
            sink.render_node(node_id)

    def render_ancestors_of(self, leaf: "LeafNode") -> None:
        for sink in self.sinks:
            sink.render_ancestors_of(leaf)

    def update_summary(self) -> None:
        for sink in self.sinks:
            sink.update_summary()

    def update_detail(self, node_id: str) -> None:
        for sink in self.sinks:
            sink.update_detail(node_id)


class ProgressWriter:
    """Writes progress updates to a JSON file for a dashboard to poll."""

    def __init__(self, output_path: str | Path, session: "Session", max_log_lines: int = 100):
        self.output_path = Path(output_path)
        self.output_path.parent.mkdir(parents=True, exist_ok=True)
        self.session = session
        self.log_lines: deque[str] = deque(maxlen=max_log_lines)
        self._last_seen: dict[str, Status] = {}

    def render_node(self, node_id: str) -> None:
        node = self.session.tree.nodes.get(node_id)
        if node is None or not node.is_leaf:
            return
        status = derived_leaf_status(node)
        if self._last_seen.get(node_id) == status:
            return
        self._last_seen[node_id] = status
        if status in TERMINAL_STATUSES or status == Status.RUNNING:
            self.log_lines.append(f"{node_id}: {status.value}")

    def render_ancestors_of(self, leaf: "LeafNode") -> None:
        pass

    def update_summary(self) -> None:
        self._write()

    def update_detail(self, node_id: str) -> None:
        pass

    def _write(self) -> None:
        """Write current state to file."""
        counts = self.session.summary()
        data = {
            "status": "running" if self.session.is_running else "idle",
            "summary": counts.as_dict(),
            "running": [
                leaf.id
                for leaf in self.session.tree.leaves
                if derived_leaf_status(leaf) == Status.RUNNING
            ],
            "log_lines": list(self.log_lines)[-50:],  # Only send last 50 lines
        }
        try:
            with open(self.output_path, "w") as f:
                json.dump(data, f)
        except OSError as e:
            # Dashboard might be reading; the next update rewrites the file
            logger.debug(f"Progress write failed: {e}")


class StopAfterSink(NullSink):
    """
    Requests a stop as soon as `handle` has finished `limit` leaves.

    The scheduler notifies update_summary() right after recording each
    finished leaf, before any worker dequeues again, so the stop lands
    exactly at the threshold. Leaves already in flight still finish.
    """

    def __init__(self, session: "Session", handle: "RunHandle", limit: int):
        self.session = session
        self.handle = handle
        self.limit = limit
        self.fired = False

    def update_summary(self) -> None:
        if self.fired or len(self.handle.result.completed) < self.limit:
            return
        self.fired = True
        self.session.request_stop()
