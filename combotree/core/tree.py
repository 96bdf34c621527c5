"""
Combination tree: one internal node per prefix of dimension values, one
leaf per full value tuple.

The tree is built in full from a DimensionSchema and never mutated
structurally. Leaf state (results, remark, timestamps, log) is mutated in
place by the session and the scheduler. Internal nodes store no status;
see combotree.core.status for the derived views.
"""

from dataclasses import dataclass, field
from typing import ClassVar, Iterator, Union

from combotree.core.errors import SchemaError
from combotree.core.schema import DimensionSchema, check_schema
from combotree.core.types import (
    ID_SEPARATOR,
    ROOT_ID,
    ROOT_LABEL,
    Dimension,
    ResultKey,
    Status,
)


def node_id(path: tuple[str, ...]) -> str:
    """Deterministic id for a value path; the empty path is the root."""
    return ID_SEPARATOR.join(path) if path else ROOT_ID


@dataclass
class InternalNode:
    """A prefix of dimension values. Its status is always derived."""

    id: str
    path: tuple[str, ...]
    depth: int
    label: str
    children: list["Node"] = field(default_factory=list)

    is_leaf: ClassVar[bool] = False


@dataclass
class LeafNode:
    """One concrete combination of dimension values."""

    id: str
    path: tuple[str, ...]
    depth: int
    label: str
    results: dict[ResultKey, Status] = field(default_factory=dict)
    remark: str = ""
    started_at: float | None = None
    finished_at: float | None = None
    log: list[str] = field(default_factory=list)

    is_leaf: ClassVar[bool] = True

    @property
    def duration(self) -> float | None:
        if self.started_at is None or self.finished_at is None:
            return None
        return self.finished_at - self.started_at

    def set_all(self, status: Status) -> None:
        for key in self.results:
            self.results[key] = status

    def reset(self) -> None:
        """Back to UNTESTED on every key; clears timestamps and log."""
        self.set_all(Status.UNTESTED)
        self.started_at = None
        self.finished_at = None
        self.log.clear()


Node = Union[InternalNode, LeafNode]


@dataclass
class CombinationTree:
    """Root plus a flat id index and the leaves in construction order."""

    schema: DimensionSchema
    root: InternalNode
    nodes: dict[str, Node]
    leaves: list[LeafNode]

    @property
    def leaf_count(self) -> int:
        return len(self.leaves)

    def get(self, node_id: str) -> Node:
        try:
            return self.nodes[node_id]
        except KeyError:
            raise KeyError(f"Unknown node id: {node_id!r}") from None

    def leaf(self, node_id: str) -> LeafNode:
        node = self.get(node_id)
        if not node.is_leaf:
            raise KeyError(f"Node {node_id!r} is not a leaf")
        return node

    def leaves_under(self, node_id: str) -> list[LeafNode]:
        return get_leaves(self.get(node_id))

    def internal_nodes(self) -> list[InternalNode]:
        return [n for n in self.nodes.values() if not n.is_leaf]

    def ancestors(self, leaf: LeafNode) -> list[InternalNode]:
        """Proper ancestors of a leaf, nearest first, ending with the root."""
        return [self.nodes[i] for i in ancestor_ids(leaf)]

    def dimension_values(self, leaf: LeafNode) -> list[tuple[Dimension, str]]:
        return list(zip(self.schema.dimensions, leaf.path))


# ============= Building =============


def build_tree(schema: DimensionSchema) -> CombinationTree:
    """
    Enumerate every path through the cartesian product of dimension values.

    Depth-first in dimension-and-value order, so leaves come out in
    lexicographic-by-path order.

    Raises:
        SchemaError: malformed schema or colliding node ids
    """
    check_schema(schema)
    dimensions = schema.dimensions
    keys = schema.effective_result_keys()
    nodes: dict[str, Node] = {}
    leaves: list[LeafNode] = []

    def build(depth: int, path: tuple[str, ...]) -> Node:
        nid = node_id(path)
        if nid in nodes:
            raise SchemaError(f"Node id collision: {nid!r}")

        if depth == len(dimensions):
            leaf = LeafNode(
                id=nid,
                path=path,
                depth=depth,
                label=path[-1],
                results={k: Status.UNTESTED for k in keys},
            )
            nodes[nid] = leaf
            leaves.append(leaf)
            return leaf

        node = InternalNode(
            id=nid,
            path=path,
            depth=depth,
            label=path[-1] if path else ROOT_LABEL,
        )
        nodes[nid] = node
        node.children = [build(depth + 1, path + (v,)) for v in dimensions[depth].values]
        return node

    root = build(0, ())
    return CombinationTree(schema=schema, root=root, nodes=nodes, leaves=leaves)


# ============= Traversal =============


def iter_leaves(node: Node) -> Iterator[LeafNode]:
    """Yield every leaf under node (inclusive) in path order."""
    stack: list[Node] = [node]
    while stack:
        current = stack.pop()
        if current.is_leaf:
            yield current
        else:
            stack.extend(reversed(current.children))


def get_leaves(node: Node) -> list[LeafNode]:
    return list(iter_leaves(node))


def ancestor_ids(leaf: LeafNode) -> list[str]:
    """Ids of the proper ancestors of a leaf, nearest first, ending with ROOT_ID."""
    ids = [node_id(leaf.path[:d]) for d in range(len(leaf.path) - 1, 0, -1)]
    ids.append(ROOT_ID)
    return ids


# ============= Result reshaping =============


def reshape_results(leaves: list[LeafNode], keys: list[ResultKey]) -> None:
    """
    Make every leaf carry exactly `keys`.

    Stale keys are dropped, new keys start UNTESTED, retained keys keep
    their value. Key order follows `keys`.
    """
    for leaf in leaves:
        leaf.results = {k: leaf.results.get(k, Status.UNTESTED) for k in keys}


def carry_over(old: CombinationTree, new: CombinationTree) -> int:
    """
    Copy leaf state from `old` into the same-id leaves of `new`.

    Results are reshaped to the key set of `new`. Returns the number of
    leaves carried over.
    """
    keys = new.schema.effective_result_keys()
    carried = 0
    for leaf in new.leaves:
        previous = old.nodes.get(leaf.id)
        if previous is None or not previous.is_leaf:
            continue
        leaf.results = {k: previous.results.get(k, Status.UNTESTED) for k in keys}
        leaf.remark = previous.remark
        leaf.started_at = previous.started_at
        leaf.finished_at = previous.finished_at
        leaf.log = list(previous.log)
        carried += 1
    return carried
