"""
Status aggregation over the combination tree.

Every function here is pure: results are recomputed from the leaf
descendants on each call and nothing is stored on internal nodes.

Precedence (first matching rule wins, on the distinct values present):
    1. all UNTESTED -> UNTESTED
    2. all PASS     -> PASS
    3. all SKIPPED  -> SKIPPED
    4. all FAIL     -> FAIL
    5. any RUNNING  -> RUNNING
    6. any FAIL     -> FAIL
    7. otherwise    -> PARTIAL

Rule 5 is checked before rule 6, so a subtree with both RUNNING and FAIL
leaves reads as RUNNING.
"""

from dataclasses import asdict, dataclass
from typing import Iterable

from combotree.core.tree import LeafNode, Node, iter_leaves
from combotree.core.types import ResultKey, Status


def combine(statuses: Iterable[Status]) -> Status:
    """Apply the seven-rule precedence. An empty input reads as UNTESTED."""
    present = set(statuses)
    if not present:
        return Status.UNTESTED

    if present == {Status.UNTESTED}:
        return Status.UNTESTED
    if present == {Status.PASS}:
        return Status.PASS
    if present == {Status.SKIPPED}:
        return Status.SKIPPED
    if present == {Status.FAIL}:
        return Status.FAIL
    if Status.RUNNING in present:
        return Status.RUNNING
    if Status.FAIL in present:
        return Status.FAIL
    return Status.PARTIAL


def derived_leaf_status(leaf: LeafNode) -> Status:
    """Single status for a leaf from its per-key results."""
    return combine(leaf.results.values())


def aggregate_status(node: Node) -> Status:
    """Displayed status of any node."""
    if node.is_leaf:
        return derived_leaf_status(node)
    return combine(derived_leaf_status(leaf) for leaf in iter_leaves(node))


def aggregate_one_result(node: Node, key: ResultKey) -> Status:
    """Status of a single result dimension over a subtree."""
    if node.is_leaf:
        return node.results[key]
    return combine(leaf.results[key] for leaf in iter_leaves(node))


# ============= Summary =============


@dataclass(frozen=True)
class SummaryCounts:
    """Leaf counts by derived status."""

    total: int = 0
    untested: int = 0
    running: int = 0
    passed: int = 0
    failed: int = 0
    skipped: int = 0
    partial: int = 0

    @property
    def done(self) -> int:
        return self.passed + self.failed + self.skipped

    @property
    def percent_done(self) -> int:
        return round(self.done / self.total * 100) if self.total else 0

    def as_dict(self) -> dict:
        data = asdict(self)
        data["done"] = self.done
        data["percent_done"] = self.percent_done
        return data


_COUNT_FIELDS = {
    Status.UNTESTED: "untested",
    Status.RUNNING: "running",
    Status.PASS: "passed",
    Status.FAIL: "failed",
    Status.SKIPPED: "skipped",
    Status.PARTIAL: "partial",
}


def summary_counts(leaves: Iterable[LeafNode]) -> SummaryCounts:
    counts = {name: 0 for name in _COUNT_FIELDS.values()}
    total = 0
    for leaf in leaves:
        counts[_COUNT_FIELDS[derived_leaf_status(leaf)]] += 1
        total += 1
    return SummaryCounts(total=total, **counts)


def badge_text(node: Node) -> str:
    """Compact progress badge for internal nodes ('' for leaves).

    "{fail}✗ {pass}✓" once anything failed, otherwise "{pass}/{total}".
    """
    if node.is_leaf:
        return ""
    counts = summary_counts(iter_leaves(node))
    if counts.failed:
        return f"{counts.failed}✗ {counts.passed}✓"
    return f"{counts.passed}/{counts.total}"
