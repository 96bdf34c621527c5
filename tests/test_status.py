"""
Tests for status aggregation precedence, summaries and badges.
"""

import pytest

from combotree.core.status import (
    aggregate_one_result,
    aggregate_status,
    badge_text,
    combine,
    derived_leaf_status,
    summary_counts,
)
from combotree.core.tree import build_tree
from combotree.core.types import ResultDimension, Status

U, R, P, F, S = Status.UNTESTED, Status.RUNNING, Status.PASS, Status.FAIL, Status.SKIPPED


class TestCombine:
    """The seven precedence rules, in order."""

    @pytest.mark.parametrize(
        "statuses, expected",
        [
            ([U, U], U),
            ([P, P, P], P),
            ([S, S], S),
            ([F, F], F),
            ([R, F, P], R),  # running beats fail
            ([R, U], R),
            ([P, P, F], F),
            ([F, S], F),
            ([P, U], Status.PARTIAL),
            ([P, S], Status.PARTIAL),
            ([S, U], Status.PARTIAL),
            ([R], R),
        ],
    )
    def test_precedence(self, statuses, expected):
        assert combine(statuses) == expected

    def test_empty_is_untested(self):
        assert combine([]) == U

    def test_order_independent(self):
        assert combine([F, R]) == combine([R, F]) == R


class TestAggregation:
    def test_aggregate_over_leaves(self, small_schema):
        tree = build_tree(small_schema)
        tree.leaf("local.native").set_all(P)
        tree.leaf("local.docker").set_all(P)
        tree.leaf("remote.native").set_all(F)
        tree.leaf("remote.docker").set_all(P)

        assert aggregate_status(tree.get("local")) == P
        assert aggregate_status(tree.get("remote")) == F
        assert aggregate_status(tree.root) == F

    def test_fresh_tree_is_untested(self, schema):
        assert aggregate_status(build_tree(schema).root) == U

    def test_multi_key_leaf(self, small_schema):
        schema = small_schema.with_result_dimensions(
            [ResultDimension(name="Backend", key="backend"), ResultDimension(name="Frontend", key="frontend")]
        )
        tree = build_tree(schema)
        leaf = tree.leaf("local.native")
        leaf.results["backend"] = P
        assert derived_leaf_status(leaf) == Status.PARTIAL
        leaf.results["frontend"] = F
        assert derived_leaf_status(leaf) == F

    def test_aggregate_one_result(self, small_schema):
        schema = small_schema.with_result_dimensions(
            [ResultDimension(name="Backend", key="backend"), ResultDimension(name="Frontend", key="frontend")]
        )
        tree = build_tree(schema)
        for leaf in tree.leaves_under("local"):
            leaf.results["backend"] = P
        assert aggregate_one_result(tree.get("local"), "backend") == P
        assert aggregate_one_result(tree.get("local"), "frontend") == U
        assert aggregate_one_result(tree.root, "backend") == Status.PARTIAL
        assert aggregate_one_result(tree.leaf("local.native"), "backend") == P

    def test_recomputed_after_mutation(self, small_schema):
        tree = build_tree(small_schema)
        tree.leaf("local.native").set_all(R)
        assert aggregate_status(tree.root) == R
        tree.leaf("local.native").set_all(P)
        assert aggregate_status(tree.root) == Status.PARTIAL


class TestSummary:
    def test_counts(self, small_schema):
        tree = build_tree(small_schema)
        tree.leaf("local.native").set_all(P)
        tree.leaf("local.docker").set_all(F)
        tree.leaf("remote.native").set_all(S)

        counts = summary_counts(tree.leaves)
        assert counts.total == 4
        assert (counts.passed, counts.failed, counts.skipped, counts.untested) == (1, 1, 1, 1)
        assert counts.done == 3
        assert counts.percent_done == 75
        assert counts.as_dict()["percent_done"] == 75

    def test_empty(self):
        counts = summary_counts([])
        assert counts.total == 0
        assert counts.percent_done == 0


class TestBadge:
    def test_progress_badge(self, small_schema):
        tree = build_tree(small_schema)
        tree.leaf("local.native").set_all(P)
        assert badge_text(tree.get("local")) == "1/2"

    def test_failure_badge(self, small_schema):
        tree = build_tree(small_schema)
        tree.leaf("local.native").set_all(P)
        tree.leaf("local.docker").set_all(F)
        assert badge_text(tree.root) == "1✗ 1✓"

    def test_leaf_has_no_badge(self, small_schema):
        tree = build_tree(small_schema)
        assert badge_text(tree.leaves[0]) == ""
