"""
Tests for combination tree building, traversal and result reshaping.
"""

import itertools
import math

import pytest

from combotree.core.schema import DimensionSchema
from combotree.core.tree import (
    ancestor_ids,
    build_tree,
    carry_over,
    get_leaves,
    iter_leaves,
    node_id,
    reshape_results,
)
from combotree.core.types import ROOT_ID, ROOT_LABEL, ResultDimension, Status


class TestBuildTree:
    """Tree shape invariants."""

    def test_leaf_count_matches_schema(self, schema):
        tree = build_tree(schema)
        assert tree.leaf_count == schema.leaf_count == 12

    @pytest.mark.parametrize("shape", [(1, 1), (3, 1, 2), (2, 2, 2, 2), (1, 4, 1)])
    def test_one_leaf_per_combination(self, shape):
        values = [[f"v{j}" for j in range(n)] for n in shape]
        schema = DimensionSchema.parse(
            {
                "dimensions": [
                    {"name": f"Dim {i}", "key": f"d{i}", "values": vals} for i, vals in enumerate(values)
                ]
            }
        )
        tree = build_tree(schema)

        assert tree.leaf_count == len(tree.leaves) == math.prod(shape)
        assert [tuple(leaf.path) for leaf in tree.leaves] == list(itertools.product(*values))
        assert all(leaf.depth == len(shape) for leaf in tree.leaves)

    def test_leaves_in_lexicographic_path_order(self, small_schema):
        tree = build_tree(small_schema)
        assert [leaf.id for leaf in tree.leaves] == [
            "local.native",
            "local.docker",
            "remote.native",
            "remote.docker",
        ]

    def test_root(self, small_schema):
        tree = build_tree(small_schema)
        assert tree.root.id == ROOT_ID
        assert tree.root.label == ROOT_LABEL
        assert tree.root.depth == 0
        assert tree.root.path == ()

    def test_children_extend_parent_path(self, schema):
        tree = build_tree(schema)
        for node in tree.internal_nodes():
            values = schema.dimensions[node.depth].values
            assert [c.path for c in node.children] == [node.path + (v,) for v in values]
            assert all(c.depth == node.depth + 1 for c in node.children)

    def test_every_leaf_has_default_result_key(self, schema):
        tree = build_tree(schema)
        assert all(leaf.results == {"result": Status.UNTESTED} for leaf in tree.leaves)

    def test_result_dimensions_create_keys(self, small_schema):
        schema = small_schema.with_result_dimensions(
            [ResultDimension(name="Backend", key="backend"), ResultDimension(name="Frontend", key="frontend")]
        )
        tree = build_tree(schema)
        assert list(tree.leaves[0].results) == ["backend", "frontend"]

    def test_flat_index_holds_every_node(self, schema):
        tree = build_tree(schema)
        # root + 2 env + 6 platform + 12 leaves
        assert len(tree.nodes) == 1 + 2 + 6 + 12
        assert tree.get("remote.k8s.post").is_leaf

    def test_node_id(self):
        assert node_id(()) == ROOT_ID
        assert node_id(("local", "docker")) == "local.docker"


class TestLookup:
    def test_unknown_id(self, small_schema):
        tree = build_tree(small_schema)
        with pytest.raises(KeyError, match="Unknown node id"):
            tree.get("nowhere")

    def test_leaf_requires_leaf(self, small_schema):
        tree = build_tree(small_schema)
        with pytest.raises(KeyError, match="not a leaf"):
            tree.leaf("local")

    def test_leaves_under(self, schema):
        tree = build_tree(schema)
        assert [leaf.id for leaf in tree.leaves_under("local.docker")] == [
            "local.docker.get",
            "local.docker.post",
        ]
        assert tree.leaves_under("local.docker.get")[0].id == "local.docker.get"

    def test_dimension_values(self, small_schema):
        tree = build_tree(small_schema)
        pairs = tree.dimension_values(tree.leaf("remote.docker"))
        assert [(d.name, v) for d, v in pairs] == [("Testing Env", "remote"), ("Platform", "docker")]


class TestTraversal:
    def test_iter_leaves_matches_construction_order(self, schema):
        tree = build_tree(schema)
        assert list(iter_leaves(tree.root)) == tree.leaves
        assert get_leaves(tree.root) == tree.leaves

    def test_ancestor_ids_nearest_first(self, schema):
        tree = build_tree(schema)
        leaf = tree.leaf("remote.docker.get")
        assert ancestor_ids(leaf) == ["remote.docker", "remote", ROOT_ID]
        assert [n.id for n in tree.ancestors(leaf)] == ["remote.docker", "remote", ROOT_ID]

    def test_single_dimension_ancestors(self):
        schema = DimensionSchema.parse({"dimensions": [{"name": "Env", "key": "env", "values": ["a"]}]})
        tree = build_tree(schema)
        assert ancestor_ids(tree.leaf("a")) == [ROOT_ID]


class TestResultReshape:
    """Keys are added, dropped and kept without touching retained values."""

    def test_drop_stale_key_keeps_retained_value(self, small_schema):
        tree = build_tree(
            small_schema.with_result_dimensions(
                [ResultDimension(name="Backend", key="backend"), ResultDimension(name="Frontend", key="frontend")]
            )
        )
        leaf = tree.leaves[0]
        leaf.results["backend"] = Status.FAIL
        leaf.results["frontend"] = Status.PASS

        reshape_results(tree.leaves, ["backend"])
        assert leaf.results == {"backend": Status.FAIL}

    def test_new_key_starts_untested(self, small_schema):
        tree = build_tree(small_schema)
        tree.leaves[0].results["result"] = Status.PASS
        reshape_results(tree.leaves, ["result", "extra"])
        assert tree.leaves[0].results == {"result": Status.PASS, "extra": Status.UNTESTED}


class TestCarryOver:
    def test_state_copied_by_id(self, small_schema):
        old = build_tree(small_schema)
        leaf = old.leaf("local.docker")
        leaf.results["result"] = Status.FAIL
        leaf.remark = "flaky"
        leaf.started_at, leaf.finished_at = 1.0, 3.5
        leaf.log.append("line")

        new = build_tree(small_schema)
        assert carry_over(old, new) == 4
        copied = new.leaf("local.docker")
        assert copied.results == {"result": Status.FAIL}
        assert copied.remark == "flaky"
        assert copied.duration == 2.5
        assert copied.log == ["line"]
        assert copied.log is not leaf.log

    def test_results_reshaped_to_new_keys(self, small_schema):
        old = build_tree(small_schema)
        old.leaf("local.native").results["result"] = Status.PASS
        new = build_tree(small_schema.with_result_dimensions([ResultDimension(name="B", key="backend")]))
        carry_over(old, new)
        assert new.leaf("local.native").results == {"backend": Status.UNTESTED}


class TestLeafState:
    def test_reset_clears_everything_but_remark(self, small_schema):
        tree = build_tree(small_schema)
        leaf = tree.leaves[0]
        leaf.set_all(Status.FAIL)
        leaf.started_at, leaf.finished_at = 1.0, 2.0
        leaf.log.append("x")
        leaf.remark = "keep me"

        leaf.reset()
        assert leaf.results == {"result": Status.UNTESTED}
        assert leaf.started_at is None and leaf.finished_at is None
        assert leaf.duration is None
        assert leaf.log == []
        assert leaf.remark == "keep me"
