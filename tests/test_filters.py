"""
Tests for the visibility filter.
"""

import logging

import pytest

from combotree.core.errors import FilterError
from combotree.core.filters import FilterState
from combotree.core.tree import build_tree
from combotree.core.types import ROOT_ID


@pytest.fixture
def tree(small_schema):
    return build_tree(small_schema)


@pytest.fixture
def filters(small_schema):
    return FilterState.for_schema(small_schema)


class TestFilterState:
    def test_everything_visible_by_default(self, tree, filters):
        assert filters.visible_ids(tree) == set(tree.nodes)
        assert not filters.is_filtered()

    def test_platform_native_hides_docker_leaves(self, tree, filters):
        assert filters.set_value("platform", "docker", False) is True

        visible = filters.visible_ids(tree)
        assert "local.docker" not in visible
        assert "remote.docker" not in visible
        assert {"local", "local.native", "remote", "remote.native", ROOT_ID} <= visible
        assert filters.is_filtered()

    def test_last_value_cannot_be_deselected(self, filters, caplog):
        assert filters.set_value("platform", "docker", False) is True
        with caplog.at_level(logging.DEBUG, logger="combotree.core.filters"):
            assert filters.set_value("platform", "native", False) is False
        assert filters.active("platform") == ["native"]
        assert "Refusing to deselect last value" in caplog.text

    def test_reinclude(self, filters):
        filters.set_value("env", "remote", False)
        assert filters.set_value("env", "remote", True) is True
        assert filters.set_value("env", "remote", True) is False
        assert filters.active("env") == ["local", "remote"]

    def test_toggle(self, filters):
        assert filters.toggle("env", "local") is True
        assert filters.active("env") == ["remote"]
        assert filters.toggle("env", "local") is True
        assert filters.active("env") == ["local", "remote"]

    def test_unknown_dimension(self, filters):
        with pytest.raises(FilterError):
            filters.set_value("nope", "x", False)

    def test_unknown_value(self, filters):
        with pytest.raises(FilterError):
            filters.set_value("env", "staging", False)

    def test_internal_node_visible_through_any_leaf(self, tree, filters):
        filters.set_value("env", "remote", False)
        assert not filters.is_visible(tree.get("remote"))
        assert filters.is_visible(tree.get("local"))
        assert filters.is_visible(tree.root)

    def test_filters_do_not_touch_leaf_state(self, tree, filters):
        before = [dict(leaf.results) for leaf in tree.leaves]
        filters.set_value("env", "remote", False)
        assert [dict(leaf.results) for leaf in tree.leaves] == before
