"""
Visibility filter: per-dimension allow-sets.

A leaf is visible when each of its path values is allowed by the matching
dimension. An internal node is visible when at least one leaf below it is.
The root is always visible. Filters never touch the tree or leaf state.
"""

import logging
from dataclasses import dataclass, field

from combotree.core.errors import FilterError
from combotree.core.schema import DimensionSchema
from combotree.core.tree import CombinationTree, LeafNode, Node, iter_leaves
from combotree.core.types import ROOT_ID

logger = logging.getLogger(__name__)


@dataclass
class FilterState:
    """Allowed values per dimension key."""

    schema: DimensionSchema
    allowed: dict[str, set[str]] = field(default_factory=dict)

    @classmethod
    def for_schema(cls, schema: DimensionSchema) -> "FilterState":
        """Every value of every dimension allowed."""
        return cls(
            schema=schema,
            allowed={dim.key: set(dim.values) for dim in schema.dimensions},
        )

    def set_value(self, dimension_key: str, value: str, included: bool) -> bool:
        """
        Include or exclude one value.

        Returns True when the allow-set changed. Excluding the last allowed
        value of a dimension is refused (returns False) so every dimension
        keeps at least one value.

        Raises:
            FilterError: unknown dimension key or value
        """
        try:
            dim = self.schema.dimension(dimension_key)
        except KeyError:
            raise FilterError(f"Unknown dimension key: {dimension_key!r}") from None
        if value not in dim.values:
            raise FilterError(f"Value {value!r} is not part of dimension {dim.name!r}")

        active = self.allowed[dimension_key]
        if included:
            if value in active:
                return False
            active.add(value)
            return True

        if value not in active:
            return False
        if len(active) == 1:
            logger.debug(f"Refusing to deselect last value {value!r} of {dim.name!r}")
            return False
        active.discard(value)
        return True

    def toggle(self, dimension_key: str, value: str) -> bool:
        included = value in self.allowed.get(dimension_key, set())
        return self.set_value(dimension_key, value, not included)

    def active(self, dimension_key: str) -> list[str]:
        """Allowed values of a dimension in schema order."""
        dim = self.schema.dimension(dimension_key)
        return [v for v in dim.values if v in self.allowed[dimension_key]]

    def is_filtered(self) -> bool:
        return any(
            len(self.allowed[dim.key]) < len(dim.values) for dim in self.schema.dimensions
        )

    def is_leaf_visible(self, leaf: LeafNode) -> bool:
        return all(
            value in self.allowed[dim.key]
            for dim, value in zip(self.schema.dimensions, leaf.path)
        )

    def is_visible(self, node: Node) -> bool:
        if node.id == ROOT_ID:
            return True
        if node.is_leaf:
            return self.is_leaf_visible(node)
        return any(self.is_leaf_visible(leaf) for leaf in iter_leaves(node))

    def visible_ids(self, tree: CombinationTree) -> set[str]:
        """Ids of every visible node, computed in one bottom-up pass."""
        visible: set[str] = set()

        def visit(node: Node) -> bool:
            if node.is_leaf:
                shown = self.is_leaf_visible(node)
            else:
                # visit every child so the whole subtree is recorded
                shown = any([visit(child) for child in node.children])
            if shown:
                visible.add(node.id)
            return shown

        visit(tree.root)
        visible.add(ROOT_ID)
        return visible
