"""Core model: schema, combination tree, status aggregation and filters."""

from combotree.core.errors import FilterError, SchedulerBusyError, SchemaError
from combotree.core.filters import FilterState
from combotree.core.schema import DimensionSchema, load_schema
from combotree.core.status import (
    SummaryCounts,
    aggregate_one_result,
    aggregate_status,
    combine,
    derived_leaf_status,
    summary_counts,
)
from combotree.core.tree import CombinationTree, InternalNode, LeafNode, build_tree
from combotree.core.types import ROOT_ID, Dimension, ResultDimension, Status

__all__ = [
    "FilterError",
    "SchedulerBusyError",
    "SchemaError",
    "FilterState",
    "DimensionSchema",
    "load_schema",
    "SummaryCounts",
    "aggregate_one_result",
    "aggregate_status",
    "combine",
    "derived_leaf_status",
    "summary_counts",
    "CombinationTree",
    "InternalNode",
    "LeafNode",
    "build_tree",
    "ROOT_ID",
    "Dimension",
    "ResultDimension",
    "Status",
]
