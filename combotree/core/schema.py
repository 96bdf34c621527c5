"""
Dimension schema: the ordered set of dimensions that shapes the tree.

Pydantic handles the structural parsing (types, required fields). The
semantic rules that make a schema buildable live in check_schema(), which
both DimensionSchema.parse() and build_tree() run:
- at least one dimension
- dimension names and keys non-blank and unique
- every dimension has at least one value; values are distinct and non-blank
- no value contains the id separator (ids are dot-joined paths)
- result dimension names and keys non-blank and unique
"""

import math
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from combotree.core.errors import SchemaError
from combotree.core.types import (
    DEFAULT_RESULT_KEY,
    ID_SEPARATOR,
    ROOT_ID,
    Dimension,
    ResultDimension,
    ResultKey,
    result_key,
)


class DimensionSchema(BaseModel):
    """Ordered dimensions plus optional result dimensions."""

    model_config = ConfigDict(frozen=True)

    dimensions: tuple[Dimension, ...]
    result_dimensions: tuple[ResultDimension, ...] = Field(default_factory=tuple)

    @classmethod
    def parse(cls, data: dict[str, Any]) -> "DimensionSchema":
        """Parse and validate a raw mapping, raising SchemaError on any problem."""
        try:
            schema = cls.model_validate(data)
        except ValidationError as e:
            raise SchemaError(f"Invalid dimension schema: {e}") from e
        check_schema(schema)
        return schema

    @property
    def leaf_count(self) -> int:
        return math.prod(len(d.values) for d in self.dimensions)

    def effective_result_keys(self) -> list[ResultKey]:
        """Configured result keys, or the single implicit default key."""
        if not self.result_dimensions:
            return [ResultKey(DEFAULT_RESULT_KEY)]
        return [rd.result_key for rd in self.result_dimensions]

    def same_structure(self, other: "DimensionSchema") -> bool:
        """True when both schemas produce the same tree shape and ids."""
        return self.dimensions == other.dimensions

    def with_result_dimensions(
        self, result_dimensions: list[ResultDimension] | tuple[ResultDimension, ...]
    ) -> "DimensionSchema":
        schema = DimensionSchema(
            dimensions=self.dimensions,
            result_dimensions=tuple(result_dimensions),
        )
        check_schema(schema)
        return schema

    def dimension(self, key: str) -> Dimension:
        for dim in self.dimensions:
            if dim.key == key:
                return dim
        raise KeyError(f"Unknown dimension key: {key!r}")

    def depth_of(self, key: str) -> int:
        for depth, dim in enumerate(self.dimensions):
            if dim.key == key:
                return depth
        raise KeyError(f"Unknown dimension key: {key!r}")


def check_schema(schema: DimensionSchema) -> None:
    """Validate the semantic rules of a schema. Raises SchemaError."""
    if not schema.dimensions:
        raise SchemaError("Schema needs at least one dimension")

    seen_names: set[str] = set()
    seen_keys: set[str] = set()
    for depth, dim in enumerate(schema.dimensions):
        if not dim.name.strip():
            raise SchemaError(f"Dimension at depth {depth} has a blank name")
        if not dim.key.strip():
            raise SchemaError(f"Dimension {dim.name!r} has a blank key")
        if dim.name in seen_names:
            raise SchemaError(f"Duplicate dimension name: {dim.name!r}")
        if dim.key in seen_keys:
            raise SchemaError(f"Duplicate dimension key: {dim.key!r}")
        seen_names.add(dim.name)
        seen_keys.add(dim.key)

        if not dim.values:
            raise SchemaError(f"Dimension {dim.name!r} has no values")
        if len(set(dim.values)) != len(dim.values):
            raise SchemaError(f"Dimension {dim.name!r} has duplicate values")
        for value in dim.values:
            if not value.strip():
                raise SchemaError(f"Dimension {dim.name!r} has a blank value")
            if ID_SEPARATOR in value:
                raise SchemaError(
                    f"Value {value!r} of dimension {dim.name!r} contains the id "
                    f"separator {ID_SEPARATOR!r}"
                )
            if value == ROOT_ID:
                raise SchemaError(f"Value {value!r} collides with the root id")

    seen_names.clear()
    seen_keys.clear()
    for rd in schema.result_dimensions:
        if not rd.name.strip():
            raise SchemaError("Result dimension has a blank name")
        result_key(rd.key)
        if rd.name in seen_names:
            raise SchemaError(f"Duplicate result dimension name: {rd.name!r}")
        if rd.key in seen_keys:
            raise SchemaError(f"Duplicate result dimension key: {rd.key!r}")
        seen_names.add(rd.name)
        seen_keys.add(rd.key)


def load_schema(path: str | Path) -> DimensionSchema:
    """Load a dimension schema from a YAML file.

    Expected layout:
        dimensions:
          - {name: Testing Env, key: env, values: [local, remote]}
        result_dimensions:
          - {name: Backend, key: backend}
    """
    with open(path) as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise SchemaError(f"Schema file {path} must contain a mapping")
    return DimensionSchema.parse(data)
