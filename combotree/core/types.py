"""
Type definitions for combotree.

All shared types in one place:
- Status enum (per-key leaf status and derived aggregates)
- Result keys (validated identifiers for result dimensions)
- Dimension / ResultDimension contracts (pydantic models)
"""

from enum import Enum
from typing import NewType

from pydantic import BaseModel, ConfigDict, Field

from combotree.core.errors import SchemaError


# ============= Constants =============

ROOT_ID = "__root__"
ROOT_LABEL = "root"
ID_SEPARATOR = "."

# Key of the single implicit result when no result dimensions are configured
DEFAULT_RESULT_KEY = "result"


# ============= Status =============


class Status(str, Enum):
    """Execution status of one result key on one leaf, or of an aggregate.

    PARTIAL only ever appears as an aggregate, never as a stored leaf value.
    """

    UNTESTED = "untested"
    RUNNING = "running"
    PASS = "pass"
    FAIL = "fail"
    SKIPPED = "skipped"
    PARTIAL = "partial"

    def __str__(self) -> str:
        return self.value


# Statuses a leaf task may resolve to
TERMINAL_STATUSES = frozenset({Status.PASS, Status.FAIL})

# Statuses a caller may set directly on leaves
MARKABLE_STATUSES = frozenset(
    {Status.UNTESTED, Status.PASS, Status.FAIL, Status.SKIPPED}
)


# ============= Result Keys =============

ResultKey = NewType("ResultKey", str)


def result_key(value: str) -> ResultKey:
    """Validate and wrap a result-dimension key."""
    if not isinstance(value, str) or not value.strip():
        raise SchemaError(f"Result key must be a non-blank string, got {value!r}")
    return ResultKey(value)


# ============= Dimensions =============


class Dimension(BaseModel):
    """A named axis with an ordered set of distinct values.

    Order is significant: the position of a dimension in the schema is the
    tree depth it occupies, and value order is child order.
    """

    model_config = ConfigDict(frozen=True)

    name: str
    key: str
    values: tuple[str, ...] = Field(default_factory=tuple)


class ResultDimension(BaseModel):
    """A named, independently tracked status axis on every leaf."""

    model_config = ConfigDict(frozen=True)

    name: str
    key: str

    @property
    def result_key(self) -> ResultKey:
        return result_key(self.key)
