"""
Error taxonomy for combotree.

- SchemaError: the dimension schema cannot produce a well-formed tree
- FilterError: a filter operation names an unknown dimension or value
- SchedulerBusyError: a run was requested while another run is active
"""


class SchemaError(ValueError):
    """Raised when a dimension schema is malformed (build/rebuild is refused)."""


class FilterError(ValueError):
    """Raised when a filter operation references an unknown dimension or value."""


class SchedulerBusyError(RuntimeError):
    """Raised when starting a run while one is already in progress."""
