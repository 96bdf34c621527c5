"""
combotree: track test status over every combination of a set of dimensions.

The tree's leaves are the cartesian product of dimension values; internal
nodes show statuses aggregated from their leaves. Leaves are run through a
pluggable task with bounded concurrency and cooperative stop.

Usage:
    python -m combotree            # interactive menu
    python -m combotree run --limit 3
"""

__version__ = "0.1.0"
