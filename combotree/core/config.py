"""
Pydantic configuration for combotree.

This module provides focused config classes:
- SimulationArgs: parameters of the built-in simulated leaf task
- Config: main configuration source of truth (dimensions, run defaults)

Values can be overridden from a YAML file with load_config().
"""

from pathlib import Path
from typing import Optional

import yaml
from pydantic import BaseModel, ConfigDict, Field, model_validator

from combotree.core.schema import DimensionSchema
from combotree.core.types import Dimension, ResultDimension


DEFAULT_CONFIG_PATH = "combotree.yaml"

DEFAULT_DIMENSIONS = [
    Dimension(name="Testing Env", key="env", values=("local", "remote")),
    Dimension(name="Platform", key="platform", values=("native", "docker", "k8s")),
    Dimension(name="Action", key="action", values=("get", "post")),
]


# =============================================================================
# 1. Simulation
# =============================================================================


class SimulationArgs(BaseModel):
    """Configuration for the simulated leaf task."""

    min_delay: float = Field(default=0.6, ge=0)
    max_delay: float = Field(default=2.0, ge=0)
    pass_rate: float = Field(default=0.8, ge=0, le=1)
    log_lines: int = Field(default=3, ge=0)
    seed: Optional[int] = None

    @model_validator(mode="after")
    def _check_delays(self) -> "SimulationArgs":
        if self.max_delay < self.min_delay:
            raise ValueError("max_delay must be >= min_delay")
        return self


# =============================================================================
# 2. Main Application Configuration (Source of Truth)
# =============================================================================


class Config(BaseModel):
    """
    Main application configuration.
    Defines the default dimension schema and the defaults used for runs.
    """

    model_config = ConfigDict(extra="ignore")

    # Schema
    dimensions: list[Dimension] = Field(default_factory=lambda: list(DEFAULT_DIMENSIONS))
    result_dimensions: list[ResultDimension] = Field(default_factory=list)

    # Execution
    concurrency_limit: int = Field(default=2, ge=0)  # 0 = unbounded
    simulation: SimulationArgs = Field(default_factory=SimulationArgs)

    # Outputs
    progress_file: Optional[str] = None

    def dimension_schema(self) -> DimensionSchema:
        """Validated DimensionSchema built from this config."""
        return DimensionSchema.parse(
            {
                "dimensions": [d.model_dump() for d in self.dimensions],
                "result_dimensions": [rd.model_dump() for rd in self.result_dimensions],
            }
        )


def load_config(config_path: str | Path = DEFAULT_CONFIG_PATH) -> Config:
    """Load configuration from a YAML file."""
    with open(config_path) as f:
        data = yaml.safe_load(f) or {}
    return Config.model_validate(data)


# =============================================================================
# 3. Global Singleton Configuration
# =============================================================================

# This allows 'from combotree.core.config import config'
config = Config()
