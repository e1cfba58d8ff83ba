"""
Chart Configuration Validation
==============================
Schema validation for SREWMA chart parameters.

Key Principle: Fail fast on bad configs. A typo in a config should
raise an immediate, clear error - not silently produce a chart with the
wrong smoothing constant or control limit.

Config files may be JSON or YAML:

    {"lambda": 0.1, "control_limit": 10.0, "max_condition_number": 1e10}
"""

import json
from pathlib import Path
from typing import Any, Dict, Union

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator


# Inverting a matrix with condition number k loses about log10(k) of the
# ~16 significant digits of a double. At 1e12 roughly four remain, which is
# the least we accept for the whitening transform.
DEFAULT_MAX_CONDITION_NUMBER = 1e12

# Baseline size below which control charts are generally considered
# unreliable (same rule of thumb used for Shewhart baselines).
DEFAULT_MIN_RECOMMENDED_REFERENCE = 20


class ChartConfig(BaseModel):
    """SREWMA chart parameters."""
    model_config = ConfigDict(extra='forbid', populate_by_name=True, frozen=True)

    lambda_param: float = Field(
        ..., alias='lambda', gt=0.0, lt=1.0,
        description="EWMA smoothing constant, 0 < lambda < 1",
    )
    control_limit: float = Field(..., gt=0.0, description="Upper control limit (UCL)")
    max_condition_number: float = Field(
        DEFAULT_MAX_CONDITION_NUMBER, gt=1.0,
        description="Largest covariance condition number accepted before SingularCovariance",
    )
    tie_tolerance: float = Field(
        0.0, ge=0.0,
        description="Whitened distance at or below which two points are coincident",
    )
    compensated_summation: bool = Field(
        True, description="Use Neumaier summation for the running energy total",
    )
    min_recommended_reference: int = Field(
        DEFAULT_MIN_RECOMMENDED_REFERENCE, ge=1,
        description="Reference size below which a warning is issued",
    )

    @field_validator('lambda_param', 'control_limit', 'max_condition_number', 'tie_tolerance')
    @classmethod
    def check_finite(cls, v: float) -> float:
        if v != v or v in (float('inf'), float('-inf')):
            raise ValueError(f"Value must be finite, got {v}")
        return v

    def to_dict(self) -> Dict[str, Any]:
        return self.model_dump()


def validate_chart_config(config: Dict[str, Any]) -> ChartConfig:
    """
    Validate a configuration dictionary.

    Args:
        config: Dictionary with at least 'lambda' (or 'lambda_param')
            and 'control_limit'

    Returns:
        Validated ChartConfig

    Raises:
        ValueError: If validation fails
    """
    try:
        return ChartConfig(**config)
    except ValidationError as e:
        raise ValueError(f"Configuration validation failed:\n{str(e)}") from e


def load_chart_config(path: Union[str, Path]) -> ChartConfig:
    """
    Load and validate a chart configuration from a JSON or YAML file.

    Raises:
        FileNotFoundError: If file doesn't exist
        ValueError: If file is unparseable or validation fails
    """
    path = Path(path)

    if not path.exists():
        raise FileNotFoundError(f"Configuration file not found: {path}")

    suffix = path.suffix.lower()
    with open(path, 'r', encoding='utf-8') as f:
        if suffix in ('.yaml', '.yml'):
            try:
                config = yaml.safe_load(f) or {}
            except yaml.YAMLError as e:
                raise ValueError(f"Invalid YAML in {path}: {str(e)}") from e
        elif suffix == '.json':
            try:
                config = json.load(f)
            except json.JSONDecodeError as e:
                raise ValueError(f"Invalid JSON in {path}: {str(e)}") from e
        else:
            raise ValueError(f"Unsupported config format '{suffix}' (use .json, .yaml or .yml)")

    if not isinstance(config, dict):
        raise ValueError(f"Configuration in {path} must be a mapping, got {type(config).__name__}")

    return validate_chart_config(config)
