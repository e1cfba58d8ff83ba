"""
SREWMA Error Taxonomy
=====================
Failures raised by the monitoring engine.

Key Principle: a failure is reported with enough context (step index,
last good statistic, offending observation) for the caller to diagnose
or restart. Nothing is retried or skipped internally.

All errors derive from ValueError so existing ``except ValueError``
handlers keep working.
"""

from typing import Any, Optional

import numpy as np


class SREWMAError(ValueError):
    """Base class for all monitoring engine failures."""

    def __init__(self, message: str, step_index: Optional[int] = None):
        super().__init__(message)
        self.step_index = step_index


class InsufficientReferenceSize(SREWMAError):
    """
    Reference sample (or rank context) too small or rank-deficient.

    Attributes:
        n_observations: Number of observations supplied
        n_features: Dimensionality p
        reason: Short machine-readable reason ('too_few', 'non_finite',
            'rank_deficient', 'empty_context', 'degenerate_energy')
    """

    def __init__(
        self,
        message: str,
        n_observations: int = 0,
        n_features: int = 0,
        reason: str = 'too_few',
    ):
        super().__init__(message)
        self.n_observations = n_observations
        self.n_features = n_features
        self.reason = reason


class DimensionMismatch(SREWMAError):
    """Observation feature count disagrees with the established p."""

    def __init__(self, expected: int, actual: Any, step_index: Optional[int] = None):
        super().__init__(
            f"Observation has shape {actual}, expected {expected} features",
            step_index=step_index,
        )
        self.expected = expected
        self.actual = actual


class NonFiniteInput(SREWMAError):
    """NaN or infinite values found in an observation."""

    def __init__(
        self,
        observation: np.ndarray,
        step_index: Optional[int] = None,
    ):
        n_bad = int(np.size(observation) - np.count_nonzero(np.isfinite(observation)))
        where = f" at step {step_index}" if step_index is not None else ""
        super().__init__(
            f"Observation{where} contains {n_bad} non-finite value(s)",
            step_index=step_index,
        )
        self.observation = observation
        self.n_non_finite = n_bad


class SingularCovariance(SREWMAError):
    """
    Covariance of the Reference Set is not invertible within tolerance.

    Fatal to the run from ``step_index`` on. ``state`` holds the last
    valid chart state (None when raised by the pure estimator).
    """

    def __init__(
        self,
        message: str,
        condition_number: float = float('inf'),
        step_index: Optional[int] = None,
        last_q: Optional[float] = None,
        observation: Optional[np.ndarray] = None,
        state: Any = None,
    ):
        super().__init__(message, step_index=step_index)
        self.condition_number = condition_number
        self.last_q = last_q
        self.observation = observation
        self.state = state
