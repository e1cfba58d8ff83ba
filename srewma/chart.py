"""
SREWMA Monitoring Engine
========================
Spatial-sign Rank EWMA control chart for multivariate process streams,
distribution-free (no multivariate normality assumption).

Per monitored observation x_t (t = 1, 2, ...):

1. Whitening transform M from the Reference Set as it stands *before* x_t
2. Whiten the Reference Set and x_t
3. Spatial rank r_t of x_t against the whitened Reference Set
4. Running energy: eps_t = (RE_0 + sum_{k<=t} ||r_k||^2) / (m + t)
5. Append x_t to the Reference Set (expanding window)
6. v_t = (1 - lambda) v_{t-1} + lambda r_t
7. Q_t = (2 - lambda) p / (lambda eps_t) * ||v_t||^2
8. Signal if Q_t > UCL

State machine:
    INITIALIZING -> MONITORING -> IN_CONTROL | SIGNALED

SIGNALED is sticky: the chart does not reset itself. Steps keep being
processed so the full Q_t sequence is available for plotting.

Chart states are immutable. ``process_next`` returns a new state and
leaves its input untouched, so a caller can abort between observations,
or branch from any earlier state.

Usage:
    state = initialize(reference, lambda_param=0.1, control_limit=10.0)
    result = run(state, stream)
    print(result.q_values, result.first_signal_index)
"""

import logging
import warnings
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Tuple

import numpy as np
import pandas as pd

from .buffer import ReferenceBuffer
from .config_validation import ChartConfig
from .energy import EnergyTotal, initial_energy, update_energy
from .ewma import ewma_step, initial_ewma
from .exceptions import (
    DimensionMismatch,
    InsufficientReferenceSize,
    NonFiniteInput,
    SingularCovariance,
    SREWMAError,
)
from .qc_checks import (
    QCStatus,
    check_finite_values,
    check_matrix_shape,
    check_reference_size,
)
from .spatial_rank import reference_ranks, spatial_rank
from .whitening import (
    CovarianceMoments,
    estimate_whitening,
    estimate_whitening_from_moments,
)

logger = logging.getLogger(__name__)


class ChartStatus(Enum):
    """States of the monitoring state machine."""
    INITIALIZING = "initializing"
    MONITORING = "monitoring"      # Initialised, no observation processed yet
    IN_CONTROL = "in_control"
    SIGNALED = "signaled"


@dataclass(frozen=True, eq=False)
class ChartState:
    """
    Complete chart state between two steps.

    Attributes:
        config: Validated chart parameters
        n_features: Dimensionality p, fixed for the run
        n_initial_reference: Size m of the historical reference sample
        step: Number of monitored observations processed so far
        buffer: Shared append-only row store of the Reference Set
        n_reference: Rows of ``buffer`` belonging to this state (m + step)
        moments: Running mean/scatter of those rows
        energy: Running energy total RE
        ewma: EWMA vector v_step
        q_value: Q of the last step (None before the first step)
        rank: Rank vector of the last step
        status: Current ChartStatus
        first_signal_index: First step with Q > UCL, if any
    """
    config: ChartConfig
    n_features: int
    n_initial_reference: int
    step: int
    buffer: ReferenceBuffer = field(repr=False)
    n_reference: int
    moments: CovarianceMoments = field(repr=False)
    energy: EnergyTotal
    ewma: np.ndarray = field(repr=False)
    q_value: Optional[float] = None
    rank: Optional[np.ndarray] = field(default=None, repr=False)
    status: ChartStatus = ChartStatus.MONITORING
    first_signal_index: Optional[int] = None

    @property
    def reference_set(self) -> np.ndarray:
        """Read-only (n_reference, p) view of the Reference Set."""
        return self.buffer.view(self.n_reference)

    @property
    def reference_size(self) -> int:
        return self.n_reference

    @property
    def epsilon(self) -> float:
        """Running mean energy."""
        return self.energy.mean

    @property
    def signaled(self) -> bool:
        return self.status == ChartStatus.SIGNALED


@dataclass
class StepResult:
    """Output of a single monitored observation."""
    index: int
    q_value: float
    signaled: bool
    status: ChartStatus
    epsilon: float
    rank_norm: float
    ewma_norm: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            'index': self.index,
            'q_value': self.q_value,
            'signaled': self.signaled,
            'status': self.status.value,
            'epsilon': self.epsilon,
            'rank_norm': self.rank_norm,
            'ewma_norm': self.ewma_norm,
        }


@dataclass
class MonitoringRun:
    """
    Result of monitoring a stream.

    When a fatal error stops the run, ``steps`` holds the partial output,
    ``error`` the exception and ``failed_index`` the step it occurred at;
    ``final_state`` is the last valid state.
    """
    initial_state: ChartState
    final_state: ChartState
    steps: List[StepResult] = field(default_factory=list)
    error: Optional[SREWMAError] = None
    failed_index: Optional[int] = None

    @property
    def q_values(self) -> np.ndarray:
        return np.array([s.q_value for s in self.steps], dtype=float)

    @property
    def completed(self) -> bool:
        return self.error is None

    @property
    def status(self) -> ChartStatus:
        return self.final_state.status

    @property
    def first_signal_index(self) -> Optional[int]:
        return self.final_state.first_signal_index

    @property
    def last_valid_q(self) -> Optional[float]:
        return self.final_state.q_value

    def to_dataframe(self) -> pd.DataFrame:
        """One row per processed step, indexed by step."""
        columns = ['index', 'q_value', 'signaled', 'status', 'epsilon', 'rank_norm', 'ewma_norm']
        df = pd.DataFrame([s.to_dict() for s in self.steps], columns=columns)
        df['ucl'] = self.final_state.config.control_limit
        return df.set_index('index')

    def to_dict(self) -> Dict[str, Any]:
        return {
            'n_steps': len(self.steps),
            'q_values': self.q_values.tolist(),
            'status': self.status.value,
            'first_signal_index': self.first_signal_index,
            'completed': self.completed,
            'failed_index': self.failed_index,
            'error': str(self.error) if self.error is not None else None,
            'control_limit': self.final_state.config.control_limit,
            'lambda': self.final_state.config.lambda_param,
        }


# =============================================================================
# STATISTIC
# =============================================================================

def monitoring_statistic(
    ewma: np.ndarray,
    epsilon: float,
    lambda_param: float,
    n_features: int,
) -> float:
    """
    Q = (2 - lambda) p / (lambda eps) * ||v||^2

    Nonnegative for any eps > 0.
    """
    if not epsilon > 0:
        raise ValueError(f"Mean energy must be positive, got {epsilon}")
    v = np.asarray(ewma, dtype=float)
    scale = (2.0 - lambda_param) * n_features / (lambda_param * epsilon)
    return float(scale * (v @ v))


# =============================================================================
# INITIALISATION
# =============================================================================

def initialize(
    reference_sample: Any,
    lambda_param: float,
    control_limit: float,
    **options: Any,
) -> ChartState:
    """
    Initialise a chart from an in-control reference sample.

    Args:
        reference_sample: (m, p) observations, m >= p + 1
        lambda_param: EWMA smoothing constant, 0 < lambda < 1
        control_limit: UCL
        **options: Further ChartConfig fields (max_condition_number,
            tie_tolerance, compensated_summation, min_recommended_reference)

    Returns:
        ChartState in MONITORING status

    Raises:
        ValueError: If the parameters are invalid
        InsufficientReferenceSize: If the sample is too small, not finite,
            or rank-deficient
    """
    config = ChartConfig(lambda_param=lambda_param, control_limit=control_limit, **options)
    return initialize_from_config(reference_sample, config)


def initialize_from_config(reference_sample: Any, config: ChartConfig) -> ChartState:
    """Initialise a chart from a validated ChartConfig. See ``initialize``."""
    X = np.array(reference_sample, dtype=float)

    shape_check = check_matrix_shape(X)
    if shape_check.status == QCStatus.FAIL:
        raise InsufficientReferenceSize(
            f"Reference sample: {shape_check.message}",
            n_observations=X.shape[0] if X.ndim >= 1 else 0,
            n_features=X.shape[1] if X.ndim == 2 else 0,
        )

    m, p = X.shape

    finite_check = check_finite_values(X)
    if finite_check.status == QCStatus.FAIL:
        bad_row = finite_check.details['first_rows'][0]
        raise InsufficientReferenceSize(
            f"Reference sample: {finite_check.message}",
            n_observations=m,
            n_features=p,
            reason='non_finite',
        ) from NonFiniteInput(X[bad_row])

    size_check = check_reference_size(X, min_recommended=config.min_recommended_reference)
    if size_check.status == QCStatus.FAIL:
        raise InsufficientReferenceSize(
            f"Reference sample: {size_check.message}",
            n_observations=m,
            n_features=p,
        )
    if size_check.status == QCStatus.WARN:
        warnings.warn(size_check.message)

    try:
        transform = estimate_whitening(X, max_condition_number=config.max_condition_number)
    except SingularCovariance as e:
        raise InsufficientReferenceSize(
            f"Reference sample is rank-deficient: {e}",
            n_observations=m,
            n_features=p,
            reason='rank_deficient',
        ) from e

    ranks = reference_ranks(transform.apply(X), tie_tolerance=config.tie_tolerance)
    energy = initial_energy(ranks, compensated=config.compensated_summation)
    if not energy.value > 0:
        # Every reference point tied with every other; eps would be zero
        raise InsufficientReferenceSize(
            f"Reference sample has zero rank energy (tie_tolerance={config.tie_tolerance:g} "
            f"covers the whole whitened sample)",
            n_observations=m,
            n_features=p,
            reason='degenerate_energy',
        )

    ewma = initial_ewma(p)
    ewma.flags.writeable = False

    logger.info(
        "SREWMA chart initialised: m=%d, p=%d, lambda=%g, UCL=%g, RE_0=%.6g",
        m, p, config.lambda_param, config.control_limit, energy.value,
    )

    return ChartState(
        config=config,
        n_features=p,
        n_initial_reference=m,
        step=0,
        buffer=ReferenceBuffer.from_rows(X),
        n_reference=m,
        moments=CovarianceMoments.from_observations(X),
        energy=energy,
        ewma=ewma,
        status=ChartStatus.MONITORING,
    )


# =============================================================================
# STEPPING
# =============================================================================

def _validate_observation(observation: Any, n_features: int, step_index: int) -> np.ndarray:
    try:
        x = np.array(observation, dtype=float)
    except (TypeError, ValueError) as e:
        raise DimensionMismatch(
            expected=n_features, actual=f"non-numeric ({e})", step_index=step_index,
        ) from e

    if x.ndim != 1 or x.shape[0] != n_features:
        raise DimensionMismatch(expected=n_features, actual=x.shape, step_index=step_index)

    if not np.all(np.isfinite(x)):
        raise NonFiniteInput(x, step_index=step_index)

    x.flags.writeable = False
    return x


def process_next(state: ChartState, observation: Any) -> Tuple[ChartState, float, bool]:
    """
    Process the next observation of the monitoring stream.

    Args:
        state: Current chart state (not modified)
        observation: p feature values

    Returns:
        Tuple of (new_state, Q_t, signaled) where ``signaled`` is True
        when this step's Q_t exceeds the control limit

    Raises:
        DimensionMismatch: If the observation does not have p features
        NonFiniteInput: If the observation contains NaN or inf
        SingularCovariance: If the Reference Set covariance is not
            invertible; carries the step index and the last valid state
    """
    config = state.config
    t = state.step + 1
    x = _validate_observation(observation, state.n_features, t)

    try:
        transform = estimate_whitening_from_moments(
            state.moments, max_condition_number=config.max_condition_number,
        )
    except SingularCovariance as e:
        raise SingularCovariance(
            f"Step {t}: {e}",
            condition_number=e.condition_number,
            step_index=t,
            last_q=state.q_value,
            observation=x,
            state=state,
        ) from e

    context = transform.apply(state.reference_set)
    rank = spatial_rank(transform.apply(x), context, tie_tolerance=config.tie_tolerance)
    rank.flags.writeable = False

    energy = update_energy(state.energy, rank)

    buffer = state.buffer
    if state.n_reference != buffer.size:
        # Advancing from an earlier state; keep the later history intact
        buffer = buffer.fork(state.n_reference)
    buffer.append(x)

    ewma = ewma_step(state.ewma, rank, config.lambda_param)
    ewma.flags.writeable = False

    q = monitoring_statistic(ewma, energy.mean, config.lambda_param, state.n_features)
    signaled = q > config.control_limit

    first_signal = state.first_signal_index
    if signaled and first_signal is None:
        first_signal = t
        logger.info("Shift signalled at step %d: Q=%.6g > UCL=%g", t, q, config.control_limit)

    status = ChartStatus.SIGNALED if first_signal is not None else ChartStatus.IN_CONTROL

    logger.debug("Step %d: Q=%.6g eps=%.6g status=%s", t, q, energy.mean, status.value)

    new_state = replace(
        state,
        step=t,
        buffer=buffer,
        n_reference=state.n_reference + 1,
        moments=state.moments.update(x),
        energy=energy,
        ewma=ewma,
        q_value=q,
        rank=rank,
        status=status,
        first_signal_index=first_signal,
    )
    return new_state, q, signaled


def run(state: ChartState, stream: Iterable[Any]) -> MonitoringRun:
    """
    Process a whole monitoring stream in order.

    Stops at the first fatal failure and returns the partial output with
    the failing step index and error attached; the error is not retried
    or skipped.

    Args:
        state: Initial chart state
        stream: (n, p) array, DataFrame, or iterable of observations

    Returns:
        MonitoringRun with one StepResult per processed observation
    """
    if isinstance(stream, pd.DataFrame):
        stream = stream.to_numpy(dtype=float)

    current = state
    steps: List[StepResult] = []

    for observation in stream:
        try:
            current, q, signaled = process_next(current, observation)
        except SREWMAError as e:
            failed = current.step + 1
            logger.error(
                "Monitoring run stopped at step %d (last Q=%s): %s",
                failed, current.q_value, e,
            )
            return MonitoringRun(
                initial_state=state,
                final_state=current,
                steps=steps,
                error=e,
                failed_index=failed,
            )

        steps.append(StepResult(
            index=current.step,
            q_value=q,
            signaled=signaled,
            status=current.status,
            epsilon=current.epsilon,
            rank_norm=float(np.linalg.norm(current.rank)),
            ewma_norm=float(np.linalg.norm(current.ewma)),
        ))

    return MonitoringRun(initial_state=state, final_state=current, steps=steps)


# =============================================================================
# SUMMARY
# =============================================================================

def format_srewma_summary(result: MonitoringRun) -> str:
    """Format a monitoring run as markdown summary."""
    state = result.final_state
    config = state.config
    q = result.q_values

    lines = [
        "## SREWMA Chart",
        "",
        f"**Dimension (p):** {state.n_features}",
        f"**Reference Sample (m):** {state.n_initial_reference}",
        f"**Observations Monitored:** {len(result.steps)}",
        "",
        "### Parameters",
        f"- Lambda: {config.lambda_param:g}",
        f"- UCL: {config.control_limit:.4f}",
        "",
        "### Statistic",
    ]

    if len(q) > 0:
        lines.extend([
            f"- Max Q: {np.max(q):.4f} (step {int(np.argmax(q)) + 1 + result.initial_state.step})",
            f"- Final Q: {q[-1]:.4f}",
            f"- Steps above UCL: {sum(1 for s in result.steps if s.signaled)}",
        ])
    else:
        lines.append("- No observations processed")

    lines.extend(["", f"**Status:** {state.status.value}"])

    if result.first_signal_index is not None:
        lines.append(f"- **Shift detected at step {result.first_signal_index}**")

    if not result.completed:
        lines.extend([
            "",
            "### [FAIL] Run Stopped",
            f"- Step: {result.failed_index}",
            f"- Error: {result.error}",
        ])

    return "\n".join(lines)
