"""
SREWMA - Spatial-sign Rank EWMA Control Chart
==============================================
Distribution-free sequential monitoring of multivariate process streams.

Engine:
- whitening: expanding-window covariance and whitening transform
- spatial_rank: multivariate spatial ranks
- energy: running mean energy used to scale the statistic
- ewma: exponentially weighted rank recursion
- chart: the monitoring state machine (initialize / process_next / run)

Supporting:
- config_validation: pydantic chart configuration, JSON/YAML loading
- qc_checks: observation matrix quality control
- sampling: labelled observations, reference/monitoring draws
- traceability: hashes and reproducibility records

Usage:
    from srewma import initialize, run
    state = initialize(reference, lambda_param=0.1, control_limit=10.0)
    result = run(state, stream)
"""

from .exceptions import (
    SREWMAError,
    InsufficientReferenceSize,
    DimensionMismatch,
    NonFiniteInput,
    SingularCovariance,
)

from .config_validation import (
    ChartConfig,
    DEFAULT_MAX_CONDITION_NUMBER,
    validate_chart_config,
    load_chart_config,
)

from .whitening import (
    WhiteningTransform,
    CovarianceMoments,
    estimate_whitening,
    whitening_from_covariance,
    estimate_whitening_from_moments,
)

from .spatial_rank import (
    spatial_rank,
    reference_ranks,
)

from .energy import (
    EnergyTotal,
    update_energy,
    initial_energy,
)

from .ewma import (
    ewma_step,
    initial_ewma,
)

from .buffer import ReferenceBuffer

from .chart import (
    ChartStatus,
    ChartState,
    StepResult,
    MonitoringRun,
    monitoring_statistic,
    initialize,
    initialize_from_config,
    process_next,
    run,
    format_srewma_summary,
)

from .qc_checks import (
    QCStatus,
    QCCheckResult,
    QCReport,
    run_qc_checks,
    assert_qc_passed,
)

from .sampling import (
    LabelledObservations,
    draw_subsamples,
)

from .traceability import (
    PROCESSING_VERSION,
    RunRecord,
    compute_array_hash,
    compute_config_hash,
    create_run_record,
    verify_reproducible,
)

__version__ = "1.0.0"
