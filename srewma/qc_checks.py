"""
Observation Matrix Quality Control
==================================
Checks that MUST pass before a matrix is used as a reference sample or
monitoring stream.

Key Principle: the chart will NOT run on garbage data silently. These
checks validate; they never clean. Filtering missing values or dropping
constant columns is the data provider's job.

Check Categories:
1. Shape (2-D, nonempty)
2. Finite values (no NaN / inf)
3. Reference size (at least p + 1 rows, ideally more)
4. Constant columns (make the covariance singular)
5. Duplicate rows (advisory)
6. Labels (aligned with rows, in-control rows present)

Each check returns PASS, WARN, FAIL or SKIP with diagnostics.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

import numpy as np
import pandas as pd

from .config_validation import DEFAULT_MIN_RECOMMENDED_REFERENCE


class QCStatus(Enum):
    """Quality control check status."""
    PASS = "PASS"
    WARN = "WARN"
    FAIL = "FAIL"
    SKIP = "SKIP"  # Check not applicable


@dataclass
class QCCheckResult:
    """
    Result of a single QC check.

    Attributes:
        name: Check identifier
        status: PASS, WARN, FAIL, or SKIP
        message: Human-readable result description
        details: Additional diagnostic information
        blocking: If True, FAIL status blocks analysis
    """
    name: str
    status: QCStatus
    message: str
    details: Optional[Dict[str, Any]] = None
    blocking: bool = True

    def to_dict(self) -> Dict[str, Any]:
        return {
            'name': self.name,
            'status': self.status.value,
            'message': self.message,
            'details': self.details,
            'blocking': self.blocking
        }

    def __str__(self) -> str:
        return f"[{self.status.value}] {self.name}: {self.message}"


@dataclass
class QCReport:
    """
    Complete QC report for an observation matrix.

    Aggregates all individual check results and determines
    overall pass/fail status.
    """
    checks: List[QCCheckResult] = field(default_factory=list)
    timestamp: str = field(default_factory=lambda: pd.Timestamp.now().isoformat())

    @property
    def passed(self) -> bool:
        """True if no blocking checks failed."""
        return not any(
            c.status == QCStatus.FAIL and c.blocking
            for c in self.checks
        )

    @property
    def has_warnings(self) -> bool:
        return any(c.status == QCStatus.WARN for c in self.checks)

    @property
    def blocking_failures(self) -> List[QCCheckResult]:
        return [c for c in self.checks if c.status == QCStatus.FAIL and c.blocking]

    @property
    def warnings(self) -> List[QCCheckResult]:
        return [c for c in self.checks if c.status == QCStatus.WARN]

    @property
    def summary(self) -> Dict[str, int]:
        """Count of checks by status."""
        return {
            'total': len(self.checks),
            'passed': sum(1 for c in self.checks if c.status == QCStatus.PASS),
            'warnings': sum(1 for c in self.checks if c.status == QCStatus.WARN),
            'failed': sum(1 for c in self.checks if c.status == QCStatus.FAIL),
            'skipped': sum(1 for c in self.checks if c.status == QCStatus.SKIP),
        }

    def add_check(self, check: QCCheckResult):
        self.checks.append(check)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'passed': self.passed,
            'has_warnings': self.has_warnings,
            'summary': self.summary,
            'checks': [c.to_dict() for c in self.checks],
            'timestamp': self.timestamp,
            'blocking_failures': [c.to_dict() for c in self.blocking_failures],
        }

    def __str__(self) -> str:
        lines = [
            f"QC Report - {'PASSED' if self.passed else 'FAILED'}",
            f"  Checks: {self.summary['passed']} passed, {self.summary['warnings']} warnings, {self.summary['failed']} failed",
            ""
        ]
        for check in self.checks:
            lines.append(f"  {check}")
        return "\n".join(lines)


# =============================================================================
# MATRIX CHECKS
# =============================================================================

def check_matrix_shape(X: np.ndarray) -> QCCheckResult:
    """Verify the observations form a nonempty 2-D (n, p) matrix."""
    X = np.asarray(X)

    if X.ndim != 2:
        return QCCheckResult(
            name="matrix_shape",
            status=QCStatus.FAIL,
            message=f"Expected a 2-D (n, p) matrix, got {X.ndim}-D array of shape {X.shape}",
            details={'shape': list(X.shape)},
        )

    n, p = X.shape
    if n == 0 or p == 0:
        return QCCheckResult(
            name="matrix_shape",
            status=QCStatus.FAIL,
            message=f"Matrix is empty (shape {X.shape})",
            details={'shape': [n, p]},
        )

    return QCCheckResult(
        name="matrix_shape",
        status=QCStatus.PASS,
        message=f"{n} observations of {p} features",
        details={'shape': [n, p]},
    )


def check_finite_values(X: np.ndarray) -> QCCheckResult:
    """
    Verify every value is finite.

    NaN or inf entering the recursion would corrupt the EWMA state for
    the rest of the run.
    """
    X = np.asarray(X, dtype=float)
    bad = ~np.isfinite(X)
    n_bad = int(np.sum(bad))

    if n_bad == 0:
        return QCCheckResult(
            name="finite_values",
            status=QCStatus.PASS,
            message="All values are finite",
        )

    bad_rows = np.where(bad.any(axis=1))[0] if X.ndim == 2 else np.where(bad)[0]

    return QCCheckResult(
        name="finite_values",
        status=QCStatus.FAIL,
        message=f"{n_bad} non-finite value(s) in {len(bad_rows)} observation(s)",
        details={
            'n_non_finite': n_bad,
            'first_rows': bad_rows[:5].tolist(),
        },
    )


def check_reference_size(
    X: np.ndarray,
    min_recommended: int = DEFAULT_MIN_RECOMMENDED_REFERENCE,
) -> QCCheckResult:
    """
    Verify there are enough rows to estimate a p x p covariance.

    FAIL below p + 1 rows, WARN below ``min_recommended``.
    """
    n, p = np.asarray(X).shape
    details = {'n_observations': n, 'n_features': p, 'min_recommended': min_recommended}

    if n < p + 1:
        return QCCheckResult(
            name="reference_size",
            status=QCStatus.FAIL,
            message=f"Need at least p + 1 = {p + 1} observations, got {n}",
            details=details,
        )

    if n < min_recommended:
        return QCCheckResult(
            name="reference_size",
            status=QCStatus.WARN,
            message=f"Only {n} reference observations (fewer than {min_recommended}); "
                    f"covariance and rank estimates will be noisy",
            details=details,
            blocking=False,
        )

    return QCCheckResult(
        name="reference_size",
        status=QCStatus.PASS,
        message=f"{n} observations for {p} features",
        details=details,
    )


def check_constant_columns(X: np.ndarray) -> QCCheckResult:
    """Constant columns have zero variance and make the covariance singular."""
    X = np.asarray(X, dtype=float)
    constant = np.where(np.all(X == X[0], axis=0))[0] if X.shape[0] > 0 else np.array([], dtype=int)

    if len(constant) == 0:
        return QCCheckResult(
            name="constant_columns",
            status=QCStatus.PASS,
            message="No constant columns",
        )

    return QCCheckResult(
        name="constant_columns",
        status=QCStatus.FAIL,
        message=f"{len(constant)} constant column(s): {constant[:10].tolist()}",
        details={'columns': constant.tolist()},
    )


def check_duplicate_rows(X: np.ndarray) -> QCCheckResult:
    """Duplicated observations tie in the spatial rank; advisory only."""
    X = np.asarray(X, dtype=float)
    n_duplicates = int(X.shape[0] - np.unique(X, axis=0).shape[0])

    if n_duplicates == 0:
        return QCCheckResult(
            name="duplicate_rows",
            status=QCStatus.PASS,
            message="No duplicated observations",
            blocking=False,
        )

    return QCCheckResult(
        name="duplicate_rows",
        status=QCStatus.WARN,
        message=f"{n_duplicates} duplicated observation(s)",
        details={'n_duplicates': n_duplicates},
        blocking=False,
    )


def check_labels(labels: Optional[np.ndarray], n_rows: int) -> QCCheckResult:
    """Verify the in-control label vector is aligned and nonempty."""
    if labels is None:
        return QCCheckResult(
            name="labels",
            status=QCStatus.SKIP,
            message="No labels supplied",
            blocking=False,
        )

    labels = np.asarray(labels)

    if labels.ndim != 1 or labels.shape[0] != n_rows:
        return QCCheckResult(
            name="labels",
            status=QCStatus.FAIL,
            message=f"Label vector of shape {labels.shape} does not match {n_rows} rows",
        )

    n_in_control = int(np.sum(labels.astype(bool)))
    details = {'n_in_control': n_in_control, 'n_out_of_control': n_rows - n_in_control}

    if n_in_control == 0:
        return QCCheckResult(
            name="labels",
            status=QCStatus.FAIL,
            message="No in-control observations to draw a reference sample from",
            details=details,
        )

    return QCCheckResult(
        name="labels",
        status=QCStatus.PASS,
        message=f"{n_in_control} in-control, {n_rows - n_in_control} out-of-control",
        details=details,
    )


# =============================================================================
# AGGREGATE
# =============================================================================

def run_qc_checks(
    X: np.ndarray,
    labels: Optional[np.ndarray] = None,
    min_recommended: int = DEFAULT_MIN_RECOMMENDED_REFERENCE,
) -> QCReport:
    """
    Run all QC checks on an observation matrix.

    Args:
        X: (n, p) observations
        labels: Optional in-control flags, one per row
        min_recommended: Row count below which a size warning is raised

    Returns:
        QCReport with all check results
    """
    report = QCReport()

    shape = check_matrix_shape(X)
    report.add_check(shape)
    if shape.status == QCStatus.FAIL:
        return report

    X = np.asarray(X, dtype=float)
    finite = check_finite_values(X)
    report.add_check(finite)
    report.add_check(check_reference_size(X, min_recommended=min_recommended))

    # Constant/duplicate checks compare values, meaningless with NaN present
    if finite.status == QCStatus.PASS:
        report.add_check(check_constant_columns(X))
        report.add_check(check_duplicate_rows(X))

    report.add_check(check_labels(labels, X.shape[0]))

    return report


def assert_qc_passed(report: QCReport, raise_on_fail: bool = True) -> bool:
    """
    Check if QC passed and optionally raise exception on failure.

    Raises:
        ValueError: If QC failed and raise_on_fail is True
    """
    if report.passed:
        return True

    if raise_on_fail:
        failure_msgs = [f"  - {f.name}: {f.message}" for f in report.blocking_failures]
        raise ValueError(
            "QC FAILED - Monitoring blocked:\n" + "\n".join(failure_msgs)
        )

    return False
