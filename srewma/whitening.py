"""
Whitening Estimator
===================
Linear transforms that map observations into a space where the
Reference Set has identity covariance.

Given the unbiased sample covariance S (features in columns) with
Cholesky factor S = C C^T, the transform is M = C^-1, so that

    M^T M = C^-T C^-1 = (C C^T)^-1 = S^-1

and a row observation x is whitened as z = M x (rows: Z = X M^T).

Singularity is judged against an explicit condition-number limit
(see config_validation.DEFAULT_MAX_CONDITION_NUMBER); a covariance that
is not positive definite or exceeds the limit raises SingularCovariance.
"""

from dataclasses import dataclass

import numpy as np
from scipy import linalg

from .config_validation import DEFAULT_MAX_CONDITION_NUMBER
from .exceptions import InsufficientReferenceSize, SingularCovariance


@dataclass(frozen=True)
class WhiteningTransform:
    """
    Whitening matrix M with M^T M = S^-1.

    Attributes:
        matrix: p x p lower-triangular M
        covariance: Covariance S it was derived from
        n_samples: Size of the Reference Set behind S
        condition_number: Condition number of S
    """
    matrix: np.ndarray
    covariance: np.ndarray
    n_samples: int
    condition_number: float

    @property
    def n_features(self) -> int:
        return self.matrix.shape[0]

    def apply(self, observations: np.ndarray) -> np.ndarray:
        """Whiten a single observation (p,) or a matrix of rows (n, p)."""
        return np.asarray(observations, dtype=float) @ self.matrix.T


@dataclass(frozen=True)
class CovarianceMoments:
    """
    Running mean and scatter of the Reference Set (Welford's algorithm).

    Immutable: ``update`` returns a new instance, so chart states that
    share history never see each other's later observations.
    """
    count: int
    mean: np.ndarray
    scatter: np.ndarray

    @classmethod
    def from_observations(cls, observations: np.ndarray) -> 'CovarianceMoments':
        X = np.asarray(observations, dtype=float)
        mean = X.mean(axis=0)
        centered = X - mean
        return cls(count=X.shape[0], mean=mean, scatter=centered.T @ centered)

    def update(self, x: np.ndarray) -> 'CovarianceMoments':
        n = self.count + 1
        delta = x - self.mean
        mean = self.mean + delta / n
        # Uses the new mean on one side, as in the scalar update
        scatter = self.scatter + np.outer(delta, x - mean)
        return CovarianceMoments(count=n, mean=mean, scatter=scatter)

    def covariance(self) -> np.ndarray:
        if self.count < 2:
            raise InsufficientReferenceSize(
                f"Need at least 2 observations for a covariance, got {self.count}",
                n_observations=self.count,
                n_features=self.mean.shape[0],
            )
        S = self.scatter / (self.count - 1)
        # Symmetrise away the rounding of the rank-one updates
        return (S + S.T) / 2


def whitening_from_covariance(
    covariance: np.ndarray,
    n_samples: int,
    max_condition_number: float = DEFAULT_MAX_CONDITION_NUMBER,
) -> WhiteningTransform:
    """
    Build the whitening transform for a given covariance matrix.

    Raises:
        SingularCovariance: If S is not positive definite or its condition
            number exceeds max_condition_number
    """
    S = np.atleast_2d(np.asarray(covariance, dtype=float))

    eigenvalues = np.linalg.eigvalsh(S)
    smallest, largest = eigenvalues[0], eigenvalues[-1]

    if not smallest > 0:
        raise SingularCovariance(
            f"Covariance is not positive definite (smallest eigenvalue {smallest:.3e}); "
            f"the Reference Set contains collinear or duplicated observations",
            condition_number=float('inf'),
        )

    condition_number = float(largest / smallest)
    if condition_number > max_condition_number:
        raise SingularCovariance(
            f"Covariance condition number {condition_number:.3e} exceeds "
            f"limit {max_condition_number:.3e}",
            condition_number=condition_number,
        )

    try:
        C = linalg.cholesky(S, lower=True)
    except linalg.LinAlgError as e:
        raise SingularCovariance(
            f"Cholesky factorisation failed: {e}",
            condition_number=condition_number,
        ) from e

    M = linalg.solve_triangular(C, np.eye(S.shape[0]), lower=True)

    return WhiteningTransform(
        matrix=M,
        covariance=S,
        n_samples=n_samples,
        condition_number=condition_number,
    )


def estimate_whitening(
    reference_set: np.ndarray,
    max_condition_number: float = DEFAULT_MAX_CONDITION_NUMBER,
) -> WhiteningTransform:
    """
    Estimate the whitening transform from a Reference Set.

    Pure function of its input.

    Args:
        reference_set: (n, p) matrix of observations, n >= p + 1
        max_condition_number: Largest acceptable condition number of S

    Returns:
        WhiteningTransform whose whitened reference has identity covariance

    Raises:
        InsufficientReferenceSize: If fewer than p + 1 observations
        SingularCovariance: If the sample covariance is not invertible

    Example:
        >>> X = np.random.default_rng(0).normal(size=(50, 3))
        >>> T = estimate_whitening(X)
        >>> np.allclose(np.cov(T.apply(X), rowvar=False), np.eye(3))
        True
    """
    X = np.asarray(reference_set, dtype=float)

    if X.ndim != 2:
        raise ValueError(f"Reference set must be 2-D (n, p), got shape {X.shape}")

    n, p = X.shape
    if n < p + 1:
        raise InsufficientReferenceSize(
            f"Need at least p + 1 = {p + 1} observations to estimate a {p}x{p} covariance, got {n}",
            n_observations=n,
            n_features=p,
        )

    S = np.atleast_2d(np.cov(X, rowvar=False, ddof=1))
    return whitening_from_covariance(S, n_samples=n, max_condition_number=max_condition_number)


def estimate_whitening_from_moments(
    moments: CovarianceMoments,
    max_condition_number: float = DEFAULT_MAX_CONDITION_NUMBER,
) -> WhiteningTransform:
    """Whitening transform from running moments (O(p^2) per step instead of O(n p^2))."""
    p = moments.mean.shape[0]
    if moments.count < p + 1:
        raise InsufficientReferenceSize(
            f"Need at least p + 1 = {p + 1} observations, got {moments.count}",
            n_observations=moments.count,
            n_features=p,
        )
    return whitening_from_covariance(
        moments.covariance(),
        n_samples=moments.count,
        max_condition_number=max_condition_number,
    )
