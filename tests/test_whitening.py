"""
Whitening Estimator Tests
=========================
Tests for the covariance estimate and whitening transform.

Run with: python -m pytest tests/test_whitening.py -v
"""

import sys
from pathlib import Path

import numpy as np
import pytest

sys.path.insert(0, str(Path(__file__).parent.parent))

from srewma.whitening import (
    CovarianceMoments,
    estimate_whitening,
    estimate_whitening_from_moments,
    whitening_from_covariance,
)
from srewma.exceptions import InsufficientReferenceSize, SingularCovariance


def create_correlated_sample(n=200, seed=42):
    """Correlated 4-feature sample with very different scales."""
    rng = np.random.default_rng(seed)
    A = np.array([
        [2.0, 0.0, 0.0, 0.0],
        [1.5, 0.5, 0.0, 0.0],
        [0.0, 0.3, 10.0, 0.0],
        [0.2, 0.0, 1.0, 0.1],
    ])
    return rng.normal(size=(n, 4)) @ A.T + np.array([5.0, -3.0, 100.0, 0.0])


class TestEstimateWhitening:
    """Batch estimator."""

    def test_whitened_sample_has_identity_covariance(self):
        X = create_correlated_sample()
        transform = estimate_whitening(X)

        Z = transform.apply(X)
        np.testing.assert_allclose(np.cov(Z, rowvar=False), np.eye(4), atol=1e-9)

        print(f"✓ Whitened covariance is identity (cond={transform.condition_number:.3e})")

    def test_inverse_covariance_identity(self):
        """M^T M = S^-1"""
        X = create_correlated_sample()
        transform = estimate_whitening(X)

        S = np.cov(X, rowvar=False)
        M = transform.matrix
        np.testing.assert_allclose(M.T @ M, np.linalg.inv(S), rtol=1e-8, atol=1e-8)
        np.testing.assert_allclose(M @ S @ M.T, np.eye(4), atol=1e-10)

    def test_apply_single_observation(self):
        X = create_correlated_sample()
        transform = estimate_whitening(X)

        np.testing.assert_allclose(transform.apply(X[7]), transform.apply(X)[7])

    def test_pure_function(self):
        X = create_correlated_sample()
        X_before = X.copy()

        first = estimate_whitening(X)
        second = estimate_whitening(X)

        assert np.array_equal(X, X_before)
        assert np.array_equal(first.matrix, second.matrix)

    def test_too_few_observations(self):
        X = np.random.default_rng(0).normal(size=(3, 3))

        with pytest.raises(InsufficientReferenceSize) as exc_info:
            estimate_whitening(X)

        assert exc_info.value.n_observations == 3
        assert exc_info.value.n_features == 3

    def test_collinear_features_are_singular(self):
        rng = np.random.default_rng(1)
        x = rng.normal(size=50)
        X = np.column_stack([x, 2.0 * x])

        with pytest.raises(SingularCovariance):
            estimate_whitening(X)

    def test_duplicated_observations_are_singular(self):
        X = np.tile(np.array([[1.0, 2.0, 3.0]]), (10, 1))

        with pytest.raises(SingularCovariance):
            estimate_whitening(X)

    def test_condition_number_limit_is_configurable(self):
        rng = np.random.default_rng(2)
        X = rng.normal(size=(100, 2)) * np.array([1.0, 1e-4])

        # About 1e8: accepted by default, rejected under a tighter limit
        transform = estimate_whitening(X)
        assert transform.condition_number > 1e6

        with pytest.raises(SingularCovariance) as exc_info:
            estimate_whitening(X, max_condition_number=1e6)

        assert exc_info.value.condition_number > 1e6

    def test_one_dimensional_input_rejected(self):
        with pytest.raises(ValueError):
            estimate_whitening(np.arange(10.0))


class TestCovarianceFromMatrix:

    def test_not_positive_definite(self):
        S = np.array([[1.0, 2.0], [2.0, 1.0]])

        with pytest.raises(SingularCovariance):
            whitening_from_covariance(S, n_samples=10)

    def test_diagonal_covariance(self):
        S = np.diag([4.0, 9.0])
        transform = whitening_from_covariance(S, n_samples=10)

        np.testing.assert_allclose(transform.matrix, np.diag([0.5, 1.0 / 3.0]))
        assert transform.condition_number == pytest.approx(9.0 / 4.0)


class TestCovarianceMoments:
    """Running mean/scatter used by the chart between steps."""

    def test_running_update_matches_batch(self):
        X = create_correlated_sample(n=60)

        moments = CovarianceMoments.from_observations(X[:10])
        for row in X[10:]:
            moments = moments.update(row)

        assert moments.count == 60
        np.testing.assert_allclose(moments.mean, X.mean(axis=0), rtol=1e-12)
        np.testing.assert_allclose(moments.covariance(), np.cov(X, rowvar=False), rtol=1e-9, atol=1e-10)

    def test_update_is_non_destructive(self):
        X = create_correlated_sample(n=20)
        moments = CovarianceMoments.from_observations(X)
        scatter_before = moments.scatter.copy()

        moments.update(X[0] + 1.0)

        assert moments.count == 20
        assert np.array_equal(moments.scatter, scatter_before)

    def test_transform_from_moments_matches_batch(self):
        X = create_correlated_sample(n=80)

        moments = CovarianceMoments.from_observations(X[:40])
        for row in X[40:]:
            moments = moments.update(row)

        from_moments = estimate_whitening_from_moments(moments)
        batch = estimate_whitening(X)

        np.testing.assert_allclose(from_moments.matrix, batch.matrix, rtol=1e-6, atol=1e-9)

    def test_moments_require_p_plus_one(self):
        X = create_correlated_sample(n=4)
        moments = CovarianceMoments.from_observations(X)

        with pytest.raises(InsufficientReferenceSize):
            estimate_whitening_from_moments(moments)
