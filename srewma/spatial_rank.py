"""
Spatial Rank Calculator
=======================
Multivariate generalisation of the sign/rank statistic.

The spatial rank of a point x relative to a context {y_1 .. y_n} is the
average of the unit vectors pointing from each context point to x:

    r(x) = (1/n) * sum_j U(x - y_j),    U(d) = d / ||d||,  U(0) = 0

Ties: a context point coincident with x (whitened distance <= tie
tolerance) contributes the zero vector but still counts in n, so the
denominator is always the context size and never zero for a nonempty
context. ||r(x)|| <= 1.
"""

import numpy as np

from .exceptions import InsufficientReferenceSize


def spatial_rank(
    point: np.ndarray,
    context: np.ndarray,
    tie_tolerance: float = 0.0,
) -> np.ndarray:
    """
    Spatial rank of a whitened point against a whitened context.

    Args:
        point: (p,) whitened query point
        context: (n, p) whitened reference points, excluding the point itself
        tie_tolerance: Distance at or below which a context point is coincident

    Returns:
        (p,) rank vector with norm <= 1

    Raises:
        InsufficientReferenceSize: If the context is empty
    """
    context = np.atleast_2d(np.asarray(context, dtype=float))
    point = np.asarray(point, dtype=float)
    n = context.shape[0] if context.size else 0

    if n == 0:
        raise InsufficientReferenceSize(
            "Spatial rank is undefined for an empty context",
            n_observations=0,
            n_features=point.shape[0],
            reason='empty_context',
        )

    diffs = point - context
    norms = np.linalg.norm(diffs, axis=1)
    distinct = norms > tie_tolerance

    directions = diffs[distinct] / norms[distinct, np.newaxis]
    return directions.sum(axis=0) / n


def reference_ranks(
    whitened_reference: np.ndarray,
    tie_tolerance: float = 0.0,
) -> np.ndarray:
    """
    Leave-one-out spatial ranks of every reference point.

    Row i is the rank of point i against the other n - 1 points.

    Returns:
        (n, p) matrix of rank vectors
    """
    Z = np.asarray(whitened_reference, dtype=float)
    n = Z.shape[0]

    if n < 2:
        raise InsufficientReferenceSize(
            f"Need at least 2 reference points for leave-one-out ranks, got {n}",
            n_observations=n,
            n_features=Z.shape[1] if Z.ndim == 2 else 0,
            reason='empty_context',
        )

    ranks = np.empty_like(Z)
    others = np.ones(n, dtype=bool)
    for i in range(n):
        others[i] = False
        ranks[i] = spatial_rank(Z[i], Z[others], tie_tolerance)
        others[i] = True

    return ranks
