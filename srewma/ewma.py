"""
EWMA Recursion
==============
Exponentially weighted vector summary of spatial ranks:

    v_t = (1 - lambda) * v_{t-1} + lambda * r_t,    v_0 = 0

Strictly sequential: v_t depends on v_{t-1}.
"""

import numpy as np


def initial_ewma(n_features: int) -> np.ndarray:
    """v_0, the zero vector."""
    return np.zeros(n_features)


def ewma_step(v_prev: np.ndarray, rank: np.ndarray, lambda_param: float) -> np.ndarray:
    """
    One step of the EWMA recursion.

    Args:
        v_prev: Previous EWMA vector v_{t-1}
        rank: Current rank vector r_t
        lambda_param: Smoothing constant, 0 < lambda < 1

    Returns:
        New EWMA vector v_t (a new array; inputs are not modified)
    """
    return (1.0 - lambda_param) * np.asarray(v_prev, dtype=float) + lambda_param * np.asarray(rank, dtype=float)
