"""
Scale (Energy) Accumulator
==========================
Running total of squared rank-vector norms, used to normalise the
monitoring statistic:

    eps_t = (RE_0 + sum_{k<=t} ||r_k||^2) / (m + t)

The total is carried forward exactly rather than recomputed, so each
step is O(p). With ``compensated=True`` the sum uses Neumaier's variant
of Kahan summation, which keeps the rounding error bounded independently
of the run length; plain summation drifts as O(t * eps_machine).
"""

from dataclasses import dataclass

import numpy as np


@dataclass(frozen=True)
class EnergyTotal:
    """
    Running energy total.

    Attributes:
        total: Running sum of squared rank norms
        count: Number of observations contributing (reference + monitored)
        compensation: Neumaier correction term (0 when uncompensated)
        compensated: Whether compensated summation is in use
    """
    total: float = 0.0
    count: int = 0
    compensation: float = 0.0
    compensated: bool = True

    @property
    def value(self) -> float:
        """Best estimate of the exact sum."""
        return self.total + self.compensation

    @property
    def mean(self) -> float:
        """Running mean energy eps."""
        if self.count == 0:
            raise ValueError("Mean energy is undefined before any observation is counted")
        return self.value / self.count


def _neumaier_add(total: float, compensation: float, x: float):
    s = total + x
    if abs(total) >= abs(x):
        compensation += (total - s) + x
    else:
        compensation += (x - s) + total
    return s, compensation


def add_energy(energy: EnergyTotal, squared_norm: float, count: int = 1) -> EnergyTotal:
    """Add a squared norm (and ``count`` observations) to the total."""
    if energy.compensated:
        total, compensation = _neumaier_add(energy.total, energy.compensation, float(squared_norm))
    else:
        total, compensation = energy.total + float(squared_norm), 0.0

    return EnergyTotal(
        total=total,
        count=energy.count + count,
        compensation=compensation,
        compensated=energy.compensated,
    )


def update_energy(energy: EnergyTotal, rank: np.ndarray) -> EnergyTotal:
    """Fold one new rank vector into the running total."""
    rank = np.asarray(rank, dtype=float)
    return add_energy(energy, float(rank @ rank))


def initial_energy(ranks: np.ndarray, compensated: bool = True) -> EnergyTotal:
    """
    RE_0 from the leave-one-out ranks of the reference sample.

    Args:
        ranks: (m, p) reference rank vectors
        compensated: Use compensated summation for this and later updates
    """
    energy = EnergyTotal(compensated=compensated)
    for rank in np.asarray(ranks, dtype=float):
        energy = update_energy(energy, rank)
    return energy
